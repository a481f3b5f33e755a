"""
Integration tests for capability grants and tokens.
"""

from qbank_sync.core.ports import QuizSettings
from qbank_sync.store import SqlAuthorization, create_token, grant_capability, user_for_token


class TestCapabilityInheritance:
    def test_system_grant_covers_everything(self, session, store, site):
        grant_capability(session, 7, store.system_scope().contextid, "listquestions")
        auth = SqlAuthorization(session, 7)
        assert auth.has_capability(site.course, "qbank/sync:listquestions")
        assert auth.has_capability(site.coursecategory, "qbank/sync:listquestions")

    def test_course_grant_reaches_quizzes_not_siblings(self, session, store, site):
        quiz = store.create_quiz(site.course, QuizSettings(name="Quiz 1"))
        other = store.create_course("Course 2", "C2", site.coursecategory)
        grant_capability(session, 7, site.course.contextid, "importquestions")
        auth = SqlAuthorization(session, 7)

        assert auth.has_capability(store.scope_by_context_id(quiz.contextid), "qbank/sync:importquestions")
        assert not auth.has_capability(other, "qbank/sync:importquestions")
        assert not auth.has_capability(site.coursecategory, "qbank/sync:importquestions")

    def test_grants_are_per_user_and_capability(self, session, store, site):
        grant_capability(session, 7, site.course.contextid, "listquestions")
        assert not SqlAuthorization(session, 8).has_capability(site.course, "qbank/sync:listquestions")
        assert not SqlAuthorization(session, 7).has_capability(site.course, "qbank/sync:deletequestions")

    def test_grant_is_idempotent(self, session, site):
        first = grant_capability(session, 7, site.course.contextid, "listquestions")
        second = grant_capability(session, 7, site.course.contextid, "qbank/sync:listquestions")
        assert first.id == second.id


class TestTokens:
    def test_token_round_trip(self, session):
        token = create_token(session, 12)
        assert len(token) == 32
        assert user_for_token(session, token) == 12
        assert user_for_token(session, "not-a-token") is None
