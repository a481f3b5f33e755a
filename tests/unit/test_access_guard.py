"""
Unit tests for scope resolution and capability checks.
"""

import pytest

from qbank_sync.core.access import AccessGuard, capability_name
from qbank_sync.core.errors import PermissionDeniedError, ScopeNotFoundError
from qbank_sync.core.ports import ContextLevel, QuizSettings, ScopeLocator


class TestContextLevel:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (10, ContextLevel.SYSTEM),
            ("40", ContextLevel.COURSECATEGORY),
            ("course", ContextLevel.COURSE),
            ("MODULE", ContextLevel.MODULE),
        ],
    )
    def test_parse(self, value, expected):
        assert ContextLevel.parse(value) == expected

    @pytest.mark.parametrize("value", [30, "block", ""])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            ContextLevel.parse(value)


class TestResolveScope:
    """Each locator strategy resolves to exactly one scope."""

    def test_system(self, guard, site):
        scope = guard.resolve_scope(ScopeLocator(ContextLevel.SYSTEM))
        assert scope.level == ContextLevel.SYSTEM
        assert scope.parent_contextid is None

    def test_course_category_by_name(self, guard, site):
        scope = guard.resolve_scope(ScopeLocator(ContextLevel.COURSECATEGORY, coursecategory="Science"))
        assert scope.contextid == site.coursecategory.contextid
        assert scope.categoryname == "Science"

    def test_course_by_name(self, guard, site):
        scope = guard.resolve_scope(ScopeLocator(ContextLevel.COURSE, coursename="Course 1"))
        assert scope.contextid == site.course.contextid
        assert scope.courseid == site.course.instanceid

    def test_course_by_id_wins_over_name(self, guard, site):
        locator = ScopeLocator(ContextLevel.COURSE, coursename="Nonexistent", instanceid=site.course.instanceid)
        assert guard.resolve_scope(locator).contextid == site.course.contextid

    def test_module_by_names(self, guard, store, site, session):
        quiz = store.create_quiz(site.course, QuizSettings(name="Quiz 1"))
        session.commit()
        scope = guard.resolve_scope(ScopeLocator(ContextLevel.MODULE, coursename="Course 1", modulename="Quiz 1"))
        assert scope.contextid == quiz.contextid
        assert scope.modulename == "Quiz 1"
        assert scope.parent_contextid == site.course.contextid

    def test_missing_course(self, guard, site):
        with pytest.raises(ScopeNotFoundError) as exc_info:
            guard.resolve_scope(ScopeLocator(ContextLevel.COURSE, coursename="Course 99"))
        assert "Course 99" in exc_info.value.message

    def test_course_requires_name_or_id(self, guard, site):
        with pytest.raises(ScopeNotFoundError):
            guard.resolve_scope(ScopeLocator(ContextLevel.COURSE))

    def test_module_requires_course_name(self, guard, site):
        with pytest.raises(ScopeNotFoundError):
            guard.resolve_scope(ScopeLocator(ContextLevel.MODULE, modulename="Quiz 1"))

    def test_ambiguous_course_name(self, guard, store, site, session):
        store.create_course("Course 1", "C1-copy", site.coursecategory)
        session.commit()
        with pytest.raises(ScopeNotFoundError) as exc_info:
            guard.resolve_scope(ScopeLocator(ContextLevel.COURSE, coursename="Course 1"))
        assert "ambiguous" in exc_info.value.message


class TestRequireCapability:
    def test_capability_name(self):
        assert capability_name("listquestions") == "qbank/sync:listquestions"
        assert capability_name("qbank/sync:listquestions") == "qbank/sync:listquestions"

    def test_allowed_checks_full_name(self, guard, authorization, site):
        guard.require_capability(site.course, "exportquestions")
        assert authorization.checks == [(site.course.contextid, "qbank/sync:exportquestions")]

    def test_denied(self, store, site):
        class Deny:
            def has_capability(self, scope, capability):
                return False

        guard = AccessGuard(store, Deny())
        with pytest.raises(PermissionDeniedError) as exc_info:
            guard.check(ScopeLocator(ContextLevel.COURSE, coursename="Course 1"), "deletequestions")
        assert exc_info.value.capability == "qbank/sync:deletequestions"
        assert "Course: Course 1" in exc_info.value.message
