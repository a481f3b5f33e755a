"""
Smoke Tests for the repo CLI commands.

The CLI talks to the real webservice app in-process: an httpx MockTransport
hands every request to a FastAPI TestClient whose sessions come from the
test engine.

Usage:
    pytest tests/smoke/test_repo_commands.py -v
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from typer.testing import CliRunner

import qbank_sync.cli.main as cli_main
import qbank_sync.db.database as database
from qbank_sync.api.main import app as api_app
from qbank_sync.api.routers.webservice_router import get_upload_dir
from qbank_sync.cli.main import app
from qbank_sync.client import WebserviceClient
from qbank_sync.core.access import ALL_CAPABILITIES
from qbank_sync.core.ports import QuizSettings
from qbank_sync.repo import load_manifest
from qbank_sync.store import create_token, grant_capability

pytestmark = pytest.mark.smoke

runner = CliRunner()

MANIFEST_NAME = "qbank-test_course_course-1_question_manifest.json"


@pytest.fixture
def service(engine, session, store, site, upload_dir, monkeypatch):
    """Point the CLI client at the in-process app with an all-capability token."""
    token = create_token(session, 2)
    for capability in ALL_CAPABILITIES:
        grant_capability(session, 2, store.system_scope().contextid, capability)
    session.commit()

    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=engine, autoflush=False))
    api_app.dependency_overrides[get_upload_dir] = lambda: upload_dir
    api = TestClient(api_app)

    def handler(request: httpx.Request) -> httpx.Response:
        headers = {k: v for k, v in request.headers.items() if k in ("authorization", "content-type")}
        response = api.request(request.method, request.url.path, content=request.read(), headers=headers)
        return httpx.Response(
            response.status_code,
            headers={"content-type": response.headers.get("content-type", "application/json")},
            content=response.content,
        )

    def build(url=None, token_override=None):
        return WebserviceClient("http://qbank.test", token, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(cli_main, "_build_client", build)
    yield
    api_app.dependency_overrides.clear()


@pytest.fixture
def bank(service, algebra, tmp_path):
    """A repository created from Course 1."""
    directory = tmp_path / "bank"
    result = runner.invoke(app, ["repo", "create", str(directory), "--course", "Course 1"])
    assert result.exit_code == 0, result.output
    return directory


class TestRepoCreate:
    def test_writes_files_per_category(self, bank):
        assert (bank / MANIFEST_NAME).is_file()
        assert (bank / "top/Algebra/Linear/Slope.xml").is_file()
        assert (bank / "top/Algebra/Linear/Intercept.xml").is_file()
        assert (bank / "top/Algebra/Linear/Matrices/Determinant.xml").is_file()
        assert (bank / "top/Geometry/Angles.xml").is_file()
        assert "$course$/top/Algebra/Linear" in (bank / "top/Algebra/Linear/qbank_category.xml").read_text()
        assert "category" not in (bank / "top/Algebra/Linear/Slope.xml").read_text()

    def test_manifest_records_entries(self, bank, algebra):
        manifest = load_manifest(bank / MANIFEST_NAME)
        assert manifest.context.contextlevel == "course"
        assert manifest.context.coursename == "Course 1"
        assert manifest.context.siteurl == "http://qbank.test"

        slope = manifest.entry_for_id(str(algebra["entries"]["slope"].questionbankentryid))
        assert slope.filepath == "/top/Algebra/Linear/Slope.xml"
        assert slope.version == "1"
        assert slope.exportedversion == "1"
        assert slope.importedversion is None
        assert len(manifest.questions) == 4

    def test_refuses_existing_manifest(self, bank):
        result = runner.invoke(app, ["repo", "create", str(bank), "--course", "Course 1"])
        assert result.exit_code == 1
        assert "repoerror" in result.output

    def test_unknown_course(self, service, tmp_path):
        result = runner.invoke(app, ["repo", "create", str(tmp_path / "bank"), "--course", "Nope"])
        assert result.exit_code == 1
        assert "contexterror" in result.output


class TestRepoImport:
    def test_changed_file_becomes_new_version(self, bank, algebra, store, session):
        slope = bank / "top/Algebra/Linear/Slope.xml"
        slope.write_text(slope.read_text().replace("What is 2 + 2?", "What is 3 + 3?"))

        result = runner.invoke(app, ["repo", "import", str(bank / MANIFEST_NAME)])
        assert result.exit_code == 0, result.output
        assert "Updated 1, created 0, unchanged 3" in result.output

        session.expire_all()
        entryid = algebra["entries"]["slope"].questionbankentryid
        entry = store.get_entry(entryid)
        assert entry.version == 2
        assert "3 + 3" in store.load_question(entry.questionid).questiontext

        recorded = load_manifest(bank / MANIFEST_NAME).entry_for_id(str(entryid))
        assert recorded.version == "2"
        assert recorded.importedversion == "2"
        assert list((bank / "manifest_backups").iterdir())

    def test_new_file_created_in_its_directory_category(self, bank, algebra, store, session):
        angles = bank / "top/Geometry/Angles.xml"
        (bank / "top/Geometry/Area.xml").write_text(angles.read_text().replace("Angles", "Area"))

        result = runner.invoke(app, ["repo", "import", str(bank / MANIFEST_NAME)])
        assert result.exit_code == 0, result.output

        session.expire_all()
        geometry = algebra["categories"]["Geometry"]
        names = sorted(e.name for e in store.entries_in_categories([geometry.id]))
        assert names == ["Angles", "Area"]

        manifest = load_manifest(bank / MANIFEST_NAME)
        added = manifest.entry_for_path("/top/Geometry/Area.xml")
        assert added is not None
        assert added.importedversion == "1"

        # A second import has nothing to send
        result = runner.invoke(app, ["repo", "import", str(bank / MANIFEST_NAME)])
        assert "Updated 0, created 0, unchanged 5" in result.output

    def test_version_conflict_is_reported(self, bank, algebra, store, session, question_factory):
        entryid = algebra["entries"]["slope"].questionbankentryid
        store.add_question_version(entryid, question_factory("Slope"))
        session.commit()

        slope = bank / "top/Algebra/Linear/Slope.xml"
        slope.write_text(slope.read_text().replace("What is 2 + 2?", "What is 3 + 3?"))

        result = runner.invoke(app, ["repo", "import", str(bank / MANIFEST_NAME)])
        assert result.exit_code == 1
        assert "Slope.xml" in result.output
        session.expire_all()
        assert store.get_entry(entryid).version == 2


class TestRepoExport:
    def test_restores_files_and_drops_deleted_questions(self, bank, algebra):
        slope = bank / "top/Algebra/Linear/Slope.xml"
        original = slope.read_text()
        slope.write_text("<quiz/>")
        angles = str(algebra["entries"]["angles"].questionbankentryid)
        assert runner.invoke(app, ["ws", "delete", angles, "--yes"]).exit_code == 0

        result = runner.invoke(app, ["repo", "export", str(bank / MANIFEST_NAME)])
        assert result.exit_code == 0, result.output
        assert "removed 1" in result.output

        assert slope.read_text() == original
        manifest = load_manifest(bank / MANIFEST_NAME)
        assert manifest.entry_for_id(angles) is None
        assert len(manifest.questions) == 3

    def test_adds_questions_new_on_the_site(self, bank, algebra, store, session, question_factory):
        store.create_question(algebra["categories"]["Matrices"].id, question_factory("Inverse"))
        session.commit()

        result = runner.invoke(app, ["repo", "export", str(bank / MANIFEST_NAME)])
        assert result.exit_code == 0, result.output
        assert "added 1" in result.output
        assert (bank / "top/Algebra/Linear/Matrices/Inverse.xml").is_file()


class TestRepoQuiz:
    def test_whole_course_writes_quiz_structure(self, service, algebra, store, site, session, tmp_path):
        quiz = store.create_quiz(site.course, QuizSettings(name="Quiz 1", intro=""))
        store.add_quiz_slot(quiz, algebra["entries"]["slope"].questionbankentryid, 1, 1.0)
        session.commit()

        directory = tmp_path / "course"
        result = runner.invoke(app, ["repo", "create", str(directory), "--course", "Course 1", "--whole-course"])
        assert result.exit_code == 0, result.output

        structure = json.loads((directory / "Quiz 1_quiz.json").read_text())
        assert structure["questions"][0]["quizfilepath"] == "top/Algebra/Linear/Slope.xml"
        assert "questionbankentryid" not in structure["questions"][0]

    def test_import_quiz_maps_files_to_entries(self, bank, algebra, store, site, session):
        quiz = store.create_quiz(site.course, QuizSettings(name="Quiz 2", intro=""))
        session.commit()
        structure = bank / "quiz.json"
        structure.write_text(json.dumps({
            "quiz": {"name": "Quiz 2"},
            "sections": [],
            "questions": [{"quizfilepath": "top/Geometry/Angles.xml", "slot": "1", "page": "1"}],
        }))

        result = runner.invoke(app, [
            "repo", "import-quiz", str(structure), "--manifest", str(bank / MANIFEST_NAME),
            "--cmid", str(quiz.cmid), "--course", "Course 1",
        ])
        assert result.exit_code == 0, result.output

        session.expire_all()
        slots = store.quiz_slots(quiz.id)
        assert [s.questionbankentryid for s in slots] == [algebra["entries"]["angles"].questionbankentryid]

    def test_import_quiz_unknown_file(self, bank, site, store, session):
        quiz = store.create_quiz(site.course, QuizSettings(name="Quiz 2", intro=""))
        session.commit()
        structure = bank / "quiz.json"
        structure.write_text(json.dumps({
            "quiz": {"name": "Quiz 2"},
            "questions": [{"quizfilepath": "top/Nowhere.xml", "slot": "1", "page": "1"}],
        }))

        result = runner.invoke(app, [
            "repo", "import-quiz", str(structure), "--manifest", str(bank / MANIFEST_NAME), "--cmid", str(quiz.cmid),
        ])
        assert result.exit_code == 1
        assert "top/Nowhere.xml" in result.output
