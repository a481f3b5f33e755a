"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test database is an in-memory SQLite engine with the full schema and a
small site: one course category ("Science") holding one course ("Course 1").
"""
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from qbank_sync.core.access import AccessGuard  # noqa: E402
from qbank_sync.core.ports import QuestionData, AnswerData, Scope  # noqa: E402
from qbank_sync.db.database import init_db  # noqa: E402
from qbank_sync.external import CallContext  # noqa: E402
from qbank_sync.store import SqlContentStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# ========================================
# Authorization stubs
# ========================================


class AllowAll:
    """Authorization that grants every capability and records the checks."""

    def __init__(self):
        self.checks: list[tuple[int, str]] = []

    def has_capability(self, scope: Scope, capability: str) -> bool:
        self.checks.append((scope.contextid, capability))
        return True


class DenyAll:
    def has_capability(self, scope: Scope, capability: str) -> bool:
        return False


class DenyCapability:
    """Grants everything except one capability."""

    def __init__(self, capability: str):
        self.capability = capability

    def has_capability(self, scope: Scope, capability: str) -> bool:
        return not capability.endswith(self.capability)


# ========================================
# Database fixtures
# ========================================


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return SqlContentStore(session, userid=2)


@dataclass
class Site:
    coursecategory: Scope
    course: Scope


@pytest.fixture
def site(store, session):
    """A course category with one course in it."""
    category = store.create_course_category("Science")
    course = store.create_course("Course 1", "C1", category)
    session.commit()
    return Site(coursecategory=category, course=course)


@pytest.fixture
def authorization():
    return AllowAll()


@pytest.fixture
def guard(store, authorization):
    return AccessGuard(store, authorization)


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def call_context(store, guard, upload_dir):
    return CallContext(store=store, guard=guard, upload_dir=upload_dir)


# ========================================
# Content fixtures
# ========================================


def make_question(name: str = "Two plus two", **overrides) -> QuestionData:
    """Build a small multichoice question."""
    fields = dict(
        name=name,
        qtype="multichoice",
        questiontext="<p>What is 2 + 2?</p>",
        generalfeedback="Basic arithmetic.",
        defaultmark=1.0,
        penalty=0.3333333,
        answers=[
            AnswerData(text="4", fraction=1.0, feedback="Correct"),
            AnswerData(text="5", fraction=0.0, feedback="No"),
        ],
        options={"single": "<single>true</single>"},
    )
    fields.update(overrides)
    return QuestionData(**fields)


@pytest.fixture
def algebra(store, site, session):
    """
    Category tree in Course 1:

        top
        └── Algebra
            └── Linear          (2 questions)
                └── Matrices    (1 question)
        └── Geometry            (1 question)
    """
    contextid = site.course.contextid
    top = store.create_category(contextid, "top", None)
    algebra = store.create_category(contextid, "Algebra", top.id)
    linear = store.create_category(contextid, "Linear", algebra.id)
    matrices = store.create_category(contextid, "Matrices", linear.id)
    geometry = store.create_category(contextid, "Geometry", top.id)

    entries = {
        "slope": store.create_question(linear.id, make_question("Slope")),
        "intercept": store.create_question(linear.id, make_question("Intercept")),
        "determinant": store.create_question(matrices.id, make_question("Determinant")),
        "angles": store.create_question(geometry.id, make_question("Angles")),
    }
    session.commit()
    return {
        "categories": {
            "top": top,
            "Algebra": algebra,
            "Linear": linear,
            "Matrices": matrices,
            "Geometry": geometry,
        },
        "entries": entries,
    }


@pytest.fixture
def question_factory():
    return make_question


@pytest.fixture
def denying_context(store, upload_dir):
    """Build a CallContext whose guard refuses one capability, or all when None."""

    def build(capability: str | None = None) -> CallContext:
        authorization = DenyAll() if capability is None else DenyCapability(capability)
        return CallContext(store=store, guard=AccessGuard(store, authorization), upload_dir=upload_dir)

    return build
