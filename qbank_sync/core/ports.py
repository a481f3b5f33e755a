"""
Ports and value types shared by the webservice handlers.

Handlers never talk to a database directly. They receive a ContentStorePort
(categories, questions, quizzes) and an AuthorizationPort (capability checks)
so they can run against the SQLAlchemy adapters in production and against
throwaway SQLite sessions in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class ContextLevel(int, Enum):
    """Levels of the scope hierarchy, using the host's numeric codes."""

    SYSTEM = 10
    COURSECATEGORY = 40
    COURSE = 50
    MODULE = 70

    @classmethod
    def parse(cls, value: int | str) -> ContextLevel:
        """Accept a numeric code ("50", 50) or a level name ("course")."""
        if isinstance(value, str):
            text = value.strip().lower()
            if text.isdigit():
                value = int(text)
            else:
                try:
                    return cls[text.upper()]
                except KeyError:
                    raise ValueError(f"The context level is invalid: {value}") from None
        try:
            return cls(int(value))
        except ValueError:
            raise ValueError(f"The context level is invalid: {value}") from None


@dataclass(frozen=True)
class ScopeLocator:
    """Identifies a scope by names or by instance id (instance id wins)."""

    level: ContextLevel
    coursecategory: str | None = None
    coursename: str | None = None
    modulename: str | None = None
    instanceid: int | None = None


@dataclass
class Scope:
    """A resolved node in the system/category/course/module hierarchy."""

    contextid: int
    level: ContextLevel
    instanceid: int | None = None
    parent_contextid: int | None = None
    categoryname: str | None = None
    coursename: str | None = None
    courseid: int | None = None
    modulename: str | None = None

    @property
    def label(self) -> str:
        """Human-readable description used in error messages."""
        if self.level == ContextLevel.SYSTEM:
            return "System"
        if self.level == ContextLevel.COURSECATEGORY:
            return f"Category: {self.categoryname}"
        if self.level == ContextLevel.COURSE:
            return f"Course: {self.coursename}"
        return f"Quiz: {self.modulename}"


@dataclass
class CategoryRecord:
    """A question category row. ``parent`` is None for a context's top category."""

    id: int
    name: str
    contextid: int
    parent: int | None = None
    info: str = ""


@dataclass
class QuestionEntryRecord:
    """A question bank entry projected onto its latest version."""

    questionbankentryid: int
    categoryid: int
    contextid: int
    questionid: int
    name: str
    version: int
    status: str = "ready"


@dataclass
class AnswerData:
    text: str
    fraction: float = 0.0
    format: str = "moodle_auto_format"
    feedback: str = ""
    feedbackformat: str = "html"


@dataclass
class QuestionData:
    """Full content of one question version, independent of storage."""

    name: str
    qtype: str
    questiontext: str = ""
    questiontextformat: str = "html"
    generalfeedback: str = ""
    generalfeedbackformat: str = "html"
    defaultmark: float = 1.0
    penalty: float = 0.3333333
    hidden: bool = False
    idnumber: str | None = None
    answers: list[AnswerData] = field(default_factory=list)
    # Type-specific settings kept as raw XML fragments keyed by element name
    options: dict[str, str] = field(default_factory=dict)


@dataclass
class QuizSettings:
    """Quiz metadata supplied on import; defaults are the fixed review/grading values."""

    name: str
    intro: str = ""
    introformat: int = 1
    questionsperpage: int = 1
    grade: float = 10.0
    navmethod: str = "free"
    preferredbehaviour: str = "deferredfeedback"
    shuffleanswers: bool = True
    grademethod: int = 1
    decimalpoints: int = 2
    questiondecimalpoints: int = -1
    timeopen: int = 0
    timeclose: int = 0
    timelimit: int = 0
    graceperiod: int = 0
    reviewattempt: int = 69888
    reviewcorrectness: int = 4352
    reviewmarks: int = 4352
    reviewspecificfeedback: int = 4352
    reviewgeneralfeedback: int = 4352
    reviewrightanswer: int = 4352
    reviewoverallfeedback: int = 4352


@dataclass
class QuizRecord:
    id: int
    cmid: int
    courseid: int
    contextid: int
    name: str
    intro: str
    introformat: int
    sumgrades: float = 0.0


@dataclass
class QuizSectionRecord:
    firstslot: int
    heading: str
    shufflequestions: bool
    id: int | None = None


@dataclass
class QuizSlotRecord:
    questionbankentryid: int
    slot: int
    page: int
    requireprevious: bool
    maxmark: float
    id: int | None = None


@dataclass
class FeedbackBand:
    feedbacktext: str = ""
    feedbacktextformat: int = 1
    mingrade: float = 0.0
    maxgrade: float = 0.0


class AuthorizationPort(Protocol):
    """Capability checks for the calling user."""

    def has_capability(self, scope: Scope, capability: str) -> bool:
        """Return True if the caller holds ``capability`` at ``scope``."""
        ...


class ContentStorePort(Protocol):
    """Hierarchical category/question/quiz persistence used by the handlers."""

    # Scopes
    def system_scope(self) -> Scope: ...

    def course_category_scopes(self, name: str | None, instanceid: int | None) -> list[Scope]: ...

    def course_scopes(self, name: str | None, instanceid: int | None) -> list[Scope]: ...

    def module_scopes(
        self, coursename: str | None, modulename: str | None, instanceid: int | None
    ) -> list[Scope]: ...

    def scope_by_context_id(self, contextid: int) -> Scope: ...

    # Categories
    def list_categories(self, contextid: int) -> list[CategoryRecord]: ...

    def get_category(self, categoryid: int) -> CategoryRecord | None: ...

    def create_category(self, contextid: int, name: str, parent: int | None, info: str = "") -> CategoryRecord: ...

    def seed_default_categories(self, scope: Scope) -> CategoryRecord: ...

    # Questions
    def entries_in_categories(self, categoryids: list[int]) -> list[QuestionEntryRecord]: ...

    def get_entry(self, questionbankentryid: int) -> QuestionEntryRecord | None: ...

    def entries_by_ids(self, questionbankentryids: list[int]) -> list[QuestionEntryRecord]: ...

    def load_question(self, questionid: int) -> QuestionData: ...

    def create_question(self, categoryid: int, data: QuestionData) -> QuestionEntryRecord: ...

    def add_question_version(self, questionbankentryid: int, data: QuestionData) -> QuestionEntryRecord: ...

    def delete_entry(self, questionbankentryid: int) -> int: ...

    # Quizzes
    def quizzes_in_course(self, courseid: int) -> list[tuple[int, str]]: ...

    def get_quiz(self, cmid: int) -> QuizRecord | None: ...

    def create_quiz(self, course: Scope, settings: QuizSettings) -> QuizRecord: ...

    def update_quiz(self, cmid: int, settings: QuizSettings) -> QuizRecord: ...

    def quiz_sections(self, quizid: int) -> list[QuizSectionRecord]: ...

    def quiz_slots(self, quizid: int) -> list[QuizSlotRecord]: ...

    def add_quiz_slot(
        self, quiz: QuizRecord, questionbankentryid: int, page: int, maxmark: float
    ) -> QuizSlotRecord: ...

    def set_require_previous(self, slotid: int) -> None: ...

    def recompute_sumgrades(self, quizid: int) -> float: ...

    def update_first_section(self, quizid: int, heading: str, shufflequestions: bool) -> int: ...

    def insert_section(self, quizid: int, firstslot: int, heading: str, shufflequestions: bool) -> int: ...

    def add_feedback(self, quizid: int, band: FeedbackBand) -> int: ...

    # Events
    def record_event(self, eventname: str, contextid: int, objectid: int | None, other: dict[str, Any]) -> None: ...
