# SQLAlchemy models
from .base import Base
from .context import (
    CapabilityGrant,
    Context,
    Course,
    CourseCategory,
    CourseModule,
    LoggedEvent,
    WebserviceToken,
)
from .question import (
    Question,
    QuestionAnswer,
    QuestionBankEntry,
    QuestionCategory,
    QuestionVersion,
)
from .quiz import (
    QuestionReference,
    Quiz,
    QuizFeedback,
    QuizSection,
    QuizSlot,
)

__all__ = [
    # Base
    "Base",
    # Scopes and access
    "Context",
    "CourseCategory",
    "Course",
    "CourseModule",
    "CapabilityGrant",
    "WebserviceToken",
    "LoggedEvent",
    # Question bank
    "QuestionCategory",
    "QuestionBankEntry",
    "Question",
    "QuestionVersion",
    "QuestionAnswer",
    # Quiz structure
    "Quiz",
    "QuizSection",
    "QuizSlot",
    "QuestionReference",
    "QuizFeedback",
]
