"""
Wire schemas for the webservice functions.

Numeric identifiers cross the boundary as decimal-digit strings, the way the
host's webservice layer declares PARAM_SEQUENCE values. Unknown keys are
rejected so a typo in a parameter name fails loudly instead of being ignored.
"""

from __future__ import annotations

from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints

from qbank_sync.core.ports import ContextLevel

DigitString = Annotated[str, StringConstraints(pattern=r"^\d+$")]
NumberString = Annotated[str, StringConstraints(pattern=r"^-?\d+(\.\d+)?$")]
Level = Annotated[ContextLevel, BeforeValidator(ContextLevel.parse)]


def _blank_to_none(value):
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


OptionalDigits = Annotated[Optional[DigitString], BeforeValidator(_blank_to_none)]
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]


class WsModel(BaseModel):
    """Base for all parameter and return structures."""

    model_config = ConfigDict(extra="forbid")


# ========================================
# get_question_list
# ========================================


class GetQuestionListParams(WsModel):
    qcategoryname: OptionalText = Field(None, description="Category path: top/$category/$subcat1/$subcat2")
    contextlevel: Level = Field(..., description="Context level: 10, 40, 50, 70 or its name")
    coursename: OptionalText = Field(None, description="Unique course name")
    modulename: OptionalText = Field(None, description="Unique (within course) module name")
    coursecategory: OptionalText = Field(None, description="Unique course category name")
    qcategoryid: OptionalDigits = Field(None, description="Question category id (supersedes qcategoryname)")
    instanceid: OptionalDigits = Field(None, description="Course, module or course category id")
    contextonly: bool = Field(False, description="Only return context info?")
    qbankentryids: List[DigitString] = Field(default_factory=list, description="Entries to check")
    ignorecat: OptionalText = Field(None, description="Regex of categories to ignore")


class ContextInfo(WsModel):
    contextlevel: str
    categoryname: Optional[str] = None
    coursename: Optional[str] = None
    courseid: Optional[str] = None
    modulename: Optional[str] = None
    instanceid: Optional[str] = None
    qcategoryname: str = ""
    qcategoryid: Optional[str] = None
    ignorecat: Optional[str] = None


class QuestionListItem(WsModel):
    questionbankentryid: str
    name: Optional[str]
    questioncategory: Optional[str]
    version: str


class QuizListItem(WsModel):
    instanceid: str
    name: str


class GetQuestionListReturns(WsModel):
    contextinfo: ContextInfo
    questions: List[QuestionListItem] = Field(default_factory=list)
    quizzes: List[QuizListItem] = Field(default_factory=list)


# ========================================
# export_question / import_question / delete_question
# ========================================


class ExportQuestionParams(WsModel):
    questionbankentryid: DigitString
    includecategory: bool = False


class ExportQuestionReturns(WsModel):
    question: str
    version: str


class ImportQuestionParams(WsModel):
    questionbankentryid: OptionalDigits = Field(None, description="Entry id if the question exists already")
    importedversion: OptionalDigits = Field(None, description="Last imported version of question")
    exportedversion: OptionalDigits = Field(None, description="Last exported version of question")
    qcategoryname: OptionalText = Field(None, description="Category path: top/$category/$subcat1")
    filepath: str = Field(..., min_length=1, description="Path of the uploaded file")
    contextlevel: Optional[Level] = Field(None, description="Context level: 10, 40, 50, 70")
    coursename: OptionalText = None
    modulename: OptionalText = None
    coursecategory: OptionalText = None
    qcategoryid: OptionalDigits = None
    instanceid: OptionalDigits = None


class ImportQuestionReturns(WsModel):
    questionbankentryid: Optional[str]
    version: Optional[str]


class DeleteQuestionParams(WsModel):
    questionbankentryid: DigitString


class DeleteQuestionReturns(WsModel):
    success: bool


# ========================================
# export_quiz_data
# ========================================


class ExportQuizDataParams(WsModel):
    moduleid: OptionalDigits = Field(None, description="Course module id")
    quizname: OptionalText = Field(None, description="Quiz name")
    coursename: OptionalText = Field(None, description="Course name (when looking the quiz up by name)")


class QuizInfo(WsModel):
    name: str
    intro: str
    introformat: str


class QuizSectionItem(WsModel):
    firstslot: str
    heading: str
    shufflequestions: bool


class QuizSlotItem(WsModel):
    questionbankentryid: str
    slot: str
    page: str
    requireprevious: bool
    maxmark: str


class ExportQuizDataReturns(WsModel):
    quiz: QuizInfo
    sections: List[QuizSectionItem] = Field(default_factory=list)
    questions: List[QuizSlotItem] = Field(default_factory=list)


# ========================================
# import_quiz_data
# ========================================


class ImportQuizInfo(WsModel):
    name: str = Field(..., min_length=1)
    intro: str = ""
    introformat: DigitString = "1"
    coursename: OptionalText = None
    courseid: OptionalDigits = None
    questionsperpage: DigitString = "1"
    grade: NumberString = "10"
    navmethod: str = "free"
    cmid: OptionalDigits = Field(None, description="Course module id if the quiz already exists")


class ImportSectionItem(WsModel):
    firstslot: DigitString
    heading: str = ""
    shufflequestions: int = 0


class ImportSlotItem(WsModel):
    questionbankentryid: DigitString
    slot: DigitString
    page: DigitString
    requireprevious: int = 0
    maxmark: NumberString = "1"


class ImportFeedbackItem(WsModel):
    feedbacktext: str = ""
    feedbacktextformat: DigitString = "1"
    mingrade: NumberString = "0"
    maxgrade: NumberString = "0"


class ImportQuizDataParams(WsModel):
    quiz: ImportQuizInfo
    sections: List[ImportSectionItem] = Field(default_factory=list)
    questions: List[ImportSlotItem] = Field(default_factory=list)
    feedback: Optional[List[ImportFeedbackItem]] = Field(default_factory=list)


class ImportQuizDataReturns(WsModel):
    success: bool
    cmid: str
    skippedslots: List[str] = Field(default_factory=list)
