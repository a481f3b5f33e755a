"""qbank_sync_export_quiz_data: quiz settings, sections and slot layout."""

from __future__ import annotations

from typing import Any

from qbank_sync.core.access import LIST_QUESTIONS
from qbank_sync.core.errors import ScopeNotFoundError
from qbank_sync.core.ports import ContextLevel, ScopeLocator
from qbank_sync.external.registry import CallContext, register
from qbank_sync.external.schemas import ExportQuizDataParams, ExportQuizDataReturns


def _mark(value: float) -> str:
    return f"{value:.7f}"


@register(
    "qbank_sync_export_quiz_data",
    params=ExportQuizDataParams,
    returns=ExportQuizDataReturns,
    capability=LIST_QUESTIONS,
    description="Export the structure of a quiz",
)
def export_quiz_data(context: CallContext, params: ExportQuizDataParams) -> dict[str, Any]:
    scope = context.guard.resolve_scope(
        ScopeLocator(
            level=ContextLevel.MODULE,
            coursename=params.coursename,
            modulename=params.quizname,
            instanceid=int(params.moduleid) if params.moduleid else None,
        )
    )
    context.require(scope)

    quiz = context.store.get_quiz(scope.instanceid)
    if quiz is None:
        raise ScopeNotFoundError(f"Context not found: module {scope.instanceid} is not a quiz")

    return {
        "quiz": {"name": quiz.name, "intro": quiz.intro, "introformat": str(quiz.introformat)},
        "sections": [
            {
                "firstslot": str(section.firstslot),
                "heading": section.heading,
                "shufflequestions": section.shufflequestions,
            }
            for section in context.store.quiz_sections(quiz.id)
        ],
        "questions": [
            {
                "questionbankentryid": str(slot.questionbankentryid),
                "slot": str(slot.slot),
                "page": str(slot.page),
                "requireprevious": slot.requireprevious,
                "maxmark": _mark(slot.maxmark),
            }
            for slot in context.store.quiz_slots(quiz.id)
        ],
    }
