"""qbank_sync_export_question: serialize the current version of one question."""

from __future__ import annotations

from typing import Any

from qbank_sync.core.access import EXPORT_QUESTIONS
from qbank_sync.core.categories import CategoryTree
from qbank_sync.core.errors import QuestionNotFoundError
from qbank_sync.external.registry import CallContext, register
from qbank_sync.external.schemas import ExportQuestionParams, ExportQuestionReturns
from qbank_sync.formats.question_xml import export_questions


@register(
    "qbank_sync_export_question",
    params=ExportQuestionParams,
    returns=ExportQuestionReturns,
    capability=EXPORT_QUESTIONS,
    description="Export a question as Moodle XML",
)
def export_question(context: CallContext, params: ExportQuestionParams) -> dict[str, Any]:
    store = context.store
    entry = store.get_entry(int(params.questionbankentryid))
    if entry is None:
        raise QuestionNotFoundError(params.questionbankentryid)

    scope = store.scope_by_context_id(entry.contextid)
    context.require(scope)

    category_path = None
    if params.includecategory:
        category_path = CategoryTree(store.list_categories(entry.contextid)).path_of(entry.categoryid)

    payload = export_questions([store.load_question(entry.questionid)], category_path, scope.level)
    store.record_event(
        "questions_exported",
        scope.contextid,
        None,
        {"format": "xml", "categoryid": entry.categoryid},
    )
    return {"question": payload, "version": str(entry.version)}
