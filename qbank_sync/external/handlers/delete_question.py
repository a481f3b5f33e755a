"""qbank_sync_delete_question: remove a question bank entry and all its versions."""

from __future__ import annotations

from loguru import logger

from qbank_sync.core.access import DELETE_QUESTIONS
from qbank_sync.core.errors import QuestionNotFoundError
from qbank_sync.external.registry import CallContext, register
from qbank_sync.external.schemas import DeleteQuestionParams, DeleteQuestionReturns


@register(
    "qbank_sync_delete_question",
    params=DeleteQuestionParams,
    returns=DeleteQuestionReturns,
    capability=DELETE_QUESTIONS,
    description="Delete a question and every version of it",
    type="write",
)
def delete_question(context: CallContext, params: DeleteQuestionParams) -> dict[str, bool]:
    entry = context.store.get_entry(int(params.questionbankentryid))
    if entry is None:
        raise QuestionNotFoundError(params.questionbankentryid)

    scope = context.store.scope_by_context_id(entry.contextid)
    context.require(scope)

    removed = context.store.delete_entry(entry.questionbankentryid)
    logger.info("Deleted question {} ({} version(s))", entry.questionbankentryid, removed)
    return {"success": True}
