"""
qbank_sync_get_question_list: list the questions below a category.

The listing covers the named category and every category beneath it, minus
subtrees excluded by ``ignorecat``. Hidden questions are left out. When the
target is a course, the quizzes in that course are listed too.
"""

from __future__ import annotations

from typing import Any

from qbank_sync.core.access import LIST_QUESTIONS
from qbank_sync.core.categories import CategoryTree
from qbank_sync.core.errors import CategoryNotFoundError, SchemaError
from qbank_sync.core.ports import CategoryRecord, ContextLevel, QuestionEntryRecord, Scope, ScopeLocator
from qbank_sync.external.registry import CallContext, register
from qbank_sync.external.schemas import GetQuestionListParams, GetQuestionListReturns


def _optional_int(value: str | None) -> int | None:
    return int(value) if value else None


def _item(entry: QuestionEntryRecord, category_name: str | None, with_name: bool = True) -> dict[str, Any]:
    return {
        "questionbankentryid": str(entry.questionbankentryid),
        "name": entry.name if with_name else None,
        "questioncategory": category_name,
        "version": str(entry.version),
    }


def _context_info(scope: Scope, params: GetQuestionListParams) -> dict[str, Any]:
    return {
        "contextlevel": scope.level.name.lower(),
        "categoryname": scope.categoryname,
        "coursename": scope.coursename,
        "courseid": str(scope.courseid) if scope.courseid is not None else None,
        "modulename": scope.modulename,
        "instanceid": str(scope.instanceid) if scope.instanceid is not None else None,
        "qcategoryname": "",
        "qcategoryid": None,
        "ignorecat": params.ignorecat,
    }


def _target_category(tree: CategoryTree, scope: Scope, params: GetQuestionListParams, context) -> CategoryRecord:
    if params.qcategoryid:
        category = context.store.get_category(int(params.qcategoryid))
        if category is None or category.contextid != scope.contextid:
            raise CategoryNotFoundError(
                params.qcategoryid,
                f"Problem with question category: {params.qcategoryid} is not in context {scope.label}",
            )
        return category
    if not params.qcategoryname:
        raise SchemaError(["qcategoryname"], "Question category name or id required")
    if not tree.nodes:
        raise CategoryNotFoundError(
            params.qcategoryname,
            f"No question categories in context {scope.label}. Create one before exporting.",
        )
    return tree.resolve(params.qcategoryname)


@register(
    "qbank_sync_get_question_list",
    params=GetQuestionListParams,
    returns=GetQuestionListReturns,
    capability=LIST_QUESTIONS,
    description="Get a list of questions in a category and its subcategories",
)
def get_question_list(context: CallContext, params: GetQuestionListParams) -> dict[str, Any]:
    locator = ScopeLocator(
        level=params.contextlevel,
        coursecategory=params.coursecategory,
        coursename=params.coursename,
        modulename=params.modulename,
        instanceid=_optional_int(params.instanceid),
    )
    scope = context.guard.resolve_scope(locator)
    context.require(scope)

    store = context.store
    result: dict[str, Any] = {
        "contextinfo": _context_info(scope, params),
        "questions": [],
        "quizzes": [],
    }

    # Explicit entry ids: report what still exists, wherever it lives
    if params.qbankentryids:
        entries = store.entries_by_ids([int(i) for i in params.qbankentryids])
        result["questions"] = [_item(e, None, with_name=False) for e in entries]
        return result

    tree = CategoryTree(store.list_categories(scope.contextid))
    category = _target_category(tree, scope, params, context)
    result["contextinfo"]["qcategoryname"] = tree.path_of(category.id)
    result["contextinfo"]["qcategoryid"] = str(category.id)

    if scope.level == ContextLevel.COURSE and scope.courseid is not None:
        result["quizzes"] = [
            {"instanceid": str(cmid), "name": name} for cmid, name in store.quizzes_in_course(scope.courseid)
        ]

    if params.contextonly:
        return result

    categories = [category] + tree.descendants(category.id, params.ignorecat)
    names = {c.id: c.name for c in categories}
    entries = store.entries_in_categories(list(names))
    result["questions"] = [_item(e, names[e.categoryid]) for e in entries if e.status != "hidden"]
    return result
