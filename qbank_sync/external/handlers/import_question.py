"""
qbank_sync_import_question: import an uploaded question file.

Three modes:

- ``questionbankentryid`` given: the file holds one question which becomes a
  new version of that entry, provided nobody changed it since the caller
  last synced (``importedversion``/``exportedversion``).
- ``qcategoryid`` or ``qcategoryname`` given: every question in the file is
  created in that category.
- neither: categories are taken from the file, creating any that are missing.

The file is parsed completely before anything is written, and removed from
the upload area once the import succeeds.
"""

from __future__ import annotations

from typing import Any

from qbank_sync.core.access import IMPORT_QUESTIONS
from qbank_sync.core.categories import CategoryTree, split_category_path
from qbank_sync.core.errors import (
    CategoryNotFoundError,
    ImportFormatError,
    QuestionNotFoundError,
    SchemaError,
    VersionConflictError,
)
from qbank_sync.core.ports import CategoryRecord, ContentStorePort, QuestionEntryRecord, Scope, ScopeLocator
from qbank_sync.external.files import discard_upload, resolve_upload
from qbank_sync.external.registry import CallContext, register
from qbank_sync.external.schemas import ImportQuestionParams, ImportQuestionReturns
from qbank_sync.formats.question_xml import parse_questions


def ensure_category_path(store: ContentStorePort, scope: Scope, path: str) -> CategoryRecord:
    """Find the category at ``path`` in ``scope``, creating missing levels under ``top``."""
    names = [name for name in split_category_path(path) if name]
    if names and names[0] == "top":
        names = names[1:]

    tree = CategoryTree(store.list_categories(scope.contextid))
    parent = next((c for c in tree.children(None) if c.name == "top"), None)
    if parent is None:
        parent = store.create_category(scope.contextid, "top", None)

    for name in names:
        child = next((c for c in tree.children(parent.id) if c.name == name), None)
        if child is None:
            child = store.create_category(scope.contextid, name, parent.id)
            tree = CategoryTree(store.list_categories(scope.contextid))
        parent = child
    return parent


def _check_version(entry: QuestionEntryRecord, params: ImportQuestionParams) -> None:
    current = str(entry.version)
    if current != params.importedversion and current != params.exportedversion:
        raise VersionConflictError(entry.name, entry.version, params.importedversion, params.exportedversion)


def _explicit_category(context: CallContext, scope: Scope, params: ImportQuestionParams) -> CategoryRecord | None:
    if params.qcategoryid:
        category = context.store.get_category(int(params.qcategoryid))
        if category is None or category.contextid != scope.contextid:
            raise CategoryNotFoundError(params.qcategoryid)
        return category
    if params.qcategoryname:
        return CategoryTree(context.store.list_categories(scope.contextid)).resolve(params.qcategoryname)
    return None


@register(
    "qbank_sync_import_question",
    params=ImportQuestionParams,
    returns=ImportQuestionReturns,
    capability=IMPORT_QUESTIONS,
    description="Import a question from an uploaded Moodle XML file",
    type="write",
)
def import_question(context: CallContext, params: ImportQuestionParams) -> dict[str, Any]:
    store = context.store

    entry = None
    if params.questionbankentryid:
        entry = store.get_entry(int(params.questionbankentryid))
        if entry is None:
            raise QuestionNotFoundError(params.questionbankentryid)
        scope = store.scope_by_context_id(entry.contextid)
    else:
        if params.contextlevel is None:
            raise SchemaError(["contextlevel"], "Context level required when importing a new question")
        scope = context.guard.resolve_scope(
            ScopeLocator(
                level=params.contextlevel,
                coursecategory=params.coursecategory,
                coursename=params.coursename,
                modulename=params.modulename,
                instanceid=int(params.instanceid) if params.instanceid else None,
            )
        )
    context.require(scope)

    if entry is not None:
        _check_version(entry, params)

    path = resolve_upload(context.upload_dir, params.filepath)
    parsed = parse_questions(path.read_bytes(), params.filepath)

    created: list[QuestionEntryRecord] = []
    if entry is not None:
        if len(parsed.questions) != 1:
            raise ImportFormatError(
                f"Could not import question from file: {params.filepath}",
                f"expected exactly one question, found {len(parsed.questions)}",
            )
        _, data = parsed.questions[0]
        created.append(store.add_question_version(entry.questionbankentryid, data))
        categoryid = entry.categoryid
    else:
        category = _explicit_category(context, scope, params)
        if category is not None:
            if not parsed.questions:
                raise ImportFormatError(f"Could not import question from file: {params.filepath}", "no questions")
            for _, data in parsed.questions:
                created.append(store.create_question(category.id, data))
            categoryid = category.id
        else:
            if not parsed.categories and not parsed.questions:
                raise ImportFormatError(f"Could not import question from file: {params.filepath}", "empty file")
            # Category file with no questions still creates its categories
            for category_path in parsed.categories:
                category = ensure_category_path(store, scope, category_path)
            for category_path, data in parsed.questions:
                if category_path is None:
                    category = store.seed_default_categories(scope)
                else:
                    category = ensure_category_path(store, scope, category_path)
                created.append(store.create_question(category.id, data))
            categoryid = category.id

    store.record_event("questions_imported", scope.contextid, None, {"format": "xml", "categoryid": categoryid})
    discard_upload(path, context.upload_dir)

    if not created:
        return {"questionbankentryid": None, "version": None}
    first = created[0]
    return {"questionbankentryid": str(first.questionbankentryid), "version": str(first.version)}
