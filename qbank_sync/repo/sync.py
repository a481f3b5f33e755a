"""
Repository sync service for qbank-sync.

Keeps a directory of question files in step with one context on a remote
site, through the webservice client only.

Handles:
- create: export every question below a category into a new repository
- export: refresh files from the site, adding questions new on the site
- import: push changed or new files back, with the version conflict check
- tidy: drop manifest entries whose questions were deleted on the site
- quiz structures: export and import with questions named by file path
- whole course: a course repository plus one repository per quiz
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from qbank_sync.client import WebserviceClient, WebserviceError
from qbank_sync.core.categories import join_category_path, split_category_path
from qbank_sync.core.errors import QbankSyncError, RepoError
from qbank_sync.core.ports import ContextLevel
from qbank_sync.formats.question_xml import split_category, with_category
from qbank_sync.repo.manifest import (
    CATEGORY_FILE,
    QUIZ_SUFFIX,
    Manifest,
    ManifestContext,
    ManifestEntry,
    backup_manifest,
    content_hash,
    load_manifest,
    manifest_path,
    relative_path,
    safe_filename,
    save_manifest,
)

QUIZ_DIR = "quizzes"


def _clean(params: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


def _site(client: WebserviceClient) -> str:
    return httpx.URL(client.base_url).host or client.base_url


def _category_dir(root: Path, category_path: str) -> Path:
    directory = root
    for name in split_category_path(category_path):
        directory = directory / safe_filename(name, "category")
    return directory


def _question_file(directory: Path, name: str | None, questionbankentryid: str) -> Path:
    path = directory / f"{safe_filename(name or '')}.xml"
    if path.exists() or path.name == CATEGORY_FILE:
        path = directory / f"{safe_filename(name or '')}_{questionbankentryid}.xml"
    return path


def _export_new(
    client: WebserviceClient,
    root: Path,
    manifest: Manifest,
    item: dict[str, Any],
) -> ManifestEntry:
    """Export one question with its category into the repository tree."""
    qbeid = item["questionbankentryid"]
    result = client.export_question(qbeid, includecategory=True)
    category_path, category_xml, question_xml = split_category(result["question"], f"question {qbeid}")

    directory = _category_dir(root, category_path or manifest.context.qcategoryname)
    directory.mkdir(parents=True, exist_ok=True)
    if category_xml is not None and not (directory / CATEGORY_FILE).exists():
        (directory / CATEGORY_FILE).write_text(category_xml, encoding="utf-8")

    path = _question_file(directory, item.get("name"), qbeid)
    path.write_text(question_xml, encoding="utf-8")
    entry = ManifestEntry(
        questionbankentryid=qbeid,
        filepath=relative_path(root, path),
        version=result["version"],
        exportedversion=result["version"],
        contenthash=content_hash(path),
    )
    manifest.questions.append(entry)
    return entry


def _list(client: WebserviceClient, manifest: Manifest, **params: Any) -> dict[str, Any]:
    return client.call("qbank_sync_get_question_list", **_clean({**manifest.context.locator(), **params}))


# ========================================
# Create
# ========================================


def create_repo(
    client: WebserviceClient,
    directory: Path,
    contextlevel: str,
    coursecategory: str | None = None,
    coursename: str | None = None,
    modulename: str | None = None,
    instanceid: str | None = None,
    qcategoryname: str = "top",
    ignorecat: str | None = None,
) -> dict[str, Any]:
    """
    Export the questions below ``qcategoryname`` into a new repository.

    Returns:
        Stats dict with the manifest path and counts of exported and failed
        questions.

    Raises:
        RepoError: a manifest for this site and context already exists
        WebserviceError: the context or category could not be listed
    """
    listing = client.call(
        "qbank_sync_get_question_list",
        **_clean({
            "contextlevel": contextlevel,
            "coursecategory": coursecategory,
            "coursename": coursename,
            "modulename": modulename,
            "instanceid": instanceid,
            "qcategoryname": qcategoryname,
            "ignorecat": ignorecat,
        }),
    )
    info = listing["contextinfo"]
    context = ManifestContext(
        siteurl=client.base_url,
        contextlevel=info["contextlevel"],
        coursecategory=info.get("categoryname"),
        coursename=info.get("coursename"),
        modulename=info.get("modulename"),
        instanceid=info.get("instanceid"),
        qcategoryname=info.get("qcategoryname") or qcategoryname,
        ignorecat=ignorecat,
    )
    path = manifest_path(
        directory, _site(client), context.contextlevel,
        context.coursecategory, context.coursename, context.modulename,
    )
    if path.exists():
        raise RepoError(f"Manifest already exists: {path}", "Use export to refresh an existing repository")

    manifest = Manifest(context=context)
    stats: dict[str, Any] = {"manifest": str(path), "exported": 0, "failed": 0, "quizzes": listing["quizzes"]}

    logger.info("Creating repository for {} questions in {}", len(listing["questions"]), directory)
    for item in listing["questions"]:
        try:
            _export_new(client, directory, manifest, item)
            stats["exported"] += 1
        except QbankSyncError as exc:
            stats["failed"] += 1
            logger.error("Failed to export question {}: {}", item["questionbankentryid"], exc)

    save_manifest(manifest, path)
    logger.info("Repository created: {} exported, {} failed", stats["exported"], stats["failed"])
    return stats


def create_course_repo(
    client: WebserviceClient,
    directory: Path,
    coursename: str | None = None,
    instanceid: str | None = None,
    ignorecat: str | None = None,
) -> dict[str, Any]:
    """
    Create a course repository plus one repository and structure file per quiz.

    Quiz repositories live under ``quizzes/<quiz name>``; structure files sit
    in the course repository root. A quiz that fails is logged and skipped.
    """
    stats = create_repo(
        client, directory, "course", coursename=coursename, instanceid=instanceid, ignorecat=ignorecat
    )
    course_manifest = Path(stats["manifest"])
    stats["quizrepos"] = []
    for quiz in stats["quizzes"]:
        quiz_dir = directory / QUIZ_DIR / safe_filename(quiz["name"], f"quiz_{quiz['instanceid']}")
        manifests = [course_manifest]
        try:
            quiz_stats = create_repo(client, quiz_dir, "module", instanceid=quiz["instanceid"], ignorecat=ignorecat)
            manifests.append(Path(quiz_stats["manifest"]))
            stats["quizrepos"].append(quiz_stats["manifest"])
        except (QbankSyncError, httpx.HTTPError) as exc:
            logger.warning("No question repository for quiz '{}': {}", quiz["name"], exc)
        try:
            export_quiz(client, directory, manifests, quiz["instanceid"])
        except (QbankSyncError, httpx.HTTPError) as exc:
            logger.error("Failed to export structure of quiz '{}': {}", quiz["name"], exc)
    return stats


# ========================================
# Export / Tidy
# ========================================


def tidy_manifest(client: WebserviceClient, manifest: Manifest) -> list[ManifestEntry]:
    """Drop entries whose questions no longer exist on the site; return them."""
    if not manifest.questions:
        return []
    listing = _list(client, manifest, qbankentryids=[e.questionbankentryid for e in manifest.questions])
    present = {item["questionbankentryid"] for item in listing["questions"]}
    removed = [e for e in manifest.questions if e.questionbankentryid not in present]
    manifest.questions = [e for e in manifest.questions if e.questionbankentryid in present]
    for entry in removed:
        logger.info("Removed {} from manifest: question {} was deleted", entry.filepath, entry.questionbankentryid)
    return removed


def export_repo(client: WebserviceClient, path: Path) -> dict[str, Any]:
    """
    Refresh every file in a repository from the site.

    Questions added on the site since the last export are written as new
    files. The manifest is backed up before it is rewritten.
    """
    manifest = load_manifest(path)
    root = path.parent
    backup_manifest(path)
    stats = {"updated": 0, "added": 0, "removed": 0, "failed": 0}

    stats["removed"] = len(tidy_manifest(client, manifest))

    for entry in manifest.questions:
        try:
            result = client.export_question(entry.questionbankentryid)
        except WebserviceError as exc:
            stats["failed"] += 1
            logger.error("Failed to export {}: {}", entry.filepath, exc)
            continue
        target = root / entry.filepath.lstrip("/")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(result["question"], encoding="utf-8")
        entry.version = result["version"]
        entry.exportedversion = result["version"]
        entry.contenthash = content_hash(target)
        stats["updated"] += 1

    listing = _list(
        client, manifest, qcategoryname=manifest.context.qcategoryname, ignorecat=manifest.context.ignorecat
    )
    for item in listing["questions"]:
        if manifest.entry_for_id(item["questionbankentryid"]) is not None:
            continue
        try:
            entry = _export_new(client, root, manifest, item)
            stats["added"] += 1
            logger.info("Added {} to repository", entry.filepath)
        except QbankSyncError as exc:
            stats["failed"] += 1
            logger.error("Failed to export question {}: {}", item["questionbankentryid"], exc)

    save_manifest(manifest, path)
    return stats


# ========================================
# Import
# ========================================


def _file_category(directory: Path, root: Path) -> str:
    category_file = directory / CATEGORY_FILE
    if category_file.exists():
        category_path, _, _ = split_category(category_file.read_bytes(), str(category_file))
        if category_path:
            return category_path
    return join_category_path(list(directory.relative_to(root).parts))


def import_repo(client: WebserviceClient, path: Path) -> dict[str, Any]:
    """
    Push repository files to the site.

    Files already in the manifest become new versions of their question when
    their content changed since the last sync. Files not in the manifest are
    imported into the category their directory stands for and added to it.
    Directories holding only a category file create that category.
    """
    manifest = load_manifest(path)
    root = path.parent
    backup_manifest(path)
    level = ContextLevel.parse(manifest.context.contextlevel)
    stats: dict[str, Any] = {"updated": 0, "created": 0, "unchanged": 0, "categories": 0, "missing": [], "errors": []}

    for entry in manifest.questions:
        if not (root / entry.filepath.lstrip("/")).exists():
            stats["missing"].append(entry.filepath)
            logger.warning("File {} listed in manifest is missing", entry.filepath)

    top = root / "top"
    directories = sorted([top, *(p for p in top.rglob("*") if p.is_dir())]) if top.is_dir() else []
    for directory in directories:
        files = sorted(p for p in directory.glob("*.xml") if p.name != CATEGORY_FILE)
        category_file = directory / CATEGORY_FILE
        try:
            if not files and category_file.exists():
                filepath = client.upload_content(category_file.name, category_file.read_bytes())
                client.call("qbank_sync_import_question", filepath=filepath, **manifest.context.locator())
                stats["categories"] += 1
                continue
            for file in files:
                _import_file(client, root, manifest, level, file, stats)
        except (QbankSyncError, httpx.HTTPError) as exc:
            stats["errors"].append({"file": relative_path(root, directory), "message": str(exc)})
            logger.error("Failed to import {}: {}", directory, exc)

    save_manifest(manifest, path)
    return stats


def _import_file(
    client: WebserviceClient,
    root: Path,
    manifest: Manifest,
    level: ContextLevel,
    file: Path,
    stats: dict[str, Any],
) -> None:
    filepath = relative_path(root, file)
    digest = content_hash(file)
    entry = manifest.entry_for_path(filepath)
    if entry is not None and entry.contenthash == digest:
        stats["unchanged"] += 1
        return

    try:
        if entry is not None:
            _, _, question_xml = split_category(file.read_bytes(), filepath)
            uploaded = client.upload_content(file.name, question_xml.encode("utf-8"))
            result = client.call(
                "qbank_sync_import_question",
                **_clean({
                    "filepath": uploaded,
                    "questionbankentryid": entry.questionbankentryid,
                    "importedversion": entry.importedversion,
                    "exportedversion": entry.exportedversion,
                }),
            )
            stats["updated"] += 1
        else:
            category_path = _file_category(file.parent, root)
            payload = with_category(file.read_bytes(), category_path, level, filepath)
            uploaded = client.upload_content(file.name, payload.encode("utf-8"))
            result = client.call("qbank_sync_import_question", filepath=uploaded, **manifest.context.locator())
            if result["questionbankentryid"] is None:
                raise RepoError(f"No question found in {filepath}")
            entry = ManifestEntry(questionbankentryid=result["questionbankentryid"], filepath=filepath)
            manifest.questions.append(entry)
            stats["created"] += 1
    except (QbankSyncError, httpx.HTTPError) as exc:
        stats["errors"].append({"file": filepath, "message": str(exc)})
        logger.error("Failed to import {}: {}", filepath, exc)
        return

    entry.version = result["version"]
    entry.importedversion = result["version"]
    entry.contenthash = digest
    logger.info("Imported {} as version {}", filepath, result["version"])


# ========================================
# Quiz structures
# ========================================


def _manifest_files(manifest_paths: list[Path]) -> dict[str, str]:
    """Absolute question file path -> questionbankentryid across manifests."""
    files: dict[str, str] = {}
    for path in manifest_paths:
        manifest = load_manifest(path)
        for entry in manifest.questions:
            absolute = (path.parent / entry.filepath.lstrip("/")).resolve()
            files[str(absolute)] = entry.questionbankentryid
    return files


def export_quiz(
    client: WebserviceClient,
    directory: Path,
    manifest_paths: list[Path],
    moduleid: str | None = None,
    quizname: str | None = None,
    coursename: str | None = None,
) -> Path:
    """
    Write a quiz structure file with each slot naming its question file.

    Each slot's ``questionbankentryid`` is replaced by ``quizfilepath``, the
    question file relative to ``directory``.

    Raises:
        RepoError: a slot uses a question none of the manifests track
    """
    data = client.call(
        "qbank_sync_export_quiz_data",
        **_clean({"moduleid": moduleid, "quizname": quizname, "coursename": coursename}),
    )
    by_id = {qbeid: path for path, qbeid in _manifest_files(manifest_paths).items()}
    base = directory.resolve()
    for slot in data["questions"]:
        qbeid = slot.pop("questionbankentryid")
        if qbeid not in by_id:
            raise RepoError(
                f"Question {qbeid} in quiz '{data['quiz']['name']}' is not in any repository manifest",
                "Create or export a repository holding the question first",
            )
        slot["quizfilepath"] = Path(os.path.relpath(by_id[qbeid], base)).as_posix()

    target = directory / f"{safe_filename(data['quiz']['name'], 'quiz')}{QUIZ_SUFFIX}"
    target.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    logger.info("Exported quiz structure to {}", target)
    return target


def import_quiz(
    client: WebserviceClient,
    structure_path: Path,
    manifest_paths: list[Path],
    cmid: str | None = None,
    coursename: str | None = None,
    courseid: str | None = None,
) -> dict[str, Any]:
    """
    Import a quiz structure file written by export_quiz.

    Raises:
        RepoError: the file is unreadable or names a question file no
            manifest tracks
    """
    try:
        data = json.loads(structure_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise RepoError(f"Unable to read quiz structure: {structure_path}", str(exc)) from exc

    by_path = _manifest_files(manifest_paths)
    base = structure_path.parent.resolve()
    for slot in data.get("questions", []):
        quizfilepath = slot.pop("quizfilepath", None)
        if quizfilepath is None:
            continue
        qbeid = by_path.get(str((base / quizfilepath).resolve()))
        if qbeid is None:
            raise RepoError(f"Question file {quizfilepath} is not in any repository manifest")
        slot["questionbankentryid"] = qbeid

    data["quiz"].update(_clean({"cmid": cmid, "coursename": coursename, "courseid": courseid}))
    return client.import_quiz_data(data)
