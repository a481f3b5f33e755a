"""
Question repository manifest.

A repository is a directory holding one XML file per question under a
``top/...`` tree that mirrors the question categories, plus a JSON manifest
linking each file to its question bank entry on one site. The manifest also
records the last version exported to and imported from the site, which the
import side sends back for the version conflict check.
"""

from __future__ import annotations

import hashlib
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from qbank_sync.core.errors import RepoError

MANIFEST_SUFFIX = "_question_manifest.json"
CATEGORY_FILE = "qbank_category.xml"
QUIZ_SUFFIX = "_quiz.json"
BACKUP_DIR = "manifest_backups"

_UNSAFE_MANIFEST = re.compile(r"[^a-z0-9_]+")
_UNSAFE_FILENAME = re.compile(r"[^\w .-]+")


class ManifestContext(BaseModel):
    """The site and context a repository is bound to."""

    siteurl: str
    contextlevel: str
    coursecategory: Optional[str] = None
    coursename: Optional[str] = None
    modulename: Optional[str] = None
    instanceid: Optional[str] = None
    qcategoryname: str = "top"
    ignorecat: Optional[str] = None

    def locator(self) -> dict[str, str]:
        """Context parameters for webservice calls, without empty values."""
        fields = {
            "contextlevel": self.contextlevel,
            "coursecategory": self.coursecategory,
            "coursename": self.coursename,
            "modulename": self.modulename,
            "instanceid": self.instanceid,
        }
        return {key: value for key, value in fields.items() if value}


class ManifestEntry(BaseModel):
    """One question file and the entry it was exported from or imported to."""

    questionbankentryid: str
    filepath: str = Field(..., description="Path relative to the manifest directory, with a leading /")
    format: str = "xml"
    version: Optional[str] = None
    exportedversion: Optional[str] = None
    importedversion: Optional[str] = None
    contenthash: Optional[str] = None


class Manifest(BaseModel):
    context: ManifestContext
    questions: List[ManifestEntry] = Field(default_factory=list)

    def entry_for_id(self, questionbankentryid: str) -> ManifestEntry | None:
        for entry in self.questions:
            if entry.questionbankentryid == questionbankentryid:
                return entry
        return None

    def entry_for_path(self, filepath: str) -> ManifestEntry | None:
        for entry in self.questions:
            if entry.filepath == filepath:
                return entry
        return None


# ========================================
# Paths
# ========================================


def manifest_path(
    directory: Path,
    site: str,
    contextlevel: str,
    coursecategory: str | None = None,
    coursename: str | None = None,
    modulename: str | None = None,
) -> Path:
    """Manifest file name for one site and context inside ``directory``."""
    suffix = f"_{contextlevel}"
    if contextlevel == "coursecategory":
        suffix += f"_{(coursecategory or '')[:100]}"
    elif contextlevel == "course":
        suffix += f"_{(coursename or '')[:100]}"
    elif contextlevel == "module":
        suffix += f"_{(coursename or '')[:50]}_{(modulename or '')[:50]}"
    name = _UNSAFE_MANIFEST.sub("-", (site[:50] + suffix).lower())
    return directory / f"{name}{MANIFEST_SUFFIX}"


def safe_filename(name: str, default: str = "question") -> str:
    """A file or directory name for a question or category name."""
    cleaned = _UNSAFE_FILENAME.sub("_", name).strip(" .")[:100]
    return cleaned or default


def relative_path(root: Path, path: Path) -> str:
    """Manifest form of ``path``: relative to ``root``, '/'-separated, leading '/'."""
    return "/" + path.relative_to(root).as_posix()


def content_hash(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


# ========================================
# Load / Save
# ========================================


def load_manifest(path: Path) -> Manifest:
    """
    Read a manifest file.

    Raises:
        RepoError: the file is missing or is not a manifest
    """
    try:
        return Manifest.model_validate_json(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise RepoError(f"Manifest not found: {path}") from e
    except ValidationError as e:
        raise RepoError(f"Unable to parse manifest file: {path}", str(e)) from e


def save_manifest(manifest: Manifest, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(manifest.model_dump_json(indent=2) + "\n", encoding="utf-8")
    logger.debug("Saved manifest {} ({} questions)", path, len(manifest.questions))


def backup_manifest(path: Path) -> Path:
    """Copy the manifest into manifest_backups/ with a timestamp prefix."""
    backup_dir = path.parent / BACKUP_DIR
    backup_dir.mkdir(exist_ok=True)
    target = backup_dir / f"{datetime.now():%Y%m%d%H%M%S}_{path.name}"
    shutil.copy2(path, target)
    return target
