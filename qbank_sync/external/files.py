"""Upload area for question files sent ahead of an import call."""

from __future__ import annotations

import re
import uuid
from pathlib import Path

from loguru import logger

from qbank_sync.core.errors import ContentStoreError, SchemaError

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def store_upload(upload_dir: Path, filename: str, content: bytes) -> str:
    """
    Save ``content`` under a fresh draft directory.

    Returns:
        The path to pass as ``filepath`` to import_question, relative to
        the upload directory.
    """
    safe_name = _UNSAFE.sub("_", Path(filename or "upload.xml").name) or "upload.xml"
    draft = uuid.uuid4().hex
    target = upload_dir / draft / safe_name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    logger.debug("Stored upload {} ({} bytes)", target, len(content))
    return f"/{draft}/{safe_name}"


def resolve_upload(upload_dir: Path, filepath: str) -> Path:
    """Map a client-supplied ``filepath`` onto the upload directory."""
    root = upload_dir.resolve()
    candidate = (root / filepath.lstrip("/")).resolve()
    if not candidate.is_relative_to(root) or candidate == root:
        raise SchemaError(["filepath"], f"File path outside the upload area: {filepath}")
    if not candidate.is_file():
        raise ContentStoreError(f"Could not find uploaded file: {filepath}")
    return candidate


def discard_upload(path: Path, upload_dir: Path) -> None:
    """Remove an imported file and its draft directory when empty."""
    path.unlink(missing_ok=True)
    parent = path.parent
    if parent != upload_dir.resolve() and not any(parent.iterdir()):
        parent.rmdir()
