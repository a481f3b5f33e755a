"""
Webservice router.

One REST entry point dispatches every registered function by name, plus the
upload endpoint that stages question files for import_question.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, Body, Depends, File, Header, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config import get_settings
from qbank_sync.core.access import AccessGuard
from qbank_sync.core.errors import InvalidTokenError
from qbank_sync.db.database import get_session
from qbank_sync.external import CallContext, call, describe_functions
from qbank_sync.external.files import store_upload
from qbank_sync.store import SqlAuthorization, SqlContentStore, user_for_token

router = APIRouter()


# ========================================
# Dependencies
# ========================================


def get_upload_dir() -> Path:
    """Directory holding staged uploads."""
    return Path(get_settings().upload_dir)


def get_caller(
    authorization: str | None = Header(None),
    session: Session = Depends(get_session),
) -> int:
    """Resolve the bearer token to the calling user id."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError("Invalid token - token not found")
    userid = user_for_token(session, token.strip())
    if userid is None:
        raise InvalidTokenError("Invalid token - token not found")
    return userid


# ========================================
# Response Models
# ========================================


class UploadResponse(BaseModel):
    """Response model for a staged upload."""

    filepath: str
    filename: str
    filesize: int


class FunctionInfo(BaseModel):
    name: str
    description: str
    type: str
    capability: str


# ========================================
# Endpoints
# ========================================


@router.get("/functions", response_model=list[FunctionInfo])
def list_functions() -> list[dict[str, str]]:
    """List the registered webservice functions."""
    return describe_functions()


@router.post("/rest/{wsfunction}")
def call_function(
    wsfunction: str,
    params: dict[str, Any] | None = Body(None),
    userid: int = Depends(get_caller),
    session: Session = Depends(get_session),
    upload_dir: Path = Depends(get_upload_dir),
) -> dict[str, Any]:
    """
    Run one webservice function as the calling user.

    The request session is committed when the function returns and rolled
    back when it raises.
    """
    store = SqlContentStore(session, userid)
    guard = AccessGuard(store, SqlAuthorization(session, userid))
    return call(wsfunction, params or {}, CallContext(store=store, guard=guard, upload_dir=upload_dir))


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    userid: int = Depends(get_caller),
    upload_dir: Path = Depends(get_upload_dir),
) -> UploadResponse:
    """Stage a question file and return the filepath to import it from."""
    content = await file.read()
    filepath = store_upload(upload_dir, file.filename or "upload.xml", content)
    return UploadResponse(filepath=filepath, filename=Path(filepath).name, filesize=len(content))
