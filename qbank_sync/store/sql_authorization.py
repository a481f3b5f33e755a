"""
SQLAlchemy implementation of AuthorizationPort plus token handling.

A grant made in a context applies to that context and every context below
it, so a grant at system level covers the whole site.
"""

from __future__ import annotations

import secrets
from datetime import datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from qbank_sync.core.access import capability_name
from qbank_sync.core.ports import Scope
from qbank_sync.db.models import CapabilityGrant, Context, WebserviceToken


class SqlAuthorization:
    """Capability checks for one user against the capability_grants table."""

    def __init__(self, session: Session, userid: int) -> None:
        self.session = session
        self.userid = userid

    def _context_chain(self, contextid: int) -> list[int]:
        chain: list[int] = []
        current: int | None = contextid
        while current is not None and current not in chain:
            chain.append(current)
            context = self.session.get(Context, current)
            current = context.parent_id if context else None
        return chain

    def has_capability(self, scope: Scope, capability: str) -> bool:
        grant = self.session.scalars(
            select(CapabilityGrant).where(
                CapabilityGrant.userid == self.userid,
                CapabilityGrant.capability == capability,
                CapabilityGrant.contextid.in_(self._context_chain(scope.contextid)),
            )
        ).first()
        return grant is not None


def grant_capability(session: Session, userid: int, contextid: int, capability: str) -> CapabilityGrant:
    """Grant ``capability`` to ``userid`` in ``contextid`` (idempotent)."""
    full_name = capability_name(capability)
    existing = session.scalars(
        select(CapabilityGrant).where(
            CapabilityGrant.userid == userid,
            CapabilityGrant.contextid == contextid,
            CapabilityGrant.capability == full_name,
        )
    ).first()
    if existing is not None:
        return existing
    grant = CapabilityGrant(userid=userid, contextid=contextid, capability=full_name)
    session.add(grant)
    session.flush()
    logger.info("Granted {} to user {} in context {}", full_name, userid, contextid)
    return grant


def create_token(session: Session, userid: int) -> str:
    """Issue a new webservice token for ``userid``."""
    token = secrets.token_hex(16)
    session.add(WebserviceToken(token=token, userid=userid))
    session.flush()
    return token


def user_for_token(session: Session, token: str) -> int | None:
    """Resolve a bearer token to its user id, stamping last access."""
    record = session.scalars(select(WebserviceToken).where(WebserviceToken.token == token)).first()
    if record is None:
        return None
    record.lastaccess = datetime.now()
    return record.userid
