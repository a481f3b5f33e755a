"""
Access guard: scope resolution and capability checks.

Every handler calls ``resolve_scope`` then ``require_capability`` before it
touches content, so a refused call never leaves a partial write behind.
"""

from __future__ import annotations

from loguru import logger

from qbank_sync.core.errors import PermissionDeniedError, ScopeNotFoundError
from qbank_sync.core.ports import (
    AuthorizationPort,
    ContentStorePort,
    ContextLevel,
    Scope,
    ScopeLocator,
)

# Capability names, prefixed the way the host names plugin capabilities
CAPABILITY_PREFIX = "qbank/sync:"
LIST_QUESTIONS = "listquestions"
EXPORT_QUESTIONS = "exportquestions"
IMPORT_QUESTIONS = "importquestions"
DELETE_QUESTIONS = "deletequestions"
USE_QUESTIONS = "usequestions"

ALL_CAPABILITIES = (
    LIST_QUESTIONS,
    EXPORT_QUESTIONS,
    IMPORT_QUESTIONS,
    DELETE_QUESTIONS,
    USE_QUESTIONS,
)


def capability_name(short_name: str) -> str:
    """Fully qualified capability name, e.g. ``qbank/sync:listquestions``."""
    if short_name.startswith(CAPABILITY_PREFIX):
        return short_name
    return f"{CAPABILITY_PREFIX}{short_name}"


class AccessGuard:
    """Resolves scope locators and enforces capabilities for one caller."""

    def __init__(self, store: ContentStorePort, authorization: AuthorizationPort) -> None:
        self.store = store
        self.authorization = authorization

    def resolve_scope(self, locator: ScopeLocator) -> Scope:
        """
        Resolve a locator to exactly one scope.

        Raises:
            ScopeNotFoundError: zero matches, several matches, or missing names
        """
        level = locator.level
        if level == ContextLevel.SYSTEM:
            return self.store.system_scope()

        if level == ContextLevel.COURSECATEGORY:
            if locator.instanceid is None and not locator.coursecategory:
                raise ScopeNotFoundError("Course category name or id required for course category context")
            matches = self.store.course_category_scopes(locator.coursecategory, locator.instanceid)
            target = locator.instanceid or locator.coursecategory
        elif level == ContextLevel.COURSE:
            if locator.instanceid is None and not locator.coursename:
                raise ScopeNotFoundError("Course name or id required for course context")
            matches = self.store.course_scopes(locator.coursename, locator.instanceid)
            target = locator.instanceid or locator.coursename
        elif level == ContextLevel.MODULE:
            if locator.instanceid is None and not (locator.coursename and locator.modulename):
                raise ScopeNotFoundError("Course and module names or module id required for module context")
            matches = self.store.module_scopes(locator.coursename, locator.modulename, locator.instanceid)
            target = locator.instanceid or f"{locator.coursename}/{locator.modulename}"
        else:
            raise ScopeNotFoundError(f"The context level is invalid: {level}")

        if not matches:
            raise ScopeNotFoundError(f"Context not found: {level.name.lower()} {target}")
        if len(matches) > 1:
            raise ScopeNotFoundError(
                f"Context is ambiguous: {level.name.lower()} {target} matches {len(matches)} instances"
            )
        return matches[0]

    def require_capability(self, scope: Scope, capability: str) -> None:
        """Raise PermissionDeniedError unless the caller holds ``capability`` at ``scope``."""
        full_name = capability_name(capability)
        if not self.authorization.has_capability(scope, full_name):
            logger.warning("Capability {} denied in context {}", full_name, scope.contextid)
            raise PermissionDeniedError(full_name, scope.label)

    def check(self, locator: ScopeLocator, capability: str) -> Scope:
        """Resolve ``locator`` and require ``capability`` there in one step."""
        scope = self.resolve_scope(locator)
        self.require_capability(scope, capability)
        return scope
