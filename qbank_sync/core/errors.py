"""
Error taxonomy for the qbank-sync webservice boundary.

Every failure a remote caller can see derives from QbankSyncError. Each class
carries a stable ``errorcode`` (returned on the wire) and the HTTP status the
transport maps it to.
"""

from __future__ import annotations

from typing import Any


class QbankSyncError(Exception):
    """Base class for all errors surfaced to webservice callers."""

    errorcode = "qbanksyncerror"
    status_code = 500

    def __init__(self, message: str, debuginfo: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.debuginfo = debuginfo

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error payload returned by the API."""
        payload: dict[str, Any] = {
            "exception": type(self).__name__,
            "errorcode": self.errorcode,
            "message": self.message,
        }
        if self.debuginfo:
            payload["debuginfo"] = self.debuginfo
        return payload


class SchemaError(QbankSyncError):
    """Malformed or missing call parameters."""

    errorcode = "invalidparameter"
    status_code = 400

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = fields
        super().__init__(message or f"Invalid parameter value detected: {', '.join(fields)}")


class InvalidTokenError(QbankSyncError):
    """Missing, malformed or unknown webservice token."""

    errorcode = "invalidtoken"
    status_code = 401


class ScopeNotFoundError(QbankSyncError):
    """The requested context could not be resolved to exactly one scope."""

    errorcode = "contexterror"
    status_code = 404


class CategoryNotFoundError(QbankSyncError):
    """A question category path or id did not resolve."""

    errorcode = "categoryerror"
    status_code = 404

    def __init__(self, category: str, message: str | None = None) -> None:
        self.category = category
        super().__init__(message or f"Problem with question category: {category}")


class PermissionDeniedError(QbankSyncError):
    """The caller lacks the capability required at the target scope."""

    errorcode = "nopermissions"
    status_code = 403

    def __init__(self, capability: str, scope_label: str) -> None:
        self.capability = capability
        super().__init__(
            f"Sorry, but you do not currently have permissions to do that ({capability}) in {scope_label}"
        )


class QuestionNotFoundError(QbankSyncError):
    """A question bank entry id does not exist."""

    errorcode = "noquestionerror"
    status_code = 404

    def __init__(self, questionbankentryid: int | str) -> None:
        self.questionbankentryid = str(questionbankentryid)
        super().__init__(f"Question does not exist. Questionbankentryid: {questionbankentryid}")


class VersionConflictError(QbankSyncError):
    """The stored question moved on since the caller last synced it."""

    errorcode = "importversionerror"
    status_code = 409

    def __init__(
        self,
        name: str,
        current_version: int,
        imported_version: str | None,
        exported_version: str | None,
    ) -> None:
        super().__init__(
            f"Could not import question : {name} Current version is {current_version}. "
            f"Last imported version is {imported_version}. "
            f"Last exported version is {exported_version}. You need to export the question."
        )


class ContentStoreError(QbankSyncError):
    """Wrapped failure from the content store or the file system."""

    errorcode = "contentstoreerror"
    status_code = 500


class ImportFormatError(ContentStoreError):
    """The uploaded question file could not be parsed."""

    errorcode = "importerror"
    status_code = 422


class RepoError(QbankSyncError):
    """A local question repository or its manifest is unusable."""

    errorcode = "repoerror"
    status_code = 400
