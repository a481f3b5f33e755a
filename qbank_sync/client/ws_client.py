"""
HTTP client for a qbank-sync webservice.

Wraps the REST entry point and the upload endpoint. Error payloads returned
by the service are raised as WebserviceError, keeping the remote errorcode
so callers can branch on it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from qbank_sync.core.errors import QbankSyncError


class WebserviceError(QbankSyncError):
    """An error payload returned by the remote service."""

    def __init__(
        self,
        exception: str,
        errorcode: str,
        message: str,
        debuginfo: str | None = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message, debuginfo)
        self.exception = exception
        self.errorcode = errorcode
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["exception"] = self.exception
        return payload


class WebserviceClient:
    """Synchronous client for one qbank-sync site."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Service root, e.g. http://127.0.0.1:8100
            token: Webservice token issued by ``qbank-sync token create``
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> WebserviceClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _handle(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise WebserviceError(
                "ContentStoreError", "invalidresponse", f"Non-JSON response from {response.url}",
                status_code=response.status_code,
            ) from None
        if response.is_error:
            if isinstance(data, dict) and "errorcode" in data:
                raise WebserviceError(
                    data.get("exception", "QbankSyncError"),
                    data["errorcode"],
                    data.get("message", ""),
                    data.get("debuginfo"),
                    response.status_code,
                )
            response.raise_for_status()
        return data

    def call(self, wsfunction: str, **params: Any) -> dict[str, Any]:
        """
        Call a webservice function.

        Raises:
            WebserviceError: the service rejected the call
            httpx.HTTPError: on communication failure
        """
        logger.debug(f"Calling {wsfunction} on {self.base_url}")
        response = self.client.post(f"/webservice/rest/{wsfunction}", json=params)
        return self._handle(response)

    def upload(self, path: Path) -> str:
        """Upload a file and return the filepath to import it from."""
        return self.upload_content(path.name, path.read_bytes())

    def upload_content(self, filename: str, content: bytes) -> str:
        """Upload file content under ``filename`` and return its import filepath."""
        response = self.client.post(
            "/webservice/upload",
            files={"file": (filename, content, "application/xml")},
        )
        return self._handle(response)["filepath"]

    def functions(self) -> list[dict[str, str]]:
        """List the functions the service exposes."""
        response = self.client.get("/webservice/functions")
        return self._handle(response)

    # ========================================
    # Convenience wrappers
    # ========================================

    def get_question_list(self, contextlevel: str, qcategoryname: str | None = None, **scope: Any) -> dict[str, Any]:
        return self.call("qbank_sync_get_question_list", contextlevel=contextlevel, qcategoryname=qcategoryname, **scope)

    def export_question(self, questionbankentryid: str, includecategory: bool = False) -> dict[str, Any]:
        return self.call(
            "qbank_sync_export_question",
            questionbankentryid=questionbankentryid,
            includecategory=includecategory,
        )

    def import_question(self, path: Path, **params: Any) -> dict[str, Any]:
        """Upload ``path`` and import it in one step."""
        filepath = self.upload(path)
        return self.call("qbank_sync_import_question", filepath=filepath, **params)

    def delete_question(self, questionbankentryid: str) -> dict[str, Any]:
        return self.call("qbank_sync_delete_question", questionbankentryid=questionbankentryid)

    def export_quiz_data(self, moduleid: str | None = None, **params: Any) -> dict[str, Any]:
        return self.call("qbank_sync_export_quiz_data", moduleid=moduleid, **params)

    def import_quiz_data(self, structure: dict[str, Any]) -> dict[str, Any]:
        return self.call("qbank_sync_import_quiz_data", **structure)
