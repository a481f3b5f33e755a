"""
Unit tests for the webservice HTTP client.
"""

import json

import httpx
import pytest

from qbank_sync.client import WebserviceClient, WebserviceError


def _client(handler) -> WebserviceClient:
    return WebserviceClient("http://qbank.test/", "secret", transport=httpx.MockTransport(handler))


class TestWebserviceClient:
    def test_call_posts_json_with_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        with _client(handler) as client:
            result = client.delete_question("42")

        assert result == {"success": True}
        assert seen["url"] == "http://qbank.test/webservice/rest/qbank_sync_delete_question"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {"questionbankentryid": "42"}

    def test_error_payload_raises_webservice_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404,
                json={
                    "exception": "QuestionNotFoundError",
                    "errorcode": "noquestionerror",
                    "message": "Question does not exist. Questionbankentryid: 42",
                },
            )

        with _client(handler) as client:
            with pytest.raises(WebserviceError) as exc_info:
                client.export_question("42")

        error = exc_info.value
        assert error.errorcode == "noquestionerror"
        assert error.status_code == 404
        assert error.exception == "QuestionNotFoundError"
        assert error.to_dict()["exception"] == "QuestionNotFoundError"

    def test_non_json_error_raises_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad gateway")

        with _client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                client.functions()

    def test_import_uploads_then_calls(self, tmp_path):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            if request.url.path == "/webservice/upload":
                assert b"<quiz/>" in request.content
                return httpx.Response(200, json={"filepath": "/abc/q.xml", "filename": "q.xml", "filesize": 7})
            body = json.loads(request.content)
            assert body["filepath"] == "/abc/q.xml"
            assert body["questionbankentryid"] == "7"
            return httpx.Response(200, json={"questionbankentryid": "7", "version": "2"})

        path = tmp_path / "q.xml"
        path.write_text("<quiz/>")
        with _client(handler) as client:
            result = client.import_question(path, questionbankentryid="7", importedversion="1")

        assert calls == ["/webservice/upload", "/webservice/rest/qbank_sync_import_question"]
        assert result["version"] == "2"
