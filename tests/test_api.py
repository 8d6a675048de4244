"""Unit tests for the Drive API client."""

import json
from unittest.mock import Mock

import httpx
import pytest

from drive_archive.api import DriveClient, error_from_response
from drive_archive.exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
)


def google_error(status_code: int, message: str, *reasons: str) -> httpx.Response:
    """Build a response with a Google API error body."""
    return httpx.Response(
        status_code,
        json={
            "error": {
                "code": status_code,
                "message": message,
                "errors": [{"reason": r, "message": message} for r in reasons],
            }
        },
    )


def make_client(handler, **kwargs) -> DriveClient:
    """Create a client whose requests are answered by ``handler``."""
    kwargs.setdefault("initial_delay", 0)
    kwargs.setdefault("max_tries", 3)
    return DriveClient(transport=httpx.MockTransport(handler), **kwargs)


class TestDriveClient:
    """Tests for DriveClient initialization and basic functionality."""

    def test_default_api_url(self):
        client = DriveClient()
        assert client.api_url == "https://www.googleapis.com/drive/v3"

    def test_custom_api_url_strips_slash(self):
        client = DriveClient(api_url="https://drive.example/v3/")
        assert client.api_url == "https://drive.example/v3"

    def test_close_resets_client(self):
        client = make_client(lambda request: httpx.Response(200, json={"id": "r"}))
        client.get_root_id()
        assert client._client is not None

        client.close()

        assert client._client is None

    def test_context_manager_closes(self):
        with make_client(lambda request: httpx.Response(200, json={"id": "r"})) as client:
            client.get_root_id()
        assert client._client is None

    def test_sends_bearer_token(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"id": "root123"})

        credentials = Mock(valid=True, token="secret-token")
        client = make_client(handler, credentials=credentials)

        client.get_root_id()

        assert seen == ["Bearer secret-token"]
        credentials.refresh.assert_not_called()

    def test_refreshes_expired_credentials(self):
        credentials = Mock(valid=False, token="fresh")
        client = make_client(
            lambda request: httpx.Response(200, json={"id": "r"}), credentials=credentials
        )

        client.get_root_id()

        credentials.refresh.assert_called_once()


class TestListing:
    """Tests for get_root_id and list_records."""

    def test_get_root_id(self):
        def handler(request):
            assert request.url.path == "/drive/v3/files/root"
            assert request.url.params["fields"] == "id"
            return httpx.Response(200, json={"id": "0AbCdEf"})

        assert make_client(handler).get_root_id() == "0AbCdEf"

    def test_list_records_follows_pages(self):
        requests = []
        pages = {
            None: {
                "nextPageToken": "page2",
                "files": [
                    {
                        "id": "1",
                        "name": "a.txt",
                        "mimeType": "text/plain",
                        "parents": ["root"],
                        "md5Checksum": "abc",
                        "modifiedTime": "2024-01-15T10:30:00.000Z",
                    }
                ],
            },
            "page2": {
                "files": [
                    {
                        "id": "2",
                        "name": "link",
                        "mimeType": "application/vnd.google-apps.shortcut",
                        "shortcutDetails": {"targetId": "1"},
                    }
                ]
            },
        }

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=pages[request.url.params.get("pageToken")])

        records = make_client(handler).list_records()

        assert [r.id for r in records] == ["1", "2"]
        assert records[0].md5_checksum == "abc"
        assert records[0].parents == ["root"]
        assert records[1].shortcut_target_id == "1"
        assert records[1].parents == []
        assert len(requests) == 2

        params = requests[0].url.params
        assert params["corpora"] == "user"
        assert params["spaces"] == "drive"
        assert params["pageSize"] == "1000"
        assert "files/shortcutDetails/targetId" in params["fields"]
        assert "files/exportLinks" in params["fields"]
        assert requests[1].url.params["pageToken"] == "page2"

    def test_list_retries_rate_limit(self):
        responses = [
            google_error(403, "Rate Limit Exceeded", "rateLimitExceeded"),
            httpx.Response(200, json={"files": []}),
        ]

        client = make_client(lambda request: responses.pop(0))

        assert client.list_records() == []
        assert responses == []

    def test_list_does_not_retry_unauthorized(self):
        calls = []

        def handler(request):
            calls.append(request)
            return google_error(401, "Invalid Credentials", "authError")

        with pytest.raises(DriveAuthenticationError):
            make_client(handler).list_records()

        assert len(calls) == 1

    def test_invalid_json_raises(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"), max_tries=1)

        with pytest.raises(DriveAPIError, match="Invalid JSON"):
            client.get_root_id()


class TestStreaming:
    """Tests for the open_* methods."""

    def test_open_download(self):
        def handler(request):
            assert request.url.path == "/drive/v3/files/abc"
            assert request.url.params["alt"] == "media"
            return httpx.Response(200, content=b"file content")

        response = make_client(handler).open_download("abc")
        try:
            assert b"".join(response.iter_bytes()) == b"file content"
        finally:
            response.close()

    def test_open_export(self):
        def handler(request):
            assert request.url.path == "/drive/v3/files/doc/export"
            assert request.url.params["mimeType"] == "text/plain"
            return httpx.Response(200, content=b"exported")

        response = make_client(handler).open_export("doc", "text/plain")
        try:
            assert response.read() == b"exported"
        finally:
            response.close()

    def test_open_url_uses_absolute_url(self):
        def handler(request):
            assert str(request.url) == "https://docs.example/export?id=1&format=docx"
            return httpx.Response(200, content=b"big")

        response = make_client(handler).open_url("https://docs.example/export?id=1&format=docx")
        try:
            assert response.read() == b"big"
        finally:
            response.close()

    def test_open_makes_single_attempt(self):
        calls = []

        def handler(request):
            calls.append(request)
            return google_error(500, "Backend Error", "backendError")

        with pytest.raises(DriveAPIError) as exc_info:
            make_client(handler).open_download("abc")

        assert exc_info.value.status_code == 500
        assert len(calls) == 1

    def test_transport_error_becomes_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DriveNetworkError, match="connection refused"):
            make_client(handler).open_download("abc")


class TestErrorFromResponse:
    """Tests for mapping error responses onto exceptions."""

    def test_not_found(self):
        error = error_from_response(google_error(404, "File not found: abc.", "notFound"))

        assert isinstance(error, DriveNotFoundError)
        assert error.status_code == 404
        assert error.reasons == ("notFound",)
        assert "File not found" in str(error)

    def test_forbidden_keeps_reasons(self):
        error = error_from_response(
            google_error(403, "too large", "exportSizeLimitExceeded")
        )

        assert isinstance(error, DrivePermissionError)
        assert error.has_reason("exportSizeLimitExceeded")

    def test_too_many_requests(self):
        error = error_from_response(google_error(429, "slow down"))

        assert isinstance(error, DriveRateLimitError)

    def test_non_json_body(self):
        error = error_from_response(httpx.Response(502, content=b"Bad Gateway"))

        assert type(error) is DriveAPIError
        assert error.status_code == 502
        assert error.reasons == ()
        assert str(error) == "API request failed with status 502"

    def test_unexpected_json_body(self):
        error = error_from_response(httpx.Response(500, content=json.dumps(["x"]).encode()))

        assert str(error) == "API request failed with status 500"
