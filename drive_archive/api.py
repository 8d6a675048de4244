"""API client for Google Drive (v3 REST)."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

import httpx

from .auth import GoogleCredentialsAuth
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveBadRequestError,
    DriveNetworkError,
    DriveNotFoundError,
    DriveNotImplementedError,
    DrivePermissionError,
    DriveRateLimitError,
)
from .models import RECORD_FIELDS, Record
from .retry import retry
from .utils import DEFAULT_INITIAL_BACKOFF, DEFAULT_MAX_TRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"

# Error reason Drive uses when a document is too large for files.export
REASON_EXPORT_SIZE_LIMIT = "exportSizeLimitExceeded"

_STATUS_ERRORS: dict[int, type[DriveAPIError]] = {
    400: DriveBadRequestError,
    401: DriveAuthenticationError,
    403: DrivePermissionError,
    404: DriveNotFoundError,
    429: DriveRateLimitError,
    501: DriveNotImplementedError,
}


def error_from_response(response: httpx.Response) -> DriveAPIError:
    """Build the matching DriveAPIError for a failed response.

    Google APIs report errors as
    ``{"error": {"code": ..., "message": ..., "errors": [{"reason": ...}]}}``;
    the reasons are kept so callers can tell rate limiting from other 403s.
    The response body must already be read.
    """
    status_code = response.status_code
    error_msg = f"API request failed with status {status_code}"
    reasons: list[str] = []

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        error = data["error"]
        if error.get("message"):
            error_msg = f"{error_msg}: {error['message']}"
        for item in error.get("errors") or []:
            if isinstance(item, dict) and item.get("reason"):
                reasons.append(item["reason"])

    error_class = _STATUS_ERRORS.get(status_code, DriveAPIError)
    return error_class(error_msg, status_code=status_code, reasons=reasons)


class DriveClient:
    """Client for the parts of the Drive API needed to archive an account.

    Listing calls retry on their own. The ``open_*`` methods make a single
    attempt so that callers can wrap them in their own retry policy.
    """

    def __init__(
        self,
        credentials: Any = None,
        api_url: str = DRIVE_API_URL,
        timeout: float = 60.0,
        initial_delay: float = DEFAULT_INITIAL_BACKOFF,
        max_tries: int = DEFAULT_MAX_TRIES,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize Drive API client.

        Args:
            credentials: google-auth credentials (None sends no auth header)
            api_url: Base URL of the Drive v3 API
            timeout: Request timeout in seconds (default: 60.0)
            initial_delay: Initial delay between retries in seconds
            max_tries: Attempts per call (1 disables retries, <= 0 is unlimited)
            transport: Optional httpx transport (used by tests)
        """
        self.credentials = credentials
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.initial_delay = initial_delay
        self.max_tries = max_tries
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                auth=(
                    GoogleCredentialsAuth(self.credentials)
                    if self.credentials is not None
                    else None
                ),
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> DriveClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def retry(self, func: Callable[[], T]) -> T:
        """Run ``func`` with this client's backoff settings."""
        return retry(func, self.initial_delay, self.max_tries)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Send one request and raise the mapped exception on failure.

        Args:
            method: HTTP method
            endpoint: API endpoint path or absolute URL
            params: Query parameters
            stream: Leave the body unread (caller must close the response)

        Returns:
            The successful response

        Raises:
            DriveAPIError: On an error status
            DriveNetworkError: On connection failures
        """
        client = self._get_client()
        request = client.build_request(method, self._url(endpoint), params=params)
        logger.debug("%s %s", method, request.url)

        try:
            response = client.send(request, stream=stream)
        except httpx.TransportError as e:
            raise DriveNetworkError(f"Network error: {e}") from e

        if response.is_error:
            try:
                response.read()
                raise error_from_response(response)
            finally:
                response.close()

        return response

    def _request_json(
        self, method: str, endpoint: str, params: Optional[dict[str, Any]] = None
    ) -> Any:
        def _do_request() -> Any:
            response = self._send(method, endpoint, params=params)
            try:
                return response.json()
            except ValueError as e:
                raise DriveAPIError(
                    "Invalid JSON response from server",
                    status_code=response.status_code,
                ) from e

        return self.retry(_do_request)

    def get_root_id(self) -> str:
        """Return the folder id of the user's "My Drive"."""
        data = self._request_json("GET", "files/root", params={"fields": "id"})
        return data["id"]

    def list_records(self, page_size: int = 1000) -> list[Record]:
        """List every file visible to the user, following pagination.

        Args:
            page_size: Records per page (API maximum is 1000)

        Returns:
            All records, in API order
        """
        fields = ",".join(
            ["nextPageToken", *(f"files/{field}" for field in RECORD_FIELDS)]
        )
        params: dict[str, Any] = {
            "corpora": "user",
            "spaces": "drive",
            "pageSize": page_size,
            "fields": fields,
        }

        records: list[Record] = []
        page = 0
        while True:
            data = self._request_json("GET", "files", params=params)
            page += 1
            records.extend(Record.from_api_response(f) for f in data.get("files", []))
            logger.debug("Listed page %d, %d records so far", page, len(records))

            next_token = data.get("nextPageToken")
            if not next_token:
                return records
            params["pageToken"] = next_token

    def open_export(self, file_id: str, mime_type: str) -> httpx.Response:
        """Start a streamed export of a Google document as ``mime_type``."""
        return self._send(
            "GET", f"files/{file_id}/export", params={"mimeType": mime_type}, stream=True
        )

    def open_download(self, file_id: str) -> httpx.Response:
        """Start a streamed download of a file's raw content."""
        return self._send(
            "GET", f"files/{file_id}", params={"alt": "media"}, stream=True
        )

    def open_url(self, url: str) -> httpx.Response:
        """Start a streamed download of an absolute URL (e.g. an export link)."""
        return self._send("GET", url, stream=True)
