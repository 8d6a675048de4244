"""Service account authentication for the Drive API."""

from __future__ import annotations

import threading
from collections.abc import Generator
from pathlib import Path
from typing import Any, Callable, Union

import httpx
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from .exceptions import DriveAuthenticationError, DriveConfigError

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/drive.metadata",
]


def load_credentials(
    auth_file: Union[str, Path], user: str
) -> service_account.Credentials:
    """Load service account credentials impersonating ``user``.

    To create the JSON file:

    * Create or open a project at https://console.cloud.google.com
    * Create a service account under IAM & Admin -> Service Accounts
    * Add a JSON key to the service account
    * Grant the key's client_id domain-wide delegation for the
      ``drive`` and ``drive.metadata`` scopes

    Args:
        auth_file: Path to the service account JSON key file
        user: Email of the user whose drive is archived

    Returns:
        Delegated credentials (not yet refreshed)

    Raises:
        DriveConfigError: If the key file cannot be read or parsed
    """
    try:
        return service_account.Credentials.from_service_account_file(
            str(auth_file), scopes=SCOPES, subject=user
        )
    except (OSError, ValueError) as e:
        raise DriveConfigError(f"could not read config {auth_file}: {e}") from e


class GoogleCredentialsAuth(httpx.Auth):
    """httpx auth flow that sends a (refreshed as needed) OAuth bearer token.

    Worker threads share one client, so refreshing is serialized.
    """

    def __init__(
        self,
        credentials: Any,
        request_factory: Callable[[], Any] = Request,
    ):
        self.credentials = credentials
        self._request_factory = request_factory
        self._lock = threading.Lock()

    def _token(self) -> str:
        with self._lock:
            if not self.credentials.valid:
                try:
                    self.credentials.refresh(self._request_factory())
                except RefreshError as e:
                    raise DriveAuthenticationError(
                        f"could not refresh access token: {e}", status_code=401
                    ) from e
            return self.credentials.token

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token()}"
        yield request
