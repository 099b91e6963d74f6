"""Error hierarchy for calls against the storage server."""

from __future__ import annotations

from typing import Any


class StorageError(Exception):
    """A remote call did not produce the status the caller needs.

    ``kind`` names the failure in the connector's status vocabulary,
    ``status_code`` and ``body`` keep the raw server answer for logs and
    ``payload`` holds the decoded error document when there is one.
    """

    def __init__(
        self,
        message: str,
        kind: str = "failed",
        status_code: int | None = None,
        body: str | None = None,
        payload: Any = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.body = body
        self.payload = payload
        self.cause = cause
        self.__cause__ = cause


class ConnectionFailure(StorageError):
    """Transport-level failure, the server never answered."""

    def __init__(self, method: str, url: str, cause: Exception) -> None:
        super().__init__(
            f"{method} {url} failed: {cause}", kind="connection_error", cause=cause
        )
        self.method = method
        self.url = url


class MalformedResponseError(StorageError):
    """The server answered with a body that does not match the expected schema."""

    def __init__(
        self,
        endpoint: str,
        kind: str,
        status_code: int | None = None,
        body: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            f"Malformed response from {endpoint}",
            kind=kind,
            status_code=status_code,
            body=body,
            cause=cause,
        )
        self.endpoint = endpoint
