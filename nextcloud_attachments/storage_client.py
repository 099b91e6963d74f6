"""Nextcloud WebDAV + OCS share client."""

from __future__ import annotations

import logging
from http.cookiejar import DefaultCookiePolicy
from typing import IO, Any

import requests
from requests import Response

from .errors import ConnectionFailure, MalformedResponseError, StorageError
from .schemas import parse_error_document, parse_share
from .utils import quote_path

logger = logging.getLogger(__name__)

PUBLIC_LINK_SHARE = 3
DEFAULT_USER_AGENT = "Nextcloud Attachment Connector/1.0"


def build_session(user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    """HTTP session shared by all identities. It refuses every cookie."""
    session = requests.Session()
    session.headers["User-Agent"] = user_agent
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


class StorageClient:
    """Authenticated operations against one user's storage namespace."""

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.username = username
        self.auth = (username, password)
        self.session = session or build_session()
        self.timeout = timeout

    @property
    def dav_root(self) -> str:
        return f"{self.server}/remote.php/dav/files/{quote_path(self.username)}"

    def dav_url(self, path: str = "") -> str:
        encoded = quote_path(path)
        return f"{self.dav_root}/{encoded}" if encoded else self.dav_root

    @property
    def share_url(self) -> str:
        return f"{self.server}/ocs/v2.php/apps/files_sharing/api/v1/shares"

    def _request(self, method: str, url: str, **kwargs: Any) -> Response:
        try:
            return self.session.request(
                method, url, auth=self.auth, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            logger.exception("%s %s request failed for %s", method, url, self.username)
            raise ConnectionFailure(method, url, exc) from exc

    def _failure(self, response: Response, message: str, kind: str) -> StorageError:
        logger.error(
            "%s (%s) for %s: %s", message, response.status_code, self.username, response.text
        )
        return StorageError(
            f"{message}: {response.reason or response.status_code}",
            kind=kind,
            status_code=response.status_code,
            body=response.text,
            payload=parse_error_document(response.content),
        )

    def probe(self, path: str = "") -> bool:
        """Return True when ``path`` exists, False on 404."""
        response = self._request("PROPFIND", self.dav_url(path), headers={"Depth": "0"})
        if response.status_code in (200, 207):
            return True
        if response.status_code == 404:
            return False
        raise self._failure(response, f"PROPFIND {path or '/'} failed", kind="failed")

    def ensure_collection(self, path: str) -> None:
        response = self._request("MKCOL", self.dav_url(path))
        if response.status_code != 201:
            raise self._failure(response, f"MKCOL {path} failed", kind="mkdir_error")
        logger.info("Created folder '%s' for %s", path, self.username)

    def put(self, path: str, content: IO[bytes] | bytes) -> None:
        response = self._request("PUT", self.dav_url(path), data=content)
        if response.status_code not in (200, 201):
            raise self._failure(response, f"PUT {path} failed", kind="upload_error")
        logger.info("Uploaded '%s' for %s", path, self.username)

    def create_share(self, path: str) -> str:
        """Create a public, read-only link for ``path`` and return its URL."""
        response = self._request(
            "POST",
            self.share_url,
            headers={"OCS-APIRequest": "true"},
            data={
                "path": path,
                "shareType": PUBLIC_LINK_SHARE,
                "publicUpload": "false",
            },
        )
        if response.status_code != 200:
            raise self._failure(response, f"Share creation for {path} failed", kind="link_error")
        try:
            share = parse_share(response.content)
        except ValueError as exc:
            logger.error("Unexpected share response for %s: %s", path, response.text)
            raise MalformedResponseError(
                self.share_url,
                kind="link_error",
                status_code=response.status_code,
                body=response.text,
                cause=exc,
            ) from exc
        return share.url
