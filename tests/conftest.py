"""Shared fixtures: fake HTTP session, settings and state store."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path

import pytest

from nextcloud_attachments.config import Settings
from nextcloud_attachments.state_store import StateStore
from nextcloud_attachments.status import StatusReporter

SERVER = "https://cloud.example.com"
DAV_ROOT = f"{SERVER}/remote.php/dav/files/alice"
FOLDER_URL = f"{DAV_ROOT}/Mail%20Attachments"
SHARE_URL = f"{SERVER}/ocs/v2.php/apps/files_sharing/api/v1/shares"
LOGIN_URL = f"{SERVER}/index.php/login/v2"
POLL_URL = f"{SERVER}/login/v2/poll"

REASONS = {200: "OK", 201: "Created", 207: "Multi-Status", 401: "Unauthorized",
           403: "Forbidden", 404: "Not Found", 405: "Method Not Allowed",
           500: "Internal Server Error", 507: "Insufficient Storage"}


def share_xml(url: str = f"{SERVER}/s/AbCdEf") -> str:
    return (
        '<?xml version="1.0"?>\n'
        "<ocs><meta><status>ok</status><statuscode>200</statuscode>"
        "<message>OK</message></meta>"
        f"<data><id>7</id><share_type>3</share_type><url>{url}</url>"
        "<token>AbCdEf</token></data></ocs>"
    )


def dav_error_xml(message: str = "Parent node does not exist") -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<d:error xmlns:d="DAV:" xmlns:s="http://sabredav.org/ns">'
        "<s:exception>Sabre\\DAV\\Exception\\Conflict</s:exception>"
        f"<s:message>{message}</s:message></d:error>"
    )


class FakeResponse:
    def __init__(self, status_code: int = 200, body: str | bytes = b"", reason: str | None = None):
        self.status_code = status_code
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.text = self.content.decode("utf-8", errors="replace")
        self.reason = reason if reason is not None else REASONS.get(status_code, "")


class FakeSession:
    """Route (method, url) to queued responses; unknown routes answer 404.

    The last queued response of a route is repeated once the queue drains.
    A queued exception instance is raised instead of returned.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list] = defaultdict(list)
        self.calls: list[dict] = []
        self.headers: dict[str, str] = {}

    def add(self, method: str, url: str, *responses) -> "FakeSession":
        self.routes[(method, url)].extend(responses)
        return self

    def request(self, method: str, url: str, **kwargs):
        data = kwargs.get("data")
        if hasattr(data, "read"):
            kwargs["data"] = data.read()
        self.calls.append({"method": method, "url": url, **kwargs})
        queue = self.routes.get((method, url))
        if not queue:
            return FakeResponse(404)
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def methods(self, method: str | None = None) -> list[tuple[str, str]]:
        return [
            (call["method"], call["url"])
            for call in self.calls
            if method is None or call["method"] == method
        ]


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        NEXTCLOUD_SERVER=SERVER,
        NEXTCLOUD_USERNAME_POLICY="stripdomain",
        NEXTCLOUD_STATE_DB=tmp_path / "state.db",
    )


@pytest.fixture
def store(settings: Settings) -> StateStore:
    return StateStore(settings.state_db)


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def reporter(events: list) -> StatusReporter:
    return StatusReporter(sink=events.append)


@pytest.fixture
def attachment(tmp_path: Path) -> Path:
    path = tmp_path / "upload-tmp"
    path.write_bytes(b"hello attachment\n")
    return path
