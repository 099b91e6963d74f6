"""Delegated login (Nextcloud Login Flow v2) and login checks."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import requests

from .config import Settings
from .credentials import select_login
from .errors import StorageError
from .models import Login, LoginSession, StorageCredential
from .schemas import LoginInitResponse, PollResponse, parse_json
from .state_store import IdentityStore
from .status import Event, Status, StatusReporter
from .storage_client import StorageClient, build_session

logger = logging.getLogger(__name__)


class LoginState(str, Enum):
    IDLE = "idle"
    INITIATING = "initiating"
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"


_PROBE_STATUS = {
    401: Status.LOGIN_REQUIRED,
    404: Status.INVALID_USER,
}


class LoginFlowController:
    """Drive the browser login handshake across independent requests.

    The only state kept between calls is the ``LoginSession`` in the store;
    polling is triggered by the caller, never by a timer.
    """

    def __init__(
        self,
        settings: Settings,
        store: IdentityStore,
        reporter: StatusReporter,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.reporter = reporter
        self.session = session or build_session(settings.user_agent)

    def state(self, identity: str) -> LoginState:
        if self.store.get_session(identity) is not None:
            return LoginState.PENDING
        return LoginState.IDLE

    def initiate(self, identity: str) -> Event:
        """Start a login flow and report the URL the user has to open."""
        server = self.settings.nextcloud_server
        if not server:
            return self.reporter.login_started(Status.NO_CONFIG)

        url = f"{server}/index.php/login/v2"
        logger.debug("%s: %s", identity, LoginState.INITIATING.value)
        try:
            response = self.session.post(url, timeout=self.settings.http_timeout)
        except requests.RequestException as exc:
            logger.exception("%s login request failed", identity)
            return self.reporter.login_started(Status.FAILED, message=str(exc))

        if response.status_code != 200:
            logger.error(
                "%s login request failed (%s): %s", identity, response.status_code, response.text
            )
            return self.reporter.login_started(
                Status.FAILED,
                code=response.status_code,
                message=response.reason,
                payload=response.text,
            )

        try:
            data = parse_json(response.content, LoginInitResponse)
        except ValueError as exc:
            logger.error("%s malformed login response: %s (%s)", identity, response.text, exc)
            return self.reporter.login_started(Status.FAILED, message="malformed response")

        self.store.set_session(
            identity, LoginSession(poll_endpoint=data.poll.endpoint, poll_token=data.poll.token)
        )
        logger.info("%s started login flow", identity)
        return self.reporter.login_started(Status.OK, url=data.login)

    def poll(self, identity: str) -> LoginState:
        """Check once whether the browser login finished."""
        pending = self.store.get_session(identity)
        if pending is None:
            return LoginState.IDLE

        try:
            response = self.session.post(
                pending.poll_endpoint,
                params={"token": pending.poll_token},
                timeout=self.settings.http_timeout,
            )
        except requests.RequestException:
            logger.exception("%s poll failed", identity)
            self.store.clear_session(identity)
            return LoginState.EXPIRED

        if response.status_code == 404:
            return LoginState.PENDING
        if response.status_code != 200:
            logger.info("%s login flow expired (%s)", identity, response.status_code)
            self.store.clear_session(identity)
            return LoginState.EXPIRED

        try:
            data = parse_json(response.content, PollResponse)
        except ValueError as exc:
            logger.error("%s malformed poll response: %s (%s)", identity, response.text, exc)
            self.store.clear_session(identity)
            return LoginState.FAILED

        self.store.clear_session(identity)
        server = self.settings.nextcloud_server
        if not server:
            self.reporter.login_result(Status.NO_CONFIG)
            return LoginState.FAILED

        login = Login(data.login_name, data.app_password, from_app_password=True)
        status, error = self._probe(login)
        if status is not Status.OK:
            self.reporter.login_result(status, **_diagnostics(error))
            return LoginState.FAILED

        self.store.set_credential(
            identity,
            StorageCredential(
                storage_username=data.login_name,
                app_password=data.app_password,
                server_url=server.rstrip("/"),
            ),
        )
        logger.info("%s obtained an app password for %s", identity, data.login_name)
        self.reporter.login_result(Status.OK)
        return LoginState.COMPLETED

    def check(self, identity: str, mail_password: Optional[str]) -> Event:
        """Verify that the stored or derived login can access the DAV root."""
        login = select_login(
            identity,
            mail_password,
            self.settings.username_policy,
            self.store.get_credential(identity),
            self.settings.nextcloud_server,
        )
        if not self.settings.nextcloud_server or login is None:
            return self.reporter.login_result(Status.NO_CONFIG)

        status, error = self._probe(login)
        if status in (Status.LOGIN_REQUIRED, Status.INVALID_USER, Status.FAILED):
            self.store.clear_credential(identity)
        return self.reporter.login_result(status, **_diagnostics(error))

    def _probe(self, login: Login) -> tuple[Status, Optional[StorageError]]:
        client = StorageClient(
            self.settings.nextcloud_server,
            login.username,
            login.password,
            session=self.session,
            timeout=self.settings.http_timeout,
        )
        try:
            exists = client.probe()
        except StorageError as exc:
            if exc.kind == Status.CONNECTION_ERROR.value:
                return Status.CONNECTION_ERROR, exc
            return _PROBE_STATUS.get(exc.status_code, Status.FAILED), exc
        if not exists:
            return Status.INVALID_USER, StorageError(
                f"unknown user {login.username}", kind="invalid_user", status_code=404
            )
        return Status.OK, None


def _diagnostics(error: Optional[StorageError]) -> dict:
    if error is None:
        return {}
    return {"code": error.status_code, "message": error.message}
