"""SQLite-backed store for app passwords and pending login sessions."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

import sqlite_utils
from sqlite_utils.db import NotFoundError

from .models import LoginSession, StorageCredential
from .utils import utc_now_iso


class CredentialStore(Protocol):
    def get_credential(self, identity: str) -> Optional[StorageCredential]: ...

    def set_credential(self, identity: str, credential: StorageCredential) -> None: ...

    def clear_credential(self, identity: str) -> None: ...


class SessionStore(Protocol):
    def get_session(self, identity: str) -> Optional[LoginSession]: ...

    def set_session(self, identity: str, session: LoginSession) -> None: ...

    def clear_session(self, identity: str) -> None: ...


class IdentityStore(CredentialStore, SessionStore, Protocol):
    """Get/set/clear of per-identity state."""


class StateStore:
    """Per-identity credentials and login sessions, keyed by mail identity."""

    CREDENTIALS = "credentials"
    SESSIONS = "login_sessions"

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path
        if db_path is None:
            self.db = sqlite_utils.Database(memory=True)
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db = sqlite_utils.Database(str(db_path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.db[self.CREDENTIALS].create(
            {
                "identity": str,
                "storage_username": str,
                "app_password": str,
                "server_url": str,
                "stored_at": str,
            },
            pk="identity",
            if_not_exists=True,
        )
        self.db[self.SESSIONS].create(
            {
                "identity": str,
                "poll_endpoint": str,
                "poll_token": str,
                "started_at": str,
            },
            pk="identity",
            if_not_exists=True,
        )

    def _get(self, table: str, identity: str) -> Optional[dict]:
        try:
            return self.db[table].get(identity)
        except NotFoundError:
            return None

    def _delete(self, table: str, identity: str) -> None:
        self.db[table].delete_where("identity = ?", [identity])

    def get_credential(self, identity: str) -> Optional[StorageCredential]:
        row = self._get(self.CREDENTIALS, identity)
        if row is None:
            return None
        return StorageCredential(
            storage_username=row["storage_username"],
            app_password=row["app_password"],
            server_url=row["server_url"],
        )

    def set_credential(self, identity: str, credential: StorageCredential) -> None:
        self.db[self.CREDENTIALS].upsert(
            {
                "identity": identity,
                "storage_username": credential.storage_username,
                "app_password": credential.app_password,
                "server_url": credential.server_url,
                "stored_at": utc_now_iso(),
            },
            pk="identity",
        )

    def clear_credential(self, identity: str) -> None:
        self._delete(self.CREDENTIALS, identity)

    def get_session(self, identity: str) -> Optional[LoginSession]:
        row = self._get(self.SESSIONS, identity)
        if row is None:
            return None
        return LoginSession(poll_endpoint=row["poll_endpoint"], poll_token=row["poll_token"])

    def set_session(self, identity: str, session: LoginSession) -> None:
        self.db[self.SESSIONS].upsert(
            {
                "identity": identity,
                "poll_endpoint": session.poll_endpoint,
                "poll_token": session.poll_token,
                "started_at": utc_now_iso(),
            },
            pk="identity",
        )

    def clear_session(self, identity: str) -> None:
        self._delete(self.SESSIONS, identity)

    def count_credentials(self) -> int:
        return self.db[self.CREDENTIALS].count
