"""Typed containers shared across the connector."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


@dataclass(frozen=True)
class StorageCredential:
    """App password issued by the storage server for one mail identity."""

    storage_username: str
    app_password: str
    server_url: str


@dataclass(frozen=True)
class LoginSession:
    """Poll handle of a delegated login that has not finished yet."""

    poll_endpoint: str
    poll_token: str


@dataclass(frozen=True)
class Login:
    """Username/password pair used for basic auth against the server."""

    username: str
    password: str
    from_app_password: bool = False


@dataclass
class UploadRequest:
    """A compose-time attachment bound for the cloud."""

    local_path: Path
    file_name: str
    mime_type: str = "application/octet-stream"
    group_id: Optional[str] = None


@dataclass(frozen=True)
class FolderRef:
    """Attachment folder inside a user's storage namespace."""

    server: str
    storage_username: str
    folder_name: str

    def child(self, name: str) -> str:
        return f"{self.folder_name}/{name}"


@dataclass
class UploadResult:
    """Terminal output of the upload pipeline."""

    status: str
    public_url: Optional[str] = None
    formatted_size: Optional[str] = None
    checksum: Optional[str] = None
    checksum_algorithm: Optional[str] = None
    icon_blob: Optional[bytes] = None
    size: Optional[int] = None
    remote_name: Optional[str] = None
    message: Optional[str] = None
    code: Optional[int] = None
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class AttachmentRecord:
    """Attachment as handed back to the host mail framework."""

    id: str
    name: str
    mimetype: str
    data: str = ""
    size: int = 0
    group: Optional[str] = None
    target: Optional[str] = None
    status: bool = True
    abort: bool = False
    break_chain: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class MimePart:
    """One part of an outgoing message as described by the host."""

    content_type: str
    disposition: str = "attachment"
    encoding: str = "base64"
    name: Optional[str] = None
    body: str | bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
