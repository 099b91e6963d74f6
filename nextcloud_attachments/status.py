"""Closed status vocabulary and the events delivered to callers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .models import UploadResult

logger = logging.getLogger(__name__)


class Status(str, Enum):
    OK = "ok"
    NO_CONFIG = "no_config"
    MKDIR_ERROR = "mkdir_error"
    FOLDER_ERROR = "folder_error"
    NAME_ERROR = "name_error"
    UPLOAD_ERROR = "upload_error"
    LINK_ERROR = "link_error"
    LOGIN_REQUIRED = "login_required"
    INVALID_USER = "invalid_user"
    CONNECTION_ERROR = "connection_error"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


LOGIN_RESULT = "login_result"
LOGIN_START = "login"
UPLOAD_RESULT = "upload_result"


@dataclass
class Event:
    """A notification for the caller. Branch on ``status`` only."""

    name: str
    status: Status
    url: Optional[str] = None
    result: dict[str, Any] | None = None
    message: Optional[str] = None
    code: Optional[int] = None
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = {"status": self.status.value}
        for key in ("url", "result", "message", "code", "payload"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


EventSink = Callable[[Event], None]


class StatusReporter:
    """Deliver login and upload outcomes to an injected sink."""

    def __init__(self, sink: EventSink | None = None) -> None:
        self.sink = sink

    def emit(self, event: Event) -> Event:
        if event.status is not Status.OK:
            logger.info(
                "%s -> %s (code=%s message=%s)", event.name, event.status, event.code, event.message
            )
        if self.sink is not None:
            self.sink(event)
        return event

    def login_result(self, status: Status, **diagnostics: Any) -> Event:
        return self.emit(Event(name=LOGIN_RESULT, status=status, **diagnostics))

    def login_started(self, status: Status, url: str | None = None, **diagnostics: Any) -> Event:
        return self.emit(Event(name=LOGIN_START, status=status, url=url, **diagnostics))

    def upload_result(self, result: UploadResult, file_info: dict[str, Any] | None = None) -> Event:
        status = Status(result.status)
        if status is Status.OK:
            payload = {"url": result.public_url, "file": file_info or {}}
            return self.emit(Event(name=UPLOAD_RESULT, status=status, result=payload))
        return self.emit(
            Event(
                name=UPLOAD_RESULT,
                status=status,
                message=result.message,
                code=result.code,
                payload=result.payload,
            )
        )

