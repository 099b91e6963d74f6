"""Response schemas for the login-flow and share endpoints."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PollHandle(BaseModel):
    endpoint: str = Field(min_length=1)
    token: str = Field(min_length=1)


class LoginInitResponse(BaseModel):
    """Body of ``POST /index.php/login/v2``."""

    poll: PollHandle
    login: str = Field(min_length=1)


class PollResponse(BaseModel):
    """Body of a completed login-flow poll."""

    model_config = ConfigDict(populate_by_name=True)

    login_name: str = Field(alias="loginName", min_length=1)
    app_password: str = Field(alias="appPassword", min_length=1)
    server: Optional[str] = None


class ShareData(BaseModel):
    """``data`` element of an OCS share creation answer."""

    url: str = Field(min_length=1)
    id: Optional[str] = None
    token: Optional[str] = None


def parse_json(body: str | bytes, model: type[BaseModel]) -> BaseModel:
    """Decode and validate a JSON body, raising ``ValueError`` on mismatch."""
    try:
        return model.model_validate(json.loads(body))
    except (ValueError, ValidationError) as exc:
        raise ValueError(f"{model.__name__}: {exc}") from exc


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_share(body: str | bytes) -> ShareData:
    """Extract ``data/url`` (and friends) from an OCS XML share answer."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise ValueError(f"ShareData: invalid XML ({exc})") from exc
    data = root.find("data")
    if data is None:
        raise ValueError("ShareData: missing data element")
    fields = {_local_name(child.tag): (child.text or "").strip() for child in data}
    try:
        return ShareData.model_validate(fields)
    except ValidationError as exc:
        raise ValueError(f"ShareData: {exc}") from exc


def parse_error_document(body: str | bytes | None) -> dict[str, Any] | None:
    """Flatten a DAV or OCS error document into a dict for diagnostics.

    Returns ``None`` when the body is empty or not XML.
    """
    if not body:
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    result: dict[str, Any] = {}
    for element in root.iter():
        if element is root or len(element):
            continue
        text = (element.text or "").strip()
        if text:
            result[_local_name(element.tag)] = text
    return result
