"""Configuration management for the Nextcloud attachment connector."""

from __future__ import annotations

import hashlib
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()


class Settings(BaseSettings):
    """Static per-deployment configuration derived from environment variables."""

    nextcloud_server: str | None = Field(None, alias="NEXTCLOUD_SERVER")
    username_policy: str = Field("asis", alias="NEXTCLOUD_USERNAME_POLICY")
    attachment_folder: str = Field("Mail Attachments", alias="NEXTCLOUD_ATTACHMENT_FOLDER")
    checksum_algorithm: str = Field("sha256", alias="NEXTCLOUD_CHECKSUM")
    icon_dir: Path | None = Field(None, alias="NEXTCLOUD_ICON_DIR")
    state_db: Path = Field(Path("data/nextcloud_state.db"), alias="NEXTCLOUD_STATE_DB")
    cleanup_on_failure: bool = Field(True, alias="NEXTCLOUD_CLEANUP_ON_FAILURE")
    user_agent: str = Field(
        "Nextcloud Attachment Connector/1.0", alias="NEXTCLOUD_USER_AGENT"
    )
    http_timeout: float | None = Field(None, alias="NEXTCLOUD_HTTP_TIMEOUT")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("nextcloud_server", "icon_dir", "http_timeout", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("nextcloud_server")
    @classmethod
    def _strip_trailing_slash(cls, value):
        if value is None:
            return value
        return value.strip().rstrip("/") or None

    @field_validator("username_policy", "checksum_algorithm", mode="before")
    @classmethod
    def _normalize_identifier(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("checksum_algorithm")
    @classmethod
    def _known_digest(cls, value: str) -> str:
        if value not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported NEXTCLOUD_CHECKSUM algorithm: {value}")
        return value

    @field_validator("attachment_folder")
    @classmethod
    def _clean_folder(cls, value: str) -> str:
        cleaned = value.strip().strip("/")
        if not cleaned:
            raise ValueError("NEXTCLOUD_ATTACHMENT_FOLDER must not be empty.")
        return cleaned

    @property
    def is_configured(self) -> bool:
        return bool(self.nextcloud_server)
