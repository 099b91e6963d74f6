"""Entry points for the host mail framework.

The host calls these methods from its compose hooks and substitutes the
returned records into its own message representation.
"""

from __future__ import annotations

import base64
import html
import logging
import uuid
from dataclasses import replace
from typing import Iterable, Optional, Protocol

from .config import Settings
from .models import AttachmentRecord, MimePart, UploadRequest, UploadResult
from .pipeline import UploadPipeline

logger = logging.getLogger(__name__)

CLOUD_TARGET = "cloud"
CLOUD_MIMETYPE = "application/nextcloud_attachment"
CLOUD_PART_HEADER = "X-Mozilla-Cloud-Part"


class PlaceholderRenderer(Protocol):
    def render(self, request: UploadRequest, result: UploadResult, server: str) -> str: ...


class SimplePlaceholderRenderer:
    """Minimal HTML page linking to the shared file."""

    def render(self, request: UploadRequest, result: UploadResult, server: str) -> str:
        icon = base64.b64encode(result.icon_blob or b"").decode("ascii")
        checksum = f"{(result.checksum_algorithm or '').upper()} {result.checksum}"
        url = html.escape(result.public_url or "", quote=True)
        return (
            "<!DOCTYPE html>\n<html><body>\n"
            f'<p><img src="data:image/png;base64,{icon}" alt=""> '
            f'<a href="{url}">{html.escape(request.file_name)}</a> '
            f"({html.escape(result.formatted_size or '')}B)</p>\n"
            f"<p>Shared via {html.escape(server)}</p>\n"
            f"<p><code>{html.escape(checksum)}</code></p>\n"
            "</body></html>\n"
        )


class CloudAttachmentHooks:
    def __init__(
        self,
        settings: Settings,
        pipeline: UploadPipeline,
        renderer: PlaceholderRenderer | None = None,
    ) -> None:
        self.settings = settings
        self.pipeline = pipeline
        self.renderer = renderer or SimplePlaceholderRenderer()

    def attachment_upload(
        self,
        identity: str,
        mail_password: Optional[str],
        request: UploadRequest,
        target: Optional[str],
    ) -> Optional[AttachmentRecord]:
        """Replace a cloud-bound attachment by its placeholder page.

        Returns ``None`` for attachments not marked for the cloud; the host
        then handles them as usual.
        """
        if target != CLOUD_TARGET:
            return None

        attachment_id = uuid.uuid4().hex
        result = self.pipeline.run(identity, mail_password, request)
        if not result.ok:
            return AttachmentRecord(
                id=attachment_id,
                name=request.file_name,
                mimetype=request.mime_type,
                group=request.group_id,
                status=False,
                abort=True,
                error=result.message or str(result.status),
            )

        page = self.renderer.render(request, result, self.settings.nextcloud_server or "")
        return AttachmentRecord(
            id=attachment_id,
            name=f"{request.file_name}.html",
            mimetype="text/html",
            data=page,
            size=len(page.encode("utf-8")),
            group=request.group_id,
            target=CLOUD_TARGET,
            break_chain=True,
        )

    @staticmethod
    def attachment_get(record: AttachmentRecord) -> AttachmentRecord:
        """Serve a stored placeholder with the connector's own MIME type."""
        if record.target != CLOUD_TARGET:
            return record
        return replace(
            record,
            mimetype=CLOUD_MIMETYPE,
            status=True,
            size=len(record.data.encode("utf-8")),
        )

    @staticmethod
    def message_ready(parts: Iterable[MimePart]) -> tuple[MimePart, ...]:
        """Mark placeholder parts as inline cloud parts, leaving others untouched."""
        prepared = []
        for part in parts:
            if part.content_type == CLOUD_MIMETYPE:
                part = replace(
                    part,
                    disposition="inline",
                    encoding="quoted-printable",
                    headers={**part.headers, CLOUD_PART_HEADER: "cloudFile"},
                )
            prepared.append(part)
        return tuple(prepared)
