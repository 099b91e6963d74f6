"""Upload pipeline: folder, unique name, transfer, public link, result."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .config import Settings
from .credentials import select_login
from .errors import ConnectionFailure, StorageError
from .models import FolderRef, UploadRequest, UploadResult
from .state_store import CredentialStore
from .status import Status, StatusReporter
from .storage_client import StorageClient, build_session
from .utils import file_digest, format_size, mime_icon, numbered_name

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 100


class StepFailed(Exception):
    """Abort the pipeline with ``status``."""

    def __init__(self, status: Status, message: str, error: StorageError | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.error = error


class UploadPipeline:
    """Hand a local attachment over to the storage server.

    Steps run strictly in order and the first failure ends the run with its
    status. Nothing is rolled back remotely: a file whose share creation
    fails stays uploaded. Two concurrent uploads of the same name may both
    pick the same free name between the probe and the PUT.
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        reporter: StatusReporter,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.reporter = reporter
        self.session = session or build_session(settings.user_agent)

    def run(
        self, identity: str, mail_password: Optional[str], request: UploadRequest
    ) -> UploadResult:
        try:
            result = self._run(identity, mail_password, request)
        except StepFailed as failure:
            error = failure.error
            result = UploadResult(
                status=failure.status.value,
                message=failure.message,
                code=error.status_code if error else None,
                payload=(error.payload or error.body) if error else None,
            )
            logger.warning(
                "%s upload of '%s' aborted: %s (%s)",
                identity,
                request.file_name,
                failure.status,
                failure.message,
            )
            if self.settings.cleanup_on_failure:
                self._release(request)
        else:
            self._release(request)

        self.reporter.upload_result(result, self._file_info(request, result))
        return result

    def _run(
        self, identity: str, mail_password: Optional[str], request: UploadRequest
    ) -> UploadResult:
        login = select_login(
            identity,
            mail_password,
            self.settings.username_policy,
            self.store.get_credential(identity),
            self.settings.nextcloud_server,
        )
        server = self.settings.nextcloud_server
        if not server or login is None:
            raise StepFailed(Status.NO_CONFIG, "storage server or username not configured")

        client = StorageClient(
            server,
            login.username,
            login.password,
            session=self.session,
            timeout=self.settings.http_timeout,
        )
        folder = FolderRef(server, login.username, self.settings.attachment_folder)

        self.ensure_folder(client, folder)
        remote_name = self.unique_name(client, folder, request.file_name)

        remote_path = folder.child(remote_name)
        try:
            # digest first so the checksum covers the bytes that are sent
            size = request.local_path.stat().st_size
            checksum = file_digest(request.local_path, self.settings.checksum_algorithm)
            with open(request.local_path, "rb") as content:
                client.put(remote_path, content)
        except StorageError as exc:
            raise StepFailed(Status.UPLOAD_ERROR, _describe(exc), exc) from exc
        except OSError as exc:
            logger.exception("Cannot read %s", request.local_path)
            raise StepFailed(Status.UPLOAD_ERROR, f"cannot read attachment: {exc}") from exc

        try:
            public_url = client.create_share(remote_path)
        except StorageError as exc:
            raise StepFailed(Status.LINK_ERROR, _describe(exc), exc) from exc

        return UploadResult(
            status=Status.OK.value,
            public_url=public_url,
            formatted_size=format_size(size),
            checksum=checksum,
            checksum_algorithm=self.settings.checksum_algorithm,
            icon_blob=mime_icon(self.settings.icon_dir, request.mime_type),
            size=size,
            remote_name=remote_name,
        )

    def ensure_folder(self, client: StorageClient, folder: FolderRef) -> None:
        try:
            exists = client.probe(folder.folder_name)
        except ConnectionFailure as exc:
            raise StepFailed(Status.FOLDER_ERROR, _describe(exc), exc) from exc
        except StorageError as exc:
            if exc.status_code is not None and exc.status_code >= 400:
                raise StepFailed(Status.FOLDER_ERROR, _describe(exc), exc) from exc
            logger.warning("Ignoring unexpected folder probe answer %s", exc.status_code)
            return

        if exists:
            return
        try:
            client.ensure_collection(folder.folder_name)
        except StorageError as exc:
            raise StepFailed(Status.MKDIR_ERROR, _describe(exc), exc) from exc

    def unique_name(self, client: StorageClient, folder: FolderRef, filename: str) -> str:
        """First name derived from ``filename`` that does not exist remotely."""
        candidate = filename
        for counter in range(MAX_NAME_ATTEMPTS + 1):
            if counter:
                candidate = numbered_name(filename, counter)
            try:
                if not client.probe(folder.child(candidate)):
                    return candidate
            except ConnectionFailure as exc:
                raise StepFailed(Status.NAME_ERROR, _describe(exc), exc) from exc
            except StorageError as exc:
                if exc.status_code is not None and exc.status_code >= 500:
                    raise StepFailed(Status.NAME_ERROR, _describe(exc), exc) from exc
                # any other answer means the name cannot be used
        raise StepFailed(
            Status.NAME_ERROR, f"no free name for '{filename}' after {MAX_NAME_ATTEMPTS} attempts"
        )

    def _release(self, request: UploadRequest) -> None:
        try:
            request.local_path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Could not remove temporary file %s", request.local_path)

    @staticmethod
    def _file_info(request: UploadRequest, result: UploadResult) -> dict:
        return {
            "name": request.file_name,
            "size": result.size,
            "mimetype": request.mime_type,
            "group": request.group_id,
        }


def _describe(error: StorageError) -> str:
    if isinstance(error, ConnectionFailure):
        return "connection failed"
    return error.message
