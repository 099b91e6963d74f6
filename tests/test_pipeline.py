"""Tests for nextcloud_attachments.pipeline."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest
import requests

from nextcloud_attachments.models import StorageCredential, UploadRequest
from nextcloud_attachments.pipeline import MAX_NAME_ATTEMPTS, UploadPipeline
from nextcloud_attachments.status import Status

from conftest import FOLDER_URL, SERVER, SHARE_URL, FakeResponse, dav_error_xml, share_xml

IDENTITY = "alice@example.com"


@pytest.fixture
def pipeline(settings, store, reporter, session) -> UploadPipeline:
    return UploadPipeline(settings, store, reporter, session=session)


def request_for(path: Path, name: str = "a.txt", mime: str = "text/plain") -> UploadRequest:
    return UploadRequest(local_path=path, file_name=name, mime_type=mime, group_id="g1")


def happy_server(session, name: str = "a.txt"):
    session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
    session.add("PUT", f"{FOLDER_URL}/{name.replace(' ', '%20')}", FakeResponse(201))
    session.add("POST", SHARE_URL, FakeResponse(200, share_xml()))


class TestSuccess:
    def test_two_mib_upload_into_existing_folder(self, pipeline, session, tmp_path, events):
        payload = os.urandom(2 * 1024 * 1024)
        path = tmp_path / "upload"
        path.write_bytes(payload)
        happy_server(session)

        result = pipeline.run(IDENTITY, "mail-secret", request_for(path))

        assert result.status == Status.OK
        assert result.formatted_size == "2.0M"
        assert result.size == len(payload)
        assert result.remote_name == "a.txt"
        assert result.public_url.startswith(SERVER + "/")
        assert result.checksum == hashlib.sha256(payload).hexdigest()
        assert result.checksum_algorithm == "sha256"
        put = next(call for call in session.calls if call["method"] == "PUT")
        assert put["data"] == payload
        assert put["auth"] == ("alice", "mail-secret")
        assert not path.exists()

        event = events[-1]
        assert event.name == "upload_result"
        assert event.status is Status.OK
        assert event.result["url"] == result.public_url
        assert event.result["file"]["group"] == "g1"

    def test_absent_folder_is_created_once_before_upload(self, pipeline, session, attachment):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(404))
        session.add("MKCOL", FOLDER_URL, FakeResponse(201))
        session.add("PUT", f"{FOLDER_URL}/a.txt", FakeResponse(201))
        session.add("POST", SHARE_URL, FakeResponse(200, share_xml()))

        result = pipeline.run(IDENTITY, "mail-secret", request_for(attachment))

        assert result.status == Status.OK
        methods = [method for method, _ in session.methods()]
        assert methods.count("MKCOL") == 1
        assert methods.index("MKCOL") < methods.index("PUT")

    def test_collision_picks_next_free_name(self, pipeline, session, attachment):
        session.add("PROPFIND", f"{FOLDER_URL}/a.txt", FakeResponse(207))
        session.add("PROPFIND", f"{FOLDER_URL}/a%201.txt", FakeResponse(207))
        happy_server(session, "a 2.txt")

        result = pipeline.run(IDENTITY, "mail-secret", request_for(attachment))

        assert result.remote_name == "a 2.txt"
        assert ("PUT", f"{FOLDER_URL}/a%202.txt") in session.methods()
        share = next(call for call in session.calls if call["url"] == SHARE_URL)
        assert share["data"]["path"] == "Mail Attachments/a 2.txt"

    def test_persisted_credential_is_preferred(self, pipeline, store, session, attachment):
        store.set_credential(IDENTITY, StorageCredential("alice", "app-secret", SERVER))
        happy_server(session)

        assert pipeline.run(IDENTITY, None, request_for(attachment)).ok
        assert {call["auth"] for call in session.calls} == {("alice", "app-secret")}

    def test_credential_from_other_server_is_ignored(self, pipeline, store, session, attachment):
        store.set_credential(IDENTITY, StorageCredential("alice", "old-secret", "https://old.example.com"))
        happy_server(session)

        assert pipeline.run(IDENTITY, "pw", request_for(attachment)).ok
        assert {call["auth"] for call in session.calls} == {("alice", "pw")}

    def test_configured_checksum(self, settings, store, reporter, session, attachment):
        settings.checksum_algorithm = "sha1"
        pipeline = UploadPipeline(settings, store, reporter, session=session)
        expected = hashlib.sha1(attachment.read_bytes()).hexdigest()
        happy_server(session)

        result = pipeline.run(IDENTITY, "pw", request_for(attachment))

        assert result.checksum == expected
        assert result.checksum_algorithm == "sha1"

    def test_icon_lookup(self, settings, store, reporter, session, attachment, tmp_path):
        icons = tmp_path / "icons"
        icons.mkdir()
        (icons / "text-x-generic.png").write_bytes(b"text-icon")
        settings.icon_dir = icons
        pipeline = UploadPipeline(settings, store, reporter, session=session)
        happy_server(session)

        result = pipeline.run(IDENTITY, "pw", request_for(attachment, mime="text/csv"))

        assert result.icon_blob == b"text-icon"


class TestAborts:
    def test_no_server(self, settings, store, reporter, session, attachment):
        settings.nextcloud_server = None
        pipeline = UploadPipeline(settings, store, reporter, session=session)

        result = pipeline.run(IDENTITY, "pw", request_for(attachment))

        assert result.status == Status.NO_CONFIG
        assert session.calls == []
        assert result.public_url is None

    def test_unresolvable_username(self, settings, store, reporter, session, attachment):
        settings.username_policy = "ldap"
        pipeline = UploadPipeline(settings, store, reporter, session=session)
        assert pipeline.run(IDENTITY, "pw", request_for(attachment)).status == Status.NO_CONFIG

    def test_mkdir_error(self, pipeline, session, attachment, events):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(404))
        session.add("MKCOL", FOLDER_URL, FakeResponse(409, dav_error_xml()))

        result = pipeline.run(IDENTITY, "pw", request_for(attachment))

        assert result.status == Status.MKDIR_ERROR
        assert result.code == 409
        assert result.payload["exception"].endswith("Conflict")
        assert events[-1].status is Status.MKDIR_ERROR
        assert "PUT" not in [method for method, _ in session.methods()]

    @pytest.mark.parametrize("status", [400, 401, 403, 500])
    def test_folder_error(self, pipeline, session, attachment, status):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(status))
        assert pipeline.run(IDENTITY, "pw", request_for(attachment)).status == Status.FOLDER_ERROR

    def test_folder_connection_failure(self, pipeline, session, attachment):
        session.add("PROPFIND", FOLDER_URL, requests.ConnectionError("refused"))
        result = pipeline.run(IDENTITY, "pw", request_for(attachment))
        assert result.status == Status.FOLDER_ERROR
        assert result.message == "connection failed"

    def test_name_error_on_server_error(self, pipeline, session, attachment):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        session.add("PROPFIND", f"{FOLDER_URL}/a.txt", FakeResponse(503))
        assert pipeline.run(IDENTITY, "pw", request_for(attachment)).status == Status.NAME_ERROR

    def test_name_error_when_every_name_is_taken(self, pipeline, session, tmp_path):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        session.add("PROPFIND", f"{FOLDER_URL}/a.txt", FakeResponse(207))
        for counter in range(1, MAX_NAME_ATTEMPTS + 1):
            session.add("PROPFIND", f"{FOLDER_URL}/a%20{counter}.txt", FakeResponse(207))

        first = tmp_path / "first"
        first.write_bytes(b"x")
        assert pipeline.run(IDENTITY, "pw", request_for(first)).status == Status.NAME_ERROR
        probes = session.methods("PROPFIND")
        assert len(probes) == MAX_NAME_ATTEMPTS + 2
        assert "PUT" not in [method for method, _ in session.methods()]

    def test_name_resolution_is_deterministic(self, pipeline, session, tmp_path):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        session.add("PROPFIND", f"{FOLDER_URL}/a.txt", FakeResponse(207))
        session.add("PROPFIND", f"{FOLDER_URL}/a%201.txt", FakeResponse(207))
        session.add("PUT", f"{FOLDER_URL}/a%202.txt", FakeResponse(500))

        names = []
        for attempt in range(2):
            path = tmp_path / f"upload-{attempt}"
            path.write_bytes(b"x")
            assert pipeline.run(IDENTITY, "pw", request_for(path)).status == Status.UPLOAD_ERROR
            names.append(session.methods("PUT")[-1][1])
        assert names == [f"{FOLDER_URL}/a%202.txt"] * 2

    def test_name_error_repeats_with_same_candidates(self, pipeline, session, tmp_path):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        session.add("PROPFIND", f"{FOLDER_URL}/a.txt", FakeResponse(207))
        for counter in range(1, MAX_NAME_ATTEMPTS + 1):
            session.add("PROPFIND", f"{FOLDER_URL}/a%20{counter}.txt", FakeResponse(207))

        sequences = []
        for attempt in range(2):
            path = tmp_path / f"retry-{attempt}"
            path.write_bytes(b"x")
            start = len(session.calls)
            assert pipeline.run(IDENTITY, "pw", request_for(path)).status == Status.NAME_ERROR
            sequences.append([call["url"] for call in session.calls[start:]])

        assert sequences[0] == sequences[1]
        assert sequences[0][-1] == f"{FOLDER_URL}/a%20{MAX_NAME_ATTEMPTS}.txt"

    def test_upload_error_keeps_server_message(self, pipeline, session, attachment):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        session.add(
            "PUT", f"{FOLDER_URL}/a.txt", FakeResponse(507, dav_error_xml("Insufficient space"))
        )

        result = pipeline.run(IDENTITY, "pw", request_for(attachment))

        assert result.status == Status.UPLOAD_ERROR
        assert result.payload["message"] == "Insufficient space"

    def test_link_error_leaves_upload_in_place(self, pipeline, session, attachment):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        session.add("PUT", f"{FOLDER_URL}/a.txt", FakeResponse(201))
        session.add("POST", SHARE_URL, FakeResponse(404, "<ocs><meta><message>nope</message></meta></ocs>"))

        result = pipeline.run(IDENTITY, "pw", request_for(attachment))

        assert result.status == Status.LINK_ERROR
        assert result.public_url is None
        assert [m for m, _ in session.methods()] == ["PROPFIND", "PROPFIND", "PUT", "POST"]

    def test_failures_release_temp_file_by_default(self, pipeline, session, attachment):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(500))
        pipeline.run(IDENTITY, "pw", request_for(attachment))
        assert not attachment.exists()

    def test_failures_keep_temp_file_when_configured(
        self, settings, store, reporter, session, attachment
    ):
        settings.cleanup_on_failure = False
        pipeline = UploadPipeline(settings, store, reporter, session=session)
        session.add("PROPFIND", FOLDER_URL, FakeResponse(500))

        pipeline.run(IDENTITY, "pw", request_for(attachment))

        assert attachment.exists()

    def test_missing_local_file(self, pipeline, session, tmp_path):
        session.add("PROPFIND", FOLDER_URL, FakeResponse(207))
        result = pipeline.run(IDENTITY, "pw", request_for(tmp_path / "gone"))
        assert result.status == Status.UPLOAD_ERROR
        assert "PUT" not in [method for method, _ in session.methods()]
