"""Command line driver for the Nextcloud attachment connector."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import mimetypes
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path

from .config import Settings
from .hooks import CLOUD_TARGET, CloudAttachmentHooks
from .login_flow import LoginFlowController, LoginState
from .models import UploadRequest
from .pipeline import UploadPipeline
from .state_store import StateStore
from .status import Event, Status, StatusReporter
from .storage_client import build_session


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Share mail attachments through Nextcloud.")
    parser.add_argument(
        "--identity",
        default=os.environ.get("NEXTCLOUD_MAIL_IDENTITY"),
        help="Mail identity (defaults to NEXTCLOUD_MAIL_IDENTITY)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("login", help="Start a browser login and print its URL")

    poll = sub.add_parser("poll", help="Check whether the browser login finished")
    poll.add_argument("--wait", action="store_true", help="Keep polling until the login ends")
    poll.add_argument("--interval", type=float, default=5.0, help="Seconds between polls")
    poll.add_argument("--max-polls", type=int, default=120, help="Give up after N polls")

    sub.add_parser("check", help="Verify the stored or derived login")

    upload = sub.add_parser("upload", help="Upload a file and print the share link")
    upload.add_argument("path", type=Path)
    upload.add_argument("--mime-type", help="MIME type (guessed from the name by default)")
    upload.add_argument("--group", help="Attachment group id passed back in the result")
    upload.add_argument("--html", type=Path, help="Write the placeholder page to this file")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def print_event(event: Event) -> None:
    print(json.dumps({"event": event.name, **event.to_dict()}, default=str), flush=True)


def mail_password(store: StateStore, identity: str) -> str | None:
    if store.get_credential(identity) is not None:
        return None
    password = os.environ.get("NEXTCLOUD_MAIL_PASSWORD")
    if password is None:
        password = getpass.getpass("Mail password: ")
    return password


def run_poll(controller: LoginFlowController, identity: str, args: argparse.Namespace) -> LoginState:
    state = controller.poll(identity)
    polls = 1
    while args.wait and state is LoginState.PENDING and polls < args.max_polls:
        time.sleep(args.interval)
        state = controller.poll(identity)
        polls += 1
    logging.info("Login state for %s: %s", identity, state.value)
    return state


def run_upload(hooks: CloudAttachmentHooks, identity: str, args: argparse.Namespace) -> bool:
    source: Path = args.path
    if not source.is_file():
        raise SystemExit(f"No such file: {source}")

    # the pipeline consumes its input, so hand it a private copy
    handle, temp_name = tempfile.mkstemp(prefix="ncattach-")
    os.close(handle)
    shutil.copyfile(source, temp_name)

    mime_type = args.mime_type or mimetypes.guess_type(source.name)[0] or "application/octet-stream"
    request = UploadRequest(
        local_path=Path(temp_name),
        file_name=source.name,
        mime_type=mime_type,
        group_id=args.group,
    )
    record = hooks.attachment_upload(
        identity, mail_password(hooks.pipeline.store, identity), request, CLOUD_TARGET
    )
    if record is None or record.abort:
        Path(temp_name).unlink(missing_ok=True)
        return False
    if args.html:
        args.html.write_text(record.data, encoding="utf-8")
    return True


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.identity:
        parser.error("--identity or NEXTCLOUD_MAIL_IDENTITY is required")

    settings = Settings()
    configure_logging(settings.log_level)

    store = StateStore(settings.state_db)
    reporter = StatusReporter(sink=print_event)
    session = build_session(settings.user_agent)

    if args.command in ("login", "poll", "check"):
        controller = LoginFlowController(settings, store, reporter, session=session)
        if args.command == "login":
            return 0 if controller.initiate(args.identity).status is Status.OK else 1
        if args.command == "poll":
            state = run_poll(controller, args.identity, args)
            return 0 if state in (LoginState.COMPLETED, LoginState.PENDING) else 1
        event = controller.check(args.identity, mail_password(store, args.identity))
        return 0 if event.status is Status.OK else 1

    pipeline = UploadPipeline(settings, store, reporter, session=session)
    hooks = CloudAttachmentHooks(settings, pipeline)
    return 0 if run_upload(hooks, args.identity, args) else 1


if __name__ == "__main__":
    sys.exit(main())
