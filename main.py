from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from loguru import logger

from secret_santa.core.config import Settings, load_settings
from secret_santa.core.logging import setup_logging
from secret_santa.db import Base, get_session, init_engine, repo
from secret_santa.services import group_flow
from secret_santa.services.mailer import SmtpSettings, SmtpTransport
from secret_santa.services.vault import AssignmentVault


COMMANDS: dict[str, str] = {
    "init-db": "create database tables",
    "generate-key": "print a new ENCRYPTION_KEY",
    "status": "show draw status of a group",
    "draw": "perform the draw of a group",
    "reset": "reset the draw of a group",
    "send": "send pending assignment emails of a group",
    "test-smtp": "check the SMTP connection",
}

GROUP_COMMANDS = {"status", "draw", "reset", "send"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="secret-santa", description="Secret Santa draw operations")
    subparsers = parser.add_subparsers(dest="command", required=True)
    for command, description in COMMANDS.items():
        subparser = subparsers.add_parser(command, help=description)
        if command in GROUP_COMMANDS:
            subparser.add_argument("group_id", type=int)
    return parser


def startup(settings: Settings):
    setup_logging(settings.log_level, settings.log_path)
    vault = AssignmentVault(settings.encryption_key)
    engine = init_engine(settings.database_url)
    logger.info("Database - {backend}", backend=engine.dialect.name)
    smtp_configured = SmtpSettings.from_settings(settings).is_configured
    logger.info("SMTP     - {state}", state="configured" if smtp_configured else "not configured")
    return vault, engine


def run_group_command(command: str, group_id: int, vault: AssignmentVault, settings: Settings) -> int:
    with get_session() as session:
        group = repo.get_group_by_id(session, group_id)
        if group is None:
            logger.error("Group {group_id} not found", group_id=group_id)
            return 1

        if command == "status":
            status = group_flow.draw_status(session, group, vault)
            print(f"Participants : {status.participant_count}")
            print(f"Draw         : {'done' if status.draw_exists else 'not done'}")
            print(f"Emails sent  : {status.sent}")
            print(f"Emails left  : {status.pending}")
            if status.reason:
                print(f"Blocked      : {status.reason}")
            return 0

        if command == "draw":
            result = group_flow.perform_group_draw(session, group, vault)
            print(result.message)
            return 0 if result.success else 1

        if command == "reset":
            removed = group_flow.reset_draw(session, group, vault)
            print(f"Draw reset ({removed} assignments removed).")
            return 0

        transport = SmtpTransport(SmtpSettings.from_settings(settings))
        report = group_flow.send_draw_emails(session, group, vault, transport)
        print(report.message)
        for error in report.errors:
            print(f"  {error.email}: {error.error}")
        return 0 if report.ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "generate-key":
        print(AssignmentVault.generate_key())
        return 0

    settings = load_settings()
    vault, engine = startup(settings)

    if args.command == "init-db":
        Base.metadata.create_all(engine)
        logger.info("Database tables created")
        return 0

    if args.command == "test-smtp":
        transport = SmtpTransport(SmtpSettings.from_settings(settings))
        if not transport.is_configured:
            print("SMTP is not configured.")
            return 1
        try:
            transport.verify()
        except OSError as exc:
            print(f"SMTP error: {exc}")
            return 1
        print("SMTP connection successful.")
        return 0

    try:
        return run_group_command(args.command, args.group_id, vault, settings)
    except group_flow.GroupFlowError as exc:
        print(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
