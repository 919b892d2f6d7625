"""Command-line entry point for RemindMail."""

from __future__ import annotations

import argparse
from pathlib import Path

from remind_mail.bootstrap import build_service
from remind_mail.core import AppSettings, configure_logging, load_app_settings
from remind_mail.core.datetime_utils import display_datetime
from remind_mail.scheduler import reminder_state
from remind_mail.service import ReminderService
from remind_mail.storage import StorageUnavailable


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="RemindMail email reminders")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("info", help="Show configuration and storage paths.")
    subparsers.add_parser("list", help="List stored reminders.")

    add = subparsers.add_parser("add", help="Schedule a new reminder.")
    add.add_argument("title", help="Subject line of the reminder email.")
    add.add_argument(
        "--to",
        dest="recipients",
        action="append",
        required=True,
        help="Recipient address; repeat for several recipients.",
    )
    add.add_argument(
        "--at",
        dest="times",
        action="append",
        required=True,
        help="ISO 8601 send time, e.g. 2026-01-31T09:00+01:00; repeatable.",
    )
    add.add_argument("--description", default=None, help="Email body text.")

    delete = subparsers.add_parser("delete", help="Delete a reminder by id.")
    delete.add_argument("reminder_id")

    subparsers.add_parser("clear", help="Delete every reminder.")
    subparsers.add_parser("check", help="Send due reminders now.")

    test_email = subparsers.add_parser(
        "test-email", help="Send a test message with the saved SMTP settings."
    )
    test_email.add_argument("address")

    history = subparsers.add_parser("history", help="Show recipient history.")
    history.add_argument(
        "--clear", action="store_true", help="Forget stored addresses."
    )

    subparsers.add_parser("serve", help="Run the HTTP API and background scheduler.")
    return parser


def execute(
    args: argparse.Namespace, settings: AppSettings, service: ReminderService
) -> int:
    """Execute the requested CLI command and return an exit status."""
    command = args.command or "info"
    if command == "info":
        print("RemindMail is ready. Save SMTP settings to start sending reminders.")
        print(f"Data directory: {settings.storage.data_dir}")
        print(f"Check interval: {settings.scheduler.interval_seconds:g}s")
        credentials = service.current_credentials()
        configured = "yes" if credentials.is_complete else "no"
        print(f"SMTP configured: {configured}")
        return 0
    if command == "list":
        return _run_list(service)
    if command == "add":
        outcome = service.create_reminder(
            args.title, args.description, args.recipients, args.times
        )
        suffix = f" (id {outcome.reminder_id})" if outcome.reminder_id else ""
        print(f"{outcome.message}{suffix}")
        return 0 if outcome.success else 1
    if command == "serve":
        _run_server(settings, service)
        return 0

    if command == "delete":
        outcome = service.delete_reminder(args.reminder_id)
    elif command == "clear":
        outcome = service.clear_reminders()
    elif command == "check":
        outcome = service.check_now()
    elif command == "test-email":
        outcome = service.send_test_email(args.address)
    elif command == "history":
        if args.clear:
            outcome = service.clear_email_history()
        else:
            for address in service.get_email_history():
                print(address)
            return 0
    else:
        raise ValueError(f"Unknown command {command}")
    print(outcome.message)
    return 0 if outcome.success else 1


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    return execute(args, settings, build_service(settings))


def _run_list(service: ReminderService) -> int:
    try:
        reminders = service.list_reminders()
    except StorageUnavailable as exc:
        print(f"Reminders unavailable: {exc}")
        return 1

    if not reminders:
        print("No reminders scheduled.")
        return 0

    print(f"Showing {len(reminders)} reminder(s):")
    header = f"{'ID':<14}  {'State':<12}  {'Left':>4}  {'Sent':>4}  {'Pending':>7}  Title"
    print(header)
    print("-" * len(header))
    for reminder in reminders:
        print(
            f"{reminder.id:<14}  {reminder_state(reminder).value:<12}  "
            f"{len(reminder.scheduled_times):>4}  {len(reminder.sent_times):>4}  "
            f"{len(reminder.pending_times):>7}  {reminder.title}"
        )
        if reminder.deletion_time is not None:
            print(f"{'':<14}  deletes {display_datetime(reminder.deletion_time)}")
    return 0


def _run_server(settings: AppSettings, service: ReminderService) -> None:
    import uvicorn  # pylint: disable=import-outside-toplevel

    from remind_mail.web.app import create_app  # pylint: disable=import-outside-toplevel

    uvicorn.run(
        create_app(settings, service),
        host=settings.web.host,
        port=settings.web.port,
        reload=False,
    )


if __name__ == "__main__":
    raise SystemExit(main())
