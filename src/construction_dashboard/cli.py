"""Command-line interface (CLI) entrypoint.

Objective:
    Provide a human-friendly CLI wrapper around the web server and
    :class:`construction_dashboard.orchestrator.DailyEmailOrchestrator`.

Responsibilities:
    - Parse the subcommand and its arguments.
    - Configure logging (including hiding APScheduler's per-minute job logs).
    - Invoke the server, the orchestrator or the OneDrive backup and print a
      readable summary.

High-level call tree:
    - :func:`main`
        - :func:`setup_logging`
            - installs :class:`_SchedulerJobInfoToDebugFilter`
        - ``serve``: :func:`construction_dashboard.webapp.create_app` + uvicorn
        - ``send-daily``: :meth:`DailyEmailOrchestrator.generate_all_daily_emails`
            - :func:`print_results`
        - ``preview``: :meth:`DailyEmailOrchestrator.preview`
        - ``backup``: :meth:`Microsoft365Service.backup_to_onedrive`
"""

import argparse
import logging
import sys
from typing import Optional

import uvicorn

from .config import get_settings
from .errors import DashboardError
from .microsoft365 import Microsoft365Service
from .models import BatchResult, DeliveryMethod
from .orchestrator import DailyEmailOrchestrator
from .store import RecordStore
from .webapp import create_app

METHOD_ICONS = {
    DeliveryMethod.OUTLOOK: "📤",
    DeliveryMethod.MAILTO: "🔗",
    DeliveryMethod.MANUAL: "📋",
}


class _SchedulerJobInfoToDebugFilter(logging.Filter):
    """Filter to suppress APScheduler's INFO logs for every job execution.

    The send time check runs every minute, so the scheduler would log two
    lines per minute. This filter hides those messages unless the root logger
    is in DEBUG mode.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Determine whether a log record should be emitted.

        Args:
            record: Log record emitted by the logging framework.

        Returns:
            bool: True to allow emission, False to suppress.
        """
        if record.name.startswith("apscheduler") and record.levelno == logging.INFO:
            return logging.getLogger().isEnabledFor(logging.DEBUG)
        return True


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    root_logger = logging.getLogger()
    downgrade_filter = _SchedulerJobInfoToDebugFilter()
    for handler in root_logger.handlers:
        handler.addFilter(downgrade_filter)


def print_results(result: BatchResult, verbose: bool = False) -> None:
    """
    Print a daily email batch to the console.

    Args:
        result: Batch result from the orchestrator.
        verbose: If True, print mail links and manual copy content.
    """
    if not result.sent and not result.failed:
        print("\nNo email recipients configured.")
        return

    summary = result.summary
    print(f"\n{'='*60}")
    print(f"DAILY EMAILS: {summary['total']} recipients")
    print(f"{'='*60}\n")

    for delivery in result.sent:
        icon = METHOD_ICONS.get(delivery.method, "✅")
        print(f"  {icon} {delivery.recipient_name} <{delivery.to}> via {delivery.method.value}")
        if verbose and delivery.mailto_url:
            print(f"      {delivery.mailto_url}")
        if verbose and delivery.content:
            print(f"\n{delivery.content}\n")

    for failure in result.failed:
        who = failure.recipient_id or failure.stakeholder_id or "?"
        print(f"  ❌ {who}: {failure.error}")

    print(f"\n{'='*60}")
    print(f"SUMMARY: ✅ {summary['sent']} sent, ❌ {summary['failed']} failed")
    print(f"{'='*60}\n")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="construction-dashboard",
        description="Construction project dashboard - status emails and Microsoft 365 sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve                 Start the dashboard API on port 3001
  %(prog)s send-daily            Generate and deliver every daily email now
  %(prog)s preview rec_1         Print the daily email of one recipient
  %(prog)s backup                Back up the data files to OneDrive
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the web API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", "-p", type=int, default=3001, help="Port")
    serve.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not start the background scheduler",
    )

    subparsers.add_parser("send-daily", help="Generate and deliver all daily emails")

    preview = subparsers.add_parser("preview", help="Print a recipient's daily email")
    preview.add_argument("recipient_id", help="Email recipient id")
    preview.add_argument(
        "--weekly",
        action="store_true",
        help="Print the weekly summary instead",
    )

    subparsers.add_parser("backup", help="Back up the data files to OneDrive")

    return parser


def main(args: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    Pass an explicit ``args`` list instead of relying on ``sys.argv`` to call
    it from tests.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        int: Exit code (0 for success, 1 for error).
    """
    parsed_args = build_parser().parse_args(args)

    settings = get_settings()
    log_level = "DEBUG" if parsed_args.verbose else (parsed_args.log_level or settings.log_level)
    setup_logging(log_level)

    logger = logging.getLogger(__name__)

    try:
        if parsed_args.command == "serve":
            if parsed_args.no_scheduler:
                settings.enable_scheduler = False
            app = create_app(settings=settings)
            uvicorn.run(app, host=parsed_args.host, port=parsed_args.port)
            return 0

        store = RecordStore(settings.data_dir)
        microsoft365 = Microsoft365Service(settings)

        if parsed_args.command == "backup":
            microsoft365.initialize()
            summary = microsoft365.backup_to_onedrive(store.data_dir)
            if summary is None:
                print("\n❌ OneDrive backup failed or not configured\n")
                return 1
            print(f"\n✅ Backed up {summary.total_files} files to {summary.backup_path}\n")
            return 0

        orchestrator = DailyEmailOrchestrator(store, microsoft365, settings)

        if parsed_args.command == "preview":
            if parsed_args.weekly:
                email = orchestrator.weekly_summary(parsed_args.recipient_id)
            else:
                email = orchestrator.preview(parsed_args.recipient_id)
            print(f"To: {email.to}")
            print(f"Subject: {email.subject}\n")
            print(email.body)
            return 0

        print("\n🚀 Generating daily emails...\n")
        microsoft365.initialize()
        result = orchestrator.generate_all_daily_emails()
        print_results(result, verbose=parsed_args.verbose)
        return 1 if result.failed else 0

    except DashboardError as e:
        logger.error(f"{e}")
        print(f"\n❌ Error: {e}\n")
        return 1
    except Exception as e:
        logger.exception("Fatal error")
        print(f"\n❌ Error: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
