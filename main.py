#!/usr/bin/env python3
"""Batch Device Import CLI.

Registers the devices listed in a hardware-hash CSV file with the
device-management service and reports the outcome of every device.

Architecture:
    - CsvDeviceReader turns the file into DeviceRecords
    - TokenManager handles the OAuth2 client credentials flow
    - GraphClient is the shared HTTP layer; DeviceIdentityManager and
      GraphRegistrationAdapter compose it
    - ImportOrchestrator runs the import in a background task and streams
      progress to the console through the status event bus

Environment Variables Required:
    - AUTOPILOT_TENANT_ID: Directory tenant id
    - AUTOPILOT_CLIENT_ID: OAuth2 client ID
    - AUTOPILOT_CLIENT_SECRET: OAuth2 client secret
    - AUTOPILOT_BASE_URL: API base URL (optional)

Example Usage:
    $ python main.py devices.csv                      # Import devices
    $ python main.py devices.csv --validate-only      # Check the file only
    $ python main.py devices.csv --report out.json    # Also write a JSON report
    $ python main.py devices.csv --concurrency 4      # Four devices at a time

Exit Codes:
    0: every device imported
    1: at least one device failed or an invalid row was skipped
    2: the run could not start (configuration, credentials, no valid record)
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from src.autopilot.api import (
    AutopilotError,
    DeviceIdentityManager,
    GraphClient,
    TokenManager,
)
from src.autopilot.importer import ImportSettings
from src.autopilot.importer.adapters import (
    ConsoleObserver,
    CsvDeviceReader,
    GraphRegistrationAdapter,
)
from src.autopilot.importer.domain import ImportSummary
from src.autopilot.importer.use_cases import ImportOrchestrator, RecordValidator

logger = logging.getLogger("autopilot.main")

EXIT_OK = 0
EXIT_DEVICE_FAILURES = 1
EXIT_NOT_STARTED = 2


def build_settings(args: argparse.Namespace) -> ImportSettings:
    """Environment settings with command-line overrides applied."""
    settings = ImportSettings.from_env()
    overrides = {
        "poll_interval": args.poll_interval,
        "max_attempts": args.max_attempts,
        "max_concurrency": args.concurrency,
    }
    values = {
        "poll_interval": settings.poll_interval,
        "max_attempts": settings.max_attempts,
        "max_concurrency": settings.max_concurrency,
        "drain_interval": settings.drain_interval,
        "min_identifier_length": settings.min_identifier_length,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return ImportSettings(**values)


def validate_only(records, settings: ImportSettings) -> int:
    """Print the validation report without importing anything."""
    report = RecordValidator(settings.min_identifier_length).validate(records)

    print(
        f"[Main] {report.total_records} record(s): "
        f"{report.valid_count} valid, {report.invalid_count} invalid"
    )
    for issue in report.issues:
        print(f"[Main]   row {issue.row_number}: {issue.field}: {issue.message}")

    return EXIT_OK if report.is_valid else EXIT_NOT_STARTED


def write_report(summary: ImportSummary, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(summary.to_dict(), f, indent=2)
    print(f"[Main] Report saved to {path}")


async def run_import(args: argparse.Namespace) -> int:
    """Read, validate and import the device file.

    Returns:
        Process exit code
    """
    try:
        settings = build_settings(args)
        records = CsvDeviceReader().read_path(args.file)

        if args.validate_only:
            return validate_only(records, settings)

        token_manager = TokenManager()
        await token_manager.get_token()

        async with GraphClient(token_manager) as client:
            orchestrator = ImportOrchestrator(
                client=GraphRegistrationAdapter(DeviceIdentityManager(client)),
                credentials=token_manager,
                observer=ConsoleObserver(),
                settings=settings,
            )
            summary = await orchestrator.run(records)

    except AutopilotError as e:
        logger.error(f"Import not started: {e}")
        print(f"[Main] Import not started: {e.message}")
        return EXIT_NOT_STARTED

    if args.report:
        write_report(summary, args.report)

    print(
        f"\n[Main] {summary.success_count}/{summary.total_devices} imported, "
        f"{summary.failure_count} failed, {summary.skipped_records} skipped "
        f"in {summary.duration_seconds:.1f} seconds"
    )
    if summary.failure_count or summary.skipped_records:
        return EXIT_DEVICE_FAILURES
    return EXIT_OK


def main():
    parser = argparse.ArgumentParser(
        description="Import device hardware hashes into the device-management service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py devices.csv                      # Import devices
  python main.py devices.csv --validate-only      # Check the file only
  python main.py devices.csv --report out.json    # Also write a JSON report
        """
    )

    parser.add_argument(
        "file",
        type=str,
        help="CSV file with serial number and hardware hash columns",
    )

    run_group = parser.add_argument_group("Run Options")
    run_group.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate the file and exit without importing",
    )
    run_group.add_argument(
        "--poll-interval",
        type=float,
        metavar="SECONDS",
        help="Seconds between status checks (default 15)",
    )
    run_group.add_argument(
        "--max-attempts",
        type=int,
        metavar="N",
        help="Status checks per device before giving up (default 20)",
    )
    run_group.add_argument(
        "--concurrency",
        type=int,
        metavar="N",
        help="Devices imported at once (default 1, file order)",
    )

    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--report",
        type=str,
        metavar="FILE",
        help="Save a JSON report of every device to FILE",
    )
    output_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if not Path(args.file).is_file():
        print(f"[Main] File not found: {args.file}")
        sys.exit(EXIT_NOT_STARTED)

    sys.exit(asyncio.run(run_import(args)))


if __name__ == "__main__":
    main()
