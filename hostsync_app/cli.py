"""Command line entry point for hostsync."""

import argparse
import logging
import sys
from typing import List, Optional

from hostsync_app.config import CONFIG_FILE, Settings, load_settings
from hostsync_app.errors import ConfigError
from hostsync_app.logs import RunLog, build_sink, setup_logging
from hostsync_app.services.sync_service import SyncService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostsync",
        description="Keep a managed block of the hosts file in sync with a remote list.",
    )
    parser.add_argument(
        "--config", default=CONFIG_FILE, help="Path to the INI configuration file."
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--list-backups", action="store_true", help="List hosts file snapshots, newest first."
    )
    group.add_argument(
        "--restore",
        nargs="?",
        const="",
        metavar="NAME",
        help="Restore the hosts file from a snapshot (newest when NAME is omitted).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the requested command and return the process exit status."""
    args = build_parser().parse_args(argv)
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        defaults = Settings()
        log = RunLog(defaults.fallback_log)
        log.error(f"Configuration failed: {exc}")
        log.flush(build_sink(defaults))
        return 1
    logging.getLogger().setLevel(settings.log_level)

    service = SyncService(settings)
    if args.list_backups:
        records = service.list_backups()
        if not records:
            print(f"No backups found in {settings.backup_dir}")
        for record in records:
            print(f"{record.captured_at:%Y-%m-%d %H:%M:%S}  {record.path}")
        return 0
    if args.restore is not None:
        result = service.restore(args.restore or None)
    else:
        result = service.run()
    logger.debug("Run finished with %s", result.outcome.value)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
