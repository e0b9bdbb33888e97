#!/usr/bin/env python3
"""Install uploaded certificates and reload the services that consume them."""

import argparse
import signal
import sys
from pathlib import Path

from cert_installer.lib.config import InstallerConfig
from cert_installer.lib.errors import InstallerError
from cert_installer.lib.logging_config import LOGGER, configure_logging
from cert_installer.lib.pipeline import run_pipeline

DEFAULT_CONFIG = Path("/etc/install_certificates.json")


def _exit_on_signal(signum, _frame) -> None:
    """Turn termination signals into SystemExit so cleanup still runs."""
    raise SystemExit(128 + signum)


def install_signal_handlers() -> None:
    for signum in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(signum, _exit_on_signal)


def load_config(args: argparse.Namespace) -> InstallerConfig:
    """Load JSON configuration (if any) and apply command-line overrides."""
    if args.config is not None:
        config = InstallerConfig.from_json_file(args.config)
    elif DEFAULT_CONFIG.exists():
        config = InstallerConfig.from_json_file(DEFAULT_CONFIG)
    else:
        config = InstallerConfig()

    if args.upload_dir is not None:
        config.upload_directory = args.upload_dir
    if args.settle_delay is not None:
        config.settle_delay_seconds = args.settle_delay
    if args.log_level is not None:
        config.log_level = args.log_level
    return config


def main() -> int:
    """Run the certificate installation pipeline once.

    Returns:
        Exit code (0 when the pipeline ran or another run was active, 1 when it could not run)
    """
    parser = argparse.ArgumentParser(
        description="Install uploaded certificates and reload consumer services"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"JSON configuration file (default: {DEFAULT_CONFIG} if present)",
    )
    parser.add_argument(
        "--upload-dir",
        type=Path,
        default=None,
        help="Override the upload directory",
    )
    parser.add_argument(
        "--settle-delay",
        type=float,
        default=None,
        help="Seconds to wait for concurrent uploads to finish before staging",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "NOTICE", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Log level (default: from configuration, INFO)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate uploads without installing, reloading or deleting anything",
    )
    args = parser.parse_args()

    install_signal_handlers()

    try:
        config = load_config(args)
        configure_logging(config.log_level, config.syslog_facility, config.syslog_address)

        if args.dry_run:
            LOGGER.info("DRY RUN - nothing will be installed, reloaded or deleted")

        result = run_pipeline(config, dry_run=args.dry_run)

        if result.ran and result.rejected_entries:
            LOGGER.warning("Rejected non-regular uploads: %s", result.rejected_entries)
        return 0

    except (InstallerError, ValueError) as e:
        LOGGER.error("Certificate installation failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
