"""
ACME PFX renewal agent — CLI entry point.

Usage:
  python main.py                     # Supervise forever (DELAY ms between cycles)
  python main.py --once              # Run one cycle and exit (non-zero on failure)
  python main.py --env-file prod.env # Read settings from another dotenv file
"""
from __future__ import annotations

import argparse
import logging
import sys

import structlog

log = logging.getLogger(__name__)


# ── Logging setup ─────────────────────────────────────────────────────────────


def configure_logging(level: str = "INFO") -> None:
    """Timestamped lines on stdout: ``[dd-mm-YYYY HH:MM] message``."""
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="%d-%m-%Y %H:%M"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
    )
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(message)s",
        datefmt="%d-%m-%Y %H:%M",
        stream=sys.stdout,
        force=True,
    )


# ── Runner ────────────────────────────────────────────────────────────────────


def build_supervisor(env_file: str | None):
    from acme_client.engine import AcmeClientEngine
    from config import load_settings
    from renewal.supervisor import RenewalSupervisor

    settings = load_settings(env_file=env_file)
    logging.getLogger().setLevel(settings.LOG_LEVEL)

    engine = AcmeClientEngine(
        directory_url=settings.ACME_DIRECTORY_URL,
        ca_bundle=settings.ACME_CA_BUNDLE,
        insecure=settings.ACME_INSECURE,
    )
    return RenewalSupervisor(settings, engine)


def main(argv: list[str] | None = None) -> int:
    from renewal.errors import ConfigurationError

    parser = argparse.ArgumentParser(
        description="Keep one domain's PKCS#12 certificate bundle valid via ACME",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --once
  python main.py --env-file /etc/pfx-renewer.env
        """,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one renewal cycle immediately and exit",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        metavar="PATH",
        help="dotenv file read in addition to the environment (default: .env)",
    )
    args = parser.parse_args(argv)

    configure_logging()
    structlog.get_logger().info("Let's Encrypt Client is starting...")

    try:
        supervisor = build_supervisor(args.env_file)
    except ConfigurationError as exc:
        log.error(" X. ERROR %s", exc)
        return 2

    if args.once:
        result = supervisor.run_cycle()
        supervisor.handle_result(result)
        return 0 if result.ok else 1

    supervisor.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
