"""CLI entrypoint for infinibadger.

This file wires together:

- Config loading (YAML file + command line flags)
- The static report server
- The download loop (RDS log download, pgBadger run, temp file cleanup)
- Optional durable download state
"""

import argparse
import logging
import platform
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from infinibadger import __version__
from infinibadger.config import BadgerConfig, load_config, validate_for_run
from infinibadger.exceptions import ConfigValidationError, StateManagementError
from infinibadger.logging_config import setup_logging
from infinibadger.publisher import ReportServer
from infinibadger.scheduler import CycleRunner
from infinibadger.source.rds import RDSLogSource
from infinibadger.state.store import StateStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="infinibadger",
        description="Continuously download RDS PostgreSQL logs and publish pgBadger reports",
    )

    parser.add_argument(
        "--config",
        help="Path to a YAML config file. Command line flags override its values.",
    )
    parser.add_argument(
        "--listen-address",
        help="Address to listen on for the HTTP server (default: :8080)",
    )
    parser.add_argument(
        "--download-interval",
        help="How often to query for new files, e.g. 15m or 900 (default: 15m)",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit",
    )

    # AWS
    parser.add_argument("--aws-access-key", help="AWS access key")
    parser.add_argument("--aws-secret-key", help="AWS secret key")
    parser.add_argument("--aws-region", help="AWS geographical region (default: us-east-1)")
    parser.add_argument("--instance", help="RDS instance identifier")

    # pgBadger
    parser.add_argument("--pgb-outdir", help="pgBadger output directory (default: outdir)")
    parser.add_argument(
        "--pgb-retention",
        type=int,
        help="Number of weeks to keep reports (default: 4)",
    )
    parser.add_argument(
        "--pgb-prefix",
        help="log_line_prefix as defined in your postgresql.conf",
    )
    parser.add_argument(
        "--no-anonymize",
        dest="anonymize",
        action="store_const",
        const=False,
        help="Do not anonymize query parameters in reports",
    )
    parser.add_argument(
        "--no-start-monday",
        dest="start_monday",
        action="store_const",
        const=False,
        help="Start weekly reports on Sunday instead of Monday",
    )

    parser.add_argument(
        "--state-file",
        help="Persist download progress to this path or s3://bucket/key",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single download cycle without the HTTP server and exit",
    )
    parser.add_argument(
        "--log-format",
        choices=["human", "json", "simple"],
        default=None,
        help="Log format (default: human). Can also set via INFINIBADGER_LOG_FORMAT env var",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG level) logging",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Suppress all output except errors"
    )
    return parser


def cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed flags onto the nested config layout."""
    return {
        "listen_address": args.listen_address,
        "download_interval": args.download_interval,
        "state_file": args.state_file,
        "source": {
            "instance": args.instance,
            "region": args.aws_region,
            "access_key": args.aws_access_key,
            "secret_key": args.aws_secret_key,
        },
        "analysis": {
            "outdir": args.pgb_outdir,
            "retention_weeks": args.pgb_retention,
            "prefix": args.pgb_prefix,
            "anonymize": args.anonymize,
            "start_monday": args.start_monday,
        },
    }


def build_runner(cfg: BadgerConfig) -> CycleRunner:
    state_store = StateStore(cfg.state_file) if cfg.state_file else None
    return CycleRunner(
        source_factory=lambda: RDSLogSource.from_config(cfg.source),
        analysis_settings=cfg.analysis,
        state_store=state_store,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print("infinibadger version", __version__)
        print("python version", platform.python_version())
        return 0

    log_level: Optional[int] = None
    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR
    setup_logging(level=log_level, format_type=args.log_format)

    try:
        cfg = load_config(args.config, cli_overrides(args))
        validate_for_run(cfg)
    except ConfigValidationError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        runner = build_runner(cfg)
    except StateManagementError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.once:
        return 0 if runner.run_cycle() else 1

    server = ReportServer(cfg.listen_address, cfg.analysis.outdir)
    try:
        server.start()
    except (OSError, ValueError) as e:
        print(f"failed to start http server: {e}", file=sys.stderr)
        return 1

    stop = threading.Event()

    def _handle_signal(signum: int, frame: Any) -> None:
        logger.info("Received signal %d, stopping after the current cycle", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        runner.run_forever(cfg.download_interval, stop_event=stop)
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
