"""Run pgBadger against a downloaded log file."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any, List

from infinibadger.exceptions import AnalysisError

logger = logging.getLogger(__name__)


def build_command(settings: Any, executable: str, log_path: str) -> List[str]:
    """Build the pgBadger argument list.

    Args:
        settings: An :class:`~infinibadger.config.AnalysisConfig`
        executable: Resolved path of the pgbadger executable
        log_path: Log file to analyze
    """
    outdir = Path(settings.outdir).resolve()
    args = [executable, "--incremental"]
    if settings.anonymize:
        args.append("--anonymize")
    if settings.start_monday:
        args.append("--start-monday")
    args.extend([
        "--prefix", settings.prefix,
        "--retention", str(settings.retention_weeks),
        "--outdir", str(outdir),
        log_path,
    ])
    return args


def run_analysis(settings: Any, log_path: str) -> None:
    """Run pgBadger synchronously and log its combined output.

    The output directory (including parents) is created first.

    Raises:
        AnalysisError: If pgBadger is missing, cannot start, or exits nonzero
    """
    outdir = Path(settings.outdir).resolve()
    try:
        outdir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise AnalysisError(
            f"Failed to create output directory {outdir}", original_error=e
        ) from e

    executable = shutil.which(settings.executable)
    if executable is None:
        raise AnalysisError(f"Executable not found on PATH: {settings.executable}")

    command = build_command(settings, executable, log_path)
    logger.info("Running %s", " ".join(command))

    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as e:
        raise AnalysisError(
            f"Failed to start {settings.executable}",
            command=" ".join(command),
            original_error=e,
        ) from e

    for line in (completed.stdout or "").strip("\n").splitlines():
        logger.info("pgbadger: %s", line)

    if completed.returncode != 0:
        raise AnalysisError(
            f"{settings.executable} exited with status {completed.returncode}",
            command=" ".join(command),
            returncode=completed.returncode,
        )
