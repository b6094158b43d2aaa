"""Fixed-interval download cycles.

Each cycle drains new log data into its own temporary file, hands that file
to the analysis step and removes it afterwards, whatever the outcome. A failed
cycle is logged and abandoned; the download state keeps the progress of the
last written chunk so the next cycle resumes from there.

Bytes a failed cycle already wrote are deleted with its temporary file and
never analyzed, while the saved marker points past them. Those log lines are
skipped, not re-fetched: progress is never rewound.
"""

import logging
import os
import tempfile
import threading
from typing import Any, Callable, Optional

from infinibadger.analysis import run_analysis
from infinibadger.exceptions import AnalysisError, InfinibadgerError, StateManagementError
from infinibadger.fetch import drain_cycle
from infinibadger.logging_config import log_exception
from infinibadger.source.base import LogSource
from infinibadger.state.download_state import DownloadState
from infinibadger.state.store import StateStore

logger = logging.getLogger(__name__)

TEMP_PREFIX = "infinibadger"


class CycleRunner:
    """Runs download cycles one at a time against a long-lived state."""

    def __init__(
        self,
        source_factory: Callable[[], LogSource],
        analysis_settings: Any,
        state: Optional[DownloadState] = None,
        state_store: Optional[StateStore] = None,
        analyze: Callable[[Any, str], None] = run_analysis,
        temp_dir: Optional[str] = None,
    ):
        """
        Args:
            source_factory: Builds the log source for a cycle
            analysis_settings: Passed through to ``analyze``
            state: Initial download state (loaded from ``state_store`` if omitted)
            state_store: Optional durable checkpoint, saved after every drain
            analyze: Analysis step, called with the settings and the log path
            temp_dir: Directory for per-cycle temporary files
        """
        self.source_factory = source_factory
        self.analysis_settings = analysis_settings
        self.state_store = state_store
        if state is None:
            state = state_store.load() if state_store is not None else DownloadState()
        self.state = state
        self.analyze = analyze
        self.temp_dir = temp_dir
        self.cycle = 0

    def _save_state(self) -> None:
        if self.state_store is None:
            return
        try:
            self.state_store.save(self.state)
        except StateManagementError as e:
            logger.warning("failed to save download state err=%s", e)

    def run_cycle(self) -> bool:
        """Run one download + analysis cycle.

        Returns:
            True if the cycle completed, False if it was abandoned
        """
        self.cycle += 1
        tag = {"cycle": self.cycle}
        logger.info("starting download state=%s", self.state.to_dict(), extra=tag)

        try:
            log_file = tempfile.NamedTemporaryFile(
                prefix=TEMP_PREFIX, dir=self.temp_dir, delete=False
            )
        except OSError as e:
            logger.error("failed to create temp file err=%s", e, extra=tag)
            return False

        path = log_file.name
        logger.info("created temp file %s", path)

        try:
            try:
                with log_file:
                    drain_cycle(self.source_factory(), self.state, log_file)
            except InfinibadgerError as e:
                logger.error(
                    "failed to download logs err=%s",
                    e,
                    extra={**tag, "error_code": e.error_code, "log_file": self.state.current_file},
                )
                self._save_state()
                return False

            self._save_state()

            try:
                self.analyze(self.analysis_settings, path)
            except AnalysisError as e:
                logger.error("failed to run pgbadger err=%s", e, extra={**tag, "error_code": e.error_code})
                return False

            return True
        except Exception as e:
            log_exception(logger, "Unexpected error in download cycle", e)
            return False
        finally:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("failed to remove temp file %s err=%s", path, e)

    def run_forever(
        self,
        interval: float,
        stop_event: Optional[threading.Event] = None,
        max_cycles: Optional[int] = None,
    ) -> int:
        """Run cycles until stopped.

        The first cycle starts immediately. The wait for the next cycle only
        starts once the current one has finished, so cycles never overlap.

        Returns:
            Number of cycles run
        """
        stop = stop_event or threading.Event()
        cycles = 0
        while not stop.is_set():
            self.run_cycle()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            if stop.wait(interval):
                break
        return cycles
