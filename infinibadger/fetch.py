"""Incremental log download loop.

One call to :func:`drain_cycle` lists every log file written since the
download watermark and appends each of them, in listing order, to a sink.
Progress is recorded in a :class:`DownloadState` after every chunk so an
aborted cycle resumes exactly where it stopped on the next call.

Two quirks of ``DownloadDBLogFilePortion`` shape this module:

- ``AdditionalDataPending`` can be False while data is still left. Whether to
  keep fetching is decided by comparing the bytes written against the size
  reported by the listing call, never by that flag.
- A clipped chunk ends with :data:`TRUNCATION_SUFFIX`. The suffix is not part
  of the log and is cut off before writing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO, List

from infinibadger.exceptions import SinkError
from infinibadger.logging_config import log_performance
from infinibadger.source.base import LogFileDescriptor, LogSource
from infinibadger.state.download_state import DownloadState
from infinibadger.time_utils import from_epoch_millis

logger = logging.getLogger(__name__)

__all__ = [
    "TRUNCATION_SUFFIX",
    "CycleResult",
    "drain_cycle",
    "drain_file",
    "next_marker",
    "strip_truncation",
]

TRUNCATION_SUFFIX = " [Your log message was truncated]\n"


@dataclass
class CycleResult:
    """Summary of one drain cycle."""

    state: DownloadState
    files: List[str] = field(default_factory=list)
    bytes_written: int = 0


def strip_truncation(data: str) -> str:
    """Remove the transport truncation suffix, if present.

    Exactly ``len(TRUNCATION_SUFFIX)`` characters are removed and only when the
    data ends with the full suffix.
    """
    if data.endswith(TRUNCATION_SUFFIX):
        return data[: len(data) - len(TRUNCATION_SUFFIX)]
    return data


def next_marker(server_marker: str, bytes_written: int) -> str:
    """Build the continuation marker for the next portion.

    RDS markers look like ``"<position>:<offset>"``. The position part returned
    by the server is kept and the offset is replaced with the number of bytes
    written so far, which accounts for stripped truncation suffixes.
    """
    position = server_marker.split(":", 1)[0] if server_marker else "0"
    return f"{position or '0'}:{bytes_written}"


def _write(sink: BinaryIO, payload: bytes, log_file: str) -> int:
    try:
        written = sink.write(payload)
    except (OSError, ValueError) as e:
        raise SinkError(
            f"Failed to write downloaded log data: {e}",
            log_file=log_file,
            original_error=e,
        ) from e
    return len(payload) if written is None else written


def drain_file(
    source: LogSource,
    descriptor: LogFileDescriptor,
    state: DownloadState,
    sink: BinaryIO,
) -> int:
    """Fetch the rest of one log file into ``sink``.

    ``state.current_file`` must already be ``descriptor.name``. Fetching starts
    at ``state.marker`` and stops once ``state.bytes_written`` reaches the size
    reported at listing time, or when a portion comes back with no log data.

    Returns:
        Number of bytes written to the sink by this call

    Raises:
        FetchError: If a portion fetch fails
        SinkError: If writing to the sink fails
    """
    start = state.bytes_written

    while True:
        portion = source.fetch_portion(descriptor.name, state.marker)
        if not portion.data:
            break

        payload = strip_truncation(portion.data).encode("utf-8")
        if not payload:
            # A bare truncation suffix carries no log data and would not move the marker.
            break

        written = _write(sink, payload, descriptor.name)
        state.advance(next_marker(portion.marker, state.bytes_written + written), written)

        # AdditionalDataPending is unreliable; the listed size decides.
        if state.bytes_written >= descriptor.size:
            break

    downloaded = state.bytes_written - start
    logger.info(
        "downloaded file=%s size=%d",
        descriptor.name,
        downloaded,
        extra={"log_file": descriptor.name, "marker": state.marker, "bytes_written": state.bytes_written},
    )
    return downloaded


def drain_cycle(source: LogSource, state: DownloadState, sink: BinaryIO) -> CycleResult:
    """Download every log file written since ``state.watermark`` into ``sink``.

    ``state`` is updated in place. On error the exception propagates and
    ``state`` reflects the last chunk that was fully written.

    Raises:
        SourceUnavailableError: If listing fails (``state`` is untouched)
        FetchError: If a portion fetch fails
        SinkError: If writing to the sink fails
    """
    started = time.monotonic()
    descriptors = source.list_files(state.watermark)
    result = CycleResult(state=state)

    for descriptor in descriptors:
        if state.start_file(descriptor.name):
            logger.debug("Starting new log file %s", descriptor.name)
        else:
            logger.debug(
                "Resuming log file %s at marker %s (%d bytes already written)",
                descriptor.name,
                state.marker,
                state.bytes_written,
            )

        result.bytes_written += drain_file(source, descriptor, state, sink)
        result.files.append(descriptor.name)

        # The listing returns the most recently written file again when it
        # changes after this call, so anchor on the file's own timestamp.
        state.advance_watermark(descriptor.last_written)
        logger.debug(
            "Watermark now %s",
            from_epoch_millis(state.watermark),
            extra={"watermark": state.watermark},
        )

    log_performance(
        logger,
        "drain_cycle",
        time.monotonic() - started,
        files=len(result.files),
        bytes_written=result.bytes_written,
    )
    return result
