"""Download progress for the RDS log fetch loop.

The record tracks four things:

- ``watermark``: the ``LastWritten`` timestamp (epoch milliseconds, as the
  RDS API reports it) used as the lower bound of the next listing call
- ``current_file``: the log file currently being drained
- ``marker``: continuation token for the next portion of ``current_file``
- ``bytes_written``: bytes of ``current_file`` already written to a sink

``marker`` and ``bytes_written`` only mean something relative to
``current_file``; switching files goes through :meth:`DownloadState.start_file`
which resets both together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from infinibadger.exceptions import StateManagementError

logger = logging.getLogger(__name__)

__all__ = ["BEGINNING_MARKER", "DownloadState"]

BEGINNING_MARKER = "0"


@dataclass
class DownloadState:
    """Mutable download progress, owned by a single fetch loop."""

    watermark: int = 0
    current_file: str = ""
    marker: str = BEGINNING_MARKER
    bytes_written: int = 0

    def start_file(self, name: str) -> bool:
        """Make ``name`` the file in progress.

        Returns True when this was a switch (progress reset), False when
        ``name`` is already the current file and progress is kept for resuming.
        """
        if name == self.current_file:
            return False
        self.current_file = name
        self.marker = BEGINNING_MARKER
        self.bytes_written = 0
        return True

    def advance(self, marker: str, written: int) -> None:
        """Record one chunk that has been written to the sink."""
        self.bytes_written += written
        self.marker = marker

    def advance_watermark(self, timestamp: int) -> None:
        if timestamp < self.watermark:
            logger.warning(
                "Ignoring watermark regression from %d to %d", self.watermark, timestamp
            )
            return
        self.watermark = timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "watermark": self.watermark,
            "current_file": self.current_file,
            "marker": self.marker,
            "bytes_written": self.bytes_written,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadState":
        """Create from a dictionary produced by :meth:`to_dict`.

        Raises:
            StateManagementError: if a field has the wrong type or the
                record is incoherent
        """
        if not isinstance(data, dict):
            raise StateManagementError("Download state must be a JSON object")

        watermark = data.get("watermark", 0)
        current_file = data.get("current_file", "") or ""
        marker = data.get("marker", BEGINNING_MARKER) or BEGINNING_MARKER
        bytes_written = data.get("bytes_written", 0)

        for key, value in (("watermark", watermark), ("bytes_written", bytes_written)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise StateManagementError(
                    f"Download state field '{key}' must be a non-negative integer, got {value!r}"
                )
        if not isinstance(current_file, str) or not isinstance(marker, str):
            raise StateManagementError("Download state 'current_file' and 'marker' must be strings")
        if not current_file and (bytes_written or marker != BEGINNING_MARKER):
            raise StateManagementError(
                "Download state has progress but no current file"
            )

        return cls(
            watermark=watermark,
            current_file=current_file,
            marker=marker,
            bytes_written=bytes_written,
        )
