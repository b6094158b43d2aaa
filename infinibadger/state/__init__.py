"""Download state and its optional durable checkpoint."""

from infinibadger.state.download_state import BEGINNING_MARKER, DownloadState
from infinibadger.state.store import StateStore

__all__ = ["BEGINNING_MARKER", "DownloadState", "StateStore"]
