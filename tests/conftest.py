"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from infinibadger.exceptions import FetchError, SourceUnavailableError  # noqa: E402
from infinibadger.source.base import LogFileDescriptor, LogPortion, LogSource  # noqa: E402


class FakeLogSource(LogSource):
    """In-memory log source.

    Serves ``contents`` in ``chunk_size`` pieces using ``"<position>:<offset>"``
    markers, unless a file has scripted portions, which are returned in order.
    """

    def __init__(
        self,
        listing: Optional[Sequence[LogFileDescriptor]] = None,
        contents: Optional[Dict[str, str]] = None,
        chunk_size: int = 50,
        scripted: Optional[Dict[str, List[LogPortion]]] = None,
        pending: Optional[bool] = None,
    ):
        self.listing = list(listing or [])
        self.contents = dict(contents or {})
        self.chunk_size = chunk_size
        self.scripted = {name: list(portions) for name, portions in (scripted or {}).items()}
        self.pending = pending
        self.list_calls: List[int] = []
        self.fetch_calls: List[tuple] = []
        self.fail_list = False
        self.fail_fetch_at: Optional[int] = None

    def list_files(self, since: int) -> List[LogFileDescriptor]:
        self.list_calls.append(since)
        if self.fail_list:
            raise SourceUnavailableError("listing failed", instance="fake", since=since)
        return [d for d in self.listing if d.last_written >= since]

    def fetch_portion(self, name: str, marker: str) -> LogPortion:
        self.fetch_calls.append((name, marker))
        if self.fail_fetch_at is not None and len(self.fetch_calls) == self.fail_fetch_at:
            raise FetchError("portion failed", log_file=name, marker=marker)

        if self.scripted.get(name):
            return self.scripted[name].pop(0)

        content = self.contents[name]
        position, _, offset_text = marker.partition(":")
        offset = int(offset_text) if offset_text else 0
        data = content[offset:offset + self.chunk_size]
        end = offset + len(data)
        pending = end < len(content) if self.pending is None else self.pending
        return LogPortion(data=data, marker=f"{position}:{end}", additional_data_pending=pending)


class FailingSink:
    """Binary sink that raises after ``fail_after`` successful writes."""

    def __init__(self, fail_after: int = 0):
        self.fail_after = fail_after
        self.chunks: List[bytes] = []

    def write(self, payload: bytes) -> int:
        if len(self.chunks) >= self.fail_after:
            raise OSError(28, "No space left on device")
        self.chunks.append(payload)
        return len(payload)


@pytest.fixture
def fake_source_factory():
    return FakeLogSource


@pytest.fixture
def failing_sink_factory():
    return FailingSink
