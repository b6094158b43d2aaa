"""Tests for the incremental download loop."""

from __future__ import annotations

import io

import pytest

from infinibadger.exceptions import FetchError, SinkError, SourceUnavailableError
from infinibadger.fetch import (
    TRUNCATION_SUFFIX,
    drain_cycle,
    drain_file,
    next_marker,
    strip_truncation,
)
from infinibadger.source.base import LogFileDescriptor, LogPortion
from infinibadger.state.download_state import BEGINNING_MARKER, DownloadState

LOG_NAME = "error/postgresql.log.2024-01-01-00"


def _content(size: int, seed: str = "abcdefghij") -> str:
    return (seed * (size // len(seed) + 1))[:size]


class TestHelpers:
    def test_truncation_suffix_is_literal(self) -> None:
        assert TRUNCATION_SUFFIX == " [Your log message was truncated]\n"
        assert len(TRUNCATION_SUFFIX) == 34

    def test_strip_truncation_removes_suffix(self) -> None:
        assert strip_truncation("SELECT 1" + TRUNCATION_SUFFIX) == "SELECT 1"

    def test_strip_truncation_leaves_other_data(self) -> None:
        data = "LOG:  duration: 1.2 ms\n"
        assert strip_truncation(data) == data
        # Partial suffix is not stripped
        assert strip_truncation("x [Your log message was") == "x [Your log message was"

    def test_strip_truncation_only_strips_one_suffix(self) -> None:
        data = "a" + TRUNCATION_SUFFIX + TRUNCATION_SUFFIX
        assert strip_truncation(data) == "a" + TRUNCATION_SUFFIX

    @pytest.mark.parametrize(
        "server_marker, written, expected",
        [
            ("4:2048", 3000, "4:3000"),
            ("0:50", 50, "0:50"),
            ("0", 10, "0:10"),
            ("", 5, "0:5"),
        ],
    )
    def test_next_marker(self, server_marker: str, written: int, expected: str) -> None:
        assert next_marker(server_marker, written) == expected


class TestDrainFile:
    def test_end_to_end_two_chunks(self, fake_source_factory) -> None:
        name = "postgresql.log.2024-01-01-00"
        first, second = "a" * 50, "b" * 70
        descriptor = LogFileDescriptor(name=name, size=120, last_written=1704067200000)
        source = fake_source_factory(
            listing=[descriptor],
            scripted={
                name: [
                    LogPortion(first, "0:50", additional_data_pending=True),
                    LogPortion(second, "0:120", additional_data_pending=False),
                ]
            },
        )
        state = DownloadState()
        sink = io.BytesIO()

        result = drain_cycle(source, state, sink)

        assert [marker for _, marker in source.fetch_calls] == [BEGINNING_MARKER, "0:50"]
        assert sink.getvalue() == (first + second).encode()
        assert len(sink.getvalue()) == 120
        assert state.bytes_written == 120
        assert state.watermark == 1704067200000
        assert result.files == [name]
        assert result.bytes_written == 120

    def test_truncated_chunk_is_stripped(self, fake_source_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=8, last_written=1)
        source = fake_source_factory(
            scripted={LOG_NAME: [LogPortion("SELECT 1" + TRUNCATION_SUFFIX, "0:42")]},
        )
        state = DownloadState()
        state.start_file(LOG_NAME)
        sink = io.BytesIO()

        written = drain_file(source, descriptor, state, sink)

        assert sink.getvalue() == b"SELECT 1"
        assert written == 8
        assert state.bytes_written == 8
        assert state.marker == "0:8"

    def test_pending_flag_true_but_file_complete(self, fake_source_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=120, last_written=1)
        source = fake_source_factory(
            scripted={
                LOG_NAME: [
                    LogPortion("x" * 120, "0:120", additional_data_pending=True),
                    LogPortion("should never be fetched", "0:999", additional_data_pending=True),
                ]
            },
        )
        state = DownloadState()
        state.start_file(LOG_NAME)
        sink = io.BytesIO()

        drain_file(source, descriptor, state, sink)

        assert len(source.fetch_calls) == 1
        assert sink.getvalue() == b"x" * 120

    def test_pending_flag_false_but_file_incomplete(self, fake_source_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=120, last_written=1)
        source = fake_source_factory(
            listing=[descriptor],
            contents={LOG_NAME: _content(120)},
            chunk_size=50,
            pending=False,
        )
        state = DownloadState()
        state.start_file(LOG_NAME)
        sink = io.BytesIO()

        drain_file(source, descriptor, state, sink)

        assert [marker for _, marker in source.fetch_calls] == ["0", "0:50", "0:100"]
        assert sink.getvalue() == _content(120).encode()
        assert state.bytes_written == 120

    def test_empty_portion_ends_file(self, fake_source_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=500, last_written=1)
        source = fake_source_factory(
            scripted={LOG_NAME: [LogPortion("abc", "0:3"), LogPortion(None, "0:3")]},
        )
        state = DownloadState()
        state.start_file(LOG_NAME)
        sink = io.BytesIO()

        written = drain_file(source, descriptor, state, sink)

        assert written == 3
        assert len(source.fetch_calls) == 2
        assert state.marker == "0:3"

    def test_bare_truncation_suffix_ends_file(self, fake_source_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=100, last_written=1)
        source = fake_source_factory(
            scripted={LOG_NAME: [LogPortion(TRUNCATION_SUFFIX, "0:34") for _ in range(3)]},
        )
        state = DownloadState()
        state.start_file(LOG_NAME)
        sink = io.BytesIO()

        written = drain_file(source, descriptor, state, sink)

        assert written == 0
        assert len(source.fetch_calls) == 1
        assert sink.getvalue() == b""
        assert state.marker == BEGINNING_MARKER

    def test_bytes_are_counted_after_utf8_encoding(self, fake_source_factory) -> None:
        data = "käse\n"
        descriptor = LogFileDescriptor(name=LOG_NAME, size=len(data.encode("utf-8")), last_written=1)
        source = fake_source_factory(scripted={LOG_NAME: [LogPortion(data, "0:6")]})
        state = DownloadState()
        state.start_file(LOG_NAME)
        sink = io.BytesIO()

        drain_file(source, descriptor, state, sink)

        assert state.bytes_written == 6
        assert sink.getvalue().decode("utf-8") == data


class TestDrainCycle:
    def test_resume_after_fetch_error(self, fake_source_factory) -> None:
        content = _content(120)
        descriptor = LogFileDescriptor(name=LOG_NAME, size=120, last_written=10)
        source = fake_source_factory(listing=[descriptor], contents={LOG_NAME: content})
        source.fail_fetch_at = 2
        state = DownloadState()
        first_sink = io.BytesIO()

        with pytest.raises(FetchError):
            drain_cycle(source, state, first_sink)

        assert state.current_file == LOG_NAME
        assert state.bytes_written == 50
        assert state.marker == "0:50"
        assert state.watermark == 0

        source.fail_fetch_at = None
        source.fetch_calls.clear()
        second_sink = io.BytesIO()
        drain_cycle(source, state, second_sink)

        assert source.fetch_calls[0] == (LOG_NAME, "0:50")
        assert len(second_sink.getvalue()) == 120 - 50
        assert (first_sink.getvalue() + second_sink.getvalue()).decode() == content
        assert state.watermark == 10

    def test_sink_error_keeps_last_good_state(self, fake_source_factory, failing_sink_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=120, last_written=10)
        source = fake_source_factory(listing=[descriptor], contents={LOG_NAME: _content(120)})
        state = DownloadState()
        sink = failing_sink_factory(fail_after=1)

        with pytest.raises(SinkError) as excinfo:
            drain_cycle(source, state, sink)

        assert excinfo.value.error_code == "SNK001"
        assert isinstance(excinfo.value.original_error, OSError)
        assert state.bytes_written == 50
        assert state.marker == "0:50"
        assert state.watermark == 0

    def test_listing_failure_leaves_state_untouched(self, fake_source_factory) -> None:
        source = fake_source_factory()
        source.fail_list = True
        state = DownloadState(watermark=5, current_file=LOG_NAME, marker="0:7", bytes_written=7)
        before = state.to_dict()

        with pytest.raises(SourceUnavailableError):
            drain_cycle(source, state, io.BytesIO())

        assert state.to_dict() == before
        assert source.fetch_calls == []

    def test_watermark_follows_last_listed_file(self, fake_source_factory) -> None:
        listing = [
            LogFileDescriptor(name="log.1", size=10, last_written=100),
            LogFileDescriptor(name="log.2", size=10, last_written=200),
            LogFileDescriptor(name="log.3", size=10, last_written=300),
        ]
        contents = {d.name: _content(10, d.name[-1]) for d in listing}
        source = fake_source_factory(listing=listing, contents=contents)
        state = DownloadState()
        sink = io.BytesIO()

        result = drain_cycle(source, state, sink)

        assert state.watermark == 300
        assert result.files == ["log.1", "log.2", "log.3"]
        assert sink.getvalue() == ("1" * 10 + "2" * 10 + "3" * 10).encode()

    def test_relisted_file_with_newer_timestamp_is_resumed(self, fake_source_factory) -> None:
        listing = [
            LogFileDescriptor(name="log.1", size=10, last_written=100),
            LogFileDescriptor(name="log.2", size=10, last_written=200),
        ]
        source = fake_source_factory(
            listing=listing,
            contents={"log.1": "1" * 10, "log.2": "2" * 10},
        )
        state = DownloadState()
        drain_cycle(source, state, io.BytesIO())
        assert state.watermark == 200

        # log.2 keeps growing
        source.listing = [LogFileDescriptor(name="log.2", size=25, last_written=260)]
        source.contents["log.2"] = "2" * 10 + "n" * 15
        source.fetch_calls.clear()
        sink = io.BytesIO()

        drain_cycle(source, state, sink)

        assert source.list_calls[-1] == 200
        assert source.fetch_calls[0] == ("log.2", "0:10")
        assert sink.getvalue() == b"n" * 15
        assert state.watermark == 260

    def test_relisted_unchanged_file_writes_nothing(self, fake_source_factory) -> None:
        descriptor = LogFileDescriptor(name=LOG_NAME, size=20, last_written=100)
        source = fake_source_factory(listing=[descriptor], contents={LOG_NAME: _content(20)})
        state = DownloadState()
        drain_cycle(source, state, io.BytesIO())

        sink = io.BytesIO()
        result = drain_cycle(source, state, sink)

        assert sink.getvalue() == b""
        assert result.bytes_written == 0
        assert state.bytes_written == 20

    def test_file_switch_resets_progress_before_fetch(self, fake_source_factory) -> None:
        listing = [
            LogFileDescriptor(name="log.1", size=30, last_written=100),
            LogFileDescriptor(name="log.2", size=30, last_written=200),
        ]
        source = fake_source_factory(
            listing=listing,
            contents={"log.1": _content(30), "log.2": _content(30)},
            chunk_size=20,
        )
        state = DownloadState(watermark=50, current_file="log.0", marker="3:999", bytes_written=999)

        drain_cycle(source, state, io.BytesIO())

        first_fetch_per_file = {}
        for name, marker in source.fetch_calls:
            first_fetch_per_file.setdefault(name, marker)
        assert first_fetch_per_file == {"log.1": BEGINNING_MARKER, "log.2": BEGINNING_MARKER}
        assert state.current_file == "log.2"
        assert state.bytes_written == 30

    def test_empty_listing_is_a_noop(self, fake_source_factory) -> None:
        source = fake_source_factory()
        state = DownloadState(watermark=42)

        result = drain_cycle(source, state, io.BytesIO())

        assert result.files == []
        assert state.watermark == 42
        assert source.list_calls == [42]
