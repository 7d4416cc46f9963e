"""
Tests for core types.
"""

from __future__ import annotations

import pytest

from mcache.exceptions import FetchError, StorageError, StreamConsumedError
from mcache.types import (
    CachedObject,
    DownloadProgress,
    FailureKind,
    FailureReason,
    LoadFailure,
    LoadState,
    can_transition,
    generate_id,
)


class TestDownloadProgress:
    """Tests for progress snapshots."""

    def test_percent_with_known_total(self) -> None:
        progress = DownloadProgress(received_bytes=250, total_bytes=1000)

        assert progress.percent == pytest.approx(25.0)
        assert not progress.indeterminate

    def test_unknown_total_is_indeterminate(self) -> None:
        progress = DownloadProgress(received_bytes=250)

        assert progress.percent is None
        assert progress.indeterminate
        assert "unknown" in str(progress)

    def test_zero_total_is_indeterminate(self) -> None:
        """A zero size hint must not produce a fabricated percentage."""
        progress = DownloadProgress(received_bytes=10, total_bytes=0)

        assert progress.percent is None
        assert progress.indeterminate

    def test_percent_is_capped(self) -> None:
        progress = DownloadProgress(received_bytes=1200, total_bytes=1000)

        assert progress.percent == 100.0


class TestFailureReason:
    """Tests for exception classification."""

    def test_fetch_error_is_network(self) -> None:
        reason = FailureReason.from_exception(
            FetchError("Network response was not ok: HTTP 404", context={"status_code": 404})
        )

        assert reason.kind == FailureKind.NETWORK
        assert reason.message == "Network response was not ok: HTTP 404"
        assert reason.context["status_code"] == 404

    def test_stream_consumed_is_network(self) -> None:
        reason = FailureReason.from_exception(StreamConsumedError("consumed"))
        assert reason.kind == FailureKind.NETWORK

    def test_storage_error_is_storage(self) -> None:
        reason = FailureReason.from_exception(StorageError("disk full"))
        assert reason.kind == FailureKind.STORAGE

    def test_other_exceptions_are_unknown(self) -> None:
        reason = FailureReason.from_exception(ValueError("bad chunk"))

        assert reason.kind == FailureKind.UNKNOWN
        assert reason.message == "bad chunk"
        assert reason.context["exception"] == "ValueError"

    def test_empty_message_falls_back_to_class_name(self) -> None:
        reason = FailureReason.from_exception(KeyError())
        assert reason.message == "KeyError"

    def test_failure_exposes_kind_and_message(self) -> None:
        failure = LoadFailure(
            key="v1", reason=FailureReason(FailureKind.STORAGE, "disk full")
        )

        assert not failure.ok
        assert failure.kind == FailureKind.STORAGE
        assert failure.message == "disk full"
        assert str(failure.reason) == "StorageError: disk full"


class TestLoadStateMachine:
    """Tests for allowed state transitions."""

    def test_cache_hit_path(self) -> None:
        path = [
            LoadState.IDLE,
            LoadState.CHECKING_CACHE,
            LoadState.CACHE_HIT,
            LoadState.READY,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target)

    def test_cache_miss_path(self) -> None:
        path = [
            LoadState.IDLE,
            LoadState.CHECKING_CACHE,
            LoadState.CACHE_MISS,
            LoadState.FETCHING,
            LoadState.ASSEMBLING,
            LoadState.PERSISTING,
            LoadState.READY,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target)

    def test_cannot_skip_persisting(self) -> None:
        assert not can_transition(LoadState.FETCHING, LoadState.READY)
        assert not can_transition(LoadState.CACHE_MISS, LoadState.READY)

    def test_any_live_state_can_fail(self) -> None:
        for state in LoadState:
            assert can_transition(state, LoadState.FAILED) == (not state.is_terminal)

    def test_terminal_states(self) -> None:
        assert LoadState.READY.is_terminal
        assert LoadState.FAILED.is_terminal
        assert not LoadState.PERSISTING.is_terminal


class TestHelpers:
    """Tests for small helpers."""

    def test_generate_id_prefix_and_uniqueness(self) -> None:
        ids = {generate_id("load") for _ in range(100)}

        assert len(ids) == 100
        assert all(i.startswith("load_") for i in ids)

    def test_cached_object_from_chunks(self) -> None:
        obj = CachedObject.from_chunks("v1", [b"ab", b"", b"cd"])

        assert obj.data == b"abcd"
        assert obj.size_bytes == 4
        assert "abcd" not in repr(obj)
