"""Tests for the call session registry."""

from __future__ import annotations

import threading

from rdio_bridge.models import CallIdentity
from rdio_bridge.registry import SessionRegistry

CALL = CallIdentity("1001", "2")
OTHER_CALL = CallIdentity("1002", "2")


def test_append_creates_session_and_preserves_order() -> None:
    """Payloads are concatenated in arrival order under one session."""
    registry = SessionRegistry()

    registry.append(CALL, b"\x00\x01", "F1")
    registry.append(CALL, b"\x02\x03", "F1")
    registry.append(CALL, b"\x04", "F2")

    session = registry.finalize(CALL)
    assert session is not None
    assert session.pcm == b"\x00\x01\x02\x03\x04"
    assert session.channel == "F2"
    assert session.frame_count == 3


def test_finalize_unknown_identity_returns_none() -> None:
    """A release with no prior audio neither creates a session nor raises."""
    registry = SessionRegistry()

    assert registry.finalize(CallIdentity("9", "9")) is None
    assert len(registry) == 0
    assert CallIdentity("9", "9") not in registry


def test_finalize_is_exactly_once() -> None:
    """Back-to-back finalize calls yield one session then nothing."""
    registry = SessionRegistry()
    registry.append(CALL, b"\x00\x01", "F1")

    first = registry.finalize(CALL)
    second = registry.finalize(CALL)

    assert first is not None
    assert second is None


def test_sequential_calls_on_same_identity_are_independent() -> None:
    """A new call after teardown starts with an empty buffer."""
    registry = SessionRegistry()
    registry.append(CALL, b"first", "F1")
    first = registry.finalize(CALL)
    registry.append(CALL, b"second", "F1")
    second = registry.finalize(CALL)

    assert first is not None and second is not None
    assert first is not second
    assert first.pcm == b"first"
    assert second.pcm == b"second"


def test_late_append_after_finalize_does_not_touch_exported_buffer() -> None:
    """Audio arriving after finalize opens a fresh session."""
    registry = SessionRegistry()
    registry.append(CALL, b"\x01\x02", "F1")
    exported = registry.finalize(CALL)
    registry.append(CALL, b"\x03\x04", "F1")

    assert exported is not None
    assert exported.pcm == b"\x01\x02"
    assert CALL in registry


def test_interleaved_calls_stay_separate() -> None:
    """Frames for simultaneous calls land in their own buffers."""
    registry = SessionRegistry()
    registry.append(CALL, b"a1", "F1")
    registry.append(OTHER_CALL, b"b1", "F2")
    registry.append(CALL, b"a2", "F1")
    registry.append(OTHER_CALL, b"b2", "F2")

    assert set(registry.active_identities()) == {CALL, OTHER_CALL}
    first = registry.finalize(CALL)
    second = registry.finalize(OTHER_CALL)
    assert first is not None and second is not None
    assert first.pcm == b"a1a2"
    assert second.pcm == b"b1b2"


def test_drain_empties_registry_oldest_first() -> None:
    """Draining returns every active session and leaves the registry empty."""
    registry = SessionRegistry()
    registry.append(CALL, b"a", "F1")
    registry.append(OTHER_CALL, b"b", "F2")

    drained = registry.drain()

    assert [session.identity for session in drained] == [CALL, OTHER_CALL]
    assert len(registry) == 0


def test_concurrent_finalize_observes_session_once() -> None:
    """Racing finalize calls from threads hand the session to exactly one caller."""
    registry = SessionRegistry()
    registry.append(CALL, b"\x00" * 320, "F1")
    barrier = threading.Barrier(8)
    results: list[object] = []
    results_lock = threading.Lock()

    def _finalize() -> None:
        barrier.wait()
        outcome = registry.finalize(CALL)
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=_finalize) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for outcome in results if outcome is not None) == 1


def test_finalize_and_drain_stamp_end_time() -> None:
    """Sessions leave the registry stamped with the time they ended."""
    registry = SessionRegistry()
    registry.append(CALL, b"a", "F1")
    registry.append(OTHER_CALL, b"b", "F2")

    finalized = registry.finalize(CALL)
    drained = registry.drain()

    assert finalized is not None
    assert finalized.ended_at is not None
    assert finalized.ended_at >= finalized.started_at
    assert all(session.ended_at is not None for session in drained)
