import logging
import multiprocessing
import threading
import time

import pytest

from fuelvanity.core import derive_address
from fuelvanity.errors import DerivationError, InvalidSpecError, SearchError
from fuelvanity.generator import (
    SearchHandle,
    SharedResultSlot,
    SearchState,
    VanitySearch,
    search,
)
from fuelvanity.matcher import MatchPosition, MatchSpec
from fuelvanity.verify import verify_key_address_pair

IMPOSSIBLE = MatchSpec("0" * 65, MatchPosition.PREFIX)


def test_empty_pattern_matches_first_candidate():
    for position in MatchPosition:
        outcome = search(MatchSpec("", position), num_workers=1)
        assert outcome.succeeded
        assert outcome.result.attempts == 1
        assert outcome.result.worker_id == 0


def test_real_search_returns_verifiable_keypair():
    outcome = search(MatchSpec("a", MatchPosition.PREFIX), num_workers=2)
    result = outcome.result
    assert outcome.state == SearchState.SUCCEEDED
    assert result.address.startswith("a")
    assert result.display_address == "0x" + result.address
    assert derive_address(result.secret_key.buffer) == result.address
    assert verify_key_address_pair(result.secret_key.hex(), result.address)
    assert result.attempts >= 1
    assert result.rate >= 0


def test_case_sensitive_search(hex_deriver):
    outcome = search(
        MatchSpec("f", MatchPosition.SUFFIX, case_sensitive=True),
        num_workers=2,
        deriver=hex_deriver,
        backend="thread",
    )
    assert outcome.result.address.endswith("f")


def test_exactly_one_winner_under_contention(monkeypatch, hex_deriver):
    wins = []
    lock = threading.Lock()
    publish = SearchHandle.publish

    def counting_publish(self, worker_id, secret_key, address):
        won = publish(self, worker_id, secret_key, address)
        with lock:
            wins.append(won)
        return won

    monkeypatch.setattr(SearchHandle, "publish", counting_publish)

    for _ in range(50):
        wins.clear()
        results = []
        vanity_search = VanitySearch(
            MatchSpec("0", MatchPosition.CONTAINS),
            num_workers=8,
            deriver=hex_deriver,
            backend="thread",
        )
        vanity_search.on_result = results.append
        outcome = vanity_search.run_blocking(progress_interval=0.05)

        assert outcome.succeeded
        assert wins.count(True) == 1
        assert results == [outcome.result]


def test_losing_and_rejected_keys_are_zeroed(tracking_keys, hex_deriver):
    outcome = search(
        MatchSpec("00", MatchPosition.PREFIX),
        num_workers=4,
        deriver=hex_deriver,
        key_source=tracking_keys,
        backend="thread",
    )
    winner = outcome.result.secret_key
    assert not winner.is_zeroed
    assert outcome.result.address == winner.hex()

    others = [k for k in tracking_keys.created if k is not winner]
    assert others
    assert all(k.zero_calls >= 1 and k.is_zeroed for k in others)
    assert winner.zero_calls == 0


def test_cancel_stops_search_and_zeroes_everything(tracking_keys, hex_deriver):
    vanity_search = VanitySearch(
        IMPOSSIBLE, num_workers=4, deriver=hex_deriver, key_source=tracking_keys,
        backend="thread",
    )
    vanity_search.start()
    time.sleep(0.2)
    assert vanity_search.is_running
    vanity_search.cancel()
    outcome = vanity_search.wait(timeout=5)

    assert outcome is not None
    assert outcome.cancelled
    assert outcome.result is None
    assert vanity_search.state == SearchState.CANCELLED
    assert not any(
        t.name.startswith("fuelvanity-worker") and t.is_alive() for t in threading.enumerate()
    )
    assert tracking_keys.created
    assert all(k.is_zeroed and k.zero_calls >= 1 for k in tracking_keys.created)

    attempts = vanity_search.progress().attempts
    time.sleep(0.05)
    assert vanity_search.progress().attempts == attempts
    assert len(tracking_keys.created) <= attempts + 4


def test_cancel_is_idempotent_and_noop_after_completion():
    vanity_search = VanitySearch(MatchSpec(""), num_workers=1)
    vanity_search.cancel()
    vanity_search.start()
    outcome = vanity_search.wait()
    vanity_search.cancel()
    vanity_search.cancel()
    assert vanity_search.state == SearchState.SUCCEEDED
    assert vanity_search.wait() is outcome


def test_impossible_pattern_times_out_then_cancels(hex_deriver):
    vanity_search = VanitySearch(IMPOSSIBLE, num_workers=2, deriver=hex_deriver, backend="thread")
    vanity_search.start()
    assert vanity_search.wait(timeout=0.2) is None
    assert vanity_search.is_running
    vanity_search.cancel()
    assert vanity_search.wait().cancelled


def test_run_blocking_reports_progress_and_can_be_cancelled(hex_deriver):
    seen = []
    vanity_search = VanitySearch(IMPOSSIBLE, num_workers=2, deriver=hex_deriver, backend="thread")

    def on_progress(stats):
        seen.append(stats)
        vanity_search.cancel()

    vanity_search.on_progress = on_progress
    outcome = vanity_search.run_blocking(progress_interval=0.05)

    assert outcome.cancelled
    assert seen and seen[0].is_running
    assert not vanity_search.progress().is_running


def test_failing_worker_does_not_stop_others(caplog, hex_deriver):
    def flaky_deriver(secret):
        if threading.current_thread().name == "fuelvanity-worker-0":
            raise DerivationError("bad key")
        return hex_deriver(secret)

    with caplog.at_level(logging.ERROR, logger="fuelvanity.worker"):
        outcome = search(
            MatchSpec("0", MatchPosition.PREFIX),
            num_workers=3,
            deriver=flaky_deriver,
            backend="thread",
        )

    assert outcome.succeeded
    assert outcome.result.worker_id != 0
    assert "Worker 0" in caplog.text


def test_all_workers_failing_raises(tracking_keys):
    def broken_deriver(secret):
        raise DerivationError("bad key")

    vanity_search = VanitySearch(
        MatchSpec("0"), num_workers=3, deriver=broken_deriver, key_source=tracking_keys,
        backend="thread",
    )
    vanity_search.start()
    with pytest.raises(SearchError):
        vanity_search.wait(timeout=5)
    assert vanity_search.state == SearchState.FAILED
    assert all(k.is_zeroed for k in tracking_keys.created)


def test_deriver_sees_each_fresh_key_once(hex_deriver):
    seen = []
    lock = threading.Lock()

    def recording_deriver(secret):
        with lock:
            seen.append(bytes(secret))
        return hex_deriver(secret)

    search(MatchSpec("00", MatchPosition.PREFIX), num_workers=4, deriver=recording_deriver,
           backend="thread")

    assert seen
    assert all(len(s) == 32 for s in seen)
    assert len(set(seen)) == len(seen)


def test_invalid_spec_fails_before_any_worker_starts():
    before = threading.active_count()
    with pytest.raises(InvalidSpecError):
        VanitySearch(MatchSpec("xyz", MatchPosition.PREFIX), num_workers=4)
    with pytest.raises(InvalidSpecError):
        VanitySearch(MatchSpec("", MatchPosition.PREFIX), allow_empty=False)
    assert threading.active_count() == before


def test_negative_worker_count_rejected():
    with pytest.raises(ValueError):
        VanitySearch(MatchSpec("a"), num_workers=-1)


def test_default_worker_count_uses_all_cores(monkeypatch):
    monkeypatch.setattr("os.cpu_count", lambda: 6)
    assert VanitySearch(MatchSpec("a")).num_workers == 6


def test_search_cannot_be_restarted():
    vanity_search = VanitySearch(MatchSpec(""), num_workers=1)
    vanity_search.start()
    with pytest.raises(RuntimeError):
        vanity_search.start()
    vanity_search.wait()
    with pytest.raises(RuntimeError):
        vanity_search.start()


def test_wait_before_start_raises():
    with pytest.raises(RuntimeError):
        VanitySearch(MatchSpec("a")).wait()


def test_progress_before_and_after(hex_deriver):
    vanity_search = VanitySearch(MatchSpec("0"), num_workers=2, deriver=hex_deriver, backend="thread")
    idle = vanity_search.progress()
    assert idle.attempts == 0 and not idle.is_running

    vanity_search.start()
    vanity_search.wait()
    done = vanity_search.progress()
    assert done.attempts >= 1
    assert done.elapsed == vanity_search.progress().elapsed
    assert not done.is_running


def test_spec_is_normalized():
    vanity_search = VanitySearch(MatchSpec("0xDEAD", MatchPosition.SUFFIX))
    assert vanity_search.spec == MatchSpec("dead", MatchPosition.SUFFIX, False)
    assert vanity_search.get_difficulty()["expected_attempts"] == 16 ** 4


def _live_worker_threads():
    return [t for t in threading.enumerate() if t.name.startswith("fuelvanity-worker") and t.is_alive()]


def test_failing_progress_callback_tears_search_down(hex_deriver):
    vanity_search = VanitySearch(IMPOSSIBLE, num_workers=2, deriver=hex_deriver, backend="thread")

    def on_progress(stats):
        raise RuntimeError("terminal went away")

    vanity_search.on_progress = on_progress
    with pytest.raises(RuntimeError, match="terminal went away"):
        vanity_search.run_blocking(progress_interval=0.05)

    assert vanity_search.state == SearchState.CANCELLED
    assert not vanity_search.is_running
    assert not _live_worker_threads()
    attempts = vanity_search.progress().attempts
    time.sleep(0.05)
    assert vanity_search.progress().attempts == attempts


def test_search_tears_down_when_waiting_fails(monkeypatch, hex_deriver):
    started = []
    wait = VanitySearch.wait

    def failing_wait(self, timeout=None):
        if not started:
            started.append(self)
            raise BrokenPipeError("stdout closed")
        return wait(self, timeout)

    monkeypatch.setattr(VanitySearch, "wait", failing_wait)
    with pytest.raises(BrokenPipeError):
        search(IMPOSSIBLE, num_workers=2, deriver=hex_deriver, backend="thread")

    assert started[0].state == SearchState.CANCELLED
    assert not _live_worker_threads()


def test_on_complete_receives_outcome(hex_deriver):
    completed = []
    vanity_search = VanitySearch(MatchSpec("0"), num_workers=2, deriver=hex_deriver, backend="thread")
    vanity_search.on_complete = completed.append
    outcome = vanity_search.run_blocking(progress_interval=0.05)
    assert completed == [outcome]
    assert outcome.succeeded


def test_on_complete_receives_cancelled_outcome(hex_deriver):
    completed = []
    vanity_search = VanitySearch(IMPOSSIBLE, num_workers=2, deriver=hex_deriver, backend="thread")
    vanity_search.on_complete = completed.append
    vanity_search.start()
    vanity_search.cancel()
    outcome = vanity_search.wait()
    assert completed == [outcome]
    assert outcome.cancelled and outcome.result is None


def test_unexpected_deriver_errors_count_as_failures(caplog, tracking_keys):
    def buggy_deriver(secret):
        raise TypeError("unsupported operand")

    vanity_search = VanitySearch(
        MatchSpec("0"), num_workers=3, deriver=buggy_deriver, key_source=tracking_keys,
        backend="thread",
    )
    with caplog.at_level(logging.ERROR, logger="fuelvanity.worker"):
        vanity_search.start()
        with pytest.raises(SearchError, match="3 worker failures"):
            vanity_search.wait(timeout=5)

    assert vanity_search.state == SearchState.FAILED
    assert "unexpected error" in caplog.text
    assert all(k.is_zeroed for k in tracking_keys.created)


def test_unknown_backend_rejected():
    with pytest.raises(ValueError, match="backend"):
        VanitySearch(MatchSpec("a"), backend="gpu")


def test_shared_result_slot_admits_one_claim():
    ctx = multiprocessing.get_context()
    slot = SharedResultSlot(ctx)
    assert slot.claim()
    assert not slot.claim()
    slot.close()
    assert slot.filled

    closed = SharedResultSlot(ctx)
    closed.close()
    assert not closed.claim()
    assert not closed.filled


def test_process_workers_deliver_exactly_one_result():
    for _ in range(5):
        results = []
        vanity_search = VanitySearch(MatchSpec("", MatchPosition.CONTAINS), num_workers=4)
        vanity_search.on_result = results.append
        outcome = vanity_search.run_blocking(progress_interval=0.05)

        assert outcome.succeeded
        assert results == [outcome.result]
        assert 0 <= outcome.result.worker_id < 4
        assert verify_key_address_pair(outcome.result.secret_key.hex(), outcome.result.address)
        assert not multiprocessing.active_children()


def test_process_search_can_be_cancelled():
    vanity_search = VanitySearch(IMPOSSIBLE, num_workers=2)
    vanity_search.start()
    deadline = time.monotonic() + 30
    while vanity_search.progress().attempts == 0 and time.monotonic() < deadline:
        assert vanity_search.wait(timeout=0.1) is None
    assert vanity_search.progress().attempts > 0
    vanity_search.cancel()
    outcome = vanity_search.wait()

    assert outcome.cancelled
    assert outcome.result is None
    assert not multiprocessing.active_children()
