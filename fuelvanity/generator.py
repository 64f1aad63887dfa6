"""
Search orchestrator: manages worker processes (or threads) and the one-shot
result channel.
"""

import logging
import multiprocessing
import os
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional

from fuelvanity.core import derive_address, format_address
from fuelvanity.errors import SearchError
from fuelvanity.keys import SecretKey, generate_secret_keys
from fuelvanity.matcher import MatchSpec, estimate_difficulty, validate_pattern
from fuelvanity.worker import search_worker

logger = logging.getLogger(__name__)

BACKENDS = ("process", "thread")

# Shared slot states for the process backend
_SLOT_OPEN = 0
_SLOT_FILLED = 1
_SLOT_CLOSED = 2

COUNTER_FLUSH_EVERY = 256   # attempts a worker process batches before touching the shared counter
RESULT_TIMEOUT = 10.0       # seconds to wait for a claimed result to arrive from its worker
JOIN_TIMEOUT = 2.0


class SearchState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class SearchResult:
    """The winning keypair of a search.

    The caller owns secret_key and should call secret_key.zero() once the
    key has been handed off.
    """
    secret_key: SecretKey
    address: str
    attempts: int
    elapsed: float
    worker_id: int

    @property
    def rate(self) -> float:
        return self.attempts / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def display_address(self) -> str:
        return format_address(self.address)


@dataclass
class SearchProgress:
    """Live stats during a search."""
    attempts: int = 0
    elapsed: float = 0.0
    rate: float = 0.0
    is_running: bool = False


@dataclass
class SearchOutcome:
    """Terminal outcome of a search: a full result, or none at all."""
    state: SearchState
    result: Optional[SearchResult] = None

    @property
    def succeeded(self) -> bool:
        return self.state == SearchState.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.state == SearchState.CANCELLED


# ── Thread backend ───────────────────────────────────────────────────


class AttemptCounter:
    """Thread-safe, monotonically increasing attempt counter."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def increment(self, n: int = 1) -> None:
        with self._lock:
            self._value += n

    def flush(self) -> None:
        pass

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class ResultSlot:
    """Single-assignment slot: the first offer wins, every later one loses.

    Once closed (on cancellation or teardown) the slot rejects all offers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._result: Optional[SearchResult] = None
        self._closed = False

    def offer(self, build: Callable[[], SearchResult]) -> bool:
        """Fill the slot with build() unless it is already filled or closed.

        build is only called by the winner, under the slot lock.
        """
        with self._lock:
            if self._closed or self._result is not None:
                return False
            self._result = build()
            return True

    def close(self) -> None:
        with self._lock:
            self._closed = True

    @property
    def value(self) -> Optional[SearchResult]:
        with self._lock:
            return self._result


class SearchHandle:
    """Shared state for one in-process search: stop flag, attempt counter, result slot."""

    def __init__(self):
        self.stop = threading.Event()
        self.attempts = AttemptCounter()
        self.slot = ResultSlot()
        self.started_at = time.monotonic()
        self.finished_at: Optional[float] = None
        self.cancelled = False
        self.failed_workers: list[int] = []
        self._failure_lock = threading.Lock()

    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def publish(self, worker_id: int, secret_key: SecretKey, address: str) -> bool:
        """Offer a match to the result slot. Returns True for the winner.

        The key is copied only when the offer wins, so the caller's buffer
        can be zeroed unconditionally afterwards.
        """
        return self.slot.offer(lambda: SearchResult(
            secret_key=secret_key.copy(),
            address=address,
            attempts=self.attempts.value,
            elapsed=self.elapsed(),
            worker_id=worker_id,
        ))

    def collect(self) -> Optional[SearchResult]:
        return self.slot.value

    def record_failure(self, worker_id: int) -> None:
        with self._failure_lock:
            self.failed_workers.append(worker_id)

    @property
    def failure_count(self) -> int:
        with self._failure_lock:
            return len(self.failed_workers)

    def cancel(self) -> None:
        self.cancelled = True
        self.slot.close()
        self.stop.set()


# ── Process backend ──────────────────────────────────────────────────


class SharedAttemptCounter:
    """Attempt counter in shared memory.

    Each worker process batches its increments locally and adds them to the
    shared Value under its lock every COUNTER_FLUSH_EVERY attempts, and on
    flush().
    """

    def __init__(self, ctx, flush_every: int = COUNTER_FLUSH_EVERY):
        self._value = ctx.Value("Q", 0)
        self._flush_every = flush_every
        self._pending = 0

    def increment(self, n: int = 1) -> None:
        self._pending += n
        if self._pending >= self._flush_every:
            self.flush()

    def flush(self) -> None:
        if self._pending:
            with self._value.get_lock():
                self._value.value += self._pending
            self._pending = 0

    @property
    def value(self) -> int:
        with self._value.get_lock():
            return self._value.value


class SharedResultSlot:
    """Single-assignment slot shared between processes.

    The slot state lives in a shared Value; claim() is a compare-and-set
    under its lock, so exactly one worker ever wins. Only the winner sends
    its payload through the queue.
    """

    def __init__(self, ctx):
        self._state = ctx.Value("b", _SLOT_OPEN)
        self._results = ctx.Queue()

    def claim(self) -> bool:
        with self._state.get_lock():
            if self._state.value != _SLOT_OPEN:
                return False
            self._state.value = _SLOT_FILLED
            return True

    def close(self) -> None:
        with self._state.get_lock():
            if self._state.value == _SLOT_OPEN:
                self._state.value = _SLOT_CLOSED

    @property
    def filled(self) -> bool:
        with self._state.get_lock():
            return self._state.value == _SLOT_FILLED

    def send(self, payload: tuple) -> None:
        self._results.put(payload)

    def receive(self, timeout: float) -> tuple:
        return self._results.get(timeout=timeout)


class ProcessSearchHandle:
    """Shared state for one multi-process search.

    Pickled into every worker process at start; only the parent calls
    collect() and cancel().
    """

    def __init__(self, ctx=None):
        ctx = ctx or multiprocessing.get_context()
        self.stop = ctx.Event()
        self.attempts = SharedAttemptCounter(ctx)
        self.slot = SharedResultSlot(ctx)
        self._failures = ctx.Value("i", 0)
        self.started_at = time.monotonic()
        self.finished_at: Optional[float] = None
        self.cancelled = False
        self._result: Optional[SearchResult] = None

    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def publish(self, worker_id: int, secret_key: SecretKey, address: str) -> bool:
        """Claim the slot and send the winning key to the parent.

        The key has to cross the process boundary as an immutable bytes
        copy; losers never send theirs.
        """
        if not self.slot.claim():
            return False
        self.attempts.flush()
        self.slot.send((
            worker_id,
            bytes(secret_key.buffer),
            address,
            self.attempts.value,
            self.elapsed(),
        ))
        return True

    def collect(self) -> Optional[SearchResult]:
        """Receive the winner's payload, if a worker claimed the slot."""
        if self._result is None and self.slot.filled:
            try:
                worker_id, secret, address, attempts, elapsed = self.slot.receive(RESULT_TIMEOUT)
            except queue.Empty:
                raise SearchError("The winning worker exited before delivering its result.")
            self._result = SearchResult(
                secret_key=SecretKey(secret),
                address=address,
                attempts=attempts,
                elapsed=elapsed,
                worker_id=worker_id,
            )
        return self._result

    def record_failure(self, worker_id: int) -> None:
        with self._failures.get_lock():
            self._failures.value += 1

    @property
    def failure_count(self) -> int:
        with self._failures.get_lock():
            return self._failures.value

    def cancel(self) -> None:
        self.cancelled = True
        self.slot.close()
        self.stop.set()


def default_worker_count() -> int:
    return os.cpu_count() or 1


class VanitySearch:
    """Orchestrates a parallel vanity address search.

    Workers run as separate processes by default so the search uses every
    core. backend="thread" keeps them in-process, which allows unpicklable
    deriver / key_source callables (test doubles).

    Usage:
        search = VanitySearch(MatchSpec("dead", MatchPosition.PREFIX))
        search.on_progress = lambda p: print(f"{p.rate:.0f} keys/sec")
        search.start()
        # ... poll periodically, or call search.cancel() ...
        outcome = search.wait()
    """

    def __init__(
        self,
        spec: MatchSpec,
        num_workers: int = 0,
        allow_empty: bool = True,
        deriver: Callable[..., str] = derive_address,
        key_source: Callable[[], Iterator[SecretKey]] = generate_secret_keys,
        poll_interval: float = 0.05,
        backend: str = "process",
    ):
        if num_workers < 0:
            raise ValueError(f"Worker count must be positive, got {num_workers}.")
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}'. Use one of: {', '.join(BACKENDS)}")

        pattern = validate_pattern(spec.pattern, spec.case_sensitive, allow_empty)
        self.spec = MatchSpec(
            pattern=pattern,
            position=spec.position,
            case_sensitive=spec.case_sensitive,
        )
        self.num_workers = num_workers if num_workers > 0 else default_worker_count()
        self.deriver = deriver
        self.key_source = key_source
        self.poll_interval = poll_interval
        self.backend = backend

        # Callbacks
        self.on_progress: Optional[Callable[[SearchProgress], None]] = None
        self.on_result: Optional[Callable[[SearchResult], None]] = None
        self.on_complete: Optional[Callable[[SearchOutcome], None]] = None

        # Internal state
        self._state = SearchState.IDLE
        self._handle = None
        self._workers: list = []
        self._outcome: Optional[SearchOutcome] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SearchState.RUNNING

    def get_difficulty(self) -> dict:
        """Get difficulty estimate for the current pattern."""
        return estimate_difficulty(self.spec)

    def start(self) -> None:
        """Start workers (non-blocking)."""
        with self._lock:
            if self._state != SearchState.IDLE:
                raise RuntimeError(f"Search cannot be started from state '{self._state.value}'")

            if self.backend == "process":
                self._handle = ProcessSearchHandle()
                worker_type = multiprocessing.Process
            else:
                self._handle = SearchHandle()
                worker_type = threading.Thread

            logger.info(
                "Searching for %s=%r (case %s) with %d %s workers",
                self.spec.position.value,
                self.spec.pattern,
                "sensitive" if self.spec.case_sensitive else "insensitive",
                self.num_workers,
                self.backend,
            )
            for i in range(self.num_workers):
                w = worker_type(
                    target=search_worker,
                    args=(i, self.spec, self._handle, self.key_source, self.deriver),
                    daemon=True,
                    name=f"fuelvanity-worker-{i}",
                )
                self._workers.append(w)
            self._state = SearchState.RUNNING
            for w in self._workers:
                w.start()

    def cancel(self) -> None:
        """Stop an in-flight search. Calling it when not running is a no-op."""
        handle = self._handle
        if handle is None or self._outcome is not None:
            return
        if not handle.cancelled:
            logger.info("Cancelling search")
        handle.cancel()

    def progress(self) -> SearchProgress:
        """Snapshot of attempts and elapsed time. Approximate while running."""
        handle = self._handle
        if handle is None:
            return SearchProgress()
        attempts = handle.attempts.value
        elapsed = handle.elapsed()
        return SearchProgress(
            attempts=attempts,
            elapsed=elapsed,
            rate=attempts / elapsed if elapsed > 0 else 0.0,
            is_running=self.is_running,
        )

    def poll(self) -> SearchProgress:
        """Report progress through on_progress. Call periodically from UI/CLI."""
        stats = self.progress()
        if self.on_progress:
            self.on_progress(stats)
        return stats

    def wait(self, timeout: Optional[float] = None) -> Optional[SearchOutcome]:
        """Block until the search ends and return its outcome.

        Returns None if timeout (seconds) elapses first; the search keeps
        running in that case.

        Raises:
            SearchError: every worker exited without a result.
        """
        if self._handle is None:
            raise RuntimeError("Search has not been started")

        deadline = None if timeout is None else time.monotonic() + timeout
        while self._outcome is None:
            if self._handle.stop.wait(self.poll_interval):
                break
            if not any(w.is_alive() for w in self._workers):
                break
            if deadline is not None and time.monotonic() >= deadline:
                return None
        return self._finish()

    def run_blocking(self, progress_interval: float = 0.5) -> SearchOutcome:
        """Run synchronously with periodic progress callbacks. For CLI use.

        Ctrl+C cancels the search instead of propagating. Any other error
        tears the search down before it propagates.
        """
        self.start()
        try:
            while True:
                outcome = self.wait(timeout=progress_interval)
                if outcome is not None:
                    return outcome
                self.poll()
        except KeyboardInterrupt:
            self.cancel()
            return self.wait()
        except BaseException:
            self._abort()
            raise

    def _abort(self) -> None:
        """Cancel and join a still-running search; discard any result."""
        if not self.is_running:
            return
        self.cancel()
        outcome = self.wait()
        if outcome.result is not None:
            outcome.result.secret_key.zero()

    def _join_workers(self) -> None:
        for w in self._workers:
            if isinstance(w, threading.Thread):
                w.join()
                continue
            w.join(timeout=JOIN_TIMEOUT)
            if w.is_alive():
                logger.warning("Worker %s did not stop in time; terminating it", w.name)
                w.terminate()
                w.join()
        self._workers = []

    def _finish(self) -> SearchOutcome:
        with self._lock:
            if self._outcome is not None:
                return self._outcome

            handle = self._handle
            handle.slot.close()
            handle.stop.set()
            try:
                result = handle.collect()
            except SearchError:
                self._state = SearchState.FAILED
                raise
            finally:
                self._join_workers()
                handle.finished_at = time.monotonic()

            if result is not None:
                self._state = SearchState.SUCCEEDED
                logger.info(
                    "Match found by worker %d after %d attempts in %.2fs",
                    result.worker_id, result.attempts, result.elapsed,
                )
            elif handle.cancelled:
                self._state = SearchState.CANCELLED
                logger.info("Search cancelled after %d attempts", handle.attempts.value)
            else:
                self._state = SearchState.FAILED
                raise SearchError(
                    f"All {self.num_workers} workers stopped without finding a match "
                    f"({handle.failure_count} worker failures)."
                )

            self._outcome = SearchOutcome(self._state, result)

        if result is not None and self.on_result:
            self.on_result(result)
        if self.on_complete:
            self.on_complete(self._outcome)
        return self._outcome


def search(spec: MatchSpec, num_workers: int = 0, **kwargs) -> SearchOutcome:
    """Run a search to completion and return its outcome.

    Keyword arguments are passed to VanitySearch. A KeyboardInterrupt while
    waiting cancels the search; any other error tears it down and propagates.
    """
    vanity_search = VanitySearch(spec, num_workers=num_workers, **kwargs)
    vanity_search.start()
    try:
        return vanity_search.wait()
    except KeyboardInterrupt:
        vanity_search.cancel()
        return vanity_search.wait()
    except BaseException:
        vanity_search._abort()
        raise
