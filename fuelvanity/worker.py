"""
Worker loop for vanity address search.

Each worker runs in its own process (or thread) and owns its own candidate
stream. This module must only contain top-level importable functions: with
the spawn start method, worker targets are pickled by name. The only state
a worker shares with the others lives on the search handle: the stop flag,
the attempt counter and the one-shot result slot.
"""

import logging
from typing import Callable, Iterator

from fuelvanity.errors import DerivationError
from fuelvanity.keys import SecretKey
from fuelvanity.matcher import MatchSpec, matches

logger = logging.getLogger(__name__)


def search_worker(
    worker_id: int,
    spec: MatchSpec,
    handle,
    key_source: Callable[[], Iterator[SecretKey]],
    deriver: Callable[..., str],
) -> None:
    """Generate keys in a tight loop and check each derived address.

    Runs until a match is found, the stop flag is set, or the deriver
    fails. Every key is zeroed when its iteration ends; the winning key
    is copied into the result slot before that happens. Buffered attempts
    are flushed to the shared counter on every exit path.

    Args:
        worker_id: Index of this worker, reported in the result.
        spec: Validated MatchSpec.
        handle: SearchHandle or ProcessSearchHandle shared by all workers.
        key_source: Factory for an infinite SecretKey stream.
        deriver: secret key buffer -> address hex.
    """
    stop = handle.stop
    candidates = key_source()

    try:
        while not stop.is_set():
            with next(candidates) as key:
                if stop.is_set():
                    break

                try:
                    address = deriver(key.buffer)
                except DerivationError as e:
                    logger.error("Worker %d: address derivation failed (%s); worker stopping.", worker_id, e)
                    handle.record_failure(worker_id)
                    return
                except Exception:
                    logger.exception("Worker %d: unexpected error in the deriver; worker stopping.", worker_id)
                    handle.record_failure(worker_id)
                    return

                handle.attempts.increment()

                if stop.is_set():
                    break

                if matches(address, spec):
                    if handle.publish(worker_id, key, address):
                        logger.debug("Worker %d published a match.", worker_id)
                    stop.set()
                    return
    finally:
        handle.attempts.flush()

    logger.debug("Worker %d stopped.", worker_id)
