"""At-most-one concurrent computation per key."""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Collapses concurrent calls for the same key into one computation.

    The first caller for a key (the leader) runs the function; callers that
    arrive while it is running wait on the leader's future and receive the same
    result, or the same exception. Once the computation finishes the key is
    forgotten, so a later call runs the function again.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._inflight: Dict[Hashable, Future] = {}

    def do(self, key: Hashable, fn: Callable[[], Any]) -> Tuple[Any, bool]:
        """
        Run ``fn`` for ``key`` unless a call for the same key is in flight.

        Returns:
            Tuple of (result, leader) where ``leader`` is True for the caller
            that actually ran ``fn``
        """
        with self._lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future

        if not leader:
            logger.debug(f"Joining in-flight computation for {key!r}")
            return future.result(), False

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, True
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._inflight
