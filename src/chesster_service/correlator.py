"""
Correlation of the single in-flight search with the engine's best-move line.

The pending request lives in one slot that is either empty (idle) or holds an
AwaitingMove. Every transition swaps the slot under a lock before touching
the future, so a request is resolved or rejected exactly once no matter
whether the best-move line, the timeout, or a process failure wins the race.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Protocol

from .exceptions import MoveTimeoutError, RequestInFlightError
from .output_parser import EngineMove

logger = logging.getLogger(__name__)


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def default_timer_factory(seconds: float, callback: Callable[[], None]) -> Timer:
    """Create a daemon threading.Timer."""
    timer = threading.Timer(seconds, callback)
    timer.daemon = True
    return timer


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, eq=False)
class AwaitingMove:
    """A registered search waiting for its best-move line."""

    future: Future[EngineMove]
    timer: Timer
    created_at_ms: int
    deadline_ms: int


class RequestCorrelator:
    """
    Matches one outstanding best-move request to the engine's answer.

    A request abandoned on timeout still owes one best-move line: the engine
    answers every go, and the timeout hook sends stop to make it answer now.
    That many lines are dropped before a new request can be resolved. If an
    engine never delivers an owed line, every later answer is consumed by the
    debt and later requests time out until reset() is called, which the
    adapter does on every initialize().

    Usage:
        correlator = RequestCorrelator(on_timeout=lambda: channel.send("stop"))
        future = correlator.begin(timeout_ms=2500)
        ...
        correlator.fulfill(move)   # from the stdout reader
        move = future.result()
    """

    def __init__(
        self,
        on_timeout: Callable[[], None] | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        """Initialize the correlator.

        Args:
            on_timeout: Hook run when a request expires, before it is rejected.
            timer_factory: Creates the timeout timer (replaced in tests).
        """
        self._on_timeout = on_timeout
        self._timer_factory = timer_factory or default_timer_factory
        self._lock = threading.Lock()
        self._pending: AwaitingMove | None = None
        # Searches abandoned on timeout whose best-move line is still owed
        self._orphaned = 0

    @property
    def is_awaiting(self) -> bool:
        return self._pending is not None

    @property
    def orphaned(self) -> int:
        return self._orphaned

    @property
    def pending(self) -> AwaitingMove | None:
        return self._pending

    def begin(self, timeout_ms: int) -> Future[EngineMove]:
        """Register a new request and arm its timeout.

        Args:
            timeout_ms: Milliseconds before the request is rejected.

        Returns:
            Future resolved with the EngineMove or rejected with an error.

        Raises:
            RequestInFlightError: If a request is already pending.
        """
        future: Future[EngineMove] = Future()
        future.set_running_or_notify_cancel()

        with self._lock:
            if self._pending is not None:
                raise RequestInFlightError("A best-move request is already in flight")

            created = _now_ms()
            request: AwaitingMove | None = None

            def expire() -> None:
                self._expire(request)

            timer = self._timer_factory(timeout_ms / 1000, expire)
            request = AwaitingMove(
                future=future,
                timer=timer,
                created_at_ms=created,
                deadline_ms=created + timeout_ms,
            )
            self._pending = request
            timer.start()

        return future

    def fulfill(self, move: EngineMove) -> bool:
        """Resolve the pending request with a best move.

        Returns:
            True if a request was resolved, False if the move was dropped.
        """
        with self._lock:
            if self._orphaned:
                self._orphaned -= 1
                logger.debug(f"Dropping late best move {move.compact_move} of an abandoned search")
                return False
            request, self._pending = self._pending, None

        if request is None:
            logger.debug(f"Dropping best move {move.compact_move}: no pending request")
            return False

        request.timer.cancel()
        elapsed = move.observed_at_ms - request.created_at_ms
        logger.debug(f"Best move {move.compact_move} after {elapsed}ms")
        request.future.set_result(move)
        return True

    def fail(self, error: BaseException) -> bool:
        """Reject the pending request, if any.

        Returns:
            True if a request was rejected.
        """
        request = self._take()
        if request is None:
            return False
        request.timer.cancel()
        request.future.set_exception(error)
        return True

    def reset(self) -> None:
        """Forget abandoned searches (a new engine process owes nothing)."""
        with self._lock:
            self._orphaned = 0

    def _take(self) -> AwaitingMove | None:
        with self._lock:
            request, self._pending = self._pending, None
        return request

    def _expire(self, request: AwaitingMove | None) -> None:
        with self._lock:
            if request is None or self._pending is not request:
                return
            self._pending = None
            self._orphaned += 1

        budget = request.deadline_ms - request.created_at_ms
        logger.warning(f"No best move within {budget}ms, abandoning search")

        if self._on_timeout is not None:
            try:
                self._on_timeout()
            except Exception as e:
                logger.warning(f"Error in timeout hook: {e}")

        request.future.set_exception(MoveTimeoutError(f"Engine move timeout after {budget}ms"))
