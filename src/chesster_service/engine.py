"""
UCI engine adapter.

Owns the engine subprocess, drives the readiness handshake, sets positions
from algebraic move histories and correlates each search with the engine's
best-move line. One adapter instance serves every caller (gRPC service,
game loop); callers sharing it must serialize their requests.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from typing import TYPE_CHECKING

import chess

from .channel import CommandChannel
from .config import EngineConfig
from .correlator import RequestCorrelator, TimerFactory
from .exceptions import (
    EngineCrashedError,
    EngineError,
    EngineStartupError,
    HandshakeTimeoutError,
    InvalidFenError,
    NotReadyError,
)
from .notation import NotationTranslator
from .output_parser import EngineMove, LineKind, OutputParser
from .process import EngineHandle, ProcessSupervisor

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


class EngineAdapter:
    """
    Request/response facade over a UCI engine process.

    Usage:
        engine = EngineAdapter(EngineConfig(engine_path=Path("/usr/bin/stockfish")))
        engine.initialize()
        try:
            engine.set_moves(["e4", "e5"])
            move = engine.request_best_move(depth=10, time_limit_ms=500)
            print(engine.to_algebraic(move.compact_move, ["e4", "e5"]))
        finally:
            engine.quit()
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        supervisor: ProcessSupervisor | None = None,
        translator: NotationTranslator | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: Engine configuration. Uses defaults if not provided.
            supervisor: Process supervisor (replaced in tests).
            translator: Notation translator with its own rules oracle.
            timer_factory: Timeout timer factory (replaced in tests).
        """
        self._config = config or EngineConfig()
        self._supervisor = supervisor or ProcessSupervisor()
        self._translator = translator or NotationTranslator()
        self._channel = CommandChannel()
        self._parser = OutputParser()
        self._correlator = RequestCorrelator(
            on_timeout=self.stop_search,
            timer_factory=timer_factory,
        )

        self._lock = threading.Lock()
        self._handle: EngineHandle | None = None
        self._ready = threading.Event()
        self._wakeup = threading.Event()
        self._exit_code: int | None = None
        self._version: str | None = None

    def __enter__(self) -> EngineAdapter:
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.quit()

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def path(self) -> Path:
        """Get the engine binary path."""
        return self._config.engine_path

    @property
    def version(self) -> str:
        """Get the engine version string."""
        return self._version or "not started"

    @property
    def sent_commands(self) -> list[str]:
        """Recently sent protocol commands, oldest first."""
        return self._channel.history

    def is_ready(self) -> bool:
        """True once readyok was seen and the process has not been lost."""
        return self._ready.is_set()

    def is_alive(self) -> bool:
        """Check if the engine process is running."""
        handle = self._handle
        return handle is not None and handle.is_alive()

    def is_searching(self) -> bool:
        return self._correlator.is_awaiting

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Start the engine and block until it reports readiness.

        Raises:
            EngineSpawnError: If the binary cannot be started.
            EngineStartupError: If the process exits before becoming ready.
            HandshakeTimeoutError: If readyok does not arrive in time.
        """
        if self.is_ready() and self.is_alive():
            logger.debug("Engine already initialized")
            return

        if self._handle is not None:
            logger.warning("Engine already started, stopping first")
            self.quit()

        with self._lock:
            self._ready.clear()
            self._wakeup.clear()
            self._exit_code = None
            self._version = None
            self._parser.reset()
            self._correlator.reset()
            handle = self._supervisor.spawn(
                self._config.engine_path,
                on_stdout=self._on_stdout,
                on_exit=self._on_exit,
            )
            self._handle = handle
            self._channel.attach(handle)

        self._handshake(handle)
        logger.info(f"Engine ready: {self.version}")

    def _handshake(self, handle: EngineHandle) -> None:
        config = self._config
        deadline = handle.started_at + config.handshake_timeout

        for delay, command in ((config.uci_delay, "uci"), (config.isready_delay, "isready")):
            if self._wakeup.wait(max(0.0, handle.started_at + delay - time.monotonic())):
                break
            self._channel.send(command)

        self._wakeup.wait(max(0.0, deadline - time.monotonic()))

        if self._ready.is_set():
            return

        if self._handle is not handle or not handle.is_alive():
            self._discard(handle)
            raise EngineStartupError(f"Engine process closed with code {self._exit_code}")

        logger.error(f"Engine not ready after {config.handshake_timeout}s, killing it")
        self._discard(handle)
        raise HandshakeTimeoutError(
            f"Engine initialization timeout after {config.handshake_timeout}s"
        )

    def quit(self) -> None:
        """Stop the engine process. Safe to call more than once."""
        handle = self._discard(self._handle)
        if handle is not None:
            self._correlator.fail(EngineError("Engine was shut down"))

    def _discard(self, handle: EngineHandle | None) -> EngineHandle | None:
        with self._lock:
            if handle is None or handle is not self._handle:
                return None
            self._handle = None
            self._ready.clear()
            self._channel.detach()
        self._supervisor.terminate(handle)
        return handle

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def set_position(self, fen: str) -> None:
        """Set the position from a FEN string.

        Raises:
            InvalidFenError: If the FEN is invalid.
        """
        try:
            chess.Board(fen)
        except ValueError as e:
            raise InvalidFenError(f"Invalid FEN: {fen}") from e
        self._channel.send(f"position fen {fen}")

    def set_moves(self, moves: Sequence[str]) -> None:
        """Set the position from the start position plus algebraic moves."""
        compact = self._translator.to_compact(moves)
        if compact:
            self._channel.send(f"position startpos moves {' '.join(compact)}")
        else:
            self._channel.send("position startpos")

    def to_algebraic(self, compact_move: str, history: Sequence[str]) -> str:
        """Translate an engine move played after history into SAN."""
        return self._translator.to_algebraic(compact_move, history)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def start_search(
        self,
        depth: int | None = None,
        time_limit_ms: int | None = None,
    ) -> Future[EngineMove]:
        """Start a search and return a future for its best move.

        Args:
            depth: Search depth (config default and cap apply).
            time_limit_ms: Search time in milliseconds (config default and cap apply).

        Returns:
            Future resolved with the EngineMove, or rejected with
            MoveTimeoutError / EngineCrashedError / EngineError.

        Raises:
            NotReadyError: If the engine has not reported readiness.
            RequestInFlightError: If another search is still pending.
        """
        if not self.is_ready():
            raise NotReadyError("Engine not ready")

        depth = self._config.effective_depth(depth)
        movetime = self._config.effective_move_time(time_limit_ms)

        future = self._correlator.begin(movetime + self._config.move_timeout_grace_ms)
        self._channel.send(f"go depth {depth} movetime {movetime}")
        return future

    def request_best_move(
        self,
        depth: int | None = None,
        time_limit_ms: int | None = None,
    ) -> EngineMove:
        """Search the current position and block until the best move arrives.

        Raises:
            NotReadyError: If the engine has not reported readiness.
            RequestInFlightError: If another search is still pending.
            MoveTimeoutError: If no best move arrives within the time budget.
            EngineCrashedError: If the engine dies during the search.
        """
        return self.start_search(depth, time_limit_ms).result()

    def stop_search(self) -> None:
        """Ask the engine to stop searching and report its best move."""
        self._channel.send("stop")

    # ------------------------------------------------------------------
    # Process callbacks (reader thread)
    # ------------------------------------------------------------------

    def _on_stdout(self, handle: EngineHandle, chunk: bytes) -> None:
        # initialize() holds the lock from spawn until the handle is published
        with self._lock:
            if handle is not self._handle:
                return

        for line in self._parser.feed(chunk):
            if line.kind is LineKind.READY:
                if not self._ready.is_set():
                    self._ready.set()
                    self._wakeup.set()
            elif line.kind is LineKind.BEST_MOVE and line.move is not None:
                self._correlator.fulfill(line.move)
            elif line.text.startswith("id name ") and self._version is None:
                self._version = line.text[8:].strip()

    def _on_exit(self, handle: EngineHandle, returncode: int | None) -> None:
        with self._lock:
            if handle.terminated or handle is not self._handle:
                return
            self._exit_code = returncode
            was_ready = self._ready.is_set()
            self._handle = None
            self._ready.clear()
            self._channel.detach()
        self._wakeup.set()

        if was_ready:
            logger.error(f"Engine process exited unexpectedly with code {returncode}")
            self._correlator.fail(
                EngineCrashedError(f"Engine process exited with code {returncode}")
            )
        else:
            logger.error(f"Engine process closed with code {returncode} before becoming ready")
