"""
Engine and server lifetime for the gRPC service.

EngineLifecycle owns the shared adapter: it starts it, respawns it when the
engine process has died (up to a restart limit) and quits it on shutdown.
GracefulServer ties that lifetime to the gRPC server and to SIGTERM/SIGINT.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import TYPE_CHECKING, Any

from .exceptions import EngineStartupError, NotReadyError

if TYPE_CHECKING:
    import grpc

    from .engine import EngineAdapter

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class EngineLifecycle:
    """Start, respawn and stop policy for the service's single engine."""

    def __init__(self, engine: EngineAdapter, max_restarts: int = 3) -> None:
        """Initialize the lifecycle.

        Args:
            engine: Adapter shared by every RPC.
            max_restarts: Respawns allowed after the engine process is lost.
        """
        self._engine = engine
        self._max_restarts = max_restarts
        self._restarts = 0
        self._lock = threading.Lock()

    @property
    def engine(self) -> EngineAdapter:
        return self._engine

    @property
    def restarts(self) -> int:
        return self._restarts

    def start(self) -> None:
        """Start the engine for the first time.

        Raises:
            EngineStartupError: If the engine cannot be initialized.
        """
        with self._lock:
            self._engine.initialize()
        logger.info(f"Engine started: {self._engine.version}")

    def ensure_ready(self) -> None:
        """Respawn the engine if its process was lost since the last request.

        Raises:
            NotReadyError: If the restart limit is used up.
            EngineStartupError: If the respawn itself fails.
        """
        if self._engine.is_ready():
            return

        with self._lock:
            if self._engine.is_ready():
                return
            if self._restarts >= self._max_restarts:
                raise NotReadyError(
                    f"Engine unavailable after {self._restarts} restarts"
                )
            self._restarts += 1
            logger.warning(
                f"Engine not ready, restarting ({self._restarts}/{self._max_restarts})"
            )
            self._engine.initialize()

    def stop(self) -> None:
        with self._lock:
            self._engine.quit()
        logger.info("Engine stopped")


class GracefulServer:
    """
    Runs the gRPC server for as long as the engine lifecycle allows.

    The engine is started before the server accepts RPCs and quit before the
    server drains, so no RPC ever sees a half-started engine.

    Usage:
        server, lifecycle = create_server(server_config, engine_config)
        graceful = GracefulServer(server, lifecycle)
        graceful.start()
        graceful.wait()  # Blocks until SIGTERM/SIGINT or stop()
    """

    def __init__(
        self,
        server: grpc.Server,
        lifecycle: EngineLifecycle,
        grace_period: float = 5.0,
    ) -> None:
        self._server = server
        self._lifecycle = lifecycle
        self._grace_period = grace_period
        self._stopping = threading.Event()
        self._previous_handlers: dict[signal.Signals, Any] = {}

    def start(self) -> None:
        """Start the engine, then the server.

        Raises:
            EngineStartupError: If the engine cannot be initialized; the
                server is not started in that case.
        """
        try:
            self._lifecycle.start()
        except EngineStartupError as e:
            logger.error(f"Failed to initialize engine: {e}")
            raise

        for sig in SHUTDOWN_SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, self._on_signal)
        self._server.start()

    def wait(self) -> None:
        """Block until shutdown is requested, then stop everything."""
        try:
            self._stopping.wait()
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
        self._shutdown()

    def stop(self) -> None:
        """Request shutdown from another thread."""
        self._stopping.set()

    def _on_signal(self, signum: int, frame: object) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._stopping.set()

    def _shutdown(self) -> None:
        try:
            self._lifecycle.stop()
        except Exception:
            logger.exception("Error stopping engine")

        self._server.stop(grace=self._grace_period).wait()

        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()
        logger.info("Shutdown complete")
