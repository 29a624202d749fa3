"""
Chesster gRPC Server

Exposes the engine adapter to the game UI and other services: one RPC to get
the engine's move for a game history and one health check.
"""

from __future__ import annotations

import logging
import threading
from concurrent import futures

import grpc

from .config import EngineConfig, ServerConfig
from .engine import EngineAdapter
from .exceptions import (
    ChessterError,
    EngineCrashedError,
    EngineStartupError,
    IllegalMoveError,
    InvalidFenError,
    MoveTimeoutError,
    NoLegalMoveError,
    NotReadyError,
    RequestInFlightError,
)
from .generated import (
    EngineServiceServicer,
    HealthCheckRequest,
    HealthCheckResponse,
    MoveRequest,
    MoveResponse,
    add_EngineServiceServicer_to_server,
)
from .lifecycle import EngineLifecycle, GracefulServer

logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their bases
ERROR_STATUS: list[tuple[type[ChessterError], grpc.StatusCode]] = [
    (InvalidFenError, grpc.StatusCode.INVALID_ARGUMENT),
    (IllegalMoveError, grpc.StatusCode.INVALID_ARGUMENT),
    (NoLegalMoveError, grpc.StatusCode.FAILED_PRECONDITION),
    (RequestInFlightError, grpc.StatusCode.RESOURCE_EXHAUSTED),
    (MoveTimeoutError, grpc.StatusCode.DEADLINE_EXCEEDED),
    (NotReadyError, grpc.StatusCode.UNAVAILABLE),
    (EngineCrashedError, grpc.StatusCode.UNAVAILABLE),
    (EngineStartupError, grpc.StatusCode.UNAVAILABLE),
]


def status_for_error(error: ChessterError) -> grpc.StatusCode:
    """gRPC status for a service error; unlisted errors are INTERNAL."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return grpc.StatusCode.INTERNAL


class EngineServiceImpl(EngineServiceServicer):
    """gRPC service implementation backed by a single engine adapter."""

    def __init__(self, lifecycle: EngineLifecycle) -> None:
        """Initialize the service.

        Args:
            lifecycle: Owner of the shared engine adapter.
        """
        self._lifecycle = lifecycle
        # The adapter handles one search at a time
        self._search_lock = threading.Lock()

    def GetMove(
        self,
        request: MoveRequest,
        context: grpc.ServicerContext,
    ) -> MoveResponse:
        """Return the engine's best move after the given history.

        Args:
            request: Algebraic move history and search limits.
            context: gRPC service context.

        Returns:
            MoveResponse with compact and algebraic move, score and depth.
        """
        moves = list(request.moves)
        logger.debug(
            f"GetMove request: {len(moves)} moves, depth={request.depth}, "
            f"time_limit_ms={request.time_limit_ms}"
        )

        try:
            with self._search_lock:
                self._lifecycle.ensure_ready()
                engine = self._lifecycle.engine
                engine.set_moves(moves)
                result = engine.request_best_move(
                    depth=request.depth or None,
                    time_limit_ms=request.time_limit_ms or None,
                )
            if not result.has_move:
                raise NoLegalMoveError(f"No legal move after {len(moves)} moves, the game is over")
        except ChessterError as e:
            status = status_for_error(e)
            if status == grpc.StatusCode.INTERNAL:
                logger.exception(f"GetMove failed: {e}")
            else:
                logger.warning(f"GetMove failed with {status.name}: {e}")
            context.abort(status, str(e))
            return MoveResponse()

        try:
            algebraic = engine.to_algebraic(result.compact_move, moves)
        except ChessterError as e:
            logger.warning(f"Could not translate {result.compact_move}: {e}")
            algebraic = result.compact_move

        return MoveResponse(
            move=result.compact_move,
            algebraic=algebraic,
            score=result.score,
            depth=result.depth,
            time=result.observed_at_ms,
        )

    def HealthCheck(
        self,
        request: HealthCheckRequest,
        context: grpc.ServicerContext,
    ) -> HealthCheckResponse:
        """Health check endpoint."""
        return HealthCheckResponse(status="ok", engine_ready=self._lifecycle.engine.is_ready())


def create_server(
    server_config: ServerConfig | None = None,
    engine_config: EngineConfig | None = None,
) -> tuple[grpc.Server, EngineLifecycle]:
    """Create and configure the gRPC server with its engine lifecycle.

    Args:
        server_config: Server configuration.
        engine_config: Engine configuration.

    Returns:
        Tuple of (server, lifecycle). Neither the engine nor the server is started.
    """
    server_config = server_config or ServerConfig()

    lifecycle = EngineLifecycle(
        EngineAdapter(engine_config),
        max_restarts=server_config.max_engine_restarts,
    )

    server = grpc.server(
        futures.ThreadPoolExecutor(max_workers=server_config.max_workers),
        maximum_concurrent_rpcs=server_config.max_concurrent_rpcs,
    )

    add_EngineServiceServicer_to_server(EngineServiceImpl(lifecycle), server)

    server.add_insecure_port(f"[::]:{server_config.port}")

    return server, lifecycle


def serve(
    server_config: ServerConfig | None = None,
    engine_config: EngineConfig | None = None,
) -> None:
    """Start the Chesster gRPC server (blocking).

    Raises:
        EngineStartupError: If the engine cannot be initialized.
    """
    server_config = server_config or ServerConfig()

    server, lifecycle = create_server(server_config, engine_config)

    graceful = GracefulServer(server, lifecycle, grace_period=server_config.grace_period)
    try:
        graceful.start()
    except EngineStartupError:
        logger.info(f"Make sure an engine is installed at {lifecycle.engine.path}")
        raise

    logger.info(f"Chesster gRPC server started on port {server_config.port}")

    graceful.wait()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    try:
        serve()
    except EngineStartupError:
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
