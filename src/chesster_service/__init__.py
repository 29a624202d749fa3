"""
Chesster Engine Service

Drives an external UCI chess engine process and exposes a request/response
API (and a gRPC service) for getting the engine's move in a game.
"""

from .config import EngineConfig, ServerConfig
from .engine import EngineAdapter
from .exceptions import (
    ChessterError,
    EngineCrashedError,
    EngineError,
    EngineSpawnError,
    EngineStartupError,
    EngineTimeoutError,
    HandshakeTimeoutError,
    IllegalMoveError,
    InvalidFenError,
    MoveTimeoutError,
    NoLegalMoveError,
    NotReadyError,
    RequestInFlightError,
)
from .generated import EngineServiceStub
from .lifecycle import EngineLifecycle, GracefulServer
from .notation import AppliedMove, ChessBoardValidator, MoveValidator, NotationTranslator
from .output_parser import EngineMove, OutputParser
from .server import EngineServiceImpl, create_server, serve

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Config
    "EngineConfig",
    "ServerConfig",
    # Engine
    "EngineAdapter",
    "EngineMove",
    "OutputParser",
    # Notation
    "AppliedMove",
    "ChessBoardValidator",
    "MoveValidator",
    "NotationTranslator",
    # Exceptions
    "ChessterError",
    "EngineError",
    "EngineStartupError",
    "EngineSpawnError",
    "HandshakeTimeoutError",
    "EngineTimeoutError",
    "MoveTimeoutError",
    "NotReadyError",
    "RequestInFlightError",
    "EngineCrashedError",
    "InvalidFenError",
    "IllegalMoveError",
    "NoLegalMoveError",
    # Server
    "EngineServiceImpl",
    "EngineServiceStub",
    "EngineLifecycle",
    "GracefulServer",
    "create_server",
    "serve",
]
