"""
Configuration for the Chesster engine service.

All configuration can be set via environment variables with sensible defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _optional_int(name: str) -> int | None:
    value = os.environ.get(name, "").strip()
    return int(value) if value else None


@dataclass
class EngineConfig:
    """Configuration for the single engine adapter instance."""

    engine_path: Path = field(
        default_factory=lambda: Path(os.environ.get("CHESSTER_ENGINE_PATH", "stockfish"))
    )

    # Search defaults used when the caller passes nothing
    default_depth: int = field(default_factory=lambda: int(os.environ.get("CHESSTER_DEPTH", "10")))
    default_move_time_ms: int = field(
        default_factory=lambda: int(os.environ.get("CHESSTER_MOVE_TIME_MS", "2000"))
    )

    # Optional hard caps applied on top of whatever the caller asks for
    max_depth: int | None = field(default_factory=lambda: _optional_int("CHESSTER_MAX_DEPTH"))
    max_move_time_ms: int | None = field(
        default_factory=lambda: _optional_int("CHESSTER_MAX_MOVE_TIME_MS")
    )

    move_timeout_grace_ms: int = 2000  # engine needs a moment to flush bestmove
    handshake_timeout: float = 15.0  # seconds, measured from spawn
    uci_delay: float = 0.1  # seconds after spawn before sending "uci"
    isready_delay: float = 0.5  # seconds after spawn before sending "isready"

    def effective_depth(self, depth: int | None) -> int:
        """Apply the default and the configured cap to a requested depth."""
        value = depth if depth and depth > 0 else self.default_depth
        if self.max_depth is not None:
            value = min(value, self.max_depth)
        return value

    def effective_move_time(self, time_limit_ms: int | None) -> int:
        """Apply the default and the configured cap to a requested move time."""
        value = time_limit_ms if time_limit_ms and time_limit_ms > 0 else self.default_move_time_ms
        if self.max_move_time_ms is not None:
            value = min(value, self.max_move_time_ms)
        return value


@dataclass
class ServerConfig:
    """Configuration for the gRPC server."""

    port: int = field(default_factory=lambda: int(os.environ.get("CHESSTER_GRPC_PORT", "50051")))
    max_workers: int = 4
    max_concurrent_rpcs: int = 20
    grace_period: float = 5.0  # seconds to let in-flight RPCs finish
    max_engine_restarts: int = field(
        default_factory=lambda: int(os.environ.get("CHESSTER_MAX_ENGINE_RESTARTS", "3"))
    )
