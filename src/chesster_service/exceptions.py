"""
Exception hierarchy for the Chesster engine service.

Every error raised by the engine adapter, the notation translator and the
gRPC surface derives from ChessterError so callers can catch one base type.
"""

from __future__ import annotations


class ChessterError(Exception):
    """Base exception for all Chesster service errors."""


# =============================================================================
# Engine Exceptions
# =============================================================================


class EngineError(ChessterError):
    """Base exception for engine-related errors."""


class EngineStartupError(EngineError):
    """Engine failed to start or initialize."""


class EngineSpawnError(EngineStartupError):
    """Engine binary is missing or could not be executed."""


class HandshakeTimeoutError(EngineStartupError):
    """Engine never answered the readiness handshake in time."""


class EngineTimeoutError(EngineError):
    """Engine operation timed out."""


class MoveTimeoutError(EngineTimeoutError):
    """No best-move line arrived within the search budget."""


class NotReadyError(EngineError):
    """A search was requested before the engine became ready."""


class RequestInFlightError(EngineError):
    """A search was requested while another one is still pending."""


class EngineCrashedError(EngineError):
    """Engine process exited unexpectedly after becoming ready."""


# =============================================================================
# Position Exceptions
# =============================================================================


class InvalidFenError(ChessterError):
    """Invalid FEN position provided."""


class IllegalMoveError(ChessterError):
    """A move was rejected by the rules oracle."""


class NoLegalMoveError(ChessterError):
    """The side to move is mated or stalemated, so there is no move to play."""
