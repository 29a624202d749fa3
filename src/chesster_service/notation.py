"""
Translation between algebraic notation and the engine's compact move encoding.

The rules oracle is reached through the MoveValidator protocol; the default
implementation wraps a python-chess Board. The translator keeps a private
shadow validator that is reset on every position update and is never shared
with the caller's own game state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable, Protocol

import chess

from .exceptions import IllegalMoveError, NoLegalMoveError
from .output_parser import NULL_MOVE_TOKENS

logger = logging.getLogger(__name__)

CASTLING_FALLBACK = {
    "e1g1": "O-O",
    "e8g8": "O-O",
    "e1c1": "O-O-O",
    "e8c8": "O-O-O",
}


@dataclass(frozen=True)
class AppliedMove:
    """Structured result of applying one move to the rules oracle."""

    origin: str  # e.g. "e7"
    destination: str  # e.g. "e8"
    promotion: str | None  # lowercase piece letter, e.g. "q"
    algebraic: str  # SAN, e.g. "e8=Q"

    @property
    def compact(self) -> str:
        return f"{self.origin}{self.destination}{self.promotion or ''}"


class MoveValidator(Protocol):
    """Rules/legality oracle consumed by the translator."""

    def new_game(self) -> None: ...

    def apply_move(self, notation: str) -> AppliedMove: ...

    def current_moves(self) -> list[str]: ...

    def is_game_over(self) -> bool: ...


class ChessBoardValidator:
    """MoveValidator backed by a python-chess Board."""

    def __init__(self) -> None:
        self._board = chess.Board()

    @property
    def fen(self) -> str:
        return self._board.fen()

    def new_game(self) -> None:
        self._board.reset()

    def apply_move(self, notation: str) -> AppliedMove:
        """Apply a move given in SAN or compact (UCI) notation.

        Raises:
            IllegalMoveError: If the move is malformed or illegal here.
        """
        move = self._parse(notation.strip())
        san = self._board.san(move)
        self._board.push(move)

        promotion = chess.piece_symbol(move.promotion) if move.promotion else None
        return AppliedMove(
            origin=chess.square_name(move.from_square),
            destination=chess.square_name(move.to_square),
            promotion=promotion,
            algebraic=san,
        )

    def current_moves(self) -> list[str]:
        return [self._board.san(move) for move in self._board.legal_moves]

    def is_game_over(self) -> bool:
        return self._board.is_game_over()

    def _parse(self, notation: str) -> chess.Move:
        try:
            return self._board.parse_san(notation)
        except ValueError:
            pass

        try:
            move = chess.Move.from_uci(notation.lower())
        except ValueError as e:
            raise IllegalMoveError(f"Invalid move: {notation}") from e

        if move not in self._board.legal_moves:
            raise IllegalMoveError(f"Illegal move: {notation}")
        return move


ValidatorFactory = Callable[[], MoveValidator]


class NotationTranslator:
    """
    Converts move histories between algebraic and compact notation.

    Illegal moves in a replayed history are skipped rather than aborting the
    batch, matching permissive import of hand-typed move lists.
    """

    def __init__(self, validator_factory: ValidatorFactory = ChessBoardValidator) -> None:
        self._validator_factory = validator_factory
        self._shadow = validator_factory()

    def to_compact(self, history: Iterable[str]) -> list[str]:
        """Replay a history from the start position into compact moves."""
        self._shadow.new_game()
        return [applied.compact for applied in self._replay(self._shadow, history)]

    def to_algebraic(self, compact_move: str, history: Iterable[str]) -> str:
        """
        Convert a compact move played after the given history to SAN.

        Args:
            compact_move: Engine move such as "e2e4" or "e7e8q".
            history: Algebraic moves leading to the position.

        Returns:
            The SAN of the move, or a lossy reconstruction if the rules
            oracle rejects it.

        Raises:
            NoLegalMoveError: If the engine reported that it had no move.
        """
        if compact_move in NULL_MOVE_TOKENS:
            raise NoLegalMoveError("Engine reported no legal move")

        validator = self._validator_factory()
        validator.new_game()
        for _ in self._replay(validator, history):
            pass

        try:
            return validator.apply_move(compact_move).algebraic
        except IllegalMoveError as e:
            logger.error(
                f"Engine move {compact_move} rejected after replaying history, "
                f"adapter and caller positions are out of sync: {e}"
            )
            return fallback_algebraic(compact_move)

    @staticmethod
    def _replay(validator: MoveValidator, history: Iterable[str]) -> Iterable[AppliedMove]:
        for notation in history:
            try:
                yield validator.apply_move(notation)
            except IllegalMoveError:
                logger.warning(f"Invalid move in history, skipping: {notation}")


def fallback_algebraic(compact_move: str) -> str:
    """Best-effort SAN for a compact move without consulting any board."""
    if compact_move in CASTLING_FALLBACK:
        return CASTLING_FALLBACK[compact_move]

    destination = compact_move[2:4]
    if len(compact_move) == 5:
        return f"{destination}={compact_move[4].upper()}"
    return destination
