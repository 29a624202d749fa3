"""
Unit tests for move notation translation.
"""

import logging
from unittest.mock import MagicMock

import pytest

from chesster_service.exceptions import IllegalMoveError, NoLegalMoveError
from chesster_service.notation import (
    AppliedMove,
    ChessBoardValidator,
    NotationTranslator,
    fallback_algebraic,
)

from conftest import PROMOTION_HISTORY


class TestChessBoardValidator:
    """Tests for the python-chess rules oracle."""

    def test_apply_san(self) -> None:
        validator = ChessBoardValidator()

        applied = validator.apply_move("Nf3")

        assert applied == AppliedMove(origin="g1", destination="f3", promotion=None, algebraic="Nf3")
        assert applied.compact == "g1f3"

    def test_apply_compact(self) -> None:
        validator = ChessBoardValidator()

        applied = validator.apply_move("e2e4")

        assert applied.algebraic == "e4"
        assert applied.compact == "e2e4"

    def test_illegal_move_raises(self) -> None:
        validator = ChessBoardValidator()

        with pytest.raises(IllegalMoveError):
            validator.apply_move("e2e5")

    def test_garbage_raises(self) -> None:
        validator = ChessBoardValidator()

        with pytest.raises(IllegalMoveError):
            validator.apply_move("xyzzy")

    def test_new_game_resets(self, starting_fen: str) -> None:
        validator = ChessBoardValidator()
        validator.apply_move("e4")

        validator.new_game()

        assert validator.fen == starting_fen

    def test_current_moves_from_start(self) -> None:
        moves = ChessBoardValidator().current_moves()

        assert len(moves) == 20
        assert "e4" in moves
        assert "Nf3" in moves

    def test_is_game_over_after_fools_mate(self) -> None:
        validator = ChessBoardValidator()
        for move in ["f3", "e5", "g4"]:
            validator.apply_move(move)
        assert not validator.is_game_over()

        validator.apply_move("Qh4#")

        assert validator.is_game_over()
        assert validator.current_moves() == []


class TestToCompact:
    """Tests for converting algebraic histories."""

    def test_opening_moves(self) -> None:
        translator = NotationTranslator()

        assert translator.to_compact(["e4", "e5"]) == ["e2e4", "e7e5"]

    def test_empty_history(self) -> None:
        assert NotationTranslator().to_compact([]) == []

    def test_castling(self) -> None:
        translator = NotationTranslator()
        history = ["e4", "e5", "Nf3", "Nc6", "Bc4", "Nf6", "O-O"]

        assert translator.to_compact(history)[-1] == "e1g1"

    def test_promotion(self) -> None:
        translator = NotationTranslator()

        compact = translator.to_compact(PROMOTION_HISTORY + ["e8=Q"])

        assert compact[-1] == "e7e8q"

    def test_illegal_move_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """An illegal move is dropped and the rest of the history still applies."""
        caplog.set_level(logging.WARNING, logger="chesster_service.notation")
        translator = NotationTranslator()

        compact = translator.to_compact(["e4", "Ke2e4", "e5"])

        assert compact == ["e2e4", "e7e5"]
        assert "Invalid move in history" in caplog.text

    def test_shadow_state_resets_between_calls(self) -> None:
        translator = NotationTranslator()
        translator.to_compact(["e4", "e5", "Nf3"])

        assert translator.to_compact(["d4"]) == ["d2d4"]

    def test_uses_injected_validator(self) -> None:
        validator = MagicMock()
        validator.apply_move.return_value = AppliedMove("a2", "a3", None, "a3")
        translator = NotationTranslator(validator_factory=lambda: validator)

        assert translator.to_compact(["a3"]) == ["a2a3"]
        validator.new_game.assert_called_once()


class TestToAlgebraic:
    """Tests for converting engine moves back to SAN."""

    def test_reply_in_opening(self) -> None:
        translator = NotationTranslator()

        assert translator.to_algebraic("g1f3", ["e4", "e5"]) == "Nf3"

    def test_promotion(self) -> None:
        translator = NotationTranslator()

        assert translator.to_algebraic("e7e8q", PROMOTION_HISTORY) == "e8=Q"

    def test_castling(self) -> None:
        translator = NotationTranslator()
        history = ["e4", "e5", "Nf3", "Nc6", "Bc4", "Nf6"]

        assert translator.to_algebraic("e1g1", history) == "O-O"

    def test_check_suffix(self) -> None:
        translator = NotationTranslator()

        assert translator.to_algebraic("d8h4", ["f3", "e5", "g4"]) == "Qh4#"

    def test_does_not_touch_shadow(self) -> None:
        translator = NotationTranslator()
        translator.to_compact(["e4"])

        translator.to_algebraic("e7e5", ["e4"])

        assert translator.to_compact(["e4", "e5"]) == ["e2e4", "e7e5"]

    def test_rejected_move_uses_fallback(self, caplog: pytest.LogCaptureFixture) -> None:
        """A move the oracle rejects is reported loudly and reconstructed."""
        caplog.set_level(logging.ERROR, logger="chesster_service.notation")
        translator = NotationTranslator()

        result = translator.to_algebraic("e2e4", ["e4"])

        assert result == "e4"
        assert "out of sync" in caplog.text

    @pytest.mark.parametrize("compact", ["0000", "(none)"])
    def test_null_move_raises(self, compact: str, caplog: pytest.LogCaptureFixture) -> None:
        """No legal move is reported as such, not as a desync."""
        caplog.set_level(logging.ERROR, logger="chesster_service.notation")
        translator = NotationTranslator()

        with pytest.raises(NoLegalMoveError):
            translator.to_algebraic(compact, ["f3", "e5", "g4", "Qh4#"])

        assert caplog.text == ""


class TestFallbackAlgebraic:
    """Tests for board-free SAN reconstruction."""

    @pytest.mark.parametrize(
        ("compact", "expected"),
        [
            ("e1g1", "O-O"),
            ("e8g8", "O-O"),
            ("e1c1", "O-O-O"),
            ("e8c8", "O-O-O"),
            ("e7e8q", "e8=Q"),
            ("a2a1n", "a1=N"),
            ("g1f3", "f3"),
        ],
    )
    def test_fallback(self, compact: str, expected: str) -> None:
        assert fallback_algebraic(compact) == expected
