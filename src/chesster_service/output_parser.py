"""
Parser for the engine's standard output stream.

The engine writes an unstructured, line-oriented stream. Chunks read from the
pipe do not respect line boundaries, so the parser buffers partial lines and
only classifies complete ones.

Lines of interest:
    readyok
    bestmove e2e4 score cp 25 depth 10

Everything else (id, option, info ...) is classified as OTHER and ignored by
the adapter. Score and depth are matched independently, so the fields may
appear in any order after the move token.
"""

from __future__ import annotations

import codecs
import enum
import logging
import re
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

READY_TOKEN = "readyok"
BEST_MOVE_TOKEN = "bestmove"

# Reported instead of a move when the side to move is mated or stalemated
NULL_MOVE = "0000"
NULL_MOVE_TOKENS = frozenset({NULL_MOVE, "(none)"})

# Forced mates collapse to a sentinel; the mate distance is discarded
MATE_SCORE = 10000

SCORE_PATTERN = re.compile(r"\bscore (cp|mate) (-?\d+)")
DEPTH_PATTERN = re.compile(r"\bdepth (\d+)")


class LineKind(enum.Enum):
    """Classification of a complete output line."""

    READY = "ready"
    BEST_MOVE = "best_move"
    OTHER = "other"


@dataclass(frozen=True)
class EngineMove:
    """Best move reported by the engine for the most recent search."""

    compact_move: str  # e.g. "e2e4", "e7e8q", or NULL_MOVE
    score: int = 0  # Centipawns from side to move, or +/-MATE_SCORE
    depth: int = 0
    observed_at_ms: int = 0  # Wall clock time the line was parsed

    @property
    def has_move(self) -> bool:
        """False when the engine had no legal move to play."""
        return self.compact_move != NULL_MOVE


@dataclass(frozen=True)
class ParsedLine:
    """A classified output line."""

    kind: LineKind
    text: str
    move: EngineMove | None = None


def extract_score(line: str) -> int | None:
    """Extract the score from a line, mapping mates to the sentinel value."""
    match = SCORE_PATTERN.search(line)
    if not match:
        return None
    value = int(match.group(2))
    if match.group(1) == "mate":
        return MATE_SCORE if value > 0 else -MATE_SCORE
    return value


def extract_depth(line: str) -> int | None:
    """Extract the search depth from a line."""
    match = DEPTH_PATTERN.search(line)
    return int(match.group(1)) if match else None


def parse_best_move(line: str, observed_at_ms: int | None = None) -> EngineMove | None:
    """
    Build an EngineMove from a best-move line.

    Args:
        line: A complete line starting with the best-move token.
        observed_at_ms: Timestamp to record (defaults to now).

    Returns:
        EngineMove, or None if the line carries no move token.
    """
    parts = line.split()
    if len(parts) < 2 or parts[0] != BEST_MOVE_TOKEN:
        return None

    if observed_at_ms is None:
        observed_at_ms = int(time.time() * 1000)

    return EngineMove(
        compact_move=NULL_MOVE if parts[1] in NULL_MOVE_TOKENS else parts[1],
        score=extract_score(line) or 0,
        depth=extract_depth(line) or 0,
        observed_at_ms=observed_at_ms,
    )


def classify_line(line: str) -> ParsedLine:
    """Classify one complete line of engine output."""
    if line.startswith(READY_TOKEN):
        return ParsedLine(LineKind.READY, line)

    if line.startswith(BEST_MOVE_TOKEN):
        move = parse_best_move(line)
        if move is not None:
            return ParsedLine(LineKind.BEST_MOVE, line, move)
        logger.debug(f"Ignoring best-move line without a move: {line!r}")

    return ParsedLine(LineKind.OTHER, line)


class OutputParser:
    """
    Incremental line splitter and classifier for engine output.

    Not thread-safe; fed from the single stdout reader thread.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Buffered text that has not been terminated by a newline yet."""
        return self._buffer

    def reset(self) -> None:
        """Drop any partial line (used when a new process is attached)."""
        self._decoder.reset()
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[ParsedLine]:
        """
        Consume a raw chunk and return every line it completed.

        Args:
            chunk: Bytes read from the pipe, or already decoded text.

        Returns:
            Parsed lines in arrival order (possibly empty).
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")

        parsed = []
        for line in lines:
            line = line.rstrip("\r")
            logger.debug(f"Recv: {line}")
            parsed.append(classify_line(line))
        return parsed
