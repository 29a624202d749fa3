"""
Ordered command delivery to the engine's standard input.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .process import EngineHandle

logger = logging.getLogger(__name__)


class CommandChannel:
    """
    Serializes protocol commands to the attached engine process.

    Writes happen under a lock, so commands issued from the caller thread
    and from timer threads reach the engine in the order send() was called.
    Sending without a live process is a silent no-op.
    """

    def __init__(self, history_size: int = 50) -> None:
        self._handle: EngineHandle | None = None
        self._lock = threading.Lock()
        self._history: deque[str] = deque(maxlen=history_size)

    @property
    def history(self) -> list[str]:
        """Most recently sent commands, oldest first."""
        return list(self._history)

    def attach(self, handle: EngineHandle) -> None:
        with self._lock:
            self._handle = handle

    def detach(self) -> None:
        with self._lock:
            self._handle = None

    def send(self, command: str) -> bool:
        """Write a command followed by a newline.

        Args:
            command: Protocol command without the trailing newline.

        Returns:
            True if the command was written, False if it was dropped.
        """
        with self._lock:
            handle = self._handle
            if handle is None or not handle.is_alive() or handle.stdin is None:
                logger.debug(f"Dropped (no engine): {command}")
                return False
            try:
                handle.stdin.write(f"{command}\n".encode())
                handle.stdin.flush()
            except (OSError, ValueError) as e:
                logger.debug(f"Dropped ({e}): {command}")
                return False
            self._history.append(command)
        logger.debug(f"Sent: {command}")
        return True
