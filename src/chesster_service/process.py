"""
Engine process supervision.

Spawns the engine binary with piped standard streams and attaches daemon
reader threads to it. Raw stdout chunks and the final exit code are handed to
callbacks; stderr is only ever logged.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable

from .exceptions import EngineSpawnError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

StdoutCallback = Callable[["EngineHandle", bytes], None]
ExitCallback = Callable[["EngineHandle", "int | None"], None]


@dataclass(eq=False)
class EngineHandle:
    """A spawned engine process and the threads reading from it."""

    process: subprocess.Popen[bytes]
    path: Path
    started_at: float = field(default_factory=time.monotonic)
    terminated: bool = False
    threads: list[threading.Thread] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdin(self) -> IO[bytes] | None:
        return self.process.stdin

    def is_alive(self) -> bool:
        """Check if the engine process is running."""
        if self.terminated:
            return False
        return self.process.poll() is None

    def elapsed(self) -> float:
        """Seconds since the process was spawned."""
        return time.monotonic() - self.started_at


class ProcessSupervisor:
    """
    Owns spawning and killing of the engine subprocess.

    Usage:
        supervisor = ProcessSupervisor()
        handle = supervisor.spawn(path, on_stdout, on_exit)
        ...
        supervisor.terminate(handle)
    """

    def __init__(self, popen: Callable[..., subprocess.Popen[bytes]] = subprocess.Popen) -> None:
        """Initialize the supervisor.

        Args:
            popen: Process factory (replaced in tests).
        """
        self._popen = popen

    def spawn(
        self,
        executable_path: str | Path,
        on_stdout: StdoutCallback,
        on_exit: ExitCallback,
    ) -> EngineHandle:
        """Launch the engine binary with no arguments.

        Args:
            executable_path: Filesystem path to the engine.
            on_stdout: Called with each raw chunk read from stdout.
            on_exit: Called once with the exit code after stdout closes.

        Returns:
            The handle for the new process.

        Raises:
            EngineSpawnError: If the executable cannot be started.
        """
        path = Path(executable_path)
        logger.info(f"Starting engine from {path}")

        try:
            process = self._popen(
                [str(path)],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EngineSpawnError(f"Engine binary not found at {path}") from e
        except PermissionError as e:
            raise EngineSpawnError(f"Engine binary at {path} is not executable") from e
        except OSError as e:
            raise EngineSpawnError(f"Failed to start engine: {e}") from e

        handle = EngineHandle(process=process, path=path)

        stdout_thread = threading.Thread(
            target=self._read_stdout,
            args=(handle, on_stdout, on_exit),
            name=f"engine-stdout-{handle.pid}",
            daemon=True,
        )
        stderr_thread = threading.Thread(
            target=self._read_stderr,
            args=(handle,),
            name=f"engine-stderr-{handle.pid}",
            daemon=True,
        )
        handle.threads.extend([stdout_thread, stderr_thread])
        stdout_thread.start()
        stderr_thread.start()

        logger.debug(f"Engine process started with pid {handle.pid}")
        return handle

    def terminate(self, handle: EngineHandle | None) -> None:
        """Send quit, then kill the process. Safe to call more than once."""
        if handle is None or handle.terminated:
            return
        handle.terminated = True

        process = handle.process
        if process.poll() is None and process.stdin is not None:
            try:
                process.stdin.write(b"quit\n")
                process.stdin.flush()
                logger.debug("Sent: quit")
            except (OSError, ValueError) as e:
                logger.debug(f"Could not send quit: {e}")

        try:
            process.kill()
            process.wait(timeout=2.0)
            logger.info("Engine stopped")
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Error stopping engine: {e}")

    def _read_stdout(
        self,
        handle: EngineHandle,
        on_stdout: StdoutCallback,
        on_exit: ExitCallback,
    ) -> None:
        stream = handle.process.stdout
        try:
            while stream is not None:
                chunk = stream.read1(READ_CHUNK_SIZE)
                if not chunk:
                    break
                on_stdout(handle, chunk)
        except (OSError, ValueError) as e:
            logger.debug(f"Engine stdout closed: {e}")
        except Exception:
            logger.exception("Error handling engine output")

        try:
            returncode = handle.process.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            returncode = handle.process.poll()
        on_exit(handle, returncode)

    def _read_stderr(self, handle: EngineHandle) -> None:
        stream = handle.process.stderr
        if stream is None:
            return
        try:
            for raw in iter(stream.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    logger.warning(f"Engine stderr: {line}")
        except (OSError, ValueError) as e:
            logger.debug(f"Engine stderr closed: {e}")
