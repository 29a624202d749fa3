"""Pytest configuration for Chesster service tests."""

from __future__ import annotations

import os
import queue
import shutil
import sys
import threading
import time
from pathlib import Path
from typing import Callable

import pytest

# Add the src directory to the Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from chesster_service.config import EngineConfig  # noqa: E402
from chesster_service.engine import EngineAdapter  # noqa: E402
from chesster_service.process import ProcessSupervisor  # noqa: E402

# Sample positions for testing
STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
COMPLEX_FEN = "r1bqkb1r/pppp1ppp/2n2n2/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"

# White walks a pawn to e7 after the black king steps aside; e7e8q is legal next
PROMOTION_HISTORY = [
    "d4", "e5", "dxe5", "Ke7", "Nf3", "Ke6", "Nc3", "Kf5",
    "a3", "Kg6", "e6", "a6", "e7", "a5",
]

# Standard engine replies to the handshake
HANDSHAKE_RESPONSES = {
    "uci": ["id name FakeFish 1.0", "id author Test", "uciok"],
    "isready": ["readyok"],
}


class FakeStdin:
    """Records commands written by the adapter and triggers scripted replies."""

    def __init__(self, on_command: Callable[[str], None]) -> None:
        self.commands: list[str] = []
        self.closed = False
        self._buffer = b""
        self._on_command = on_command

    def write(self, data: bytes) -> int:
        if self.closed:
            raise BrokenPipeError("stdin closed")
        self._buffer += data
        *lines, self._buffer = self._buffer.split(b"\n")
        for raw in lines:
            command = raw.decode()
            self.commands.append(command)
            self._on_command(command)
        return len(data)

    def flush(self) -> None:
        if self.closed:
            raise BrokenPipeError("stdin closed")


class FakeStream:
    """Blocking byte stream fed by the test."""

    def __init__(self) -> None:
        self._chunks: queue.Queue[bytes] = queue.Queue()

    def push(self, data: bytes) -> None:
        self._chunks.put(data)

    def close(self) -> None:
        self._chunks.put(b"")

    def read1(self, size: int = -1) -> bytes:
        return self._chunks.get()

    def readline(self) -> bytes:
        return self._chunks.get()


class FakeEngineProcess:
    """Stand-in for subprocess.Popen running a UCI engine."""

    pid = 4242

    def __init__(self, responses: dict[str, list[str]] | None = None) -> None:
        self.responses = dict(HANDSHAKE_RESPONSES if responses is None else responses)
        self.stdin = FakeStdin(self._reply)
        self.stdout = FakeStream()
        self.stderr = FakeStream()
        self.returncode: int | None = None
        self.killed = False
        self._exited = threading.Event()

    @property
    def commands(self) -> list[str]:
        return self.stdin.commands

    def emit(self, text: str) -> None:
        """Write raw text to the engine's stdout."""
        self.stdout.push(text.encode())

    def emit_stderr(self, text: str) -> None:
        self.stderr.push(text.encode())

    def exit(self, code: int = 0) -> None:
        """Simulate the engine process exiting on its own."""
        if self.returncode is None:
            self.returncode = code
            self.stdin.closed = True
            self.stdout.close()
            self.stderr.close()
            self._exited.set()

    def poll(self) -> int | None:
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    def wait(self, timeout: float | None = None) -> int | None:
        self._exited.wait(timeout)
        return self.returncode

    def _reply(self, command: str) -> None:
        key = command.split()[0] if command else ""
        for line in self.responses.get(command, self.responses.get(key, [])):
            self.emit(line + "\n")


class FakeTimer:
    """Manually fired replacement for threading.Timer."""

    def __init__(self, seconds: float, callback: Callable[[], None]) -> None:
        self.seconds = seconds
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


@pytest.fixture
def starting_fen() -> str:
    """Starting position FEN."""
    return STARTING_FEN


@pytest.fixture
def complex_fen() -> str:
    """Complex position FEN."""
    return COMPLEX_FEN


@pytest.fixture
def engine_available() -> bool:
    """Check if an engine binary is available."""
    engine_path = os.environ.get("CHESSTER_ENGINE_PATH", "stockfish")
    return shutil.which(engine_path) is not None


@pytest.fixture
def engine_config() -> EngineConfig:
    """Create a test engine configuration with no handshake pacing."""
    return EngineConfig(
        engine_path=Path("fakefish"),
        default_depth=10,
        default_move_time_ms=2000,
        max_depth=None,
        max_move_time_ms=None,
        handshake_timeout=2.0,
        uci_delay=0.0,
        isready_delay=0.0,
    )


@pytest.fixture
def fake_process() -> FakeEngineProcess:
    """A scripted engine process that answers the handshake."""
    return FakeEngineProcess()


@pytest.fixture
def timers() -> list[FakeTimer]:
    """Timers created by the adapter, in creation order."""
    return []


@pytest.fixture
def timer_factory(timers: list[FakeTimer]) -> Callable[[float, Callable[[], None]], FakeTimer]:
    def factory(seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(seconds, callback)
        timers.append(timer)
        return timer

    return factory


@pytest.fixture
def adapter(
    engine_config: EngineConfig,
    fake_process: FakeEngineProcess,
    timer_factory: Callable[[float, Callable[[], None]], FakeTimer],
) -> EngineAdapter:
    """Adapter wired to the fake process through the real supervisor."""
    supervisor = ProcessSupervisor(popen=lambda *args, **kwargs: fake_process)
    engine = EngineAdapter(engine_config, supervisor=supervisor, timer_factory=timer_factory)
    yield engine
    engine.quit()


@pytest.fixture
def ready_adapter(adapter: EngineAdapter) -> EngineAdapter:
    """Adapter that has completed the handshake."""
    adapter.initialize()
    return adapter


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll until predicate() is true or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


FAKE_ENGINE_SCRIPT = """\
#!{python}
import sys

sys.stderr.write("scriptfish starting\\n")
sys.stderr.flush()
for line in sys.stdin:
    command = line.strip()
    if command == "uci":
        print("id name ScriptFish 2.0", flush=True)
        print("uciok", flush=True)
    elif command == "isready":
        print("readyok", flush=True)
    elif command.startswith("go"):
        print("info depth 1 score cp 13 pv e2e4", flush=True)
        print("bestmove e2e4 score cp 13 depth 1", flush=True)
    elif command == "crash":
        sys.exit(3)
    elif command == "quit":
        break
"""


@pytest.fixture
def fake_engine_script(tmp_path: Path) -> Path:
    """An executable script that speaks just enough of the protocol."""
    script = tmp_path / "scriptfish"
    script.write_text(FAKE_ENGINE_SCRIPT.format(python=sys.executable))
    script.chmod(0o755)
    return script
