from __future__ import annotations

import queue
import threading
import time

import pytest

from treehouse.errors import ExitCode, TreehouseError
from treehouse.terminal import PtyBackend, TerminalHandle, build_launch_command, build_shell_target
from treehouse.terminal.pty_backend import shell_single_quote, terminal_environment

pytestmark = pytest.mark.critical_regression


class _FakePty:
    def __init__(self, chunks: list[bytes] | None = None, *, sticky_alive: bool = False, pid: int = 4242) -> None:
        self.chunks = list(chunks or [])
        self.writes: list[bytes] = []
        self.size: tuple[int, int] | None = None
        self.closed = False
        self.terminated = False
        self.sticky_alive = sticky_alive
        self.pid = pid

    def write(self, payload: bytes) -> int:
        self.writes.append(payload)
        return len(payload)

    def read(self, _size: int = 4096) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        raise EOFError

    def setwinsize(self, rows: int, cols: int) -> None:
        self.size = (rows, cols)

    def close(self, force: bool = False) -> None:
        self.closed = True

    def terminate(self, force: bool = False) -> bool:
        self.terminated = True
        return True

    def isalive(self) -> bool:
        if self.sticky_alive:
            return not self.terminated
        return not self.closed


def _backend(pty: _FakePty | None = None, **kwargs) -> PtyBackend:
    instance = pty or _FakePty()
    return PtyBackend(spawn=lambda _c, _cwd, _env: instance, threaded=False, **kwargs)


def test_launch_command_changes_directory_then_execs_target() -> None:
    command = build_launch_command("/trees/it's here", "claude --resume abc", shell="/bin/zsh")

    assert command == ["/bin/zsh", "-l", "-c", "cd '/trees/it'\\''s here' && exec claude --resume abc"]


def test_launch_command_rejects_empty_target() -> None:
    with pytest.raises(TreehouseError) as exc_info:
        build_launch_command("/tmp", "   ", shell="/bin/sh")

    assert exc_info.value.code == ExitCode.VALIDATION_ERROR


def test_shell_target_quotes_arguments_only() -> None:
    assert build_shell_target("npm", ["run", "dev server"]) == "npm 'run' 'dev server'"
    assert build_shell_target("/bin/zsh") == "/bin/zsh"
    assert shell_single_quote("") == "''"


def test_terminal_environment_overrides_term_and_lang() -> None:
    env = terminal_environment({"TERM": "dumb", "HOME": "/home/me"})

    assert env == {"TERM": "xterm-256color", "LANG": "en_US.UTF-8", "HOME": "/home/me"}


def test_backend_passes_command_cwd_and_env_to_spawn() -> None:
    seen: list[tuple[list[str], str | None, dict[str, str] | None]] = []

    def spawn(command: list[str], cwd: str | None, env: dict[str, str] | None) -> _FakePty:
        seen.append((command, cwd, env))
        return _FakePty()

    backend = PtyBackend(spawn=spawn, threaded=False)
    backend.start("ws:assistant", ["/bin/zsh", "-l"], cwd="/trees/tokyo", env={"TERM": "xterm-256color"})

    assert seen == [(["/bin/zsh", "-l"], "/trees/tokyo", {"TERM": "xterm-256color"})]
    assert backend.session_keys() == ["ws:assistant"]
    assert backend.pid("ws:assistant") == 4242


def test_backend_write_read_resize_and_interrupt() -> None:
    pty = _FakePty(chunks=[b"hello \xe2\x9c\x93"])
    backend = _backend(pty)
    backend.start("t1", ["/bin/sh"])
    handle = TerminalHandle(session_key="t1", backend=backend)

    handle.write("echo test\n")
    handle.interrupt()
    handle.resize(cols=120, rows=40)

    assert handle.read() == "hello ✓"
    assert handle.read() == ""
    assert pty.writes == [b"echo test\n", b"\x03"]
    assert pty.size == (40, 120)
    assert handle.is_alive() is True


def test_backend_rejects_duplicate_starts_empty_commands_and_missing_sessions() -> None:
    backend = _backend()
    backend.start("t1", ["/bin/sh"])

    with pytest.raises(TreehouseError):
        backend.start("t1", ["/bin/sh"])
    with pytest.raises(TreehouseError):
        backend.start("t2", [])
    with pytest.raises(TreehouseError):
        backend.read("missing")
    with pytest.raises(TreehouseError):
        backend.stop("missing")
    assert backend.pid("missing") is None


def test_spawn_failure_is_reported_as_terminal_error() -> None:
    def spawn(_c: list[str], _cwd: str | None, _env: dict[str, str] | None) -> _FakePty:
        raise OSError("no such shell")

    backend = PtyBackend(spawn=spawn, threaded=False)

    with pytest.raises(TreehouseError) as exc_info:
        backend.start("t1", ["/missing/shell"])

    assert exc_info.value.code == ExitCode.TERMINAL_ERROR
    assert "no such shell" in exc_info.value.hint
    assert backend.is_running("t1") is False


def test_backend_stop_and_stop_all_terminate_processes() -> None:
    spawned: list[_FakePty] = []

    def spawn(_command: list[str], _cwd: str | None, _env: dict[str, str] | None) -> _FakePty:
        instance = _FakePty(sticky_alive=True)
        spawned.append(instance)
        return instance

    backend = PtyBackend(spawn=spawn, threaded=False)
    backend.start("t1", ["/bin/sh"])
    backend.start("t2", ["/bin/sh"])

    backend.stop("t1")
    assert spawned[0].closed is True
    assert spawned[0].terminated is True

    backend.stop_all()
    assert spawned[1].closed is True
    assert backend.session_keys() == []


def test_backend_validates_resize_values() -> None:
    backend = _backend()
    backend.start("t1", ["/bin/sh"])

    with pytest.raises(TreehouseError):
        backend.resize("t1", cols=0, rows=20)


def test_process_exit_ignores_stale_processes() -> None:
    exited: list[str] = []
    first = _FakePty()
    backend = _backend(first, on_exit=exited.append)
    backend.start("t1", ["/bin/sh"])

    backend.process_exited("t1", object())
    assert backend.is_running("t1") is True

    backend.process_exited("t1", first)
    backend.process_exited("t1", first)

    assert exited == ["t1"]
    assert backend.is_running("t1") is False


def test_reader_thread_reports_exit_once_output_ends() -> None:
    done = threading.Event()
    exited: list[str] = []

    def on_exit(key: str) -> None:
        exited.append(key)
        done.set()

    pty = _FakePty(chunks=[b"line one\n", b"line two\n"])
    backend = PtyBackend(spawn=lambda _c, _cwd, _env: pty, on_exit=on_exit)
    backend.start("t1", ["/bin/sh"])

    assert done.wait(timeout=5)
    assert exited == ["t1"]
    assert backend.is_running("t1") is False


class _StreamingPty(_FakePty):
    def __init__(self) -> None:
        super().__init__()
        self.feed: queue.Queue[bytes | None] = queue.Queue()

    def read(self, _size: int = 4096) -> bytes:
        chunk = self.feed.get(timeout=5)
        if chunk is None:
            raise EOFError
        return chunk


def test_threaded_read_drains_buffered_chunks() -> None:
    pty = _StreamingPty()
    backend = PtyBackend(spawn=lambda _c, _cwd, _env: pty)
    backend.start("t1", ["/bin/sh"])
    pty.feed.put(b"abc")
    pty.feed.put(b"def")

    collected = ""
    for _ in range(500):
        collected += backend.read("t1")
        if collected == "abcdef":
            break
        time.sleep(0.01)

    assert collected == "abcdef"
    pty.feed.put(None)
    backend.stop("t1")
