"""ptyprocess-backed PTY lifecycle for cached terminals."""

from __future__ import annotations

import atexit
import logging as py_logging
import os
import threading
from collections import deque
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from ptyprocess import PtyProcess

from treehouse.constants import DEFAULT_LOGIN_SHELL, PTY_READ_CHUNK_BYTES, TERMINAL_ENV_OVERRIDES
from treehouse.errors import ExitCode, TreehouseError
from treehouse.security import command_for_log, sanitize_terminal_log_text

logger = py_logging.getLogger(__name__)

PtySpawn = Callable[[list[str], str | None, dict[str, str] | None], object]
ExitCallback = Callable[[str], None]

_MAX_BUFFERED_CHUNKS = 1024


def login_shell() -> str:
    return os.environ.get("SHELL", "") or DEFAULT_LOGIN_SHELL


def shell_single_quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def build_launch_command(working_directory: str | Path, target: str, *, shell: str | None = None) -> list[str]:
    """Wrap ``target`` so it replaces a login shell that first changes into ``working_directory``."""
    if not target.strip():
        raise TreehouseError(
            "Terminal target command cannot be empty.",
            code=ExitCode.VALIDATION_ERROR,
            hint="Provide a program to run in the terminal.",
        )
    script = f"cd {shell_single_quote(str(working_directory))} && exec {target}"
    return [shell or login_shell(), "-l", "-c", script]


def build_shell_target(command: str, arguments: list[str] | tuple[str, ...] = ()) -> str:
    parts = [command, *(shell_single_quote(item) for item in arguments)]
    return " ".join(parts)


def terminal_environment(base: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env.update(TERMINAL_ENV_OVERRIDES)
    return env


def _spawn_with_ptyprocess(command: list[str], cwd: str | None, env: dict[str, str] | None) -> object:
    return PtyProcess.spawn(command, cwd=cwd, env=env)


@dataclass
class TerminalHandle:
    """Stable reference to a cached terminal; survives process restarts under the same key."""

    session_key: str
    backend: PtyBackend
    background: str = ""
    foreground: str = ""
    font_size: float = 13.0
    font_family: str | None = None

    @property
    def pid(self) -> int | None:
        return self.backend.pid(self.session_key)

    def write(self, payload: str) -> None:
        self.backend.write(self.session_key, payload)

    def read(self, *, max_bytes: int = PTY_READ_CHUNK_BYTES) -> str:
        return self.backend.read(self.session_key, max_bytes=max_bytes)

    def resize(self, *, cols: int, rows: int) -> None:
        self.backend.resize(self.session_key, cols=cols, rows=rows)

    def interrupt(self) -> None:
        self.backend.interrupt(self.session_key)

    def is_alive(self) -> bool:
        return self.backend.is_alive(self.session_key)


class _Session:
    def __init__(self, process: object, command: tuple[str, ...]) -> None:
        self.process = process
        self.command = command
        self.output: deque[str] = deque(maxlen=_MAX_BUFFERED_CHUNKS)
        self.reader: threading.Thread | None = None


class PtyBackend:
    def __init__(
        self,
        spawn: PtySpawn | None = None,
        *,
        on_exit: ExitCallback | None = None,
        threaded: bool = True,
    ) -> None:
        self._spawn = spawn or _spawn_with_ptyprocess
        self._threaded = threaded
        self.on_exit = on_exit
        self._sessions: dict[str, _Session] = {}
        self._lock = threading.Lock()
        atexit.register(self.stop_all)

    def start(
        self,
        session_key: str,
        command: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            if session_key in self._sessions:
                raise TreehouseError(
                    f"Terminal already started: {session_key}",
                    code=ExitCode.VALIDATION_ERROR,
                    hint="Stop the current PTY session before starting a new one.",
                )
        if not command:
            raise TreehouseError(
                "PTY command cannot be empty.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Provide a shell command for the terminal.",
            )

        try:
            process = self._spawn(list(command), cwd, env)
        except TreehouseError:
            raise
        except Exception as exc:
            raise TreehouseError(
                "Failed to start PTY process.",
                code=ExitCode.TERMINAL_ERROR,
                hint=str(exc) or "Check the login shell installation.",
            ) from exc

        session = _Session(process, tuple(command))
        with self._lock:
            self._sessions[session_key] = session
        logger.debug("PTY started key=%s command=%s", session_key, command_for_log(command))
        if self._threaded:
            session.reader = threading.Thread(
                target=self._pump,
                args=(session_key, session),
                name=f"pty-reader-{session_key}",
                daemon=True,
            )
            session.reader.start()

    def write(self, session_key: str, payload: str) -> None:
        process = self._require_session(session_key).process
        try:
            process.write(payload.encode("utf-8"))
        except Exception as exc:
            raise TreehouseError(
                f"Failed to write to terminal {session_key}.",
                code=ExitCode.TERMINAL_ERROR,
                hint=str(exc) or "Verify terminal process health.",
            ) from exc

    def read(self, session_key: str, *, max_bytes: int = PTY_READ_CHUNK_BYTES) -> str:
        session = self._require_session(session_key)
        if self._threaded:
            chunks: list[str] = []
            while session.output:
                chunks.append(session.output.popleft())
            return "".join(chunks)
        try:
            chunk = session.process.read(max_bytes)
        except EOFError:
            return ""
        except Exception as exc:
            raise TreehouseError(
                f"Failed to read from terminal {session_key}.",
                code=ExitCode.TERMINAL_ERROR,
                hint=str(exc) or "Verify PTY stream state.",
            ) from exc
        return _decode(chunk)

    def resize(self, session_key: str, *, cols: int, rows: int) -> None:
        if cols <= 0 or rows <= 0:
            raise TreehouseError(
                f"Invalid PTY size: {cols}x{rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )
        process = self._require_session(session_key).process
        try:
            process.setwinsize(rows, cols)
        except Exception as exc:
            raise TreehouseError(
                f"Failed to resize terminal {session_key}.",
                code=ExitCode.TERMINAL_ERROR,
                hint=str(exc) or "Verify PTY backend supports resizing.",
            ) from exc

    def interrupt(self, session_key: str) -> None:
        # Ctrl+C passthrough for interactive shells.
        self.write(session_key, "\x03")

    def pid(self, session_key: str) -> int | None:
        with self._lock:
            session = self._sessions.get(session_key)
        if session is None:
            return None
        value = getattr(session.process, "pid", None)
        return value if isinstance(value, int) else None

    def is_alive(self, session_key: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_key)
        return session is not None and _is_alive(session.process)

    def is_running(self, session_key: str) -> bool:
        with self._lock:
            return session_key in self._sessions

    def stop(self, session_key: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_key, None)
        if session is None:
            raise TreehouseError(
                f"Terminal not running: {session_key}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Select an active terminal session.",
            )
        self._close_session(session.process)
        logger.debug("PTY stopped key=%s", session_key)

    def stop_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            self._close_session(session.process)

    def session_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def process_exited(self, session_key: str, process: object) -> None:
        """Forget a session whose process ended on its own and report it.

        Exits of processes that were already stopped, or replaced by a restart,
        are ignored.
        """
        with self._lock:
            session = self._sessions.get(session_key)
            if session is None or session.process is not process:
                return
            del self._sessions[session_key]
        logger.info("PTY exited key=%s", session_key)
        if self.on_exit is not None:
            self.on_exit(session_key)

    def _pump(self, session_key: str, session: _Session) -> None:
        process = session.process
        while True:
            try:
                chunk = process.read(PTY_READ_CHUNK_BYTES)
            except (EOFError, OSError):
                break
            text = _decode(chunk)
            if not text:
                if not _is_alive(process):
                    break
                continue
            session.output.append(text)
            if logger.isEnabledFor(py_logging.DEBUG):
                logger.debug("PTY output key=%s text=%s", session_key, sanitize_terminal_log_text(text))
        self.process_exited(session_key, process)

    def _require_session(self, session_key: str) -> _Session:
        with self._lock:
            session = self._sessions.get(session_key)
        if session is None:
            raise TreehouseError(
                f"Terminal not running: {session_key}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Start terminal before PTY I/O operations.",
            )
        return session

    def _close_session(self, process: object) -> None:
        alive = _is_alive(process)
        if hasattr(process, "close"):
            try:
                process.close(force=True)
            except TypeError:
                with suppress(Exception):
                    process.close()
            except Exception as exc:
                logger.debug("PTY close failed error=%s", exc)
        if alive and _is_alive(process) and hasattr(process, "terminate"):
            with suppress(Exception):
                process.terminate(force=True)


def _decode(chunk: object) -> str:
    if chunk is None:
        return ""
    if isinstance(chunk, bytes):
        return chunk.decode("utf-8", errors="replace")
    return str(chunk)


def _is_alive(process: object) -> bool:
    if hasattr(process, "isalive"):
        try:
            return bool(process.isalive())
        except Exception:
            return True
    return True
