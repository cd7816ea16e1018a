"""Claude CLI subprocess lifecycle: arguments, spawn, I/O, timeout."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from collections.abc import AsyncIterator, Callable, Sequence

from ovrlrd.bridge.errors import ReadError, SpawnError, WriteError
from ovrlrd.config.models import BridgeConfig

logger = logging.getLogger(__name__)

#: Bytes requested per stdout read.
_READ_SIZE = 65_536

#: StreamReader buffer limit for the subprocess pipes (1 MB).
_PIPE_LIMIT = 1_048_576

#: Binary directories appended to PATH so a user-installed CLI is found.
_EXTRA_PATHS = {
    "darwin": ["/opt/homebrew/bin", "/usr/local/bin"],
    "linux": ["/usr/local/bin", "/usr/bin"],
}


def build_args(
    config: BridgeConfig,
    *,
    message: str | None = None,
    resume_token: str | None = None,
    allowed_tools: Sequence[str] | None = None,
    use_stdin: bool = False,
) -> list[str]:
    """Build the CLI arguments (without the executable) for one turn.

    With ``use_stdin`` the prompt is not passed on the command line;
    ``-p`` without an argument makes the CLI read it from stdin.
    """
    args: list[str] = []

    if use_stdin:
        args.append("-p")
    elif message:
        args.extend(["-p", message])

    args.extend(["--output-format", "stream-json", "--verbose"])

    if allowed_tools:
        args.extend(["--allowedTools", " ".join(allowed_tools)])

    for directory in config.additional_dirs:
        args.extend(["--add-dir", directory])

    if resume_token:
        args.extend(["--resume", resume_token])

    return args


def claude_env() -> dict[str, str]:
    """Environment for the CLI: ours, with common binary dirs on PATH."""
    env = dict(os.environ)
    extra = _EXTRA_PATHS.get(sys.platform, [])
    if extra:
        current = env.get("PATH", "")
        env["PATH"] = ":".join([current, *extra]) if current else ":".join(extra)
    return env


class ClaudeProcess:
    """Handle around one spawned CLI subprocess.

    Owns the stdout reader: ``read_chunks()`` yields raw byte chunks until
    EOF or until ``release_reader()`` is called, after which the reader
    can not be used again.
    """

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc
        self._reader_released = False

    @property
    def pid(self) -> int | None:
        return getattr(self._proc, "pid", None)

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    @property
    def reader_released(self) -> bool:
        return self._reader_released

    async def write_input(self, text: str) -> None:
        """Write *text* to stdin and close it.

        Raises:
            WriteError: When the pipe is missing or broken.
        """
        stdin = self._proc.stdin
        if stdin is None:
            msg = "Process has no stdin pipe"
            raise WriteError(msg)
        try:
            stdin.write(text.encode())
            await stdin.drain()
            stdin.close()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            raise WriteError(str(exc)) from exc

    async def read_chunks(self) -> AsyncIterator[bytes]:
        """Yield stdout chunks until EOF.

        Raises:
            ReadError: When reading the pipe fails.
        """
        if self._reader_released:
            msg = "stdout reader already released"
            raise ReadError(msg)
        stdout = self._proc.stdout
        if stdout is None:
            return
        while not self._reader_released:
            try:
                chunk = await stdout.read(_READ_SIZE)
            except (ConnectionResetError, OSError) as exc:
                raise ReadError(str(exc)) from exc
            if not chunk:
                return
            yield chunk

    def release_reader(self) -> None:
        """Give up the stdout reader. Idempotent."""
        self._reader_released = True

    def kill(self) -> None:
        """SIGKILL the process; an already-exited process is not an error."""
        with contextlib.suppress(ProcessLookupError, OSError):
            self._proc.kill()

    async def wait(self) -> int:
        return await self._proc.wait()

    async def read_stderr(self) -> str:
        """Drain stderr, returning whatever was captured."""
        stderr = self._proc.stderr
        if stderr is None:
            return ""
        try:
            data = await stderr.read()
        except (ConnectionResetError, OSError) as exc:
            logger.debug("Could not read stderr: %s", exc)
            return ""
        return data.decode(errors="replace").strip()


async def spawn(
    executable: str,
    args: Sequence[str],
    work_dir: str,
    env: dict[str, str] | None = None,
    *,
    stdin: bool = True,
) -> ClaudeProcess:
    """Start the CLI with piped stdout/stderr.

    Raises:
        SpawnError: When the executable is missing or the OS refuses.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            executable,
            *args,
            cwd=work_dir,
            stdin=asyncio.subprocess.PIPE if stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=_PIPE_LIMIT,
            env=env if env is not None else claude_env(),
            start_new_session=True,
        )
    except FileNotFoundError as exc:
        msg = f"Claude CLI not found: {executable}"
        raise SpawnError(msg) from exc
    except OSError as exc:
        msg = f"Failed to spawn Claude CLI: {exc}"
        raise SpawnError(msg) from exc
    return ClaudeProcess(proc)


class SubprocessTimeout:
    """Single wall-clock timer that kills a process when it fires.

    ``on_timeout`` runs before the kill, at most once. ``cancel()`` is
    idempotent and a no-op after the timer fired.
    """

    def __init__(
        self,
        process: ClaudeProcess,
        seconds: float,
        on_timeout: Callable[[], None],
    ) -> None:
        self._process = process
        self._seconds = seconds
        self._on_timeout = on_timeout
        self._fired = False
        loop = asyncio.get_running_loop()
        self._handle: asyncio.TimerHandle | None = loop.call_later(seconds, self._fire)

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        """True while the timer is armed and has neither fired nor been cancelled."""
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._fired = True
        logger.error("Request timed out after %.0fs", self._seconds)
        try:
            self._on_timeout()
        finally:
            self._process.kill()


def with_timeout(
    process: ClaudeProcess,
    seconds: float,
    on_timeout: Callable[[], None],
) -> SubprocessTimeout:
    """Arm a ``SubprocessTimeout`` for *process*; call ``.cancel()`` to disarm."""
    return SubprocessTimeout(process, seconds, on_timeout)
