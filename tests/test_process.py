"""Tests for CLI argument building, spawning, process I/O and timeouts."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ovrlrd.bridge.errors import ReadError, SpawnError, WriteError
from ovrlrd.bridge.process import (
    ClaudeProcess,
    build_args,
    claude_env,
    spawn,
    with_timeout,
)
from ovrlrd.config.models import BridgeConfig

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


class MockAsyncStdout:
    """Async stdout whose ``read()`` returns fed chunks, then b"" at EOF."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    def close(self) -> None:
        self._queue.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        data = await self._queue.get()
        if not data:
            self._queue.put_nowait(b"")
        return data


def _make_mock_process(stdout: MockAsyncStdout | None = None) -> MagicMock:
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = None
    proc.stdin = MagicMock()
    proc.stdin.drain = AsyncMock()
    proc.stdout = stdout if stdout is not None else MockAsyncStdout()
    proc.stderr = MagicMock()
    proc.stderr.read = AsyncMock(return_value=b"")
    proc.wait = AsyncMock(return_value=0)
    proc.kill = MagicMock()
    return proc


# ------------------------------------------------------------------ #
# Arguments and environment
# ------------------------------------------------------------------ #


class TestBuildArgs:
    def test_stdin_mode(self) -> None:
        args = build_args(BridgeConfig(), use_stdin=True)
        assert args == ["-p", "--output-format", "stream-json", "--verbose"]

    def test_message_mode(self) -> None:
        args = build_args(BridgeConfig(), message="hello there")
        assert args[:2] == ["-p", "hello there"]

    def test_full_turn(self) -> None:
        config = BridgeConfig(additional_dirs=["/srv/a", "/srv/b"])
        args = build_args(
            config,
            resume_token="sess-1",
            allowed_tools=["Write", "Bash(git:*)"],
            use_stdin=True,
        )
        assert args == [
            "-p",
            "--output-format",
            "stream-json",
            "--verbose",
            "--allowedTools",
            "Write Bash(git:*)",
            "--add-dir",
            "/srv/a",
            "--add-dir",
            "/srv/b",
            "--resume",
            "sess-1",
        ]

    def test_empty_allowlist_omitted(self) -> None:
        args = build_args(BridgeConfig(), allowed_tools=[], use_stdin=True)
        assert "--allowedTools" not in args


class TestClaudeEnv:
    def test_linux_path_extended(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.platform", "linux")
        monkeypatch.setenv("PATH", "/bin")
        env = claude_env()
        assert env["PATH"] == "/bin:/usr/local/bin:/usr/bin"

    def test_darwin_path_extended(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.platform", "darwin")
        monkeypatch.setenv("PATH", "/bin")
        assert claude_env()["PATH"].endswith(":/opt/homebrew/bin:/usr/local/bin")

    def test_other_env_preserved(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OVRLRD_TEST_VAR", "x")
        assert claude_env()["OVRLRD_TEST_VAR"] == "x"


# ------------------------------------------------------------------ #
# Spawn
# ------------------------------------------------------------------ #


class TestSpawn:
    async def test_spawn_passes_pipes_and_cwd(self) -> None:
        mock_proc = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=mock_proc) as exec_mock:
            process = await spawn("claude", ["-p"], "/tmp", {"PATH": "/bin"})

        assert process.pid == 4242
        args, kwargs = exec_mock.call_args
        assert args == ("claude", "-p")
        assert kwargs["cwd"] == "/tmp"
        assert kwargs["stdin"] == asyncio.subprocess.PIPE
        assert kwargs["stdout"] == asyncio.subprocess.PIPE
        assert kwargs["stderr"] == asyncio.subprocess.PIPE
        assert kwargs["env"] == {"PATH": "/bin"}
        assert kwargs["start_new_session"] is True

    async def test_spawn_without_stdin(self) -> None:
        with patch(
            "asyncio.create_subprocess_exec", return_value=_make_mock_process()
        ) as exec_mock:
            await spawn("claude", [], "/tmp", {}, stdin=False)
        assert exec_mock.call_args.kwargs["stdin"] == asyncio.subprocess.DEVNULL

    async def test_missing_executable(self) -> None:
        with (
            patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError()),
            pytest.raises(SpawnError, match="not found"),
        ):
            await spawn("no-such-claude", [], "/tmp", {})

    async def test_os_error(self) -> None:
        with (
            patch("asyncio.create_subprocess_exec", side_effect=PermissionError("denied")),
            pytest.raises(SpawnError, match="denied"),
        ):
            await spawn("claude", [], "/tmp", {})


# ------------------------------------------------------------------ #
# Process I/O
# ------------------------------------------------------------------ #


class TestClaudeProcess:
    async def test_write_input_closes_stdin(self) -> None:
        proc = _make_mock_process()
        await ClaudeProcess(proc).write_input("hi ✓")
        proc.stdin.write.assert_called_once_with("hi ✓".encode())
        proc.stdin.drain.assert_awaited_once()
        proc.stdin.close.assert_called_once()

    async def test_write_broken_pipe(self) -> None:
        proc = _make_mock_process()
        proc.stdin.drain = AsyncMock(side_effect=BrokenPipeError())
        with pytest.raises(WriteError):
            await ClaudeProcess(proc).write_input("hi")

    async def test_write_without_stdin(self) -> None:
        proc = _make_mock_process()
        proc.stdin = None
        with pytest.raises(WriteError):
            await ClaudeProcess(proc).write_input("hi")

    async def test_read_chunks_until_eof(self) -> None:
        stdout = MockAsyncStdout()
        stdout.feed(b"one")
        stdout.feed(b"two")
        stdout.close()
        process = ClaudeProcess(_make_mock_process(stdout))
        assert [c async for c in process.read_chunks()] == [b"one", b"two"]

    async def test_read_error_wrapped(self) -> None:
        proc = _make_mock_process()
        proc.stdout = MagicMock()
        proc.stdout.read = AsyncMock(side_effect=ConnectionResetError())
        with pytest.raises(ReadError):
            async for _ in ClaudeProcess(proc).read_chunks():
                pass

    async def test_released_reader_not_restartable(self) -> None:
        process = ClaudeProcess(_make_mock_process())
        process.release_reader()
        assert process.reader_released
        with pytest.raises(ReadError):
            async for _ in process.read_chunks():
                pass

    async def test_release_stops_iteration(self) -> None:
        stdout = MockAsyncStdout()
        stdout.feed(b"one")
        stdout.feed(b"two")
        process = ClaudeProcess(_make_mock_process(stdout))
        seen = []
        async for chunk in process.read_chunks():
            seen.append(chunk)
            process.release_reader()
        assert seen == [b"one"]

    def test_kill_dead_process_swallowed(self) -> None:
        proc = _make_mock_process()
        proc.kill.side_effect = ProcessLookupError()
        ClaudeProcess(proc).kill()
        proc.kill.assert_called_once()

    async def test_read_stderr(self) -> None:
        proc = _make_mock_process()
        proc.stderr.read = AsyncMock(return_value=b"  bad things\n")
        assert await ClaudeProcess(proc).read_stderr() == "bad things"

    async def test_read_stderr_missing(self) -> None:
        proc = _make_mock_process()
        proc.stderr = None
        assert await ClaudeProcess(proc).read_stderr() == ""


# ------------------------------------------------------------------ #
# Timeout
# ------------------------------------------------------------------ #


class TestSubprocessTimeout:
    async def test_fires_once_and_kills(self) -> None:
        proc = _make_mock_process()
        fired: list[str] = []
        timer = with_timeout(ClaudeProcess(proc), 0.01, lambda: fired.append("t"))
        assert timer.pending

        await asyncio.sleep(0.05)

        assert fired == ["t"]
        assert timer.fired
        assert not timer.pending
        proc.kill.assert_called_once()

    async def test_cancel_prevents_fire(self) -> None:
        proc = _make_mock_process()
        fired: list[str] = []
        timer = with_timeout(ClaudeProcess(proc), 0.01, lambda: fired.append("t"))
        timer.cancel()
        timer.cancel()

        await asyncio.sleep(0.05)

        assert fired == []
        assert not timer.fired
        assert not timer.pending
        proc.kill.assert_not_called()

    async def test_kill_runs_even_if_callback_raises(self) -> None:
        proc = _make_mock_process()
        loop = asyncio.get_running_loop()
        errors: list[dict[str, object]] = []
        loop.set_exception_handler(lambda _loop, ctx: errors.append(ctx))

        def _boom() -> None:
            raise RuntimeError("callback failed")

        with_timeout(ClaudeProcess(proc), 0.01, _boom)
        await asyncio.sleep(0.05)

        proc.kill.assert_called_once()
        assert errors
        loop.set_exception_handler(None)
