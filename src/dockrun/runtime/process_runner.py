"""Process runner for external tool invocations.

dockrun runtime module

This module provides:
- A single awaitable per invocation returning a ProcessResult
- Stdout/stderr forwarding to injected output sinks
- Optional in-memory capture of stdout
- Cancel-safe cleanup using asyncio.shield

Key design points:
- Stream copies run as concurrent tasks in an anyio task group and are
  joined before the exit status is read
- Sinks are plain callables, so callers (and tests) never need to touch
  the real process-wide streams
- Spawn failures surface as ProcessSpawnError instead of being swallowed
- Cancellation terminates the process group, not just the main process
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, TextIO

import anyio

from ..errors import ExternalProcessFailed, ProcessSpawnError

__all__ = [
    "OutputSink",
    "ProcessResult",
    "ProcessRunner",
    "ProcessSpec",
    "stream_sink",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

DEFAULT_CHUNK_SIZE = 4096

OutputSink = Callable[[bytes], None]


def stream_sink(stream: TextIO | BinaryIO) -> OutputSink:
    """Build a sink that writes raw bytes to ``stream`` and flushes.

    Text streams are written through their underlying binary buffer so
    the child's bytes reach the terminal unchanged.
    """
    target = getattr(stream, "buffer", stream)

    def write(chunk: bytes) -> None:
        target.write(chunk)
        target.flush()

    return write


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable);
            stored as a tuple so a spec cannot change after creation
        cwd: Working directory for the process (None = inherit parent)
        env: Environment variables (None = inherit parent)
        forward_stdout: Copy stdout to the stdout sink; when False the
            output is captured into ProcessResult.stdout instead.
            Stderr is always forwarded.
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    forward_stdout: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "argv", tuple(self.argv))


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a finished subprocess.

    Attributes:
        argv: Command line that was run
        returncode: Exit code of the process
        stdout: Captured stdout (empty when it was forwarded)
    """

    argv: tuple[str, ...]
    returncode: int
    stdout: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class ProcessRunner:
    """Runs an external binary and reports how it exited.

    This class manages subprocess execution with:
    - A log line with the full command line before every spawn
    - Concurrent stdout/stderr draining to prevent pipe deadlocks
    - Graceful termination (SIGTERM -> timeout -> SIGKILL) on cancellation

    Example:
        runner = ProcessRunner()
        await runner.run(ProcessSpec(argv=["docker", "build", "."]))

        result = await runner.capture(
            ProcessSpec(argv=["docker", "inspect", "web"])
        )
        if result.ok:
            data = json.loads(result.stdout)
    """

    stdout_sink: OutputSink | None = None
    stderr_sink: OutputSink | None = None
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE

    async def run(self, spec: ProcessSpec) -> ProcessResult:
        """Run subprocess and require a zero exit code.

        Args:
            spec: Process specification

        Returns:
            The ProcessResult of a successful run

        Raises:
            ExternalProcessFailed: If the process exits non-zero
            ProcessSpawnError: If the process cannot be started
        """
        result = await self.execute(spec)
        if not result.ok:
            raise ExternalProcessFailed(result.returncode, result.argv)
        return result

    async def capture(self, spec: ProcessSpec) -> ProcessResult:
        """Run subprocess with stdout captured in memory.

        A non-zero exit code is returned, not raised.
        """
        return await self.execute(dataclasses.replace(spec, forward_stdout=False))

    async def execute(self, spec: ProcessSpec) -> ProcessResult:
        """Run subprocess to completion.

        This method:
        1. Logs the full command line
        2. Starts the subprocess (stdin is /dev/null)
        3. Copies stdout (forward or capture) and stderr concurrently
        4. Waits for both copies and then for the exit status
        5. Ensures cleanup even if cancelled

        Args:
            spec: Process specification

        Returns:
            ProcessResult with the exit code, whatever it is

        Raises:
            ValueError: If argv is empty
            ProcessSpawnError: If the process cannot be started
        """
        if not spec.argv:
            raise ValueError("argv must not be empty")

        logger.info(" ".join(spec.argv))

        process: asyncio.subprocess.Process | None = None
        captured: list[bytes] = []

        if spec.forward_stdout:
            on_stdout = self.stdout_sink or stream_sink(sys.stdout)
        else:
            on_stdout = captured.append
        on_stderr = self.stderr_sink or stream_sink(sys.stderr)

        kwargs = self._build_subprocess_kwargs(spec)

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *spec.argv,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    **kwargs,
                )
            except OSError as e:
                logger.debug(f"Failed to start {spec.argv[0]}: {e}")
                raise ProcessSpawnError(spec.argv, e.strerror or str(e)) from e

            logger.debug(f"Started subprocess pid={process.pid} argv={spec.argv[0]}")

            await self._copy_streams(process, on_stdout, on_stderr)
            returncode = await process.wait()

            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={returncode}"
            )

        finally:
            # Ensure cleanup with shield to prevent cancel interruption
            await self._safe_cleanup(process)

        return ProcessResult(
            argv=spec.argv,
            returncode=returncode,
            stdout=b"".join(captured),
        )

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        if spec.cwd is not None:
            kwargs["cwd"] = spec.cwd

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        # Platform-specific isolation
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def _copy_streams(
        self,
        process: asyncio.subprocess.Process,
        on_stdout: OutputSink,
        on_stderr: OutputSink,
    ) -> None:
        """Copy both pipes concurrently until EOF.

        A sink error (e.g. BrokenPipeError) cancels the other copy and is
        re-raised as-is.
        """
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._pump, process.stdout, on_stdout)
                tg.start_soon(self._pump, process.stderr, on_stderr)
        except BaseExceptionGroup as eg:
            if len(eg.exceptions) == 1:
                raise eg.exceptions[0] from None
            raise

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        sink: OutputSink,
    ) -> None:
        """Forward one pipe to a sink chunk by chunk, preserving order."""
        if stream is None:
            return
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            sink(chunk)

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
    ) -> None:
        """Terminate a still-running subprocess, shielded from cancellation.

        Args:
            process: The subprocess to terminate
        """
        if process is None or process.returncode is not None:
            return
        try:
            await asyncio.shield(self._terminate_process(process))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._terminate_process(process)
            raise

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_signal(process, signal.SIGKILL)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    def _posix_signal(
        self,
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
    ) -> None:
        """Send a signal to the process group on POSIX systems.

        Args:
            process: The subprocess
            sig: SIGTERM or SIGKILL
        """
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows.

        Args:
            process: The subprocess
        """
        try:
            # Works because we used CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
