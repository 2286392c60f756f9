from __future__ import annotations
import asyncio
import codecs
import contextlib
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Sequence

import structlog

from ..core.models import ProcessResult
from ..errors import SpawnError

logger = structlog.get_logger(__name__)

TIME_LIMIT_MARKER = "\n[Error] Time limit exceeded."
READ_CHUNK = 64 * 1024
IS_WINDOWS = sys.platform == "win32"


class _Capture:
    """Accumulates one output stream, decoding UTF-8 as chunks arrive."""

    def __init__(self, limit: int):
        self.limit = limit
        self.truncated = False
        self._parts: List[str] = []
        self._size = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes, final: bool = False) -> None:
        text = self._decoder.decode(data, final)
        if not text:
            return
        room = self.limit - self._size
        if len(text) > room:
            text = text[: max(room, 0)]
            self.truncated = True
        if text:
            self._parts.append(text)
            self._size += len(text)

    def note(self, text: str) -> None:
        # diagnostics bypass the size limit
        self._parts.append(text)

    def text(self) -> str:
        return "".join(self._parts)


class ProcessRunner:
    """
    Runs one external command at a time: pipes stdin in, drains stdout/stderr
    independently and hard-kills the child once its wall-clock budget is spent.
    """

    def __init__(self, max_output_chars: int = 1024 * 1024, kill_grace_s: float = 2.0):
        self.max_output_chars = max_output_chars
        self.kill_grace_s = kill_grace_s

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path,
        stdin_text: str = "",
        time_limit: float,
    ) -> ProcessResult:
        """
        Spawn ``command`` in ``cwd`` and wait for it to terminate.

        Always resolves once the child is gone, with whatever output was
        captured. Raises SpawnError only when the child cannot be started.
        """
        argv = [command, *args]
        start = time.monotonic()
        proc = await self._spawn(argv, cwd)
        log = logger.bind(command=command, pid=proc.pid)

        out = _Capture(self.max_output_chars)
        err = _Capture(self.max_output_chars)
        io = asyncio.gather(
            self._feed(proc.stdin, stdin_text),
            self._drain(proc.stdout, out),
            self._drain(proc.stderr, err),
            proc.wait(),
        )
        timed_out = False
        try:
            try:
                await asyncio.wait_for(asyncio.shield(io), timeout=time_limit)
            except asyncio.TimeoutError:
                timed_out = True
                err.note(TIME_LIMIT_MARKER)
                log.warning("process_timeout", time_limit=time_limit)
                self._kill(proc)
                try:
                    await asyncio.wait_for(io, timeout=self.kill_grace_s)
                except asyncio.TimeoutError:
                    # a grandchild outside the process group still holds the pipes
                    log.warning("process_pipes_abandoned", grace_s=self.kill_grace_s)
            # None only if the kill has not been reaped yet
            exit_code = proc.returncode
        finally:
            if proc.returncode is None:
                self._kill(proc)
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_s)
            if not io.done():
                io.cancel()

        for name, sink in (("stdout", out), ("stderr", err)):
            if sink.truncated:
                log.warning("process_output_truncated", stream=name, limit=self.max_output_chars)

        duration = time.monotonic() - start
        log.debug("process_finished", exit_code=exit_code, timed_out=timed_out, duration_s=round(duration, 3))
        return ProcessResult(
            exit_code=exit_code,
            stdout=out.text(),
            stderr=err.text(),
            timed_out=timed_out,
            duration_s=duration,
        )

    @staticmethod
    async def _spawn(argv: List[str], cwd: Path) -> asyncio.subprocess.Process:
        pipes = dict(
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            if IS_WINDOWS:
                # cmd.exe resolves bare names such as "main.exe" or "javac"
                return await asyncio.create_subprocess_shell(
                    subprocess.list2cmdline(argv), cwd=str(cwd), **pipes
                )
            # own session so the kill reaches every process the child forks
            return await asyncio.create_subprocess_exec(
                *argv, cwd=str(cwd), start_new_session=True, **pipes
            )
        except OSError as e:
            raise SpawnError(argv[0], e.strerror or str(e)) from e

    @staticmethod
    async def _feed(stdin: asyncio.StreamWriter, text: str) -> None:
        try:
            if text:
                stdin.write(text.encode("utf-8"))
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # child exited without reading its input
            logger.debug("process_stdin_closed_early")
        finally:
            stdin.close()

    @staticmethod
    async def _drain(stream: asyncio.StreamReader, sink: _Capture) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            sink.feed(chunk)
        sink.feed(b"", final=True)

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if not IS_WINDOWS:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
                return
            except (ProcessLookupError, PermissionError):
                pass
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
