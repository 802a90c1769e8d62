"""Container session driver: run btb a second time inside the container.

The host opens an interactive shell in the container, types the
self-invocation line into it and then relays in both directions:

  upstream    user stdin  -> session stdin   (line by line)
  downstream  session stdout -> user stdout  (raw chunks; prompts lack newlines)

The in-container run prints ``SENTINEL`` when it is done. On seeing it the
driver sends the exit command, drains the session and returns. A single
timer bounds the whole session regardless of relay state.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import shlex
import threading
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, BinaryIO

from btb.config import SessionConfig
from btb.errors import SessionError, SessionTimeoutError
from btb.logger import logger
from btb.runtime import ContainerRuntime
from btb.types import SENTINEL, Invocation

Spawn = Callable[..., Awaitable[Any]]


def self_invocation_line(own_command: Sequence[str], invocation: Invocation) -> str:
    """Shell line that re-runs this program as the in-container instance."""
    return shlex.join([*own_command, *invocation.inner_args()]) + "\n"


def open_user_input(stream: BinaryIO, chunk_size: int = 4096) -> asyncio.StreamReader:
    """Feed the descriptor behind ``stream`` into a StreamReader on the running loop.

    A daemon thread does the blocking reads so a terminal on stdin is never
    switched to non-blocking mode (which would also affect stdout). It reads
    the raw descriptor, never ``stream`` itself: a thread parked inside a
    buffered reader holds its lock and aborts interpreter shutdown.
    """
    fd = stream.fileno()
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()

    def _pump() -> None:
        try:
            while True:
                try:
                    data = os.read(fd, chunk_size)
                except OSError as exc:
                    logger.debug("User input unreadable", error=str(exc))
                    data = b""
                if not data:
                    loop.call_soon_threadsafe(reader.feed_eof)
                    return
                loop.call_soon_threadsafe(reader.feed_data, data)
        except RuntimeError:
            # Loop closed: the session is over and nobody reads this input.
            return

    threading.Thread(target=_pump, name="btb-stdin", daemon=True).start()
    return reader


async def _stop_session(proc: asyncio.subprocess.Process, grace: float = 5.0) -> None:
    """Terminate the session, falling back to kill after ``grace`` seconds.

    ``wait()`` may also wait for the pipes to close, which never happens while a
    child of the runtime keeps stdout open, so the exit is checked by
    ``returncode`` once the grace period is up.
    """
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except TimeoutError:
        if proc.returncode is not None:
            logger.debug("Session exited, its output is still held open")
            return
        logger.warning("Session did not stop, force killing")
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


async def _cancel(task: asyncio.Task) -> None:  # type: ignore[type-arg]
    if not task.done():
        task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class SessionDriver:
    """Drives one interactive container session from the host side."""

    def __init__(
        self,
        invocation: Invocation,
        own_command: Sequence[str],
        *,
        runtime: ContainerRuntime,
        config: SessionConfig,
        user_input: asyncio.StreamReader,
        user_output: BinaryIO,
        spawn: Spawn = asyncio.create_subprocess_exec,
    ) -> None:
        self.invocation = invocation
        self.line = self_invocation_line(own_command, invocation)
        self._runtime = runtime
        self._config = config
        self._user_input = user_input
        self._user_output = user_output
        self._spawn = spawn
        self._echo = self.line.rstrip("\r\n").encode()
        self._sentinel = SENTINEL.encode()
        self.timed_out = False

    async def run(self) -> None:
        """Open the session, relay until the sentinel arrives, then close it.

        Raises SessionError if the session cannot start or exits before the
        sentinel, and SessionTimeoutError if the timeout stopped it.
        """
        argv = self._runtime.run_argv(self.invocation.container, self._config.shell)
        logger.info(
            "Opening container session",
            container=self.invocation.container,
            shell=self._config.shell,
        )
        try:
            proc = await self._spawn(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,  # straight to our stderr
            )
        except OSError as exc:
            raise SessionError(f"Cannot start {argv[0]}: {exc}") from exc

        loop = asyncio.get_running_loop()
        grace = self._config.stop_grace
        session = asyncio.ensure_future(self._converse(proc))
        stop_task: asyncio.Future | None = None  # type: ignore[type-arg]

        def stop_on_timeout() -> None:
            nonlocal stop_task
            self.timed_out = True
            logger.error(
                "Session timed out, stopping",
                container=self.invocation.container,
                timeout=self._config.timeout,
            )
            # The relay may be parked on a read that no exit will end.
            session.cancel()
            stop_task = asyncio.ensure_future(_stop_session(proc, grace))

        timeout_handle = loop.call_later(self._config.timeout, stop_on_timeout)
        finished, exit_code = False, None
        try:
            finished, exit_code = await session
        except asyncio.CancelledError:
            if not self.timed_out:
                raise
        finally:
            timeout_handle.cancel()
            if not session.done():
                await _cancel(session)
            if stop_task is not None:
                await stop_task
            if proc.returncode is None:
                await _stop_session(proc, grace)

        if self.timed_out:
            raise SessionTimeoutError(
                f"Session in {self.invocation.container} timed out "
                f"after {self._config.timeout:g}s"
            )
        if not finished:
            raise SessionError(f"Session exited with code {exit_code} before completing")
        if exit_code != 0:
            logger.warning("Session exited non-zero after completing", exit_code=exit_code)
        logger.info("Container session closed", container=self.invocation.container)

    async def _converse(self, proc: asyncio.subprocess.Process) -> tuple[bool, int]:
        """Everything between spawn and exit. Returns (sentinel seen, exit code)."""
        assert proc.stdin is not None
        assert proc.stdout is not None
        upstream: asyncio.Task | None = None  # type: ignore[type-arg]
        try:
            try:
                proc.stdin.write(self.line.encode())
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise SessionError(f"Session closed its input: {exc}") from exc

            upstream = asyncio.ensure_future(self._relay_upstream(proc.stdin))
            finished = await self._relay_downstream(proc.stdout)
            if finished:
                await _cancel(upstream)
                await self._terminate(proc)
            return finished, await proc.wait()
        finally:
            if upstream is not None:
                await _cancel(upstream)

    async def _relay_upstream(self, stdin: asyncio.StreamWriter) -> None:
        while True:
            data = await self._user_input.readline()
            if not data:
                logger.debug("User input closed")
                return
            try:
                stdin.write(data)
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Session input closed, upstream relay stopping")
                return

    async def _relay_downstream(self, stdout: asyncio.StreamReader) -> bool:
        """Forward session output until the sentinel. False on EOF without it."""
        keep = len(self._sentinel) - 1
        tail = b""
        while True:
            chunk = await stdout.read(self._config.chunk_size)
            if not chunk:
                return False

            # The tail catches a sentinel split across two reads.
            window = tail + chunk
            idx = window.find(self._sentinel)
            if idx != -1:
                self._forward(chunk[: max(0, idx - len(tail))])
                logger.debug("Completion sentinel received")
                return True
            tail = window[-keep:] if keep else b""

            if chunk.rstrip(b"\r\n") == self._echo:
                continue
            self._forward(chunk)

    def _forward(self, data: bytes) -> None:
        if not data:
            return
        self._user_output.write(data)
        self._user_output.flush()

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Ask the shell to exit and discard whatever it still prints."""
        assert proc.stdin is not None
        assert proc.stdout is not None
        try:
            proc.stdin.write(f"{self._config.exit_command}\n".encode())
            await proc.stdin.drain()
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Session input already closed")
        while await proc.stdout.read(self._config.chunk_size):
            pass
