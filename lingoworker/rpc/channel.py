"""Async call/response channel to the inference worker over line-delimited JSON stdio."""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

from lingoworker.rpc.protocol import (
    FrameError,
    GenerateCommand,
    GenerateOptions,
    LoadCommand,
    decode_reply,
    encode_frame,
)
from lingoworker.utils.exceptions import (
    CallTimeout,
    ChannelClosed,
    InitializationFailure,
    NotInitializedError,
    RemoteFailure,
)

Spawner = Callable[[], Awaitable[asyncio.subprocess.Process]]

_STREAM_LIMIT = 16 * 1024 * 1024
_TERMINATE_GRACE_SECONDS = 3.0
_UNSET: Any = object()


@dataclass(slots=True)
class PendingCall:
    """An issued request awaiting its correlated reply."""

    id: str
    kind: Literal["load", "generate"]
    expect: Literal["loaded", "result"]
    future: asyncio.Future[str | None]
    issued_at: float


class WorkerChannel:
    """
    Owns one worker process and correlates its replies to pending callers by id.

    Replies may arrive in any order. A reply whose id is not pending (already
    settled, timed out, or never issued) is dropped without side effects.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        spawner: Spawner | None = None,
        default_timeout: float | None = None,
    ):
        self.command = list(command)
        self.env = env
        self.cwd = cwd
        self.default_timeout = default_timeout
        self._spawner = spawner or self._spawn
        self._proc: asyncio.subprocess.Process | None = None
        self._pending: dict[str, PendingCall] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._start_lock = asyncio.Lock()
        self._loaded = False
        self._closed = False
        self.exit_code: int | None = None

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._proc is not None and not self._closed

    @property
    def is_loaded(self) -> bool:
        return self._loaded and self.is_running

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_ids(self) -> list[str]:
        return list(self._pending)

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    async def _spawn(self) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=self.env,
            limit=_STREAM_LIMIT,
        )

    async def start(self) -> None:
        """Spawn the worker once; later calls are no-ops."""
        async with self._start_lock:
            if self._closed:
                raise NotInitializedError("worker", "worker channel is closed")
            if self._proc is not None:
                return
            logger.info("Starting worker: {}", " ".join(self.command))
            try:
                proc = await self._spawner()
            except (OSError, ValueError) as e:
                raise InitializationFailure("worker process", str(e)) from e
            if proc.stdin is None or proc.stdout is None:
                raise InitializationFailure("worker process", "worker stdio is unavailable")
            self._proc = proc
            self._tasks.append(asyncio.create_task(self._reader_loop(proc)))
            if proc.stderr is not None:
                self._tasks.append(asyncio.create_task(self._stderr_loop(proc)))

    async def close(self) -> None:
        """Terminate the worker once and fail anything still pending."""
        if self._closed:
            return
        self._closed = True
        self._fail_pending(ChannelClosed("channel closed"))
        proc = self._proc
        if proc is not None and proc.returncode is None:
            with contextlib.suppress(Exception):
                if proc.stdin is not None:
                    proc.stdin.close()
            try:
                proc.terminate()
                await asyncio.wait_for(proc.wait(), _TERMINATE_GRACE_SECONDS)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning("Worker did not exit after terminate; killing")
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        if proc is not None:
            self.exit_code = proc.returncode
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        logger.info("Worker channel closed")

    async def __aenter__(self) -> WorkerChannel:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -----------------------------------------------------------------
    # Reading
    # -----------------------------------------------------------------

    async def _reader_loop(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        while True:
            try:
                raw = await proc.stdout.readline()
            except (ValueError, asyncio.LimitOverrunError) as e:
                logger.warning("Worker frame exceeded stream limit: {}", e)
                continue
            if not raw:
                break
            self.handle_line(raw.decode("utf-8", errors="replace"))
        code = await proc.wait()
        self.exit_code = code
        if not self._closed:
            logger.warning("Worker exited with code {}", code)
            self._closed = True
            self._fail_pending(ChannelClosed(f"worker exited with code {code}"))

    async def _stderr_loop(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stderr is not None
        while True:
            try:
                raw = await proc.stderr.readline()
            except (ValueError, asyncio.LimitOverrunError):
                continue
            if not raw:
                return
            text = raw.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.debug("[worker] {}", text)

    def handle_line(self, line: str) -> bool:
        """Dispatch one reply line. Returns True when it settled a pending call."""
        text = line.strip()
        if not text:
            return False
        try:
            reply = decode_reply(text)
        except FrameError as e:
            if e.frame_id is None:
                logger.warning("Worker sent an uncorrelatable frame: {}", text[:200])
                return False
            return self._settle(e.frame_id, error=RemoteFailure(str(e), e.frame_id))

        if reply.type == "error":
            return self._settle(reply.id, error=RemoteFailure(reply.error, reply.id))
        call = self._pending.get(reply.id)
        if call is not None and call.expect != reply.type:
            return self._settle(
                reply.id,
                error=RemoteFailure(
                    f"malformed worker reply: '{reply.type}' does not answer a '{call.kind}' request",
                    reply.id,
                ),
            )
        value = reply.response if reply.type == "result" else None
        return self._settle(reply.id, value=value)

    def _settle(self, req_id: str, *, value: str | None = None, error: Exception | None = None) -> bool:
        call = self._pending.pop(req_id, None)
        if call is None:
            logger.debug("Discarding orphan reply for {}", req_id)
            return False
        if call.future.done():
            return False
        if error is not None:
            call.future.set_exception(error)
        else:
            call.future.set_result(value)
        return True

    def _fail_pending(self, error: Exception) -> None:
        doomed = list(self._pending.values())
        self._pending.clear()
        for call in doomed:
            if not call.future.done():
                call.future.set_exception(error)

    # -----------------------------------------------------------------
    # Calls
    # -----------------------------------------------------------------

    def _new_id(self, request_id: str | None) -> str:
        if request_id is not None:
            if request_id in self._pending:
                raise ValueError(f"request id already pending: {request_id}")
            return request_id
        req_id = uuid.uuid4().hex
        while req_id in self._pending:
            req_id = uuid.uuid4().hex
        return req_id

    async def _call(
        self,
        frame: LoadCommand | GenerateCommand,
        expect: Literal["loaded", "result"],
        timeout: float | None,
    ) -> str | None:
        proc = self._proc
        if proc is None or self._closed or proc.stdin is None:
            raise NotInitializedError("worker", "worker not initialized")
        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._pending[frame.id] = PendingCall(
            id=frame.id,
            kind=frame.type,
            expect=expect,
            future=future,
            issued_at=time.monotonic(),
        )
        # The entry leaves the table on every exit path, including a cancelled drain.
        try:
            try:
                proc.stdin.write((encode_frame(frame) + "\n").encode("utf-8"))
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise ChannelClosed(f"write failed: {e}") from e
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise CallTimeout(frame.type, timeout, frame.id) from None
        finally:
            call = self._pending.get(frame.id)
            if call is not None and call.future is future:
                del self._pending[frame.id]

    def _timeout(self, timeout: float | None) -> float | None:
        return self.default_timeout if timeout is _UNSET else timeout

    async def load(self, *, request_id: str | None = None, timeout: float | None = _UNSET) -> None:
        """Send the initial load command and wait for the worker to report ready."""
        await self.start()
        frame = LoadCommand(id=self._new_id(request_id))
        await self._call(frame, "loaded", self._timeout(timeout))
        self._loaded = True

    async def generate(
        self,
        message: str,
        language: str,
        options: GenerateOptions | None = None,
        *,
        request_id: str | None = None,
        timeout: float | None = _UNSET,
    ) -> str:
        """Ask the loaded worker for a reply; calls may overlap freely."""
        if not self._loaded or not self.is_running:
            raise NotInitializedError("worker", "worker model not loaded")
        frame = GenerateCommand(
            id=self._new_id(request_id),
            message=message,
            language=language,
            options=options or GenerateOptions(),
        )
        result = await self._call(frame, "result", self._timeout(timeout))
        return result or ""
