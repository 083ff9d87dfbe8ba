"""Worker-side command loop: reads commands on stdin, writes one reply per command on stdout."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from typing import BinaryIO

from loguru import logger
from pydantic import BaseModel

from lingoworker.rpc.protocol import (
    ErrorReply,
    FrameError,
    GenerateCommand,
    LoadCommand,
    LoadedReply,
    ResultReply,
    decode_command,
    encode_frame,
)
from lingoworker.utils.exceptions import LingoWorkerError
from lingoworker.utils.singleflight import SingleFlight
from lingoworker.worker.backends import GenerationBackend
from lingoworker.worker.prompts import FALLBACK_REPLY

_STREAM_LIMIT = 16 * 1024 * 1024


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, LingoWorkerError):
        return exc.message
    return str(exc) or type(exc).__name__


class WorkerRuntime:
    """Dispatches commands to a backend; each command runs in its own task."""

    def __init__(self, backend: GenerationBackend, write: Callable[[str], None] | None = None):
        self.backend = backend
        self._write = write or _make_writer(sys.stdout.buffer)
        self._load: SingleFlight[None] = SingleFlight(backend.load, cache_failure=False)
        self._tasks: set[asyncio.Task[None]] = set()

    def emit(self, reply: BaseModel) -> None:
        self._write(encode_frame(reply))

    def reply(self, frame: BaseModel) -> None:
        """Emit ``frame``; a failed write is answered with an error frame for the same id."""
        req_id = getattr(frame, "id", None)
        try:
            self.emit(frame)
            return
        except (OSError, ValueError) as e:
            logger.error("Failed to write reply for {}: {}", req_id, e)
            if req_id is None or isinstance(frame, ErrorReply):
                return
            error = ErrorReply(id=req_id, error=f"failed to write reply: {_error_text(e)}")
        try:
            self.emit(error)
        except (OSError, ValueError) as e:
            logger.error("Failed to write error reply for {}: {}", req_id, e)

    async def handle_command(self, command: LoadCommand | GenerateCommand) -> BaseModel:
        try:
            await self._load.run()
            if isinstance(command, LoadCommand):
                return LoadedReply(id=command.id)
            response = await self.backend.generate(command.message, command.language, command.options)
            return ResultReply(id=command.id, response=response or FALLBACK_REPLY)
        except Exception as e:
            logger.warning("Command {} ({}) failed: {}", command.id, command.type, e)
            return ErrorReply(id=command.id, error=_error_text(e))

    async def handle_line(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        try:
            command = decode_command(text)
        except FrameError as e:
            if e.frame_id is None:
                logger.warning("Ignoring unreadable command: {}", text[:200])
                return
            self.reply(ErrorReply(id=e.frame_id, error=str(e)))
            return
        self.reply(await self.handle_command(command))

    def dispatch(self, line: str) -> asyncio.Task[None]:
        task = asyncio.create_task(self.handle_line(line))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Command handler crashed")

    async def serve(self, reader: asyncio.StreamReader) -> None:
        """Consume command lines until EOF."""
        logger.info("Worker ready for commands")
        while True:
            raw = await reader.readline()
            if not raw:
                break
            self.dispatch(raw.decode("utf-8", errors="replace"))
        logger.info("Command stream closed; stopping worker")
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.backend.aclose()

    async def serve_stdio(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=_STREAM_LIMIT)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        await self.serve(reader)


def _make_writer(stream: BinaryIO) -> Callable[[str], None]:
    """Frames are always UTF-8, whatever the locale says about stdout."""

    def _write(line: str) -> None:
        stream.write((line + "\n").encode("utf-8"))
        stream.flush()

    return _write


def run_worker(backend: GenerationBackend) -> None:
    """Serve ``backend`` on stdio; stray prints are redirected to stderr."""
    protocol_out = sys.stdout
    sys.stdout = sys.stderr
    runtime = WorkerRuntime(backend, write=_make_writer(protocol_out.buffer))
    try:
        asyncio.run(runtime.serve_stdio())
    except KeyboardInterrupt:
        pass
    finally:
        sys.stdout = protocol_out
