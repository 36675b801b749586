"""
Side channel for inspecting response streams while they are delivered.
"""
import asyncio
import json
import logging
from typing import Optional

from rich.console import Console
from rich.text import Text

from .types import StreamChunk

logger = logging.getLogger(__name__)

debug_console = Console(stderr=True)

_CLOSED = object()


class DebugStreamSink:
    """
    Receives a copy of every chunk of one stream and prints it.

    `feed` never blocks: chunks go into an unbounded queue drained by a
    background task, so the caller-facing stream is never slowed down.

    Attributes:
        provider: Provider the stream belongs to.
        model: Effective model of the call.
    """

    def __init__(self, provider: str, model: str, console: Optional[Console] = None):
        self.provider = provider
        self.model = model
        self._console = console if console is not None else debug_console
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._chunk_count = 0
        self._failed = False

    def feed(self, chunk: StreamChunk) -> None:
        if self._failed:
            return
        self._ensure_started()
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        if self._failed:
            return
        self._ensure_started()
        self._queue.put_nowait(_CLOSED)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def _ensure_started(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._drain())
            self._task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Later chunks are dropped, the caller-facing stream is unaffected
            self._failed = True
            logger.warning(
                "Debug output for %s stopped: %s", self.provider, exc,
                exc_info=exc,
            )

    async def _drain(self) -> None:
        self._console.rule(Text(f"[debugStream] {self.provider} / {self.model}"))
        while True:
            chunk = await self._queue.get()
            if chunk is _CLOSED:
                break
            self._write(chunk)
        self._console.rule(Text(f"[debugStream] end ({self._chunk_count} chunks)"))

    def _write(self, chunk: StreamChunk) -> None:
        if chunk.get("type") == "text":
            body = chunk.get("text", "")
        else:
            body = json.dumps(chunk.get("tool_calls", []), ensure_ascii=False)

        self._console.print(Text(f"[chunk {self._chunk_count}]", style="bold cyan"))
        self._console.print(Text(body))
        logger.debug("%s chunk %d: %s", self.provider, self._chunk_count, body)
        self._chunk_count += 1
