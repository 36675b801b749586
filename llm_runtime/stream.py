"""
Canonical response stream.

A `ChatStream` turns a vendor's async iterator of response fragments into a
single-pass sequence of `StreamChunk`s. A producer task pulls fragments from
the vendor and pushes the converted chunks into a bounded queue; the caller
pulls from the queue with `async for`. Closing the stream (explicitly, via
`async with`, or by dropping it) cancels the producer, which closes the
vendor iterator and with it the underlying HTTP response.
"""
import asyncio
import inspect
import logging
import time
import weakref
from typing import Any, AsyncIterator, List, Optional, Set

from .debug_stream import DebugStreamSink
from .errors import AgentRuntimeError, AgentRuntimeErrorType, normalize_error
from .types import StreamChunk, StreamMeta, ToolCallFragment

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class _StreamFailure:
    __slots__ = ("error",)

    def __init__(self, error: AgentRuntimeError):
        self.error = error


class StreamTransformer:
    """
    Per-call conversion of vendor fragments into canonical chunks.

    Subclasses implement `transform` and may record `usage` and
    `finish_reason` as they see them. A new instance is created for every
    call, so it can hold state across fragments of that call only.
    """

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model
        self.usage: Optional[dict] = None
        self.finish_reason: Optional[str] = None

    def transform(self, fragment: Any) -> List[StreamChunk]:
        raise NotImplementedError

    def text_chunk(self, text: str) -> StreamChunk:
        return {"type": "text", "provider": self.provider, "text": text}

    def tool_calls_chunk(self, tool_calls: List[ToolCallFragment]) -> StreamChunk:
        return {"type": "tool_calls", "provider": self.provider, "tool_calls": tool_calls}


async def close_source(source: Any) -> None:
    """
    Close a vendor stream, whichever closing protocol it implements.
    """
    closer = getattr(source, "aclose", None) or getattr(source, "close", None)
    if closer is None:
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning("Failed to close vendor stream", exc_info=True)


async def _pump(
    source: AsyncIterator[Any],
    transformer: StreamTransformer,
    channel: asyncio.Queue,
    debug_sink: Optional[DebugStreamSink],
) -> None:
    # Module-level so the task holds no reference to its ChatStream
    try:
        async for fragment in source:
            for chunk in transformer.transform(fragment):
                if debug_sink is not None:
                    debug_sink.feed(chunk)
                await channel.put(chunk)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        await channel.put(_StreamFailure(normalize_error(exc, transformer.provider)))
    else:
        await channel.put(_END_OF_STREAM)
    finally:
        if debug_sink is not None:
            debug_sink.close()
        await close_source(source)


# Close tasks scheduled for abandoned streams; the loop only keeps weak references
_abandoned_closes: Set[asyncio.Task] = set()


class _StreamHandle:
    """
    What an abandoned ChatStream leaves to be released. Holds no
    reference back to the stream so the stream can be collected.
    """
    __slots__ = ("loop", "source", "task")

    def __init__(self, loop: asyncio.AbstractEventLoop, source: Any):
        self.loop = loop
        self.source = source
        self.task: Optional[asyncio.Task] = None


def _schedule_close(source: Any) -> None:
    task = asyncio.get_running_loop().create_task(close_source(source))
    _abandoned_closes.add(task)
    task.add_done_callback(_abandoned_closes.discard)


def _release_abandoned(handle: _StreamHandle) -> None:
    if handle.loop.is_closed():
        return
    logger.debug("Releasing abandoned response stream")
    # May run from the garbage collector, so hop onto the loop
    if handle.task is not None:
        handle.loop.call_soon_threadsafe(handle.task.cancel)
    else:
        handle.loop.call_soon_threadsafe(_schedule_close, handle.source)


class ChatStream:
    """
    Lazy, finite, single-pass stream of `StreamChunk`s for one call.

    Usage:
        stream = await provider.chat(request)
        async with stream:
            async for chunk in stream:
                ...

    Chunks arrive in vendor order. If the vendor fails mid-stream, the chunks
    already delivered stand and the next pull raises `AgentRuntimeError`.

    Args:
        source: The vendor's async iterator of response fragments.
        transformer (StreamTransformer): Converter for this call.
        timeout (float, optional): Max seconds to wait for each chunk.
        debug_sink (DebugStreamSink, optional): Receives a copy of every chunk.
        max_buffer (int): Chunks the producer may run ahead of the caller.
    """

    def __init__(
        self,
        source: AsyncIterator[Any],
        transformer: StreamTransformer,
        *,
        timeout: Optional[float] = None,
        debug_sink: Optional[DebugStreamSink] = None,
        max_buffer: int = 1,
    ):
        self.provider = transformer.provider
        self.model = transformer.model
        self._source = source
        self._transformer = transformer
        self._timeout = timeout
        self._debug_sink = debug_sink
        self._channel: asyncio.Queue = asyncio.Queue(maxsize=max_buffer)
        self._task: Optional[asyncio.Task] = None
        # Dropping the stream, started or not, must not keep the connection open
        self._handle = _StreamHandle(asyncio.get_running_loop(), source)
        self._finalizer = weakref.finalize(self, _release_abandoned, self._handle)
        self._finalizer.atexit = False
        self._started_at = time.perf_counter()
        self._drained = False
        self._closed = False
        self._meta: Optional[StreamMeta] = None

    @property
    def meta(self) -> Optional[StreamMeta]:
        """
        Model, usage, finish reason and latency; None until the stream ends.
        """
        return self._meta

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> StreamChunk:
        if self._drained or self._closed:
            raise StopAsyncIteration
        if self._task is None:
            self._start()

        try:
            if self._timeout is None:
                item = await self._channel.get()
            else:
                item = await asyncio.wait_for(self._channel.get(), self._timeout)
        except asyncio.TimeoutError:
            await self.aclose()
            raise AgentRuntimeError(
                AgentRuntimeErrorType.TransportError,
                self.provider,
                {"message": f"No response chunk received within {self._timeout}s"},
            ) from None
        except asyncio.CancelledError:
            await self.aclose()
            raise

        if item is _END_OF_STREAM:
            self._finish()
            raise StopAsyncIteration
        if isinstance(item, _StreamFailure):
            self._finish()
            logger.warning("Stream from %s failed: %s", self.provider, item.error)
            raise item.error
        return item

    async def aclose(self) -> None:
        """
        Stop the stream and release the vendor connection.
        """
        if self._closed:
            return
        self._closed = True
        self._finalizer.detach()

        if self._task is None:
            await close_source(self._source)
            return

        if not self._task.done() and not self._drained:
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        if self._meta is None:
            self._meta = self._build_meta()

    async def collect(self) -> str:
        """
        Consume the rest of the stream and return its text.
        """
        parts = []
        async with self:
            async for chunk in self:
                if chunk.get("type") == "text":
                    parts.append(chunk.get("text", ""))
        return "".join(parts)

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _start(self) -> None:
        self._task = self._handle.loop.create_task(
            _pump(self._source, self._transformer, self._channel, self._debug_sink)
        )
        self._handle.task = self._task

    def _finish(self) -> None:
        self._drained = True
        self._meta = self._build_meta()

    def _build_meta(self) -> StreamMeta:
        return {
            "model": self._transformer.model,
            "usage": self._transformer.usage,
            "finish_reason": self._transformer.finish_reason,
            "latency_ms": (time.perf_counter() - self._started_at) * 1000.0,
        }
