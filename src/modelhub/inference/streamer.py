"""Buffered streamer that coalesces SDK deltas into larger chunks.

A chunk is emitted when the buffer reaches ``chunk_size`` characters or when
``flush_interval`` seconds have passed since the last emission.  Single
writer: the adapter's read loop is the only caller.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from modelhub.settings import FLUSH_CHUNK_SIZE, FLUSH_INTERVAL

StreamCallback = Callable[[str], None]


class BufferedStreamer:
    """Buffer writes and forward them to *on_chunk* in order.

    If *on_chunk* raises, buffering stops and the same exception is raised
    from every later :meth:`write` and :meth:`flush`.
    """

    def __init__(
        self,
        on_chunk: StreamCallback,
        flush_interval: float = FLUSH_INTERVAL,
        chunk_size: int = FLUSH_CHUNK_SIZE,
    ) -> None:
        self._on_chunk = on_chunk
        self._flush_interval = flush_interval
        self._chunk_size = chunk_size
        self._buffer: list[str] = []
        self._buffered = 0
        self._last_flush = time.monotonic()
        self._error: BaseException | None = None

    @property
    def error(self) -> BaseException | None:
        return self._error

    def write(self, data: str) -> None:
        if self._error is not None:
            raise self._error
        if not data:
            return
        self._buffer.append(data)
        self._buffered += len(data)
        now = time.monotonic()
        if self._buffered >= self._chunk_size or now - self._last_flush >= self._flush_interval:
            self._emit(now)

    def flush(self) -> None:
        """Send whatever is still buffered."""
        if self._error is not None:
            raise self._error
        if self._buffered:
            self._emit(time.monotonic())

    def _emit(self, now: float) -> None:
        chunk = "".join(self._buffer)
        self._buffer.clear()
        self._buffered = 0
        self._last_flush = now
        try:
            self._on_chunk(chunk)
        except Exception as exc:
            self._error = exc
            raise


def new_buffered_streamer(
    on_chunk: StreamCallback,
    flush_interval: float = FLUSH_INTERVAL,
    chunk_size: int = FLUSH_CHUNK_SIZE,
) -> tuple[Callable[[str], None], Callable[[], None]]:
    """Return the ``(write, flush)`` pair of a new :class:`BufferedStreamer`."""
    streamer = BufferedStreamer(on_chunk, flush_interval, chunk_size)
    return streamer.write, streamer.flush
