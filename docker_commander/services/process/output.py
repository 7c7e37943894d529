"""Buffered output of a running engine process.

An Output accumulates the text streamed by one pipe (stdout or stderr) of a
spawned command and lets callers suspend until the accumulated text matches
a pattern, or until a readiness predicate accepts it.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Pattern, Tuple, Union

import structlog

from ...config import settings
from ...models.errors import OutputTimeoutError

logger = structlog.get_logger(__name__)

# (full output so far, newest line) -> ready?
OutputReadyFunction = Callable[[str, str], bool]

DataMatcher = Union[str, Pattern]


@dataclass(frozen=True)
class OutputChunk:
    """One appended piece of output, numbered in arrival order."""

    sequence: int
    data: str


def _matches(matcher: DataMatcher, text: str) -> bool:
    if isinstance(matcher, str):
        return matcher in text
    return matcher.search(text) is not None


class Output:
    """Append-only text buffer for one process stream.

    Chunks are immutable once appended and the materialized view is the
    concatenation of the retained chunks in arrival order.
    """

    def __init__(
        self,
        name: str = "stdout",
        output_as_lines: bool = True,
        limit: Optional[int] = None,
        ready_function: Optional[OutputReadyFunction] = None,
    ):
        """Initialize an empty buffer.

        Args:
            name: Stream name, used in logs
            output_as_lines: Chunks are whole lines (True) or raw reads (False)
            limit: Max retained lines (line mode) or characters (raw mode)
            ready_function: Optional readiness predicate
        """
        self.name = name
        self.output_as_lines = output_as_lines
        self.limit = limit
        self.ready_function = ready_function

        self._chunks: Deque[OutputChunk] = deque()
        self._sequence = 0
        self._size = 0
        self._dropped = 0
        self._view: Optional[str] = ""
        self._closed = False
        self._ready = False
        self._waiters: List[Tuple[DataMatcher, asyncio.Future]] = []
        self._ready_waiters: List[asyncio.Future] = []

    def __repr__(self) -> str:
        return (
            f"Output(name={self.name!r}, chunks={len(self._chunks)}, "
            f"size={self._size}, closed={self._closed}, ready={self._ready})"
        )

    @property
    def chunks(self) -> Tuple[OutputChunk, ...]:
        """Snapshot of the retained chunks."""
        return tuple(self._chunks)

    @property
    def size(self) -> int:
        """Number of retained characters."""
        return self._size

    @property
    def dropped(self) -> int:
        """Number of chunks evicted by the output limit."""
        return self._dropped

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def as_string(self) -> str:
        """Current contents as a single string."""
        if self._view is None:
            self._view = "".join(chunk.data for chunk in self._chunks)
        return self._view

    @property
    def as_lines(self) -> List[str]:
        """Current contents split into lines, without line terminators."""
        return self.as_string.splitlines()

    def append(self, data: Union[str, bytes]) -> None:
        """Append a chunk and wake any waiter whose pattern now matches."""
        if self._closed:
            raise RuntimeError(f"Cannot append to closed output: {self.name}")

        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        if not data:
            return

        self._sequence += 1
        chunk = OutputChunk(self._sequence, data)
        self._chunks.append(chunk)
        self._size += len(data)
        self._view = None

        self._apply_limit()
        self._check_ready(chunk)
        self._notify_waiters()

    def close(self) -> None:
        """Mark end of stream.

        Pattern waits that have not matched by now never will, so they fail
        immediately instead of running out their timeout.
        """
        if self._closed:
            return
        self._closed = True

        if self.ready_function is None:
            self._mark_ready()

        for matcher, future in self._waiters:
            if not future.done():
                future.set_exception(
                    OutputTimeoutError(
                        matcher,
                        message=f"{self.name} closed before output matched "
                        f"{getattr(matcher, 'pattern', matcher)!r}",
                    )
                )
        for future in self._ready_waiters:
            if not future.done():
                future.set_exception(
                    OutputTimeoutError(message=f"{self.name} closed before ready")
                )

    async def wait_for_data_match(
        self, matcher: DataMatcher, timeout: Optional[float] = None
    ) -> str:
        """Suspend until the accumulated output matches ``matcher``.

        Args:
            matcher: Substring or compiled regular expression
            timeout: Bound in seconds, defaults to ``settings.output_wait_timeout``

        Returns:
            The output view that matched

        Raises:
            OutputTimeoutError: If no match happened within the bound, or the
                stream closed without matching
        """
        if timeout is None:
            timeout = settings.output_wait_timeout

        view = self.as_string
        if _matches(matcher, view):
            return view

        if self._closed:
            raise OutputTimeoutError(
                matcher,
                timeout,
                message=f"{self.name} closed before output matched "
                f"{getattr(matcher, 'pattern', matcher)!r}",
            )

        future = asyncio.get_running_loop().create_future()
        waiter = (matcher, future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.debug(
                "Output match timed out",
                stream=self.name,
                pattern=str(getattr(matcher, "pattern", matcher)),
                timeout=timeout,
            )
            raise OutputTimeoutError(matcher, timeout) from None
        finally:
            self._waiters.remove(waiter)

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Suspend until the readiness predicate accepts the output.

        Without a predicate the stream is ready on its first chunk or on close.
        """
        if self._ready:
            return True
        if self._closed:
            raise OutputTimeoutError(message=f"{self.name} closed before ready")

        if timeout is None:
            timeout = settings.output_wait_timeout

        future = asyncio.get_running_loop().create_future()
        self._ready_waiters.append(future)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise OutputTimeoutError(
                timeout=timeout,
                message=f"{self.name} not ready within {timeout}s",
            ) from None
        finally:
            self._ready_waiters.remove(future)

    def _apply_limit(self) -> None:
        if self.limit is None:
            return

        if self.output_as_lines:
            while len(self._chunks) > self.limit:
                self._evict()
        else:
            while self._size > self.limit and len(self._chunks) > 1:
                self._evict()

    def _evict(self) -> None:
        chunk = self._chunks.popleft()
        self._size -= len(chunk.data)
        self._dropped += 1
        self._view = None

    def _check_ready(self, chunk: OutputChunk) -> None:
        if self._ready:
            return
        if self.ready_function is None:
            self._mark_ready()
            return

        line = chunk.data.rstrip("\r\n")
        try:
            ready = self.ready_function(self.as_string, line)
        except Exception as e:
            logger.warning(
                "Output ready function failed", stream=self.name, error=str(e)
            )
            return
        if ready:
            self._mark_ready()

    def _mark_ready(self) -> None:
        self._ready = True
        for future in self._ready_waiters:
            if not future.done():
                future.set_result(True)

    def _notify_waiters(self) -> None:
        if not self._waiters:
            return
        view = self.as_string
        for matcher, future in self._waiters:
            if not future.done() and _matches(matcher, view):
                future.set_result(view)
