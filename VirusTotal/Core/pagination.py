from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Final, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
import asyncio
import logging

from .cursor import Cursor
from .object import Object
from .types import Links

if TYPE_CHECKING:
    from .endpoint_client import EndpointClient

# Maximum number of objects fetched ahead of the consumer.
BUFFER_SIZE: Final = 50


def withQuery(url: str, params: Dict[str, str]) -> str:
    parts: Final = urlsplit(url)
    query: Final = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass
class IteratorOptions:
    # Maximum number of objects returned by the iterator, 0 means no limit.
    limit: int = 0
    # Number of objects requested on each call to the API, 0 lets the
    # server decide.
    batchSize: int = 0
    # Continuation cursor, takes precedence over batchSize and filter.
    cursor: str = ""
    # The format of the filter depends on the collection being iterated.
    filter: str = ""

    def __post_init__(self) -> None:
        if self.limit < 0:
            raise ValueError("limit can't be negative")
        if self.batchSize < 0:
            raise ValueError("batchSize can't be negative")


class IteratorState(str, Enum):
    RUNNING = "running"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _EndOfCollection:
    pass


_END: Final = _EndOfCollection()

_Item = Union[Tuple[Object, Cursor], BaseException, _EndOfCollection]


class Iterator:
    """
    Iterates over a collection of objects, fetching pages in a background task
    while the caller consumes them one at a time::

        async with client.iterator(client.url("comments")) as it:
            while await it.advance():
                print(it.current().id)
            if it.error():
                ...handle error, it.cursor() tells where to resume

    Iterators must be created from a coroutine and belong to whoever created
    them. Only cancel() may be called from other threads.
    """

    logger = logging.getLogger("VirusTotal.Iterator")

    def __init__(
        self, client: "EndpointClient", link: str, skip: int = 0, limit: int = 0
    ) -> None:
        self.client = client
        self.limit = limit
        self.count = 0
        self.links = Links(next=link)
        self.closed = False
        self.state = IteratorState.RUNNING

        self._current: Optional[Object] = None
        self._cursor = ""
        self._error: Optional[BaseException] = None

        self._loop: Final = asyncio.get_running_loop()
        self._queue: "asyncio.Queue[_Item]" = asyncio.Queue(maxsize=BUFFER_SIZE)
        self._cancelled: Final = asyncio.Event()
        self._task: Final = self._loop.create_task(self._iterate(link, skip))
        self._task.add_done_callback(self._onDone)

    @classmethod
    def start(
        cls, client: "EndpointClient", url: str, options: IteratorOptions
    ) -> "Iterator":
        """
        Starts iterating url, or resumes from options.cursor. Never waits for
        the network, raises InvalidCursor if the cursor can't be decoded.
        """

        if options.cursor:
            cursor: Final = Cursor.decode(options.cursor)
            return cls(client, cursor.link, cursor.offset, options.limit)

        params: Final[Dict[str, str]] = {}
        if options.batchSize > 0:
            params["limit"] = str(options.batchSize)
        if options.filter:
            params["filter"] = options.filter
        link: Final = withQuery(url, params) if params else url
        return cls(client, link, 0, options.limit)

    async def advance(self) -> bool:
        """
        Moves to the next object, waiting for it if needed. Returns False once
        the collection is exhausted, the limit is reached, the iterator is
        cancelled or an error occurred, check error() to tell them apart.
        """

        if self.limit > 0 and self.count == self.limit:
            return False
        if self._cancelled.is_set():
            return False
        if self.closed and self._queue.empty():
            return False

        item: Final = await self._queue.get()
        if self._cancelled.is_set() or isinstance(item, _EndOfCollection):
            return False
        if isinstance(item, BaseException):
            self._error = item
            return False

        self._current, cursor = item
        self._cursor = cursor.encode()
        self.count += 1
        return True

    def current(self) -> Optional[Object]:
        return self._current

    def cursor(self) -> str:
        return self._cursor

    def error(self) -> Optional[BaseException]:
        return self._error

    def cancel(self) -> None:
        """Stops the iteration. Safe to call more than once, from any thread."""

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._cancel()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._cancel)

    async def waitClosed(self) -> None:
        await asyncio.wait({self._task})

    def _cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        if not self._task.done():
            self.logger.debug("cancelling iteration at %s", self.links.next)
            self.state = IteratorState.CANCELLED
            # Interrupts a pending fetch as well as a blocked hand-off.
            self._task.cancel()

    async def _deliver(self, item: _Item) -> bool:
        if self._cancelled.is_set():
            return False
        await self._queue.put(item)
        return True

    async def _iterate(self, link: str, skip: int) -> None:
        sent = 0
        while self.limit == 0 or sent < self.limit:
            try:
                objects, links = await self.client.fetchPage(link)
            except Exception as err:
                self.logger.warning("fetching %s failed: %s", link, err)
                self.state = IteratorState.FAILED
                await self._deliver(err)
                return

            self.links = links
            pageLink = links.self or link
            objects = objects[skip:]
            for i, obj in enumerate(objects):
                # Resuming from the last object of a page starts at the next
                # page, any other object resumes by skipping into this one.
                if i == len(objects) - 1:
                    cursor = Cursor(links.next, 0)
                else:
                    cursor = Cursor(pageLink, skip + i + 1)
                if not await self._deliver((obj, cursor)):
                    return
                sent += 1
                if sent == self.limit:
                    break

            if not objects or not links.next:
                break
            link = links.next
            skip = 0

        self.state = IteratorState.EXHAUSTED
        self.logger.debug("iteration finished after %d objects", sent)

    def _onDone(self, task: "asyncio.Task[None]") -> None:
        self.closed = True
        item: _Item = _END
        if not task.cancelled() and task.exception() is not None:
            self.state = IteratorState.FAILED
            item = task.exception()
        # Wakes up a consumer blocked on an empty buffer. If the buffer is
        # full the consumer finds closed set once it drains it.
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            if isinstance(item, BaseException):
                self._error = item

    def __aiter__(self) -> "Iterator":
        return self

    async def __anext__(self) -> Object:
        if await self.advance():
            return self._current
        raise StopAsyncIteration

    async def __aenter__(self) -> "Iterator":
        return self

    async def __aexit__(self, *exc) -> None:
        self.cancel()
        await self.waitClosed()
