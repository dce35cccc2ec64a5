"""Thread-based channels, cancellation contexts and fan-out."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")

_POLL_INTERVAL = 0.02


class ChannelClosed(Exception):
    """Raised when putting to, or reading from an empty, closed channel."""


class Channel(Generic[T]):
    """A bounded, closable, thread-safe FIFO."""

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._items: deque[T] = deque()
        self._closed = False
        self._waiting_getters = 0
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def _has_room(self) -> bool:
        return len(self._items) < self.capacity + self._waiting_getters

    def put(self, item: T) -> None:
        """Add an item, blocking while the channel is full."""
        with self._cond:
            while not self._closed and not self._has_room():
                self._cond.wait()
            if self._closed:
                raise ChannelClosed("put on closed channel")
            self._items.append(item)
            self._cond.notify_all()

    def try_put(self, item: T) -> bool:
        """Add an item if there is room; return whether it was added."""
        with self._cond:
            if self._closed:
                raise ChannelClosed("put on closed channel")
            if not self._has_room():
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def get(self, timeout: float | None = None) -> T:
        """Take the next item; raise TimeoutError or ChannelClosed when none comes."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            self._waiting_getters += 1
            self._cond.notify_all()
            try:
                while not self._items:
                    if self._closed:
                        raise ChannelClosed("channel is closed")
                    if deadline is None:
                        self._cond.wait()
                    else:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            raise TimeoutError("timed out waiting for an item")
                        self._cond.wait(remaining)
                item = self._items.popleft()
            finally:
                self._waiting_getters -= 1
            self._cond.notify_all()
            return item

    def close(self) -> None:
        """Close the channel; buffered items can still be read."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return


class Context:
    """A cancellation signal that propagates from parent to children."""

    def __init__(self, parent: Context | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[Context] = []
        self._parent = parent
        if parent is not None:
            parent._attach(self)

    def _attach(self, child: Context) -> None:
        with self._lock:
            cancelled = self._event.is_set()
            if not cancelled:
                self._children.append(child)
        if cancelled:
            child.cancel()

    def _detach(self, child: Context) -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def cancel(self) -> None:
        """Cancel this context and all of its descendants."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            children, self._children = self._children, []
        for child in children:
            child.cancel()
        if self._parent is not None:
            self._parent._detach(self)

    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled; return False if the timeout passed first."""
        return self._event.wait(timeout)

    def child(self) -> Context:
        return Context(self)


def broadcast(
    context: Context, logger: logging.Logger, source: Channel[T], total: int
) -> list[Channel[T]]:
    """Copy every item from ``source`` to ``total`` new channels.

    An item is dropped for an output that is full. All outputs are closed
    once the context is cancelled or the source is closed.
    """
    outputs: list[Channel[T]] = [Channel(source.capacity) for _ in range(total)]

    def pump() -> None:
        try:
            while not context.cancelled():
                try:
                    item = source.get(timeout=_POLL_INTERVAL)
                except TimeoutError:
                    continue
                except ChannelClosed:
                    return
                for index, output in enumerate(outputs):
                    if not output.try_put(item):
                        logger.error("[Broadcaster] Message dropped output=%d", index)
        finally:
            logger.info("[Broadcaster] Shutting down...")
            for output in outputs:
                output.close()

    threading.Thread(target=pump, name="broadcaster", daemon=True).start()
    return outputs


def null_logger() -> logging.Logger:
    """Return a logger that discards everything."""
    logger = logging.getLogger("live2text.null")
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger