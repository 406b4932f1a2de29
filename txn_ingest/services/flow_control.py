from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterable, Iterator
from typing import Any, Generic, TypeVar

"""Bounded channel between the record producer and the batch writer.

A single producer thread drains the upstream iterator (CSV decode + row
mapping) into a bounded queue. The consumer (the pipeline thread, which owns
the storage session) takes records out and flushes batches synchronously.
While a flush runs nothing is taken from the queue, so once it is full the
producer blocks on put(): that is the backpressure. Memory is bounded by the
queue capacity plus one batch.

End of stream and producer failures are both delivered in-band, after every
record produced before them, so ordering is preserved and an upstream error
surfaces in the consumer exactly where it happened.
"""

__all__ = [
    "RecordChannel",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DONE = object()


class _ProducerFailure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class RecordChannel(Generic[T]):
    """Single-producer / single-consumer bounded channel.

    Usage::

        with RecordChannel(records, capacity=1000) as channel:
            for record in channel:
                ...

    Leaving the with-block (normally or through an exception) cancels the
    producer and joins its thread.
    """

    def __init__(
        self,
        source: Iterable[T],
        capacity: int,
        *,
        poll_interval: float = 0.1,
        name: str = "record-producer",
    ) -> None:
        if capacity < 1:
            raise ValueError(f"channel capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.poll_interval = poll_interval
        self._source = source
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=capacity)
        self._cancel = threading.Event()
        self._thread = threading.Thread(target=self._produce, name=name, daemon=True)
        self._started = False
        self.produced = 0

    def start(self) -> RecordChannel[T]:
        if self._started:
            raise RuntimeError("channel already started")
        self._started = True
        self._thread.start()
        return self

    def _put(self, item: Any) -> bool:
        """Blocking put that gives up once the channel is cancelled."""
        while not self._cancel.is_set():
            try:
                self._queue.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def _produce(self) -> None:
        try:
            for item in self._source:
                if not self._put(item):
                    logger.debug("producer cancelled after %d records", self.produced)
                    return
                self.produced += 1
        except BaseException as e:
            # every exit path leaves a terminal marker for the consumer
            self._put(_ProducerFailure(e))
            return
        self._put(_DONE)

    def __iter__(self) -> Iterator[T]:
        if not self._started:
            raise RuntimeError("channel not started")
        while True:
            item = self._queue.get()
            if item is _DONE:
                return
            if isinstance(item, _ProducerFailure):
                raise item.error
            yield item

    @property
    def buffered(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Cancel the producer and wait for its thread to exit."""
        self._cancel.set()
        if self._started:
            self._thread.join()

    def __enter__(self) -> RecordChannel[T]:
        return self.start()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
