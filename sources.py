"""Sequence sources: what a pipeline pulls its elements from."""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Iterator, List, Optional

from utils import PipelineStateError, invoke


class Source(ABC):
    """
    A producible sequence of elements.

    ``bounded`` says whether the sequence is known to end; ``restartable``
    says whether open() may be called more than once.
    """
    bounded = True
    restartable = True

    @abstractmethod
    def _iterate(self) -> Iterator[Any]:
        ...

    def open(self) -> Iterator[Any]:
        return self._iterate()

    def describe(self) -> str:
        return type(self).__name__


class CollectionSource(Source):
    """A finite, re-iterable collection (list, tuple, range, dict keys, ...)."""

    def __init__(self, items: Iterable[Any]):
        self._items = items

    def _iterate(self):
        return iter(self._items)

    def materialize(self) -> List[Any]:
        if isinstance(self._items, list):
            return self._items
        return list(self._items)

    def describe(self):
        return f"CollectionSource({type(self._items).__name__})"


class SinglePassSource(Source):
    """Base for sources that can be opened only once."""
    restartable = False

    def __init__(self):
        self._lock = threading.Lock()
        self._opened = False

    @property
    def consumed(self) -> bool:
        return self._opened

    def open(self):
        with self._lock:
            if self._opened:
                raise PipelineStateError(
                    f"{self.describe()} is single-pass and has already been consumed; "
                    "use buffered() before the first terminal operation to re-run it"
                )
            self._opened = True
        return self._iterate()


class IteratorSource(SinglePassSource):
    """
    An arbitrary iterator or generator object. Its length is unknown: terminals
    without a bounding stage assume it ends, and parallel runs only read it
    through the first limit/take_while when the chain has one.
    """

    def __init__(self, iterator: Iterator[Any]):
        super().__init__()
        self._iterator = iterator

    def _iterate(self):
        return self._iterator


class IterateSource(SinglePassSource):
    """seed, step(seed), step(step(seed)), ... optionally ending when has_next fails."""

    def __init__(self, seed: Any, step: Callable[[Any], Any],
                 has_next: Optional[Callable[[Any], bool]] = None):
        super().__init__()
        self._seed = seed
        self._step = step
        self._has_next = has_next
        self.bounded = has_next is not None

    def _iterate(self):
        current = self._seed
        position = 0
        while True:
            if self._has_next is not None and not invoke("iterate", None, position, self._has_next, current):
                return
            yield current
            current = invoke("iterate", None, position, self._step, current)
            position += 1

    def describe(self):
        return "IterateSource"


class GenerateSource(SinglePassSource):
    """Endless calls to a zero-argument supplier."""
    bounded = False

    def __init__(self, supplier: Callable[[], Any]):
        super().__init__()
        self._supplier = supplier

    def _iterate(self):
        position = 0
        while True:
            yield invoke("generate", None, position, self._supplier)
            position += 1

    def describe(self):
        return "GenerateSource"


class BufferedSource(Source):
    """
    Memoizes a single-pass source as it is pulled, so it can be re-opened.
    Every open() replays the buffer first, then continues pulling upstream.
    """

    def __init__(self, upstream: Source):
        self._upstream = upstream
        self._buffer: List[Any] = []
        self._iterator: Optional[Iterator[Any]] = None
        self._exhausted = False
        self._lock = threading.Lock()
        self.bounded = upstream.bounded

    def _next_upstream(self, index: int):
        with self._lock:
            if index < len(self._buffer):
                return True, self._buffer[index]
            if self._exhausted:
                return False, None
            if self._iterator is None:
                self._iterator = self._upstream.open()
            try:
                item = next(self._iterator)
            except StopIteration:
                self._exhausted = True
                return False, None
            self._buffer.append(item)
            return True, item

    def _iterate(self):
        index = 0
        while True:
            present, item = self._next_upstream(index)
            if not present:
                return
            yield item
            index += 1

    def describe(self):
        return f"BufferedSource({self._upstream.describe()})"


def as_source(data: Any) -> Source:
    """Wrap a collection, iterator or existing Source."""
    if isinstance(data, Source):
        return data
    if iter(data) is data:
        return IteratorSource(data)
    return CollectionSource(data)
