"""
Collector protocol and built-in collectors.

A Collector bundles four functions: ``supplier`` creates an empty
accumulator, ``accumulator`` folds one element into it (returning either
None, meaning "mutated in place", or the new accumulator), ``combiner``
merges two partial accumulators, and ``finisher`` turns the accumulator
into the result. Parallel runs give each partition its own accumulator
and combine them left to right, so ``combiner`` must be associative.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from utils import DuplicateKeyError, OptionalResult

T = TypeVar("T")
A = TypeVar("A")
R = TypeVar("R")

_NOTHING = object()


def _identity(x):
    return x


@dataclass(frozen=True)
class Collector(Generic[T, A, R]):
    supplier: Callable[[], A]
    accumulator: Callable[[A, T], Optional[A]]
    combiner: Callable[[A, A], A]
    finisher: Callable[[A], R] = _identity

    @classmethod
    def of(cls, supplier, accumulator, combiner, finisher=None) -> "Collector":
        return cls(supplier, accumulator, combiner, finisher or _identity)

    def accumulate(self, acc: A, item: T) -> A:
        result = self.accumulator(acc, item)
        return acc if result is None else result

    def combine(self, left: A, right: A) -> A:
        result = self.combiner(left, right)
        return left if result is None else result

    def finish(self, acc: A) -> R:
        return self.finisher(acc)

    def and_then(self, finisher: Callable[[R], Any]) -> "Collector":
        return collecting_and_then(self, finisher)


class _Box:
    """Mutable single-slot holder for accumulators of immutable values."""
    __slots__ = ("value", "present")

    def __init__(self, value=None, present=False):
        self.value = value
        self.present = present


# ---------- Containers ----------

def to_list() -> Collector:
    def combine(left, right):
        left.extend(right)
        return left
    return Collector.of(list, list.append, combine)


def to_set() -> Collector:
    def combine(left, right):
        left.update(right)
        return left
    return Collector.of(set, set.add, combine)


def to_dict(key_fn: Callable, value_fn: Callable = _identity,
            merge_fn: Optional[Callable] = None, map_factory: Callable = dict) -> Collector:
    """
    Collect into a mapping. Without ``merge_fn`` a repeated key raises
    DuplicateKeyError; with it, ``merge_fn(existing, incoming)`` wins.
    """
    def put(acc, key, value):
        if key in acc:
            if merge_fn is None:
                raise DuplicateKeyError(key, acc[key], value)
            acc[key] = merge_fn(acc[key], value)
        else:
            acc[key] = value

    def accumulate(acc, item):
        put(acc, key_fn(item), value_fn(item))

    def combine(left, right):
        for key, value in right.items():
            put(left, key, value)
        return left

    return Collector.of(map_factory, accumulate, combine)


# ---------- Numeric ----------

def counting() -> Collector:
    return Collector.of(lambda: 0, lambda acc, _: acc + 1, lambda a, b: a + b)


def summing(fn: Callable = _identity) -> Collector:
    return Collector.of(lambda: 0, lambda acc, x: acc + fn(x), lambda a, b: a + b)


def averaging(fn: Callable = _identity) -> Collector:
    """Arithmetic mean; 0.0 for an empty input."""
    def finish(acc):
        count, total = acc
        return total / count if count else 0.0
    return Collector.of(
        lambda: (0, 0.0),
        lambda acc, x: (acc[0] + 1, acc[1] + fn(x)),
        lambda a, b: (a[0] + b[0], a[1] + b[1]),
        finish
    )


@dataclass
class SummaryStatistics:
    """Running count/sum/min/max over numeric values."""
    count: int = 0
    total: float = 0
    minimum: float = math.inf
    maximum: float = -math.inf

    def accept(self, value) -> None:
        self.count += 1
        self.total += value
        if value < self.minimum:
            self.minimum = value
        if value > self.maximum:
            self.maximum = value

    def combine(self, other: "SummaryStatistics") -> "SummaryStatistics":
        self.count += other.count
        self.total += other.total
        self.minimum = min(self.minimum, other.minimum)
        self.maximum = max(self.maximum, other.maximum)
        return self

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.total,
            "min": self.minimum if self.count else None,
            "max": self.maximum if self.count else None,
            "average": self.average
        }


def summarizing(fn: Callable = _identity) -> Collector:
    return Collector.of(
        SummaryStatistics,
        lambda stats, x: stats.accept(fn(x)),
        SummaryStatistics.combine
    )


# ---------- Selection ----------

def _select_by(key: Optional[Callable], prefer_right: Callable[[Any, Any], bool]) -> Collector:
    key = key or _identity

    def accumulate(box, item):
        if not box.present:
            box.value, box.present = item, True
        elif prefer_right(key(box.value), key(item)):
            box.value = item

    def combine(left, right):
        if not right.present:
            return left
        if not left.present:
            return right
        if prefer_right(key(left.value), key(right.value)):
            return right
        return left

    def finish(box):
        return OptionalResult.of(box.value) if box.present else OptionalResult.empty()

    return Collector.of(_Box, accumulate, combine, finish)


def min_by(key: Optional[Callable] = None) -> Collector:
    """Smallest element by ``key``; the earliest element wins ties."""
    return _select_by(key, lambda current, candidate: candidate < current)


def max_by(key: Optional[Callable] = None) -> Collector:
    """Largest element by ``key``; the earliest element wins ties."""
    return _select_by(key, lambda current, candidate: candidate > current)


def first_element() -> Collector:
    """The first element in encounter order, as an OptionalResult."""
    def accumulate(box, item):
        if not box.present:
            box.value, box.present = item, True

    def combine(left, right):
        return left if left.present else right

    def finish(box):
        return OptionalResult.of(box.value) if box.present else OptionalResult.empty()

    return Collector.of(_Box, accumulate, combine, finish)


def reducing(op: Callable, identity: Any = _NOTHING, combiner: Optional[Callable] = None) -> Collector:
    """
    Fold with ``op``. With an identity the result is the folded value
    (``combiner`` merges partial folds when ``op`` takes heterogeneous
    arguments); without one the result is an OptionalResult.
    """
    merge = combiner or op
    if identity is not _NOTHING:
        return Collector.of(lambda: identity, op, merge)

    def accumulate(box, item):
        if box.present:
            box.value = op(box.value, item)
        else:
            box.value, box.present = item, True

    def combine(left, right):
        if not right.present:
            return left
        if not left.present:
            return right
        left.value = merge(left.value, right.value)
        return left

    def finish(box):
        return OptionalResult.of(box.value) if box.present else OptionalResult.empty()

    return Collector.of(_Box, accumulate, combine, finish)


# ---------- Strings ----------

def joining(delimiter: str = "", prefix: str = "", suffix: str = "") -> Collector:
    def accumulate(parts, item):
        if not isinstance(item, str):
            raise TypeError(f"joining() expects str elements, got {type(item).__name__}")
        parts.append(item)

    def combine(left, right):
        left.extend(right)
        return left

    return Collector.of(list, accumulate, combine,
                        lambda parts: prefix + delimiter.join(parts) + suffix)


# ---------- Grouping ----------

def grouping_by(classifier: Callable, downstream: Optional[Collector] = None,
                map_factory: Callable = dict) -> Collector:
    """
    Group elements by ``classifier``; each group is reduced by
    ``downstream`` (a list by default). Keys keep first-seen order.
    """
    downstream = downstream or to_list()

    def accumulate(groups, item):
        key = classifier(item)
        if key not in groups:
            groups[key] = downstream.supplier()
        groups[key] = downstream.accumulate(groups[key], item)

    def combine(left, right):
        for key, partial in right.items():
            if key in left:
                left[key] = downstream.combine(left[key], partial)
            else:
                left[key] = partial
        return left

    def finish(groups):
        result = map_factory()
        for key, acc in groups.items():
            result[key] = downstream.finish(acc)
        return result

    return Collector.of(dict, accumulate, combine, finish)


def partitioning_by(predicate: Callable, downstream: Optional[Collector] = None) -> Collector:
    """Split into {True: ..., False: ...}; both keys are always present."""
    downstream = downstream or to_list()

    def supply():
        return {True: downstream.supplier(), False: downstream.supplier()}

    def accumulate(parts, item):
        key = bool(predicate(item))
        parts[key] = downstream.accumulate(parts[key], item)

    def combine(left, right):
        for key in (True, False):
            left[key] = downstream.combine(left[key], right[key])
        return left

    def finish(parts):
        return {key: downstream.finish(acc) for key, acc in parts.items()}

    return Collector.of(supply, accumulate, combine, finish)


# ---------- Adapters ----------

def mapping(fn: Callable, downstream: Collector) -> Collector:
    return Collector.of(
        downstream.supplier,
        lambda acc, x: downstream.accumulate(acc, fn(x)),
        downstream.combine,
        downstream.finish
    )


def filtering(predicate: Callable, downstream: Collector) -> Collector:
    def accumulate(acc, x):
        if predicate(x):
            return downstream.accumulate(acc, x)
        return acc
    return Collector.of(downstream.supplier, accumulate, downstream.combine, downstream.finish)


def collecting_and_then(downstream: Collector, finisher: Callable) -> Collector:
    return Collector.of(
        downstream.supplier,
        downstream.accumulate,
        downstream.combine,
        lambda acc: finisher(downstream.finish(acc))
    )


# ---------- Short-circuit helpers (parallel fallbacks) ----------

def any_matching(predicate: Callable) -> Collector:
    return Collector.of(
        lambda: False,
        lambda acc, x: acc or bool(predicate(x)),
        lambda a, b: a or b
    )


def all_matching(predicate: Callable) -> Collector:
    return Collector.of(
        lambda: True,
        lambda acc, x: acc and bool(predicate(x)),
        lambda a, b: a and b
    )
