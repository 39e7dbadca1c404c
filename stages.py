"""
Stage chain: lazy intermediate operations.

Each stage turns an upstream iterator into a downstream iterator. Nothing
is pulled until the downstream is iterated, and a stage only ever sees
elements that passed every earlier stage.
"""

import functools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Sequence

from utils import ElementProcessingError, PipelineError, invoke


class StageKind(str, Enum):
    FILTER = "filter"
    MAP = "map"
    FLAT_MAP = "flat_map"
    PEEK = "peek"
    SORT = "sorted"
    DISTINCT = "distinct"
    LIMIT = "limit"
    SKIP = "skip"
    TAKE_WHILE = "take_while"
    BATCH = "batch"


# Per-element stages that can run independently on each partition.
STATELESS_KINDS = frozenset({StageKind.FILTER, StageKind.MAP, StageKind.FLAT_MAP, StageKind.PEEK})

# Stages that turn an unbounded upstream into a bounded one.
BOUNDING_KINDS = frozenset({StageKind.LIMIT, StageKind.TAKE_WHILE})

# Stages that drain their whole upstream before emitting.
BARRIER_KINDS = frozenset({StageKind.SORT})


@dataclass(frozen=True)
class Stage:
    """One immutable transformation step."""
    kind: StageKind
    fn: Optional[Callable] = None
    count: Optional[int] = None
    reverse: bool = False

    @property
    def stateless(self) -> bool:
        return self.kind in STATELESS_KINDS

    def __str__(self):
        if self.count is not None:
            return f"{self.kind.value}({self.count})"
        return self.kind.value


def apply_stage(stage: Stage, upstream: Iterator[Any], stage_index: int) -> Iterator[Any]:
    """Wrap ``upstream`` with one stage, lazily."""
    name = stage.kind.value
    kind = stage.kind

    if kind == StageKind.FILTER:
        def _filter(gen, pred=stage.fn):
            for position, x in enumerate(gen):
                if invoke(name, stage_index, position, pred, x):
                    yield x
        return _filter(upstream)

    if kind == StageKind.MAP:
        def _map(gen, fn=stage.fn):
            for position, x in enumerate(gen):
                yield invoke(name, stage_index, position, fn, x)
        return _map(upstream)

    if kind == StageKind.FLAT_MAP:
        def _flat_map(gen, fn=stage.fn):
            for position, x in enumerate(gen):
                inner = invoke(name, stage_index, position, fn, x)
                if inner is None:
                    continue
                iterator = invoke(name, stage_index, position, iter, inner)
                while True:
                    try:
                        value = next(iterator)
                    except StopIteration:
                        break
                    except PipelineError:
                        raise
                    except Exception as e:
                        raise ElementProcessingError(name, stage_index, position, e) from e
                    yield value
        return _flat_map(upstream)

    if kind == StageKind.PEEK:
        def _peek(gen, action=stage.fn):
            for position, x in enumerate(gen):
                invoke(name, stage_index, position, action, x)
                yield x
        return _peek(upstream)

    if kind == StageKind.SORT:
        def _sort(gen, key=stage.fn, reverse=stage.reverse):
            items = list(gen)
            if key is None:
                yield from invoke(name, stage_index, None, sorted, items, reverse=reverse)
            else:
                yield from invoke(name, stage_index, None, sorted, items, key=key, reverse=reverse)
        return _sort(upstream)

    if kind == StageKind.DISTINCT:
        def _distinct(gen, key=stage.fn):
            seen_hashable = set()
            seen_unhashable = []
            for position, x in enumerate(gen):
                marker = x if key is None else invoke(name, stage_index, position, key, x)
                try:
                    if marker in seen_hashable:
                        continue
                    seen_hashable.add(marker)
                except TypeError:
                    if marker in seen_unhashable:
                        continue
                    seen_unhashable.append(marker)
                yield x
        return _distinct(upstream)

    if kind == StageKind.LIMIT:
        def _limit(gen, n=stage.count):
            # n == 0 must not pull anything from upstream
            if n <= 0:
                return
            taken = 0
            for x in gen:
                yield x
                taken += 1
                if taken >= n:
                    return
        return _limit(upstream)

    if kind == StageKind.SKIP:
        def _skip(gen, k=stage.count):
            skipped = 0
            for x in gen:
                if skipped < k:
                    skipped += 1
                    continue
                yield x
        return _skip(upstream)

    if kind == StageKind.TAKE_WHILE:
        def _take_while(gen, pred=stage.fn):
            for position, x in enumerate(gen):
                if not invoke(name, stage_index, position, pred, x):
                    return
                yield x
        return _take_while(upstream)

    if kind == StageKind.BATCH:
        def _batch(gen, size=stage.count):
            bucket = []
            for x in gen:
                bucket.append(x)
                if len(bucket) == size:
                    yield tuple(bucket)
                    bucket = []
            if bucket:
                yield tuple(bucket)
        return _batch(upstream)

    raise ValueError(f"Unknown stage: {kind}")


def apply_chain(stages: Sequence[Stage], upstream: Iterator[Any], first_index: int = 0) -> Iterator[Any]:
    """Compose stages in declaration order; ``first_index`` numbers them within the full chain."""
    it = upstream
    for offset, stage in enumerate(stages):
        it = apply_stage(stage, it, first_index + offset)
    return it


def comparator_key(cmp: Callable[[Any, Any], int]) -> Callable[[Any], Any]:
    """Turn a three-way comparator into a sort key."""
    return functools.cmp_to_key(cmp)


def check_bounded(stages: Sequence[Stage]) -> bool:
    """
    True when the chain bounds an unbounded upstream: a LIMIT or
    TAKE_WHILE appears before any barrier stage.
    """
    for stage in stages:
        if stage.kind in BOUNDING_KINDS:
            return True
        if stage.kind in BARRIER_KINDS:
            return False
    return False


def split_segments(stages: Sequence[Stage]) -> List[List[Stage]]:
    """
    Split a chain into alternating runs: stateless runs and single
    stateful stages. Used by the parallel engine, which treats each
    stateful stage as an ordering barrier.
    """
    segments: List[List[Stage]] = []
    current: List[Stage] = []
    for stage in stages:
        if stage.stateless:
            current.append(stage)
            continue
        if current:
            segments.append(current)
            current = []
        segments.append([stage])
    if current:
        segments.append(current)
    return segments
