"""
Execution engine: drives a stage chain into a collector.

Sequential runs pull one element at a time through the whole chain on the
calling thread. Parallel runs split the source into contiguous chunks,
run the chain on a thread pool with one accumulator per chunk, join every
worker and then combine the partial results in chunk order.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterator, List, Optional, Sequence

from collectors import Collector, to_list
from models import (
    EngineSettings, ExecutionMode, ExecutionReport, ExecutionState,
    PartitionReport, PartitionStatus, get_settings
)
from sources import CollectionSource, Source
from stages import (
    BOUNDING_KINDS, Stage, apply_chain, apply_stage, check_bounded, split_segments
)
from utils import (
    CancellationError, CancellationToken, ElementProcessingError, PipelineError,
    UnboundedSequenceError, elapsed_ms, invoke, record_run
)

logger = logging.getLogger(__name__)


class Execution:
    """One terminal run: BUILT -> RUNNING -> DONE | FAILED."""

    def __init__(self, operation: str, mode: ExecutionMode, worker_count: int = 1):
        self.report = ExecutionReport(operation=operation, mode=mode, worker_count=worker_count)
        self._started: Optional[float] = None

    @property
    def state(self) -> ExecutionState:
        return self.report.state

    def start(self) -> None:
        self._started = time.perf_counter()
        self.report.state = ExecutionState.RUNNING

    def finish(self) -> None:
        self._close(ExecutionState.DONE)

    def fail(self, error: BaseException) -> None:
        self.report.error = f"{type(error).__name__}: {error}"
        self._close(ExecutionState.FAILED)

    def _close(self, state: ExecutionState) -> None:
        if self.report.state != ExecutionState.RUNNING:
            return
        self.report.state = state
        if self._started is not None:
            self.report.elapsed_ms = elapsed_ms(self._started)
        record_run(self.report.model_dump(mode="json"))


class _Outcome:
    """What a worker hands back to the merge step."""
    __slots__ = ("index", "status", "partial", "error", "processed")

    def __init__(self, index, status, partial=None, error=None, processed=0):
        self.index = index
        self.status = status
        self.partial = partial
        self.error = error
        self.processed = processed

    def to_report(self) -> PartitionReport:
        return PartitionReport(
            index=self.index,
            status=self.status,
            elements_processed=self.processed,
            error=str(self.error) if self.error is not None else None
        )


def partition(items: Sequence[Any], count: int, min_size: int = 1) -> List[Sequence[Any]]:
    """Split ``items`` into at most ``count`` contiguous chunks of near-equal size."""
    n = len(items)
    if n == 0:
        return [items]
    count = max(1, min(count, n // max(min_size, 1) or 1))
    size, extra = divmod(n, count)
    chunks = []
    start = 0
    for i in range(count):
        end = start + size + (1 if i < extra else 0)
        chunks.append(items[start:end])
        start = end
    return chunks


def check_runnable(source: Source, stages: Sequence[Stage]) -> None:
    if not source.bounded and not check_bounded(stages):
        raise UnboundedSequenceError(
            f"{source.describe()} is unbounded; add limit() or take_while() "
            "before any sorted() stage and before the terminal operation"
        )


class ExecutionEngine:
    """Runs pipelines sequentially or across a fixed-size worker pool."""

    def __init__(self, mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
                 workers: Optional[int] = None,
                 cancel_token: Optional[CancellationToken] = None,
                 settings: Optional[EngineSettings] = None):
        self.settings = settings or get_settings()
        self.mode = mode
        self.workers = workers or self.settings.default_workers
        self.cancel_token = cancel_token

    @property
    def parallel(self) -> bool:
        return self.mode == ExecutionMode.PARALLEL

    def new_execution(self, operation: str) -> Execution:
        return Execution(operation, self.mode, self.workers if self.parallel else 1)

    # --------- guards ----------
    def _guarded(self, iterator: Iterator[Any], abort: Optional[threading.Event] = None,
                 counter: Optional[List[int]] = None) -> Iterator[Any]:
        token = self.cancel_token
        for item in iterator:
            if token is not None and token.cancelled:
                raise CancellationError(token.reason or "Pipeline run was cancelled")
            if abort is not None and abort.is_set():
                raise CancellationError("Aborted after a sibling partition failed")
            if counter is not None:
                counter[0] += 1
            yield item

    # --------- entry points ----------
    def run(self, source: Source, stages: Sequence[Stage], collector: Collector,
            execution: Execution) -> Any:
        """Drive the chain into ``collector`` and return the finished result."""
        execution.start()
        try:
            check_runnable(source, stages)
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled()
            if self.parallel:
                result = self._run_parallel(source, stages, collector, execution)
            else:
                result = self._run_sequential(source, stages, collector)
        except CancellationError as e:
            logger.warning(f"{execution.report.operation} cancelled: {e}")
            execution.fail(e)
            raise
        except PipelineError as e:
            logger.error(f"{execution.report.operation} failed: {e}")
            execution.fail(e)
            raise
        except Exception as e:
            execution.fail(e)
            raise
        execution.finish()
        logger.debug(
            f"{execution.report.operation} finished in {execution.report.elapsed_ms:.3f}ms "
            f"({execution.report.mode.value}, {execution.report.worker_count} worker(s))"
        )
        return result

    def stream(self, source: Source, stages: Sequence[Stage], execution: Execution) -> Iterator[Any]:
        """Lazy sequential iteration; the run finishes when the iterator is exhausted or closed."""
        execution.start()
        try:
            check_runnable(source, stages)
            yield from apply_chain(stages, self._guarded(source.open()))
        except GeneratorExit:
            execution.finish()
            raise
        except Exception as e:
            execution.fail(e)
            raise
        execution.finish()

    # --------- sequential ----------
    def _run_sequential(self, source: Source, stages: Sequence[Stage], collector: Collector) -> Any:
        terminal_index = len(stages)
        it = apply_chain(stages, self._guarded(source.open()))
        acc = invoke("collect", terminal_index, None, collector.supplier)
        for position, item in enumerate(it):
            acc = invoke("collect", terminal_index, position, collector.accumulate, acc, item)
        return invoke("finish", terminal_index, None, collector.finish, acc)

    # --------- parallel ----------
    def _bounded_input(self, source: Source, stages: Sequence[Stage]):
        """
        Materialize the input for partitioning. In-memory collections are
        used as they are; any other source is pulled lazily through its
        first bounding stage when the chain has one, so generators (finite
        or not) are never read past what limit()/take_while() lets through.
        """
        if isinstance(source, CollectionSource):
            return source.materialize(), 0
        cut = next((i for i, stage in enumerate(stages) if stage.kind in BOUNDING_KINDS), None)
        if cut is None:
            return list(self._guarded(source.open())), 0
        logger.debug(f"Draining {source.describe()} through {cut + 1} stage(s) before partitioning")
        return list(apply_chain(stages[:cut + 1], self._guarded(source.open()))), cut + 1

    def _run_parallel(self, source: Source, stages: Sequence[Stage], collector: Collector,
                      execution: Execution) -> Any:
        items, offset = self._bounded_input(source, stages)
        segments = split_segments(stages[offset:])
        final: List[Stage] = []
        if segments and segments[-1][0].stateless:
            final = segments.pop()

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="pipeline") as pool:
            i = 0
            while i < len(segments):
                segment = segments[i]
                following = segments[i + 1] if i + 1 < len(segments) else None
                if segment[0].stateless and following and following[0].kind in BOUNDING_KINDS:
                    # limit/take_while pull lazily: the stateless run feeding them stays sequential
                    chain = list(segment) + list(following)
                    items = list(apply_chain(chain, self._guarded(iter(items)), offset))
                    offset += len(chain)
                    i += 2
                    continue
                if segment[0].stateless:
                    items = self._dispatch(pool, items, segment, offset, to_list(), execution)
                else:
                    items = list(apply_stage(segment[0], self._guarded(iter(items)), offset))
                offset += len(segment)
                i += 1
            partial = self._dispatch(pool, items, final, offset, collector, execution, finish=False)
        return invoke("finish", offset + len(final), None, collector.finish, partial)

    def _dispatch(self, pool: ThreadPoolExecutor, items: Sequence[Any], segment: Sequence[Stage],
                  offset: int, collector: Collector, execution: Execution, finish: bool = True) -> Any:
        chunks = partition(items, self.workers, self.settings.min_partition_size)
        abort = threading.Event()
        logger.debug(f"Dispatching {len(items)} element(s) across {len(chunks)} partition(s)")
        futures = [
            pool.submit(self._work, index, chunk, segment, offset, collector, abort)
            for index, chunk in enumerate(chunks)
        ]
        # barrier: every partition finishes before anything is merged
        outcomes: List[_Outcome] = [future.result() for future in futures]
        execution.report.partitions.extend(outcome.to_report() for outcome in outcomes)

        failed = [o.error for o in outcomes if o.status == PartitionStatus.FAILED]
        if failed:
            processing = [e for e in failed if isinstance(e, ElementProcessingError)]
            if len(processing) != len(failed):
                raise next(e for e in failed if not isinstance(e, ElementProcessingError))
            error = ElementProcessingError.aggregate(processing)
            raise error from processing[0].cause
        aborted = [o for o in outcomes if o.status == PartitionStatus.ABORTED]
        if aborted:
            raise CancellationError(
                f"{len(aborted)} of {len(outcomes)} partition(s) aborted: {aborted[0].error}"
            )

        acc = outcomes[0].partial
        for outcome in outcomes[1:]:
            acc = invoke("combine", None, None, collector.combine, acc, outcome.partial)
        if finish:
            return invoke("finish", None, None, collector.finish, acc)
        return acc

    def _work(self, index: int, chunk: Sequence[Any], segment: Sequence[Stage], offset: int,
              collector: Collector, abort: threading.Event) -> _Outcome:
        counter = [0]
        terminal_index = offset + len(segment)
        try:
            it = apply_chain(segment, self._guarded(iter(chunk), abort, counter), offset)
            acc = invoke("collect", terminal_index, None, collector.supplier)
            for position, item in enumerate(it):
                acc = invoke("collect", terminal_index, position, collector.accumulate, acc, item)
            return _Outcome(index, PartitionStatus.COMPLETED, partial=acc, processed=counter[0])
        except CancellationError as e:
            return _Outcome(index, PartitionStatus.ABORTED, error=e, processed=counter[0])
        except ElementProcessingError as e:
            abort.set()
            return _Outcome(index, PartitionStatus.FAILED, error=e.with_partition(index),
                            processed=counter[0])
        except PipelineError as e:
            abort.set()
            return _Outcome(index, PartitionStatus.FAILED, error=e, processed=counter[0])
        except Exception as e:
            abort.set()
            error = ElementProcessingError("worker", None, None, e, partition=index)
            error.__cause__ = e
            return _Outcome(index, PartitionStatus.FAILED, error=error, processed=counter[0])
