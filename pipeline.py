from typing import Any, Callable, Iterable, Iterator, Optional

import collectors
from collectors import Collector
from engine import Execution, ExecutionEngine
from models import EngineSettings, ExecutionMode, ExecutionReport, ExecutionState
from sources import BufferedSource, GenerateSource, IterateSource, Source, as_source
from stages import Stage, StageKind, comparator_key
from utils import CancellationToken, OptionalResult, invoke

_NOTHING = object()


class Pipeline:
    """
    A chainable, lazy collection pipeline. Transformations are recorded as
    stages and only run when a terminal operation (or iteration) pulls
    elements through them. Every stage-adding call returns a new Pipeline;
    the receiver is never modified, so derived pipelines can be shared.
    """

    def __init__(self, source, stages=(), mode=ExecutionMode.SEQUENTIAL, workers=None,
                 cancel_token=None, settings=None):
        self._source: Source = as_source(source)
        self._stages = tuple(stages)
        self._mode = mode
        self._workers = workers
        self._cancel_token = cancel_token
        self._settings: Optional[EngineSettings] = settings
        self._last_execution: Optional[Execution] = None

    # --------- sources ----------
    @classmethod
    def of(cls, *items) -> "Pipeline":
        return cls(items)

    @classmethod
    def from_iterable(cls, iterable: Iterable[Any]) -> "Pipeline":
        return cls(iterable)

    @classmethod
    def empty(cls) -> "Pipeline":
        return cls(())

    @classmethod
    def range(cls, start: int, stop: Optional[int] = None, step: int = 1) -> "Pipeline":
        if stop is None:
            start, stop = 0, start
        return cls(range(start, stop, step))

    @classmethod
    def iterate(cls, seed, step: Callable, has_next: Optional[Callable] = None) -> "Pipeline":
        """seed, step(seed), ...; unbounded unless ``has_next`` ends it."""
        return cls(IterateSource(seed, step, has_next))

    @classmethod
    def generate(cls, supplier: Callable[[], Any]) -> "Pipeline":
        """Endless supplier() calls; needs limit() or take_while() before a terminal."""
        return cls(GenerateSource(supplier))

    # --------- chainable operators (lazy) ----------
    def filter(self, pred: Callable[[Any], bool]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.FILTER, pred))

    def map(self, fn: Callable[[Any], Any]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.MAP, fn))

    def flat_map(self, fn: Callable[[Any], Iterable[Any]]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.FLAT_MAP, fn))

    def peek(self, action: Callable[[Any], Any]) -> "Pipeline":
        """Run ``action`` on each element that reaches this point. Must not mutate elements."""
        return self._with_stage(Stage(StageKind.PEEK, action))

    def sorted(self, key: Optional[Callable] = None, reverse: bool = False,
               cmp: Optional[Callable[[Any, Any], int]] = None) -> "Pipeline":
        """Stable sort barrier; ``cmp`` is a three-way comparator alternative to ``key``."""
        if key is not None and cmp is not None:
            raise ValueError("Pass either key or cmp, not both")
        if cmp is not None:
            key = comparator_key(cmp)
        return self._with_stage(Stage(StageKind.SORT, key, reverse=reverse))

    def distinct(self, key: Optional[Callable] = None) -> "Pipeline":
        """Drop repeats, keeping first-seen order; ``key`` defines equality."""
        return self._with_stage(Stage(StageKind.DISTINCT, key))

    def limit(self, n: int) -> "Pipeline":
        n = int(n)
        if n < 0:
            raise ValueError("limit() needs a non-negative count")
        return self._with_stage(Stage(StageKind.LIMIT, count=n))

    def skip(self, n: int) -> "Pipeline":
        n = int(n)
        if n < 0:
            raise ValueError("skip() needs a non-negative count")
        return self._with_stage(Stage(StageKind.SKIP, count=n))

    def take_while(self, pred: Callable[[Any], bool]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.TAKE_WHILE, pred))

    def batch(self, size: int) -> "Pipeline":
        size = int(size)
        if size < 1:
            raise ValueError("Batch size must be >= 1")
        return self._with_stage(Stage(StageKind.BATCH, count=size))

    def chunk(self, size: int) -> "Pipeline":
        """Alias for batch() - groups elements into chunks of specified size"""
        return self.batch(size)

    def page(self, page_number: int, page_size: int) -> "Pipeline":
        """Get a specific page of results (1-indexed)"""
        if page_number < 1:
            raise ValueError("Page number must be >= 1")
        offset = (page_number - 1) * page_size
        return self.skip(offset).limit(page_size)

    def buffered(self) -> "Pipeline":
        """Memoize a single-pass source so this pipeline and its descendants can re-run."""
        if self._source.restartable:
            return self
        return self._replace(source=BufferedSource(self._source))

    # --------- execution mode ----------
    def sequential(self, cancel_token: Optional[CancellationToken] = None) -> "Pipeline":
        return self._replace(mode=ExecutionMode.SEQUENTIAL, workers=None,
                             cancel_token=cancel_token or self._cancel_token)

    def parallel(self, workers: Optional[int] = None,
                 cancel_token: Optional[CancellationToken] = None) -> "Pipeline":
        """Run terminals on a pool of ``workers`` threads (hardware parallelism by default)."""
        if workers is not None and int(workers) < 1:
            raise ValueError("Worker count must be >= 1")
        return self._replace(mode=ExecutionMode.PARALLEL, workers=workers,
                             cancel_token=cancel_token or self._cancel_token)

    @property
    def is_parallel(self) -> bool:
        return self._mode == ExecutionMode.PARALLEL

    @property
    def stages(self):
        return self._stages

    @property
    def source(self) -> Source:
        return self._source

    @property
    def state(self) -> ExecutionState:
        """State of the most recent terminal run on this pipeline."""
        if self._last_execution is None:
            return ExecutionState.BUILT
        return self._last_execution.state

    @property
    def last_report(self) -> Optional[ExecutionReport]:
        if self._last_execution is None:
            return None
        return self._last_execution.report

    # --------- terminal operations ----------
    def collect(self, collector: Collector, operation: str = "collect") -> Any:
        engine = self._engine()
        execution = engine.new_execution(operation)
        self._last_execution = execution
        return engine.run(self._source, self._stages, collector, execution)

    def to_list(self) -> list:
        return self.collect(collectors.to_list(), "to_list")

    def to_set(self) -> set:
        return self.collect(collectors.to_set(), "to_set")

    def to_dict(self, key_fn: Callable, value_fn: Callable = lambda x: x,
                merge_fn: Optional[Callable] = None) -> dict:
        """Raises DuplicateKeyError on a repeated key unless ``merge_fn`` resolves it."""
        return self.collect(collectors.to_dict(key_fn, value_fn, merge_fn), "to_dict")

    def reduce(self, op: Callable, identity: Any = _NOTHING, combiner: Optional[Callable] = None):
        """
        Fold elements left to right. With ``identity`` returns the folded
        value; without it returns an OptionalResult (empty for no elements).
        """
        if identity is _NOTHING:
            return self.collect(collectors.reducing(op, combiner=combiner), "reduce")
        return self.collect(collectors.reducing(op, identity, combiner), "reduce")

    def count(self) -> int:
        return self.collect(collectors.counting(), "count")

    def sum(self, start=0):
        """Return the sum of all elements (``start`` for an empty sequence)"""
        return start + self.collect(collectors.summing(), "sum")

    def average(self) -> OptionalResult:
        def finish(stats):
            return OptionalResult.of(stats.average) if stats.count else OptionalResult.empty()
        return self.collect(collectors.collecting_and_then(collectors.summarizing(), finish), "average")

    def min(self, key: Optional[Callable] = None) -> OptionalResult:
        return self.collect(collectors.min_by(key), "min")

    def max(self, key: Optional[Callable] = None) -> OptionalResult:
        return self.collect(collectors.max_by(key), "max")

    def summary_statistics(self, fn: Optional[Callable] = None) -> collectors.SummaryStatistics:
        if fn is None:
            return self.collect(collectors.summarizing(), "summary_statistics")
        return self.collect(collectors.summarizing(fn), "summary_statistics")

    def group_by(self, classifier: Callable, downstream: Optional[Collector] = None,
                 map_factory: Callable = dict) -> dict:
        return self.collect(collectors.grouping_by(classifier, downstream, map_factory), "group_by")

    def partition_by(self, predicate: Callable, downstream: Optional[Collector] = None) -> dict:
        return self.collect(collectors.partitioning_by(predicate, downstream), "partition_by")

    def joining(self, delimiter: str = "", prefix: str = "", suffix: str = "") -> str:
        return self.collect(collectors.joining(delimiter, prefix, suffix), "joining")

    def for_each(self, action: Callable[[Any], Any]) -> None:
        if self.is_parallel:
            self.collect(Collector.of(lambda: None, lambda _, x: action(x), lambda a, b: None),
                         "for_each")
            return

        def visit(item):
            action(item)
            return False
        self._drain("for_each", visit)

    # --------- short-circuiting terminals ----------
    def find_first(self) -> OptionalResult:
        if self.is_parallel:
            return self.collect(collectors.first_element(), "find_first")
        return self._drain("find_first", lambda _: True)

    def any_match(self, pred: Callable[[Any], bool]) -> bool:
        if self.is_parallel:
            return self.collect(collectors.any_matching(pred), "any_match")
        return self._drain("any_match", pred).is_present

    def all_match(self, pred: Callable[[Any], bool]) -> bool:
        if self.is_parallel:
            return self.collect(collectors.all_matching(pred), "all_match")
        return self._drain("all_match", lambda x: not pred(x)).is_empty

    def none_match(self, pred: Callable[[Any], bool]) -> bool:
        if self.is_parallel:
            return not self.collect(collectors.any_matching(pred), "none_match")
        return self._drain("none_match", pred).is_empty

    def paginate(self, page_size: int) -> Iterator[list]:
        """Yield pages of up to page_size elements, in one pass over the source"""
        for page in self.batch(page_size):
            yield list(page)

    # --------- iterator protocol ----------
    def __iter__(self) -> Iterator[Any]:
        # iteration is always a sequential pull, whatever the mode
        _, stream = self._stream("iterate")
        return stream

    def __repr__(self):
        chain = " -> ".join(str(stage) for stage in self._stages) or "(no stages)"
        return f"Pipeline({self._source.describe()} | {chain} | {self._mode.value})"

    # --------- helpers ----------
    def _engine(self) -> ExecutionEngine:
        return ExecutionEngine(self._mode, self._workers, self._cancel_token, self._settings)

    def _stream(self, operation: str):
        engine = ExecutionEngine(ExecutionMode.SEQUENTIAL, None, self._cancel_token, self._settings)
        execution = engine.new_execution(operation)
        self._last_execution = execution
        return execution, engine.stream(self._source, self._stages, execution)

    def _drain(self, operation: str, visit: Callable[[Any], Any]) -> OptionalResult:
        """Pull sequentially, stopping at the first element for which visit() is true."""
        execution, stream = self._stream(operation)
        terminal_index = len(self._stages)
        try:
            for position, item in enumerate(stream):
                if invoke(operation, terminal_index, position, visit, item):
                    return OptionalResult.of(item)
            return OptionalResult.empty()
        except Exception as e:
            execution.fail(e)
            raise
        finally:
            stream.close()

    def _with_stage(self, stage: Stage) -> "Pipeline":
        return self._replace(stages=self._stages + (stage,))

    def _replace(self, **changes) -> "Pipeline":
        values = dict(source=self._source, stages=self._stages, mode=self._mode,
                      workers=self._workers, cancel_token=self._cancel_token,
                      settings=self._settings)
        values.update(changes)
        return Pipeline(**values)
