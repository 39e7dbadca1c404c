"""
Utility layer for the collection pipeline engine.

Holds the logging setup, the engine's error hierarchy, the empty-signal
result type, the cooperative cancellation token and the process-wide run
metrics that the HTTP surface reports.
"""

import sys
import time
import logging
import threading
from typing import Any, Callable, Dict, List, Optional


# ---------- Logging Setup ----------

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s'


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Setup structured logging for the pipeline engine"""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    return logging.getLogger('pipeline')


logger = logging.getLogger(__name__)


# ---------- Errors ----------

class PipelineError(Exception):
    """Base class for every error raised by the engine."""
    pass


class EmptySequenceError(PipelineError):
    """Raised by OptionalResult.get() when no value is present."""
    pass


class DuplicateKeyError(PipelineError):
    """Raised by to_dict when two elements map to the same key and no merge function is given."""

    def __init__(self, key: Any, existing: Any = None, incoming: Any = None):
        self.key = key
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Duplicate key {key!r} (attempted merging values {existing!r} and {incoming!r})"
        )


class UnboundedSequenceError(PipelineError):
    """Raised when a terminal operation is invoked on an unbounded source without a bounding stage."""
    pass


class PipelineStateError(PipelineError):
    """Raised when a single-pass source is driven to a terminal operation twice."""
    pass


class CancellationError(PipelineError):
    """Raised when a run observes an explicit cancellation."""
    pass


class ElementProcessingError(PipelineError):
    """
    A user-supplied function raised while the pipeline was traversing elements.

    Carries the stage context (stage name, its index in the chain and the
    position of the element within that stage's input). Parallel failures
    aggregate one error per failed partition in ``errors``.
    """

    def __init__(self, stage: str, stage_index: Optional[int] = None,
                 position: Optional[int] = None, cause: Optional[BaseException] = None,
                 partition: Optional[int] = None,
                 errors: Optional[List["ElementProcessingError"]] = None):
        self.stage = stage
        self.stage_index = stage_index
        self.position = position
        self.cause = cause
        self.partition = partition
        self.errors = errors or []
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.errors:
            first = self.errors[0]
            return (f"{len(self.errors)} partition(s) failed; first failure: {first}")
        where = f"stage {self.stage!r}"
        if self.stage_index is not None:
            where += f" (#{self.stage_index})"
        if self.position is not None:
            where += f" at element {self.position}"
        if self.partition is not None:
            where += f" in partition {self.partition}"
        reason = f"{type(self.cause).__name__}: {self.cause}" if self.cause else "unknown error"
        return f"Error in {where}: {reason}"

    def with_partition(self, partition: int) -> "ElementProcessingError":
        self.partition = partition
        self.args = (self._describe(),)
        return self

    @classmethod
    def aggregate(cls, errors: List["ElementProcessingError"]) -> "ElementProcessingError":
        """Fold per-partition failures into the single error surfaced to the caller."""
        first = errors[0]
        return cls(first.stage, first.stage_index, first.position, first.cause,
                   first.partition, errors=list(errors))


def invoke(stage: str, stage_index: Optional[int], position: Optional[int],
           fn: Callable, *args, **kwargs):
    """Call a user function, wrapping anything it raises with stage context."""
    try:
        return fn(*args, **kwargs)
    except PipelineError:
        raise
    except Exception as e:
        raise ElementProcessingError(stage, stage_index, position, e) from e


# ---------- Empty-signal results ----------

class OptionalResult:
    """
    A value that may be absent. Returned by terminals such as min(), max(),
    average(), find_first() and reduce() without identity instead of
    raising on an empty sequence.
    """

    __slots__ = ("_value", "_present")

    def __init__(self, value: Any = None, present: bool = False):
        self._value = value
        self._present = present

    @classmethod
    def of(cls, value: Any) -> "OptionalResult":
        return cls(value, True)

    @classmethod
    def empty(cls) -> "OptionalResult":
        return cls()

    @property
    def is_present(self) -> bool:
        return self._present

    @property
    def is_empty(self) -> bool:
        return not self._present

    def get(self) -> Any:
        if not self._present:
            raise EmptySequenceError("No value present")
        return self._value

    def or_else(self, default: Any) -> Any:
        return self._value if self._present else default

    def or_else_get(self, supplier: Callable[[], Any]) -> Any:
        return self._value if self._present else supplier()

    def map(self, fn: Callable[[Any], Any]) -> "OptionalResult":
        if not self._present:
            return self
        return OptionalResult.of(fn(self._value))

    def if_present(self, action: Callable[[Any], Any]) -> None:
        if self._present:
            action(self._value)

    def __bool__(self) -> bool:
        return self._present

    def __eq__(self, other) -> bool:
        if not isinstance(other, OptionalResult):
            return NotImplemented
        return self._present == other._present and self._value == other._value

    def __hash__(self):
        return hash((self._present, self._value))

    def __repr__(self) -> str:
        if not self._present:
            return "OptionalResult.empty()"
        return f"OptionalResult.of({self._value!r})"


# ---------- Cancellation ----------

class CancellationToken:
    """Shared cooperative cancellation flag, checked by workers between elements."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError(self.reason or "Pipeline run was cancelled")


# ---------- Run metrics ----------

_metrics_lock = threading.Lock()
_performance_metrics: Dict[str, Any] = {
    "runs": [],
    "total_time_ms": 0.0,
    "run_count": 0,
    "failed_count": 0
}

MAX_RECORDED_RUNS = 100


def record_run(report: Dict[str, Any]) -> None:
    """Record a finished run (an ExecutionReport dump) in the process-wide metrics."""
    with _metrics_lock:
        runs = _performance_metrics["runs"]
        runs.append(report)
        if len(runs) > MAX_RECORDED_RUNS:
            del runs[0]
        _performance_metrics["total_time_ms"] += report.get("elapsed_ms") or 0.0
        _performance_metrics["run_count"] += 1
        if report.get("state") == "failed":
            _performance_metrics["failed_count"] += 1


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all recorded runs"""
    with _metrics_lock:
        count = _performance_metrics["run_count"]
        if count == 0:
            return {
                "total_runs": 0,
                "failed_runs": 0,
                "total_time_ms": 0.0,
                "avg_time_ms": 0.0,
                "recent_runs": []
            }
        return {
            "total_runs": count,
            "failed_runs": _performance_metrics["failed_count"],
            "total_time_ms": _performance_metrics["total_time_ms"],
            "avg_time_ms": _performance_metrics["total_time_ms"] / count,
            "recent_runs": list(_performance_metrics["runs"][-10:])
        }


def clear_performance_metrics() -> None:
    """Clear all recorded run metrics"""
    global _performance_metrics
    with _metrics_lock:
        _performance_metrics = {
            "runs": [],
            "total_time_ms": 0.0,
            "run_count": 0,
            "failed_count": 0
        }
    logger.info("Pipeline run metrics cleared")


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
