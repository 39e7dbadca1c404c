"""
Pydantic models for the collection pipeline engine.

Engine configuration, run reports, the record types the demonstrations
feed through pipelines, and the request/response payloads of the HTTP
surface.
"""

import os
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum

import psutil


class ExecutionMode(str, Enum):
    """How a terminal operation traverses the source."""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class ExecutionState(str, Enum):
    """Run lifecycle states."""
    BUILT = "built"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class PartitionStatus(str, Enum):
    """Outcome of one worker partition."""
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


# ---------- Configuration ----------

def _hardware_parallelism() -> int:
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1


class EngineSettings(BaseModel):
    """Engine configuration, overridable through PIPELINE_* environment variables."""
    default_workers: int = Field(
        default_factory=_hardware_parallelism,
        ge=1,
        description="Worker count used by parallel() when none is given"
    )
    min_partition_size: int = Field(
        default=1,
        ge=1,
        description="Smallest number of elements handed to a single worker"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level for the engine loggers"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the level is one logging understands."""
        level = str(v).strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {v}")
        return level

    @classmethod
    def from_env(cls) -> "EngineSettings":
        values: Dict[str, Any] = {}
        if os.environ.get('PIPELINE_WORKERS'):
            values['default_workers'] = os.environ['PIPELINE_WORKERS']
        if os.environ.get('PIPELINE_MIN_PARTITION_SIZE'):
            values['min_partition_size'] = os.environ['PIPELINE_MIN_PARTITION_SIZE']
        if os.environ.get('PIPELINE_LOG_LEVEL'):
            values['log_level'] = os.environ['PIPELINE_LOG_LEVEL']
        return cls(**values)


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None


# ---------- Run reports ----------

class PartitionReport(BaseModel):
    """Per-worker outcome of a parallel segment."""
    index: int = Field(..., description="Partition index (chunk order)")
    status: PartitionStatus = Field(..., description="Partition outcome")
    elements_processed: int = Field(default=0, description="Source elements pulled by this worker")
    error: Optional[str] = Field(None, description="Failure description if the partition failed")


class ExecutionReport(BaseModel):
    """Summary of one terminal run."""
    operation: str = Field(..., description="Terminal operation name")
    mode: ExecutionMode = Field(..., description="Execution mode")
    state: ExecutionState = Field(default=ExecutionState.BUILT, description="Run state")
    worker_count: int = Field(default=1, description="Workers used")
    partitions: List[PartitionReport] = Field(default_factory=list, description="Per-partition outcomes")
    elapsed_ms: Optional[float] = Field(None, description="Wall time of the run")
    error: Optional[str] = Field(None, description="Error surfaced to the caller, if any")


# ---------- Records ----------

class Student(BaseModel):
    """Student record. Frozen: derive modified copies with model_copy(update=...)."""
    model_config = ConfigDict(frozen=True)

    name: str
    age: int = Field(..., ge=0)
    major: str
    gpa: float = Field(..., ge=0.0)
    gender: str


class Course(BaseModel):
    """Course record. Equality follows course name and instructor."""
    model_config = ConfigDict(frozen=True)

    course_name: str
    instructor: str
    credit: int = Field(..., ge=0)
    score: float
    category: str

    def __eq__(self, other):
        if not isinstance(other, Course):
            return NotImplemented
        return (self.course_name, self.instructor) == (other.course_name, other.instructor)

    def __hash__(self):
        return hash((self.course_name, self.instructor))


# ---------- HTTP payloads ----------

class DemoInfo(BaseModel):
    """Catalogue entry for a demonstration."""
    name: str = Field(..., description="Demonstration identifier")
    category: str = Field(..., description="basic | intermediate | advanced | comprehensive")
    description: str = Field(..., description="What the demonstration shows")


class DemoListResponse(BaseModel):
    """All registered demonstrations."""
    total: int = Field(..., description="Number of demonstrations")
    demos: List[DemoInfo] = Field(..., description="Catalogue entries")


class DemoRunResponse(BaseModel):
    """Result of running one demonstration."""
    ok: bool = Field(..., description="Whether the demonstration completed")
    demo: DemoInfo = Field(..., description="The demonstration that ran")
    result: Dict[str, Any] = Field(..., description="JSON-ready demonstration output")
    processing_time_ms: float = Field(..., description="Wall time in milliseconds")


class MetricsResponse(BaseModel):
    """Process-wide pipeline run metrics."""
    total_runs: int
    failed_runs: int
    total_time_ms: float
    avg_time_ms: float
    recent_runs: List[Dict[str, Any]] = Field(default_factory=list)


class HealthCheckResponse(BaseModel):
    """Service health and effective engine settings."""
    status: str = Field(..., description="Service status")
    timestamp: str = Field(..., description="Response timestamp")
    settings: EngineSettings = Field(..., description="Effective engine settings")
    cpu_percent: Optional[float] = Field(None, description="Host CPU usage")
    memory_mb: Optional[float] = Field(None, description="Process resident memory")


class ErrorResponse(BaseModel):
    """Error envelope."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Machine-readable error code")
    detail: Optional[str] = Field(None, description="Detailed error information")
    timestamp: str = Field(..., description="Error timestamp")
