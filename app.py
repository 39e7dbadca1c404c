"""
Collection Pipeline Demo Service

A thin FastAPI surface over the lazy collection pipeline engine.
Features:
- Demonstration catalogue (basic, intermediate, advanced, comprehensive)
- Run any demonstration sequentially or on a worker pool
- Process-wide pipeline run metrics
- Health check with effective engine settings
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional
from contextlib import asynccontextmanager

import psutil
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from demos import CATEGORIES, DemoNotFoundError, get_demo_info, list_demos, run_demo
from models import (
    DemoListResponse,
    DemoRunResponse,
    ErrorResponse,
    HealthCheckResponse,
    MetricsResponse,
    get_settings
)
from utils import (
    PipelineError,
    clear_performance_metrics,
    elapsed_ms,
    get_performance_summary,
    setup_logging
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(f"Starting pipeline demo service (default workers: {settings.default_workers})")
    yield
    logger.info("Pipeline demo service stopped")


app = FastAPI(
    title="Collection Pipeline Engine",
    description="Lazy, chainable collection pipelines with sequential and parallel execution",
    version="1.0.0",
    lifespan=lifespan
)


def _error_response(status_code: int, error: str, error_code: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            error_code=error_code,
            detail=detail,
            timestamp=datetime.now().isoformat()
        ).model_dump()
    )


@app.exception_handler(DemoNotFoundError)
async def demo_not_found_handler(request: Request, exc: DemoNotFoundError):
    return _error_response(404, str(exc), "DEMO_NOT_FOUND", f"Requested: {exc.name}")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.error(f"Pipeline error on {request.url.path}: {exc}")
    cause = exc.__cause__
    return _error_response(
        422,
        str(exc),
        type(exc).__name__,
        f"{type(cause).__name__}: {cause}" if cause is not None else None
    )


@app.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint"""
    try:
        cpu_percent = psutil.cpu_percent(interval=None)
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
    except psutil.Error as e:
        logger.warning(f"Could not read process metrics: {e}")
        cpu_percent, memory_mb = None, None

    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        settings=get_settings(),
        cpu_percent=cpu_percent,
        memory_mb=memory_mb
    )


@app.get("/demos", response_model=DemoListResponse)
async def get_demos(
    category: Optional[str] = Query(None, description="Filter by demonstration category")
) -> DemoListResponse:
    """List registered demonstrations"""
    if category is not None and category not in CATEGORIES:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown category '{category}'. Expected one of: {', '.join(CATEGORIES)}"
        )
    demos = list_demos(category)
    return DemoListResponse(total=len(demos), demos=demos)


@app.get("/demos/{name}", response_model=DemoRunResponse)
def run_demo_endpoint(
    name: str,
    workers: Optional[int] = Query(None, ge=1, le=64, description="Run on a worker pool of this size")
) -> DemoRunResponse:
    """
    Run one demonstration and return its output.
    Parallel-capable demonstrations use the worker pool when ``workers`` is set.
    """
    info = get_demo_info(name)
    start_time = time.perf_counter()
    result = run_demo(name, workers=workers)

    return DemoRunResponse(
        ok=True,
        demo=info,
        result=result,
        processing_time_ms=elapsed_ms(start_time)
    )


@app.get("/metrics", response_model=MetricsResponse)
async def get_metrics() -> MetricsResponse:
    """Get pipeline run metrics"""
    return MetricsResponse(**get_performance_summary())


@app.delete("/metrics")
async def clear_metrics() -> Dict[str, Any]:
    """Clear pipeline run metrics"""
    clear_performance_metrics()
    return {"message": "Pipeline run metrics cleared", "timestamp": datetime.now().isoformat()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
