import pytest
import sys
from pathlib import Path
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))

from app import app
from demos import create_sample_courses, create_sample_students
from models import EngineSettings, reset_settings
from utils import clear_performance_metrics


@pytest.fixture(autouse=True)
def clean_engine_state(monkeypatch):
    for var in ("PIPELINE_WORKERS", "PIPELINE_MIN_PARTITION_SIZE", "PIPELINE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    clear_performance_metrics()
    yield
    reset_settings()
    clear_performance_metrics()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def settings():
    return EngineSettings(default_workers=4, min_partition_size=1)


@pytest.fixture
def students():
    return create_sample_students()


@pytest.fixture
def courses():
    return create_sample_courses()
