"""
Shared fixtures: an engine wired under a temporary data directory with a
controllable clock.
"""

import os
import tempfile
from datetime import timedelta

import pytest

from recommendation_service import build_engine, default_engine_config
from recommendation_service.models import utc_now

# Keep the module-level app in app.main away from the working tree
os.environ.setdefault("ENGINE_DATA_DIR", tempfile.mkdtemp(prefix="engine-test-data-"))


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(utc_now().replace(second=0, microsecond=0))


@pytest.fixture
def engine_config():
    return default_engine_config()


@pytest.fixture
def engine(tmp_path, clock, engine_config):
    engine = build_engine(engine_config, tmp_path / "data", admin_user_ids=("admin",), clock=clock)
    yield engine
    engine.shutdown()
