"""
Pytest configuration and shared fixtures
"""
import os
import random
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Keep tests away from a developer's .env and local data directory
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["REWARD_TABLES_PATH"] = ""
os.environ["MASTERY_THRESHOLDS_PATH"] = ""

from meta_progression.core.clock import Clock  # noqa: E402
from meta_progression.core.config import Settings  # noqa: E402
from meta_progression.gamification.catalog import RewardCatalog, RewardSampler  # noqa: E402
from meta_progression.gamification.daily_challenges import DailyChallengeScheduler  # noqa: E402
from meta_progression.gamification.engine import ProgressionLedger  # noqa: E402
from meta_progression.services.storage import MemorySlotStore  # noqa: E402


class ManualClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: datetime):
        super().__init__(timezone.utc)
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def store() -> MemorySlotStore:
    return MemorySlotStore()


@pytest.fixture
def catalog() -> RewardCatalog:
    return RewardCatalog.default()


@pytest.fixture
def sampler(catalog, rng) -> RewardSampler:
    return RewardSampler(catalog, rng=rng)


@pytest.fixture
def ledger(store, clock, catalog, rng) -> ProgressionLedger:
    ledger = ProgressionLedger(store, clock, catalog=catalog, rng=rng)
    ledger.initialize()
    return ledger


@pytest.fixture
def challenges(store, clock, rng) -> DailyChallengeScheduler:
    return DailyChallengeScheduler(store, clock, rng=rng)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        REWARD_TABLES_PATH=None,
        MASTERY_THRESHOLDS_PATH=None,
        CHALLENGE_TIMEZONE="",
        CHALLENGE_REFRESH_INTERVAL_SECONDS=3600,
    )


@pytest.fixture
def runtime(test_settings, store, clock, rng):
    from meta_progression.runtime import MetaProgressionRuntime

    runtime = MetaProgressionRuntime(test_settings, store=store, clock=clock, rng=rng)
    runtime.initialize()
    return runtime


@pytest.fixture
async def client(runtime) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing"""
    from meta_progression.main import create_app

    app = create_app(runtime)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client
