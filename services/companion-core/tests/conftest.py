"""Shared fixtures: a deterministic clock, a recording sleep and workspaces."""

import pathlib
import sys
from datetime import datetime, timedelta, timezone

import httpx
import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from headspace.config import Settings  # noqa: E402
from headspace.store.adapter import MemoryStore  # noqa: E402
from headspace.workspace import Workspace  # noqa: E402


class StepClock:
    """Each call returns a timestamp one second after the previous one."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> str:
        self.now += timedelta(seconds=1)
        return self.now.isoformat()


class RecordingSleep:
    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return Settings(api_base_url="http://api.test", retry_attempts=3, retry_base_delay_seconds=1.0, store_path=None)


@pytest.fixture
def make_workspace(settings, clock, sleep):
    def _make(handler=None, store=None, bus=None):
        transport = httpx.MockTransport(handler) if handler else None
        return Workspace(settings=settings, store=store or MemoryStore(), bus=bus, transport=transport, sleep=sleep, clock=clock)

    return _make
