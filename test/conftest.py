from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from core.change_bus import ChangeBus  # noqa: E402
from core.session import AcquisitionSession  # noqa: E402
from test.fixtures.fakes import EventRecorder, FakeClock, ManualScheduler  # noqa: E402


@pytest.fixture
def bus() -> ChangeBus:
    return ChangeBus()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def session(clock: FakeClock) -> AcquisitionSession:
    return AcquisitionSession.create(clock=clock)


@pytest.fixture
def recorder(session: AcquisitionSession) -> EventRecorder:
    return EventRecorder(session.bus)
