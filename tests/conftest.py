"""Shared test fixtures for SchedWise Core tests.

This module provides common fixtures used across all test modules:
- A controllable clock (all session code takes an injected clock)
- Isolated snapshot store in a temporary directory
- Sample skills and focus tasks
- Fake suggestion/extraction providers and a recording timer service

Usage:
    def test_something(clock, focus_machine):
        clock.advance(minutes=5)
        ...
"""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import pytz

from core.focus_session import FocusSessionMachine
from core.ledger import TimeLedger
from core.models import BusyInterval, FocusTask, FreeSlot, Skill
from core.normalizer import DayWindow
from core.passive_watch import PassiveWatchTracker
from core.planner import PlannerController
from core.snapshot_store import SnapshotStore
from services.timer_service import TimerService


# ─────────────────────────────────────────────────────────────────────────────
# Clock
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


# Monday 2025-07-07 09:00 UTC
START = datetime(2025, 7, 7, 9, 0, tzinfo=pytz.utc)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def window() -> DayWindow:
    """Default 06:00-22:00 day window."""
    return DayWindow(6 * 60, 22 * 60)


@pytest.fixture
def ledger() -> TimeLedger:
    return TimeLedger(tz_name="UTC")


@pytest.fixture
def focus_machine(ledger: TimeLedger, clock: FakeClock) -> FocusSessionMachine:
    return FocusSessionMachine(ledger, clock)


@pytest.fixture
def watch_tracker(ledger: TimeLedger, clock: FakeClock) -> PassiveWatchTracker:
    return PassiveWatchTracker(ledger, clock)


@pytest.fixture
def sample_task() -> FocusTask:
    """25-minute practice task."""
    return FocusTask(
        title="Solve 5 dynamic programming problems",
        skill_name="Algorithms",
        planned_duration_minutes=25,
        kind="light",
    )


@pytest.fixture
def video_task() -> FocusTask:
    return FocusTask(
        title="Lecture: Linear Algebra 3",
        skill_name="Math",
        planned_duration_minutes=45,
        kind="practice",
    )


@pytest.fixture
def skills() -> List[Skill]:
    return [
        Skill(name="Writing", category="Language", priority="Low"),
        Skill(name="Algorithms", category="Computer Science", priority="High"),
        Skill(name="Math", category="Science", priority="Medium"),
    ]


@pytest.fixture
def free_slot() -> FreeSlot:
    return FreeSlot.between(0, 10 * 60, 10 * 60 + 45)


# ─────────────────────────────────────────────────────────────────────────────
# Storage Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "planner_snapshot.json"


@pytest.fixture
def temp_store(snapshot_path: Path, tmp_path: Path) -> SnapshotStore:
    """Snapshot store isolated in tmp_path with 3 backups max."""
    return SnapshotStore(path=snapshot_path, backup_dir=tmp_path / "backups", max_backups=3)


# ─────────────────────────────────────────────────────────────────────────────
# Fake Providers
# ─────────────────────────────────────────────────────────────────────────────


class FakeSuggestionService:
    """Suggestion provider whose responses are released per slot by the test."""

    def __init__(self):
        self.calls: List[str] = []
        self.responses: Dict[str, List[FocusTask]] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def gate(self, slot_id: str) -> asyncio.Event:
        return self.gates.setdefault(slot_id, asyncio.Event())

    async def get_suggestions(self, slot: FreeSlot, skills: List[Skill]) -> List[FocusTask]:
        self.calls.append(slot.id)
        if slot.id in self.gates:
            await self.gates[slot.id].wait()
        return list(self.responses.get(slot.id, []))


class FakeExtractionService:
    def __init__(self, intervals: Optional[List[BusyInterval]] = None,
                 warnings: Optional[List[str]] = None):
        self.result: Tuple[List[BusyInterval], List[str]] = (intervals or [], warnings or [])

    async def extract(self, document: bytes):
        return self.result


class RecordingTimerService(TimerService):
    """Timer service that records start/stop calls instead of scheduling tasks."""

    def __init__(self):
        super().__init__()
        self.started: List[str] = []
        self.running: Dict[str, bool] = {}

    def start_timer(self, name, interval_seconds, callback) -> bool:
        self.started.append(name)
        self.running[name] = True
        return True

    def stop_timer(self, name) -> bool:
        return self.running.pop(name, None) is not None

    def is_timer_active(self, name) -> bool:
        return self.running.get(name, False)


@pytest.fixture
def fake_suggestions() -> FakeSuggestionService:
    return FakeSuggestionService()


@pytest.fixture
def fake_extraction() -> FakeExtractionService:
    return FakeExtractionService()


@pytest.fixture
def timers() -> RecordingTimerService:
    return RecordingTimerService()


@pytest.fixture
def make_controller(temp_store, fake_suggestions, fake_extraction, timers, clock, window):
    """Factory for controllers sharing the same store (simulates process restarts)."""

    def _make(store: Optional[SnapshotStore] = None) -> PlannerController:
        return PlannerController(
            store=store or temp_store,
            suggestion_service=fake_suggestions,
            extraction_service=fake_extraction,
            timer_service=timers,
            clock=clock,
            window=window,
            default_day=0,
        )

    return _make


@pytest.fixture
def controller(make_controller) -> PlannerController:
    return make_controller()
