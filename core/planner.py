#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Planner Controller
Единый контроллер: расписание, предложения, сессии, журнал и сохранение

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from config import config
from core import analytics
from core.continuity import RestoreReport, accrual_update, restore_session
from core.focus_session import FocusSessionMachine
from core.ledger import TimeLedger
from core.models import (
    FocusTask, FreeSlot, OperationResult, ResultCode, Skill, ValidationError
)
from core.normalizer import DayWindow, RawInterval
from core.passive_watch import PassiveWatchTracker
from core.slot_catalog import FreeSlotCatalog
from core.snapshot_store import SnapshotStore, SnapshotStoreError
from services.extraction_service import ExtractionService
from services.suggestion_service import SuggestionRequestManager, SuggestionService
from services.timer_service import TimerService
from utils.datetime_utils import current_weekday, local_date, now_local

logger = logging.getLogger(__name__)

FOCUS_TIMER = "focus_tick"

@dataclass
class PlannerState:
    """Всё состояние планировщика в одном явном объекте"""
    catalog: FreeSlotCatalog
    ledger: TimeLedger
    focus: FocusSessionMachine
    watch: PassiveWatchTracker
    profile_name: Optional[str] = None
    skills: List[Skill] = field(default_factory=list)
    selected_slot_id: Optional[str] = None
    suggestions: List[FocusTask] = field(default_factory=list)
    status_message: str = ""
    warnings: List[str] = field(default_factory=list)
    persisted: bool = True

class PlannerController:
    """Контроллер планировщика

    Единственный писатель состояния. Каждое изменение сразу сливается в
    снимок; журнал и активная сессия уходят одним обновлением.
    """

    def __init__(self, store: Optional[SnapshotStore] = None,
                 suggestion_service: Optional[SuggestionService] = None,
                 extraction_service: Optional[ExtractionService] = None,
                 timer_service: Optional[TimerService] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 window: Optional[DayWindow] = None,
                 default_day: Optional[int] = None):
        self.clock = clock or now_local
        self.tz_name = config.schedule.timezone
        self.store = store or SnapshotStore()
        self.suggestion_service = suggestion_service or SuggestionService()
        self.suggestions = SuggestionRequestManager(self.suggestion_service)
        self.extraction_service = extraction_service or ExtractionService()
        self.timers = timer_service or TimerService()

        ledger = TimeLedger(tz_name=self.tz_name)
        self.state = PlannerState(
            catalog=FreeSlotCatalog(window, current_weekday(self.tz_name) if default_day is None else default_day),
            ledger=ledger,
            focus=FocusSessionMachine(ledger, self.clock),
            watch=PassiveWatchTracker(ledger, self.clock)
        )

    # ===== PERSISTENCE =====

    def _persist(self, update: Dict[str, Any]) -> bool:
        try:
            saved = self.store.save_snapshot(update)
        except SnapshotStoreError as e:
            logger.error(f"Snapshot update rejected: {e}")
            saved = False

        self.state.persisted = saved
        if not saved:
            self.state.status_message = "Changes are kept in memory only, will retry on next save"
        return saved

    def _commit(self, result: OperationResult, update: Dict[str, Any]) -> OperationResult:
        """Сохранить после успешной операции; неудачная запись не откатывает операцию"""
        if result.success and not self._persist(update):
            result.code = ResultCode.PERSISTENCE_FAILED
            result.message = result.message or "Saved in memory only"
        return result

    def _schedule_update(self) -> Dict[str, Any]:
        return self.state.catalog.to_snapshot()

    def _accrual_update(self) -> Dict[str, Any]:
        return accrual_update(self.state.ledger, self.state.focus, self.state.watch)

    def _profile_update(self) -> Dict[str, Any]:
        return {"profile": {
            "name": self.state.profile_name,
            "skills": [skill.to_dict() for skill in self.state.skills]
        }}

    # ===== RESTORE =====

    def restore(self) -> RestoreReport:
        """Загрузка снимка и восстановление активной сессии"""
        snapshot = self.store.load_snapshot()
        state = self.state

        profile = snapshot.get("profile") or {}
        state.profile_name = profile.get("name")
        state.skills = []
        for raw_skill in profile.get("skills", []):
            try:
                state.skills.append(Skill.from_dict(raw_skill))
            except (KeyError, ValidationError) as e:
                logger.warning(f"Skipping invalid skill {raw_skill!r}: {e}")

        state.warnings = state.catalog.load_snapshot(snapshot.get("schedule", []))

        ledger = TimeLedger.from_list(snapshot.get("ledger", []), self.tz_name)
        state.ledger = ledger
        state.focus = FocusSessionMachine(ledger, self.clock)
        state.watch = PassiveWatchTracker(ledger, self.clock)

        report = restore_session(snapshot, state.focus, state.watch, self.clock())
        if report.error:
            state.status_message = "Could not restore the previous session"
        self._persist(self._accrual_update())

        if state.focus.is_active and not state.focus.session.paused and not state.focus.is_exhausted:
            self._start_ticker()

        logger.info(f"🔄 Planner restored: {report.to_dict()}")
        return report

    async def start(self) -> RestoreReport:
        """Восстановление и запуск фонового резервного копирования"""
        report = self.restore()
        self.store.start_scheduler()
        return report

    # ===== PROFILE =====

    def set_profile(self, name: Optional[str], skills: Iterable[Dict[str, Any]]) -> OperationResult:
        try:
            parsed = [Skill.from_dict(skill) for skill in skills]
        except (KeyError, ValidationError) as e:
            return OperationResult.fail(ResultCode.INVALID, str(e))

        self.state.profile_name = name
        self.state.skills = parsed
        return self._commit(OperationResult.ok(parsed), self._profile_update())

    # ===== SCHEDULE =====

    def set_schedule(self, raw_intervals: Iterable[RawInterval]) -> OperationResult:
        """Полная замена расписания; невалидные записи отбрасываются с предупреждениями"""
        warnings = self.state.catalog.replace_all(raw_intervals)
        self.state.warnings = warnings
        result = OperationResult.ok(self.state.catalog.all_slots(), "; ".join(warnings))
        return self._commit(result, self._schedule_update())

    def add_interval(self, raw: RawInterval) -> OperationResult:
        try:
            interval = self.state.catalog.add_interval(raw)
        except ValidationError as e:
            return OperationResult.fail(ResultCode.INVALID, str(e))
        return self._commit(OperationResult.ok(interval), self._schedule_update())

    def update_interval(self, interval_id: str, changes: Dict[str, Any]) -> OperationResult:
        try:
            interval = self.state.catalog.update_interval(interval_id, changes)
        except KeyError:
            return OperationResult.fail(ResultCode.NOT_FOUND, f"Interval {interval_id} not found")
        except ValidationError as e:
            return OperationResult.fail(ResultCode.INVALID, str(e))
        return self._commit(OperationResult.ok(interval), self._schedule_update())

    def remove_interval(self, interval_id: str) -> OperationResult:
        if not self.state.catalog.remove_interval(interval_id):
            return OperationResult.fail(ResultCode.NOT_FOUND, f"Interval {interval_id} not found")
        return self._commit(OperationResult.ok(), self._schedule_update())

    async def import_document(self, document: bytes) -> OperationResult:
        """Занятые интервалы из документа добавляются к расписанию"""
        intervals, warnings = await self.extraction_service.extract(document)
        self.state.warnings = list(warnings)

        if not intervals:
            self.state.status_message = "No timetable entries found in the document"
            return OperationResult.fail(ResultCode.PROVIDER_FAILED, "; ".join(warnings), warnings)

        self.state.warnings.extend(self.state.catalog.add_intervals(intervals))
        result = OperationResult.ok(intervals, f"{len(intervals)} busy intervals imported")
        return self._commit(result, self._schedule_update())

    def slots_for(self, day: int) -> List[FreeSlot]:
        return self.state.catalog.slots_for(day)

    # ===== SUGGESTIONS =====

    async def request_suggestions(self, slot_id: str) -> OperationResult:
        slot = self.state.catalog.find_slot(slot_id)
        if slot is None:
            return OperationResult.fail(ResultCode.NOT_FOUND, f"Free slot {slot_id} not found")

        self.state.selected_slot_id = slot_id
        result = await self.suggestions.request(slot, self.state.skills)

        if result.stale:
            return OperationResult.fail(ResultCode.NOT_ACTIVE, "Suggestion request superseded")

        self.state.suggestions = result.tasks
        if result.is_empty:
            self.state.status_message = result.status
            return OperationResult.fail(ResultCode.PROVIDER_FAILED, result.status)
        return OperationResult.ok(result.tasks)

    def cancel_suggestions(self) -> None:
        """Уход со страницы предложений"""
        self.suggestions.cancel()
        self.state.selected_slot_id = None
        self.state.suggestions = []

    # ===== FOCUS SESSION =====

    def _start_ticker(self) -> None:
        self.timers.start_timer(FOCUS_TIMER, config.focus.tick_interval_seconds, self.tick)

    def _stop_ticker(self) -> None:
        self.timers.stop_timer(FOCUS_TIMER)

    def start_focus(self, task: FocusTask) -> OperationResult:
        if self.state.watch.is_active:
            return OperationResult.fail(ResultCode.ALREADY_ACTIVE, "Finish the watch session first")

        result = self.state.focus.start(task)
        if not result.success:
            return result

        self._start_ticker()
        return self._commit(result, self._accrual_update())

    def pause_focus(self) -> OperationResult:
        self.state.focus.sync_with_clock()
        result = self.state.focus.pause()
        if not result.success:
            return result

        self._stop_ticker()
        return self._commit(result, self._accrual_update())

    def resume_focus(self) -> OperationResult:
        result = self.state.focus.resume()
        if not result.success:
            return result

        self._start_ticker()
        return self._commit(result, self._accrual_update())

    def tick(self) -> int:
        """Обработчик таймера: начисляет минуты по часам

        Returns:
            сколько минут начислено
        """
        focus = self.state.focus
        applied = focus.sync_with_clock()
        if applied:
            self._persist(self._accrual_update())

        if focus.is_exhausted:
            self._stop_ticker()
            self.state.status_message = "Time's up! Mark the task complete or abandon it."
        return applied

    def end_focus(self, confirm_complete: bool) -> OperationResult:
        self.state.focus.sync_with_clock()
        result = self.state.focus.end(confirm_complete)
        if not result.success:
            return result

        self._stop_ticker()
        return self._commit(result, self._accrual_update())

    # ===== PASSIVE WATCH =====

    def start_watch(self, task: FocusTask) -> OperationResult:
        if self.state.focus.is_active:
            return OperationResult.fail(ResultCode.ALREADY_ACTIVE, "Finish the focus session first")

        result = self.state.watch.start(task)
        if not result.success:
            return result
        return self._commit(result, self._accrual_update())

    def finish_watch(self) -> OperationResult:
        result = self.state.watch.finish()
        if not result.success:
            return result
        return self._commit(result, self._accrual_update())

    # ===== ANALYTICS =====

    def today(self) -> date:
        return local_date(self.clock(), self.tz_name)

    def summary(self, today: Optional[date] = None) -> Dict[str, Any]:
        return analytics.build_summary(
            self.state.ledger.records,
            today or self.today(),
            skill_names=[skill.name for skill in self.state.skills] or None,
            goal_minutes=config.focus.skill_goal_minutes,
            mvp_window_days=config.focus.mvp_window_days,
            score_window_days=config.focus.score_window_days
        )

    # ===== SHUTDOWN =====

    async def shutdown(self) -> None:
        """Остановка таймеров и финальная запись"""
        self.suggestions.cancel()
        await self.timers.cleanup_all_timers()
        self.state.focus.sync_with_clock()
        self._persist(self._accrual_update())
        self.store.shutdown()
        logger.info("Planner controller shutdown completed")

__all__ = ['FOCUS_TIMER', 'PlannerState', 'PlannerController']
