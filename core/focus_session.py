#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Focus Session State Machine
Жизненный цикл единственной активной фокус-сессии

Idle -> Running <-> Paused -> Completed | Abandoned

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from core.ledger import TimeLedger
from core.models import (
    FocusSession, FocusTask, OperationResult, ResultCode, SessionState
)
from utils.datetime_utils import now_local, parse_timestamp

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

class FocusSessionMachine:
    """Машина состояний фокус-сессии

    Минуты пишутся в журнал до обновления снимка, поэтому остаток всегда
    можно вывести как план минус записанные в журнал минуты.
    """

    def __init__(self, ledger: TimeLedger, clock: Optional[Clock] = None):
        self.ledger = ledger
        self.clock: Clock = clock or now_local
        self.session: Optional[FocusSession] = None
        self.last_session: Optional[FocusSession] = None

    # ===== PROPERTIES =====

    @property
    def state(self) -> SessionState:
        if self.session is None:
            return SessionState.IDLE
        return self.session.session_state

    @property
    def is_active(self) -> bool:
        return self.session is not None and self.session.is_active

    @property
    def is_exhausted(self) -> bool:
        return self.session is not None and self.session.is_exhausted

    # ===== TRANSITIONS =====

    def start(self, task: FocusTask) -> OperationResult:
        """Запуск сессии, только из Idle"""
        if self.is_active:
            logger.warning(f"Focus session {self.session.id} already active, start rejected")
            return OperationResult.fail(
                ResultCode.ALREADY_ACTIVE,
                "A focus session is already active",
                self.session
            )

        self.session = FocusSession.create(task, self.clock())
        logger.info(f"▶️ Focus session started: {task.title} ({task.planned_duration_minutes} min, {task.skill_name})")
        return OperationResult.ok(self.session)

    def pause(self) -> OperationResult:
        if self.state != SessionState.RUNNING:
            return OperationResult.fail(ResultCode.NOT_ACTIVE, "No running session to pause")

        self.session.paused = True
        self.session.paused_at = self.clock().isoformat()
        self.session.state = SessionState.PAUSED.value
        logger.info(f"⏸️ Focus session {self.session.id} paused")
        return OperationResult.ok(self.session)

    def resume(self) -> OperationResult:
        if self.state != SessionState.PAUSED:
            return OperationResult.fail(ResultCode.NOT_ACTIVE, "No paused session to resume")

        now = self.clock()
        if self.session.paused_at:
            paused_since = parse_timestamp(self.session.paused_at)
            self.session.paused_seconds += max(0.0, (now - paused_since).total_seconds())

        self.session.paused = False
        self.session.paused_at = None
        self.session.state = SessionState.RUNNING.value
        logger.info(f"▶️ Focus session {self.session.id} resumed")
        return OperationResult.ok(self.session)

    def end(self, confirm_complete: bool) -> OperationResult:
        """Завершение: Completed при подтверждении, иначе Abandoned

        Уже начисленные минуты не пересчитываются.
        """
        if not self.is_active:
            return OperationResult.fail(ResultCode.NOT_ACTIVE, "No active session to end")

        session = self.session
        session.state = (SessionState.COMPLETED if confirm_complete else SessionState.ABANDONED).value
        session.paused = False
        session.paused_at = None

        self.last_session = session
        self.session = None
        logger.info(
            f"⏹️ Focus session {session.id} {session.state}: "
            f"{session.ticked_minutes}/{session.task.planned_duration_minutes} min recorded"
        )
        return OperationResult.ok(session)

    # ===== TICKS =====

    def _next_index(self) -> int:
        recorded = self.ledger.recorded_indices(self.session.id)
        index = 0
        while index in recorded:
            index += 1
        return index

    def _apply_minute(self, minute_index: int, when: datetime) -> bool:
        session = self.session
        if minute_index >= session.task.planned_duration_minutes:
            return False

        applied = self.ledger.upsert_focus_minute(
            session.id, session.task.skill_name, minute_index, when
        )
        if applied:
            session.ticked_minutes += 1
            session.remaining_minutes = max(0, session.task.planned_duration_minutes - session.ticked_minutes)
            if session.is_exhausted:
                logger.info(f"⏰ Focus session {session.id} exhausted, awaiting confirmation")
        return applied

    def tick(self, minute_index: Optional[int] = None) -> bool:
        """Одна минута работы

        Повторное применение уже записанной минуты - no-op.

        Returns:
            True если минута начислена
        """
        if self.state != SessionState.RUNNING or self.session.is_exhausted:
            return False

        if minute_index is None:
            minute_index = self._next_index()
        return self._apply_minute(minute_index, self.clock())

    def elapsed_minutes(self, now: Optional[datetime] = None) -> int:
        """Активные минуты по настенным часам (без пауз)"""
        if self.session is None:
            return 0
        now = now or self.clock()
        return int(self.session.active_elapsed_seconds(now) // 60)

    def sync_with_clock(self, now: Optional[datetime] = None) -> int:
        """Досчитать минуты по разнице времени, а не по числу срабатываний таймера

        Returns:
            сколько минут было начислено
        """
        if not self.is_active:
            return 0

        now = now or self.clock()
        session = self.session
        target = min(self.elapsed_minutes(now), session.task.planned_duration_minutes)

        applied = 0
        recorded = self.ledger.recorded_indices(session.id)
        for minute_index in range(target):
            if minute_index in recorded:
                continue
            minute_end = session.started_datetime + timedelta(
                seconds=session.paused_seconds + (minute_index + 1) * 60
            )
            if self._apply_minute(minute_index, min(minute_end, now)):
                applied += 1

        if applied:
            logger.debug(f"Clock sync applied {applied} minutes to session {session.id}")
        return applied

    # ===== RESTORE =====

    def adopt(self, session: FocusSession, now: Optional[datetime] = None) -> FocusSession:
        """Принять сессию из снимка и выровнять её с журналом и часами"""
        if session.session_state.is_terminal:
            self.last_session = session
            self.session = None
            return session

        if session.paused:
            session.state = SessionState.PAUSED.value

        self.session = session
        self.sync_with_clock(now)

        recorded = self.ledger.minutes_for_session(session.id)
        session.ticked_minutes = recorded
        session.remaining_minutes = max(0, session.task.planned_duration_minutes - recorded)
        logger.info(
            f"🔄 Focus session {session.id} restored: {session.remaining_minutes} min remaining, "
            f"{'paused' if session.paused else 'running'}"
        )
        return session
