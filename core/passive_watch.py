#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Passive-Watch Session
Учёт времени просмотра внешнего контента

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from core.ledger import TimeLedger
from core.models import (
    FocusTask, OperationResult, PassiveWatchSession, ResultCode, ValidationError
)
from utils.datetime_utils import now_local, parse_timestamp

logger = logging.getLogger(__name__)

def watched_minutes(start: datetime, end: datetime) -> int:
    """Длительность просмотра в минутах, минимум 1"""
    seconds = (end - start).total_seconds()
    return max(1, int(seconds / 60 + 0.5))

class PassiveWatchTracker:
    """Трекер просмотра: длительность считается один раз при завершении"""

    def __init__(self, ledger: TimeLedger, clock: Optional[Callable[[], datetime]] = None):
        self.ledger = ledger
        self.clock = clock or now_local
        self.session: Optional[PassiveWatchSession] = None

    @property
    def is_active(self) -> bool:
        return self.session is not None

    def start(self, task: FocusTask) -> OperationResult:
        if self.is_active:
            return OperationResult.fail(
                ResultCode.ALREADY_ACTIVE, "A watch session is already active", self.session
            )

        try:
            self.session = PassiveWatchSession.create(task.title, task.skill_name, self.clock())
        except ValidationError as e:
            return OperationResult.fail(ResultCode.INVALID, str(e))

        logger.info(f"📺 Watch session started: {task.title} ({task.skill_name})")
        return OperationResult.ok(self.session)

    def finish(self) -> OperationResult:
        """Завершить просмотр и записать одну запись в журнал"""
        if not self.is_active:
            return OperationResult.fail(ResultCode.NOT_ACTIVE, "No watch session to finish")

        session = self.session
        now = self.clock()
        minutes = watched_minutes(parse_timestamp(session.start_time), now)
        record = self.ledger.append_watch(session.id, session.skill_name, minutes, now)

        self.session = None
        logger.info(f"📺 Watch session {session.id} finished: {minutes} min of {session.skill_name}")
        return OperationResult.ok(record)

    def adopt(self, session: PassiveWatchSession) -> None:
        self.session = session
