#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Continuity Bridge
Снимок и восстановление активной сессии между перезапусками процесса

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core.focus_session import FocusSessionMachine
from core.ledger import TimeLedger
from core.models import FocusSession, PassiveWatchSession, ValidationError
from core.passive_watch import PassiveWatchTracker

logger = logging.getLogger(__name__)

@dataclass
class RestoreReport:
    """Что удалось восстановить"""
    kind: Optional[str] = None
    session_id: Optional[str] = None
    remaining_minutes: Optional[int] = None
    paused: bool = False
    minutes_credited: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'session_id': self.session_id,
            'remaining_minutes': self.remaining_minutes,
            'paused': self.paused,
            'minutes_credited': self.minutes_credited,
            'error': self.error
        }

def session_update(focus: FocusSessionMachine, watch: PassiveWatchTracker) -> Dict[str, Any]:
    """Частичное обновление снимка для активной сессии"""
    if focus.is_active:
        return {"active_session": {"kind": "focus", "data": focus.session.to_dict()}}
    if watch.is_active:
        return {"active_session": {"kind": "watch", "data": watch.session.to_dict()}}
    return {"active_session": None}

def accrual_update(ledger: TimeLedger, focus: FocusSessionMachine,
                   watch: PassiveWatchTracker) -> Dict[str, Any]:
    """Журнал и сессия одним обновлением: журнал никогда не отстаёт от снимка сессии"""
    update = {"ledger": ledger.to_list()}
    update.update(session_update(focus, watch))
    return update

def restore_session(snapshot: Dict[str, Any], focus: FocusSessionMachine,
                    watch: PassiveWatchTracker, now: Optional[datetime] = None) -> RestoreReport:
    """Восстановить активную сессию из снимка

    Остаток фокус-сессии не берётся из снимка как есть: минуты досчитываются
    по настенным часам от started_at, а остаток выводится из журнала.
    """
    active = snapshot.get("active_session")
    if not active:
        return RestoreReport()

    kind = active.get("kind")
    data = active.get("data") or {}

    try:
        if kind == "focus":
            session = FocusSession.from_dict(data)
            before = focus.ledger.minutes_for_session(session.id)
            focus.adopt(session, now)
            after = focus.ledger.minutes_for_session(session.id)
            if not focus.is_active:
                return RestoreReport(kind=kind, session_id=session.id)
            return RestoreReport(
                kind=kind,
                session_id=session.id,
                remaining_minutes=session.remaining_minutes,
                paused=session.paused,
                minutes_credited=after - before
            )

        if kind == "watch":
            session = PassiveWatchSession.from_dict(data)
            watch.adopt(session)
            logger.info(f"🔄 Watch session {session.id} restored")
            return RestoreReport(kind=kind, session_id=session.id)

    except (KeyError, TypeError, ValueError, ValidationError) as e:
        logger.error(f"Failed to restore active session: {e}")
        return RestoreReport(kind=kind, error=str(e))

    logger.warning(f"Unknown active session kind in snapshot: {kind!r}")
    return RestoreReport(kind=kind, error="unknown session kind")
