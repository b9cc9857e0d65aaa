#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Time Accrual Ledger
Журнал накопленных минут: только добавление и дополнение записей

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from core.models import CompletedSessionRecord, SessionType, ValidationError
from utils.datetime_utils import local_date

logger = logging.getLogger(__name__)

class TimeLedger:
    """Журнал завершённых минут

    Записи фокус-сессий ключуются по (session_id, навык, локальная дата) и
    растут по одной минуте за тик. Повтор того же (session_id, minute_index)
    ничего не меняет - это нужно для повторного применения тиков после сбоя.
    """

    def __init__(self, records: Optional[List[CompletedSessionRecord]] = None,
                 tz_name: Optional[str] = None):
        self.tz_name = tz_name
        self._records: List[CompletedSessionRecord] = []
        self._by_key: Dict[Tuple[str, str, str], CompletedSessionRecord] = {}
        self._applied: Set[Tuple[str, int]] = set()
        self._lock = threading.RLock()

        for record in records or []:
            self._index(record)

    # ===== INTERNALS =====

    def _index(self, record: CompletedSessionRecord) -> None:
        self._records.append(record)
        if record.session_type == SessionType.FOCUS.value:
            self._by_key[(record.session_id, record.skill_name, record.date)] = record
            for minute_index in record.minute_indices:
                self._applied.add((record.session_id, minute_index))

    # ===== WRITES =====

    def upsert_focus_minute(self, session_id: str, skill_name: str,
                            minute_index: int, when: datetime) -> bool:
        """Добавить одну минуту фокус-сессии

        Returns:
            True если минута учтена, False если она уже была записана
        """
        if minute_index < 0:
            raise ValidationError("minute_index не может быть отрицательным")

        with self._lock:
            dedupe_key = (session_id, minute_index)
            if dedupe_key in self._applied:
                logger.debug(f"Minute {minute_index} of session {session_id} already recorded")
                return False

            day = local_date(when, self.tz_name).isoformat()
            record = self._by_key.get((session_id, skill_name, day))

            if record is None:
                record = CompletedSessionRecord(
                    id=str(uuid.uuid4()),
                    session_id=session_id,
                    skill_name=skill_name,
                    duration_minutes=0,
                    timestamp=when.isoformat(),
                    date=day,
                    session_type=SessionType.FOCUS.value
                )
                self._index(record)

            record.duration_minutes += 1
            record.minute_indices.append(minute_index)
            record.timestamp = when.isoformat()
            self._applied.add(dedupe_key)
            return True

    def append_watch(self, session_id: str, skill_name: str,
                     duration_minutes: int, when: datetime) -> CompletedSessionRecord:
        """Добавить запись просмотра, посчитанную один раз в конце"""
        record = CompletedSessionRecord(
            id=str(uuid.uuid4()),
            session_id=session_id,
            skill_name=skill_name,
            duration_minutes=max(1, duration_minutes),
            timestamp=when.isoformat(),
            date=local_date(when, self.tz_name).isoformat(),
            session_type=SessionType.WATCH.value
        )
        with self._lock:
            self._index(record)
        return record

    # ===== READS =====

    @property
    def records(self) -> List[CompletedSessionRecord]:
        with self._lock:
            return list(self._records)

    def minutes_for_session(self, session_id: str) -> int:
        with self._lock:
            return sum(r.duration_minutes for r in self._records if r.session_id == session_id)

    def recorded_indices(self, session_id: str) -> Set[int]:
        with self._lock:
            return {index for sid, index in self._applied if sid == session_id}

    def __len__(self) -> int:
        return len(self._records)

    # ===== SERIALIZATION =====

    def to_list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [record.to_dict() for record in self._records]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]], tz_name: Optional[str] = None) -> "TimeLedger":
        records = []
        for item in data or []:
            try:
                records.append(CompletedSessionRecord.from_dict(item))
            except (ValidationError, TypeError, KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed ledger record: {e}")
        return cls(records, tz_name=tz_name)
