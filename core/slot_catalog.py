#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Free-Slot Catalog
Хранит занятые интервалы и упорядоченные свободные окна по дням

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from core.models import BusyInterval, FreeSlot, ValidationError
from core.normalizer import DayWindow, RawInterval, coerce_interval, normalize

logger = logging.getLogger(__name__)

# Ключи начала/конца, которые перекрывают сохранённые минуты при изменении
BOUND_ALIASES = {"from": "from_minute", "start": "from_minute", "to": "to_minute", "end": "to_minute"}

class FreeSlotCatalog:
    """Каталог свободных окон

    Каталог владеет занятыми интервалами: любое изменение расписания
    вызывает полный пересчёт слотов.
    """

    def __init__(self, window: Optional[DayWindow] = None, default_day: Optional[int] = None):
        self.window = window or DayWindow.from_config()
        self.default_day = default_day
        self._intervals: Dict[str, BusyInterval] = {}
        self._slots: Dict[int, List[FreeSlot]] = {}
        self.warnings: List[str] = []

    # ===== PROPERTIES =====

    @property
    def intervals(self) -> List[BusyInterval]:
        return list(self._intervals.values())

    @property
    def days(self) -> List[int]:
        return sorted(self._slots.keys())

    # ===== MUTATIONS =====

    def replace_all(self, raw_intervals: Iterable[RawInterval]) -> List[str]:
        """Полная замена расписания, возвращает предупреждения"""
        result = normalize(raw_intervals, self.window, default_day=self.default_day)
        self._intervals = {}
        warnings = list(result.warnings)
        for day_intervals in result.busy.values():
            for interval in day_intervals:
                if interval.id in self._intervals:
                    message = f"Duplicate interval id {interval.id}, assigned a new one"
                    logger.warning(message)
                    warnings.append(message)
                    interval = self._with_fresh_id(interval)
                self._intervals[interval.id] = interval
        self._slots = result.slots
        self.warnings = warnings
        logger.info(f"Schedule replaced: {len(self._intervals)} busy intervals, {len(self.warnings)} warnings")
        return self.warnings

    def add_intervals(self, raw_intervals: Iterable[RawInterval]) -> List[str]:
        """Добавить интервалы к существующим (например, из извлечения документа)"""
        return self.replace_all(self.intervals + list(raw_intervals))

    def add_interval(self, raw: RawInterval) -> BusyInterval:
        """Добавить один интервал; невалидный вызывает ValidationError"""
        interval = coerce_interval(raw, self.default_day)
        if interval.id in self._intervals:
            logger.warning(f"Interval id {interval.id} already exists, assigning a new one")
            interval = self._with_fresh_id(interval)
        self._intervals[interval.id] = interval
        self._recompute()
        return interval

    def update_interval(self, interval_id: str, changes: Dict[str, Any]) -> BusyInterval:
        """Изменить интервал; при ошибке валидации расписание не меняется"""
        current = self._intervals.get(interval_id)
        if current is None:
            raise KeyError(interval_id)

        merged = current.to_dict()
        for alias, key in BOUND_ALIASES.items():
            if alias in changes and key not in changes:
                merged.pop(key, None)
        merged.update(changes)
        merged["id"] = interval_id
        updated = coerce_interval(merged, self.default_day)

        self._intervals[interval_id] = updated
        self._recompute()
        return updated

    def remove_interval(self, interval_id: str) -> bool:
        if self._intervals.pop(interval_id, None) is None:
            return False
        self._recompute()
        return True

    def clear(self) -> None:
        self._intervals.clear()
        self._slots.clear()
        self.warnings = []

    @staticmethod
    def _with_fresh_id(interval: BusyInterval) -> BusyInterval:
        return BusyInterval.create(interval.day, interval.from_minute, interval.to_minute, interval.label)

    def _recompute(self) -> None:
        """Пересчёт слотов по текущим интервалам"""
        result = normalize(self.intervals, self.window, days=self._slots.keys())
        self._slots = result.slots
        self.warnings = list(result.warnings)

    # ===== QUERIES =====

    def slots_for(self, day: int) -> List[FreeSlot]:
        """Свободные окна дня; день без занятости целиком свободен"""
        if day in self._slots:
            return list(self._slots[day])
        if not 0 <= day <= 6:
            raise ValidationError(f"Неизвестный день недели: {day}")
        return [FreeSlot.between(day, self.window.start, self.window.end)]

    def all_slots(self) -> List[FreeSlot]:
        return [slot for day in self.days for slot in self._slots[day]]

    def busy_for(self, day: int) -> List[BusyInterval]:
        return sorted(
            (interval for interval in self._intervals.values() if interval.day == day),
            key=lambda interval: interval.from_minute
        )

    def find_slot(self, slot_id: str) -> Optional[FreeSlot]:
        for day in range(7):
            for slot in self.slots_for(day):
                if slot.id == slot_id:
                    return slot
        return None

    # ===== SERIALIZATION =====

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            'schedule': [interval.to_dict() for interval in self.intervals],
            'free_slots': [slot.to_dict() for slot in self.all_slots()]
        }

    def load_snapshot(self, schedule: List[Dict[str, Any]]) -> List[str]:
        """Восстановление из снимка; слоты всегда пересчитываются, а не читаются"""
        return self.replace_all(schedule)
