#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Interval Normalizer
Нормализация занятых интервалов и расчёт свободных окон дня

Версия: 1.0.0
Дата: 2025-07-02
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from core.models import BusyInterval, FreeSlot, ValidationError
from utils.datetime_utils import to_hhmm, to_minutes, weekday_index

logger = logging.getLogger(__name__)

RawInterval = Union[BusyInterval, Dict[str, Any], Tuple[Any, ...]]

@dataclass
class DayWindow:
    """Границы рабочего окна дня в минутах"""
    start: int = 6 * 60
    end: int = 22 * 60

    def __post_init__(self):
        if not 0 <= self.start < self.end <= 24 * 60:
            raise ValidationError(f"Некорректное окно дня: {self.start}-{self.end}")

    @classmethod
    def from_config(cls) -> "DayWindow":
        from config import config
        return cls(config.schedule.day_start_minutes, config.schedule.day_end_minutes)

@dataclass
class NormalizationResult:
    """Результат нормализации"""
    slots: Dict[int, List[FreeSlot]] = field(default_factory=dict)
    busy: Dict[int, List[BusyInterval]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def slots_for(self, day: int) -> List[FreeSlot]:
        return self.slots.get(day, [])

def coerce_interval(raw: RawInterval, default_day: Optional[int] = None) -> BusyInterval:
    """Привести сырую запись (dict с HH:MM или минутами) к BusyInterval

    Поддерживаются ключи from/to, start/end и from_minute/to_minute,
    а также кортежи (day, from, to) и (day, from, to, label).
    """
    if isinstance(raw, BusyInterval):
        return raw
    if isinstance(raw, (tuple, list)):
        if len(raw) not in (3, 4):
            raise ValidationError(f"Кортеж интервала должен быть (day, from, to[, label]): {raw!r}")
        raw = dict(zip(("day", "from", "to", "label"), raw))
    elif not isinstance(raw, dict):
        raise ValidationError(f"Неподдерживаемый тип интервала: {type(raw).__name__}")

    day_value = raw.get("day", default_day)
    day = weekday_index(day_value)
    if day is None:
        raise ValidationError(f"Неизвестный день: {day_value!r}")

    start = raw.get("from_minute", raw.get("from", raw.get("start")))
    end = raw.get("to_minute", raw.get("to", raw.get("end")))
    if start is None or end is None:
        raise ValidationError("Интервал без начала или конца")

    try:
        from_minute = to_minutes(start)
        to_minute = to_minutes(end)
    except (ValueError, TypeError):
        raise ValidationError(f"Неверный формат времени: {start!r}-{end!r}")

    return BusyInterval.from_dict({
        "id": raw.get("id"),
        "day": day,
        "from_minute": from_minute,
        "to_minute": to_minute,
        "label": raw.get("label")
    })

def validate_intervals(raw_intervals: Iterable[RawInterval],
                       default_day: Optional[int] = None) -> Tuple[List[BusyInterval], List[str]]:
    """Отбросить невалидные интервалы с предупреждением, остальные вернуть в исходном порядке"""
    valid: List[BusyInterval] = []
    warnings: List[str] = []

    for position, raw in enumerate(raw_intervals):
        try:
            valid.append(coerce_interval(raw, default_day))
        except ValidationError as e:
            message = f"Interval #{position + 1} dropped: {e}"
            logger.warning(message)
            warnings.append(message)

    return valid, warnings

def compute_free_slots(day: int, intervals: List[BusyInterval], window: DayWindow) -> List[FreeSlot]:
    """Свободные окна одного дня

    Один проход курсором по отсортированным интервалам: пересекающиеся и
    соседние интервалы склеиваются сами собой, отдельного merge не нужно.
    """
    # sorted() стабилен - при равном начале сохраняется исходный порядок
    ordered = sorted(intervals, key=lambda interval: interval.from_minute)

    slots: List[FreeSlot] = []
    cursor = window.start

    for interval in ordered:
        if cursor >= window.end:
            break
        gap_end = min(interval.from_minute, window.end)
        if gap_end > cursor:
            slots.append(FreeSlot.between(day, cursor, gap_end))
        cursor = max(cursor, interval.to_minute)

    if cursor < window.end:
        slots.append(FreeSlot.between(day, cursor, window.end))

    return slots

def merge_busy(intervals: List[BusyInterval]) -> List[Tuple[int, int]]:
    """Склеенные занятые блоки (начало, конец) одного дня"""
    blocks: List[Tuple[int, int]] = []
    for interval in sorted(intervals, key=lambda i: i.from_minute):
        if blocks and interval.from_minute <= blocks[-1][1]:
            start, end = blocks[-1]
            blocks[-1] = (start, max(end, interval.to_minute))
        else:
            blocks.append((interval.from_minute, interval.to_minute))
    return blocks

def group_by_day(intervals: Iterable[BusyInterval]) -> Dict[int, List[BusyInterval]]:
    grouped: Dict[int, List[BusyInterval]] = {}
    for interval in intervals:
        grouped.setdefault(interval.day, []).append(interval)
    return grouped

def normalize(raw_intervals: Iterable[RawInterval],
              window: Optional[DayWindow] = None,
              days: Optional[Iterable[int]] = None,
              default_day: Optional[int] = None) -> NormalizationResult:
    """Нормализация: валидация, группировка по дням, расчёт свободных окон

    Args:
        raw_intervals: занятые интервалы (объекты, словари или кортежи)
        window: окно дня, по умолчанию из конфигурации
        days: дни, для которых нужны слоты даже без занятых интервалов
        default_day: день для записей без поля day
    """
    window = window or DayWindow.from_config()
    valid, warnings = validate_intervals(raw_intervals, default_day)

    busy = group_by_day(valid)
    wanted_days = set(busy.keys())
    if days is not None:
        wanted_days.update(days)

    result = NormalizationResult(warnings=warnings)
    for day in sorted(wanted_days):
        day_intervals = sorted(busy.get(day, []), key=lambda interval: interval.from_minute)
        result.busy[day] = day_intervals
        result.slots[day] = compute_free_slots(day, day_intervals, window)

    logger.debug(
        f"Normalized {len(valid)} intervals into {sum(len(s) for s in result.slots.values())} "
        f"free slots ({len(warnings)} warnings)"
    )
    return result

def describe_slots(slots: List[FreeSlot]) -> str:
    """Короткое текстовое описание слотов для статусной строки"""
    if not slots:
        return "No free slots"
    return ", ".join(f"{to_hhmm(s.from_minute)}-{to_hhmm(s.to_minute)}" for s in slots)
