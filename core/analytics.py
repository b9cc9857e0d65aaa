#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Analytics
Метрики прогресса, пересчитываемые из журнала при каждом чтении

Версия: 1.0.0
Дата: 2025-07-02
"""

import math
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from core.models import CompletedSessionRecord

NO_DATA = "No data yet"

def round_half_up(value: float) -> int:
    """Округление 0.5 вверх (round() в Python округляет к чётному)"""
    return int(math.floor(value + 0.5))

def _record_date(record: CompletedSessionRecord) -> date:
    return date.fromisoformat(record.date)

def total_minutes(records: Iterable[CompletedSessionRecord]) -> int:
    """Сумма всех минут"""
    return sum(record.duration_minutes for record in records)

def daily_minutes(records: Iterable[CompletedSessionRecord], day: date) -> int:
    """Минуты за локальную календарную дату"""
    return sum(r.duration_minutes for r in records if _record_date(r) == day)

def minutes_by_day(records: Iterable[CompletedSessionRecord]) -> Dict[date, int]:
    totals: Dict[date, int] = {}
    for record in records:
        day = _record_date(record)
        totals[day] = totals.get(day, 0) + record.duration_minutes
    return totals

def streak(records: Iterable[CompletedSessionRecord], today: date) -> int:
    """Серия дней подряд с хотя бы одной минутой

    Если сегодня ещё ничего нет, отсчёт начинается со вчерашнего дня.
    """
    totals = minutes_by_day(records)

    current = today
    if totals.get(current, 0) < 1:
        current = today - timedelta(days=1)

    count = 0
    while totals.get(current, 0) >= 1:
        count += 1
        current -= timedelta(days=1)
    return count

def longest_streak(records: Iterable[CompletedSessionRecord]) -> int:
    """Самая длинная серия за всю историю"""
    active_days = sorted(day for day, minutes in minutes_by_day(records).items() if minutes >= 1)
    if not active_days:
        return 0

    best = current = 1
    for previous, day in zip(active_days, active_days[1:]):
        if day == previous + timedelta(days=1):
            current += 1
            best = max(best, current)
        else:
            current = 1
    return best

def _in_window(record: CompletedSessionRecord, today: date, window_days: int) -> bool:
    start = today - timedelta(days=window_days - 1)
    return start <= _record_date(record) <= today

def mvp_skill(records: Iterable[CompletedSessionRecord], today: date, window_days: int = 7) -> str:
    """Навык с максимумом минут за последние window_days дней

    При равенстве побеждает навык, встретившийся первым.
    """
    totals: Dict[str, int] = {}
    for record in records:
        if _in_window(record, today, window_days):
            totals[record.skill_name] = totals.get(record.skill_name, 0) + record.duration_minutes

    best_skill = NO_DATA
    best_minutes = 0
    for skill_name, minutes in totals.items():
        if minutes > best_minutes:
            best_skill, best_minutes = skill_name, minutes
    return best_skill

def distinct_active_days(records: Iterable[CompletedSessionRecord], today: date, window_days: int = 14) -> int:
    return len({
        _record_date(r) for r in records
        if r.duration_minutes >= 1 and _in_window(r, today, window_days)
    })

def average_session_minutes(records: Iterable[CompletedSessionRecord]) -> float:
    records = list(records)
    if not records:
        return 0.0
    return total_minutes(records) / len(records)

def score(records: Iterable[CompletedSessionRecord], today: date, window_days: int = 14) -> int:
    """Оценка 0-100: регулярность (40) + интенсивность (30) + объём (30)"""
    records = list(records)
    consistency = distinct_active_days(records, today, window_days) / window_days * 40
    intensity = min(average_session_minutes(records), 60) / 60 * 30
    volume = min(total_minutes(records) / 60, 100) / 100 * 30
    return min(100, round_half_up(consistency + intensity + volume))

def skill_minutes(records: Iterable[CompletedSessionRecord], skill_name: str) -> int:
    return sum(r.duration_minutes for r in records if r.skill_name == skill_name)

def skill_progress(records: Iterable[CompletedSessionRecord], skill_name: str, goal_minutes: int = 300) -> int:
    """Процент цели по навыку, не больше 100"""
    if goal_minutes <= 0:
        raise ValueError("goal_minutes должен быть положительным")
    return min(100, round_half_up(100 * skill_minutes(records, skill_name) / goal_minutes))

def all_skill_progress(records: Iterable[CompletedSessionRecord],
                       skill_names: Optional[Iterable[str]] = None,
                       goal_minutes: int = 300) -> Dict[str, int]:
    """Прогресс по каждому навыку; без списка - по всем навыкам из журнала"""
    records = list(records)
    if skill_names is None:
        skill_names = list(dict.fromkeys(r.skill_name for r in records))
    return {name: skill_progress(records, name, goal_minutes) for name in skill_names}

def build_summary(records: Iterable[CompletedSessionRecord], today: date,
                  skill_names: Optional[List[str]] = None,
                  goal_minutes: int = 300,
                  mvp_window_days: int = 7,
                  score_window_days: int = 14) -> Dict[str, Any]:
    """Сводка для экрана прогресса"""
    records = list(records)
    return {
        'total_minutes': total_minutes(records),
        'today_minutes': daily_minutes(records, today),
        'streak': streak(records, today),
        'longest_streak': longest_streak(records),
        'mvp_skill': mvp_skill(records, today, mvp_window_days),
        'score': score(records, today, score_window_days),
        'sessions': len(records),
        'skill_progress': all_skill_progress(records, skill_names, goal_minutes)
    }
