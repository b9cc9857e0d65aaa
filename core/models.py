#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Core Data Models
Модели данных с валидацией и типизацией

Версия: 1.0.0
Дата: 2025-07-02
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict
from enum import Enum
import logging

from utils.datetime_utils import to_hhmm, parse_timestamp

logger = logging.getLogger(__name__)

# ===== ENUMS =====

class SkillPriority(Enum):
    """Приоритеты навыков"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def weight(self) -> int:
        return {"Low": 1, "Medium": 2, "High": 3}[self.value]

class TaskKind(Enum):
    """Тип активности по длине слота"""
    LIGHT = "light"
    PRACTICE = "practice"
    DEEP = "deep"

    @classmethod
    def for_duration(cls, minutes: int) -> "TaskKind":
        """< 30 минут - light, 30-60 - practice, > 60 - deep"""
        if minutes < 30:
            return cls.LIGHT
        if minutes <= 60:
            return cls.PRACTICE
        return cls.DEEP

class SessionState(Enum):
    """Состояния фокус-сессии"""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABANDONED)

class SessionType(Enum):
    """Тип записи в журнале"""
    FOCUS = "focus"
    WATCH = "watch"

class ResultCode(Enum):
    """Коды результатов операций контроллера"""
    OK = "ok"
    ALREADY_ACTIVE = "already_active"
    NOT_ACTIVE = "not_active"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    PROVIDER_FAILED = "provider_failed"
    PERSISTENCE_FAILED = "persistence_failed"

# ===== VALIDATION HELPERS =====

class ValidationError(Exception):
    """Ошибка валидации данных"""
    pass

def validate_text(text: str, min_length: int = 1, max_length: int = 200, field_name: str = "text") -> str:
    """Валидация текстовых полей"""
    if not isinstance(text, str):
        raise ValidationError(f"{field_name} должен быть строкой")

    text = text.strip()
    if len(text) < min_length:
        raise ValidationError(f"{field_name} должен содержать минимум {min_length} символов")

    if len(text) > max_length:
        raise ValidationError(f"{field_name} должен содержать максимум {max_length} символов")

    return text

def validate_minute_of_day(value: int, field_name: str) -> int:
    """Минута суток 0..1440"""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field_name} должен быть целым числом минут")
    if not 0 <= value <= 24 * 60:
        raise ValidationError(f"{field_name} вне диапазона суток: {value}")
    return value

def _new_id() -> str:
    return str(uuid.uuid4())

# ===== SCHEDULE MODELS =====

@dataclass
class BusyInterval:
    """Занятый интервал дня (пара, встреча, работа)"""
    id: str
    day: int  # 0 = понедельник
    from_minute: int
    to_minute: int
    label: Optional[str] = None

    def __post_init__(self):
        """Валидация после создания объекта"""
        if not isinstance(self.day, int) or not 0 <= self.day <= 6:
            raise ValidationError(f"Неизвестный день недели: {self.day}")

        validate_minute_of_day(self.from_minute, "from_minute")
        validate_minute_of_day(self.to_minute, "to_minute")

        if self.from_minute >= self.to_minute:
            raise ValidationError(
                f"Интервал {to_hhmm(self.from_minute)}-{to_hhmm(self.to_minute)}: начало должно быть раньше конца"
            )

    @property
    def duration_minutes(self) -> int:
        return self.to_minute - self.from_minute

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusyInterval":
        return cls(
            id=data.get("id") or _new_id(),
            day=data["day"],
            from_minute=data["from_minute"],
            to_minute=data["to_minute"],
            label=data.get("label")
        )

    @classmethod
    def create(cls, day: int, from_minute: int, to_minute: int, label: Optional[str] = None) -> "BusyInterval":
        """Создание нового интервала"""
        return cls(id=_new_id(), day=day, from_minute=from_minute, to_minute=to_minute, label=label)

@dataclass
class FreeSlot:
    """Свободное окно внутри дня"""
    id: str
    day: int
    from_minute: int
    to_minute: int
    duration_minutes: int

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValidationError("duration_minutes должен быть положительным")
        if self.to_minute - self.from_minute != self.duration_minutes:
            raise ValidationError("duration_minutes не совпадает с границами слота")

    @property
    def label(self) -> str:
        return f"{to_hhmm(self.from_minute)}-{to_hhmm(self.to_minute)} ({self.duration_minutes}m)"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FreeSlot":
        return cls(**data)

    @classmethod
    def between(cls, day: int, from_minute: int, to_minute: int) -> "FreeSlot":
        """Слот с детерминированным id, стабильным между пересчётами"""
        return cls(
            id=f"{day}-{from_minute}-{to_minute}",
            day=day,
            from_minute=from_minute,
            to_minute=to_minute,
            duration_minutes=to_minute - from_minute
        )

# ===== PROFILE MODELS =====

@dataclass
class Skill:
    """Навык пользователя"""
    name: str
    category: str = "General"
    sub_category: str = "General"
    priority: str = SkillPriority.MEDIUM.value

    def __post_init__(self):
        self.name = validate_text(self.name, max_length=100, field_name="name")
        try:
            SkillPriority(self.priority)
        except ValueError:
            valid_values = [p.value for p in SkillPriority]
            raise ValidationError(f"priority должен быть одним из: {valid_values}")

    @property
    def priority_weight(self) -> int:
        return SkillPriority(self.priority).weight

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Skill":
        return cls(
            name=data["name"],
            category=data.get("category", "General"),
            sub_category=data.get("sub_category", data.get("subCategory", "General")),
            priority=data.get("priority", SkillPriority.MEDIUM.value)
        )

@dataclass
class FocusTask:
    """Задача для фокус-сессии (обычно приходит от провайдера предложений)"""
    title: str
    skill_name: str
    planned_duration_minutes: int
    kind: str = TaskKind.PRACTICE.value
    description: str = ""
    recommended: bool = False

    def __post_init__(self):
        self.title = validate_text(self.title, field_name="title")
        self.skill_name = validate_text(self.skill_name, max_length=100, field_name="skill_name")

        if not isinstance(self.planned_duration_minutes, int) or self.planned_duration_minutes <= 0:
            raise ValidationError("planned_duration_minutes должен быть положительным числом")

        try:
            TaskKind(self.kind)
        except ValueError:
            raise ValidationError(f"Неизвестный тип задачи: {self.kind}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FocusTask":
        return cls(**data)

# ===== SESSION MODELS =====

@dataclass
class FocusSession:
    """Активная фокус-сессия"""
    id: str
    task: FocusTask
    started_at: str  # ISO timestamp
    remaining_minutes: int
    paused: bool = False
    paused_at: Optional[str] = None
    paused_seconds: float = 0.0
    state: str = SessionState.RUNNING.value
    ticked_minutes: int = 0

    @property
    def session_state(self) -> SessionState:
        return SessionState(self.state)

    @property
    def is_active(self) -> bool:
        return not self.session_state.is_terminal

    @property
    def is_exhausted(self) -> bool:
        """Время вышло, ждём подтверждения пользователя"""
        return self.is_active and self.remaining_minutes <= 0

    @property
    def started_datetime(self) -> datetime:
        return parse_timestamp(self.started_at)

    def active_elapsed_seconds(self, now: datetime) -> float:
        """Прошедшее время без учёта пауз"""
        paused = self.paused_seconds
        if self.paused and self.paused_at:
            paused += max(0.0, (now - parse_timestamp(self.paused_at)).total_seconds())
        return max(0.0, (now - self.started_datetime).total_seconds() - paused)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["task"] = self.task.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FocusSession":
        data = dict(data)
        data["task"] = FocusTask.from_dict(data["task"])
        return cls(**data)

    @classmethod
    def create(cls, task: FocusTask, now: datetime) -> "FocusSession":
        """Создание новой сессии"""
        return cls(
            id=_new_id(),
            task=task,
            started_at=now.isoformat(),
            remaining_minutes=task.planned_duration_minutes
        )

@dataclass
class PassiveWatchSession:
    """Просмотр внешнего контента (видео, лекция)"""
    id: str
    title: str
    skill_name: str
    start_time: str  # ISO timestamp

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PassiveWatchSession":
        return cls(**data)

    @classmethod
    def create(cls, title: str, skill_name: str, now: datetime) -> "PassiveWatchSession":
        return cls(
            id=_new_id(),
            title=validate_text(title, field_name="title"),
            skill_name=validate_text(skill_name, max_length=100, field_name="skill_name"),
            start_time=now.isoformat()
        )

@dataclass
class CompletedSessionRecord:
    """Запись журнала накопленного времени"""
    id: str
    session_id: str
    skill_name: str
    duration_minutes: int
    timestamp: str  # ISO, время последнего обновления
    date: str  # локальная дата YYYY-MM-DD
    session_type: str = SessionType.FOCUS.value
    minute_indices: List[int] = field(default_factory=list)

    def __post_init__(self):
        if self.duration_minutes < 0:
            raise ValidationError("duration_minutes не может быть отрицательным")
        SessionType(self.session_type)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletedSessionRecord":
        data = dict(data)
        data.setdefault("minute_indices", [])
        data.setdefault("session_type", SessionType.FOCUS.value)
        return cls(**data)

# ===== RESULTS =====

@dataclass
class OperationResult:
    """Результат операции контроллера"""
    success: bool
    code: ResultCode = ResultCode.OK
    message: str = ""
    data: Optional[Any] = None

    @classmethod
    def ok(cls, data: Optional[Any] = None, message: str = "") -> "OperationResult":
        return cls(success=True, code=ResultCode.OK, message=message, data=data)

    @classmethod
    def fail(cls, code: ResultCode, message: str, data: Optional[Any] = None) -> "OperationResult":
        return cls(success=False, code=code, message=message, data=data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'code': self.code.value,
            'message': self.message
        }

# ===== EXPORT =====

__all__ = [
    # Enums
    'SkillPriority',
    'TaskKind',
    'SessionState',
    'SessionType',
    'ResultCode',

    # Validation
    'ValidationError',
    'validate_text',
    'validate_minute_of_day',

    # Models
    'BusyInterval',
    'FreeSlot',
    'Skill',
    'FocusTask',
    'FocusSession',
    'PassiveWatchSession',
    'CompletedSessionRecord',
    'OperationResult'
]
