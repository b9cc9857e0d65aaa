#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Configuration
Централизованная конфигурация с валидацией

Версия: 1.0.0
Дата: 2025-07-02
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum

class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

def _parse_hhmm(value: str, field_name: str) -> int:
    """HH:MM -> минуты от начала суток"""
    try:
        hours, minutes = value.strip().split(":")
        total = int(hours) * 60 + int(minutes)
    except (ValueError, AttributeError):
        raise ValueError(f"{field_name} должен быть в формате HH:MM, получено: {value!r}")
    if not 0 <= total <= 24 * 60:
        raise ValueError(f"{field_name} вне диапазона 00:00-24:00")
    return total

@dataclass
class ScheduleConfig:
    """Конфигурация окна дня"""
    day_start_minutes: int = 6 * 60
    day_end_minutes: int = 22 * 60
    timezone: str = "UTC"

@dataclass
class FocusConfig:
    """Конфигурация фокус-сессий и аналитики"""
    skill_goal_minutes: int = 300
    tick_interval_seconds: int = 60
    mvp_window_days: int = 7
    score_window_days: int = 14

@dataclass
class AIConfig:
    """Конфигурация AI сервисов"""
    openai_api_key: Optional[str]
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 1000
    fallback_enabled: bool = True
    request_timeout: int = 30

@dataclass
class StorageConfig:
    """Конфигурация хранилища снимков"""
    path: Path
    backup_dir: Path
    backup_interval_hours: int = 6
    max_backups: int = 10
    auto_backup: bool = True

class PlannerConfig:
    """Главный класс конфигурации"""

    def __init__(self):
        self.environment = Environment(os.getenv('ENVIRONMENT', 'development'))
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Загрузка конфигурации из переменных окружения"""

        # Директории
        self.data_dir = Path(os.getenv('DATA_DIR', 'data'))
        self.backup_dir = Path(os.getenv('BACKUP_DIR', 'backups'))
        self.log_dir = Path(os.getenv('LOG_DIR', 'logs'))

        # Окно дня
        self.schedule = ScheduleConfig(
            day_start_minutes=_parse_hhmm(os.getenv('DAY_START', '06:00'), 'DAY_START'),
            day_end_minutes=_parse_hhmm(os.getenv('DAY_END', '22:00'), 'DAY_END'),
            timezone=os.getenv('TIMEZONE', 'UTC')
        )

        # Фокус и аналитика
        self.focus = FocusConfig(
            skill_goal_minutes=int(os.getenv('SKILL_GOAL_MINUTES', 300)),
            tick_interval_seconds=int(os.getenv('TICK_INTERVAL_SECONDS', 60)),
            mvp_window_days=int(os.getenv('MVP_WINDOW_DAYS', 7)),
            score_window_days=int(os.getenv('SCORE_WINDOW_DAYS', 14))
        )

        # AI конфигурация
        self.ai = AIConfig(
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
            openai_max_tokens=int(os.getenv('OPENAI_MAX_TOKENS', 1000)),
            fallback_enabled=os.getenv('AI_FALLBACK_ENABLED', 'true').lower() == 'true',
            request_timeout=int(os.getenv('AI_TIMEOUT', 30))
        )

        # Хранилище
        self.storage = StorageConfig(
            path=self.data_dir / "planner_snapshot.json",
            backup_dir=self.backup_dir,
            backup_interval_hours=int(os.getenv('BACKUP_INTERVAL_HOURS', 6)),
            max_backups=int(os.getenv('MAX_BACKUPS', 10)),
            auto_backup=os.getenv('AUTO_BACKUP', 'true').lower() == 'true'
        )

        # Логирование
        self.log_level = LogLevel(os.getenv('LOG_LEVEL', 'INFO'))
        self.log_to_file = os.getenv('LOG_TO_FILE', 'false').lower() == 'true'
        self.log_format = os.getenv(
            'LOG_FORMAT',
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.schedule.day_start_minutes >= self.schedule.day_end_minutes:
            errors.append("DAY_START должен быть раньше DAY_END")

        if self.focus.skill_goal_minutes <= 0:
            errors.append("SKILL_GOAL_MINUTES должен быть положительным числом")

        if self.focus.tick_interval_seconds <= 0:
            errors.append("TICK_INTERVAL_SECONDS должен быть положительным числом")

        if self.focus.mvp_window_days <= 0 or self.focus.score_window_days <= 0:
            errors.append("Окна аналитики должны быть положительными")

        if self.storage.max_backups < 0:
            errors.append("MAX_BACKUPS не может быть отрицательным")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

        if not self.ai.openai_api_key:
            logging.getLogger(__name__).info("OPENAI_API_KEY not set - AI providers disabled")

    def ensure_directories(self):
        """Создание необходимых директорий"""
        directories = [self.data_dir, self.backup_dir]
        if self.log_to_file:
            directories.append(self.log_dir)

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_logging_config(self) -> Dict[str, Any]:
        """Получение конфигурации логирования"""
        handlers = ['console']
        if self.log_to_file:
            handlers.append('file')

        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.log_format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'stream': sys.stdout
                },
                'file': {
                    'class': 'logging.handlers.RotatingFileHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'filename': str(self.log_dir / f"schedwise_{self.environment.value}.log"),
                    'maxBytes': 10485760,  # 10MB
                    'backupCount': 5,
                    'encoding': 'utf-8',
                    'delay': True
                }
            },
            'loggers': {
                '': {
                    'level': self.log_level.value,
                    'handlers': handlers,
                    'propagate': False
                },
                'httpx': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'openai': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'apscheduler': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

    def is_ai_enabled(self) -> bool:
        """Доступны ли AI провайдеры"""
        return bool(self.ai.openai_api_key)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация конфигурации в словарь"""
        return {
            'environment': self.environment.value,
            'schedule': {
                'day_start_minutes': self.schedule.day_start_minutes,
                'day_end_minutes': self.schedule.day_end_minutes,
                'timezone': self.schedule.timezone
            },
            'focus': {
                'skill_goal_minutes': self.focus.skill_goal_minutes,
                'tick_interval_seconds': self.focus.tick_interval_seconds,
                'mvp_window_days': self.focus.mvp_window_days,
                'score_window_days': self.focus.score_window_days
            },
            'ai_enabled': self.is_ai_enabled(),
            'ai_fallback_enabled': self.ai.fallback_enabled,
            'snapshot_path': str(self.storage.path),
            'log_level': self.log_level.value
        }

# Глобальный экземпляр конфигурации
config = PlannerConfig()

__all__ = [
    'config',
    'PlannerConfig',
    'Environment',
    'LogLevel',
    'ScheduleConfig',
    'FocusConfig',
    'AIConfig',
    'StorageConfig'
]
