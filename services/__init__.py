# services/__init__.py

"""
Модуль сервисов SchedWise Core

Внешние провайдеры (предложения, извлечение расписания) и таймеры.
"""

from .extraction_service import ExtractionError, ExtractionService
from .suggestion_service import (
    SuggestionRequestManager, SuggestionResult, SuggestionService, SuggestionServiceError
)
from .timer_service import TimerService

__all__ = [
    'ExtractionError',
    'ExtractionService',
    'SuggestionRequestManager',
    'SuggestionResult',
    'SuggestionService',
    'SuggestionServiceError',
    'TimerService'
]
