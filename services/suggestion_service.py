#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchedWise Core v1.0 - Suggestion Service
Предложения активностей для свободного окна через OpenAI

Версия: 1.0.0
Дата: 2025-07-02
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from config import config
from core.models import FocusTask, FreeSlot, Skill, TaskKind, ValidationError

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class SuggestionServiceError(Exception):
    """Базовое исключение сервиса предложений"""
    pass

class SuggestionProviderError(SuggestionServiceError):
    """Ошибка провайдера AI"""
    pass

class SuggestionParseError(SuggestionServiceError):
    """Ответ провайдера не удалось разобрать"""
    pass

# ===== PROMPTS =====

class PromptManager:
    """Шаблон промпта для предложений"""

    TEMPLATE = """A student has a free time slot of {duration} minutes ({window}).
Their selected skills and priorities are: {skills}.

Suggest {count} specific productive activities.

Logic rules:
- Slot < 30 min: light task (flashcards, quick review, reading)
- Slot 30-60 min: practice task (solving problems, coding exercise, active recall)
- Slot > 60 min: deep study (conceptual learning, project work, writing)
- Always respect skill priority (High > Medium > Low).
- Each duration must fit inside the slot.
- Exactly one suggestion has "recommended": true.
- Tone: smart, student-friendly, slightly witty.

Answer with a JSON object {{"suggestions": [...]}} where each item has
title, description, duration (minutes), type (light|practice|deep), skill, recommended."""

    def __init__(self, count: int = 3):
        self.count = count

    def build(self, slot: FreeSlot, skills: List[Skill]) -> str:
        skills_json = json.dumps(
            [{"name": s.name, "category": s.category, "priority": s.priority} for s in skills],
            ensure_ascii=False
        )
        return self.TEMPLATE.format(
            duration=slot.duration_minutes,
            window=slot.label,
            skills=skills_json,
            count=self.count
        )

# ===== HELPERS =====

def rank_skills(skills: List[Skill]) -> List[Skill]:
    """Навыки по приоритету High > Medium > Low, внутри - в исходном порядке"""
    return sorted(skills, key=lambda s: -s.priority_weight)

def ensure_single_recommended(tasks: List[FocusTask]) -> List[FocusTask]:
    """Ровно одна рекомендованная задача: первая помеченная, иначе первая в списке"""
    if not tasks:
        return tasks

    chosen = next((i for i, t in enumerate(tasks) if t.recommended), 0)
    for index, task in enumerate(tasks):
        task.recommended = index == chosen
    return tasks

def parse_suggestions(raw_text: str, slot: FreeSlot, skills: List[Skill]) -> List[FocusTask]:
    """Разбор JSON ответа модели в FocusTask

    Некорректные элементы пропускаются, длительность ограничивается слотом.
    """
    try:
        payload = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise SuggestionParseError(f"Response is not JSON: {e}")

    items = payload.get("suggestions", []) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise SuggestionParseError("Response has no suggestions list")

    fallback_skill = rank_skills(skills)[0].name if skills else "General"
    default_kind = TaskKind.for_duration(slot.duration_minutes).value

    tasks: List[FocusTask] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            duration = int(item.get("duration") or slot.duration_minutes)
            kind = item.get("type") or default_kind
            if kind not in {k.value for k in TaskKind}:
                kind = default_kind
            tasks.append(FocusTask(
                title=str(item.get("title", "")),
                skill_name=str(item.get("skill") or fallback_skill),
                planned_duration_minutes=max(1, min(duration, slot.duration_minutes)),
                kind=kind,
                description=str(item.get("description", "")),
                recommended=bool(item.get("recommended", False))
            ))
        except (ValidationError, ValueError, TypeError) as e:
            logger.debug(f"Skipping malformed suggestion {item!r}: {e}")

    return ensure_single_recommended(tasks)

# ===== FALLBACK =====

class FallbackSuggestionProvider:
    """Предложения по правилам, когда AI не настроен"""

    TITLES = {
        TaskKind.LIGHT: ("Quick review: {skill}", "Flashcards and a fast recap of recent {skill} notes."),
        TaskKind.PRACTICE: ("Practice set: {skill}", "Solve a handful of {skill} problems with active recall."),
        TaskKind.DEEP: ("Deep study: {skill}", "Work through one hard {skill} concept or push your project forward.")
    }

    def __init__(self, count: int = 3):
        self.count = count

    def get_suggestions(self, slot: FreeSlot, skills: List[Skill]) -> List[FocusTask]:
        kind = TaskKind.for_duration(slot.duration_minutes)
        title_template, description_template = self.TITLES[kind]

        tasks = [
            FocusTask(
                title=title_template.format(skill=skill.name),
                skill_name=skill.name,
                planned_duration_minutes=slot.duration_minutes,
                kind=kind.value,
                description=description_template.format(skill=skill.name)
            )
            for skill in rank_skills(skills)[:self.count]
        ]
        return ensure_single_recommended(tasks)

# ===== MAIN SERVICE =====

@dataclass
class SuggestionStats:
    """Статистика сервиса"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    fallback_responses: int = 0
    average_response_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'fallback_responses': self.fallback_responses,
            'average_response_time_ms': round(self.average_response_time_ms, 2)
        }

class SuggestionService:
    """Провайдер предложений: без повторов, пустой список при ошибке"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None,
                 fallback_enabled: Optional[bool] = None):
        self.client = client
        self.model = model or config.ai.openai_model
        self.fallback_enabled = config.ai.fallback_enabled if fallback_enabled is None else fallback_enabled
        self.prompt_manager = PromptManager()
        self.fallback_provider = FallbackSuggestionProvider()
        self.stats = SuggestionStats()

        if self.client is None and config.ai.openai_api_key:
            self.client = AsyncOpenAI(
                api_key=config.ai.openai_api_key,
                timeout=config.ai.request_timeout
            )

        logger.info(f"Suggestion service initialized - OpenAI: {'✅' if self.enabled else '❌'}")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get_suggestions(self, slot: FreeSlot, skills: List[Skill]) -> List[FocusTask]:
        """Предложения для слота; при любой ошибке провайдера - пустой список"""
        start_time = time.time()
        self.stats.total_requests += 1

        if not self.enabled:
            if self.fallback_enabled:
                self.stats.fallback_responses += 1
                return self.fallback_provider.get_suggestions(slot, skills)
            return []

        try:
            tasks = await self._generate_openai(slot, skills)
        except SuggestionServiceError as e:
            logger.error(f"Suggestion request failed: {e}")
            self.stats.failed_requests += 1
            return []

        self.stats.successful_requests += 1
        elapsed_ms = (time.time() - start_time) * 1000
        total = self.stats.average_response_time_ms * (self.stats.successful_requests - 1)
        self.stats.average_response_time_ms = (total + elapsed_ms) / self.stats.successful_requests
        return tasks

    async def _generate_openai(self, slot: FreeSlot, skills: List[Skill]) -> List[FocusTask]:
        prompt = self.prompt_manager.build(slot, skills)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=config.ai.openai_max_tokens,
                temperature=0.7,
                response_format={"type": "json_object"}
            )
        except OpenAIError as e:
            raise SuggestionProviderError(f"OpenAI API failed: {e}")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise SuggestionParseError("Empty response")
        return parse_suggestions(content, slot, skills)

# ===== REQUEST MANAGER =====

@dataclass
class SuggestionResult:
    """Результат запроса предложений"""
    slot_id: str
    tasks: List[FocusTask] = field(default_factory=list)
    status: str = ""
    stale: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.tasks

class SuggestionRequestManager:
    """Отменяемые запросы с подавлением устаревших ответов

    Новый запрос для другого слота отменяет текущий; ответ, пришедший для
    слота, который уже не выбран, помечается stale и не используется.
    """

    def __init__(self, service: SuggestionService):
        self.service = service
        self.current_slot_id: Optional[str] = None
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_slot_id: Optional[str] = None

    def cancel(self) -> None:
        """Отмена при уходе со страницы предложений"""
        self.current_slot_id = None
        self._cancel_inflight()

    def _cancel_inflight(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            logger.debug(f"Cancelling suggestion request for slot {self._inflight_slot_id}")
            self._inflight.cancel()
        self._inflight = None
        self._inflight_slot_id = None

    async def request(self, slot: FreeSlot, skills: List[Skill]) -> SuggestionResult:
        self.current_slot_id = slot.id

        if (self._inflight is not None and not self._inflight.done()
                and self._inflight_slot_id == slot.id):
            task = self._inflight
        else:
            self._cancel_inflight()
            task = asyncio.ensure_future(self.service.get_suggestions(slot, skills))
            self._inflight = task
            self._inflight_slot_id = slot.id

        await asyncio.wait({task})

        if task.cancelled() or self.current_slot_id != slot.id:
            logger.debug(f"Suppressing stale suggestions for slot {slot.id}")
            return SuggestionResult(slot_id=slot.id, status="Request superseded", stale=True)

        if self._inflight is task:
            self._inflight = None
            self._inflight_slot_id = None

        tasks = task.result()
        status = "" if tasks else "No suggestions right now. Try again or pick a task yourself."
        return SuggestionResult(slot_id=slot.id, tasks=tasks, status=status)
