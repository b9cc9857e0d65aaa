"""Tests for services/suggestion_service.py

Covers:
- OpenAI response parsing (mocked client) with exactly one recommended task
- Empty result on provider failure, no retry
- Rule-based fallback when AI is not configured
- Cancellation and stale-result suppression in SuggestionRequestManager
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from config import config
from core.models import FocusTask, FreeSlot
from services.suggestion_service import (
    FallbackSuggestionProvider,
    PromptManager,
    SuggestionParseError,
    SuggestionRequestManager,
    SuggestionService,
    ensure_single_recommended,
    parse_suggestions,
)


def completion(content):
    """Shape of an openai chat completion response."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def mock_client(content=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=completion(content), side_effect=error
    )
    return client


RESPONSE = json.dumps({
    "suggestions": [
        {"title": "Graph problems sprint", "description": "BFS/DFS drills", "duration": 40,
         "type": "practice", "skill": "Algorithms", "recommended": True},
        {"title": "Proof reading", "description": "Linear algebra proofs", "duration": 90,
         "type": "deep", "skill": "Math", "recommended": True},
        {"title": "", "duration": 10, "type": "light", "skill": "Writing"},
        {"title": "Essay outline", "duration": 20, "type": "nap", "skill": "Writing"},
    ]
})


@pytest.fixture(autouse=True)
def no_api_key(monkeypatch):
    monkeypatch.setattr(config.ai, "openai_api_key", None)


# ─────────────────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────────────────


class TestParsing:

    def test_parse_keeps_valid_items_and_clamps_duration(self, free_slot, skills):
        tasks = parse_suggestions(RESPONSE, free_slot, skills)

        assert [t.title for t in tasks] == ["Graph problems sprint", "Proof reading", "Essay outline"]
        assert tasks[1].planned_duration_minutes == 45
        assert tasks[2].kind == "practice"

    def test_exactly_one_recommended(self, free_slot, skills):
        tasks = parse_suggestions(RESPONSE, free_slot, skills)

        assert [t.recommended for t in tasks] == [True, False, False]

    def test_missing_skill_uses_highest_priority(self, free_slot, skills):
        content = json.dumps({"suggestions": [{"title": "Anything", "duration": 15}]})

        tasks = parse_suggestions(content, free_slot, skills)

        assert tasks[0].skill_name == "Algorithms"
        assert tasks[0].recommended

    def test_not_json(self, free_slot, skills):
        with pytest.raises(SuggestionParseError):
            parse_suggestions("Sure! Here are some ideas", free_slot, skills)

    def test_ensure_single_recommended_flags_first_when_none(self):
        tasks = [
            FocusTask(title="A", skill_name="Math", planned_duration_minutes=10),
            FocusTask(title="B", skill_name="Math", planned_duration_minutes=10),
        ]

        assert [t.recommended for t in ensure_single_recommended(tasks)] == [True, False]

    def test_prompt_mentions_slot_and_skills(self, free_slot, skills):
        prompt = PromptManager().build(free_slot, skills)

        assert "45 minutes" in prompt
        assert "Algorithms" in prompt
        assert "High > Medium > Low" in prompt


# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────


class TestSuggestionService:

    async def test_openai_suggestions(self, free_slot, skills):
        client = mock_client(RESPONSE)
        service = SuggestionService(client=client)

        tasks = await service.get_suggestions(free_slot, skills)

        assert len(tasks) == 3
        assert sum(t.recommended for t in tasks) == 1
        client.chat.completions.create.assert_awaited_once()
        assert service.stats.successful_requests == 1

    async def test_provider_failure_returns_empty_without_retry(self, free_slot, skills):
        client = mock_client(error=OpenAIError("rate limited"))
        service = SuggestionService(client=client)

        assert await service.get_suggestions(free_slot, skills) == []
        assert client.chat.completions.create.await_count == 1
        assert service.stats.failed_requests == 1

    async def test_garbage_response_returns_empty(self, free_slot, skills):
        service = SuggestionService(client=mock_client("not json at all"))

        assert await service.get_suggestions(free_slot, skills) == []

    async def test_fallback_when_ai_not_configured(self, free_slot, skills):
        service = SuggestionService(fallback_enabled=True)

        tasks = await service.get_suggestions(free_slot, skills)

        assert not service.enabled
        assert [t.skill_name for t in tasks] == ["Algorithms", "Math", "Writing"]
        assert all(t.kind == "practice" for t in tasks)
        assert [t.recommended for t in tasks] == [True, False, False]

    async def test_no_fallback_returns_empty(self, free_slot, skills):
        service = SuggestionService(fallback_enabled=False)

        assert await service.get_suggestions(free_slot, skills) == []


class TestFallbackProvider:

    @pytest.mark.parametrize("minutes,kind", [(20, "light"), (30, "practice"), (60, "practice"), (61, "deep")])
    def test_kind_follows_slot_length(self, minutes, kind, skills):
        slot = FreeSlot.between(0, 600, 600 + minutes)

        tasks = FallbackSuggestionProvider().get_suggestions(slot, skills)

        assert {t.kind for t in tasks} == {kind}
        assert all(t.planned_duration_minutes == minutes for t in tasks)

    def test_no_skills(self, free_slot):
        assert FallbackSuggestionProvider().get_suggestions(free_slot, []) == []


# ─────────────────────────────────────────────────────────────────────────────
# Request manager
# ─────────────────────────────────────────────────────────────────────────────


def task_for(title):
    return FocusTask(title=title, skill_name="Math", planned_duration_minutes=10, recommended=True)


class TestRequestManager:
    """Only the currently selected slot may receive suggestions."""

    async def test_newer_request_for_other_slot_suppresses_stale(self, fake_suggestions, skills):
        manager = SuggestionRequestManager(fake_suggestions)
        slot_a = FreeSlot.between(0, 360, 420)
        slot_b = FreeSlot.between(0, 600, 700)
        fake_suggestions.responses = {slot_a.id: [task_for("A")], slot_b.id: [task_for("B")]}
        fake_suggestions.gate(slot_a.id)

        first = asyncio.create_task(manager.request(slot_a, skills))
        await asyncio.sleep(0)
        second = await manager.request(slot_b, skills)
        stale = await first

        assert stale.stale
        assert stale.tasks == []
        assert not second.stale
        assert [t.title for t in second.tasks] == ["B"]

    async def test_same_slot_requests_share_one_call(self, fake_suggestions, skills):
        manager = SuggestionRequestManager(fake_suggestions)
        slot = FreeSlot.between(0, 360, 420)
        fake_suggestions.responses = {slot.id: [task_for("A")]}
        gate = fake_suggestions.gate(slot.id)

        first = asyncio.create_task(manager.request(slot, skills))
        second = asyncio.create_task(manager.request(slot, skills))
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(first, second)

        assert fake_suggestions.calls == [slot.id]
        assert all(not r.stale and r.tasks for r in results)

    async def test_cancel_on_navigation_away(self, fake_suggestions, skills):
        manager = SuggestionRequestManager(fake_suggestions)
        slot = FreeSlot.between(0, 360, 420)
        fake_suggestions.responses = {slot.id: [task_for("A")]}
        fake_suggestions.gate(slot.id)

        pending = asyncio.create_task(manager.request(slot, skills))
        await asyncio.sleep(0)
        manager.cancel()
        result = await pending

        assert result.stale
        assert manager.current_slot_id is None

    async def test_empty_result_has_status(self, fake_suggestions, skills):
        manager = SuggestionRequestManager(fake_suggestions)

        result = await manager.request(FreeSlot.between(1, 360, 420), skills)

        assert result.is_empty
        assert not result.stale
        assert result.status
