"""Tests for services/extraction_service.py: timetable extraction

PDF text extraction is tested via a mocked PdfReader; the OpenAI client is
mocked as well.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from openai import OpenAIError

from config import config
from services.extraction_service import (
    MIN_TEXT_LENGTH,
    ExtractionError,
    ExtractionService,
    extract_text,
    parse_entries,
)

TIMETABLE_TEXT = (
    "Spring semester timetable. Monday 09:00-10:30 Calculus I, room 204. "
    "Monday 13:00-14:30 Physics lab. Wednesday 11:00-12:00 Academic writing. "
    "Thursday 08:00-09:30 Data structures lecture, building C. Friday is reserved for self study."
)

ENTRIES = {
    "entries": [
        {"day": "Monday", "start": "09:00", "end": "10:30", "type": "Busy"},
        {"day": "Wednesday", "start": "11:00", "end": "12:00", "type": "Busy"},
        {"day": "Funday", "start": "10:00", "end": "11:00", "type": "Busy"},
        {"day": "Thursday", "start": "09:30", "end": "08:00", "type": "Busy"},
        {"day": "Friday", "start": "08:00", "end": "18:00", "type": "Free"},
    ]
}


def mock_client(content=None, error=None):
    client = MagicMock()
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return client


@pytest.fixture(autouse=True)
def no_api_key(monkeypatch):
    monkeypatch.setattr(config.ai, "openai_api_key", None)


class TestExtractText:

    def test_plain_text_is_decoded(self):
        assert extract_text("  Monday 09:00 Calculus \n".encode("utf-8")) == "Monday 09:00 Calculus"

    def test_pdf_pages_are_joined(self):
        pages = [MagicMock(), MagicMock()]
        pages[0].extract_text.return_value = "Monday 09:00-10:30"
        pages[1].extract_text.return_value = None
        reader = MagicMock(pages=pages)

        with patch("services.extraction_service.PdfReader", return_value=reader):
            text = extract_text(b"%PDF-1.7 fake body")

        assert text == "Monday 09:00-10:30"

    def test_binary_non_pdf_raises(self):
        with pytest.raises(ExtractionError):
            extract_text(b"\xff\xfe\xfa\x00garbage")

    def test_timetable_fixture_is_long_enough(self):
        assert len(TIMETABLE_TEXT) >= MIN_TEXT_LENGTH


class TestParseEntries:

    def test_valid_entries_become_busy_intervals(self):
        intervals, warnings = parse_entries(json.dumps(ENTRIES))

        assert [(i.day, i.from_minute, i.to_minute) for i in intervals] == [(0, 540, 630), (2, 660, 720)]
        assert len(warnings) == 2

    def test_free_entries_are_not_busy(self):
        intervals, _ = parse_entries(json.dumps({"entries": [ENTRIES["entries"][4]]}))

        assert intervals == []

    def test_bare_list_is_accepted(self):
        intervals, _ = parse_entries(json.dumps(ENTRIES["entries"][:1]))

        assert len(intervals) == 1

    def test_not_json(self):
        with pytest.raises(ExtractionError):
            parse_entries("```json nope```")


class TestExtractionService:

    async def test_short_text_yields_warning_only(self):
        service = ExtractionService(client=mock_client(json.dumps(ENTRIES)))

        intervals, warnings = await service.extract(b"Mon 9-10")

        assert intervals == []
        assert warnings == ["Document text too short"]
        service.client.chat.completions.create.assert_not_awaited()

    async def test_extract_with_model(self):
        service = ExtractionService(client=mock_client(json.dumps(ENTRIES)))

        intervals, warnings = await service.extract(TIMETABLE_TEXT.encode("utf-8"))

        assert len(intervals) == 2
        assert len(warnings) == 2

    async def test_provider_failure_degrades_to_empty(self):
        service = ExtractionService(client=mock_client(error=OpenAIError("timeout")))

        intervals, warnings = await service.extract(TIMETABLE_TEXT.encode("utf-8"))

        assert intervals == []
        assert "failed" in warnings[0]

    async def test_not_configured(self):
        service = ExtractionService()

        intervals, warnings = await service.extract(TIMETABLE_TEXT.encode("utf-8"))

        assert not service.enabled
        assert intervals == []
        assert warnings
