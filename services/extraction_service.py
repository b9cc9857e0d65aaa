"""
Извлечение расписания из документа (PDF или текст) в занятые интервалы
"""

import io
import json
import logging
from typing import Any, List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from config import config
from core.models import BusyInterval
from core.normalizer import validate_intervals

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 200
MAX_PAGES = 20

EXTRACTION_PROMPT = """You are a timetable extraction engine.

From the text below, extract ONLY timetable entries.

Rules:
- Output ONLY valid JSON: {{"entries": [...]}}
- Use 24-hour time (HH:MM)
- Days must be Monday to Sunday
- Each entry must include: day, start, end, type
- If unsure, mark type as "Busy"

Text:
\"\"\"{text}\"\"\""""

class ExtractionError(Exception):
    """Ошибка извлечения расписания"""
    pass

def extract_text(document: bytes) -> str:
    """Текст документа: PDF через PyPDF2, иначе UTF-8"""
    if document[:5] == b"%PDF-":
        try:
            reader = PdfReader(io.BytesIO(document))
            pages = reader.pages[:MAX_PAGES]
            return "\n".join(page.extract_text() or "" for page in pages).strip()
        except (PdfReadError, ValueError, KeyError) as e:
            raise ExtractionError(f"Cannot read PDF: {e}")

    try:
        return document.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise ExtractionError(f"Document is neither PDF nor UTF-8 text: {e}")

def parse_entries(raw_text: str) -> Tuple[List[BusyInterval], List[str]]:
    """Разбор ответа модели: неизвестные дни и start >= end отбрасываются с предупреждением"""
    try:
        payload = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ExtractionError(f"Response is not JSON: {e}")

    entries: Any = payload.get("entries", []) if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise ExtractionError("Response has no entries list")

    busy_entries = []
    for entry in entries:
        if isinstance(entry, dict) and str(entry.get("type", "Busy")).lower() == "free":
            continue
        busy_entries.append(entry if isinstance(entry, dict) else {})

    return validate_intervals(busy_entries)

class ExtractionService:
    """Провайдер извлечения: extract(document) -> (интервалы, предупреждения)"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client
        self.model = model or config.ai.openai_model

        if self.client is None and config.ai.openai_api_key:
            self.client = AsyncOpenAI(
                api_key=config.ai.openai_api_key,
                timeout=config.ai.request_timeout
            )

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def extract(self, document: bytes) -> Tuple[List[BusyInterval], List[str]]:
        """Никогда не бросает: при ошибке пустой результат и предупреждение"""
        try:
            text = extract_text(document)
        except ExtractionError as e:
            logger.error(f"Text extraction failed: {e}")
            return [], [str(e)]

        if len(text) < MIN_TEXT_LENGTH:
            logger.warning(f"Document text too short: {len(text)} chars")
            return [], ["Document text too short"]

        if not self.enabled:
            return [], ["Extraction provider is not configured"]

        try:
            raw = await self._ask_model(text)
            intervals, warnings = parse_entries(raw)
        except ExtractionError as e:
            logger.error(f"Timetable extraction failed: {e}")
            return [], [f"Timetable extraction failed: {e}"]

        logger.info(f"📄 Extracted {len(intervals)} busy intervals ({len(warnings)} dropped)")
        return intervals, warnings

    async def _ask_model(self, text: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": EXTRACTION_PROMPT.format(text=text)}],
                max_tokens=config.ai.openai_max_tokens,
                temperature=0,
                response_format={"type": "json_object"}
            )
        except OpenAIError as e:
            raise ExtractionError(f"OpenAI API failed: {e}")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExtractionError("Empty response")
        return content

__all__ = ['ExtractionError', 'ExtractionService', 'extract_text', 'parse_entries', 'MIN_TEXT_LENGTH']
