"""Async client for OpenAI-compatible chat completions producing flashcards."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Mapping

import httpx

from .core.outcomes import RateLimited, Success, TaskOutcome
from .core.rate_limiter import requests_per_second
from .errors import CompletionError, RateLimitedError
from .records import TranslationEntry

FIELDS = ("sourceText", "sourceContext", "targetText", "targetContext")

FLASHCARD_SCHEMA: Dict[str, Any] = {
    "name": "flashcards_response",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "flashcards": {
                "type": "array",
                "description": "Flashcards mapping the source word to its translations, one per usage context",
                "items": {
                    "type": "object",
                    "properties": {
                        "sourceText": {"type": "string", "description": "The word in the source language"},
                        "sourceContext": {
                            "type": "string",
                            "description": "A sentence in the source language that uses the word",
                        },
                        "targetText": {"type": "string", "description": "The translated word"},
                        "targetContext": {
                            "type": "string",
                            "description": "The context sentence translated into the target language",
                        },
                    },
                    "required": list(FIELDS),
                    "additionalProperties": False,
                },
            },
        },
        "required": ["flashcards"],
        "additionalProperties": False,
    },
}


def strip_unsupported_schema_keys(value: Any) -> Any:
    """Return a copy of ``value`` without ``$schema`` and boolean ``additionalProperties``.

    Some OpenAI-compatible gateways (Gemini-backed ones in particular) reject
    schemas that carry either key.
    """

    if isinstance(value, list):
        return [strip_unsupported_schema_keys(item) for item in value]
    if not isinstance(value, dict):
        return value
    cleaned: Dict[str, Any] = {}
    for key, item in value.items():
        if key == "$schema" or (key == "additionalProperties" and isinstance(item, bool)):
            continue
        cleaned[key] = strip_unsupported_schema_keys(item)
    return cleaned


class CompletionClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        prompt: str,
        timeout: float,
        logger,
        key_info_url: str | None = None,
        strict_schema: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.prompt = prompt
        self.key_info_url = key_info_url
        self.json_schema = (
            FLASHCARD_SCHEMA if strict_schema else strip_unsupported_schema_keys(FLASHCARD_SCHEMA)
        )
        self.logger = logger
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def get_flashcards(self, word: str) -> List[TranslationEntry]:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.prompt},
                {"role": "user", "content": word},
            ],
            "response_format": {"type": "json_schema", "json_schema": self.json_schema},
        }
        start = time.perf_counter()
        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.HTTPError as exc:
            raise CompletionError(f"HTTPError: {exc}") from exc
        elapsed = time.perf_counter() - start

        if response.status_code == 429:
            raise RateLimitedError(f"{self.base_url} responded with HTTP 429")
        if response.status_code >= 400:
            self.logger.error("%s responded with HTTP %s", self.base_url, response.status_code)
            raise CompletionError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise CompletionError("Completion response is not JSON") from exc
        self._raise_for_error_payload(data)
        self.logger.debug("%s answered %r in %.2fs", self.model, word, elapsed)

        content = self.extract_text(data)
        if not content:
            raise CompletionError("No content in response")
        return parse_flashcards(content)

    async def fetch_requests_per_second(self) -> float:
        """Derive the current request ceiling from the key-info endpoint."""

        if not self.key_info_url:
            raise CompletionError("No key info endpoint configured")
        response = await self._client.get(self.key_info_url)
        if response.status_code >= 400:
            raise CompletionError(
                f"Failed to fetch auth key info: HTTP {response.status_code} {response.reason_phrase}"
            )
        data = response.json()
        rate_limit = (data.get("data") or {}).get("rate_limit") if isinstance(data, Mapping) else None
        if not isinstance(rate_limit, Mapping) or "requests" not in rate_limit:
            raise CompletionError("Key info response has no rate_limit section")
        return requests_per_second(rate_limit["requests"], str(rate_limit.get("interval", "")))

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def extract_text(payload: Mapping[str, Any]) -> str:
        choices = payload.get("choices") if isinstance(payload, Mapping) else None
        if isinstance(choices, list) and choices:
            message = choices[0]
            if isinstance(message, Mapping):
                content = message.get("message")
                if isinstance(content, Mapping):
                    text = content.get("content")
                    if isinstance(text, str):
                        return text.strip()
        return ""

    @staticmethod
    def _raise_for_error_payload(data: Any) -> None:
        # Some gateways report provider errors inside a 200 response.
        error = data.get("error") if isinstance(data, Mapping) else None
        if not isinstance(error, Mapping):
            return
        message = str(error.get("message") or "Provider error")
        if str(error.get("code")) == "429":
            raise RateLimitedError(message)
        raise CompletionError(message)


def parse_flashcards(content: str) -> List[TranslationEntry]:
    """Parse the model's JSON answer into translation entries.

    Accepts either the schema's ``{"flashcards": [...]}`` object or a bare
    array of flashcards.
    """

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise CompletionError(f"ParseError: {exc}") from exc
    if isinstance(parsed, Mapping):
        parsed = parsed.get("flashcards")
    if not isinstance(parsed, list):
        raise CompletionError("Completion payload is not a list of flashcards")

    entries: List[TranslationEntry] = []
    for index, item in enumerate(parsed):
        if not isinstance(item, Mapping) or any(not isinstance(item.get(name), str) for name in FIELDS):
            raise CompletionError(f"Flashcard #{index} is missing required fields")
        entries.append(
            TranslationEntry(
                source_text=item["sourceText"].strip(),
                source_context=item["sourceContext"].strip(),
                target_text=item["targetText"].strip(),
                target_context=item["targetContext"].strip(),
            )
        )
    return entries


def completion_task(client: CompletionClient, word: str):
    """Wrap one completion call as a task for :class:`~lexideck.core.task_queue.TaskQueue`."""

    async def _task() -> TaskOutcome:
        try:
            return Success(await client.get_flashcards(word))
        except RateLimitedError as exc:
            return RateLimited(exc)

    return _task


__all__ = [
    "CompletionClient",
    "FLASHCARD_SCHEMA",
    "completion_task",
    "parse_flashcards",
    "strip_unsupported_schema_keys",
]
