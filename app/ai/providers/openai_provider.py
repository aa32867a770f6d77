from __future__ import annotations

import json
import os
from typing import Any, Optional, Sequence

from openai import AsyncOpenAI

from app.ai.types import ChatMessage
from app.core.errors import ExtractionFailure


class OpenAIProvider:
    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 8.0,
        max_retries: int = 0,
        temperature: float = 0.0,
        max_output_tokens: int = 400,
    ):
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise RuntimeError("OPENAI_API_KEY is missing")

        self._client = AsyncOpenAI(
            api_key=key,
            base_url=(base_url or os.getenv("OPENAI_BASE_URL") or None),
            timeout=timeout_s,
            max_retries=max_retries,
        )

    @property
    def model(self) -> str:
        return self._model

    async def _complete(self, messages: Sequence[ChatMessage], **extra: Any) -> str:
        payload = [{"role": m.role, "content": m.content} for m in messages]
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=payload,
            temperature=self._temperature,
            max_tokens=self._max_output_tokens,
            **extra,
        )
        content = response.choices[0].message.content if response.choices else ""
        return (content or "").strip()

    async def complete_json(self, messages: Sequence[ChatMessage]) -> dict[str, Any]:
        content = await self._complete(messages, response_format={"type": "json_object"})
        if not content:
            raise ExtractionFailure("Model returned an empty response.", code="empty_response")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ExtractionFailure(f"Model returned malformed JSON: {exc}", code="invalid_json") from exc
        if not isinstance(parsed, dict):
            raise ExtractionFailure("Model returned JSON that is not an object.", code="invalid_schema")
        return parsed

    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        return await self._complete(messages)
