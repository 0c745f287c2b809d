"""Relays chat and sentence-analysis requests to Gemini and OpenAI.

Clients are built once from an explicit `LLMSettings` at app startup and
handed to request handlers; nothing here keeps module-level state.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any

import requests

from leaderboard_node.config.llm import LLMSettings
from leaderboard_node.errors import LLMGatewayError
from leaderboard_node.services.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    TUTOR_SYSTEM_PROMPT,
    build_analysis_prompt,
)

logger = logging.getLogger(__name__)


def _post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    *,
    timeout: float,
    retries: int,
    backoff: float = 1.0,
) -> dict[str, Any]:
    for attempt in range(retries):
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error("Attempt %d/%d to %s failed: %s", attempt + 1, retries, url, e)
            if attempt < retries - 1:
                time.sleep(backoff * (attempt + 1))
            else:
                raise LLMGatewayError(f"LLM provider request failed: {e}") from e
    raise LLMGatewayError("LLM provider request failed")


class GeminiClient:
    def __init__(self, api_key: str, model: str, base_url: str, timeout: float = 30.0, retries: int = 2):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.retries = retries

    def generate(self, contents: list[dict[str, Any]]) -> str:
        if not self.api_key:
            raise LLMGatewayError("GEMINI_API_KEY is not configured")

        data = _post_json(
            f"{self.base_url}/models/{self.model}:generateContent",
            {"contents": contents},
            {"x-goog-api-key": self.api_key},
            timeout=self.timeout,
            retries=self.retries,
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMGatewayError("Gemini response has no candidates") from exc
        return "".join(part.get("text", "") for part in parts)


class OpenAIClient:
    def __init__(self, api_key: str, model: str, base_url: str, timeout: float = 30.0, retries: int = 2):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.retries = retries

    def complete(self, messages: list[dict[str, Any]], response_format: dict[str, str] | None = None) -> str:
        if not self.api_key:
            raise LLMGatewayError("OPENAI_API_KEY is not configured")

        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        if response_format is not None:
            payload["response_format"] = response_format

        data = _post_json(
            f"{self.base_url}/chat/completions",
            payload,
            {"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            retries=self.retries,
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMGatewayError("OpenAI response has no choices") from exc


class ChatService:
    def __init__(self, gemini: GeminiClient, openai: OpenAIClient, system_prompt: str = TUTOR_SYSTEM_PROMPT):
        self._gemini = gemini
        self._openai = openai
        self._system_prompt = system_prompt

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "ChatService":
        return cls(
            gemini=GeminiClient(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                base_url=settings.gemini_base_url,
                timeout=settings.timeout_seconds,
                retries=settings.retries,
            ),
            openai=OpenAIClient(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                base_url=settings.openai_base_url,
                timeout=settings.timeout_seconds,
                retries=settings.retries,
            ),
        )

    def chat_gemini(self, message: str, history: list[dict[str, Any]] | None = None) -> str:
        # Gemini has no system role here; the prompt rides as the first user turn.
        contents = [
            {"role": "user", "parts": [{"text": self._system_prompt}]},
            *(history or []),
            {"role": "user", "parts": [{"text": message}]},
        ]
        return self._gemini.generate(contents)

    def chat_openai(self, message: str, history: list[dict[str, Any]] | None = None) -> str:
        messages = [
            {"role": "system", "content": self._system_prompt},
            *(history or []),
            {"role": "user", "content": message},
        ]
        return self._openai.complete(messages)

    def analyze_sentence(self, sentence: str) -> dict[str, Any]:
        content = self._openai.complete(
            [
                {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": build_analysis_prompt(sentence)},
            ],
            response_format={"type": "json_object"},
        )
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise LLMGatewayError("Sentence analysis did not return valid JSON") from exc
