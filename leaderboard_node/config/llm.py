from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class LLMSettings:
    gemini_api_key: str
    gemini_model: str
    gemini_base_url: str
    openai_api_key: str
    openai_model: str
    openai_base_url: str
    timeout_seconds: float
    retries: int

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            gemini_base_url=os.getenv(
                "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
            ).rstrip("/"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
            retries=max(1, int(os.getenv("LLM_RETRIES", "2"))),
        )
