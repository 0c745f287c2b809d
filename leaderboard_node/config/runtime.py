from __future__ import annotations

from dataclasses import dataclass
import os

from leaderboard_node.entities.score_record import ScoreUpdatePolicy


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class RuntimeSettings:
    store_backend: str
    top_k: int
    score_update_policy: ScoreUpdatePolicy
    admin_clear_enabled: bool
    store_retries: int
    store_retry_backoff_seconds: float
    api_host: str
    api_port: int
    log_level: str

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        store_backend = os.getenv("STORE_BACKEND", "postgres").strip().lower()
        if store_backend not in ("postgres", "memory"):
            raise ValueError(f"STORE_BACKEND must be 'postgres' or 'memory', got {store_backend!r}")

        top_k = int(os.getenv("LEADERBOARD_TOP_K", "10"))
        if top_k < 1:
            raise ValueError("LEADERBOARD_TOP_K must be >= 1")

        return cls(
            store_backend=store_backend,
            top_k=top_k,
            score_update_policy=ScoreUpdatePolicy(os.getenv("SCORE_UPDATE_POLICY", "latest").strip().lower()),
            admin_clear_enabled=_env_flag("LEADERBOARD_ADMIN_CLEAR_ENABLED"),
            store_retries=max(1, int(os.getenv("STORE_RETRIES", "3"))),
            store_retry_backoff_seconds=float(os.getenv("STORE_RETRY_BACKOFF_SECONDS", "0.2")),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
