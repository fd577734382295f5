"""Environment driven configuration for FlowClip."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE, DEFAULT_VISION_MODEL, VISION_CACHE_MAX_AGE


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(slots=True)
class FlowClipConfig:
    """Credentials and tunables resolved once at startup.

    A new configuration (for example after the user enters an API key) means
    building a new instance and a new orchestrator around it.
    """

    openai_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    serpapi_key: Optional[str] = None
    db_path: Path = Path("flowclip.db")
    capture_dir: Path = Path("captures")
    search_delay: float = 1.0
    vision_cache_seconds: float = VISION_CACHE_MAX_AGE
    log_level: str = "INFO"

    @property
    def is_configured(self) -> bool:
        return bool(self.openai_api_key and self.openai_api_key.strip())

    @classmethod
    def from_env(cls) -> "FlowClipConfig":
        api_key = os.getenv("FLOWCLIP_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY")
        return cls(
            openai_api_key=api_key or None,
            model=os.getenv("FLOWCLIP_MODEL", DEFAULT_MODEL),
            vision_model=os.getenv("FLOWCLIP_VISION_MODEL", DEFAULT_VISION_MODEL),
            temperature=_env_float("FLOWCLIP_TEMPERATURE", DEFAULT_TEMPERATURE),
            serpapi_key=os.getenv("SERPAPI_KEY") or None,
            db_path=Path(os.getenv("FLOWCLIP_DB_PATH", "flowclip.db")).expanduser(),
            capture_dir=Path(os.getenv("FLOWCLIP_CAPTURE_DIR", "captures")).expanduser(),
            search_delay=max(0.0, _env_float("FLOWCLIP_SEARCH_DELAY", 1.0)),
            vision_cache_seconds=_env_float("FLOWCLIP_VISION_CACHE_SECONDS", VISION_CACHE_MAX_AGE),
            log_level=os.getenv("FLOWCLIP_LOG_LEVEL", "INFO").upper(),
        )
