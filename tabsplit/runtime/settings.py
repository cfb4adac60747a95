"""Environment-driven configuration for the receipt pipeline.

Environment variables:
    TABSPLIT_EXTRACTION_MODE:    "structured" (default) or "text"
    TABSPLIT_EXTRACTION_URL:     extraction endpoint receiving {"image": <base64>}
    TABSPLIT_EXTRACTION_TIMEOUT: seconds before an extraction call is abandoned
    SUPABASE_URL:                base URL of the hosted data/storage service
    SUPABASE_ANON_KEY:           public API key sent with every request
    TABSPLIT_STORAGE_BUCKET:     object storage bucket for receipt originals
    TABSPLIT_DATA_DIR:           local fallback storage directory
    OPENAI_API_KEY:              key for the built-in vision extraction function
    OPENAI_MODEL:                vision model name (default gpt-4o)
    OPENAI_BASE_URL:             OpenAI-compatible API base URL
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

ExtractionMode = Literal["structured", "text"]

EXTRACTION_MODES: tuple[ExtractionMode, ...] = ("structured", "text")
DEFAULT_EXTRACTION_URL = "http://localhost:8000/functions/process-receipt"


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, usually built with ``Settings.from_env()``."""

    extraction_mode: ExtractionMode = "structured"
    extraction_url: str = DEFAULT_EXTRACTION_URL
    extraction_timeout: float = 60.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    storage_bucket: str = "receipts"
    openai_api_key: str | None = field(default=None, repr=False)
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"

    @property
    def remote_enabled(self) -> bool:
        """True when the hosted data and storage service is configured."""
        return bool(self.supabase_url and self.supabase_anon_key)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env

        mode = env.get("TABSPLIT_EXTRACTION_MODE", "structured").strip().lower()
        if mode not in EXTRACTION_MODES:
            raise ValueError(f"TABSPLIT_EXTRACTION_MODE must be one of {EXTRACTION_MODES}, got {mode!r}")

        return cls(
            extraction_mode=mode,  # type: ignore[arg-type]
            extraction_url=env.get("TABSPLIT_EXTRACTION_URL", DEFAULT_EXTRACTION_URL),
            extraction_timeout=_env_float(env, "TABSPLIT_EXTRACTION_TIMEOUT", 60.0),
            supabase_url=(env.get("SUPABASE_URL") or None),
            supabase_anon_key=(env.get("SUPABASE_ANON_KEY") or None),
            storage_bucket=env.get("TABSPLIT_STORAGE_BUCKET", "receipts"),
            openai_api_key=(env.get("OPENAI_API_KEY") or None),
            openai_model=env.get("OPENAI_MODEL", "gpt-4o"),
            openai_base_url=env.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the singleton Settings instance, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next ``get_settings()`` re-reads env."""
    global _settings
    _settings = None
