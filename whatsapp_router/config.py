"""Application configuration handling."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent / ".env"
load_dotenv(ENV_PATH, encoding="utf-8-sig")


def _env(key: str, default: str | None = None) -> str:
    value = os.getenv(key, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


def _env_optional(key: str) -> Optional[str]:
    value = os.getenv(key, "").strip()
    return value or None


def _env_int(key: str, default: int | None = None) -> int:
    value = _env(key, str(default) if default is not None else None)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RuntimeError(f"Environment variable {key} must be an integer") from None


def _env_float(key: str, default: float | None = None) -> float:
    value = _env(key, str(default) if default is not None else None)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RuntimeError(f"Environment variable {key} must be a number") from None


@dataclass(frozen=True)
class Settings:
    groq_api_key: str
    groq_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2048
    llm_timeout: float = 30.0
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_bucket: str = "whatsapp-media"
    whatsapp_token: Optional[str] = None
    phone_number_id: Optional[str] = None
    whatsapp_business_account_id: Optional[str] = None
    verify_token: str = ""
    whatsapp_timeout: float = 15.0
    media_probe_timeout: float = 10.0
    default_country_prefix: str = "+242"
    send_pacing_seconds: float = 1.0
    log_level: str = "INFO"

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            groq_api_key=_env("GROQ_API_KEY"),
            groq_model=_env("GROQ_MODEL", cls.groq_model),
            llm_temperature=_env_float("LLM_TEMPERATURE", cls.llm_temperature),
            llm_max_tokens=_env_int("LLM_MAX_TOKENS", cls.llm_max_tokens),
            llm_timeout=_env_float("LLM_TIMEOUT", cls.llm_timeout),
            supabase_url=_env_optional("SUPABASE_URL"),
            supabase_key=_env_optional("SUPABASE_KEY"),
            storage_bucket=_env("SUPABASE_STORAGE_BUCKET", cls.storage_bucket),
            whatsapp_token=_env_optional("WHATSAPP_TOKEN"),
            phone_number_id=_env_optional("WHATSAPP_PHONE_NUMBER_ID"),
            whatsapp_business_account_id=_env_optional("WHATSAPP_BUSINESS_ACCOUNT_ID"),
            verify_token=_env("WHATSAPP_VERIFY_TOKEN", ""),
            whatsapp_timeout=_env_float("WHATSAPP_TIMEOUT", cls.whatsapp_timeout),
            media_probe_timeout=_env_float("MEDIA_PROBE_TIMEOUT", cls.media_probe_timeout),
            default_country_prefix=_env("DEFAULT_COUNTRY_PREFIX", cls.default_country_prefix),
            send_pacing_seconds=_env_float("SEND_PACING_SECONDS", cls.send_pacing_seconds),
            log_level=_env("LOG_LEVEL", cls.log_level).upper(),
        )
