from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

MODULE_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATA_DIR = MODULE_ROOT / "data"
DEFAULT_RESUME_TEMPLATE_PATH = MODULE_ROOT / "templates" / "resume-template.tex"
DEFAULT_LATEX_SERVICE_URL = "https://latex.ytotech.com/builds/sync"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_RELEVANCE_PROMPT = (
    "You are screening Telegram channel posts. Answer YES if the post advertises a "
    "concrete job opening (software, engineering or similar tech role), otherwise "
    "answer NO. Reply with a single word: YES or NO."
)

RUN_REQUIRED_ENVS = (
    "TELEGRAM_CHANNELS",
    "GEMINI_API_KEY",
)

PROCESS_REQUIRED_ENVS = ("GEMINI_API_KEY",)


class Settings(BaseModel):
    telegram_channels_csv: str = ""
    poll_interval_minutes: int = Field(default=30, ge=1)
    channel_fetch_delay_seconds: float = Field(default=1.0, ge=0.0)
    request_timeout_seconds: float = 20.0
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    keywords_csv: str | None = None
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    relevance_prompt: str = DEFAULT_RELEVANCE_PROMPT
    rate_limit_delay_seconds: float = Field(default=10.0, ge=0.0)
    storage_type: str = "csv"
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)
    notion_token: str = ""
    notion_database_id: str = ""
    notion_version: str = "2022-06-28"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    resume_generate_enabled: bool = False
    resume_template_path: Path = Field(default=DEFAULT_RESUME_TEMPLATE_PATH)
    latex_service_url: str = DEFAULT_LATEX_SERVICE_URL
    log_level: str = "INFO"

    @field_validator("gemini_base_url", "latex_service_url")
    @classmethod
    def _validate_service_url(cls, value: str) -> str:
        if value and not value.startswith("https://"):
            raise ValueError("service URLs must use https://")
        return value.rstrip("/")

    @field_validator("storage_type")
    @classmethod
    def _normalize_storage_type(cls, value: str) -> str:
        # Unknown values are kept; the storage router degrades them to the fallback.
        return value.strip().lower()

    @property
    def channels(self) -> list[str]:
        return parse_channels_csv(self.telegram_channels_csv)

    @property
    def csv_path(self) -> Path:
        return self.data_dir / "job_listings.csv"

    @property
    def json_path(self) -> Path:
        return self.data_dir / "job_listings.json"

    @property
    def sqlite_path(self) -> Path:
        return self.data_dir / "jobs.db"


def parse_channels_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_value(environ: Mapping[str, str], key: str) -> str:
    return environ.get(key, "").strip()


def _env_flag(environ: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = _env_value(environ, key).lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def missing_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> list[str]:
    source = os.environ if environ is None else environ
    return [key for key in required if not _env_value(source, key)]


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    source = os.environ if environ is None else environ
    try:
        payload = {
            "telegram_channels_csv": _env_value(source, "TELEGRAM_CHANNELS"),
            "poll_interval_minutes": int(_env_value(source, "POLL_INTERVAL_MINUTES") or "30"),
            "channel_fetch_delay_seconds": float(
                _env_value(source, "CHANNEL_FETCH_DELAY_SECONDS") or "1"
            ),
            "request_timeout_seconds": float(_env_value(source, "REQUEST_TIMEOUT_SECONDS") or "20"),
            "keywords_csv": _env_value(source, "KEYWORDS_CSV") or None,
            "gemini_api_key": _env_value(source, "GEMINI_API_KEY"),
            "gemini_model": _env_value(source, "GEMINI_MODEL") or "gemini-1.5-flash",
            "gemini_base_url": _env_value(source, "GEMINI_BASE_URL") or DEFAULT_GEMINI_BASE_URL,
            "relevance_prompt": _env_value(source, "RELEVANCE_PROMPT") or DEFAULT_RELEVANCE_PROMPT,
            "rate_limit_delay_seconds": float(_env_value(source, "RATE_LIMIT_DELAY_SECONDS") or "10"),
            "storage_type": _env_value(source, "STORAGE_TYPE") or "csv",
            "data_dir": Path(_env_value(source, "DATA_DIR") or DEFAULT_DATA_DIR),
            "notion_token": _env_value(source, "NOTION_TOKEN"),
            "notion_database_id": _env_value(source, "NOTION_DATABASE_ID"),
            "notion_version": _env_value(source, "NOTION_VERSION") or "2022-06-28",
            "cloudinary_cloud_name": _env_value(source, "CLOUDINARY_CLOUD_NAME"),
            "cloudinary_api_key": _env_value(source, "CLOUDINARY_API_KEY"),
            "cloudinary_api_secret": _env_value(source, "CLOUDINARY_API_SECRET"),
            "resume_generate_enabled": _env_flag(source, "RESUME_GENERATE_ENABLED"),
            "resume_template_path": Path(
                _env_value(source, "RESUME_TEMPLATE_PATH") or DEFAULT_RESUME_TEMPLATE_PATH
            ),
            "latex_service_url": _env_value(source, "LATEX_SERVICE_URL") or DEFAULT_LATEX_SERVICE_URL,
            "log_level": (_env_value(source, "LOG_LEVEL") or "INFO").upper(),
        }
        if _env_value(source, "USER_AGENT"):
            payload["user_agent"] = _env_value(source, "USER_AGENT")
        return Settings(**payload)
    except (ValidationError, ValueError) as exc:
        raise ValueError(str(exc)) from exc


def assert_required_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> None:
    missing = missing_envs(required, environ)
    if missing:
        keys = ", ".join(missing)
        raise ValueError(f"Missing required environment variables: {keys}")


def mask_secret(value: str, visible_prefix: int = 3, visible_suffix: int = 2) -> str:
    if not value:
        return ""
    if len(value) <= visible_prefix + visible_suffix:
        return "*" * len(value)
    hidden = "*" * (len(value) - visible_prefix - visible_suffix)
    return f"{value[:visible_prefix]}{hidden}{value[-visible_suffix:]}"
