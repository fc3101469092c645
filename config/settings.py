from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from converter.errors import ConfigurationError


load_dotenv()

DEFAULT_STATIC_DIR = Path(__file__).resolve().parent.parent / "public"

# Levels understood by both logging and uvicorn.
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def normalize_log_level(value: Optional[str]) -> str:
    """Map LOG_LEVEL onto a level name; unknown values fall back to INFO."""
    level = (value or "").strip().upper()
    level = LOG_LEVEL_ALIASES.get(level, level)
    return level if level in LOG_LEVELS else "INFO"


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8080"))
        self.log_level: str = normalize_log_level(os.getenv("LOG_LEVEL", "INFO"))
        self.firebase_key: Optional[str] = os.getenv("FIREBASE_KEY")
        self.history_collection: str = os.getenv("HISTORY_COLLECTION", "history")
        self.static_dir: Path = Path(os.getenv("STATIC_DIR", str(DEFAULT_STATIC_DIR)))
        self.firebase_api_key: Optional[str] = os.getenv("FIREBASE_API_KEY")
        self.rates_api_url: str = os.getenv("RATES_API_URL", "https://api.frankfurter.app")
        self.api_base_url: str = os.getenv("CONVERTER_API_URL", "http://127.0.0.1:8080")
        self.http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10.0"))

    @property
    def is_dev(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}

    def service_account_info(self) -> Dict[str, Any]:
        """Parse the FIREBASE_KEY service-account JSON."""
        if not self.firebase_key:
            raise ConfigurationError(
                "FIREBASE_KEY not set. Provide the service-account JSON in environment or .env"
            )
        try:
            info = json.loads(self.firebase_key)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"FIREBASE_KEY is not valid JSON: {exc}") from exc
        if not isinstance(info, dict):
            raise ConfigurationError("FIREBASE_KEY must be a JSON object")
        return info


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
