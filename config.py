"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

GROQ = "groq"
WEATHER = "weather"
MARKET = "market"
DASHSCOPE = "dashscope"

_ENV_KEYS = {
    GROQ: "GROQ_API_KEY",
    WEATHER: "WEATHER_API_KEY",
    MARKET: "MARKET_API_KEY",
    DASHSCOPE: "DASHSCOPE_API_KEY",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "krishi_voice" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self, name: str) -> str:
        keys = self._read_all().get("api_keys", {})
        value = str(keys.get(name, "")) if isinstance(keys, dict) else ""
        return value or os.getenv(_ENV_KEYS.get(name, ""), "")

    def set_api_key(self, name: str, key: str) -> None:
        data = self._read_all()
        keys = data.get("api_keys")
        if not isinstance(keys, dict):
            keys = {}
        keys[name] = key
        data["api_keys"] = keys
        self._write_all(data)

    def get_language(self) -> str:
        return str(self._read_all().get("language", "auto"))

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def get_user_agent(self) -> str:
        return str(self._read_all().get("user_agent", ""))

    def set_user_agent(self, user_agent: str) -> None:
        self._set("user_agent", user_agent)

    def get_locale(self) -> str:
        return str(self._read_all().get("locale", ""))

    def get_silence_timeout_s(self) -> float | None:
        return self._get_float("silence_timeout_s")

    def get_mobile_auto_stop_s(self) -> float:
        value = self._get_float("mobile_auto_stop_s")
        return 0.5 if value is None else value

    def get_theme_color(self) -> str:
        return str(self._read_all().get("theme_color", "green"))

    def set_theme_color(self, color: str) -> None:
        self._set("theme_color", color)

    def get_dark_mode(self) -> bool:
        return bool(self._read_all().get("dark_mode", False))

    def set_dark_mode(self, enabled: bool) -> None:
        self._set("dark_mode", enabled)

    def _get_float(self, key: str) -> float | None:
        value = self._read_all().get(key)
        try:
            return None if value is None else float(value)
        except (TypeError, ValueError):
            return None

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
