from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from app_context import AppContext, LocationWeatherState, ThemeColor
from config import JsonConfigStore
from models import BrowserProfile, RecognitionConfig, SessionState
from recognizer import DashscopeRecognitionEngine
from weather import Coordinates, LocationWeather, parse_weather

DESKTOP = BrowserProfile(is_mobile=False, supports_recognition=True)
MOBILE = BrowserProfile(is_mobile=True, supports_recognition=True)


def _context(tmp_path: Path, profile: BrowserProfile = DESKTOP, **settings) -> AppContext:  # noqa: ANN003
    path = tmp_path / "config.json"
    path.write_text(json.dumps(settings), encoding="utf-8")
    return AppContext(config=JsonConfigStore(path=path), profile=profile)


def test_profile_detected_from_configured_user_agent(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"user_agent": "Mozilla/5.0 (Linux; Android 13) Chrome/120"}), encoding="utf-8")
    with patch("recognizer.engine_available", return_value=False):
        context = AppContext(config=JsonConfigStore(path=path))
    assert context.profile.is_android
    assert not context.settings.continuous


def test_language_resolves_auto_from_locale(tmp_path: Path) -> None:
    assert _context(tmp_path, locale="es-MX").language == "es-ES"
    assert _context(tmp_path, language="gu-IN").language == "gu-IN"


def test_theme_is_persisted(tmp_path: Path) -> None:
    context = _context(tmp_path, theme_color="not-a-colour")
    assert context.theme.color == ThemeColor.GREEN

    context.theme.set_color(ThemeColor.PURPLE)
    context.theme.set_dark_mode(True)

    config = context.config
    assert config.get_theme_color() == "purple"
    assert config.get_dark_mode() is True
    assert context.theme.primary == "#5a1b99"


def test_recovery_policy_uses_configured_timings(tmp_path: Path) -> None:
    policy = _context(tmp_path, MOBILE, mobile_auto_stop_s=0.8).recovery_policy()
    assert policy.mobile_auto_stop_s == 0.8
    assert policy.silence_timeout_s == 2.0

    policy = _context(tmp_path, silence_timeout_s=6).recovery_policy()
    assert policy.silence_timeout_s == 6.0


def test_engine_factory_passes_dashscope_key(tmp_path: Path) -> None:
    context = _context(tmp_path, api_keys={"dashscope": "ds-key"})
    engine = context.engine_factory(RecognitionConfig("hi-IN"))
    assert isinstance(engine, DashscopeRecognitionEngine)
    assert engine._api_key == "ds-key"


def test_controller_factory_builds_idle_controllers(tmp_path: Path) -> None:
    context = _context(tmp_path)
    controller = context.controller_factory()(language="en-IN")
    assert controller.state == SessionState.IDLE
    assert controller.config.language == "en-IN"
    assert controller.profile == DESKTOP


def test_location_weather_refresh(monkeypatch: pytest.MonkeyPatch) -> None:
    reading = parse_weather({"location": {"name": "Nashik"}, "current": {"temp_c": 24}})
    data = LocationWeather(coords=Coordinates(20.0, 73.8), weather=reading)
    monkeypatch.setattr("app_context.get_location_and_weather", lambda gps, key: data)

    state = LocationWeatherState(api_key="wx")
    state.refresh()

    assert state.data is data
    assert state.error is None
    assert not state.is_loading
    assert state.weather_context().location == "Nashik"


def test_location_weather_refresh_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("app_context.get_location_and_weather", lambda gps, key: None)

    state = LocationWeatherState()
    state.refresh()

    assert state.data is None
    assert state.error == "Failed to fetch location and weather data"
    assert state.weather_context() is None


def test_new_chat_session_uses_weather(tmp_path: Path) -> None:
    context = _context(tmp_path)
    session = context.new_chat_session()
    with patch.object(context.chat_service, "generate_response", return_value="ok") as generate:
        session.send_message("rain?")
    generate.assert_called_once_with("rain?", None)
