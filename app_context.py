"""Application-wide context built once at startup and passed to screens."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional

from capability import detect, get_optimal_speech_settings, resolve_language
from chat_service import AgriculturalChatService, ChatSession, WeatherContext
from config import DASHSCOPE, GROQ, WEATHER, JsonConfigStore
from interfaces import Scheduler
from models import BrowserProfile, RecognitionConfig
from recognizer import DashscopeRecognitionEngine
from recorder import SoundDeviceMicrophone
from recovery import RecoveryPolicy
from voice_binding import ControllerFactory, make_controller_factory
from weather import GpsProvider, LocationWeather, get_location_and_weather, to_weather_context


class ThemeColor(str, Enum):
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    ORANGE = "orange"
    RED = "red"
    PINK = "pink"
    GRAY = "gray"
    SLATE = "slate"


# Primary colour per theme, as hex for Qt style sheets.
THEME_PRIMARY = {
    ThemeColor.GREEN: "#1d6b1d",
    ThemeColor.BLUE: "#0156b0",
    ThemeColor.PURPLE: "#5a1b99",
    ThemeColor.ORANGE: "#ae4f04",
    ThemeColor.RED: "#a50d0d",
    ThemeColor.PINK: "#a0125a",
    ThemeColor.GRAY: "#3a3e46",
    ThemeColor.SLATE: "#30405a",
}


class ThemeState:
    def __init__(self, config: JsonConfigStore) -> None:
        self._config = config
        try:
            self.color = ThemeColor(config.get_theme_color())
        except ValueError:
            self.color = ThemeColor.GREEN
        self.dark_mode = config.get_dark_mode()

    @property
    def primary(self) -> str:
        return THEME_PRIMARY[self.color]

    def set_color(self, color: ThemeColor) -> None:
        self.color = color
        self._config.set_theme_color(color.value)

    def set_dark_mode(self, enabled: bool) -> None:
        self.dark_mode = enabled
        self._config.set_dark_mode(enabled)


class LocationWeatherState:
    """Last known location and weather; ``refresh`` never raises."""

    def __init__(self, api_key: str = "", gps: Optional[GpsProvider] = None) -> None:
        self._api_key = api_key
        self._gps = gps
        self._lock = threading.Lock()
        self.data: Optional[LocationWeather] = None
        self.error: Optional[str] = None
        self.is_loading = False

    def refresh(self) -> None:
        with self._lock:
            self.is_loading = True
            self.error = None
        data = get_location_and_weather(self._gps, self._api_key)
        with self._lock:
            self.data = data
            if data is None:
                self.error = "Failed to fetch location and weather data"
            self.is_loading = False

    def weather_context(self) -> Optional[WeatherContext]:
        data = self.data
        if data is None or data.weather is None:
            return None
        return to_weather_context(data.weather)


class AppContext:
    def __init__(
        self,
        config: Optional[JsonConfigStore] = None,
        profile: Optional[BrowserProfile] = None,
        scheduler: Optional[Scheduler] = None,
        gps: Optional[GpsProvider] = None,
    ) -> None:
        self.config = config or JsonConfigStore()
        self.profile = profile or detect(self.config.get_user_agent())
        self.locale = self.config.get_locale()
        self.settings = get_optimal_speech_settings(self.profile, self.locale)
        self.scheduler = scheduler
        self.theme = ThemeState(self.config)
        self.location_weather = LocationWeatherState(self.config.get_api_key(WEATHER), gps)
        self.chat_service = AgriculturalChatService(api_key=self.config.get_api_key(GROQ))
        self.microphone = SoundDeviceMicrophone()

    @property
    def language(self) -> str:
        return resolve_language(self.config.get_language(), self.locale)

    def engine_factory(self, config: RecognitionConfig) -> DashscopeRecognitionEngine:
        return DashscopeRecognitionEngine(config, api_key=self.config.get_api_key(DASHSCOPE))

    def recovery_policy(self) -> RecoveryPolicy:
        silence = self.config.get_silence_timeout_s()
        return RecoveryPolicy(
            self.profile,
            mobile_auto_stop_s=self.config.get_mobile_auto_stop_s(),
            silence_timeout_s=self.settings.silence_timeout_s if silence is None else silence,
        )

    def controller_factory(self) -> ControllerFactory:
        return make_controller_factory(
            self.profile,
            self.engine_factory,
            self.microphone,
            self.scheduler,
            policy=self.recovery_policy(),
        )

    def new_chat_session(self) -> ChatSession:
        return ChatSession(self.chat_service, self.location_weather.weather_context)
