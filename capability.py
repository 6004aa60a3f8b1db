"""Speech capability probe and default recognition settings."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from models import BrowserProfile, SpeechSettings, Vendor

DEFAULT_LANGUAGE = "hi-IN"

# Indian agricultural context: bare "en" resolves to Indian English.
LANGUAGE_MAP = {
    "hi": "hi-IN",
    "hi-in": "hi-IN",
    "en": "en-IN",
    "en-us": "en-US",
    "en-gb": "en-GB",
    "en-in": "en-IN",
    "bn": "bn-IN",
    "bn-in": "bn-IN",
    "te": "te-IN",
    "ta": "ta-IN",
    "mr": "mr-IN",
    "gu": "gu-IN",
    "kn": "kn-IN",
    "ml": "ml-IN",
    "pa": "pa-IN",
    "or": "or-IN",
}

# Wider table used when a widget is configured with language="auto".
WIDGET_LANGUAGE_MAP = {
    "hi": "hi-IN",
    "hi-in": "hi-IN",
    "en": "en-IN",
    "en-us": "en-US",
    "en-gb": "en-GB",
    "en-in": "en-IN",
    "zh": "zh-CN",
    "zh-cn": "zh-CN",
    "ja": "ja-JP",
    "ja-jp": "ja-JP",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "ru": "ru-RU",
    "ar": "ar-SA",
    "pt": "pt-BR",
    "it": "it-IT",
    "ko": "ko-KR",
    "th": "th-TH",
}

_MOBILE_RE = re.compile(r"android|webos|iphone|ipad|ipod|blackberry|iemobile|opera mini", re.I)
_ANDROID_RE = re.compile(r"android", re.I)
_IOS_RE = re.compile(r"iphone|ipad|ipod", re.I)
_EDGE_RE = re.compile(r"edg", re.I)
_CHROME_RE = re.compile(r"chrome", re.I)
_SAFARI_RE = re.compile(r"safari", re.I)
_FIREFOX_RE = re.compile(r"firefox", re.I)


@dataclass(frozen=True)
class SupportCheck:
    is_supported: bool
    message: str
    recommendations: list[str] = field(default_factory=list)


def _detect_vendor(user_agent: str) -> Vendor:
    if _EDGE_RE.search(user_agent):
        return Vendor.EDGE
    if _CHROME_RE.search(user_agent):
        return Vendor.CHROME
    if _SAFARI_RE.search(user_agent):
        return Vendor.SAFARI
    if _FIREFOX_RE.search(user_agent):
        return Vendor.FIREFOX
    return Vendor.UNKNOWN


def detect(user_agent: str = "", supports_recognition: Optional[bool] = None) -> BrowserProfile:
    """Classify the host from its user-agent string.

    ``supports_recognition`` defaults to whether a recognition engine and a
    capture backend are importable in this interpreter.
    """
    if supports_recognition is None:
        from recognizer import engine_available

        supports_recognition = engine_available()
    return BrowserProfile(
        is_mobile=bool(_MOBILE_RE.search(user_agent)),
        vendor=_detect_vendor(user_agent),
        supports_recognition=supports_recognition,
        is_android=bool(_ANDROID_RE.search(user_agent)),
        is_ios=bool(_IOS_RE.search(user_agent)),
    )


def get_default_language(locale: str, language_map: Optional[dict[str, str]] = None) -> str:
    table = LANGUAGE_MAP if language_map is None else language_map
    lowered = (locale or "").lower()
    if lowered in table:
        return table[lowered]
    prefix = lowered.split("-")[0]
    if prefix in table:
        return table[prefix]
    return DEFAULT_LANGUAGE


def resolve_language(language: str, locale: str) -> str:
    if language == "auto":
        return get_default_language(locale, WIDGET_LANGUAGE_MAP)
    return language


def get_optimal_speech_settings(profile: BrowserProfile, locale: str = "") -> SpeechSettings:
    # Mobile engines misbehave with interim results and continuous sessions.
    desktop = not profile.is_mobile
    return SpeechSettings(
        continuous=desktop,
        interim_results=desktop,
        default_language=get_default_language(locale),
        silence_timeout_s=3.0 if desktop else 2.0,
        auto_restart=desktop,
    )


def check_speech_support(profile: BrowserProfile) -> SupportCheck:
    if profile.supports_recognition:
        return SupportCheck(True, "Voice input is supported")

    recommendations: list[str] = []
    if profile.is_mobile:
        recommendations.append("Use Chrome or Edge browser for voice features")
        if profile.is_android:
            recommendations.append("Update your Chrome browser to latest version")
            recommendations.append("Check if microphone permission is granted")
    else:
        recommendations.append("Try using Chrome, Edge, or Safari browser")
        recommendations.append("Ensure your browser is up to date")
    return SupportCheck(
        False,
        f"Voice input not supported in {profile.browser_name}",
        recommendations,
    )
