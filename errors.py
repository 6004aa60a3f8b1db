"""Shared error codes and user-facing messages."""

from __future__ import annotations

from typing import Optional

from models import BrowserProfile, VoiceError

PERMISSION_DENIED = "permission-denied"
NO_SPEECH = "no-speech"
AUDIO_CAPTURE = "audio-capture"
NETWORK = "network"
SERVICE_NOT_ALLOWED = "service-not-allowed"
BAD_GRAMMAR = "bad-grammar"
LANGUAGE_NOT_SUPPORTED = "language-not-supported"
UNKNOWN = "unknown"

VOICE_ERROR_CODES = (
    PERMISSION_DENIED,
    NO_SPEECH,
    AUDIO_CAPTURE,
    NETWORK,
    SERVICE_NOT_ALLOWED,
    BAD_GRAMMAR,
    LANGUAGE_NOT_SUPPORTED,
    UNKNOWN,
)

# Engines report the permission failure under either name.
_CODE_ALIASES = {"not-allowed": PERMISSION_DENIED}

ERROR_MESSAGES = {
    PERMISSION_DENIED: (
        "Microphone permission denied. Please allow microphone access "
        "in your settings and try again."
    ),
    NO_SPEECH: "No speech was detected. Please try again.",
    AUDIO_CAPTURE: "Microphone not found. Please check your device microphone settings.",
    NETWORK: "Network error occurred. Please check your internet connection and try again.",
    SERVICE_NOT_ALLOWED: "Speech recognition service not available.",
    BAD_GRAMMAR: "Speech recognition grammar error. Please try again.",
    LANGUAGE_NOT_SUPPORTED: "Selected language not supported. Switching to English.",
}

MOBILE_NO_SPEECH_MESSAGE = (
    "No speech detected. Please speak clearly and close to your device microphone."
)

_ANDROID_MESSAGES = {
    SERVICE_NOT_ALLOWED: "Speech service not available. Please use Chrome or Edge browser.",
}

MOBILE_FALLBACK_MESSAGE = (
    "Voice input failed. Please use Chrome or Edge browser, or try refreshing the page."
)
MICROPHONE_UNAVAILABLE_MESSAGE = "Microphone permission denied or not available"
NOT_SUPPORTED_MESSAGE = "Speech recognition is not supported"


class VoiceInputError(Exception):
    code = UNKNOWN


class PermissionDenied(VoiceInputError):
    code = PERMISSION_DENIED


class NoInputDevice(VoiceInputError):
    code = AUDIO_CAPTURE


class ApiError(Exception):
    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def normalize_error_code(code: str) -> str:
    code = _CODE_ALIASES.get(code, code)
    return code if code in VOICE_ERROR_CODES else UNKNOWN


def get_speech_error_message(code: str, profile: BrowserProfile) -> str:
    """Map an engine error code to a device-aware message."""
    normalized = normalize_error_code(code)
    if profile.is_mobile and normalized == NO_SPEECH:
        return MOBILE_NO_SPEECH_MESSAGE
    if profile.is_android and normalized in _ANDROID_MESSAGES:
        return _ANDROID_MESSAGES[normalized]
    if normalized in ERROR_MESSAGES:
        return ERROR_MESSAGES[normalized]
    if profile.is_mobile:
        return MOBILE_FALLBACK_MESSAGE
    return f"Speech recognition error: {code}"


def to_voice_error(code: str, profile: BrowserProfile) -> VoiceError:
    return VoiceError(
        code=normalize_error_code(code),
        message=get_speech_error_message(code, profile),
    )
