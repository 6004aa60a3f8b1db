"""Core data models for the voice input subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SessionState(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    STOPPING = "STOPPING"
    ERRORING = "ERRORING"


class Vendor(str, Enum):
    CHROME = "chrome"
    EDGE = "edge"
    SAFARI = "safari"
    FIREFOX = "firefox"
    UNKNOWN = "unknown"


class RecoveryAction(str, Enum):
    NONE = "none"
    RESTART = "restart"


_VENDOR_NAMES = {
    Vendor.CHROME: "Chrome",
    Vendor.EDGE: "Edge",
    Vendor.SAFARI: "Safari",
    Vendor.FIREFOX: "Firefox",
    Vendor.UNKNOWN: "Unknown",
}


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0
    # RMS of the block, 0.0 (silence) to 1.0 (full scale).
    level: float = 0.0


@dataclass(frozen=True)
class BrowserProfile:
    is_mobile: bool
    vendor: Vendor = Vendor.UNKNOWN
    supports_recognition: bool = False
    is_android: bool = False
    is_ios: bool = False

    @property
    def browser_name(self) -> str:
        return _VENDOR_NAMES[self.vendor]


@dataclass(frozen=True)
class RecognitionConfig:
    language: str
    continuous: bool = True
    interim_results: bool = True


@dataclass(frozen=True)
class SpeechSettings:
    continuous: bool
    interim_results: bool
    default_language: str
    silence_timeout_s: float
    auto_restart: bool


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    is_final: bool = False
    confidence: float = 0.0


@dataclass(frozen=True)
class RecognitionEvent:
    """New or changed results, valid from ``result_index`` onward."""

    results: list[RecognitionResult] = field(default_factory=list)
    result_index: int = 0


@dataclass(frozen=True)
class TranscriptBuffer:
    finalized: str = ""
    interim: str = ""

    @property
    def full(self) -> str:
        return self.finalized + self.interim


@dataclass(frozen=True)
class VoiceError:
    code: str
    message: str
