"""Restart and auto-stop decisions for recognition sessions.

Every decision is a function of the browser profile and the facts the
controller passes in, so the policy can be exercised without an engine.
"""

from __future__ import annotations

from typing import Optional

from errors import NETWORK, NO_SPEECH, normalize_error_code, to_voice_error
from models import BrowserProfile, RecoveryAction, VoiceError

RECOVERABLE_CODES = frozenset({NO_SPEECH, NETWORK})


class RecoveryPolicy:
    def __init__(
        self,
        profile: BrowserProfile,
        restart_delay_s: float = 0.3,
        mobile_auto_stop_s: float = 0.5,
        silence_timeout_s: Optional[float] = None,
        max_restarts: int = 3,
    ) -> None:
        self.profile = profile
        self.restart_delay_s = restart_delay_s
        self.mobile_auto_stop_s = mobile_auto_stop_s
        if silence_timeout_s is None:
            silence_timeout_s = 2.0 if profile.is_mobile else 3.0
        self.silence_timeout_s = silence_timeout_s
        self.max_restarts = max_restarts

    def on_end(
        self,
        continuous: bool,
        has_finalized: bool,
        has_error: bool,
        restarts: int = 0,
    ) -> RecoveryAction:
        # Mobile engines end eagerly after one utterance; that is completion.
        if self.profile.is_mobile or has_finalized:
            return RecoveryAction.NONE
        if not continuous or has_error:
            return RecoveryAction.NONE
        if restarts >= self.max_restarts:
            return RecoveryAction.NONE
        return RecoveryAction.RESTART

    def is_recoverable(self, code: str, continuous: bool) -> bool:
        if self.profile.is_mobile or not continuous:
            return False
        return normalize_error_code(code) in RECOVERABLE_CODES

    def on_error(self, code: str) -> VoiceError:
        return to_voice_error(code, self.profile)

    def should_auto_stop_after_final(self) -> bool:
        return self.profile.is_mobile

    def uses_silence_timeout(self, continuous: bool) -> bool:
        return continuous and not self.profile.is_mobile
