"""Toolkit-independent behaviour of the voice input widgets.

Each binding owns one ``SpeechRecognitionController`` and translates its
``on_result``/``on_error`` callbacks into what the host form expects.  The
PySide6 widgets in ``widgets.py`` only render the state kept here.
"""

from __future__ import annotations

import threading
from functools import partial
from typing import Callable, Optional

from capability import resolve_language
from interfaces import EngineFactory, MicrophoneAccess, Scheduler
from models import BrowserProfile, SessionState
from recovery import RecoveryPolicy
from session_controller import SpeechRecognitionController
from transcript import append_fragment

ControllerFactory = Callable[..., SpeechRecognitionController]
TextCallback = Callable[[str], None]
StateCallback = Callable[[SessionState, SessionState], None]
UpdateCallback = Callable[[], None]

UNSUPPORTED_MESSAGE = "Voice input not supported in this browser"


def make_controller_factory(
    profile: BrowserProfile,
    engine_factory: EngineFactory,
    microphone: MicrophoneAccess,
    scheduler: Optional[Scheduler] = None,
    policy: Optional[RecoveryPolicy] = None,
) -> ControllerFactory:
    return partial(
        SpeechRecognitionController, profile, engine_factory, microphone, scheduler, policy=policy
    )


class VoiceButtonBinding:
    """Toggle button: final text goes to ``on_transcript``, interim to a preview.

    ``on_update`` fires after anything a widget might need to repaint.
    """

    def __init__(
        self,
        controller_factory: ControllerFactory,
        on_transcript: TextCallback,
        on_interim_result: Optional[TextCallback] = None,
        on_error: Optional[TextCallback] = None,
        language: str = "auto",
        locale: str = "",
        on_state_change: Optional[StateCallback] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self._on_transcript = on_transcript
        self._on_interim_result = on_interim_result
        self._on_error = on_error
        self._on_state_change = on_state_change
        self._on_update = on_update
        self.disabled = False
        self.language = resolve_language(language, locale)
        self.controller = controller_factory(
            language=self.language,
            on_result=self._handle_result,
            on_error=self._handle_error,
            on_state_change=self._handle_state_change,
        )

    @property
    def is_listening(self) -> bool:
        return self.controller.is_listening

    @property
    def is_supported(self) -> bool:
        return self.controller.is_supported

    @property
    def error(self) -> Optional[str]:
        return self.controller.error

    def toggle(self) -> None:
        if not self.controller.is_supported:
            self._handle_error(UNSUPPORTED_MESSAGE)
            return
        if self.disabled:
            return
        if self.controller.state in (SessionState.STARTING, SessionState.LISTENING):
            self.controller.stop_listening()
        else:
            self.controller.start_listening()

    def close(self) -> None:
        self.controller.close()

    def _handle_result(self, text: str, is_final: bool) -> None:
        self._process_result(text.strip(), is_final)
        self._notify()

    def _process_result(self, text: str, is_final: bool) -> None:
        if not text:
            return
        if is_final:
            self._on_transcript(text)
            self.controller.reset_transcript()
        elif self._on_interim_result:
            self._on_interim_result(text)

    def _handle_error(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)
        self._notify()

    def _handle_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
        self._notify()

    def _notify(self) -> None:
        if self._on_update:
            self._on_update()


class VoiceInputBinding(VoiceButtonBinding):
    """One utterance per press: the first final result ends the session."""

    def __init__(
        self,
        controller_factory: ControllerFactory,
        on_transcript: TextCallback,
        on_error: Optional[TextCallback] = None,
        language: str = "hi-IN",
        locale: str = "",
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self.has_interacted = False
        self.recorded = ""
        super().__init__(
            controller_factory,
            on_transcript,
            on_error=on_error,
            language=language,
            locale=locale,
            on_update=on_update,
        )

    @property
    def live_text(self) -> str:
        return self.controller.transcript or self.recorded

    def toggle(self) -> None:
        if self.controller.is_supported and not self.disabled:
            self.has_interacted = self.controller.state not in (
                SessionState.STARTING,
                SessionState.LISTENING,
            )
        super().toggle()

    def set_language(self, language: str) -> None:
        self.language = language
        self.controller.change_language(language)
        self._notify()

    def _process_result(self, text: str, is_final: bool) -> None:
        if not (is_final and text):
            return
        self.recorded = text
        self._on_transcript(text)
        self.controller.reset_transcript()
        self.controller.stop_listening()
        self.has_interacted = False

    def _handle_error(self, message: str) -> None:
        self.has_interacted = False
        super()._handle_error(message)


class VoiceTextareaBinding:
    """Text field whose voice input is appended to what was typed.

    Voice fragments arrive on the engine thread and keystrokes on the UI
    thread; ``value``, ``display_value`` and ``previewing`` change under one
    lock.
    """

    def __init__(
        self,
        controller_factory: ControllerFactory,
        value: str = "",
        on_change: Optional[TextCallback] = None,
        on_voice_input: Optional[TextCallback] = None,
        on_voice_error: Optional[TextCallback] = None,
        language: str = "hi-IN",
        locale: str = "",
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self.value = value
        self.display_value = value
        self.previewing = False
        self._lock = threading.RLock()
        self._on_change = on_change
        self._on_voice_input = on_voice_input
        self.button = VoiceButtonBinding(
            controller_factory,
            on_transcript=self._handle_final,
            on_interim_result=self._handle_interim,
            on_error=on_voice_error,
            language=language,
            locale=locale,
            on_state_change=self._handle_state_change,
            on_update=on_update,
        )

    def set_value(self, value: str) -> None:
        """Host-side update of the bound value."""
        with self._lock:
            self.value = value
            if not self.previewing:
                self.display_value = value

    def type_text(self, text: str) -> bool:
        """Keyboard edit; ignored (returns False) while a voice preview is showing."""
        with self._lock:
            if self.previewing:
                return False
            self.value = text
            self.display_value = text
        if self._on_change:
            self._on_change(text)
        return True

    def close(self) -> None:
        self.button.close()

    def _handle_interim(self, text: str) -> None:
        with self._lock:
            self.previewing = True
            self.display_value = append_fragment(self.value, text)

    def _handle_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        # A preview with no final result is dropped when the session ends.
        with self._lock:
            if to_state == SessionState.IDLE and self.previewing:
                self.previewing = False
                self.display_value = self.value

    def _handle_final(self, text: str) -> None:
        with self._lock:
            self.previewing = False
            self.value = append_fragment(self.value, text)
            self.display_value = value = self.value
        if self._on_change:
            self._on_change(value)
        if self._on_voice_input:
            self._on_voice_input(text)
