"""State-machine based speech recognition session orchestration."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

from capability import DEFAULT_LANGUAGE, get_optimal_speech_settings
from errors import (
    MICROPHONE_UNAVAILABLE_MESSAGE,
    NOT_SUPPORTED_MESSAGE,
    UNKNOWN,
    PermissionDenied,
)
from interfaces import EngineFactory, MicrophoneAccess, RecognitionEngine, Scheduler, TimerHandle
from models import (
    BrowserProfile,
    RecognitionConfig,
    RecognitionEvent,
    RecoveryAction,
    SessionState,
    TranscriptBuffer,
)
from recovery import RecoveryPolicy
from timers import ThreadingScheduler
from transcript import TranscriptAssembler

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
ResultCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[str], None]

_RESTART_TIMER = "restart"
_SILENCE_TIMER = "silence"
_AUTO_STOP_TIMER = "auto_stop"


class SpeechRecognitionController:
    """Owns one recognition session at a time for a single voice widget.

    Engine callbacks may arrive on any thread; all state changes happen
    under one re-entrant lock so host callbacks may call back into the
    controller (for example ``reset_transcript`` from ``on_result``).
    """

    def __init__(
        self,
        profile: BrowserProfile,
        engine_factory: EngineFactory,
        microphone: MicrophoneAccess,
        scheduler: Optional[Scheduler] = None,
        language: str = DEFAULT_LANGUAGE,
        continuous: Optional[bool] = None,
        interim_results: Optional[bool] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        policy: Optional[RecoveryPolicy] = None,
    ) -> None:
        settings = get_optimal_speech_settings(profile)
        self._profile = profile
        self._engine_factory = engine_factory
        self._microphone = microphone
        self._scheduler = scheduler or ThreadingScheduler()
        self._policy = policy or RecoveryPolicy(profile, silence_timeout_s=settings.silence_timeout_s)
        self._on_result = on_result
        self._on_error = on_error
        self._on_state_change = on_state_change
        self._config = RecognitionConfig(
            language=language,
            continuous=settings.continuous if continuous is None else continuous,
            interim_results=settings.interim_results if interim_results is None else interim_results,
        )

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._assembler = TranscriptAssembler()
        self._timers: dict[str, TimerHandle] = {}
        self._error: Optional[str] = None
        self._pending_error: Optional[str] = None
        self._awaiting_restart = False
        self._restarts = 0
        self._engine: Optional[RecognitionEngine] = None
        if profile.supports_recognition:
            self._engine = self._create_engine()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == SessionState.LISTENING

    @property
    def is_supported(self) -> bool:
        return self._engine is not None

    @property
    def transcript(self) -> str:
        return self._assembler.buffer.full

    @property
    def buffer(self) -> TranscriptBuffer:
        return self._assembler.buffer

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def config(self) -> RecognitionConfig:
        return self._config

    @property
    def language(self) -> str:
        return self._config.language

    @property
    def profile(self) -> BrowserProfile:
        return self._profile

    # ------------------------------------------------------------------
    # Host commands
    # ------------------------------------------------------------------

    def start_listening(self) -> None:
        with self._lock:
            if self._engine is None:
                self._report(NOT_SUPPORTED_MESSAGE)
                return
            if self._state != SessionState.IDLE:
                return
            self._session_id += 1
            self._restarts = 0
            self._pending_error = None
            self._transition(SessionState.STARTING)

            try:
                self._microphone.request_access()
            except PermissionDenied as exc:
                logger.info("Microphone access refused: %s", exc)
                self._transition(SessionState.IDLE)
                self._report(MICROPHONE_UNAVAILABLE_MESSAGE)
                return

            self._assembler.reset()
            self._error = None
            try:
                self._engine.start()
            except Exception as exc:
                logger.error("Recognition engine failed to start: %s", exc)
                self._cancel_timers()
                self._transition(SessionState.IDLE)
                self._report(self._policy.on_error(UNKNOWN).message)

    def stop_listening(self) -> None:
        with self._lock:
            if self._awaiting_restart:
                self._awaiting_restart = False
                self._cancel_timers()
                self._transition(SessionState.IDLE)
                return
            if self._state not in (SessionState.STARTING, SessionState.LISTENING):
                return
            self._request_stop()

    def reset_transcript(self) -> None:
        with self._lock:
            self._assembler.reset()

    def change_language(self, language: str) -> None:
        """Tear down the engine and rebuild it for ``language``."""
        with self._lock:
            if language == self._config.language:
                return
            self.close()
            self._config = replace(self._config, language=language)
            if self._profile.supports_recognition:
                self._engine = self._create_engine()

    def close(self) -> None:
        with self._lock:
            self._session_id += 1
            self._awaiting_restart = False
            self._cancel_timers()
            if self._state != SessionState.IDLE and self._engine is not None:
                try:
                    self._engine.abort()
                except Exception as exc:
                    logger.warning("Recognition engine abort failed: %s", exc)
            self._transition(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def _create_engine(self) -> Optional[RecognitionEngine]:
        try:
            engine = self._engine_factory(self._config)
        except Exception as exc:
            logger.error("Could not create recognition engine: %s", exc)
            return None
        engine.on_start = lambda: self._handle_start(engine)
        engine.on_speech = lambda: self._handle_speech(engine)
        engine.on_result = lambda event: self._handle_result(engine, event)
        engine.on_error = lambda code: self._handle_error(engine, code)
        engine.on_end = lambda: self._handle_end(engine)
        return engine

    def _handle_start(self, engine: RecognitionEngine) -> None:
        with self._lock:
            if engine is not self._engine or self._state != SessionState.STARTING:
                return
            self._transition(SessionState.LISTENING)
            self._arm_silence_timer()

    def _handle_speech(self, engine: RecognitionEngine) -> None:
        with self._lock:
            if engine is self._engine and self._state == SessionState.LISTENING:
                self._arm_silence_timer()

    def _handle_result(self, engine: RecognitionEngine, event: RecognitionEvent) -> None:
        with self._lock:
            if engine is not self._engine or self._state in (SessionState.IDLE, SessionState.ERRORING):
                return
            buffer = self._assembler.apply(event)
            self._restarts = 0
            self._pending_error = None
            if self._state == SessionState.LISTENING:
                self._arm_silence_timer()
                self._arm_auto_stop(buffer)
            if self._on_result:
                self._on_result(buffer.full, not buffer.interim)

    def _handle_error(self, engine: RecognitionEngine, code: str) -> None:
        with self._lock:
            if engine is not self._engine or self._state == SessionState.IDLE:
                return
            self._cancel_timers()
            if (
                self._state != SessionState.STOPPING
                and self._policy.is_recoverable(code, self._config.continuous)
                and self._restarts < self._policy.max_restarts
            ):
                # The engine's end event decides whether to restart.
                logger.info("Recoverable recognition error %r, awaiting end", code)
                self._pending_error = code
                return

            voice_error = self._policy.on_error(code)
            self._transition(SessionState.ERRORING)
            self._pending_error = None
            self._awaiting_restart = False
            self._transition(SessionState.IDLE)
            self._report(voice_error.message)

    def _handle_end(self, engine: RecognitionEngine) -> None:
        with self._lock:
            if engine is not self._engine:
                return
            self._cancel_timers()
            if self._state == SessionState.IDLE:
                return
            if self._state == SessionState.STOPPING:
                self._transition(SessionState.IDLE)
                return

            action = self._policy.on_end(
                continuous=self._config.continuous,
                has_finalized=bool(self._assembler.buffer.finalized),
                has_error=self._error is not None,
                restarts=self._restarts,
            )
            if action == RecoveryAction.RESTART:
                self._restarts += 1
                self._awaiting_restart = True
                self._transition(SessionState.STARTING)
                session_id = self._session_id
                self._timers[_RESTART_TIMER] = self._scheduler.call_later(
                    self._policy.restart_delay_s,
                    lambda: self._restart(session_id),
                )
                return

            pending = self._pending_error
            self._pending_error = None
            self._transition(SessionState.IDLE)
            if pending is not None:
                self._report(self._policy.on_error(pending).message)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _restart(self, session_id: int) -> None:
        with self._lock:
            self._timers.pop(_RESTART_TIMER, None)
            if session_id != self._session_id or not self._awaiting_restart:
                return
            self._awaiting_restart = False
            if self._engine is None:
                self._transition(SessionState.IDLE)
                return
            try:
                self._engine.start()
            except Exception as exc:
                logger.warning("Recognition restart failed: %s", exc)
                pending = self._pending_error or UNKNOWN
                self._pending_error = None
                self._transition(SessionState.IDLE)
                self._report(self._policy.on_error(pending).message)

    def _arm_silence_timer(self) -> None:
        if not self._policy.uses_silence_timeout(self._config.continuous):
            return
        self._cancel_timer(_SILENCE_TIMER)
        session_id = self._session_id
        self._timers[_SILENCE_TIMER] = self._scheduler.call_later(
            self._policy.silence_timeout_s,
            lambda: self._timed_stop(session_id, _SILENCE_TIMER),
        )

    def _arm_auto_stop(self, buffer: TranscriptBuffer) -> None:
        if not self._policy.should_auto_stop_after_final():
            return
        self._cancel_timer(_AUTO_STOP_TIMER)
        if buffer.interim or not buffer.finalized:
            return
        session_id = self._session_id
        self._timers[_AUTO_STOP_TIMER] = self._scheduler.call_later(
            self._policy.mobile_auto_stop_s,
            lambda: self._timed_stop(session_id, _AUTO_STOP_TIMER),
        )

    def _timed_stop(self, session_id: int, name: str) -> None:
        with self._lock:
            self._timers.pop(name, None)
            if session_id != self._session_id or self._state != SessionState.LISTENING:
                return
            logger.debug("Stopping recognition session on %s timer", name)
            self._request_stop()

    def _cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def _cancel_timers(self) -> None:
        for name in list(self._timers):
            self._cancel_timer(name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _request_stop(self) -> None:
        self._cancel_timers()
        self._transition(SessionState.STOPPING)
        try:
            self._engine.stop()
        except Exception as exc:
            logger.warning("Recognition engine stop failed: %s", exc)
            self._transition(SessionState.IDLE)

    def _report(self, message: str) -> None:
        self._error = message
        if self._on_error:
            self._on_error(message)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
