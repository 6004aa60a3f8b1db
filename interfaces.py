"""Protocol interfaces used by SpeechRecognitionController."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from models import RecognitionConfig, RecognitionEvent

ResultHandler = Callable[[RecognitionEvent], None]
ErrorHandler = Callable[[str], None]
LifecycleHandler = Callable[[], None]


class RecognitionEngine(Protocol):
    """A single platform recognition session.

    Handlers are assigned once after construction and may be invoked from
    any thread the engine uses.  ``on_speech`` fires while voiced audio is
    still arriving, before any result for it exists.
    """

    config: RecognitionConfig
    on_start: Optional[LifecycleHandler]
    on_speech: Optional[LifecycleHandler]
    on_result: Optional[ResultHandler]
    on_error: Optional[ErrorHandler]
    on_end: Optional[LifecycleHandler]

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


EngineFactory = Callable[[RecognitionConfig], RecognitionEngine]


class MicrophoneAccess(Protocol):
    def request_access(self) -> None:
        """Confirm the microphone can be opened, then release it.

        Raises ``PermissionDenied`` when it cannot.
        """
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...
