"""Recognition engine using DashScope qwen3-asr-flash.

The qwen3-asr-flash model accepts complete audio (file path, URL, or base64)
and streams back recognition results via ``stream=True``.  Microphone frames
are cut into segments; each segment becomes one recognition result whose
partial texts are delivered as interim results and whose last text becomes
the final result.  Continuous sessions keep producing segments until stopped,
single-shot sessions end after the first one.

Segments without a single voiced frame are never sent.  Voiced frames are
also reported through ``on_speech`` so the controller knows the user is
still talking while a segment is filling up.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Any, Optional

from errors import (
    AUDIO_CAPTURE,
    NETWORK,
    NO_SPEECH,
    PERMISSION_DENIED,
    SERVICE_NOT_ALLOWED,
    UNKNOWN,
    PermissionDenied,
)
from interfaces import ErrorHandler, LifecycleHandler, ResultHandler
from models import AudioFrame, RecognitionConfig, RecognitionEvent, RecognitionResult
from recorder import SoundDeviceRecorder, capture_available

logger = logging.getLogger(__name__)

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

# Languages written without spaces between words.
_UNSPACED_LANGUAGES = {"zh", "ja", "th", "lo", "km", "my"}


def engine_available() -> bool:
    return dashscope is not None and capture_available()


def _language_hint(language: str) -> str:
    return language.split("-")[0].lower()


def _word_separator(language: str) -> str:
    return "" if _language_hint(language) in _UNSPACED_LANGUAGES else " "


def _chunk_text(chunk: Any) -> str:
    """Text carried by one streamed response chunk, or ``""``."""
    try:
        content = chunk["output"]["choices"][0]["message"]["content"]
        return str(content[0].get("text", "")).strip() if content else ""
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""


class _Segment:
    """PCM collected for one recognition request."""

    def __init__(self) -> None:
        self.pcm = bytearray()
        self.sample_rate = 16000
        self.channels = 1
        self.voiced = False

    def add(self, frame: AudioFrame, voiced: bool) -> None:
        self.pcm.extend(frame.pcm16_bytes)
        self.sample_rate = frame.sample_rate
        self.channels = frame.channels
        self.voiced = self.voiced or voiced

    @property
    def duration_s(self) -> float:
        return len(self.pcm) / (self.sample_rate * self.channels * 2)

    def to_wav_base64(self) -> str:
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(2)
            wf.setframerate(self.sample_rate)
            wf.writeframes(bytes(self.pcm))
        return base64.b64encode(buf.getvalue()).decode("ascii")


class DashscopeRecognitionEngine:
    def __init__(
        self,
        config: RecognitionConfig,
        api_key: str = "",
        model: str = "qwen3-asr-flash",
        recorder: Optional[SoundDeviceRecorder] = None,
        segment_s: float = 5.0,
        max_utterance_s: float = 10.0,
        request_timeout_s: float = 10.0,
        queue_maxsize: int = 200,
        speech_level: float = 0.01,
        speech_report_s: float = 0.5,
    ) -> None:
        self.config = config
        self.on_start: Optional[LifecycleHandler] = None
        self.on_speech: Optional[LifecycleHandler] = None
        self.on_result: Optional[ResultHandler] = None
        self.on_error: Optional[ErrorHandler] = None
        self.on_end: Optional[LifecycleHandler] = None

        self._api_key = api_key
        self._model = model
        self._recorder = recorder or SoundDeviceRecorder()
        self._segment_s = segment_s
        self._max_utterance_s = max_utterance_s
        self._request_timeout_s = request_timeout_s
        self._queue_maxsize = queue_maxsize
        self._speech_level = speech_level
        self._speech_report_s = speech_report_s
        self._thread: Optional[threading.Thread] = None
        self._abort_event = threading.Event()
        self._results: list[RecognitionResult] = []

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            raise RuntimeError("recognition has already started")
        self._abort_event.clear()
        self._results = []
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
        try:
            self._recorder.start(audio_queue)
        except PermissionDenied as exc:
            logger.error("Microphone access refused: %s", exc)
            self._emit_error(PERMISSION_DENIED)
            self._emit_end()
            return
        except Exception as exc:
            logger.error("Audio capture failed to start: %s", exc)
            self._emit_error(AUDIO_CAPTURE)
            self._emit_end()
            return
        if self.on_start:
            self.on_start()
        self._thread = threading.Thread(target=self._worker, args=(audio_queue,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._recorder.stop()

    def abort(self) -> None:
        self._abort_event.set()
        self._recorder.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self, audio_queue: Queue[AudioFrame | None]) -> None:
        """Consume audio frames until the sentinel, recognising segments."""
        limit_s = self._segment_s if self.config.continuous else self._max_utterance_s
        segment = _Segment()
        report_ms = int(self._speech_report_s * 1000)
        heard_ms = 0
        last_speech_ms: Optional[int] = None

        try:
            while not self._abort_event.is_set():
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    continue
                if frame is None:
                    break
                voiced = frame.level >= self._speech_level
                if voiced and (last_speech_ms is None or heard_ms - last_speech_ms >= report_ms):
                    last_speech_ms = heard_ms
                    self._emit_speech()
                segment.add(frame, voiced)
                heard_ms += len(frame.pcm16_bytes) * 1000 // (frame.sample_rate * frame.channels * 2)
                if segment.duration_s < limit_s:
                    continue
                if not self._recognize(segment):
                    return
                segment = _Segment()
                if not self.config.continuous:
                    break

            if self._abort_event.is_set() or not self._recognize(segment):
                return
            if not any(result.is_final for result in self._results):
                self._emit_error(NO_SPEECH)
        finally:
            self._recorder.stop()
            self._emit_end()

    def _recognize(self, segment: _Segment) -> bool:
        """Recognise one segment; returns False when the session must end."""
        if self._abort_event.is_set():
            return False
        if not segment.voiced:
            if segment.pcm:
                logger.debug("Skipping %.1f s of silence", segment.duration_s)
            return True
        if dashscope is None:
            self._emit_error(SERVICE_NOT_ALLOWED)
            return False

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            logger.error("No DashScope API key configured")
            self._emit_error(SERVICE_NOT_ALLOWED)
            return False

        index = len(self._results)
        prefix = _word_separator(self.config.language) if index else ""
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": segment.to_wav_base64()}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False, "language": _language_hint(self.config.language)},
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest_text = ""
            for chunk in response:
                if self._abort_event.is_set():
                    return False
                text = _chunk_text(chunk)
                if not text:
                    continue
                latest_text = prefix + text
                if self.config.interim_results:
                    interim = RecognitionResult(latest_text, is_final=False)
                    self._emit_results(self._results + [interim], index)
        except Exception as exc:
            logger.error("DashScope recognition failed: %s", exc)
            self._emit_error(self._to_error_code(exc))
            return False

        if latest_text:
            self._results.append(RecognitionResult(latest_text, is_final=True))
            self._emit_results(list(self._results), index)
        return True

    def _to_error_code(self, exc: Exception) -> str:
        """Map an SDK/network exception to an engine error code."""
        low = str(exc).lower()
        if "401" in low or "auth" in low or "api key" in low:
            return SERVICE_NOT_ALLOWED
        if isinstance(exc, (ConnectionError, TimeoutError)):
            return NETWORK
        if "timeout" in low or "network" in low or "connection" in low:
            return NETWORK
        return UNKNOWN

    def _emit_speech(self) -> None:
        if self.on_speech:
            self.on_speech()

    def _emit_results(self, results: list[RecognitionResult], index: int) -> None:
        if self.on_result:
            self.on_result(RecognitionEvent(results=results, result_index=index))

    def _emit_error(self, code: str) -> None:
        if self.on_error:
            self.on_error(code)

    def _emit_end(self) -> None:
        if self.on_end:
            self.on_end()
