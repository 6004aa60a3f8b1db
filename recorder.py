"""Microphone capture, voice level metering and the microphone access check.

Opening the input stream tells two failures apart: no usable input device
(``NoInputDevice``) and a device the system refused to open
(``PermissionDenied``).  The engine reports them as ``audio-capture`` and
``permission-denied`` respectively.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any

from errors import NoInputDevice, PermissionDenied
from models import AudioFrame

logger = logging.getLogger(__name__)

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

_FULL_SCALE = 32768.0


def block_level(samples: Any) -> float:
    """Normalised RMS of an int16 sample block."""
    data = np.asarray(samples, dtype=np.float64)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data)))) / _FULL_SCALE


def _open_input_stream(sample_rate: int, channels: int, **kwargs: Any) -> Any:
    if sd is None:
        raise NoInputDevice("sounddevice is not installed")
    try:
        sd.query_devices(kind="input")
    except Exception as exc:
        raise NoInputDevice(f"no input device: {exc}") from exc
    try:
        return sd.InputStream(samplerate=sample_rate, channels=channels, dtype="int16", **kwargs)
    except sd.PortAudioError as exc:
        raise PermissionDenied(str(exc)) from exc


class SoundDeviceMicrophone:
    """Checks the microphone can be opened and releases it straight away.

    Only the recognition engine keeps the device open; the controller just
    needs to know access was granted.
    """

    def __init__(self, sample_rate: int = 16000, channels: int = 1) -> None:
        self.sample_rate = sample_rate
        self.channels = channels

    def request_access(self) -> None:
        try:
            stream = _open_input_stream(self.sample_rate, self.channels)
        except PermissionDenied:
            raise
        except Exception as exc:
            raise PermissionDenied(str(exc)) from exc
        try:
            stream.start()
        except Exception as exc:
            raise PermissionDenied(str(exc)) from exc
        finally:
            stream.stop()
            stream.close()


class SoundDeviceRecorder:
    """Feeds ``AudioFrame`` blocks, tagged with their level, into a queue.

    ``stop`` always leaves a ``None`` sentinel so the consumer can finish.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.dropped_chunks = 0
        self._stream: Any = None
        self._queue: Queue[AudioFrame | None] | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._stream is not None

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        """Open the default input device; raises ``NoInputDevice`` or ``PermissionDenied``."""
        with self._lock:
            if self._stream is not None:
                return
            stream = _open_input_stream(
                self.sample_rate,
                self.channels,
                blocksize=self.sample_rate * self.chunk_ms // 1000,
                callback=self._on_block,
            )
            self._queue = audio_queue
            try:
                stream.start()
            except sd.PortAudioError as exc:
                stream.close()
                raise PermissionDenied(str(exc)) from exc
            self._stream = stream
            logger.debug("Capturing %d Hz audio in %d ms blocks", self.sample_rate, self.chunk_ms)

    def stop(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
            if stream is not None:
                stream.stop()
                stream.close()
            if self._queue is not None:
                try:
                    self._queue.put_nowait(None)
                except Full:
                    pass

    def _on_block(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if self._stream is None or self._queue is None:
            return
        if status:
            logger.debug("Audio input status: %s", status)
        samples = np.asarray(indata, dtype=np.int16)
        frame = AudioFrame(
            pcm16_bytes=samples.tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
            level=block_level(samples),
        )
        try:
            self._queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1


def capture_available() -> bool:
    return sd is not None and np is not None
