"""Tests for DashscopeRecognitionEngine."""

from __future__ import annotations

import base64
import threading
from queue import Full, Queue
from unittest.mock import MagicMock, patch

from errors import NoInputDevice, PermissionDenied
from models import AudioFrame, RecognitionConfig, RecognitionEvent
from recognizer import DashscopeRecognitionEngine, _chunk_text, _Segment, engine_available


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeRecorder:
    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.queue: Queue[AudioFrame | None] | None = None
        self.stop_calls = 0

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        if self.fail is not None:
            raise self.fail
        self.queue = audio_queue

    def stop(self) -> None:
        self.stop_calls += 1
        if self.queue is not None:
            try:
                self.queue.put_nowait(None)
            except Full:
                pass

    def feed(self, *frames: AudioFrame) -> None:
        assert self.queue is not None
        for frame in frames:
            self.queue.put(frame)


class Recording:
    """Collects engine callbacks and signals when ``on_end`` fires."""

    def __init__(self, engine: DashscopeRecognitionEngine) -> None:
        self.calls: list[str] = []
        self.speech = 0
        self.events: list[RecognitionEvent] = []
        self.errors: list[str] = []
        self.ended = threading.Event()
        engine.on_start = lambda: self.calls.append("start")
        engine.on_speech = self._on_speech
        engine.on_result = self._on_result
        engine.on_error = self._on_error
        engine.on_end = self._on_end

    def _on_speech(self) -> None:
        self.speech += 1

    def _on_result(self, event: RecognitionEvent) -> None:
        self.calls.append("result")
        self.events.append(event)

    def _on_error(self, code: str) -> None:
        self.calls.append("error")
        self.errors.append(code)

    def _on_end(self) -> None:
        self.calls.append("end")
        self.ended.set()

    def wait(self) -> None:
        assert self.ended.wait(timeout=3.0), "engine never ended"


def _frame(n_samples: int = 1600, level: float = 0.2) -> AudioFrame:
    return AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples, sample_rate=16000, channels=1, level=level)


def _chunk(text: str) -> dict:
    return {"output": {"choices": [{"message": {"content": [{"text": text}]}}]}}


def _engine(
    recorder: FakeRecorder,
    continuous: bool = True,
    interim_results: bool = True,
    **kwargs,  # noqa: ANN003
) -> tuple[DashscopeRecognitionEngine, Recording]:
    config = RecognitionConfig("hi-IN", continuous=continuous, interim_results=interim_results)
    engine = DashscopeRecognitionEngine(config, api_key="test-key", recorder=recorder, **kwargs)
    return engine, Recording(engine)


def _run_one_utterance(engine: DashscopeRecognitionEngine, recorder: FakeRecorder, rec: Recording) -> None:
    engine.start()
    recorder.feed(_frame())
    engine.stop()
    rec.wait()


# ---------------------------------------------------------------
# Segments and chunks
# ---------------------------------------------------------------

def test_segment_tracks_duration_and_voicing() -> None:
    segment = _Segment()
    segment.add(_frame(level=0.0), voiced=False)
    assert not segment.voiced
    segment.add(_frame(), voiced=True)

    assert segment.voiced
    assert segment.duration_s == 0.2
    assert base64.b64decode(segment.to_wav_base64())[:4] == b"RIFF"


def test_chunk_text_tolerates_odd_chunks() -> None:
    assert _chunk_text(_chunk(" haan ")) == "haan"
    assert _chunk_text({"output": {"choices": []}}) == ""
    assert _chunk_text({"output": None}) == ""
    assert _chunk_text("not a chunk") == ""


def test_engine_available_needs_sdk_and_capture() -> None:
    with patch("recognizer.dashscope", None):
        assert not engine_available()
    with patch("recognizer.dashscope", MagicMock()), patch("recognizer.capture_available", return_value=True):
        assert engine_available()


# ---------------------------------------------------------------
# Streaming recognition
# ---------------------------------------------------------------

@patch("recognizer.dashscope")
def test_streaming_emits_interim_then_final(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter(
        [_chunk("mitti"), _chunk("mitti ki"), _chunk("mitti ki jaanch")]
    )
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    assert rec.calls == ["start", "result", "result", "result", "result", "end"]
    interim = [event.results[-1] for event in rec.events[:3]]
    assert [result.transcript for result in interim] == ["mitti", "mitti ki", "mitti ki jaanch"]
    assert not any(result.is_final for result in interim)
    final = rec.events[-1]
    assert final.result_index == 0
    assert [(r.transcript, r.is_final) for r in final.results] == [("mitti ki jaanch", True)]
    assert recorder.stop_calls >= 1


@patch("recognizer.dashscope")
def test_request_carries_language_hint(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter([_chunk("haan")])
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    kwargs = mock_ds.MultiModalConversation.call.call_args.kwargs
    assert kwargs["model"] == "qwen3-asr-flash"
    assert kwargs["api_key"] == "test-key"
    assert kwargs["asr_options"] == {"enable_itn": False, "language": "hi"}
    assert kwargs["stream"] is True


@patch("recognizer.dashscope")
def test_interim_results_disabled_emits_only_final(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter([_chunk("ha"), _chunk("haan")])
    recorder = FakeRecorder()
    engine, rec = _engine(recorder, continuous=False, interim_results=False)

    _run_one_utterance(engine, recorder, rec)

    assert len(rec.events) == 1
    assert rec.events[0].results[0].transcript == "haan"
    assert rec.events[0].results[0].is_final


@patch("recognizer.dashscope")
def test_single_shot_ends_after_first_segment(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = lambda **kwargs: iter([_chunk("ek")])
    recorder = FakeRecorder()
    engine, rec = _engine(recorder, continuous=False, max_utterance_s=0.05)

    engine.start()
    recorder.feed(_frame(), _frame())
    rec.wait()

    assert mock_ds.MultiModalConversation.call.call_count == 1
    assert rec.errors == []


@patch("recognizer.dashscope")
def test_continuous_segments_accumulate_results(mock_ds: MagicMock) -> None:
    replies = iter([[_chunk("pehla")], [_chunk("doosra")]])
    mock_ds.MultiModalConversation.call.side_effect = lambda **kwargs: iter(next(replies))
    recorder = FakeRecorder()
    engine, rec = _engine(recorder, interim_results=False, segment_s=0.05)

    engine.start()
    recorder.feed(_frame(), _frame())
    engine.stop()
    rec.wait()

    last = rec.events[-1]
    assert last.result_index == 1
    assert [r.transcript for r in last.results] == ["pehla", " doosra"]


@patch("recognizer.dashscope")
def test_unspaced_language_segments_have_no_separator(mock_ds: MagicMock) -> None:
    replies = iter([[_chunk("你好")], [_chunk("世界")]])
    mock_ds.MultiModalConversation.call.side_effect = lambda **kwargs: iter(next(replies))
    recorder = FakeRecorder()
    config = RecognitionConfig("zh-CN", continuous=True, interim_results=False)
    engine = DashscopeRecognitionEngine(config, api_key="test-key", recorder=recorder, segment_s=0.05)
    rec = Recording(engine)

    engine.start()
    recorder.feed(_frame(), _frame())
    engine.stop()
    rec.wait()

    assert [r.transcript for r in rec.events[-1].results] == ["你好", "世界"]


@patch("recognizer.dashscope")
def test_interim_of_later_segment_carries_separator(mock_ds: MagicMock) -> None:
    replies = iter([[_chunk("pehla")], [_chunk("doo"), _chunk("doosra")]])
    mock_ds.MultiModalConversation.call.side_effect = lambda **kwargs: iter(next(replies))
    recorder = FakeRecorder()
    engine, rec = _engine(recorder, segment_s=0.05)

    engine.start()
    recorder.feed(_frame(), _frame())
    engine.stop()
    rec.wait()

    interim = [event.results[-1].transcript for event in rec.events if not event.results[-1].is_final]
    assert interim == ["pehla", " doo", " doosra"]


@patch("recognizer.dashscope")
def test_silent_segments_are_not_sent(mock_ds: MagicMock) -> None:
    recorder = FakeRecorder()
    engine, rec = _engine(recorder, segment_s=0.05)

    engine.start()
    recorder.feed(_frame(level=0.0), _frame(level=0.001))
    engine.stop()
    rec.wait()

    mock_ds.MultiModalConversation.call.assert_not_called()
    assert rec.errors == ["no-speech"]
    assert rec.speech == 0


@patch("recognizer.dashscope")
def test_voiced_frames_report_speech_at_most_every_interval(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter([_chunk("haan")])
    recorder = FakeRecorder()
    engine, rec = _engine(recorder, speech_report_s=0.5)

    engine.start()
    # 1.2 s of speech: reports at 0.0 s, 0.5 s and 1.0 s of audio.
    recorder.feed(*[_frame() for _ in range(12)])
    engine.stop()
    rec.wait()

    assert rec.speech == 3
    assert rec.calls[0] == "start"


# ---------------------------------------------------------------
# Failures
# ---------------------------------------------------------------

@patch("recognizer.dashscope", MagicMock())
def test_no_audio_reports_no_speech() -> None:
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    engine.start()
    engine.stop()
    rec.wait()

    assert rec.calls == ["start", "error", "end"]
    assert rec.errors == ["no-speech"]


@patch("recognizer.dashscope")
def test_empty_recognition_reports_no_speech(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter([_chunk("")])
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    assert rec.errors == ["no-speech"]


@patch("recognizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_reports_service_not_allowed() -> None:
    recorder = FakeRecorder()
    config = RecognitionConfig("en-IN")
    engine = DashscopeRecognitionEngine(config, api_key="", recorder=recorder)
    rec = Recording(engine)

    _run_one_utterance(engine, recorder, rec)

    assert rec.errors == ["service-not-allowed"]
    assert rec.calls[-1] == "end"


@patch("recognizer.dashscope", None)
def test_sdk_not_installed_reports_service_not_allowed() -> None:
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    assert rec.errors == ["service-not-allowed"]


@patch("recognizer.dashscope")
def test_network_error_maps_to_network(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = ConnectionError("connection reset")
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    assert rec.errors == ["network"]
    assert rec.calls[-1] == "end"


@patch("recognizer.dashscope")
def test_auth_error_maps_to_service_not_allowed(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = Exception("401 Unauthorized: invalid api key")
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    assert rec.errors == ["service-not-allowed"]


@patch("recognizer.dashscope")
def test_other_errors_map_to_unknown(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = ValueError("bad audio")
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    _run_one_utterance(engine, recorder, rec)

    assert rec.errors == ["unknown"]


def test_missing_device_reports_audio_capture() -> None:
    recorder = FakeRecorder(fail=NoInputDevice("no input device"))
    engine, rec = _engine(recorder)

    engine.start()

    assert rec.calls == ["error", "end"]
    assert rec.errors == ["audio-capture"]


def test_refused_device_reports_permission_denied() -> None:
    recorder = FakeRecorder(fail=PermissionDenied("Error opening InputStream"))
    engine, rec = _engine(recorder)

    engine.start()

    assert rec.calls == ["error", "end"]
    assert rec.errors == ["permission-denied"]


@patch("recognizer.dashscope")
def test_abort_ends_without_results(mock_ds: MagicMock) -> None:
    recorder = FakeRecorder()
    engine, rec = _engine(recorder)

    engine.start()
    recorder.feed(_frame())
    engine.abort()
    rec.wait()

    assert rec.errors == []
    assert rec.calls[-1] == "end"
    assert "result" not in rec.calls
