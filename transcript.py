"""Running transcript assembly from recognition events."""

from __future__ import annotations

from models import RecognitionEvent, TranscriptBuffer


class TranscriptAssembler:
    """Folds recognition events into a ``TranscriptBuffer``.

    Final results are appended to the committed text without a separator.
    Interim text is rebuilt from each event alone and never carried over.
    Events must be applied in arrival order since ``result_index`` is only
    meaningful against what was already committed.
    """

    def __init__(self) -> None:
        self._buffer = TranscriptBuffer()

    @property
    def buffer(self) -> TranscriptBuffer:
        return self._buffer

    def apply(self, event: RecognitionEvent) -> TranscriptBuffer:
        finalized = self._buffer.finalized
        interim = ""
        for result in event.results[max(event.result_index, 0):]:
            if result.is_final:
                finalized += result.transcript
            else:
                interim += result.transcript
        self._buffer = TranscriptBuffer(finalized=finalized, interim=interim)
        return self._buffer

    def reset(self) -> None:
        self._buffer = TranscriptBuffer()


def append_fragment(existing: str, fragment: str) -> str:
    """Append voice text to typed text with natural word spacing."""
    if existing and not existing[-1].isspace():
        return existing + " " + fragment
    return existing + fragment
