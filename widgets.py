"""PySide6 voice input widgets.

Bindings run their callbacks on recognition and timer threads; every widget
routes them through a ``UIBridge`` so painting happens on the Qt thread.
"""

from __future__ import annotations

from typing import Optional

try:
    from PySide6.QtCore import QObject, Qt, Signal
    from PySide6.QtWidgets import (
        QHBoxLayout,
        QLabel,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required for the voice widgets: {exc}")

from voice_binding import (
    ControllerFactory,
    VoiceButtonBinding,
    VoiceInputBinding,
    VoiceTextareaBinding,
)

ICON_IDLE = "🎤"
ICON_LISTENING = "〰"
ICON_UNSUPPORTED = "🚫"

LISTENING_STYLE = "background: #ef4444; color: white; border-radius: 8px; padding: 6px;"
IDLE_STYLE = "border-radius: 8px; padding: 6px;"
ERROR_STYLE = (
    "color: #b91c1c; background: rgba(239,68,68,25); padding: 6px;"
    "border-left: 4px solid #b91c1c;"
)


class UIBridge(QObject):
    transcript_signal = Signal(str)
    interim_signal = Signal(str)
    error_signal = Signal(str)
    refresh_signal = Signal()


class VoiceButton(QPushButton):
    transcript = Signal(str)
    interim = Signal(str)
    error = Signal(str)

    def __init__(
        self,
        controller_factory: ControllerFactory,
        language: str = "auto",
        locale: str = "",
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(ICON_IDLE, parent)
        self._bridge = UIBridge()
        self._bridge.transcript_signal.connect(self.transcript)
        self._bridge.interim_signal.connect(self.interim)
        self._bridge.error_signal.connect(self._on_error_ui)
        self._bridge.refresh_signal.connect(self._render)
        self.binding = VoiceButtonBinding(
            controller_factory,
            on_transcript=self._bridge.transcript_signal.emit,
            on_interim_result=self._bridge.interim_signal.emit,
            on_error=self._bridge.error_signal.emit,
            language=language,
            locale=locale,
            on_update=self._bridge.refresh_signal.emit,
        )
        self.clicked.connect(self.binding.toggle)
        self._render()

    def set_voice_disabled(self, disabled: bool) -> None:
        self.binding.disabled = disabled
        self.setEnabled(not disabled and self.binding.is_supported)

    def shutdown(self) -> None:
        self.binding.close()

    def _on_error_ui(self, message: str) -> None:
        self.setToolTip(message)
        self.error.emit(message)

    def _render(self) -> None:
        if not self.binding.is_supported:
            self.setText(ICON_UNSUPPORTED)
            self.setToolTip("Voice input not supported")
            self.setEnabled(False)
            return
        listening = self.binding.is_listening
        self.setText(ICON_LISTENING if listening else ICON_IDLE)
        self.setStyleSheet(LISTENING_STYLE if listening else IDLE_STYLE)
        if listening:
            self.setToolTip("Stop recording")
        elif not self.binding.error:
            self.setToolTip("Start voice input")


class VoiceInput(QWidget):
    transcript = Signal(str)
    error = Signal(str)

    def __init__(
        self,
        controller_factory: ControllerFactory,
        language: str = "hi-IN",
        placeholder: str = "Click to speak...",
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._placeholder = placeholder
        self._bridge = UIBridge()
        self._bridge.transcript_signal.connect(self.transcript)
        self._bridge.error_signal.connect(self._on_error_ui)
        self._bridge.refresh_signal.connect(self._render)
        self.binding = VoiceInputBinding(
            controller_factory,
            on_transcript=self._bridge.transcript_signal.emit,
            on_error=self._bridge.error_signal.emit,
            language=language,
            on_update=self._bridge.refresh_signal.emit,
        )

        self._button = QPushButton()
        self._button.clicked.connect(self._toggle)
        self._status = QLabel()
        self._live = QLabel()
        self._live.setWordWrap(True)
        self._error = QLabel()
        self._error.setWordWrap(True)
        self._error.setStyleSheet(ERROR_STYLE)
        self._help = QLabel("Click the microphone to start voice input. Supports Hindi and English.")

        layout = QVBoxLayout()
        for widget in (self._button, self._status, self._live, self._error, self._help):
            layout.addWidget(widget)
        self.setLayout(layout)
        self._render()

    def set_language(self, language: str) -> None:
        self.binding.set_language(language)

    def shutdown(self) -> None:
        self.binding.close()

    def _toggle(self) -> None:
        self._error.clear()
        self.binding.toggle()
        self._render()

    def _on_error_ui(self, message: str) -> None:
        self._error.setText(message)
        self._render()
        self.error.emit(message)

    def _render(self) -> None:
        binding = self.binding
        if not binding.is_supported:
            self._button.setText(f"{ICON_UNSUPPORTED} Voice input not supported")
            self._button.setEnabled(False)
            for label in (self._status, self._live, self._error, self._help):
                label.hide()
            return
        listening = binding.is_listening
        text = binding.live_text
        self._button.setText(f"{ICON_LISTENING} Stop Recording" if listening else f"{ICON_IDLE} Voice Input")
        self._button.setStyleSheet(LISTENING_STYLE if listening else IDLE_STYLE)
        self._status.setText("Listening..." if listening else "Recorded:")
        self._live.setText(text or self._placeholder)
        self._status.setVisible(listening or bool(text))
        self._live.setVisible(listening or bool(text))
        self._error.setVisible(bool(self._error.text()))
        self._help.setVisible(not listening and not binding.has_interacted and not text)


class VoiceTextarea(QWidget):
    """Multi-line text box with a voice button; voice text is appended."""

    text_changed = Signal(str)
    voice_input = Signal(str)
    voice_error = Signal(str)

    def __init__(
        self,
        controller_factory: ControllerFactory,
        language: str = "hi-IN",
        placeholder: str = "",
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._bridge = UIBridge()
        self._bridge.transcript_signal.connect(self._on_voice_input_ui)
        self._bridge.error_signal.connect(self.voice_error)
        self._bridge.refresh_signal.connect(self._render)

        self._editor = QPlainTextEdit()
        self._editor.setPlaceholderText(placeholder)
        self._editor.textChanged.connect(self._on_typed)
        self.binding = VoiceTextareaBinding(
            controller_factory,
            on_voice_input=self._bridge.transcript_signal.emit,
            on_voice_error=self._bridge.error_signal.emit,
            language=language,
            on_update=self._bridge.refresh_signal.emit,
        )

        self._button = QPushButton(ICON_IDLE)
        self._button.setFixedWidth(40)
        self._button.clicked.connect(self.binding.button.toggle)

        layout = QHBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._editor)
        layout.addWidget(self._button, alignment=Qt.AlignTop)
        self.setLayout(layout)
        self._render()

    def text(self) -> str:
        return self.binding.value

    def set_text(self, value: str) -> None:
        self.binding.set_value(value)
        self._render()

    def shutdown(self) -> None:
        self.binding.close()

    def _on_typed(self) -> None:
        text = self._editor.toPlainText()
        if self.binding.type_text(text):
            self.text_changed.emit(text)

    def _on_voice_input_ui(self, text: str) -> None:
        self._render()
        self.text_changed.emit(self.binding.value)
        self.voice_input.emit(text)

    def _render(self) -> None:
        button = self.binding.button
        if not button.is_supported:
            self._button.setText(ICON_UNSUPPORTED)
            self._button.setEnabled(False)
        else:
            listening = button.is_listening
            self._button.setText(ICON_LISTENING if listening else ICON_IDLE)
            self._button.setStyleSheet(LISTENING_STYLE if listening else IDLE_STYLE)
            self._editor.setReadOnly(listening)
        if self._editor.toPlainText() != self.binding.display_value:
            self._editor.blockSignals(True)
            self._editor.setPlainText(self.binding.display_value)
            self._editor.blockSignals(False)
