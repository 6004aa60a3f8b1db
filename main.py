"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading

from app_context import AppContext, ThemeColor
from capability import WIDGET_LANGUAGE_MAP, check_speech_support
from chat_service import ChatMessage, ChatSession
from config import DASHSCOPE, GROQ, MARKET, WEATHER
from market import (
    MarketPrice,
    fetch_market_prices,
    format_market_date,
    format_price,
    get_recent_prices,
    get_trend_icon,
)
from weather import format_location, format_weather_description, get_air_quality_status
from widgets import VoiceButton, VoiceInput, VoiceTextarea

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import (
        QApplication,
        QCheckBox,
        QComboBox,
        QFormLayout,
        QHBoxLayout,
        QInputDialog,
        QLabel,
        QLineEdit,
        QListWidget,
        QMainWindow,
        QMessageBox,
        QPushButton,
        QTabWidget,
        QTextBrowser,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

_API_KEY_LABELS = {
    GROQ: "Groq API Key",
    WEATHER: "WeatherAPI Key",
    MARKET: "data.gov.in API Key",
    DASHSCOPE: "DashScope API Key",
}


class UIBridge(QObject):
    reply_signal = Signal(object)
    weather_signal = Signal()
    market_signal = Signal(object)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.context = AppContext()
        self.chat: ChatSession = self.context.new_chat_session()
        self.ui = UIBridge()
        self.ui.reply_signal.connect(self._on_reply_ui)
        self.ui.weather_signal.connect(self._on_weather_ui)
        self.ui.market_signal.connect(self._on_market_ui)

        self.window = QMainWindow()
        self.window.setWindowTitle("Krishi Voice Assistant")
        self.window.resize(720, 640)
        tabs = QTabWidget()
        tabs.addTab(self._build_chat_tab(), "Chat")
        tabs.addTab(self._build_weather_tab(), "Weather")
        tabs.addTab(self._build_market_tab(), "Market")
        tabs.addTab(self._build_settings_tab(), "Settings")
        self.window.setCentralWidget(tabs)
        self._apply_theme()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def _build_chat_tab(self) -> QWidget:
        controller_factory = self.context.controller_factory()
        self.history = QTextBrowser()
        self.composer = VoiceTextarea(
            controller_factory,
            language=self.context.language,
            placeholder="Ask about crops, pests, fertilizer or weather...",
        )
        self.composer.voice_error.connect(self._show_status)
        self.send_button = QPushButton("Send")
        self.send_button.clicked.connect(self._send)
        clear_button = QPushButton("Clear chat")
        clear_button.clicked.connect(self._clear_chat)
        self.status = QLabel()

        support = check_speech_support(self.context.profile)
        if not support.is_supported:
            self.status.setText(f"{support.message} {' '.join(support.recommendations)}")

        layout = QVBoxLayout()
        layout.addWidget(self.history)
        layout.addWidget(self.composer)
        layout.addWidget(self.send_button)
        layout.addWidget(clear_button)
        layout.addWidget(self.status)
        page = QWidget()
        page.setLayout(layout)
        self._render_history()
        return page

    def _build_weather_tab(self) -> QWidget:
        self.weather_label = QLabel("Loading weather...")
        self.weather_label.setWordWrap(True)
        refresh = QPushButton("Refresh")
        refresh.clicked.connect(self._refresh_weather)
        layout = QVBoxLayout()
        layout.addWidget(self.weather_label)
        layout.addWidget(refresh)
        layout.addStretch()
        page = QWidget()
        page.setLayout(layout)
        return page

    def _build_market_tab(self) -> QWidget:
        self.prices: list[MarketPrice] = []
        self.market_filter = QLineEdit()
        self.market_filter.setPlaceholderText("Filter by crop...")
        self.market_filter.textChanged.connect(lambda _text: self._render_market())
        self.crop_voice = VoiceButton(
            self.context.controller_factory(),
            language=self.context.config.get_language(),
            locale=self.context.locale,
        )
        self.crop_voice.transcript.connect(self.market_filter.setText)
        self.market_list = QListWidget()
        refresh = QPushButton("Refresh prices")
        refresh.clicked.connect(self._refresh_market)

        search = QHBoxLayout()
        search.addWidget(self.market_filter)
        search.addWidget(self.crop_voice)
        layout = QVBoxLayout()
        layout.addLayout(search)
        layout.addWidget(self.market_list)
        layout.addWidget(refresh)
        page = QWidget()
        page.setLayout(layout)
        return page

    def _build_settings_tab(self) -> QWidget:
        config = self.context.config
        self.language_box = QComboBox()
        self.language_box.addItem("auto")
        for code in sorted(set(WIDGET_LANGUAGE_MAP.values())):
            self.language_box.addItem(code)
        self.language_box.setCurrentText(config.get_language())
        self.language_box.currentTextChanged.connect(self._set_language)

        self.voice_note = VoiceInput(
            self.context.controller_factory(),
            language=self.context.language,
        )
        self.voice_note.transcript.connect(self._show_status)

        self.theme_box = QComboBox()
        for color in ThemeColor:
            self.theme_box.addItem(color.value)
        self.theme_box.setCurrentText(self.context.theme.color.value)
        self.theme_box.currentTextChanged.connect(self._set_theme)

        dark_mode = QCheckBox("Dark mode")
        dark_mode.setChecked(self.context.theme.dark_mode)
        dark_mode.toggled.connect(self._set_dark_mode)

        form = QFormLayout()
        form.addRow("Voice language", self.language_box)
        form.addRow("Try voice input", self.voice_note)
        form.addRow("Theme", self.theme_box)
        form.addRow("", dark_mode)
        for name, label in _API_KEY_LABELS.items():
            button = QPushButton(f"Set {label}")
            button.clicked.connect(lambda _checked=False, name=name: self._set_api_key(name))
            form.addRow("", button)
        page = QWidget()
        page.setLayout(form)
        return page

    # ------------------------------------------------------------------
    # Actions (UI thread)
    # ------------------------------------------------------------------

    def _send(self) -> None:
        text = self.composer.text().strip()
        if not text:
            return
        self.composer.set_text("")
        self.send_button.setEnabled(False)
        self._show_status("Thinking...")
        threading.Thread(target=self._send_worker, args=(text,), daemon=True).start()

    def _clear_chat(self) -> None:
        self.chat.clear_chat()
        self._render_history()

    def _refresh_weather(self) -> None:
        self.weather_label.setText("Loading weather...")
        threading.Thread(target=self._weather_worker, daemon=True).start()

    def _refresh_market(self) -> None:
        self.market_list.clear()
        self.market_list.addItem("Loading market prices...")
        threading.Thread(target=self._market_worker, daemon=True).start()

    def _set_language(self, language: str) -> None:
        self.context.config.set_language(language)
        self.voice_note.set_language(self.context.language)

    def _set_theme(self, value: str) -> None:
        self.context.theme.set_color(ThemeColor(value))
        self._apply_theme()

    def _set_dark_mode(self, enabled: bool) -> None:
        self.context.theme.set_dark_mode(enabled)
        self._apply_theme()

    def _set_api_key(self, name: str) -> None:
        label = _API_KEY_LABELS[name]
        value, ok = QInputDialog.getText(None, "API Key", label)
        if not ok:
            return
        self.context.config.set_api_key(name, value)
        QMessageBox.information(None, "Saved", f"{label} saved. Restart app to apply.")

    def _apply_theme(self) -> None:
        theme = self.context.theme
        background = "#111827" if theme.dark_mode else "#ffffff"
        foreground = "#f9fafb" if theme.dark_mode else "#111827"
        self.window.setStyleSheet(
            f"QWidget {{ background: {background}; color: {foreground}; }}"
            f"QPushButton {{ background: {theme.primary}; color: white; padding: 6px; }}"
        )

    def _show_status(self, message: str) -> None:
        self.status.setText(message)

    # ------------------------------------------------------------------
    # Workers (background threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _send_worker(self, text: str) -> None:
        self.ui.reply_signal.emit(self.chat.send_message(text))

    def _weather_worker(self) -> None:
        self.context.location_weather.refresh()
        self.ui.weather_signal.emit()

    def _market_worker(self) -> None:
        api_key = self.context.config.get_api_key(MARKET)
        prices = get_recent_prices(fetch_market_prices(api_key=api_key))
        logger.info("Showing %d market prices", len(prices))
        self.ui.market_signal.emit(prices)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_reply_ui(self, message: ChatMessage) -> None:
        self.send_button.setEnabled(True)
        self._show_status("")
        self._render_history()

    def _on_weather_ui(self) -> None:
        state = self.context.location_weather
        if state.data is None or state.data.weather is None:
            self.weather_label.setText(state.error or "Weather data unavailable")
            return
        weather = state.data.weather
        lines = [format_location(weather), format_weather_description(weather)]
        lines.append(f"Humidity {weather.humidity}%, wind {weather.wind_kph} km/h {weather.wind_dir}")
        if weather.air_quality is not None:
            lines.append(f"Air quality: {get_air_quality_status(weather.air_quality.us_epa_index)}")
        self.weather_label.setText("\n".join(lines))

    def _on_market_ui(self, prices: list[MarketPrice]) -> None:
        self.prices = prices
        self._render_market()

    def _render_market(self) -> None:
        wanted = self.market_filter.text().strip().lower()
        self.market_list.clear()
        for price in self.prices:
            if wanted and wanted not in price.crop_name.lower():
                continue
            self.market_list.addItem(
                f"{get_trend_icon(price.trend)} {price.crop_name} ({price.variety}) "
                f"{format_price(price.modal_price)} {price.unit} · {price.market} · "
                f"{format_market_date(price.arrival_date)}"
            )

    def _render_history(self) -> None:
        self.history.clear()
        for message in self.chat.messages:
            speaker = "You" if message.is_user else "Assistant"
            self.history.append(f"<b>{speaker}:</b> {message.text}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.app.aboutToQuit.connect(self.quit)
        self.window.show()
        self._refresh_weather()
        self._refresh_market()
        return self.app.exec()

    def quit(self) -> None:
        logger.info("Shutting down voice sessions")
        self.composer.shutdown()
        self.crop_voice.shutdown()
        self.voice_note.shutdown()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
