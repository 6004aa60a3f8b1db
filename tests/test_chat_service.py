from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from chat_service import (
    APOLOGY_MESSAGE,
    CLEARED_GREETING,
    EMPTY_RESPONSE_MESSAGE,
    GREETING,
    STREAMING_APOLOGY_MESSAGE,
    SYSTEM_PROMPT,
    AgriculturalChatService,
    ChatSession,
    WeatherContext,
    build_messages,
    format_weather_context,
    get_offline_response,
)


def _completion(content: str | None) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _stream_chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


def test_format_weather_context_marks_missing_values() -> None:
    text = format_weather_context(WeatherContext(location="Patna", temperature=31.0, humidity=None))
    assert "- Location: Patna" in text
    assert "- Temperature: 31.0°C" in text
    assert "- Humidity: Not available" in text
    assert "- Condition: Not available" in text


def test_build_messages_with_and_without_weather() -> None:
    plain = build_messages("When to sow wheat?")
    assert plain[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert plain[1]["content"] == "User Query: When to sow wheat?"

    with_weather = build_messages("Spray today?", WeatherContext(condition="Sunny"))
    assert with_weather[1]["content"].startswith("Weather Data: Current Weather Data:")
    assert with_weather[1]["content"].endswith("User Query: Spray today?")


def test_generate_response_returns_model_text() -> None:
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("Use neem oil.")
    service = AgriculturalChatService(client=client)

    assert service.generate_response("aphids on mustard") == "Use neem oil."
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "llama-3.3-70b-versatile"
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_completion_tokens"] == 1024
    assert kwargs["stream"] is False


def test_generate_response_empty_choice() -> None:
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(None)
    assert AgriculturalChatService(client=client).generate_response("?") == EMPTY_RESPONSE_MESSAGE


def test_generate_response_failure_returns_apology() -> None:
    client = MagicMock()
    client.chat.completions.create.side_effect = RuntimeError("rate limited")
    assert AgriculturalChatService(client=client).generate_response("?") == APOLOGY_MESSAGE


@patch.dict("os.environ", {"GROQ_API_KEY": ""}, clear=False)
def test_missing_api_key_returns_apology() -> None:
    with patch("chat_service.Groq") as groq_cls:
        assert AgriculturalChatService().generate_response("?") == APOLOGY_MESSAGE
        groq_cls.assert_not_called()


def test_client_created_from_api_key() -> None:
    with patch("chat_service.Groq") as groq_cls:
        groq_cls.return_value.chat.completions.create.return_value = _completion("ok")
        service = AgriculturalChatService(api_key="gsk-test")
        assert service.generate_response("hi") == "ok"
        groq_cls.assert_called_once_with(api_key="gsk-test")


def test_streaming_response_forwards_chunks() -> None:
    client = MagicMock()
    client.chat.completions.create.return_value = iter(
        [_stream_chunk("Water "), _stream_chunk(None), _stream_chunk("at dusk.")]
    )
    chunks: list[str] = []

    AgriculturalChatService(client=client).generate_streaming_response("irrigation?", chunks.append)

    assert chunks == ["Water ", "at dusk."]
    assert client.chat.completions.create.call_args.kwargs["stream"] is True


def test_streaming_failure_sends_apology_chunk() -> None:
    client = MagicMock()
    client.chat.completions.create.side_effect = ConnectionError("offline")
    chunks: list[str] = []

    AgriculturalChatService(client=client).generate_streaming_response("?", chunks.append)

    assert chunks == [STREAMING_APOLOGY_MESSAGE]


def test_offline_response_keywords() -> None:
    assert "integrated pest management" in get_offline_response("Insects on my cotton")
    assert "soil test" in get_offline_response("Which FERTILIZER?")
    assert "Thank you for your agricultural question" in get_offline_response("hello")


def test_chat_session_offline_flow() -> None:
    session = ChatSession()
    assert session.messages[0].text == GREETING

    reply = session.send_message("  how much water for paddy  ")

    assert [m.is_user for m in session.messages] == [False, True, False]
    assert session.messages[1].text == "how much water for paddy"
    assert "Proper irrigation" in reply.text
    assert [m.id for m in session.messages] == ["1", "2", "3"]


def test_chat_session_passes_weather_to_service() -> None:
    service = MagicMock()
    service.generate_response.return_value = "Wait for the rain to pass."
    weather = WeatherContext(location="Nagpur", condition="Rain")
    session = ChatSession(service, lambda: weather)

    reply = session.send_message("Spray today?")

    service.generate_response.assert_called_once_with("Spray today?", weather)
    assert reply.text == "Wait for the rain to pass."


def test_chat_session_rejects_empty_and_clears() -> None:
    session = ChatSession()
    with pytest.raises(ValueError):
        session.send_message("   ")

    session.send_message("soil")
    session.clear_chat()

    assert len(session.messages) == 1
    assert session.messages[0].text == CLEARED_GREETING
