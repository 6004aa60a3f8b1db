"""Agricultural chat assistant backed by the Groq chat completions API."""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

try:
    from groq import Groq
except Exception:  # pragma: no cover
    Groq = None  # type: ignore

DEFAULT_MODEL = "llama-3.3-70b-versatile"

SYSTEM_PROMPT = """
# Role Assignment
You are **AgriBot**, a wise and practical **AI Agricultural Expert** who guides farmers with clear, localized, and reliable advice. Turn complex farming knowledge into **direct, actionable steps** while staying empathetic, concise, and culturally relevant.

## Core Capabilities
1. **Crop & Pest Diagnosis:** identify the likely disease, pest or nutrient issue from the farmer's description, suggest quick checks and at least one or two practical remedies (natural where possible), using local names when known.
2. **Weather-Aware Guidance:** use temperature, humidity, rainfall and wind to time irrigation, spraying and harvesting, and warn about fungal spread, pest surges or crop stress. Only use weather when it matters for the question.
3. **Region-Specific Knowledge:** suggest suitable crops, seasonal patterns and common local pests. If the region is unknown, ask for it.
4. **Farmer Queries (Voice/Text):** crop practices and planting schedules, pest and disease management, soil fertility and fertilizer use, seasonal advice, government schemes when relevant.
5. **Recommendations:** base answers on crop, region, season and weather. If unsure, suggest consulting the local agriculture officer. Always give at least **one clear next step**.

## Tone & Style
Calm, supportive, like a trusted village agri-expert. Simple sentences in the farmer's own language, avoiding jargon.

## Answer Workflow
1. Identify the query type (crop issue, weather, soil, general).
2. Use the available data (weather, location, history).
3. Answer in the farmer's language in at most 100 words, as short points rather than markdown tables.
4. Give at least one clear action and an optional follow-up question.
5. If uncertain, give a safe fallback and suggest expert contact.

### Example (Darbhanga, Bihar, Sunny, 29°C, humidity 69%):
- "For paddy at this temperature and humidity, fungal disease can appear. Check if leaves show small brown spots. If yes, spray Tricyclazole or use neem decoction as a natural option. Avoid watering fields in the afternoon today; evening is better. Do you notice any pest movement on leaves?"
"""

EMPTY_RESPONSE_MESSAGE = "I'm sorry, I couldn't generate a response. Please try again."

APOLOGY_MESSAGE = """I'm experiencing some technical difficulties at the moment. However, I can still help with basic agricultural advice. Could you please rephrase your question? Common topics I can assist with include:

- Pest and disease management
- Irrigation and water management
- Fertilization and soil health
- Crop planning based on weather
- Harvest timing and storage"""

STREAMING_APOLOGY_MESSAGE = "I'm experiencing some technical difficulties. Please try again later."

GREETING = (
    "Hello! I'm your AI agricultural assistant. I can help you with farming questions, "
    "pest management, fertilization, irrigation, and more. What would you like to know?"
)
CLEARED_GREETING = "Hello! I'm your AI agricultural assistant. How can I help you today?"

_OFFLINE_ANSWERS = (
    (
        ("pest", "insect", "bug"),
        "For pest management, I recommend integrated pest management (IPM) practices. First, "
        "identify the specific pest affecting your crop. Common solutions include neem oil spray, "
        "beneficial insects, or targeted pesticides as a last resort. Would you like specific "
        "advice for a particular pest?",
    ),
    (
        ("fertilizer", "nutrient"),
        "For optimal fertilizer application, conduct a soil test first. Generally, NPK fertilizers "
        "work well for most crops. Organic options like compost and vermicompost are excellent for "
        "soil health. Apply fertilizers based on your crop's growth stage and soil requirements.",
    ),
    (
        ("disease", "fungus", "infection"),
        "Plant diseases often require quick action. Remove affected plant parts immediately and "
        "dispose properly. Copper-based fungicides or neem oil can help with fungal infections. "
        "Ensure proper spacing for air circulation and avoid overhead watering. What symptoms are "
        "you observing?",
    ),
    (
        ("irrigation", "water"),
        "Proper irrigation is crucial for crop health. Water early morning or evening to reduce "
        "evaporation. Check soil moisture before watering - insert your finger 2-3 inches deep. "
        "Most crops need 1-1.5 inches of water weekly, including rainfall. Consider drip "
        "irrigation for water efficiency.",
    ),
    (
        ("soil", "organic"),
        "Healthy soil is the foundation of good farming. Test soil pH regularly (6.0-7.0 is ideal "
        "for most crops). Add organic matter like compost to improve soil structure. Practice crop "
        "rotation to maintain soil fertility and reduce disease. Cover crops can also help during "
        "off-seasons.",
    ),
    (
        ("weather", "rain", "temperature"),
        "Weather planning is essential for farming success. Monitor local weather forecasts daily. "
        "Protect crops from extreme weather using shade nets or row covers. Adjust irrigation "
        "based on rainfall. Plan planting and harvesting around weather patterns.",
    ),
)

_OFFLINE_DEFAULT = (
    "Thank you for your agricultural question! For the best advice, please provide more specific "
    "details about your crop, location, and the issue you're facing. I can help with pest "
    "management, fertilization, irrigation, soil health, and general farming practices."
)


@dataclass
class WeatherContext:
    location: Optional[str] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    condition: Optional[str] = None
    wind_speed: Optional[float] = None
    pressure: Optional[float] = None


def _or_na(value: Any, unit: str = "") -> str:
    # Zero readings are reported as unavailable, matching the upstream prompt format.
    return f"{value}{unit}" if value else "Not available"


def format_weather_context(weather: WeatherContext) -> str:
    return (
        "Current Weather Data:\n"
        f"- Location: {weather.location or 'Not specified'}\n"
        f"- Temperature: {_or_na(weather.temperature, '°C')}\n"
        f"- Humidity: {_or_na(weather.humidity, '%')}\n"
        f"- Condition: {weather.condition or 'Not available'}\n"
        f"- Wind Speed: {_or_na(weather.wind_speed, ' km/h')}\n"
        f"- Pressure: {_or_na(weather.pressure, ' hPa')}\n"
        "\n"
        "Please consider these weather conditions when providing your agricultural advice."
    )


def build_messages(query: str, weather: Optional[WeatherContext] = None) -> list[dict[str, str]]:
    if weather is not None:
        user_content = f"Weather Data: {format_weather_context(weather)}\nUser Query: {query}"
    else:
        user_content = f"User Query: {query}"
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]


def get_offline_response(query: str) -> str:
    lowered = query.lower()
    for keywords, answer in _OFFLINE_ANSWERS:
        if any(keyword in lowered for keyword in keywords):
            return answer
    return _OFFLINE_DEFAULT


class AgriculturalChatService:
    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        client: Any = None,
        temperature: float = 0.7,
        max_completion_tokens: int = 1024,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client
        self._temperature = temperature
        self._max_completion_tokens = max_completion_tokens

    def _get_client(self) -> Any:
        if self._client is None:
            if Groq is None:
                raise RuntimeError("groq is not installed")
            api_key = self._api_key or os.getenv("GROQ_API_KEY", "")
            if not api_key:
                raise RuntimeError("No Groq API key configured")
            self._client = Groq(api_key=api_key)
        return self._client

    def _create(self, query: str, weather: Optional[WeatherContext], stream: bool) -> Any:
        return self._get_client().chat.completions.create(
            messages=build_messages(query, weather),
            model=self._model,
            temperature=self._temperature,
            max_completion_tokens=self._max_completion_tokens,
            top_p=1,
            stream=stream,
            stop=None,
        )

    def generate_response(self, query: str, weather: Optional[WeatherContext] = None) -> str:
        try:
            completion = self._create(query, weather, stream=False)
            choices = completion.choices
            content = choices[0].message.content if choices else None
            return content or EMPTY_RESPONSE_MESSAGE
        except Exception as exc:
            logger.error("Groq API error: %s", exc)
            return APOLOGY_MESSAGE

    def generate_streaming_response(
        self,
        query: str,
        on_chunk: Callable[[str], None],
        weather: Optional[WeatherContext] = None,
    ) -> None:
        try:
            for chunk in self._create(query, weather, stream=True):
                choices = chunk.choices
                content = choices[0].delta.content if choices else None
                if content:
                    on_chunk(content)
        except Exception as exc:
            logger.error("Groq streaming API error: %s", exc)
            on_chunk(STREAMING_APOLOGY_MESSAGE)


@dataclass
class ChatMessage:
    id: str
    text: str
    is_user: bool
    timestamp: datetime = field(default_factory=datetime.now)


class ChatSession:
    """Message history for one chat screen."""

    def __init__(
        self,
        service: Optional[AgriculturalChatService] = None,
        weather_provider: Optional[Callable[[], Optional[WeatherContext]]] = None,
    ) -> None:
        self._service = service
        self._weather_provider = weather_provider
        self._ids = itertools.count(2)
        self.messages: list[ChatMessage] = [ChatMessage(id="1", text=GREETING, is_user=False)]

    def send_message(self, text: str) -> ChatMessage:
        text = text.strip()
        if not text:
            raise ValueError("message text is empty")
        self.messages.append(ChatMessage(id=str(next(self._ids)), text=text, is_user=True))
        if self._service is None:
            reply = get_offline_response(text)
        else:
            weather = self._weather_provider() if self._weather_provider else None
            reply = self._service.generate_response(text, weather)
        message = ChatMessage(id=str(next(self._ids)), text=reply, is_user=False)
        self.messages.append(message)
        return message

    def clear_chat(self) -> None:
        self._ids = itertools.count(2)
        self.messages = [ChatMessage(id="1", text=CLEARED_GREETING, is_user=False)]
