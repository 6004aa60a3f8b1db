"""Current weather and air quality for the farmer's position."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from chat_service import WeatherContext

logger = logging.getLogger(__name__)

WEATHER_API_URL = "https://api.weatherapi.com/v1/current.json"
IP_DETAILS_URL = "https://api-point-ip-details.vercel.app"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


@dataclass(frozen=True)
class AirQuality:
    co: float = 0.0
    no2: float = 0.0
    o3: float = 0.0
    so2: float = 0.0
    pm2_5: float = 0.0
    pm10: float = 0.0
    us_epa_index: int = 0
    gb_defra_index: int = 0


@dataclass(frozen=True)
class WeatherReading:
    location_name: str
    region: str
    country: str
    local_time: str
    temp_c: float
    feelslike_c: float
    condition: str
    condition_icon: str
    humidity: float
    wind_kph: float
    wind_dir: str
    pressure_mb: float
    precip_mm: float
    cloud: float
    uv: float
    vis_km: float
    is_day: bool
    air_quality: Optional[AirQuality] = None


@dataclass(frozen=True)
class LocationWeather:
    coords: Coordinates
    weather: Optional[WeatherReading]


class LocationUnavailable(Exception):
    pass


GpsProvider = Callable[[], Coordinates]


def get_user_location(gps: Optional[GpsProvider] = None) -> Coordinates:
    if gps is None:
        raise LocationUnavailable("Geolocation is not supported on this device")
    try:
        return gps()
    except LocationUnavailable:
        raise
    except Exception as exc:
        raise LocationUnavailable(str(exc)) from exc


def get_user_location_from_ip(timeout_s: float = 8.0) -> Coordinates:
    try:
        response = requests.get(IP_DETAILS_URL, timeout=timeout_s)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or data.get("status") != "success":
            raise LocationUnavailable("IP location API returned error status")
        return Coordinates(lat=float(data["lat"]), lon=float(data["lon"]))
    except LocationUnavailable:
        raise
    except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
        raise LocationUnavailable(f"IP-based location failed: {exc}") from exc


def _parse_air_quality(raw: Optional[dict[str, Any]]) -> Optional[AirQuality]:
    if not raw:
        return None
    return AirQuality(
        co=float(raw.get("co", 0.0)),
        no2=float(raw.get("no2", 0.0)),
        o3=float(raw.get("o3", 0.0)),
        so2=float(raw.get("so2", 0.0)),
        pm2_5=float(raw.get("pm2_5", 0.0)),
        pm10=float(raw.get("pm10", 0.0)),
        us_epa_index=int(raw.get("us-epa-index", 0)),
        gb_defra_index=int(raw.get("gb-defra-index", 0)),
    )


def parse_weather(data: Any) -> WeatherReading:
    if not isinstance(data, dict):
        raise ValueError(f"unexpected weather response: {type(data).__name__}")
    location = data["location"]
    current = data["current"]
    condition = current.get("condition", {})
    return WeatherReading(
        location_name=location.get("name", ""),
        region=location.get("region", ""),
        country=location.get("country", ""),
        local_time=location.get("localtime", ""),
        temp_c=float(current["temp_c"]),
        feelslike_c=float(current.get("feelslike_c", current["temp_c"])),
        condition=condition.get("text", ""),
        condition_icon=condition.get("icon", ""),
        humidity=float(current.get("humidity", 0)),
        wind_kph=float(current.get("wind_kph", 0)),
        wind_dir=current.get("wind_dir", ""),
        pressure_mb=float(current.get("pressure_mb", 0)),
        precip_mm=float(current.get("precip_mm", 0)),
        cloud=float(current.get("cloud", 0)),
        uv=float(current.get("uv", 0)),
        vis_km=float(current.get("vis_km", 0)),
        is_day=bool(current.get("is_day", 1)),
        air_quality=_parse_air_quality(current.get("air_quality")),
    )


def get_weather_from_coords(
    coords: Coordinates,
    api_key: str = "",
    timeout_s: float = 10.0,
) -> Optional[WeatherReading]:
    """Fetch current conditions; ``None`` means unavailable."""
    api_key = api_key or os.getenv("WEATHER_API_KEY", "")
    try:
        response = requests.get(
            WEATHER_API_URL,
            params={"key": api_key, "q": f"{coords.lat},{coords.lon}", "aqi": "yes"},
            timeout=timeout_s,
        )
        response.raise_for_status()
        return parse_weather(response.json())
    except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.error("Error fetching weather: %s", exc)
        return None


def get_location_and_weather(
    gps: Optional[GpsProvider] = None,
    api_key: str = "",
) -> Optional[LocationWeather]:
    """GPS first, IP geolocation second; ``None`` when neither works."""
    try:
        coords = get_user_location(gps)
        logger.info("Location obtained via GPS")
    except LocationUnavailable as gps_error:
        logger.info("GPS location failed, trying IP-based location: %s", gps_error)
        try:
            coords = get_user_location_from_ip()
        except LocationUnavailable as exc:
            logger.error("Error fetching location and weather: %s", exc)
            return None
        logger.info("Location obtained via IP")
    return LocationWeather(coords=coords, weather=get_weather_from_coords(coords, api_key))


def format_location(weather: WeatherReading) -> str:
    parts = [weather.location_name, weather.region, weather.country]
    return ", ".join(part for part in parts if part)


def format_weather_description(weather: WeatherReading) -> str:
    return f"{weather.temp_c}°C, {weather.condition}"


def get_air_quality_status(index: int) -> str:
    if index <= 1:
        return "Good"
    if index <= 2:
        return "Moderate"
    if index <= 3:
        return "Unhealthy for Sensitive Groups"
    if index <= 4:
        return "Unhealthy"
    if index <= 5:
        return "Very Unhealthy"
    return "Hazardous"


def to_weather_context(weather: WeatherReading) -> WeatherContext:
    return WeatherContext(
        location=format_location(weather),
        temperature=weather.temp_c,
        humidity=weather.humidity,
        condition=weather.condition,
        wind_speed=weather.wind_kph,
        pressure=weather.pressure_mb,
    )
