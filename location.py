"""IP based location lookup used to pick the market-price region."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

IP_API_URL = "http://ip-api.com/json/"
IP_API_FIELDS = "status,country,countryCode,region,regionName,city,lat,lon,timezone,isp,org,as,query"

DEFAULT_STATE = "Bihar"

# Region names that differ from what data.gov.in expects go here.
STATE_NAME_MAP = {
    "Orissa": "Odisha",
    "Pondicherry": "Puducherry",
    "National Capital Territory of Delhi": "Delhi",
    "NCT of Delhi": "Delhi",
    "Jammu & Kashmir": "Jammu and Kashmir",
    "Andaman & Nicobar Islands": "Andaman and Nicobar Islands",
    "Dadra and Nagar Haveli": "Dadra and Nagar Haveli and Daman and Diu",
    "Daman and Diu": "Dadra and Nagar Haveli and Daman and Diu",
}


@dataclass(frozen=True)
class UserLocation:
    state: str
    city: str
    country: str
    lat: float
    lon: float


FALLBACK_LOCATION = UserLocation(
    state=DEFAULT_STATE,
    city="Unknown",
    country="India",
    lat=25.0961,
    lon=85.3131,
)


def get_user_location_from_ip(timeout_s: float = 8.0) -> UserLocation:
    """Resolve the caller's region from its public IP, falling back to Bihar."""
    try:
        response = requests.get(IP_API_URL, params={"fields": IP_API_FIELDS}, timeout=timeout_s)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or data.get("status") != "success":
            raise ValueError("location service returned error status")
        region = data.get("regionName") or DEFAULT_STATE
        return UserLocation(
            state=STATE_NAME_MAP.get(region, region),
            city=data.get("city", "Unknown"),
            country=data.get("country", "India"),
            lat=float(data.get("lat", FALLBACK_LOCATION.lat)),
            lon=float(data.get("lon", FALLBACK_LOCATION.lon)),
        )
    except (requests.RequestException, ValueError, TypeError) as exc:
        logger.error("Error fetching user location from IP: %s", exc)
        return FALLBACK_LOCATION


def get_state_for_market_api() -> str:
    return get_user_location_from_ip().state or DEFAULT_STATE
