"""Mandi (market) commodity prices from the data.gov.in daily price feed."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

import requests

from errors import ApiError
from location import get_state_for_market_api

logger = logging.getLogger(__name__)

MARKET_API_URL = "https://api.data.gov.in/resource/9ef84268-d588-465a-a308-a864a43d0070"
MARKET_API_TIMEOUT_S = 10.0
UNIT = "per quintal"

POPULAR_CROPS = ("Wheat", "Rice", "Potato", "Onion", "Tomato", "Cotton")

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"

_TREND_ICONS = {TREND_UP: "↗", TREND_DOWN: "↘"}


@dataclass(frozen=True)
class MarketPrice:
    id: str
    crop_name: str
    variety: str
    modal_price: float
    min_price: float
    max_price: float
    unit: str
    trend: str
    market: str
    district: str
    state: str
    arrival_date: str


def _today() -> str:
    return date.today().strftime("%d/%m/%Y")


def get_fallback_market_data() -> list[MarketPrice]:
    arrival = _today()
    return [
        MarketPrice("fallback-1", "Wheat", "Lokvan", 2250, 2200, 2300, UNIT, TREND_UP,
                    "Local Mandi", "Unknown", "Unknown", arrival),
        MarketPrice("fallback-2", "Rice", "Basmati", 4500, 4400, 4600, UNIT, TREND_STABLE,
                    "Local Mandi", "Unknown", "Unknown", arrival),
        MarketPrice("fallback-3", "Potato", "Jyoti", 1800, 1700, 1900, UNIT, TREND_DOWN,
                    "Local Mandi", "Unknown", "Unknown", arrival),
    ]


def _to_price(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def classify_trend(modal_price: float, min_price: float, max_price: float) -> str:
    midpoint = (min_price + max_price) / 2
    if modal_price > midpoint * 1.1:
        return TREND_UP
    if modal_price < midpoint * 0.9:
        return TREND_DOWN
    return TREND_STABLE


def to_market_price(record: dict[str, Any], index: int) -> MarketPrice:
    modal = _to_price(record.get("modal_price"))
    low = _to_price(record.get("min_price"))
    high = _to_price(record.get("max_price"))
    state = record.get("state", "")
    district = record.get("district", "")
    commodity = record.get("commodity", "")
    return MarketPrice(
        id=f"{state}-{district}-{commodity}-{index}",
        crop_name=commodity,
        variety=record.get("variety") or "Common",
        modal_price=modal,
        min_price=low,
        max_price=high,
        unit=UNIT,
        trend=classify_trend(modal, low, high),
        market=record.get("market", ""),
        district=district,
        state=state,
        arrival_date=record.get("arrival_date", ""),
    )


def _request_records(state: str, limit: int, api_key: str) -> list[dict[str, Any]]:
    try:
        response = requests.get(
            MARKET_API_URL,
            params={
                "api-key": api_key,
                "format": "json",
                "filters[state.keyword]": state,
                "limit": str(limit),
                "offset": "0",
            },
            timeout=MARKET_API_TIMEOUT_S,
        )
        response.raise_for_status()
        data = response.json()
    except requests.Timeout as exc:
        raise ApiError("API request timeout", "NETWORK_ERROR") from exc
    except requests.RequestException as exc:
        raise ApiError(f"API request failed: {exc}", "NETWORK_ERROR") from exc
    except ValueError as exc:
        raise ApiError(f"Invalid API response: {exc}", "PARSE_ERROR") from exc

    if not isinstance(data, dict):
        raise ApiError(f"Invalid API response: {type(data).__name__}", "PARSE_ERROR")
    if data.get("status") != "ok":
        raise ApiError(f"API returned error status: {data.get('status')}", "API_ERROR")
    records = data.get("records")
    if not isinstance(records, list):
        return []
    return [record for record in records if isinstance(record, dict)]


def fetch_market_prices(
    state: Optional[str] = None,
    limit: int = 50,
    api_key: str = "",
) -> list[MarketPrice]:
    """Prices for ``state`` (IP-derived when omitted); never returns an empty list."""
    target_state = state or get_state_for_market_api()
    api_key = api_key or os.getenv("MARKET_API_KEY", "")
    try:
        records = _request_records(target_state, limit, api_key)
    except ApiError as exc:
        logger.error("Error fetching market prices (%s): %s", exc.code, exc.message)
        return get_fallback_market_data()

    if not records:
        logger.info("No market data found for state: %s", target_state)
        return get_fallback_market_data()

    prices = [to_market_price(record, index) for index, record in enumerate(records)]
    logger.info("Fetched %d market prices for %s", len(prices), target_state)
    return prices


def fetch_market_prices_for_commodities(
    commodities: list[str] | tuple[str, ...],
    state: Optional[str] = None,
    api_key: str = "",
) -> list[MarketPrice]:
    wanted = [commodity.lower() for commodity in commodities]
    return [
        price
        for price in fetch_market_prices(state, 100, api_key)
        if any(name in price.crop_name.lower() for name in wanted)
    ]


def fetch_popular_crop_prices(state: Optional[str] = None, api_key: str = "") -> list[MarketPrice]:
    return fetch_market_prices_for_commodities(POPULAR_CROPS, state, api_key)


# ----------------------------------------------------------------------
# Display helpers
# ----------------------------------------------------------------------


def format_price(price: float) -> str:
    """Indian-grouped rupee amount, e.g. 123456 -> ₹1,23,456."""
    whole = str(int(round(abs(price))))
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    sign = "-" if price < 0 else ""
    return f"{sign}₹{whole}"


def _parse_arrival(value: str) -> date:
    return datetime.strptime(value, "%d/%m/%Y").date()


def format_market_date(value: str, today: Optional[date] = None) -> str:
    try:
        arrived = _parse_arrival(value)
    except ValueError:
        return value
    days = ((today or date.today()) - arrived).days
    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if 1 < days < 7:
        return f"{days} days ago"
    return arrived.strftime("%d/%m/%Y")


def get_trend_icon(trend: str) -> str:
    return _TREND_ICONS.get(trend, "→")


def group_prices_by_commodity(prices: list[MarketPrice]) -> dict[str, list[MarketPrice]]:
    groups: dict[str, list[MarketPrice]] = {}
    for price in prices:
        groups.setdefault(price.crop_name, []).append(price)
    return groups


def get_best_price_for_commodity(prices: list[MarketPrice]) -> Optional[MarketPrice]:
    if not prices:
        return None
    return max(prices, key=lambda price: price.modal_price)


def get_recent_prices(
    prices: list[MarketPrice],
    max_days_old: int = 7,
    today: Optional[date] = None,
) -> list[MarketPrice]:
    cutoff = (today or date.today()).toordinal() - max_days_old
    recent = []
    for price in prices:
        try:
            arrived = _parse_arrival(price.arrival_date)
        except ValueError:
            # Unparseable dates are kept.
            recent.append(price)
            continue
        if arrived.toordinal() >= cutoff:
            recent.append(price)
    return recent
