"""
Merchant lookup (Google Places "Nearby Search (New)").

The notification gate only needs `lookup(latitude, longitude, radius_m) -> [Merchant]`.
This module provides:
- `MerchantLookup`: the protocol the gate depends on,
- `PlacesClient`: the live implementation over the Places API,
- `StaticMerchantLookup`: an offline implementation over a fixed merchant list
  (demos, trace replay, tests).

Place types are mapped to Credify's spending categories; the first known type wins.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

import httpx

from credify.config.settings import Settings
from credify.core.geo import haversine_m, sort_by_distance
from credify.core.http import post_json
from credify.domain.models import Coordinate, Merchant

logger = logging.getLogger(__name__)

PLACE_TYPE_CATEGORIES: dict[str, str] = {
    # Dining
    "restaurant": "dining",
    "cafe": "dining",
    "bakery": "dining",
    "bar": "dining",
    "meal_takeaway": "dining",
    "meal_delivery": "dining",
    "food": "dining",
    # Gas
    "gas_station": "gas",
    # Groceries
    "grocery_store": "groceries",
    "supermarket": "groceries",
    "convenience_store": "groceries",
    # Shopping
    "shopping_mall": "shopping",
    "department_store": "shopping",
    "clothing_store": "shopping",
    "electronics_store": "shopping",
    "book_store": "shopping",
    "jewelry_store": "shopping",
    "shoe_store": "shopping",
    "furniture_store": "shopping",
    "home_goods_store": "shopping",
    "store": "shopping",
    # Entertainment
    "movie_theater": "entertainment",
    "gym": "entertainment",
    "night_club": "entertainment",
    "bowling_alley": "entertainment",
    "stadium": "entertainment",
    "amusement_park": "entertainment",
    "aquarium": "entertainment",
    "art_gallery": "entertainment",
    "casino": "entertainment",
    "museum": "entertainment",
    "zoo": "entertainment",
    "spa": "entertainment",
    # Travel
    "lodging": "travel",
    "airport": "travel",
    "car_rental": "travel",
    "rv_park": "travel",
    "campground": "travel",
    "transit_station": "travel",
    # Personal care
    "hair_care": "personal_care",
    "beauty_salon": "personal_care",
    # Auto services
    "car_repair": "auto_services",
    "car_wash": "auto_services",
    "car_dealer": "auto_services",
    "parking": "auto_services",
    # Healthcare
    "pharmacy": "healthcare",
    "hospital": "healthcare",
    "doctor": "healthcare",
    "dentist": "healthcare",
    "veterinary_care": "healthcare",
    "physiotherapist": "healthcare",
}


class PlacesConfigError(RuntimeError):
    """Raised when the Places client is used without an API key."""


class MerchantLookup(Protocol):
    async def lookup(self, latitude: float, longitude: float, radius_m: float) -> list[Merchant]: ...


def category_for_types(types: Iterable[str] | None, default: str = "shopping") -> str:
    for place_type in types or ():
        category = PLACE_TYPE_CATEGORIES.get(place_type)
        if category:
            return category
    return default


def parse_places_response(
    payload: Any,
    *,
    default_category: str = "shopping",
    estimated_spend: dict[str, float] | None = None,
) -> list[Merchant]:
    """Convert a `places:searchNearby` response into merchants (duplicates dropped)."""
    if not isinstance(payload, dict):
        raise ValueError("Places response must be a JSON object")
    places = payload.get("places") or []
    if not isinstance(places, list):
        raise ValueError("Places response field 'places' must be a list")

    spend = estimated_spend or {}
    merchants: list[Merchant] = []
    seen: set[str] = set()
    for place in places:
        if not isinstance(place, dict):
            continue
        place_id = place.get("id")
        if not place_id or place_id in seen:
            continue
        seen.add(place_id)

        category = category_for_types(place.get("types"), default_category)
        location = place.get("location") or {}
        merchants.append(
            Merchant(
                id=str(place_id),
                name=(place.get("displayName") or {}).get("text") or "Unknown Place",
                category=category,
                location=Coordinate(
                    latitude=float(location.get("latitude") or 0.0),
                    longitude=float(location.get("longitude") or 0.0),
                ),
                address=place.get("formattedAddress") or None,
                estimated_spend=spend.get(category),
            )
        )
    return merchants


class PlacesClient:
    """Live merchant lookup over the Google Places API."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport

    def _request_body(self, latitude: float, longitude: float, radius_m: float) -> dict[str, Any]:
        places = self._settings.places
        body: dict[str, Any] = {
            "maxResultCount": places.max_result_count,
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": latitude, "longitude": longitude},
                    "radius": float(radius_m),
                }
            },
            # Nearest first; the gate still re-sorts defensively.
            "rankPreference": "DISTANCE",
        }
        if places.included_types:
            body["includedTypes"] = list(places.included_types)
        return body

    async def lookup(self, latitude: float, longitude: float, radius_m: float) -> list[Merchant]:
        places = self._settings.places
        if not places.api_key:
            raise PlacesConfigError("Google Places API key not configured (GOOGLE_PLACES_API_KEY)")

        logger.info("Fetching places near %.5f,%.5f within %.0fm", latitude, longitude, radius_m)
        payload = await post_json(
            places.base_url,
            json=self._request_body(latitude, longitude, radius_m),
            headers={
                "X-Goog-Api-Key": places.api_key,
                "X-Goog-FieldMask": places.field_mask,
            },
            timeout_seconds=places.http_timeout_seconds,
            transport=self._transport,
        )
        merchants = parse_places_response(
            payload,
            default_category=places.default_category,
            estimated_spend=places.estimated_spend,
        )
        logger.info("Places lookup returned %d merchants", len(merchants))
        return merchants


class StaticMerchantLookup:
    """Offline lookup over a fixed merchant list, nearest first."""

    def __init__(self, merchants: Iterable[Merchant]):
        self._merchants = list(merchants)

    async def lookup(self, latitude: float, longitude: float, radius_m: float) -> list[Merchant]:
        origin = Coordinate(latitude=latitude, longitude=longitude)
        nearby = [m for m in self._merchants if haversine_m(origin, m.location) <= radius_m]
        return sort_by_distance(origin, nearby, key=lambda m: m.location)
