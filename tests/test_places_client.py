import asyncio
import json

import httpx
import pytest

from credify.config.settings import PlacesSettings, Settings
from credify.ingestion.places_client import (
    PlacesClient,
    PlacesConfigError,
    category_for_types,
    parse_places_response,
)


def _place(place_id: str, types, lat=40.7589, lng=-73.9851, name="Somewhere"):
    return {
        "id": place_id,
        "displayName": {"text": name},
        "types": types,
        "location": {"latitude": lat, "longitude": lng},
        "formattedAddress": "1 Test St",
    }


def test_category_for_types_first_known_type_wins():
    assert category_for_types(["point_of_interest", "cafe", "store"]) == "dining"
    assert category_for_types(["gas_station", "convenience_store"]) == "gas"
    assert category_for_types(["point_of_interest"]) == "shopping"
    assert category_for_types(None, default="other") == "other"


def test_parse_places_response_dedupes_and_sets_spend():
    payload = {
        "places": [
            _place("p1", ["restaurant"], name="Chipotle"),
            _place("p1", ["restaurant"], name="Chipotle again"),
            _place("p2", ["supermarket"]),
            {"displayName": {"text": "no id"}},
        ]
    }

    merchants = parse_places_response(payload, estimated_spend={"dining": 30})

    assert [m.id for m in merchants] == ["p1", "p2"]
    assert merchants[0].name == "Chipotle"
    assert merchants[0].category == "dining"
    assert merchants[0].estimated_spend == 30
    assert merchants[1].category == "groceries"
    assert merchants[1].estimated_spend is None


def test_parse_places_response_rejects_bad_shape():
    with pytest.raises(ValueError):
        parse_places_response(["not", "an", "object"])
    assert parse_places_response({}) == []


def test_lookup_without_api_key_raises():
    client = PlacesClient(Settings(places=PlacesSettings(api_key=None)))
    with pytest.raises(PlacesConfigError):
        asyncio.run(client.lookup(40.0, -73.0, 100))


def test_lookup_sends_nearby_search_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"places": [_place("p1", ["gas_station"], name="Shell")]})

    settings = Settings(
        places=PlacesSettings(api_key="k-123", included_types=["gas_station"], estimated_spend={"gas": 50})
    )
    client = PlacesClient(settings, transport=httpx.MockTransport(handler))

    merchants = asyncio.run(client.lookup(40.7589, -73.9851, 100))

    assert seen["url"] == "https://places.googleapis.com/v1/places:searchNearby"
    assert seen["headers"]["X-Goog-Api-Key"] == "k-123"
    assert "places.location" in seen["headers"]["X-Goog-FieldMask"]
    circle = seen["body"]["locationRestriction"]["circle"]
    assert circle["center"] == {"latitude": 40.7589, "longitude": -73.9851}
    assert circle["radius"] == 100.0
    assert seen["body"]["includedTypes"] == ["gas_station"]
    assert seen["body"]["rankPreference"] == "DISTANCE"

    assert len(merchants) == 1
    assert merchants[0].name == "Shell"
    assert merchants[0].category == "gas"
    assert merchants[0].estimated_spend == 50


def test_lookup_raises_on_http_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"message": "denied"}})

    client = PlacesClient(
        Settings(places=PlacesSettings(api_key="k")), transport=httpx.MockTransport(handler)
    )
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.lookup(40.0, -73.0, 100))
