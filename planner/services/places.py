"""Google Places / Geocoding API client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from planner.models.events import Activity, Coordinates, Location

TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DEFAULT_TIMEOUT = 10.0

DETAIL_FIELDS = "place_id,name,formatted_address,geometry,rating,types,price_level,opening_hours,photos"

SUGGESTION_QUERIES = [
    "restaurants",
    "entertainment",
    "tourist_attraction",
    "museum",
    "park",
    "shopping_mall",
    "movie_theater",
    "amusement_park",
    "zoo",
    "art_gallery",
]

TYPE_MINUTES: Dict[str, int] = {
    "restaurant": 90,
    "cafe": 45,
    "museum": 120,
    "park": 60,
    "shopping_mall": 120,
    "movie_theater": 150,
    "tourist_attraction": 90,
    "amusement_park": 240,
    "zoo": 180,
    "art_gallery": 90,
}

# price_level 0 (free) .. 4 (very expensive)
PRICE_LEVEL_COST: Dict[int, int] = {0: 0, 1: 15, 2: 30, 3: 60, 4: 100}

log = logging.getLogger(__name__)


class PlacesError(RuntimeError):
    """Raised when the Places API answers with a non-OK status."""


def estimate_duration(types: Optional[Sequence[str]] = None) -> int:
    """Typical visit length in minutes for the first recognized place type."""
    for t in types or []:
        if t in TYPE_MINUTES:
            return TYPE_MINUTES[t]
    return 60


def estimate_cost(price_level: Optional[int]) -> int:
    return PRICE_LEVEL_COST.get(price_level or 0, 0)


def _to_activity(place: Dict[str, Any], with_cost: bool = False) -> Activity:
    types = place.get("types") or []
    loc = ((place.get("geometry") or {}).get("location")) or {}
    coords = Coordinates(float(loc["lat"]), float(loc["lng"])) if "lat" in loc and "lng" in loc else None
    return Activity(
        id=place.get("place_id", ""),
        name=place.get("name", ""),
        type=types[0] if types else "unknown",
        location=Location(address=place.get("formatted_address", ""), coordinates=coords),
        duration=estimate_duration(types),
        cost=estimate_cost(place.get("price_level")) if with_cost else None,
        rating=place.get("rating"),
        description=", ".join(types) or None,
        place_id=place.get("place_id"),
    )


class PlacesClient:
    """Thin wrapper over the Places text search, details and geocoding endpoints."""

    def __init__(self, api_key: str, session: Optional[requests.Session] = None) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        resp = self.session.get(url, params={**params, "key": self.api_key}, timeout=DEFAULT_TIMEOUT)
        resp.raise_for_status()
        return resp.json()

    def search_places(
        self,
        query: str,
        location: Coordinates,
        radius: int = 5000,
        place_type: Optional[str] = None,
    ) -> List[Activity]:
        params: Dict[str, Any] = {
            "query": query,
            "location": f"{location.lat},{location.lng}",
            "radius": radius,
        }
        if place_type:
            params["type"] = place_type
        try:
            data = self._get(TEXT_SEARCH_URL, params)
        except (requests.RequestException, ValueError) as e:
            log.error("Error searching places: %s", e)
            raise PlacesError("Failed to search places") from e
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise PlacesError(f"Google Places API error: {status}")
        return [_to_activity(p) for p in data.get("results") or []]

    def get_place_details(self, place_id: str) -> Optional[Activity]:
        try:
            data = self._get(DETAILS_URL, {"place_id": place_id, "fields": DETAIL_FIELDS})
            if data.get("status") != "OK":
                raise PlacesError(f"Google Places API error: {data.get('status')}")
            return _to_activity(data.get("result") or {}, with_cost=True)
        except (requests.RequestException, ValueError, PlacesError) as e:
            log.warning("Error getting place details: %s", e)
            return None

    def geocode_address(self, address: str) -> Optional[Coordinates]:
        try:
            data = self._get(GEOCODE_URL, {"address": address})
        except (requests.RequestException, ValueError) as e:
            log.warning("Error geocoding address: %s", e)
            return None
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            return None
        loc = results[0]["geometry"]["location"]
        return Coordinates(float(loc["lat"]), float(loc["lng"]))

    def get_suggested_activities(
        self,
        location: Coordinates,
        preferences: Sequence[str] = (),
        radius: int = 10000,
    ) -> List[Activity]:
        """Top-rated places around ``location`` across the usual categories.

        Preference keywords are searched first. Failing queries are skipped.
        Returns at most 20 activities, unique by place id.
        """
        queries: List[str] = []
        for q in [*preferences, *SUGGESTION_QUERIES]:
            q = str(q).strip()
            if q and q not in queries:
                queries.append(q)

        found: List[Activity] = []
        for q in queries:
            place_type = q if q in SUGGESTION_QUERIES else None
            try:
                found.extend(self.search_places(q, location, radius, place_type)[:3])
            except PlacesError as e:
                log.warning("Error searching for %s: %s", q, e)

        seen = set()
        unique: List[Activity] = []
        for a in found:
            key = a.place_id or a.id
            if key in seen:
                continue
            seen.add(key)
            unique.append(a)

        unique.sort(key=lambda a: a.rating or 0, reverse=True)
        return unique[:20]
