"""
Contractor directory search and Google Maps helpers.

Registered contractors are matched by the services they offer and
ordered by great‑circle distance from the customer.  When a Google
Maps key is configured the search can be widened with nearby
businesses from the Places API, and addresses without coordinates can
be geocoded.
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..core.config import settings
from ..core.db import ROLE_CONTRACTOR, get_connection
from ..core.errors import UpstreamServiceError
from ..schemas.contractor import ContractorResult
from ..schemas.service_request import SERVICE_LABELS


logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance between two points in kilometres, rounded to 0.1 km."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


class ContractorService:
    """Search for contractors near a location."""

    @classmethod
    async def search(
        cls,
        services: List[str],
        lat: float,
        lng: float,
        radius_km: Optional[float] = None,
        limit: int = 20,
        include_google: bool = False,
    ) -> List[ContractorResult]:
        """Find contractors offering at least one of ``services``.

        Parameters
        ----------
        services : list of str
            Requested service types.  Must not be empty.
        lat, lng : float
            Customer location.
        radius_km : Optional[float]
            Drop results farther than this.  ``None`` keeps everything.
        limit : int
            Maximum number of results after sorting.
        include_google : bool
            Merge Google Places results when a maps key is configured.

        Returns
        -------
        list of ContractorResult
            Nearest first.
        """
        if not services:
            raise ValueError("At least one service type is required")
        wanted = set(services)
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT id, full_name, email, phone, address, latitude, longitude, services_offered
                FROM users
                WHERE role_id = ? AND disabled = 0 AND latitude IS NOT NULL AND longitude IS NOT NULL
                """,
                (ROLE_CONTRACTOR,),
            ).fetchall()
        finally:
            conn.close()

        results: List[ContractorResult] = []
        for row in rows:
            offered = json.loads(row["services_offered"]) if row["services_offered"] else []
            if not wanted.intersection(offered):
                continue
            results.append(
                ContractorResult(
                    id=str(row["id"]),
                    name=row["full_name"] or row["email"],
                    source="directory",
                    address=row["address"],
                    phone=row["phone"],
                    latitude=row["latitude"],
                    longitude=row["longitude"],
                    services_offered=offered,
                    distance_km=haversine_km(lat, lng, row["latitude"], row["longitude"]),
                )
            )

        if include_google and settings.google_maps_api_key:
            for service in sorted(wanted):
                for place in cls._places_nearby(service, lat, lng, radius_km):
                    results.append(cls._place_to_result(place, service, lat, lng))

        if radius_km is not None:
            results = [r for r in results if r.distance_km <= radius_km]
        results.sort(key=lambda r: r.distance_km)
        return results[:limit]

    @classmethod
    def _place_to_result(cls, place: Dict[str, Any], service: str, lat: float, lng: float) -> ContractorResult:
        loc = place["geometry"]["location"]
        return ContractorResult(
            id=place["place_id"],
            name=place.get("name", ""),
            source="google_places",
            address=place.get("vicinity"),
            latitude=loc["lat"],
            longitude=loc["lng"],
            services_offered=[service],
            rating=place.get("rating"),
            distance_km=haversine_km(lat, lng, loc["lat"], loc["lng"]),
        )

    @classmethod
    def _places_nearby(cls, service: str, lat: float, lng: float, radius_km: Optional[float]) -> List[Dict[str, Any]]:
        """Query the Places Nearby Search API for one service type.

        Failures are logged and yield no results; the directory search
        still answers.
        """
        params = {
            "location": f"{lat},{lng}",
            "radius": int((radius_km or 25) * 1000),
            "keyword": f"{SERVICE_LABELS.get(service, service)} contractor",
            "key": settings.google_maps_api_key,
        }
        try:
            response = httpx.get(PLACES_NEARBY_URL, params=params, timeout=30)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Places search for %s failed: %s", service, e)
            return []
        return response.json().get("results", [])

    @classmethod
    def geocode(cls, address: str) -> Tuple[float, float]:
        """Resolve an address to ``(lat, lng)`` through the Geocoding API.

        Raises ``ValueError`` when no key is configured or the address
        is unknown, and ``UpstreamServiceError`` when Google cannot be
        reached.
        """
        if not settings.google_maps_api_key:
            raise ValueError("Location coordinates are required")
        try:
            response = httpx.get(
                GEOCODE_URL,
                params={"address": address, "key": settings.google_maps_api_key},
                timeout=30,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Geocoding %r failed: %s", address, e)
            raise UpstreamServiceError(f"Geocoding service unavailable: {e}") from e
        data = response.json()
        if data.get("status") != "OK" or not data.get("results"):
            raise ValueError(f"Address could not be geocoded: {address}")
        loc = data["results"][0]["geometry"]["location"]
        return loc["lat"], loc["lng"]
