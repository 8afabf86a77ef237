"""
Geocoding Clients
=================

Address to coordinates. Providers are tried in order (Nominatim, Google,
Mapbox) and the first hit wins. A provider error counts as a miss so the
chain keeps going.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

import httpx

from src.config import settings
from src.core import ExternalServiceException
from src.infrastructure.providers.base import HTTPProviderClient
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
MAPBOX_GEOCODE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"


@dataclass
class GeoResult:
    lat: float
    lng: float
    formatted_address: str
    city: Optional[str] = None
    state: Optional[str] = None
    provider: str = "unknown"

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "formatted_address": self.formatted_address,
            "city": self.city,
            "state": self.state,
        }


class IGeocoder(ABC):

    @abstractmethod
    async def geocode(self, address: str) -> Optional[GeoResult]:
        """Coordinates for an address, or None when not found."""

    async def close(self) -> None:
        """Release resources."""


class NominatimGeocoder(HTTPProviderClient, IGeocoder):
    """OpenStreetMap Nominatim. Needs no key but requires a User-Agent."""

    service_name = "Nominatim"

    def __init__(self, user_agent: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(http_client)
        self._user_agent = user_agent or settings.nominatim_user_agent

    async def geocode(self, address: str) -> Optional[GeoResult]:
        response = await self._request(
            "GET",
            NOMINATIM_URL,
            params={
                "q": address,
                "format": "json",
                "limit": 1,
                "countrycodes": "us",
                "addressdetails": 1,
            },
            headers={"User-Agent": self._user_agent}
        )
        self._raise_for_status(response)
        results = response.json()
        if not results:
            return None

        hit = results[0]
        details = hit.get("address") or {}
        # ISO3166-2-lvl4 looks like "US-TX"
        iso_region = details.get("ISO3166-2-lvl4") or ""
        state = iso_region.split("-")[-1] if "-" in iso_region else None
        return GeoResult(
            lat=float(hit["lat"]),
            lng=float(hit["lon"]),
            formatted_address=hit.get("display_name") or address,
            city=details.get("city") or details.get("town") or details.get("village"),
            state=state,
            provider="nominatim",
        )


class GoogleGeocoder(HTTPProviderClient, IGeocoder):

    service_name = "Google Geocoding"

    def __init__(self, api_key: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(http_client)
        self._api_key = api_key if api_key is not None else settings.google_maps_api_key

    async def geocode(self, address: str) -> Optional[GeoResult]:
        if not self._api_key:
            return None

        response = await self._request(
            "GET", GOOGLE_GEOCODE_URL, params={"address": address, "key": self._api_key}
        )
        self._raise_for_status(response)
        payload = response.json()
        if payload.get("status") != "OK" or not payload.get("results"):
            return None

        hit = payload["results"][0]
        city = state = None
        for component in hit.get("address_components") or []:
            types = component.get("types") or []
            if "locality" in types:
                city = component.get("long_name")
            elif "administrative_area_level_1" in types:
                state = component.get("short_name")

        location = hit["geometry"]["location"]
        return GeoResult(
            lat=location["lat"],
            lng=location["lng"],
            formatted_address=hit.get("formatted_address") or address,
            city=city,
            state=state,
            provider="google",
        )


class MapboxGeocoder(HTTPProviderClient, IGeocoder):

    service_name = "Mapbox"

    def __init__(self, token: Optional[str] = None, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(http_client)
        self._token = token if token is not None else settings.mapbox_token

    async def geocode(self, address: str) -> Optional[GeoResult]:
        if not self._token:
            return None

        response = await self._request(
            "GET",
            MAPBOX_GEOCODE_URL.format(query=quote(address)),
            params={"access_token": self._token, "country": "US", "limit": 1}
        )
        self._raise_for_status(response)
        features = response.json().get("features") or []
        if not features:
            return None

        hit = features[0]
        city = state = None
        for context in hit.get("context") or []:
            context_id = context.get("id") or ""
            if context_id.startswith("place"):
                city = context.get("text")
            elif context_id.startswith("region"):
                short_code = context.get("short_code") or ""
                state = short_code.split("-")[-1].upper() if short_code else context.get("text")

        lng, lat = hit["center"]
        return GeoResult(
            lat=lat,
            lng=lng,
            formatted_address=hit.get("place_name") or address,
            city=city,
            state=state,
            provider="mapbox",
        )


class GeocoderChain(IGeocoder):
    """Tries each geocoder in order until one returns a result."""

    def __init__(self, geocoders: List[IGeocoder]):
        self._geocoders = geocoders

    async def geocode(self, address: str) -> Optional[GeoResult]:
        for geocoder in self._geocoders:
            try:
                result = await geocoder.geocode(address)
            except ExternalServiceException as e:
                logger.warning(
                    "Geocoder failed, trying next",
                    extra={"geocoder": type(geocoder).__name__, "error": e.message}
                )
                continue
            if result:
                return result
        return None

    async def close(self) -> None:
        for geocoder in self._geocoders:
            await geocoder.close()


class MockGeocoder(IGeocoder):
    """Every address resolves to downtown Austin."""

    async def geocode(self, address: str) -> Optional[GeoResult]:
        return GeoResult(
            lat=30.2672,
            lng=-97.7431,
            formatted_address=address,
            city="Austin",
            state="TX",
            provider="mock",
        )


def build_geocoder(http_client: Optional[httpx.AsyncClient] = None) -> GeocoderChain:
    return GeocoderChain([
        NominatimGeocoder(http_client=http_client),
        GoogleGeocoder(http_client=http_client),
        MapboxGeocoder(http_client=http_client),
    ])
