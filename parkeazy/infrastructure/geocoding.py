# File: parkeazy/infrastructure/geocoding.py
"""
Geocoding client for the OpenStreetMap Nominatim service

Used by admins to place new slots and by users to search the map. Nominatim
allows one request per second, so calls are spaced out and results are
cached in-process. Network or decoding failures degrade to an empty result.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging
import threading
import time

import requests


NOMINATIM_URL = "https://nominatim.openstreetmap.org"
USER_AGENT = "Park-Eazy-App/1.0"
MIN_INTERVAL_SECONDS = 1.0
UNAVAILABLE_LOCATION = "Location unavailable"
UNKNOWN_LOCATION = "Unknown Location"


@dataclass(frozen=True)
class GeocodedLocation:
    """A single search hit"""
    name: str
    display_name: str
    lat: float
    lon: float
    type: Optional[str] = None
    address: Dict[str, str] = field(default_factory=dict)


class NominatimGeocoder:
    """Rate-limited, caching Nominatim client"""

    def __init__(
        self,
        base_url: str = NOMINATIM_URL,
        country_code: str = "bd",
        timeout: float = 10.0,
        min_interval: float = MIN_INTERVAL_SECONDS,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.base_url = base_url.rstrip('/')
        self.country_code = country_code
        self.timeout = timeout
        self.min_interval = min_interval
        self._session = session or requests.Session()
        self._session.headers.update({'User-Agent': USER_AGENT})
        self._clock = clock
        self._sleep = sleep
        self._cache: Dict[Tuple, List[GeocodedLocation]] = {}
        self._last_request: Optional[float] = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def _wait_for_slot(self) -> None:
        """Block until min_interval has passed since the previous request"""
        with self._lock:
            now = self._clock()
            if self._last_request is not None:
                elapsed = now - self._last_request
                if elapsed < self.min_interval:
                    self._sleep(self.min_interval - elapsed)
            self._last_request = self._clock()

    def search(
        self,
        query: str,
        limit: int = 5,
        country_code: Optional[str] = None,
        viewbox: Optional[Sequence[float]] = None
    ) -> List[GeocodedLocation]:
        """
        Forward-geocode a free-text query

        viewbox is (west, north, east, south); when given, results are
        bounded to it.
        """
        query = (query or '').strip()
        if not query:
            return []

        country_code = country_code or self.country_code
        cache_key = (query, country_code, limit, tuple(viewbox) if viewbox else None)
        if cache_key in self._cache:
            return list(self._cache[cache_key])

        params = {
            'format': 'json',
            'q': query,
            'limit': str(limit),
            'addressdetails': '1',
            'countrycodes': country_code,
            'accept-language': 'en',
        }
        if viewbox:
            params['viewbox'] = ','.join(str(v) for v in viewbox)
            params['bounded'] = '1'

        self._wait_for_slot()
        try:
            response = self._session.get(f"{self.base_url}/search", params=params, timeout=self.timeout)
            response.raise_for_status()
            results = [self._to_location(item) for item in response.json()]
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            self._logger.error(f"Geocoding error for '{query}': {e}")
            return []

        self._cache[cache_key] = results
        self._logger.debug(f"Geocoded '{query}' -> {len(results)} result(s)")
        return list(results)

    def reverse(self, lat: float, lon: float) -> str:
        """Human-readable address for a coordinate"""
        params = {
            'format': 'json',
            'lat': str(lat),
            'lon': str(lon),
            'zoom': '18',
            'addressdetails': '1',
        }

        self._wait_for_slot()
        try:
            response = self._session.get(f"{self.base_url}/reverse", params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            self._logger.error(f"Reverse geocoding error for ({lat}, {lon}): {e}")
            return UNAVAILABLE_LOCATION

        if not isinstance(data, dict):
            self._logger.warning(f"Unexpected reverse geocoding payload for ({lat}, {lon}): {type(data).__name__}")
            return UNKNOWN_LOCATION
        return data.get('display_name') or UNKNOWN_LOCATION

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def _to_location(item: Dict) -> GeocodedLocation:
        display_name = item['display_name']
        return GeocodedLocation(
            name=item.get('name') or display_name.split(',')[0],
            display_name=display_name,
            lat=float(item['lat']),
            lon=float(item['lon']),
            type=item.get('type'),
            address=item.get('address') or {}
        )
