"""
PlaceShare Backend: Abstract Geocoder Interface
================================================

What:  Abstract base class for services that turn an address into coordinates.
How:   Concrete implementations inherit from Geocoder and implement geocode().
Who:   Called by ConsistencyManager before creating or updating a place.

Implementations:
    - MapboxGeocoder: Mapbox Geocoding API (default)
    - Tests pass a small in-memory Geocoder subclass
"""

from abc import ABC, abstractmethod
from typing import Tuple

# (longitude, latitude), the order Mapbox and GeoJSON use
Coordinates = Tuple[float, float]


class Geocoder(ABC):
    """
    Contract:
        - geocode() returns (longitude, latitude) for the best match
        - "no match" is GeocodeError; transport failures are
          GeocoderUnavailableError
        - Implementations handle their own retry logic and error translation
    """

    @abstractmethod
    async def geocode(self, address: str) -> Coordinates:
        """
        Resolve a free-form address.

        Raises:
            GeocodeError: the service found no location for the address
            GeocoderUnavailableError: the service could not be reached
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the service looks reachable. Used by GET /health."""
        ...
