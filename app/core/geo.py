"""Great-circle distance and campus geofence checks"""
import math
from dataclasses import dataclass
from typing import Tuple

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


ZERO_COORDINATES = Coordinates(0.0, 0.0)


def distance(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance in meters between two points given in degrees."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push h a hair past 1 for antipodal points
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_inside(point: Coordinates, center: Coordinates, radius_m: float) -> bool:
    return distance(point, center) <= radius_m


@dataclass(frozen=True)
class Geofence:
    """Circular zone a check-in location must fall in"""

    center: Coordinates
    radius_m: float

    def check(self, point: Coordinates) -> Tuple[bool, float]:
        meters = distance(point, self.center)
        return meters <= self.radius_m, meters
