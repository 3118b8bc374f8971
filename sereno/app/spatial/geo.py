"""
geo.py — Great-circle distance for ranking responders by proximity.

Distances are kilometers; coordinates are decimal degrees. A spherical
Earth is off by up to ~0.3 %, well inside the GPS error of a phone that
reports a panic location.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

# IUGG mean radius
EARTH_RADIUS_KM: float = 6_371.0088


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if abs(self.latitude) > 90.0:
            raise ValueError(f"latitude {self.latitude} outside [-90, 90]")
        if abs(self.longitude) > 180.0:
            raise ValueError(f"longitude {self.longitude} outside [-180, 180]")

    def radians(self) -> Tuple[float, float]:
        return math.radians(self.latitude), math.radians(self.longitude)


def haversine(origin: Coordinate, target: Coordinate) -> float:
    """Distance in km between two points, rounded to 4 decimals."""
    phi1, lam1 = origin.radians()
    phi2, lam2 = target.radians()

    h = math.sin((phi2 - phi1) / 2) ** 2 + (
        math.cos(phi1) * math.cos(phi2) * math.sin((lam2 - lam1) / 2) ** 2
    )
    # clamp: rounding can push h a hair above 1 for antipodal points
    central_angle = 2 * math.asin(math.sqrt(min(1.0, h)))
    return round(EARTH_RADIUS_KM * central_angle, 4)
