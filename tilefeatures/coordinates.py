"""
Coordinate representation

Points are held as fixed-point integers scaled by 10^7. Latitude is stored
Mercator-projected ("latp") so that geometry built from it is already in
projected space.
"""

import math
from typing import NamedTuple, Tuple

FIXED_POINT_SCALE = 10_000_000


def to_fixed(degrees: float) -> int:
    return int(round(degrees * FIXED_POINT_SCALE))


def from_fixed(value: int) -> float:
    return value / 10000000.0


def lat_to_latp(lat: float) -> float:
    """Project a latitude onto the Mercator y axis (in degrees)"""
    return math.degrees(math.log(math.tan(math.pi / 4 + math.radians(lat) / 2)))


def latp_to_lat(latp: float) -> float:
    """Inverse of lat_to_latp"""
    return math.degrees(2 * math.atan(math.exp(math.radians(latp))) - math.pi / 2)


class LatpLon(NamedTuple):
    """Projected coordinate, both components fixed-point"""
    latp: int
    lon: int

    @classmethod
    def from_degrees(cls, lat: float, lon: float) -> "LatpLon":
        return cls(to_fixed(lat_to_latp(lat)), to_fixed(lon))

    def as_xy(self) -> Tuple[float, float]:
        """(x, y) in projected degrees, as used for geometry"""
        return (from_fixed(self.lon), from_fixed(self.latp))

    def to_degrees(self) -> Tuple[float, float]:
        """(lat, lon) in WGS84 degrees"""
        return (latp_to_lat(from_fixed(self.latp)), from_fixed(self.lon))
