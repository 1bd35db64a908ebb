"""
Great-circle distance and travel time estimates for live tracking.
"""

import math
from typing import NamedTuple, Union

EARTH_RADIUS_KM = 6371.0

Number = Union[int, float]


class Coordinates(NamedTuple):
    lat: float
    lng: float


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round with ties toward positive infinity, scaled to ``ndigits`` decimals.

    The built-in ``round`` uses banker's rounding, so 2.5 would become 2.
    """
    scale = 10**ndigits
    return math.floor(value * scale + 0.5) / scale


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """
    Great-circle distance between two points in kilometers.

    Uses the Haversine formula with a mean Earth radius of 6371 km.
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [a[0], a[1], b[0], b[1]])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance rounded half-up to two decimals."""
    return round_half_up(haversine_km(a, b), 2)


def eta_minutes(distance: Number, speed_kmh: Number = 30) -> int:
    """
    Minutes to cover ``distance`` km at ``speed_kmh``, rounded half-up.

    Raises:
        ValueError: If speed is not positive or distance is negative
    """
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be positive")
    if distance < 0:
        raise ValueError("distance must be non-negative")
    return int(round_half_up(distance / speed_kmh * 60))
