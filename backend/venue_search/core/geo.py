from __future__ import annotations

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points in kilometres."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def round_distance(distance: Optional[float]) -> Optional[float]:
    if distance is None:
        return None
    return round(float(distance), 2)


def haversine_sql(lat_column: str, lon_column: str, lat_param: str, lon_param: str) -> str:
    """Postgres expression equivalent to `haversine_km` for parameterised origins."""

    return (
        f"({EARTH_RADIUS_KM} * 2 * asin(sqrt(least(1.0, "
        f"power(sin(radians({lat_column} - {lat_param}) / 2), 2) + "
        f"cos(radians({lat_param})) * cos(radians({lat_column})) * "
        f"power(sin(radians({lon_column} - {lon_param}) / 2), 2)))))"
    )


__all__ = ["EARTH_RADIUS_KM", "haversine_km", "haversine_sql", "round_distance"]
