"""Geographic helpers: validation, great-circle distance and grid cells."""

import math

from experience_discovery.core.exceptions import InvalidGeometry


EARTH_RADIUS_KM = 6371.0


def validate_coordinates(lat: float, lng: float) -> None:
    """
    Raises:
        InvalidGeometry: If lat is outside [-90, 90] or lng outside [-180, 180].
    """
    if not -90.0 <= lat <= 90.0:
        raise InvalidGeometry(f"latitude {lat} is outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidGeometry(f"longitude {lng} is outside [-180, 180]")


def validate_radius(radius_km: float) -> None:
    if not radius_km > 0:
        raise InvalidGeometry(f"radius must be greater than 0 km, got {radius_km}")


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def in_bbox(lat: float, lng: float, min_lat: float, min_lng: float, max_lat: float, max_lng: float) -> bool:
    return min_lat <= lat <= max_lat and min_lng <= lng <= max_lng


def grid_cell(lat: float, lng: float, size_degrees: float) -> tuple[float, float]:
    """South-west corner of the grid cell holding the point."""
    return (
        math.floor(lat / size_degrees) * size_degrees,
        math.floor(lng / size_degrees) * size_degrees,
    )
