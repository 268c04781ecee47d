"""Geo-fee calculator: great-circle distance and the tiered delivery fee.

Everything here is pure: no I/O, no clock, no configuration reads except in
``pickup_location()``, which resolves the dispatch origin from settings.

Fee schedule (integer KES):
    0-5 km     200
    5-10 km    300
    10-15 km   400
    15-20 km   500
    20+ km     500 + 50 per started km beyond 20
"""

import math

from pydantic import BaseModel, ConfigDict, Field

from shared.config import get_settings
from shared.exceptions import ValidationError

EARTH_RADIUS_KM = 6371.0

FEE_TIERS: tuple[tuple[float, int], ...] = (
    (5.0, 200),
    (10.0, 300),
    (15.0, 400),
    (20.0, 500),
)
EXCESS_FEE_PER_KM = 50


class Coordinates(BaseModel):
    """A WGS84 point."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class DeliveryQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    distance_km: float
    fee: int


def distance(origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> float:
    """Haversine distance in kilometres."""
    d_lat = math.radians(dest_lat - origin_lat)
    d_lng = math.radians(dest_lng - origin_lng)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin_lat)) * math.cos(math.radians(dest_lat)) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push ``a`` a hair past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(origin: Coordinates, destination: Coordinates) -> float:
    return distance(origin.lat, origin.lng, destination.lat, destination.lng)


def fee(distance_km: float) -> int:
    """Delivery fee for a distance, per the tier table."""
    if not isinstance(distance_km, (int, float)) or math.isnan(distance_km):
        raise ValidationError({"distance": ["Distance must be a number"]})
    if distance_km < 0:
        raise ValidationError({"distance": ["Distance cannot be negative"]})
    if math.isinf(distance_km):
        raise ValidationError({"distance": ["Distance must be finite"]})

    for limit, tier_fee in FEE_TIERS:
        if distance_km <= limit:
            return tier_fee

    last_limit, last_fee = FEE_TIERS[-1]
    return last_fee + EXCESS_FEE_PER_KM * math.ceil(distance_km - last_limit)


def pickup_location() -> Coordinates:
    """Where goods are dispatched from."""
    settings = get_settings()
    return Coordinates(lat=settings.pickup_lat, lng=settings.pickup_lng)


def quote(destination: Coordinates, origin: Coordinates | None = None) -> DeliveryQuote:
    """Distance and fee from the pickup point (or ``origin``) to ``destination``."""
    km = distance_between(origin or pickup_location(), destination)
    return DeliveryQuote(distance_km=km, fee=fee(km))


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)}m"
    return f"{distance_km:.1f}km"
