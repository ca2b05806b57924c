"""
Geohash encoding, range-cover and distance math.

A geohash interleaves longitude and latitude bits and writes them in
base-32, so nearby points share long prefixes and a lexically ordered
index can be range-scanned for proximity. Range covers are a pre-filter
only: `distance_m` decides what is actually inside a radius.
"""
from __future__ import annotations

import math
from typing import List, Tuple

from icebreakers.core.location_config import GEOHASH_PRECISION

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS_PER_CHAR = 5
MAXIMUM_BITS_PRECISION = 22 * BITS_PER_CHAR

EARTH_RADIUS_M = 6_371_000
EARTH_EQ_RADIUS_M = 6_378_137.0
EARTH_MERIDIONAL_CIRCUMFERENCE_M = 40_007_860
METERS_PER_DEGREE_LATITUDE = 110_574
E2 = 0.00669447819799  # WGS84 eccentricity squared
EPSILON = 1e-12

FEET_PER_METER = 1 / 0.3048

# a range end past the last base-32 char
HIGH_SENTINEL = "~"

LatLng = Tuple[float, float]


# ------------------------------------------------------------------
# Encode / decode
# ------------------------------------------------------------------

def encode(lat: float, lng: float, precision: int = GEOHASH_PRECISION) -> str:
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValueError(f"coordinates out of range: ({lat}, {lng})")
    if precision < 1 or precision > 22:
        raise ValueError(f"invalid geohash precision: {precision}")

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]

    geohash = []
    bits = 0
    bit_count = 0
    even = True  # even bits are longitude

    while len(geohash) < precision:
        value, rng = (lng, lng_range) if even else (lat, lat_range)
        mid = (rng[0] + rng[1]) / 2
        if value > mid:
            bits = (bits << 1) + 1
            rng[0] = mid
        else:
            bits = bits << 1
            rng[1] = mid

        even = not even
        bit_count += 1
        if bit_count == BITS_PER_CHAR:
            geohash.append(BASE32[bits])
            bits = 0
            bit_count = 0

    return "".join(geohash)


def decode_bounds(geohash: str) -> Tuple[LatLng, LatLng]:
    """Return ((lat_min, lng_min), (lat_max, lng_max)) of the cell."""
    if not geohash:
        raise ValueError("geohash must be non-empty")

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    even = True

    for char in geohash:
        idx = BASE32.find(char)
        if idx < 0:
            raise ValueError(f"invalid geohash character: {char!r}")
        for shift in range(BITS_PER_CHAR - 1, -1, -1):
            bit = (idx >> shift) & 1
            rng = lng_range if even else lat_range
            mid = (rng[0] + rng[1]) / 2
            if bit:
                rng[0] = mid
            else:
                rng[1] = mid
            even = not even

    return (lat_range[0], lng_range[0]), (lat_range[1], lng_range[1])


def decode(geohash: str) -> LatLng:
    """Center of the geohash cell."""
    (lat_min, lng_min), (lat_max, lng_max) = decode_bounds(geohash)
    return (lat_min + lat_max) / 2, (lng_min + lng_max) / 2


# ------------------------------------------------------------------
# Distance
# ------------------------------------------------------------------

def distance_m(a: LatLng, b: LatLng) -> float:
    """Great-circle (haversine) distance in meters."""
    lat1, lng1 = a
    lat2, lng2 = b
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def feet_to_meters(feet: float) -> float:
    return feet * 0.3048


def meters_to_feet(meters: float) -> float:
    return meters * FEET_PER_METER


def round_distance_feet(meters: float) -> int:
    return max(0, int(round(meters_to_feet(meters))))


def offset_point(lat: float, lng: float, meters: float, bearing_rad: float) -> LatLng:
    """Move a point by `meters` along `bearing_rad` (flat-earth, short distances)."""
    if meters <= 0:
        return lat, lng

    d_lat = meters * math.cos(bearing_rad) / 111_320
    d_lng = meters * math.sin(bearing_rad) / (111_320 * max(0.1, math.cos(math.radians(lat))))
    return lat + d_lat, lng + d_lng


# ------------------------------------------------------------------
# Query bounds
# ------------------------------------------------------------------

def _meters_to_longitude_degrees(distance: float, latitude: float) -> float:
    radians = math.radians(latitude)
    num = math.cos(radians) * EARTH_EQ_RADIUS_M * math.pi / 180
    denom = 1 / math.sqrt(1 - E2 * math.sin(radians) * math.sin(radians))
    delta_deg = num * denom
    if delta_deg < EPSILON:
        return 360.0 if distance > 0 else 0.0
    return min(360.0, distance / delta_deg)


def _longitude_bits_for_resolution(resolution: float, latitude: float) -> float:
    degs = _meters_to_longitude_degrees(resolution, latitude)
    return max(1.0, math.log2(360 / degs)) if abs(degs) > 0.000001 else 1.0


def _latitude_bits_for_resolution(resolution: float) -> float:
    return min(
        math.log2(EARTH_MERIDIONAL_CIRCUMFERENCE_M / 2 / resolution),
        MAXIMUM_BITS_PRECISION,
    )


def _wrap_longitude(longitude: float) -> float:
    if -180 <= longitude <= 180:
        return longitude
    adjusted = longitude + 180
    if adjusted > 0:
        return (adjusted % 360) - 180
    return 180 - (-adjusted % 360)


def _bounding_box_bits(center: LatLng, size: float) -> int:
    lat_delta = size / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, center[0] + lat_delta)
    lat_south = max(-90.0, center[0] - lat_delta)
    bits_lat = math.floor(_latitude_bits_for_resolution(size)) * 2
    bits_lng_north = math.floor(_longitude_bits_for_resolution(size, lat_north)) * 2 - 1
    bits_lng_south = math.floor(_longitude_bits_for_resolution(size, lat_south)) * 2 - 1
    return min(bits_lat, bits_lng_north, bits_lng_south, MAXIMUM_BITS_PRECISION)


def _bounding_box_coordinates(center: LatLng, radius: float) -> List[LatLng]:
    lat, lng = center
    lat_degrees = radius / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, lat + lat_degrees)
    lat_south = max(-90.0, lat - lat_degrees)
    lng_degrees = max(
        _meters_to_longitude_degrees(radius, lat_north),
        _meters_to_longitude_degrees(radius, lat_south),
    )
    if lng_degrees >= 180:
        # box reaches a pole: every longitude in the band is in range
        west, east = -180.0, 180.0
    else:
        west = _wrap_longitude(lng - lng_degrees)
        east = _wrap_longitude(lng + lng_degrees)

    return [
        (lat, lng), (lat, west), (lat, east),
        (lat_north, lng), (lat_north, west), (lat_north, east),
        (lat_south, lng), (lat_south, west), (lat_south, east),
    ]


def _geohash_range(geohash: str, bits: int) -> Tuple[str, str]:
    precision = math.ceil(bits / BITS_PER_CHAR)
    if len(geohash) < precision:
        return geohash, geohash + HIGH_SENTINEL

    ghash = geohash[:precision]
    base = ghash[:-1]
    last_value = BASE32.index(ghash[-1])
    significant_bits = bits - len(base) * BITS_PER_CHAR
    unused_bits = BITS_PER_CHAR - significant_bits

    start_value = (last_value >> unused_bits) << unused_bits
    end_value = start_value + (1 << unused_bits)
    if end_value > 31:
        return base + BASE32[start_value], base + HIGH_SENTINEL
    return base + BASE32[start_value], base + BASE32[end_value]


def query_bounds(center: LatLng, radius_m: float) -> List[Tuple[str, str]]:
    """
    Ordered list of [start, end] geohash ranges covering the circle.

    Picks a cell size at least as large as the radius and takes the cell
    of the center and of the 8 points on the radius bounding box. Cells
    adjacent across a boundary are not adjacent lexically, hence several
    ranges. Over-covers; always post-filter with `distance_m`.
    """
    if radius_m <= 0:
        raise ValueError("radius must be positive")

    query_bits = max(1, _bounding_box_bits(center, radius_m))
    precision = math.ceil(query_bits / BITS_PER_CHAR)

    ranges: List[Tuple[str, str]] = []
    for lat, lng in _bounding_box_coordinates(center, radius_m):
        rng = _geohash_range(encode(lat, lng, precision), query_bits)
        if rng not in ranges:
            ranges.append(rng)

    return ranges


def range_contains(ranges: List[Tuple[str, str]], geohash: str) -> bool:
    return any(start <= geohash <= end for start, end in ranges)
