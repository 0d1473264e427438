import math
from datetime import datetime


def serialize_row(row):
    """Turn a database record into a plain dict with ISO timestamps."""
    d = dict(row)
    for k, v in d.items():
        if isinstance(v, datetime):
            d[k] = v.isoformat()
    return d


def bounding_box(latitude: float, longitude: float, radius_km: float):
    """
    Approximate lat/lon box around a point.
    One degree of latitude is ~111 km; a degree of longitude shrinks with cos(latitude).
    Returns (min_lat, max_lat, min_lon, max_lon).
    """
    lat_delta = radius_km / 111
    cos_lat = math.cos(math.radians(latitude))
    # Near the poles every longitude is within range
    lon_delta = 180.0 if abs(cos_lat) < 1e-9 else radius_km / (111 * cos_lat)
    return (
        latitude - lat_delta,
        latitude + lat_delta,
        longitude - abs(lon_delta),
        longitude + abs(lon_delta),
    )
