"""Geographic polygon helpers: point coercion, bounding boxes, capture regions."""

import math

import numpy as np


_LAT_KEYS = ("latitude", "lat")
_LNG_KEYS = ("longitude", "lng", "lon")


def _first_present(mapping, keys):
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


def to_geo_point(value):
    """
    Coerce a point into a ``{'latitude', 'longitude'}`` dict.

    Accepts dicts keyed by latitude/lat and longitude/lng/lon, or
    ``(latitude, longitude)`` pairs.

    Raises:
        ValueError: if the value carries no usable coordinates
    """
    if isinstance(value, dict):
        lat = _first_present(value, _LAT_KEYS)
        lng = _first_present(value, _LNG_KEYS)
    elif isinstance(value, (list, tuple, np.ndarray)) and len(value) >= 2:
        lat, lng = value[0], value[1]
    else:
        raise ValueError(f"Unsupported point format: {value!r}")

    if lat is None or lng is None:
        raise ValueError(f"Point is missing latitude or longitude: {value!r}")

    try:
        lat = float(lat)
        lng = float(lng)
    except TypeError:
        raise ValueError(f"Point has non-numeric coordinates: {value!r}")
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValueError(f"Point has non-finite coordinates: {value!r}")
    return {"latitude": lat, "longitude": lng}


def to_geo_polygon(coordinates):
    """Coerce a sequence of points into a fresh list of GeoPoint dicts."""
    if coordinates is None:
        return []
    if not isinstance(coordinates, (list, tuple, np.ndarray)):
        raise ValueError(f"Polygon must be a list of points, got {type(coordinates).__name__}")
    return [to_geo_point(point) for point in coordinates]


def is_valid_polygon(coordinates):
    """A polygon needs at least 3 points to be finished and meshed."""
    return isinstance(coordinates, (list, tuple)) and len(coordinates) >= 3


def get_polygon_bounds(coordinates):
    """
    Calculate the axis-aligned bounding box of a geographic polygon.

    The center is the midpoint of the extrema, not the polygon centroid.

    Args:
        coordinates: Sequence of points (see ``to_geo_point``)

    Returns:
        dict or None: BoundingBox, or None for an empty polygon
    """
    points = to_geo_polygon(coordinates)
    if len(points) == 0:
        return None

    lats = [p["latitude"] for p in points]
    lngs = [p["longitude"] for p in points]

    min_lat = min(lats)
    max_lat = max(lats)
    min_lng = min(lngs)
    max_lng = max(lngs)

    return {
        "min_lat": min_lat,
        "max_lat": max_lat,
        "min_lng": min_lng,
        "max_lng": max_lng,
        "center": {
            "latitude": (min_lat + max_lat) / 2.0,
            "longitude": (min_lng + max_lng) / 2.0,
        },
        "latitude_delta": max_lat - min_lat,
        "longitude_delta": max_lng - min_lng,
    }


def is_degenerate_bounds(bounds):
    """True when the box has zero width or zero height."""
    if not bounds:
        return True
    return (bounds["max_lng"] - bounds["min_lng"]) == 0 or (bounds["max_lat"] - bounds["min_lat"]) == 0


def bounds_from_region(region):
    """
    Build a BoundingBox from a visible map region.

    The map surface reports what it actually shows as a center plus
    deltas, which is usually wider than the polygon's own bounds.

    Args:
        region: dict with latitude, longitude, latitude_delta, longitude_delta
            (camelCase ``latitudeDelta``/``longitudeDelta`` are accepted too)

    Returns:
        dict or None: BoundingBox, or None when the region is incomplete
    """
    if not isinstance(region, dict):
        return None

    lat = _first_present(region, _LAT_KEYS)
    lng = _first_present(region, _LNG_KEYS)
    lat_delta = _first_present(region, ("latitude_delta", "latitudeDelta"))
    lng_delta = _first_present(region, ("longitude_delta", "longitudeDelta"))
    if lat is None or lng is None or lat_delta is None or lng_delta is None:
        return None

    lat, lng = float(lat), float(lng)
    lat_delta, lng_delta = abs(float(lat_delta)), abs(float(lng_delta))

    return {
        "min_lat": lat - lat_delta / 2.0,
        "max_lat": lat + lat_delta / 2.0,
        "min_lng": lng - lng_delta / 2.0,
        "max_lng": lng + lng_delta / 2.0,
        "center": {"latitude": lat, "longitude": lng},
        "latitude_delta": lat_delta,
        "longitude_delta": lng_delta,
    }


def region_from_bounds(bounds):
    """Map region (center + deltas) that frames the given bounds."""
    if not bounds:
        return None
    return {
        "latitude": bounds["center"]["latitude"],
        "longitude": bounds["center"]["longitude"],
        "latitude_delta": bounds["latitude_delta"],
        "longitude_delta": bounds["longitude_delta"],
    }


def coerce_bounds(value):
    """Accept a BoundingBox dict from JSON and fill in derived fields."""
    if not isinstance(value, dict):
        return None
    required = ("min_lat", "max_lat", "min_lng", "max_lng")
    if not all(key in value for key in required):
        return None

    min_lat, max_lat = float(value["min_lat"]), float(value["max_lat"])
    min_lng, max_lng = float(value["min_lng"]), float(value["max_lng"])
    return {
        "min_lat": min_lat,
        "max_lat": max_lat,
        "min_lng": min_lng,
        "max_lng": max_lng,
        "center": {
            "latitude": (min_lat + max_lat) / 2.0,
            "longitude": (min_lng + max_lng) / 2.0,
        },
        "latitude_delta": max_lat - min_lat,
        "longitude_delta": max_lng - min_lng,
    }


def resolve_snapshot_bounds(coordinates, snapshot_bounds=None, region=None):
    """
    Pick the bounds a polygon should be normalized against.

    Explicit snapshot bounds win, then the visible region reported by the
    map, then the polygon's own bounding box.
    """
    bounds = coerce_bounds(snapshot_bounds)
    if bounds is not None:
        return bounds
    bounds = bounds_from_region(region)
    if bounds is not None:
        return bounds
    return get_polygon_bounds(coordinates)


def get_geo_aspect_ratio(bounds):
    """Width/height ratio of the capture view for these bounds."""
    if is_degenerate_bounds(bounds):
        return None
    return bounds["longitude_delta"] / bounds["latitude_delta"]
