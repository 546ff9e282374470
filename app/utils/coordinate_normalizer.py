"""Normalize geographic polygons into the unit square used for UV mapping."""

import numpy as np

from .polygon_bounds import to_geo_polygon


def _empty_points():
    return np.zeros((0, 2), dtype=np.float64)


def normalize_polygon(coordinates, bounds):
    """
    Map geographic coordinates into [0, 1] x [0, 1] relative to a bounding box.

    x comes from longitude (0 = west, 1 = east), y from latitude
    (0 = south, 1 = north), so the points can be used directly as UVs with
    a bottom-left texture origin. The bounds need not come from the polygon
    itself; the region actually captured on screen is usually wider.

    Args:
        coordinates: Sequence of geographic points
        bounds: BoundingBox dict

    Returns:
        dict: {
            'points': numpy array (N, 2), same length and order as the input,
            'degenerate': True when the bounds had zero width or height
        }
    """
    points = to_geo_polygon(coordinates)
    if len(points) == 0:
        return {'points': _empty_points(), 'degenerate': False}

    if not bounds:
        print("[WARN] No bounds provided for normalization")
        return {'points': _empty_points(), 'degenerate': False}

    lng_range = bounds['max_lng'] - bounds['min_lng']
    lat_range = bounds['max_lat'] - bounds['min_lat']

    if lng_range == 0 or lat_range == 0:
        print("[WARN] Degenerate polygon bounds detected, collapsing points to (0.5, 0.5)")
        return {
            'points': np.full((len(points), 2), 0.5, dtype=np.float64),
            'degenerate': True,
        }

    lngs = np.array([p['longitude'] for p in points], dtype=np.float64)
    lats = np.array([p['latitude'] for p in points], dtype=np.float64)

    normalized = np.column_stack((
        (lngs - bounds['min_lng']) / lng_range,
        (lats - bounds['min_lat']) / lat_range,
    ))
    return {'points': normalized, 'degenerate': False}


def normalize_polygon_coordinates(coordinates, bounds):
    """Normalized (N, 2) points only; see ``normalize_polygon``."""
    return normalize_polygon(coordinates, bounds)['points']


def points_to_dicts(points):
    """Convert an (N, 2) array into JSON-friendly ``{'x', 'y'}`` dicts."""
    return [{'x': float(x), 'y': float(y)} for x, y in np.asarray(points, dtype=np.float64).reshape(-1, 2)]


def points_from_dicts(items):
    """
    Parse normalized points from ``{'x', 'y'}`` dicts or ``[x, y]`` pairs.

    Raises:
        ValueError: on malformed entries
    """
    if items is None:
        return _empty_points()
    if not isinstance(items, (list, tuple, np.ndarray)):
        raise ValueError(f"Points must be a list, got {type(items).__name__}")
    if len(items) == 0:
        return _empty_points()

    rows = []
    for item in items:
        if isinstance(item, dict):
            if 'x' not in item or 'y' not in item:
                raise ValueError(f"Normalized point is missing x or y: {item!r}")
            x, y = item['x'], item['y']
        elif isinstance(item, (list, tuple, np.ndarray)) and len(item) >= 2:
            x, y = item[0], item[1]
        else:
            raise ValueError(f"Unsupported normalized point: {item!r}")
        try:
            rows.append((float(x), float(y)))
        except TypeError:
            raise ValueError(f"Normalized point has non-numeric values: {item!r}")
    return np.array(rows, dtype=np.float64)


def get_polygon_centroid(points):
    """Vertex-average centroid of a normalized polygon, or None if empty."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(points) == 0:
        return None
    cx, cy = points.mean(axis=0)
    return {'x': float(cx), 'y': float(cy)}
