"""Ear-clipping triangulation for simple 2D polygons."""

import numpy as np


def cross_2d(o, a, b):
    """Z component of (a - o) x (b - o); positive for a left turn."""
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def signed_area(points_2d):
    """Shoelace signed area. Positive = CCW, negative = CW (Y-up)."""
    n = len(points_2d)
    area = 0.0
    for i in range(n):
        j = (i + 1) % n
        area += points_2d[i][0] * points_2d[j][1]
        area -= points_2d[j][0] * points_2d[i][1]
    return area / 2.0


def point_in_triangle(p, a, b, c):
    """
    Check if point p is inside or on the boundary of triangle abc.

    Points exactly on an edge count as inside, so collinear neighbours
    block an ear.
    """
    d1 = cross_2d(a, b, p)
    d2 = cross_2d(b, c, p)
    d3 = cross_2d(c, a, p)

    has_neg = (d1 < 0) or (d2 < 0) or (d3 < 0)
    has_pos = (d1 > 0) or (d2 > 0) or (d3 > 0)
    return not (has_neg and has_pos)


def _is_ear(active, pos, pts):
    """Check if the vertex at position pos of the active list is an ear."""
    m = len(active)
    prev_pos = (pos - 1) % m
    next_pos = (pos + 1) % m

    a = pts[active[prev_pos]]
    b = pts[active[pos]]
    c = pts[active[next_pos]]

    # Convex turn only; collinear and reflex vertices are rejected
    if cross_2d(a, b, c) <= 0:
        return False

    for j in range(m):
        if j == prev_pos or j == pos or j == next_pos:
            continue
        if point_in_triangle(pts[active[j]], a, b, c):
            return False
    return True


def triangulate_polygon(points_2d):
    """Triangulate a 2D polygon using ear-clipping.

    Clockwise input is walked in reverse so the convexity test always sees
    counter-clockwise winding; returned indices still refer to the caller's
    point order. When a full scan finds no ear (self-intersecting or
    degenerate outline) the triangles found so far are returned.

    Args:
        points_2d: Nx2 array-like of points forming the polygon boundary

    Returns:
        List of [prev, curr, next] index triplets into points_2d
    """
    n = len(points_2d)
    if n < 3:
        return []

    pts = np.asarray(points_2d, dtype=np.float64).reshape(-1, 2)

    active = list(range(n))
    if signed_area(pts) < 0:
        active.reverse()

    triangles = []
    while len(active) > 3:
        m = len(active)
        ear_found = False
        for i in range(m):
            if _is_ear(active, i, pts):
                triangles.append([active[(i - 1) % m], active[i], active[(i + 1) % m]])
                active.pop(i)
                ear_found = True
                break
        if not ear_found:
            print(f"[WARN] Could not triangulate polygon completely: "
                  f"{len(triangles)} of {n - 2} triangles, {len(active)} vertices left")
            return triangles

    triangles.append([active[0], active[1], active[2]])
    return triangles


def is_complete_triangulation(n, triangles):
    """A simple n-gon is fully covered by exactly n - 2 triangles."""
    return n >= 3 and len(triangles) == n - 2
