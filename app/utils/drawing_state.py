"""In-progress polygon drawing state."""

from .polygon_bounds import to_geo_point

STATE_IDLE = 'idle'
STATE_DRAWING = 'drawing'
STATE_FINISHED = 'finished'

MIN_POLYGON_POINTS = 3
MIN_PREVIEW_POINTS = 2


class PolygonDrawing:
    """
    Polygon drawing state machine driven by map taps.

    States: idle -> drawing -> finished, with cancel returning to idle.
    Points are only appended while drawing. Finishing hands out an immutable
    tuple snapshot; the geometry pipeline never sees the live point list.
    """

    def __init__(self):
        self.state = STATE_IDLE
        self._points = []
        self.saved_polygons = []
        self._next_id = 1

    @property
    def is_drawing(self):
        return self.state == STATE_DRAWING

    @property
    def point_count(self):
        return len(self._points)

    @property
    def current_polygon(self):
        """Copy of the points drawn so far."""
        return tuple(self._points)

    @property
    def can_finish(self):
        return self.is_drawing and len(self._points) >= MIN_POLYGON_POINTS

    @property
    def preview_coordinates(self):
        """Points to render as the outline preview (needs at least 2)."""
        if self.is_drawing and len(self._points) >= MIN_PREVIEW_POINTS:
            return tuple(self._points)
        return ()

    def start_drawing(self):
        """Begin a new polygon, discarding any unfinished points."""
        self._points = []
        self.state = STATE_DRAWING

    def add_point(self, point):
        """
        Append a tapped coordinate.

        Returns:
            bool: False when not drawing (the tap is ignored)

        Raises:
            ValueError: if the point has no usable coordinates
        """
        if not self.is_drawing:
            return False
        self._points.append(to_geo_point(point))
        return True

    def finish_polygon(self):
        """
        Finish the current polygon.

        Returns:
            tuple or None: Snapshot of the polygon points, or None if the
            polygon cannot be finished yet
        """
        if not self.can_finish:
            return None

        snapshot = tuple(dict(p) for p in self._points)
        self.saved_polygons.append({'id': self._next_id, 'coordinates': snapshot})
        self._next_id += 1
        self._points = []
        self.state = STATE_FINISHED
        return snapshot

    def cancel_drawing(self):
        """Drop the current polygon and return to idle."""
        self._points = []
        self.state = STATE_IDLE
