import unittest

from app.utils.drawing_state import (
    STATE_DRAWING,
    STATE_FINISHED,
    STATE_IDLE,
    PolygonDrawing,
)


def tap(drawing, lat, lng):
    return drawing.add_point({"latitude": lat, "longitude": lng})


class PolygonDrawingTests(unittest.TestCase):
    def setUp(self):
        self.drawing = PolygonDrawing()

    def test_starts_idle_and_ignores_taps(self):
        self.assertEqual(self.drawing.state, STATE_IDLE)
        self.assertFalse(tap(self.drawing, 51.5, -0.1))
        self.assertEqual(self.drawing.point_count, 0)

    def test_points_accumulate_while_drawing(self):
        self.drawing.start_drawing()
        self.assertEqual(self.drawing.state, STATE_DRAWING)
        self.assertTrue(tap(self.drawing, 51.5, -0.1))
        self.assertEqual(self.drawing.preview_coordinates, ())
        self.assertTrue(tap(self.drawing, 51.6, -0.2))
        self.assertEqual(len(self.drawing.preview_coordinates), 2)
        self.assertFalse(self.drawing.can_finish)

    def test_finish_requires_three_points(self):
        self.drawing.start_drawing()
        tap(self.drawing, 51.5, -0.1)
        tap(self.drawing, 51.6, -0.2)
        self.assertIsNone(self.drawing.finish_polygon())
        self.assertEqual(self.drawing.state, STATE_DRAWING)

    def test_finish_returns_immutable_snapshot_and_saves(self):
        self.drawing.start_drawing()
        tap(self.drawing, 51.5, -0.1)
        tap(self.drawing, 51.6, -0.2)
        tap(self.drawing, 51.4, -0.3)

        snapshot = self.drawing.finish_polygon()
        self.assertIsInstance(snapshot, tuple)
        self.assertEqual(len(snapshot), 3)
        self.assertEqual(self.drawing.state, STATE_FINISHED)
        self.assertEqual(self.drawing.point_count, 0)
        self.assertEqual(self.drawing.saved_polygons, [{"id": 1, "coordinates": snapshot}])

        # Further drawing does not touch the finished snapshot
        self.drawing.start_drawing()
        tap(self.drawing, 0.0, 0.0)
        self.assertEqual(len(snapshot), 3)
        self.assertEqual(snapshot[0], {"latitude": 51.5, "longitude": -0.1})

    def test_cancel_discards_points(self):
        self.drawing.start_drawing()
        tap(self.drawing, 51.5, -0.1)
        self.drawing.cancel_drawing()
        self.assertEqual(self.drawing.state, STATE_IDLE)
        self.assertEqual(self.drawing.current_polygon, ())
        self.assertEqual(self.drawing.saved_polygons, [])

    def test_saved_polygon_ids_increase(self):
        for _ in range(2):
            self.drawing.start_drawing()
            tap(self.drawing, 1.0, 1.0)
            tap(self.drawing, 2.0, 1.0)
            tap(self.drawing, 1.5, 2.0)
            self.drawing.finish_polygon()
        self.assertEqual([p["id"] for p in self.drawing.saved_polygons], [1, 2])

    def test_invalid_tap_raises(self):
        self.drawing.start_drawing()
        with self.assertRaises(ValueError):
            self.drawing.add_point({"x": 1})


if __name__ == "__main__":
    unittest.main()
