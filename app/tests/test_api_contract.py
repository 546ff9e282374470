import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stdout

from PIL import Image

# Ensure imports work when tests run from repository root.
APP_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

_WORK_DIR = tempfile.mkdtemp(prefix="mapclip3d-tests-")
os.environ.setdefault("MAPCLIP_UPLOAD_FOLDER", os.path.join(_WORK_DIR, "uploads"))
os.environ.setdefault("MAPCLIP_EXPORT_FOLDER", os.path.join(_WORK_DIR, "exports"))

from main import app
from utils.drawing_state import PolygonDrawing
from utils.snapshot_capture import capture_snapshot

SQUARE = [
    {"latitude": 51.0, "longitude": -1.0},
    {"latitude": 51.0, "longitude": 0.0},
    {"latitude": 52.0, "longitude": 0.0},
    {"latitude": 52.0, "longitude": -1.0},
]


def make_png(width=64, height=32):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (30, 140, 90)).save(buffer, format="PNG")
    return buffer.getvalue()


class PolygonApiTests(unittest.TestCase):
    def setUp(self):
        self.client = app.test_client()

    def test_bounds_route(self):
        response = self.client.post("/api/bounds", json={"polygon": SQUARE})
        self.assertEqual(200, response.status_code)
        payload = response.get_json()
        self.assertEqual(payload["bounds"]["min_lat"], 51.0)
        self.assertEqual(payload["bounds"]["max_lng"], 0.0)
        self.assertEqual(payload["region"]["latitude"], 51.5)
        self.assertEqual(payload["aspect_ratio"], 1.0)

    def test_bounds_route_rejects_missing_polygon(self):
        response = self.client.post("/api/bounds", json={})
        self.assertEqual(400, response.status_code)

    def test_bounds_route_rejects_malformed_point(self):
        response = self.client.post("/api/bounds", json={"polygon": [{"latitude": 1.0}]})
        self.assertEqual(400, response.status_code)

    def test_normalize_route_uses_snapshot_bounds(self):
        snapshot_bounds = {"min_lat": 50.0, "max_lat": 54.0, "min_lng": -2.0, "max_lng": 2.0}
        response = self.client.post(
            "/api/normalize",
            json={"polygon": SQUARE, "snapshot_bounds": snapshot_bounds},
        )
        self.assertEqual(200, response.status_code)
        points = response.get_json()["points"]
        self.assertAlmostEqual(points[0]["x"], 0.25)
        self.assertAlmostEqual(points[0]["y"], 0.25)
        self.assertAlmostEqual(points[2]["x"], 0.5)
        self.assertAlmostEqual(points[2]["y"], 0.5)

    def test_triangulate_route(self):
        points = [{"x": 0.0, "y": 0.0}, {"x": 1.0, "y": 0.0}, {"x": 1.0, "y": 1.0}, {"x": 0.0, "y": 1.0}]
        response = self.client.post("/api/triangulate", json={"points": points})
        self.assertEqual(200, response.status_code)
        payload = response.get_json()
        self.assertEqual(len(payload["triangles"]), 2)
        self.assertTrue(payload["complete"])

    def test_triangulate_route_rejects_short_input(self):
        response = self.client.post("/api/triangulate", json={"points": [{"x": 0.0, "y": 0.0}]})
        self.assertEqual(400, response.status_code)

    def test_mesh_route_builds_buffers(self):
        response = self.client.post("/api/mesh", json={"polygon": SQUARE, "aspect_ratio": 0.5, "scale": 10})
        self.assertEqual(200, response.status_code)
        payload = response.get_json()
        mesh = payload["mesh"]
        self.assertEqual(mesh["vertex_count"], 4)
        self.assertEqual(mesh["triangle_count"], 2)
        self.assertEqual(len(mesh["indices"]), 6)
        self.assertEqual(mesh["uvs"][0], [0.0, 0.0])
        self.assertEqual(mesh["positions"][2], [5.0, 2.5, 0.0])
        self.assertTrue(payload["validation"]["is_valid"])

    def test_mesh_route_rejects_two_point_polygon(self):
        response = self.client.post("/api/mesh", json={"polygon": SQUARE[:2]})
        self.assertEqual(400, response.status_code)

    def test_mesh_route_treats_null_numbers_as_defaults(self):
        response = self.client.post(
            "/api/mesh",
            json={"polygon": SQUARE, "aspect_ratio": None, "scale": None},
        )
        self.assertEqual(200, response.status_code)
        positions = response.get_json()["mesh"]["positions"]
        self.assertEqual(positions[2], [5.0, 5.0, 0.0])

    def test_mesh_route_rejects_non_numeric_aspect_ratio(self):
        for value in ("wide", [1, 2]):
            response = self.client.post("/api/mesh", json={"polygon": SQUARE, "aspect_ratio": value})
            self.assertEqual(400, response.status_code)
            self.assertIn("error", response.get_json())

    def test_non_list_inputs_are_client_errors(self):
        response = self.client.post("/api/triangulate", json={"points": 5})
        self.assertEqual(400, response.status_code)
        response = self.client.post("/api/triangulate", json={"points": [{"x": None, "y": 0.0}] * 3})
        self.assertEqual(400, response.status_code)
        response = self.client.post("/api/bounds", json={"polygon": 5})
        self.assertEqual(400, response.status_code)

    def test_health(self):
        payload = self.client.get("/api/health").get_json()
        self.assertEqual(payload["status"], "healthy")
        self.assertEqual(payload["service"], "MapClip3D")

    def test_config(self):
        payload = self.client.get("/api/config").get_json()
        self.assertIn("initial_region", payload)
        self.assertIn("polygon_style", payload)


class SceneApiTests(unittest.TestCase):
    def setUp(self):
        self.client = app.test_client()

    def test_uploaded_snapshot_gives_textured_scene(self):
        with redirect_stdout(io.StringIO()):
            response = self.client.post(
                "/api/scene",
                data={
                    "polygon": json.dumps(SQUARE),
                    "snapshot": (io.BytesIO(make_png(64, 32)), "snapshot.png"),
                },
                content_type="multipart/form-data",
            )
        self.assertEqual(200, response.status_code)
        payload = response.get_json()
        self.assertEqual(payload["outcome"], "textured")
        self.assertEqual(payload["texture"]["width"], 64)
        self.assertAlmostEqual(payload["texture"]["aspect_ratio"], 0.5)
        self.assertEqual(payload["mesh"]["triangle_count"], 2)
        # Upload is removed once decoded
        self.assertEqual(os.listdir(app.config["UPLOAD_FOLDER"]), [])

    def test_missing_snapshot_falls_back_to_solid_color(self):
        with redirect_stdout(io.StringIO()):
            response = self.client.post(
                "/api/scene",
                data={"polygon": json.dumps(SQUARE)},
                content_type="multipart/form-data",
            )
        payload = response.get_json()
        self.assertEqual(payload["outcome"], "fallback")
        self.assertEqual(payload["material"]["color"], 0xFF6B6B)
        self.assertEqual(payload["mesh"]["vertex_count"], 4)

    def test_missing_polygon_gives_placeholder(self):
        with redirect_stdout(io.StringIO()):
            response = self.client.post("/api/scene", json={})
        payload = response.get_json()
        self.assertEqual(payload["outcome"], "placeholder")
        self.assertEqual(payload["material"]["color"], 0x44AA88)
        self.assertEqual(payload["mesh"]["triangle_count"], 2)

    def test_rejects_unsupported_snapshot_type(self):
        response = self.client.post(
            "/api/scene",
            data={
                "polygon": json.dumps(SQUARE),
                "snapshot": (io.BytesIO(b"GIF89a"), "snapshot.gif"),
            },
            content_type="multipart/form-data",
        )
        self.assertEqual(400, response.status_code)


class DrawAndCaptureFlowTests(unittest.TestCase):
    def setUp(self):
        self.client = app.test_client()

    def test_drawn_polygon_normalizes_against_captured_region(self):
        drawing = PolygonDrawing()
        drawing.start_drawing()
        for point in SQUARE:
            drawing.add_point(point)
        polygon = list(drawing.finish_polygon())

        region = {"latitude": 51.5, "longitude": -0.5, "latitude_delta": 2.0, "longitude_delta": 2.0}
        with redirect_stdout(io.StringIO()):
            snapshot = capture_snapshot(
                lambda _bounds: "file:///tmp/map.png",
                self.client.post("/api/bounds", json={"polygon": polygon}).get_json()["bounds"],
                settle_seconds=0,
                region_fn=lambda: region,
            )

        response = self.client.post(
            "/api/normalize",
            json={"polygon": polygon, "snapshot_bounds": snapshot["bounds"]},
        )
        self.assertEqual(200, response.status_code)
        points = response.get_json()["points"]
        self.assertAlmostEqual(points[0]["x"], 0.25)
        self.assertAlmostEqual(points[0]["y"], 0.25)
        self.assertAlmostEqual(points[2]["x"], 0.75)
        self.assertAlmostEqual(points[2]["y"], 0.75)


class ExportApiTests(unittest.TestCase):
    def setUp(self):
        self.client = app.test_client()

    def test_stl_export_from_polygon(self):
        response = self.client.post("/api/export/stl", json={"polygon": SQUARE, "filename": "field.stl"})
        self.assertEqual(200, response.status_code)
        data = response.get_data()
        response.close()
        # 80-byte header, triangle count, 50 bytes per triangle
        self.assertEqual(len(data), 84 + 2 * 50)
        self.assertIn("field.stl", response.headers["Content-Disposition"])

    def test_obj_export_from_mesh_payload(self):
        mesh = self.client.post("/api/mesh", json={"polygon": SQUARE}).get_json()["mesh"]
        response = self.client.post("/api/export/obj", json={"mesh": mesh})
        self.assertEqual(200, response.status_code)
        text = response.get_data(as_text=True)
        response.close()
        self.assertEqual(sum(1 for line in text.splitlines() if line.startswith("v ")), 4)
        self.assertEqual(sum(1 for line in text.splitlines() if line.startswith("vt ")), 4)
        self.assertEqual(sum(1 for line in text.splitlines() if line.startswith("f ")), 2)

    def test_export_rejects_mesh_with_out_of_range_index(self):
        mesh = {
            "positions": [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
            "triangles": [[0, 1, 7]],
        }
        for route in ("/api/export/stl", "/api/export/obj"):
            response = self.client.post(route, json={"mesh": mesh})
            self.assertEqual(400, response.status_code)
            self.assertIn("out of range", response.get_json()["error"])

    def test_export_accepts_mesh_without_uvs(self):
        mesh = {
            "vertices": [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
            "faces": [[0, 1, 2]],
        }
        response = self.client.post("/api/export/stl", json={"mesh": mesh})
        self.assertEqual(200, response.status_code)
        self.assertEqual(len(response.get_data()), 84 + 50)
        response.close()

    def test_export_rejects_empty_request(self):
        response = self.client.post("/api/export/stl", json={})
        self.assertEqual(400, response.status_code)


if __name__ == "__main__":
    unittest.main()
