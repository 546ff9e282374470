#!/usr/bin/env python3
"""
MapClip3D - Map Polygon to 3D Mesh Service
Web API that turns a polygon drawn on a map, plus a snapshot of the map
region, into a textured and triangulated flat 3D mesh.
"""

import json
import os
import time
import traceback
import uuid
from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

from utils.app_config import (
    DEFAULT_MAP_REGION,
    POLYGON_STYLE,
    get_cors_origins,
    get_export_folder,
    get_file_ttl_seconds,
    get_mesh_scale,
    get_upload_folder,
    parse_env_bool,
)
from utils.polygon_bounds import (
    get_geo_aspect_ratio,
    get_polygon_bounds,
    is_valid_polygon,
    region_from_bounds,
    resolve_snapshot_bounds,
    to_geo_polygon,
)
from utils.coordinate_normalizer import normalize_polygon, points_from_dicts, points_to_dicts
from utils.triangulator import triangulate_polygon, is_complete_triangulation
from utils.mesh_builder import (
    InvalidPolygonError,
    create_polygon_geometry,
    export_to_obj,
    export_to_stl,
    mesh_to_payload,
)
from utils.mesh_validator import MeshValidator
from utils.texture_resolver import material_to_payload, resolve_material

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": get_cors_origins()}})

# Configuration
UPLOAD_FOLDER = get_upload_folder()
EXPORT_FOLDER = get_export_folder()
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp'}
CLEANUP_MAX_AGE_SECONDS = get_file_ttl_seconds()

app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['EXPORT_FOLDER'] = EXPORT_FOLDER
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max snapshot size

# Ensure directories exist
os.makedirs(UPLOAD_FOLDER, exist_ok=True)
os.makedirs(EXPORT_FOLDER, exist_ok=True)


def cleanup_old_files(directory, max_age_seconds):
    """Remove files older than `max_age_seconds` from a directory."""
    now = time.time()
    try:
        for entry in os.scandir(directory):
            if not entry.is_file():
                continue
            age = now - entry.stat().st_mtime
            if age > max_age_seconds:
                os.remove(entry.path)
    except OSError as e:
        print(f"[WARN] Cleanup failed for {directory}: {e}")


def build_unique_path(directory, original_filename, required_ext):
    """Build unique storage path while preserving user-facing download name."""
    sanitized = secure_filename(original_filename) or f"polygon_mesh.{required_ext}"
    if not sanitized.endswith(f".{required_ext}"):
        sanitized = f"{sanitized}.{required_ext}"
    stem = sanitized[:-(len(required_ext) + 1)]
    unique_name = f"{stem}_{uuid.uuid4().hex[:10]}.{required_ext}"
    return sanitized, os.path.join(directory, unique_name)


def allowed_file(filename):
    """Check if file has an allowed image extension."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def get_request_data():
    """JSON body, or form fields with JSON-encoded values for multipart requests."""
    if request.is_json:
        return request.get_json() or {}

    data = {}
    for key, value in request.form.items():
        try:
            data[key] = json.loads(value)
        except ValueError:
            data[key] = value
    return data


def get_float_field(data, key, default):
    """Numeric request field; missing or null values use `default`."""
    value = data.get(key)
    if value is None:
        return float(default)
    try:
        return float(value)
    except TypeError:
        raise ValueError(f"'{key}' must be a number, got {value!r}")


def normalize_request_polygon(data):
    """
    Run bounds + normalization for a request payload.

    Returns:
        tuple: (geo polygon, bounds used, normalization result)
    """
    polygon = to_geo_polygon(data.get('polygon'))
    bounds = resolve_snapshot_bounds(
        polygon,
        snapshot_bounds=data.get('snapshot_bounds'),
        region=data.get('region'),
    )
    return polygon, bounds, normalize_polygon(polygon, bounds)


def validation_for(mesh, polygon_size):
    return MeshValidator().validate(mesh, polygon_size=polygon_size)


# Cleanup stale local artifacts on startup.
cleanup_old_files(UPLOAD_FOLDER, CLEANUP_MAX_AGE_SECONDS)
cleanup_old_files(EXPORT_FOLDER, CLEANUP_MAX_AGE_SECONDS)


@app.route('/api/config', methods=['GET'])
def get_config():
    """Map defaults for the drawing front end."""
    return jsonify({
        'initial_region': DEFAULT_MAP_REGION,
        'polygon_style': POLYGON_STYLE,
        'mesh_scale': get_mesh_scale(),
    })


@app.route('/api/bounds', methods=['POST'])
def polygon_bounds():
    """Bounding box and capture region for a drawn polygon."""
    try:
        data = request.get_json() or {}
        bounds = get_polygon_bounds(data.get('polygon'))
        if bounds is None:
            return jsonify({'error': 'No polygon data'}), 400

        return jsonify({
            'success': True,
            'bounds': bounds,
            'region': region_from_bounds(bounds),
            'aspect_ratio': get_geo_aspect_ratio(bounds),
        })

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/normalize', methods=['POST'])
def normalize():
    """Normalize a polygon against snapshot bounds, region, or its own bounds."""
    try:
        data = request.get_json() or {}
        polygon, bounds, result = normalize_request_polygon(data)
        if not polygon:
            return jsonify({'error': 'No polygon data'}), 400

        return jsonify({
            'success': True,
            'bounds': bounds,
            'points': points_to_dicts(result['points']),
            'degenerate': result['degenerate'],
        })

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/triangulate', methods=['POST'])
def triangulate():
    """Ear-clip already normalized points."""
    try:
        data = request.get_json() or {}
        points = points_from_dicts(data.get('points'))
        if len(points) < 3:
            return jsonify({'error': 'Invalid polygon: need at least 3 vertices'}), 400

        triangles = triangulate_polygon(points)
        return jsonify({
            'success': True,
            'triangles': triangles,
            'complete': is_complete_triangulation(len(points), triangles),
        })

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/mesh', methods=['POST'])
def build_mesh():
    """Build position/UV/index buffers for a geographic polygon."""
    try:
        t_start = time.time()
        data = request.get_json() or {}
        polygon, bounds, result = normalize_request_polygon(data)
        if not is_valid_polygon(polygon):
            return jsonify({'error': 'Invalid polygon: need at least 3 vertices'}), 400

        aspect_ratio = get_float_field(data, 'aspect_ratio', 1.0)
        scale = get_float_field(data, 'scale', get_mesh_scale())

        mesh = create_polygon_geometry(result['points'], aspect_ratio, scale)
        validation = validation_for(mesh, len(polygon))

        t_total = time.time() - t_start
        print(f"[PERF] /api/mesh built {len(mesh['faces'])} triangles in {t_total:.3f}s")

        return jsonify({
            'success': True,
            'bounds': bounds,
            'degenerate': result['degenerate'],
            'mesh': mesh_to_payload(mesh),
            'validation': validation,
        })

    except (InvalidPolygonError, ValueError) as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"[ERROR] /api/mesh failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/scene', methods=['POST'])
def build_scene():
    """Resolve geometry and material for the 3D view from a polygon and snapshot upload."""
    filepath = None
    try:
        t_start = time.time()
        cleanup_old_files(app.config['UPLOAD_FOLDER'], CLEANUP_MAX_AGE_SECONDS)
        data = get_request_data()
        polygon, bounds, result = normalize_request_polygon(data)
        scale = get_float_field(data, 'scale', get_mesh_scale())

        file = request.files.get('snapshot')
        if file is not None and file.filename:
            if not allowed_file(file.filename):
                return jsonify({'error': 'Invalid file type. Only PNG, JPEG or WebP snapshots allowed'}), 400
            ext = file.filename.rsplit('.', 1)[1].lower()
            _, filepath = build_unique_path(app.config['UPLOAD_FOLDER'], file.filename, ext)
            file.save(filepath)

        resolved = resolve_material(filepath, result['points'], scale=scale)
        geometry = resolved['geometry']

        t_total = time.time() - t_start
        print(f"[PERF] /api/scene resolved '{resolved['outcome']}' in {t_total:.3f}s")

        return jsonify({
            'success': True,
            'bounds': bounds,
            'degenerate': result['degenerate'],
            'mesh': mesh_to_payload(geometry),
            'validation': validation_for(geometry, len(geometry['vertices'])),
            **material_to_payload(resolved),
        })

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"[ERROR] /api/scene failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500
    finally:
        # Snapshot is only needed for immediate decoding.
        if filepath and os.path.exists(filepath):
            os.remove(filepath)


def mesh_for_export(data):
    """Use a supplied mesh, or build one from the polygon fields."""
    mesh = data.get('mesh')
    if mesh:
        if not isinstance(mesh, dict):
            raise ValueError("Invalid mesh: expected an object")
        # Accept either builder output or the /api/mesh payload shape
        vertices = mesh.get('vertices') or mesh.get('positions') or []
        supplied = {
            'vertices': vertices,
            'uvs': mesh.get('uvs') or [[0.0, 0.0]] * len(vertices),
            'faces': mesh.get('faces') or mesh.get('triangles') or [],
            'normals': mesh.get('normals'),
        }
        try:
            validation = validation_for(supplied, None)
        except TypeError as e:
            raise ValueError(f"Invalid mesh: {e}")
        if validation['errors']:
            raise ValueError(f"Invalid mesh: {'; '.join(validation['errors'])}")
        return supplied
    polygon, _, result = normalize_request_polygon(data)
    if not is_valid_polygon(polygon):
        raise InvalidPolygonError("Invalid polygon: need at least 3 vertices")
    return create_polygon_geometry(
        result['points'],
        get_float_field(data, 'aspect_ratio', 1.0),
        get_float_field(data, 'scale', get_mesh_scale()),
    )


@app.route('/api/export/stl', methods=['POST'])
def export_stl():
    """Export the polygon mesh to STL."""
    try:
        cleanup_old_files(app.config['EXPORT_FOLDER'], CLEANUP_MAX_AGE_SECONDS)
        data = request.get_json() or {}
        mesh = mesh_for_export(data)
        filename = data.get('filename', 'polygon_mesh.stl')

        filename, filepath = build_unique_path(app.config['EXPORT_FOLDER'], filename, 'stl')
        export_to_stl(mesh, filepath)

        return send_file(
            filepath,
            mimetype='application/sla',
            as_attachment=True,
            download_name=filename
        )

    except (InvalidPolygonError, ValueError) as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/export/obj', methods=['POST'])
def export_obj():
    """Export the polygon mesh to Wavefront OBJ with UVs."""
    try:
        cleanup_old_files(app.config['EXPORT_FOLDER'], CLEANUP_MAX_AGE_SECONDS)
        data = request.get_json() or {}
        mesh = mesh_for_export(data)
        filename = data.get('filename', 'polygon_mesh.obj')

        filename, filepath = build_unique_path(app.config['EXPORT_FOLDER'], filename, 'obj')
        export_to_obj(mesh, filepath)

        return send_file(
            filepath,
            mimetype='text/plain',
            as_attachment=True,
            download_name=filename
        )

    except (InvalidPolygonError, ValueError) as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/health', methods=['GET'])
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'service': 'MapClip3D'
    })


if __name__ == '__main__':
    debug_enabled = parse_env_bool(os.getenv('MAPCLIP_DEBUG'), default=False)
    app.run(host='0.0.0.0', port=5001, debug=debug_enabled)
