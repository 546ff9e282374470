"""Flat, texture-mapped polygon mesh generation and export."""

import os

import numpy as np
from stl import mesh as stl_mesh

from .triangulator import triangulate_polygon, is_complete_triangulation

PLANE_NORMAL = (0.0, 0.0, 1.0)


class InvalidPolygonError(ValueError):
    """Raised when a polygon has too few vertices to build a mesh."""


def create_polygon_geometry(normalized_coords, aspect_ratio, scale):
    """
    Create a polygon-shaped geometry with UV mapping.

    Each normalized point (x, y) becomes the position
    ((x - 0.5) * scale, (y - 0.5) * scale * aspect_ratio, 0), centering the
    polygon on the origin in the XY plane. The mesh is `scale` units wide and
    `scale * aspect_ratio` units tall, so a texture with that height/width
    ratio is not stretched. UVs are the normalized points unchanged: y runs
    south to north, matching a bottom-left texture origin.

    Args:
        normalized_coords: (N, 2) array-like of points in [0, 1]
        aspect_ratio: Texture height / width
        scale: Width of the mesh in model units

    Returns:
        dict: {
            'vertices': list of [x, y, z],
            'uvs': list of [u, v],
            'faces': list of [i, j, k],
            'normals': list of [nx, ny, nz],
            'triangulation_complete': bool
        }

    Raises:
        InvalidPolygonError: if fewer than 3 points are given
    """
    if normalized_coords is None or len(normalized_coords) < 3:
        raise InvalidPolygonError("Invalid polygon: need at least 3 vertices")

    points = np.asarray(normalized_coords, dtype=np.float64).reshape(-1, 2)

    vertices = np.zeros((len(points), 3), dtype=np.float64)
    vertices[:, 0] = (points[:, 0] - 0.5) * scale
    vertices[:, 1] = (points[:, 1] - 0.5) * scale * aspect_ratio

    faces = triangulate_polygon(points)
    normals = compute_vertex_normals(vertices, faces)

    return {
        'vertices': vertices.tolist(),
        'uvs': points.tolist(),
        'faces': faces,
        'normals': normals.tolist(),
        'triangulation_complete': is_complete_triangulation(len(points), faces),
    }


def create_placeholder_geometry(size):
    """Square plane of side `size` centered on the origin, two triangles."""
    half = size / 2.0
    vertices = np.array([
        [-half, -half, 0.0],
        [half, -half, 0.0],
        [half, half, 0.0],
        [-half, half, 0.0],
    ])
    faces = [[0, 1, 2], [0, 2, 3]]
    return {
        'vertices': vertices.tolist(),
        'uvs': [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]],
        'faces': faces,
        'normals': compute_vertex_normals(vertices, faces).tolist(),
        'triangulation_complete': True,
    }


def compute_vertex_normals(vertices, faces):
    """
    Per-vertex normals from area-weighted face normals.

    Vertices that belong to no face (partial triangulation) get the plane
    normal.

    Returns:
        numpy array (N, 3) of unit vectors
    """
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    normals = np.zeros_like(vertices)

    if len(faces) > 0:
        tri = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        v0 = vertices[tri[:, 0]]
        v1 = vertices[tri[:, 1]]
        v2 = vertices[tri[:, 2]]
        face_normals = np.cross(v1 - v0, v2 - v0)
        for k in range(3):
            np.add.at(normals, tri[:, k], face_normals)

    lengths = np.linalg.norm(normals, axis=1)
    valid = lengths > 1e-12
    normals[valid] = normals[valid] / lengths[valid][:, None]
    normals[~valid] = PLANE_NORMAL
    return normals


def flatten_indices(faces):
    """Flat [i0, j0, k0, i1, ...] index list for the render surface."""
    return [int(index) for face in faces for index in face]


def mesh_to_payload(mesh):
    """JSON-ready mesh buffers: positions, uvs, flat indices, normals."""
    return {
        'positions': mesh['vertices'],
        'uvs': mesh['uvs'],
        'indices': flatten_indices(mesh['faces']),
        'triangles': mesh['faces'],
        'normals': mesh['normals'],
        'vertex_count': len(mesh['vertices']),
        'triangle_count': len(mesh['faces']),
        'triangulation_complete': mesh.get('triangulation_complete', False),
    }


def export_to_stl(mesh_data, filepath):
    """
    Export a polygon mesh to STL.

    Args:
        mesh_data: Dict with 'vertices' and 'faces'
        filepath: Output STL file path
    """
    vertices = np.array(mesh_data.get('vertices', []), dtype=np.float64)
    faces = np.array(mesh_data.get('faces', []), dtype=np.int32)

    if len(vertices) == 0 or len(faces) == 0:
        raise ValueError("No mesh data to export")

    output = stl_mesh.Mesh(np.zeros(faces.shape[0], dtype=stl_mesh.Mesh.dtype))
    for i, face in enumerate(faces):
        for j in range(3):
            output.vectors[i][j] = vertices[face[j], :]

    output.save(filepath)

    return {
        'success': True,
        'filepath': filepath,
        'vertices': len(vertices),
        'faces': len(faces)
    }


def export_to_obj(mesh_data, filepath, texture_name=None):
    """
    Export a polygon mesh to Wavefront OBJ with UVs and normals.

    When `texture_name` is given, a sibling .mtl file is written whose
    diffuse map points at that image file.
    """
    vertices = mesh_data.get('vertices', [])
    faces = mesh_data.get('faces', [])
    if not vertices or not faces:
        raise ValueError("No mesh data to export")

    uvs = mesh_data.get('uvs') or [[0.0, 0.0]] * len(vertices)
    normals = mesh_data.get('normals') or compute_vertex_normals(vertices, faces).tolist()

    mtl_path = None
    base = os.path.splitext(filepath)[0]
    if texture_name:
        mtl_path = f"{base}.mtl"
        with open(mtl_path, 'w', encoding='utf-8') as f:
            f.write("newmtl snapshot\n")
            f.write("Ka 1.000 1.000 1.000\n")
            f.write("Kd 1.000 1.000 1.000\n")
            f.write(f"map_Kd {texture_name}\n")

    with open(filepath, 'w', encoding='utf-8') as f:
        f.write("# MapClip3D - OBJ Export\n")
        f.write(f"# Vertices: {len(vertices)}\n")
        f.write(f"# Faces: {len(faces)}\n")
        if mtl_path:
            f.write(f"mtllib {os.path.basename(mtl_path)}\n")
            f.write("usemtl snapshot\n")
        f.write("\n")

        for v in vertices:
            f.write(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}\n")
        for uv in uvs:
            f.write(f"vt {uv[0]:.6f} {uv[1]:.6f}\n")
        for n in normals:
            f.write(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}\n")

        # OBJ uses 1-based indexing
        for face in faces:
            refs = " ".join(f"{i + 1}/{i + 1}/{i + 1}" for i in face)
            f.write(f"f {refs}\n")

    return {
        'success': True,
        'filepath': filepath,
        'material_path': mtl_path,
        'vertices': len(vertices),
        'faces': len(faces)
    }
