"""Polygon mesh validation for the render surface."""

import numpy as np
from collections import defaultdict
from scipy.spatial import cKDTree


class MeshValidator:
    """
    Validate a polygon mesh description before it is handed to a renderer.

    Errors (the renderer would misbehave):
    - Buffer lengths disagree (positions, UVs, normals)
    - Triangle indices out of range or repeated within a triangle

    Warnings (visible but harmless):
    - Partial triangulation (fewer than n - 2 triangles)
    - Degenerate faces (zero-area triangles)
    - Duplicate vertices
    - Edges used by more than two triangles
    """

    def __init__(self):
        """Initialize mesh validator."""
        self.warnings = []
        self.errors = []

    def validate(self, mesh, polygon_size=None):
        """
        Validate mesh data.

        Args:
            mesh: Dict with 'vertices', 'uvs', 'faces' and optionally 'normals'
            polygon_size: Number of input polygon points (defaults to vertex count)

        Returns:
            dict: {
                'is_valid': bool,
                'warnings': list of warning messages,
                'errors': list of error messages
            }
        """
        self.warnings = []
        self.errors = []

        vertices = np.array(mesh.get('vertices', []), dtype=np.float64).reshape(-1, 3)
        uvs = mesh.get('uvs', [])
        normals = mesh.get('normals')
        faces = np.array(mesh.get('faces', []), dtype=np.int64).reshape(-1, 3)
        n = len(vertices) if polygon_size is None else polygon_size

        if len(vertices) != n or len(uvs) != n:
            self.errors.append(
                f"Buffer length mismatch: {len(vertices)} positions, {len(uvs)} uvs, {n} polygon points"
            )
        if normals is not None and len(normals) != len(vertices):
            self.errors.append(f"Buffer length mismatch: {len(normals)} normals for {len(vertices)} positions")

        if len(faces) > 0:
            self._check_indices(faces, len(vertices))

        if not self.errors:
            if n >= 3 and len(faces) != n - 2:
                self.warnings.append(f"Partial triangulation: {len(faces)} of {n - 2} triangles")

            degenerate_count = self._count_degenerate_faces(vertices, faces)
            if degenerate_count > 0:
                self.warnings.append(f"{degenerate_count} degenerate face(s)")

            duplicate_count = self._count_duplicate_vertices(vertices)
            if duplicate_count > 0:
                self.warnings.append(f"{duplicate_count} duplicate vertices")

            overused_count = self._count_overused_edges(faces)
            if overused_count > 0:
                self.warnings.append(f"{overused_count} edge(s) shared by more than two triangles")

        return {
            'is_valid': not self.errors,
            'warnings': self.warnings,
            'errors': self.errors
        }

    def _check_indices(self, faces, vertex_count):
        if faces.min() < 0 or faces.max() >= vertex_count:
            self.errors.append(f"Triangle index out of range for {vertex_count} vertices")

        repeated = (faces[:, 0] == faces[:, 1]) | (faces[:, 1] == faces[:, 2]) | (faces[:, 0] == faces[:, 2])
        repeated_count = int(np.count_nonzero(repeated))
        if repeated_count > 0:
            self.errors.append(f"{repeated_count} triangle(s) repeat a vertex index")

    def _count_degenerate_faces(self, vertices, faces):
        """Count faces with (near) zero area."""
        if len(faces) == 0:
            return 0
        v0 = vertices[faces[:, 0]]
        v1 = vertices[faces[:, 1]]
        v2 = vertices[faces[:, 2]]
        areas = np.linalg.norm(np.cross(v1 - v0, v2 - v0), axis=1) / 2.0
        return int(np.count_nonzero(areas <= 1e-12))

    def _count_duplicate_vertices(self, vertices, tolerance=1e-9):
        """Count vertices lying on top of an earlier vertex, using a KD-tree."""
        if len(vertices) < 2:
            return 0
        tree = cKDTree(vertices)
        pairs = tree.query_pairs(r=tolerance)
        return len({max(i, j) for i, j in pairs})

    def _count_overused_edges(self, faces):
        """Count edges referenced by more than two triangles."""
        edge_count = defaultdict(int)
        for face in faces:
            for a, b in ((face[0], face[1]), (face[1], face[2]), (face[2], face[0])):
                edge_count[(min(a, b), max(a, b))] += 1
        return sum(1 for count in edge_count.values() if count > 2)
