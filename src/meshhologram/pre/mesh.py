from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from meshhologram.errors import InvalidMeshError

if TYPE_CHECKING:
    import numpy.typing as npt
    from meshhologram.config import SceneConfig

logger = logging.getLogger(__name__)

VALUES_PER_FACET = 9


class TriMesh:
    """
    Triangular mesh stored as an (n_facets, 3, 3) array: facet, vertex, xyz.

    Instances are treated as immutable. Every transformation returns a new mesh.
    """
    def __init__(self, vertices: npt.ArrayLike) -> None:
        """
        Initialize the mesh from facet vertices.

        Args:
            vertices: Array-like of shape (n_facets, 3, 3).

        Raises:
            InvalidMeshError: If the array is empty, has the wrong shape or holds non-finite values.
        """
        array = np.array(vertices, dtype=np.float64)
        if array.ndim != 3 or array.shape[1:] != (3, 3):
            raise InvalidMeshError(f"Mesh vertices must have shape (n_facets, 3, 3), got {array.shape}.")
        if array.shape[0] == 0:
            raise InvalidMeshError("Mesh has no facets.")
        if not np.all(np.isfinite(array)):
            raise InvalidMeshError("Mesh contains non-finite vertex coordinates.")
        array.setflags(write=False)
        self.vertices: npt.NDArray[np.float64] = array

    @classmethod
    def from_buffer(cls, buffer: Sequence[float] | npt.NDArray[np.float64]) -> TriMesh:
        """
        Build a mesh from a flat buffer of 9 reals per facet (x1 y1 z1 x2 y2 z2 x3 y3 z3).

        Raises:
            InvalidMeshError: If the buffer length is not a positive multiple of 9.
        """
        flat = np.asarray(buffer, dtype=np.float64).ravel()
        if flat.size == 0 or flat.size % VALUES_PER_FACET:
            raise InvalidMeshError(
                f"Mesh buffer must hold a positive multiple of {VALUES_PER_FACET} values, got {flat.size}."
            )
        return cls(flat.reshape(-1, 3, 3))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_facets={self.n_facets})"

    def __len__(self) -> int:
        return self.n_facets

    @property
    def n_facets(self) -> int:
        """Number of triangular facets."""
        return self.vertices.shape[0]

    @property
    def points(self) -> npt.NDArray[np.float64]:
        """All facet vertices as an (3 * n_facets, 3) array, in facet order."""
        return self.vertices.reshape(-1, 3)

    def bounding_box(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Return the per-axis (minimum, maximum) of all vertices."""
        points = self.points
        return points.min(axis=0), points.max(axis=0)

    def normalized(self) -> TriMesh:
        """
        Center the mesh at its bounding-box midpoint and divide by the largest axis extent.

        The division is uniform, so the aspect ratio is preserved and the result fits in
        the unit cube centred at the origin.

        Raises:
            InvalidMeshError: If every vertex coincides (zero extent on all axes).
        """
        lo, hi = self.bounding_box()
        center = (hi + lo) / 2.0
        extent = float(np.max(hi - lo))
        if extent == 0.0:
            raise InvalidMeshError("Mesh has zero bounding-box extent; it cannot be normalized.")

        logger.debug(f"Normalizing mesh: center={center}, extent={extent}")
        return TriMesh((self.vertices - center) / extent)

    def viewing_window(self, field_lens: float) -> TriMesh:
        """
        Map the mesh through the field lens of the viewing window.

        Each vertex (x, y, z) becomes -F * (x, y, z) / (z - F) for focal length F.

        Raises:
            InvalidMeshError: If a vertex lies in the focal plane (z == F).
        """
        z = self.vertices[..., 2:3]
        denominator = z - field_lens
        if np.any(denominator == 0.0):
            raise InvalidMeshError(f"A vertex lies in the focal plane of the field lens (z = {field_lens}).")
        return TriMesh(-field_lens * self.vertices / denominator)

    def scaled(self, scale: Sequence[float], shift: Sequence[float]) -> TriMesh:
        """Multiply every vertex by the per-axis scale and add the shift."""
        return TriMesh(
            self.vertices * np.asarray(scale, dtype=np.float64) + np.asarray(shift, dtype=np.float64)
        )

    def to_scene(self, config: SceneConfig) -> TriMesh:
        """
        Normalize the mesh and place it in scene space.

        Args:
            config: Scene configuration providing the object scale, shift and viewing-window setup.

        Returns:
            New mesh in scene (object) space.
        """
        mesh = self.normalized()
        if config.viewing_window:
            mesh = mesh.viewing_window(config.field_lens)
        scene = mesh.scaled(config.object_scale, config.object_shift)
        logger.info(f"Object scaling and shifting finished for {self.n_facets} facets.")
        return scene

    def facet_normals(self) -> npt.NDArray[np.float64]:
        """
        Raw (non-normalized) normals (V1 - V2) x (V3 - V2) of all facets.

        Returns:
            (n_facets, 3) array.
        """
        v1 = self.vertices[:, 0, :]
        v2 = self.vertices[:, 1, :]
        v3 = self.vertices[:, 2, :]
        return np.cross(v1 - v2, v3 - v2)

    def vertex_normals(self) -> npt.NDArray[np.float64]:
        """
        Averaged unit normals at every facet vertex, used by continuous shading.

        Vertices are grouped by exact positional equality. The normal of a group is the
        mean of the unit normals of all facets sharing that position, re-normalized.

        Returns:
            (n_facets, 3, 3) array: facet, vertex, normal xyz.
        """
        raw = self.facet_normals()
        lengths = np.linalg.norm(raw, axis=1, keepdims=True)
        unit = np.divide(raw, lengths, out=np.zeros_like(raw), where=lengths > 0.0)

        groups: dict[tuple[float, float, float], list[int]] = {}
        for index, point in enumerate(self.points):
            groups.setdefault((point[0], point[1], point[2]), []).append(index)

        normals = np.zeros((self.n_facets * 3, 3), dtype=np.float64)
        for indices in groups.values():
            # vertex index // 3 is the facet the vertex belongs to
            mean = unit[np.asarray(indices) // 3].mean(axis=0)
            length = np.linalg.norm(mean)
            if length > 0.0:
                normals[indices] = mean / length

        logger.debug(f"Averaged vertex normals over {len(groups)} distinct positions.")
        return normals.reshape(self.n_facets, 3, 3)
