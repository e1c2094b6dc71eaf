from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np
import numba as nb

from meshhologram.config import REFERENCE_TRIANGLE

if TYPE_CHECKING:
    import numpy.typing as npt


class FacetStatus(StrEnum):
    """Outcome of the geometry stage for one facet."""
    ACCEPTED = "accepted"
    BACK_FACING = "back_facing"
    ZERO_NORMAL = "zero_normal"
    COLLINEAR = "collinear"
    SINGULAR_AFFINE = "singular_affine"


@nb.jit(cache=True)
def _inv2(
    a11: float,
    a12: float,
    a21: float,
    a22: float
) -> tuple[tuple[float, float, float, float], float]:
    """
    Compute the inverse and determinant of a 2×2 matrix [[a11, a12], [a21, a22]].

    The caller guarantees a non-zero determinant.

    Returns:
        A tuple containing the elements of the inverse matrix and the determinant.
    """
    det = a11 * a22 - a12 * a21
    inv = (a22 / det, -a12 / det, -a21 / det, a11 / det)
    return inv, det


@nb.jit(cache=True)
def _rotation_to_z(nx: float, ny: float, nz: float) -> npt.NDArray[np.float64]:
    """
    Build the rotation that maps the unit normal (nx, ny, nz) onto +z.

    Args:
        nx, ny, nz: Components of a unit normal with nz >= 0.

    Returns:
        (3, 3) rotation matrix.
    """
    if nx == 0.0 and nz == 0.0:
        th = 0.0
    else:
        # atan(nx / nz) for nz > 0, and its limit ±pi/2 for nz == 0
        th = math.atan2(nx, nz)
    ph = math.atan2(ny, math.sqrt(nx * nx + nz * nz))

    cth, sth = math.cos(th), math.sin(th)
    cph, sph = math.cos(ph), math.sin(ph)

    rot = np.empty((3, 3), dtype=np.float64)
    rot[0, 0] = cth
    rot[0, 1] = 0.0
    rot[0, 2] = -sth
    rot[1, 0] = -sph * sth
    rot[1, 1] = cph
    rot[1, 2] = -sph * cth
    rot[2, 0] = cph * sth
    rot[2, 1] = sph
    rot[2, 2] = cph * cth
    return rot


@dataclass(frozen=True)
class FacetGeometry:
    """
    Geometric relations of one accepted facet.

    Attributes:
        normal: Raw normal (V1 - V2) x (V3 - V2).
        unit_normal: Normalized facet normal.
        rotation: (3, 3) rotation from scene space to the facet frame (normal -> +z).
        shift: Translation applied after the rotation so that V1 sits at the origin.
        affine: (2, 2) matrix mapping facet-frame (x, y) onto reference-triangle coordinates.
        affine_inv_t: Inverse transpose of `affine`; maps local frequencies onto reference frequencies.
        determinant: det(affine).
        vertex_normals: (3, 3) averaged vertex normals for continuous shading, otherwise None.
    """
    normal: npt.NDArray[np.float64]
    unit_normal: npt.NDArray[np.float64]
    rotation: npt.NDArray[np.float64]
    shift: npt.NDArray[np.float64]
    affine: npt.NDArray[np.float64]
    affine_inv_t: npt.NDArray[np.float64]
    determinant: float
    vertex_normals: npt.NDArray[np.float64] | None = None


def check_validity(normal: npt.NDArray[np.float64]) -> FacetStatus:
    """
    Decide whether a facet faces the hologram plane.

    Args:
        normal: Raw facet normal.

    Returns:
        BACK_FACING if normal.z < 0, ZERO_NORMAL for the zero vector, otherwise ACCEPTED.
    """
    if normal[2] < 0.0:
        return FacetStatus.BACK_FACING
    if normal[0] == 0.0 and normal[1] == 0.0 and normal[2] == 0.0:
        return FacetStatus.ZERO_NORMAL
    return FacetStatus.ACCEPTED


def solve_facet_geometry(
    facet: npt.NDArray[np.float64],
    normal: npt.NDArray[np.float64],
    vertex_normals: npt.NDArray[np.float64] | None = None,
) -> tuple[FacetStatus, FacetGeometry | None]:
    """
    Find the rigid transform and the affine map that take a facet onto the reference triangle.

    Args:
        facet: (3, 3) vertices V1, V2, V3 in scene space.
        normal: Raw facet normal.
        vertex_normals: Optional (3, 3) averaged vertex normals, carried through for continuous shading.

    Returns:
        Facet status and, for accepted facets, its geometry.
    """
    status = check_validity(normal)
    if status is not FacetStatus.ACCEPTED:
        return status, None

    unit_normal = normal / np.linalg.norm(normal)
    rotation = _rotation_to_z(unit_normal[0], unit_normal[1], unit_normal[2])

    local = facet @ rotation.T
    shift = -local[0]
    local = local + shift

    x2, y2 = local[1, 0], local[1, 1]
    x3, y3 = local[2, 0], local[2, 1]
    if x3 * y2 == y3 * x2:
        return FacetStatus.COLLINEAR, None

    (_, rx2, rx3), (_, ry2, ry3) = REFERENCE_TRIANGLE.T
    denominator = x3 * y2 - y3 * x2
    affine = np.array([
        [(rx3 * y2 - rx2 * y3) / denominator, (rx3 * x2 - rx2 * x3) / -denominator],
        [(ry3 * y2 - ry2 * y3) / denominator, (ry3 * x2 - ry2 * x3) / -denominator],
    ], dtype=np.float64)

    if affine[0, 0] * affine[1, 1] - affine[0, 1] * affine[1, 0] == 0.0:
        return FacetStatus.SINGULAR_AFFINE, None

    (i11, i12, i21, i22), det = _inv2(affine[0, 0], affine[0, 1], affine[1, 0], affine[1, 1])
    affine_inv_t = np.array([[i11, i21], [i12, i22]], dtype=np.float64)

    return FacetStatus.ACCEPTED, FacetGeometry(
        normal=normal,
        unit_normal=unit_normal,
        rotation=rotation,
        shift=shift,
        affine=affine,
        affine_inv_t=affine_inv_t,
        determinant=float(det),
        vertex_normals=vertex_normals,
    )
