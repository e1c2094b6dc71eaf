"""
Closed-form angular spectra of the reference triangle.

The reference triangle is T = {(x, y): 0 <= y <= x <= 1}. For reference-triangle
frequencies (u, v) this module evaluates

    D3(u, v) = ∬_T exp(-j2π(ux + vy)) dx dy
    D1(u, v) = ∬_T x · exp(-j2π(ux + vy)) dx dy
    D2(u, v) = ∬_T y · exp(-j2π(ux + vy)) dx dy

D3 is the transform of the flat aperture; D1 and D2 are its first moments, needed
when the reflectance varies linearly across the facet (continuous shading).

The general formulas divide by u, v and u + v. Every grid point is therefore
assigned one of five cases, first match wins:

    1. u = -v, v != 0
    2. u = v = 0
    3. u != 0, v = 0
    4. u = 0, v != 0
    5. general

and each case uses the exact algebraic limit of the general formula.

Close to the degenerate lines the closed forms lose digits to cancellation, down to
no correct digit for D1 and D2 at |u|, |v| ~ 1e-7. There the transforms are summed
as power series instead: a double series inside a small disc around the origin, and
a series in the small variable for general points next to u = 0, v = 0 or u + v = 0.
"""
from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Callable

import numpy as np

from meshhologram.config import (
    LINE_SERIES_RADIUS,
    ORIGIN_SERIES_RADIUS,
    SHADING_OFFSET_CONTINUOUS,
    SHADING_OFFSET_FLAT,
    ShadingMode,
)

if TYPE_CHECKING:
    import numpy.typing as npt
    from meshhologram.analysis.frequency import LocalFrequencyTerms
    from meshhologram.analysis.geometry import FacetGeometry

    Frequencies = npt.NDArray[np.float64]
    Spectrum = npt.NDArray[np.complex128]
    Moments = tuple[Spectrum, Spectrum, Spectrum]
    FlatFormula = Callable[[Frequencies, Frequencies], Spectrum]
    MomentFormula = Callable[[Frequencies, Frequencies], Moments]

TWO_PI = 2.0 * np.pi


class DegeneracyCase(IntEnum):
    SUM_ZERO = 1
    ORIGIN = 2
    V_ZERO = 3
    U_ZERO = 4
    GENERAL = 5


def classify(u: npt.NDArray[np.float64], v: npt.NDArray[np.float64]) -> npt.NDArray[np.int8]:
    """
    Assign every (u, v) pair its degeneracy case.

    NaN frequencies (evanescent points) fall through to the general case.
    """
    conditions = [
        (u == -v) & (v != 0.0),
        (u == 0.0) & (v == 0.0),
        (u != 0.0) & (v == 0.0),
        (u == 0.0) & (v != 0.0),
    ]
    choices = [
        DegeneracyCase.SUM_ZERO,
        DegeneracyCase.ORIGIN,
        DegeneracyCase.V_ZERO,
        DegeneracyCase.U_ZERO,
    ]
    return np.select(conditions, choices, default=DegeneracyCase.GENERAL).astype(np.int8)


def _e(w: Frequencies) -> Spectrum:
    return np.exp(-1j * TWO_PI * w)


# --- Flat aperture D3 -------------------------------------------------------

def _d3_sum_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * v
    return (1.0 - np.exp(1j * a)) / (a * a) + 1j / a


def _d3_origin(u: Frequencies, v: Frequencies) -> Spectrum:
    return np.full(u.shape, 0.5, dtype=np.complex128)


def _d3_v_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * u
    e = _e(u)
    return (e - 1.0) / (a * a) + 1j * e / a


def _d3_u_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * v
    return (1.0 - _e(v)) / (a * a) - 1j / a


def _d3_general(u: Frequencies, v: Frequencies) -> Spectrum:
    s = u + v
    return (_e(u) - 1.0) / (TWO_PI ** 2 * u * v) + (1.0 - _e(s)) / (TWO_PI ** 2 * v * s)


# --- First moments D1, D2 ---------------------------------------------------

def _d1_sum_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * u
    e = _e(u)
    return -e / (a * a) + 1j * (e - 1.0) / a ** 3 - 0.5j / a


def _d2_sum_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * u
    e = _e(u)
    return 1.0 / (a * a) - 1j * (e - 1.0) / a ** 3 - 0.5j / a


def _d1_v_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * u
    e = _e(u)
    return 1j * e / a + 2.0 * e / (a * a) - 2j * (e - 1.0) / a ** 3


def _d1_u_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * v
    e = _e(v)
    return -0.5j / a - e / (a * a) + 1j * (e - 1.0) / a ** 3


def _d2_u_zero(u: Frequencies, v: Frequencies) -> Spectrum:
    a = TWO_PI * v
    e = _e(v)
    return -(e + 1.0) / (a * a) + 2j * (e - 1.0) / a ** 3


def _d1_general(u: Frequencies, v: Frequencies) -> Spectrum:
    s = u + v
    c = TWO_PI ** 3
    return (
        _e(s) * (1j - TWO_PI * s) / (c * v * s * s)
        + _e(u) * (TWO_PI * u - 1j) / (c * u * u * v)
        + 1j * (2.0 * u + v) / (c * u * u * s * s)
    )


def _d2_general(u: Frequencies, v: Frequencies) -> Spectrum:
    s = u + v
    c = TWO_PI ** 3
    return (
        _e(s) * (1j * (u + 2.0 * v) - TWO_PI * v * s) / (c * v * v * s * s)
        - 1j * _e(u) / (c * u * v * v)
        + 1j / (c * u * s * s)
    )


def _moments_sum_zero(u: Frequencies, v: Frequencies) -> Moments:
    return _d1_sum_zero(u, v), _d2_sum_zero(u, v), _d3_sum_zero(u, v)


def _moments_origin(u: Frequencies, v: Frequencies) -> Moments:
    return (
        np.full(u.shape, 1.0 / 3.0, dtype=np.complex128),
        np.full(u.shape, 1.0 / 6.0, dtype=np.complex128),
        _d3_origin(u, v),
    )


def _moments_v_zero(u: Frequencies, v: Frequencies) -> Moments:
    d1 = _d1_v_zero(u, v)
    return d1, 0.5 * d1, _d3_v_zero(u, v)


def _moments_u_zero(u: Frequencies, v: Frequencies) -> Moments:
    return _d1_u_zero(u, v), _d2_u_zero(u, v), _d3_u_zero(u, v)


def _moments_general(u: Frequencies, v: Frequencies) -> Moments:
    return _d1_general(u, v), _d2_general(u, v), _d3_general(u, v)


FLAT_FORMULAS: dict[DegeneracyCase, FlatFormula] = {
    DegeneracyCase.SUM_ZERO: _d3_sum_zero,
    DegeneracyCase.ORIGIN: _d3_origin,
    DegeneracyCase.V_ZERO: _d3_v_zero,
    DegeneracyCase.U_ZERO: _d3_u_zero,
    DegeneracyCase.GENERAL: _d3_general,
}

MOMENT_FORMULAS: dict[DegeneracyCase, MomentFormula] = {
    DegeneracyCase.SUM_ZERO: _moments_sum_zero,
    DegeneracyCase.ORIGIN: _moments_origin,
    DegeneracyCase.V_ZERO: _moments_v_zero,
    DegeneracyCase.U_ZERO: _moments_u_zero,
    DegeneracyCase.GENERAL: _moments_general,
}


# --- Series near the degenerate lines ----------------------------------------

ORIGIN_SERIES_ORDER = 24
LINE_SERIES_ORDER = 8
# Above this |b| the upward recurrence of the edge transforms is stable
UPWARD_RECURRENCE_START = 8.0


def _reference_moment(p: int, q: int) -> float:
    """∬_T x^p y^q dx dy."""
    return 1.0 / ((q + 1) * (p + q + 2))


def _moments_near_origin(u: Frequencies, v: Frequencies) -> Moments:
    """
    Taylor series of D1, D2 and D3 about the origin.

    For 2π·max(|u|, |v|) <= 1 the terms beyond total degree 24 are below 2^25/25!.
    """
    ju = -1j * TWO_PI * u
    jv = -1j * TWO_PI * v
    d1 = np.zeros(u.shape, dtype=np.complex128)
    d2 = np.zeros(u.shape, dtype=np.complex128)
    d3 = np.zeros(u.shape, dtype=np.complex128)

    coeff_u = np.ones(u.shape, dtype=np.complex128)
    for m in range(ORIGIN_SERIES_ORDER + 1):
        coeff = coeff_u
        for n in range(ORIGIN_SERIES_ORDER + 1 - m):
            d1 += coeff * _reference_moment(m + 1, n)
            d2 += coeff * _reference_moment(m, n + 1)
            d3 += coeff * _reference_moment(m, n)
            coeff = coeff * jv / (n + 1)
        coeff_u = coeff_u * ju / (m + 1)
    return d1, d2, d3


def _edge_transforms(b: Frequencies, count: int) -> Spectrum:
    """
    K_m(b) = ∫_0^1 t^m exp(-j·b·t) dt for m = 0 .. count - 1, stacked on the first axis.

    Integration by parts gives K_m = j·(exp(-jb) - m·K_(m-1)) / b. Run upwards it amplifies
    rounding errors by m/|b| per step, so small |b| runs it downwards from a far start.
    """
    e = np.exp(-1j * b)
    out = np.empty((count, *b.shape), dtype=np.complex128)

    up = np.abs(b) > UPWARD_RECURRENCE_START
    if np.any(up):
        b_up, e_up = b[up], e[up]
        k = 1j * (e_up - 1.0) / b_up
        out[0, up] = k
        for m in range(1, count):
            k = 1j * (e_up - m * k) / b_up
            out[m, up] = k

    down = ~up
    if np.any(down):
        b_down, e_down = b[down], e[down]
        start = count + 40
        # the integral is concentrated at t = 1 for large m
        k = e_down / (start + 1 - 1j * b_down)
        for m in range(start, 0, -1):
            k = (e_down + 1j * b_down * k) / m
            if m <= count:
                out[m - 1, down] = k
    return out


def _moments_near_u_zero(u: Frequencies, v: Frequencies) -> Moments:
    """
    Power series in u with coefficients exact in v.

    Expanding exp(-j2πux) leaves ∬_T x^p y^q exp(-j2πvy) = (K_q - K_(p+q+1)) / (p + 1).
    """
    k = _edge_transforms(TWO_PI * v, LINE_SERIES_ORDER + 3)
    ju = -1j * TWO_PI * u
    d1 = np.zeros(u.shape, dtype=np.complex128)
    d2 = np.zeros(u.shape, dtype=np.complex128)
    d3 = np.zeros(u.shape, dtype=np.complex128)

    coeff = np.ones(u.shape, dtype=np.complex128)
    for m in range(LINE_SERIES_ORDER + 1):
        d1 += coeff * (k[0] - k[m + 2]) / (m + 2)
        d2 += coeff * (k[1] - k[m + 2]) / (m + 1)
        d3 += coeff * (k[0] - k[m + 1]) / (m + 1)
        coeff = coeff * ju / (m + 1)
    return d1, d2, d3


def _moments_near_v_zero(u: Frequencies, v: Frequencies) -> Moments:
    # Relabel the vertices (1, 0), (1, 1), (0, 0) as (0, 0), (1, 0), (1, 1): the phase picks up
    # exp(-j2πu), the frequencies become (v, -(u + v)) and x = 1 - y', y = x' - y'.
    d1, d2, d3 = _moments_near_u_zero(v, -(u + v))
    e = _e(u)
    return e * (d3 - d2), e * (d1 - d2), e * d3


def _moments_near_sum_zero(u: Frequencies, v: Frequencies) -> Moments:
    # Swap the vertices (1, 0) and (1, 1): the frequencies become (u + v, -v) and x = x', y = x' - y'.
    d1, d2, d3 = _moments_near_u_zero(u + v, -v)
    return d1, d1 - d2, d3


SERIES_FORMULAS: tuple[MomentFormula, ...] = (
    _moments_near_origin,
    _moments_near_u_zero,
    _moments_near_v_zero,
    _moments_near_sum_zero,
)


def _series_regions(u: Frequencies, v: Frequencies, cases: npt.NDArray[np.int8]) -> list[npt.NDArray[np.bool_]]:
    """Masks of the points evaluated by each entry of SERIES_FORMULAS. They are disjoint."""
    au = TWO_PI * np.abs(u)
    av = TWO_PI * np.abs(v)
    near_origin = (np.maximum(au, av) <= ORIGIN_SERIES_RADIUS) & (cases != DegeneracyCase.ORIGIN)
    general = (cases == DegeneracyCase.GENERAL) & ~near_origin
    near_u = general & (au <= LINE_SERIES_RADIUS)
    near_v = general & ~near_u & (av <= LINE_SERIES_RADIUS)
    near_sum = general & ~near_u & ~near_v & (TWO_PI * np.abs(u + v) <= LINE_SERIES_RADIUS)
    return [near_origin, near_u, near_v, near_sum]


def flat_transform(u: npt.ArrayLike, v: npt.ArrayLike) -> Spectrum:
    """
    Evaluate D3, the transform of the reference triangle's indicator function.

    Args:
        u, v: Reference-triangle frequencies of equal shape.

    Returns:
        Complex array of the same shape.
    """
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    cases = classify(u, v)
    regions = _series_regions(u, v, cases)
    closed = ~np.logical_or.reduce(regions)
    out = np.empty(u.shape, dtype=np.complex128)
    with np.errstate(invalid="ignore"):
        for case, formula in FLAT_FORMULAS.items():
            mask = (cases == case) & closed
            if np.any(mask):
                out[mask] = formula(u[mask], v[mask])
        # same series as moment_transforms, so both agree bit for bit on D3
        for region, series in zip(regions, SERIES_FORMULAS):
            if np.any(region):
                out[region] = series(u[region], v[region])[2]
    return out


def moment_transforms(u: npt.ArrayLike, v: npt.ArrayLike) -> Moments:
    """
    Evaluate D1, D2 and D3 of the reference triangle.

    Args:
        u, v: Reference-triangle frequencies of equal shape.

    Returns:
        Tuple (D1, D2, D3) of complex arrays.
    """
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    cases = classify(u, v)
    regions = _series_regions(u, v, cases)
    closed = ~np.logical_or.reduce(regions)
    d1 = np.empty(u.shape, dtype=np.complex128)
    d2 = np.empty(u.shape, dtype=np.complex128)
    d3 = np.empty(u.shape, dtype=np.complex128)
    with np.errstate(invalid="ignore"):
        for case, formula in MOMENT_FORMULAS.items():
            mask = (cases == case) & closed
            if np.any(mask):
                d1[mask], d2[mask], d3[mask] = formula(u[mask], v[mask])
        for region, series in zip(regions, SERIES_FORMULAS):
            if np.any(region):
                d1[region], d2[region], d3[region] = series(u[region], v[region])
    return d1, d2, d3


def flat_shading_factor(unit_normal: npt.NDArray[np.float64], illumination: npt.NDArray[np.float64]) -> float:
    """
    Lambert-like reflectance of a flat facet.

    Returns:
        1 for zero illumination, otherwise max(0, 2 * (n · L̂) + 0.3).
    """
    if not np.any(illumination):
        return 1.0
    direction = illumination / np.linalg.norm(illumination)
    factor = 2.0 * float(np.dot(unit_normal, direction)) + SHADING_OFFSET_FLAT
    return max(factor, 0.0)


def continuous_shading_weights(
    vertex_normals: npt.NDArray[np.float64],
    illumination: npt.NDArray[np.float64],
) -> tuple[float, float, float]:
    """
    Illumination weights at the reference-triangle vertices (0, 0), (1, 0) and (1, 1).

    Facet vertex V1 maps to (0, 0), V3 to (1, 0) and V2 to (1, 1).

    Args:
        vertex_normals: (3, 3) averaged normals of V1, V2, V3.
        illumination: Light direction (not normalized).

    Returns:
        Tuple (av0, av1, av2).
    """
    dots = vertex_normals @ illumination + SHADING_OFFSET_CONTINUOUS
    return float(dots[0]), float(dots[2]), float(dots[1])


def facet_spectrum(
    terms: LocalFrequencyTerms,
    geometry: FacetGeometry,
    shading: ShadingMode,
    illumination: npt.NDArray[np.float64],
) -> npt.NDArray[np.complex128]:
    """
    Shaded angular spectrum of one facet in reference-triangle coordinates.

    Args:
        terms: Local frequency terms of the facet.
        geometry: Geometry of the facet.
        shading: Shading model.
        illumination: Light direction.

    Returns:
        Complex array over the frequency grid.
    """
    if shading is ShadingMode.FLAT:
        factor = flat_shading_factor(geometry.unit_normal, illumination)
        return factor * flat_transform(terms.u, terms.v)

    if geometry.vertex_normals is None:
        raise ValueError("Continuous shading requires vertex normals on the facet geometry.")
    av0, av1, av2 = continuous_shading_weights(geometry.vertex_normals, illumination)
    d1, d2, d3 = moment_transforms(terms.u, terms.v)
    return (av1 - av0) * d1 + (av2 - av1) * d2 + av0 * d3
