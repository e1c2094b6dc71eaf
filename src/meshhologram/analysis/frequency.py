from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from meshhologram.config import ROUNDING_NOISE

if TYPE_CHECKING:
    import numpy.typing as npt
    from meshhologram.analysis.geometry import FacetGeometry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrequencyGrid:
    """
    Global spatial-frequency lattice for one resolution, pixel pitch and wavelength.

    Arrays have shape (pnY, pnX). Columns run from negative to positive fx; rows run from
    the largest fy at the top down to the most negative fy. Where 1/λ² - fx² - fy² < 0
    the plane wave is evanescent and fz holds NaN.

    Attributes:
        fx, fy, fz: Frequency components.
        wavelength: Wavelength the grid was built for.
    """
    fx: npt.NDArray[np.float64]
    fy: npt.NDArray[np.float64]
    fz: npt.NDArray[np.float64]
    wavelength: float

    @classmethod
    def build(
        cls,
        pixel_number: tuple[int, int],
        pixel_pitch: tuple[float, float],
        wavelength: float,
    ) -> FrequencyGrid:
        """
        Build the frequency grid.

        Args:
            pixel_number: Resolution (pnX, pnY).
            pixel_pitch: Pixel pitch (ppX, ppY).
            wavelength: Wavelength in the units of the pitch.

        Returns:
            A read-only frequency grid.
        """
        pn_x, pn_y = pixel_number
        pp_x, pp_y = pixel_pitch
        dfx = 1.0 / (pp_x * pn_x)
        dfy = 1.0 / (pp_y * pn_y)

        columns = np.arange(-(pn_x // 2), pn_x - pn_x // 2, dtype=np.float64) * dfx
        rows = (pn_y // 2 - np.arange(pn_y, dtype=np.float64)) * dfy
        fx, fy = np.meshgrid(columns, rows)

        radicand = 1.0 / wavelength ** 2 - fx * fx - fy * fy
        propagating = radicand >= 0.0
        fz = np.full_like(radicand, np.nan)
        fz[propagating] = np.sqrt(radicand[propagating])

        n_evanescent = radicand.size - int(np.count_nonzero(propagating))
        if n_evanescent:
            logger.warning(
                f"{n_evanescent} of {radicand.size} grid points are evanescent at λ={wavelength}; "
                f"their contributions are zero."
            )

        for array in (fx, fy, fz):
            array.setflags(write=False)
        return cls(fx=fx, fy=fy, fz=fz, wavelength=wavelength)

    @property
    def shape(self) -> tuple[int, int]:
        return self.fx.shape

    @property
    def propagating(self) -> npt.NDArray[np.bool_]:
        """Mask of grid points that carry a propagating plane wave (fz real and non-zero)."""
        return np.isfinite(self.fz) & (self.fz != 0.0)


@dataclass(frozen=True)
class LocalFrequencyTerms:
    """
    Frequency grid expressed in one facet's frame.

    Attributes:
        flx, fly, flz: Rotated frequencies.
        u, v: Carrier-shifted frequencies mapped onto the reference triangle.
    """
    flx: npt.NDArray[np.float64]
    fly: npt.NDArray[np.float64]
    flz: npt.NDArray[np.float64]
    u: npt.NDArray[np.float64]
    v: npt.NDArray[np.float64]


def local_frequency_terms(
    grid: FrequencyGrid,
    geometry: FacetGeometry,
    carrier_wave: npt.NDArray[np.float64],
) -> LocalFrequencyTerms:
    """
    Rotate the global grid into a facet frame and map it onto reference-triangle frequencies.

    The global grid is only read.

    Args:
        grid: Global frequency grid.
        geometry: Geometry of the facet.
        carrier_wave: Carrier-wave direction.

    Returns:
        Local frequency terms of the facet.
    """
    rot = geometry.rotation
    w = 1.0 / grid.wavelength

    flx = rot[0, 0] * grid.fx + rot[0, 1] * grid.fy + rot[0, 2] * grid.fz
    fly = rot[1, 0] * grid.fx + rot[1, 1] * grid.fy + rot[1, 2] * grid.fz
    # A rotation of a propagating vector stays propagating; clip rounding noise at zero.
    # NaN (evanescent) points stay NaN.
    flz = np.sqrt(np.maximum(w * w - flx * flx - fly * fly, 0.0))

    carrier_local = rot @ carrier_wave
    flx_shifted = flx - w * carrier_local[0]
    fly_shifted = fly - w * carrier_local[1]

    inv_t = geometry.affine_inv_t
    u = inv_t[0, 0] * flx_shifted + inv_t[0, 1] * fly_shifted
    v = inv_t[1, 0] * flx_shifted + inv_t[1, 1] * fly_shifted

    # Every operand above is bounded by w * (1 + |c|). Values within rounding noise of that
    # bound (e.g. along the carrier direction itself) are snapped onto the degenerate lines.
    bound = w * (1.0 + float(np.linalg.norm(carrier_wave)))
    noise_u = ROUNDING_NOISE * bound * (abs(inv_t[0, 0]) + abs(inv_t[0, 1]))
    noise_v = ROUNDING_NOISE * bound * (abs(inv_t[1, 0]) + abs(inv_t[1, 1]))
    u[np.abs(u) <= noise_u] = 0.0
    v[np.abs(v) <= noise_v] = 0.0
    opposite = (np.abs(u + v) <= noise_u + noise_v) & (u != 0.0) & (v != 0.0)
    u[opposite] = -v[opposite]

    return LocalFrequencyTerms(flx=flx, fly=fly, flz=flz, u=u, v=v)
