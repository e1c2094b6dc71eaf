"""
Scene Configuration & Constants
===============================
This module serves as the central registry for the scene parameters and the
fixed numerical constants of the hologram generator.

Why is this file needed?
------------------------
1. Immutability: A generation pass reads one frozen `SceneConfig`; nothing in
   the pipeline may change it while facets are being processed.
2. Fail fast: `SceneConfig.validate()` rejects impossible resolutions,
   pitches and wavelengths before any grid buffer is allocated.
3. Constants: The shading offsets and the reference triangle are used by
   several modules and must agree everywhere.

Exports:
    ShadingMode: Flat or continuous (vertex-normal interpolated) shading.
    SceneConfig: Resolution, pitch, wavelengths and object placement.
    REFERENCE_TRIANGLE: (3, 2) vertices of the canonical triangle.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from math import isfinite
from operator import index
from typing import TYPE_CHECKING, Sequence

import numpy as np

from meshhologram.errors import InvalidConfigError

if TYPE_CHECKING:
    import numpy.typing as npt


# Canonical triangle the analytic transforms are derived for: {0 <= y <= x <= 1}
REFERENCE_TRIANGLE = np.array([
    [0.0, 0.0],
    [1.0, 1.0],
    [1.0, 0.0],
], dtype=np.float64)

# Offsets added to the illumination terms of the two shading models
SHADING_OFFSET_FLAT = 0.3
SHADING_OFFSET_CONTINUOUS = 0.1

# Contributions whose magnitude does not exceed this value are stored as exact zeros
NEGLIGIBLE_MAGNITUDE = float(np.finfo(np.float64).tiny)

# Relative size of the rounding residue left when reference-triangle frequencies cancel
ROUNDING_NOISE = 64.0 * float(np.finfo(np.float64).eps)

# Series expansions replace the closed forms where those cancel: inside 2π·max(|u|, |v|) <= ORIGIN_SERIES_RADIUS,
# and for general points within 2π·|w| <= LINE_SERIES_RADIUS of one of the lines u = 0, v = 0, u + v = 0
ORIGIN_SERIES_RADIUS = 1.0
LINE_SERIES_RADIUS = 1e-2


class ShadingMode(StrEnum):
    FLAT = "flat"
    CONTINUOUS = "continuous"


def _as_resolution(value: Sequence[int]) -> tuple[int, ...]:
    try:
        resolution = tuple(index(n) for n in value)
    except TypeError as exc:
        raise InvalidConfigError(f"'pixel_number' must be a pair of integers, got {value!r}.") from exc
    if len(resolution) != 2:
        raise InvalidConfigError(f"'pixel_number' must have 2 components, got {len(resolution)}.")
    return resolution


def _as_vector(name: str, value: Sequence[float], size: int) -> tuple[float, ...]:
    try:
        vector = tuple(float(v) for v in value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigError(f"'{name}' must be a sequence of {size} numbers, got {value!r}.") from exc
    if len(vector) != size:
        raise InvalidConfigError(f"'{name}' must have {size} components, got {len(vector)}.")
    if not all(isfinite(v) for v in vector):
        raise InvalidConfigError(f"'{name}' must be finite, got {vector}.")
    return vector


@dataclass(frozen=True)
class SceneConfig:
    """
    Parameters of one hologram generation pass.

    Attributes:
        pixel_number: Output resolution (pnX, pnY).
        pixel_pitch: Physical pixel size (ppX, ppY) in metres.
        wavelengths: One or more wavelengths in metres. One field is generated per wavelength.
        object_scale: Per-axis size of the normalized object in scene space.
        object_shift: Translation of the object in scene space.
        illumination: Light direction. The zero vector disables shading.
        carrier_wave: Direction of the off-axis reference wave.
        viewing_window: Apply the field-lens viewing-window transform to the normalized mesh.
        field_lens: Focal length of the field lens used by the viewing-window transform.
        random_phase: Diffuse each angular spectrum with a random phase before propagation.
        seed: Seed of the random phase generator.
        workers: Number of facet workers. 1 processes facets inline in mesh order.
    """
    pixel_number: tuple[int, int]
    pixel_pitch: tuple[float, float]
    wavelengths: tuple[float, ...]
    object_scale: tuple[float, float, float] = (1.0, 1.0, 1.0)
    object_shift: tuple[float, float, float] = (0.0, 0.0, 0.0)
    illumination: tuple[float, float, float] = (0.0, 0.0, 0.0)
    carrier_wave: tuple[float, float, float] = (0.0, 0.0, 1.0)
    viewing_window: bool = False
    field_lens: float = 1.0
    random_phase: bool = False
    seed: int | None = None
    workers: int = 1

    def __post_init__(self) -> None:
        # Accept lists/arrays from callers but store hashable tuples
        object.__setattr__(self, "pixel_number", _as_resolution(self.pixel_number))
        object.__setattr__(self, "pixel_pitch", _as_vector("pixel_pitch", self.pixel_pitch, 2))
        wavelengths = self.wavelengths
        if isinstance(wavelengths, (int, float)):
            wavelengths = (wavelengths,)
        object.__setattr__(self, "wavelengths", _as_vector("wavelengths", wavelengths, len(tuple(wavelengths))))
        object.__setattr__(self, "object_scale", _as_vector("object_scale", self.object_scale, 3))
        object.__setattr__(self, "object_shift", _as_vector("object_shift", self.object_shift, 3))
        object.__setattr__(self, "illumination", _as_vector("illumination", self.illumination, 3))
        object.__setattr__(self, "carrier_wave", _as_vector("carrier_wave", self.carrier_wave, 3))

    def validate(self) -> None:
        """
        Check the global preconditions of a generation pass.

        Raises:
            InvalidConfigError: If the resolution, pitch, wavelengths, field lens or worker count are invalid.
        """
        if len(self.pixel_number) != 2 or any(n <= 0 for n in self.pixel_number):
            raise InvalidConfigError(f"Pixel number must be two positive integers, got {self.pixel_number}.")
        if any(p <= 0.0 for p in self.pixel_pitch):
            raise InvalidConfigError(f"Pixel pitch must be positive, got {self.pixel_pitch}.")
        if not self.wavelengths:
            raise InvalidConfigError("At least one wavelength is required.")
        if any(wl <= 0.0 for wl in self.wavelengths):
            raise InvalidConfigError(f"Wavelengths must be positive, got {self.wavelengths}.")
        if self.viewing_window and (not isfinite(self.field_lens) or self.field_lens == 0.0):
            raise InvalidConfigError(f"Field lens focal length must be finite and non-zero, got {self.field_lens}.")
        if self.workers < 1:
            raise InvalidConfigError(f"Number of workers must be at least 1, got {self.workers}.")

    @property
    def shape(self) -> tuple[int, int]:
        """Array shape (rows, columns) = (pnY, pnX) of every grid and field."""
        return self.pixel_number[1], self.pixel_number[0]

    @property
    def illumination_vector(self) -> npt.NDArray[np.float64]:
        return np.array(self.illumination, dtype=np.float64)

    @property
    def carrier_vector(self) -> npt.NDArray[np.float64]:
        return np.array(self.carrier_wave, dtype=np.float64)

    @property
    def has_illumination(self) -> bool:
        """True unless the illumination vector is exactly zero."""
        return any(c != 0.0 for c in self.illumination)
