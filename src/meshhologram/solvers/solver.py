"""
Hologram Solver
===============
Accumulates the analytic facet spectra of a mesh into one angular spectrum per
wavelength and propagates it into the spatial hologram field.

Facets are independent. They are split into contiguous chunks; each worker owns
a private partial spectrum and the partials are summed in chunk order, so a
fixed number of workers always reproduces the same result.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

import numpy as np
import scipy as sp

from meshhologram.analysis.frequency import FrequencyGrid, local_frequency_terms
from meshhologram.analysis.geometry import FacetGeometry, FacetStatus, solve_facet_geometry
from meshhologram.analysis.spectrum import facet_spectrum
from meshhologram.config import NEGLIGIBLE_MAGNITUDE, SceneConfig, ShadingMode
from meshhologram.errors import GenerationAbortedError, InvalidMeshError
from meshhologram.pre.mesh import TriMesh

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class GenerationStats:
    """Per-facet outcomes of one generation pass."""
    total: int = 0
    counts: Counter = field(default_factory=Counter)

    @property
    def accepted(self) -> int:
        return self.counts[FacetStatus.ACCEPTED]

    @property
    def skipped(self) -> int:
        """Number of facets that contributed nothing."""
        return sum(n for status, n in self.counts.items() if status is not FacetStatus.ACCEPTED)

    def merge(self, other: GenerationStats) -> None:
        self.total += other.total
        self.counts.update(other.counts)


@dataclass(frozen=True)
class HologramResult:
    """
    Output of one generation pass.

    Attributes:
        field: (n_wavelengths, pnY, pnX) complex hologram field.
        spectrum: (n_wavelengths, pnY, pnX) accumulated angular spectrum before propagation.
        wavelengths: Wavelength of every channel.
        elapsed: Wall-clock duration of the pass in seconds.
        stats: Facet outcome counters.
    """
    field: npt.NDArray[np.complex128]
    spectrum: npt.NDArray[np.complex128]
    wavelengths: tuple[float, ...]
    elapsed: float
    stats: GenerationStats


def facet_contribution(
    grid: FrequencyGrid,
    geometry: FacetGeometry,
    shading: ShadingMode,
    illumination: npt.NDArray[np.float64],
    carrier_wave: npt.NDArray[np.float64],
) -> npt.NDArray[np.complex128]:
    """
    Angular spectrum of one facet expressed in the global frequency frame.

    Points without a propagating global wave (fz NaN or zero) and contributions whose
    magnitude is negligible are exact zeros.

    Args:
        grid: Global frequency grid.
        geometry: Geometry of an accepted facet.
        shading: Shading model.
        illumination: Light direction.
        carrier_wave: Carrier-wave direction.

    Returns:
        Complex array of the grid's shape.
    """
    terms = local_frequency_terms(grid, geometry, carrier_wave)
    reference = facet_spectrum(terms, geometry, shading, illumination)

    shift = geometry.shift
    carrier_phase = -2.0 * np.pi / grid.wavelength * float(carrier_wave @ (geometry.rotation.T @ shift))
    propagating = grid.propagating

    with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
        shift_phase = 2.0 * np.pi * (terms.flx * shift[0] + terms.fly * shift[1] + terms.flz * shift[2])
        contribution = (
            reference / geometry.determinant
            * np.exp(1j * carrier_phase)
            * (terms.flz / grid.fz)
            * np.exp(1j * shift_phase)
        )
        contribution[~propagating] = 0.0
        contribution[~(np.abs(contribution) > NEGLIGIBLE_MAGNITUDE)] = 0.0

    return contribution


def propagate(spectrum: npt.NDArray[np.complex128]) -> npt.NDArray[np.complex128]:
    """
    Inverse-transform a centred angular spectrum into the centred spatial field.

    The inverse transform is unnormalized.
    """
    shifted = sp.fft.ifftshift(spectrum, axes=(-2, -1))
    field_ = sp.fft.ifft2(shifted, axes=(-2, -1), norm="forward")
    return sp.fft.fftshift(field_, axes=(-2, -1))


def diffuse_spectrum(
    spectrum: npt.NDArray[np.complex128],
    rng: np.random.Generator,
) -> npt.NDArray[np.complex128]:
    """
    Convolve a centred angular spectrum with the spectrum of a uniform random phase.

    Args:
        spectrum: (pnY, pnX) centred angular spectrum.
        rng: Source of the random phase.

    Returns:
        Diffused spectrum of the same shape.
    """
    def centred_fft(a: npt.NDArray[np.complex128]) -> npt.NDArray[np.complex128]:
        return sp.fft.fftshift(sp.fft.fft2(sp.fft.ifftshift(a)))

    phase = np.exp(1j * 2.0 * np.pi * rng.random(spectrum.shape))
    convolved = centred_fft(spectrum) * centred_fft(phase)
    return sp.fft.fftshift(sp.fft.ifft2(sp.fft.ifftshift(convolved), norm="forward"))


class GenerationContext:
    """
    Owns every buffer derived during one generation pass.

    Use as a context manager; the buffers are released on every exit path.
    """
    def __init__(self, mesh: TriMesh, config: SceneConfig, shading: ShadingMode) -> None:
        self.config = config
        self.shading = shading
        self.scene_mesh: TriMesh | None = mesh.to_scene(config)
        self.normals: npt.NDArray[np.float64] | None = self.scene_mesh.facet_normals()
        self.vertex_normals: npt.NDArray[np.float64] | None = (
            self.scene_mesh.vertex_normals() if shading is ShadingMode.CONTINUOUS else None
        )
        self.grids: list[FrequencyGrid] = [
            FrequencyGrid.build(config.pixel_number, config.pixel_pitch, wavelength)
            for wavelength in config.wavelengths
        ]

    def __enter__(self) -> GenerationContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.scene_mesh = None
        self.normals = None
        self.vertex_normals = None
        self.grids = []

    @property
    def n_facets(self) -> int:
        return 0 if self.scene_mesh is None else self.scene_mesh.n_facets

    def geometry(self, index: int) -> tuple[FacetStatus, FacetGeometry | None]:
        """Solve the geometry of facet `index` of the scene mesh."""
        vertex_normals = None if self.vertex_normals is None else self.vertex_normals[index]
        return solve_facet_geometry(self.scene_mesh.vertices[index], self.normals[index], vertex_normals)


class HologramSolver:
    """
    Triangular-mesh hologram generator.
    """
    def __init__(
        self,
        mesh: TriMesh,
        config: SceneConfig,
        shading: ShadingMode = ShadingMode.FLAT,
    ) -> None:
        """
        Initialize the solver.

        Args:
            mesh: Raw mesh; it is normalized and placed in scene space for every pass.
            config: Scene configuration.
            shading: Shading model.
        """
        self.mesh = mesh
        self.config = config
        self.shading = ShadingMode(shading)

    def _accumulate_chunk(
        self,
        context: GenerationContext,
        indices: range,
        cancel: threading.Event,
        on_facet_done: Callable[[], None],
    ) -> tuple[npt.NDArray[np.complex128], GenerationStats]:
        """Sum the contributions of the facets in `indices` into a private spectrum."""
        config = self.config
        illumination = config.illumination_vector
        carrier_wave = config.carrier_vector

        partial = np.zeros((len(context.grids), *config.shape), dtype=np.complex128)
        stats = GenerationStats()

        for index in indices:
            if cancel.is_set():
                break
            status, geometry = context.geometry(index)
            stats.total += 1
            stats.counts[status] += 1

            if geometry is None:
                logger.debug(f"Facet {index} skipped: {status}")
            else:
                for channel, grid in enumerate(context.grids):
                    partial[channel] += facet_contribution(
                        grid, geometry, self.shading, illumination, carrier_wave
                    )
            on_facet_done()

        return partial, stats

    def solve(
        self,
        cancel: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> HologramResult:
        """
        Generate the hologram field.

        Args:
            cancel: Event checked between facets. When set, the pass stops and raises.
            progress: Callback receiving the percentage of processed facets.

        Raises:
            InvalidConfigError: If the configuration violates a global precondition.
            InvalidMeshError: If the mesh cannot be normalized.
            GenerationAbortedError: If `cancel` was set before every facet was processed.

        Returns:
            The hologram result.
        """
        self.config.validate()
        if self.mesh.n_facets == 0:
            raise InvalidMeshError("Mesh has no facets.")

        cancel = cancel or threading.Event()
        start = time.perf_counter()
        logger.info(
            f"Generating hologram: {self.mesh.n_facets} facets, {self.shading} shading, "
            f"{self.config.pixel_number[0]}x{self.config.pixel_number[1]} px, "
            f"{len(self.config.wavelengths)} wavelength(s), {self.config.workers} worker(s)"
        )

        with GenerationContext(self.mesh, self.config, self.shading) as context:
            n_facets = context.n_facets
            done = 0
            lock = threading.Lock()

            def on_facet_done() -> None:
                nonlocal done
                # percentages must reach the callback in increasing order
                with lock:
                    done += 1
                    if progress is not None:
                        progress(int(done * 100 / n_facets))

            n_workers = min(self.config.workers, n_facets)
            bounds = np.linspace(0, n_facets, n_workers + 1).astype(int)
            chunks = [range(bounds[i], bounds[i + 1]) for i in range(n_workers)]

            if n_workers == 1:
                results = [self._accumulate_chunk(context, chunks[0], cancel, on_facet_done)]
            else:
                with ThreadPoolExecutor(max_workers=n_workers) as pool:
                    futures = [
                        pool.submit(self._accumulate_chunk, context, chunk, cancel, on_facet_done)
                        for chunk in chunks
                    ]
                    results = [future.result() for future in futures]

            spectrum = np.zeros((len(context.grids), *self.config.shape), dtype=np.complex128)
            stats = GenerationStats()
            for partial, chunk_stats in results:
                spectrum += partial
                stats.merge(chunk_stats)

            if stats.total < n_facets:
                logger.warning(f"Hologram generation aborted after {stats.total} of {n_facets} facets.")
                raise GenerationAbortedError(processed=stats.total, total=n_facets)

        logger.info(f"Angular spectrum generated: {stats.accepted} facets accepted, {stats.skipped} skipped.")
        for status, count in sorted(stats.counts.items()):
            if status is not FacetStatus.ACCEPTED:
                logger.info(f"  {status}: {count}")

        if self.config.random_phase:
            rng = np.random.default_rng(self.config.seed)
            for channel in range(spectrum.shape[0]):
                spectrum[channel] = diffuse_spectrum(spectrum[channel], rng)

        field_ = propagate(spectrum)

        elapsed = time.perf_counter() - start
        logger.info(f"Total elapsed time: {elapsed:.3f} s")
        return HologramResult(
            field=field_,
            spectrum=spectrum,
            wavelengths=self.config.wavelengths,
            elapsed=elapsed,
            stats=stats,
        )


def generate_hologram(
    mesh: TriMesh,
    config: SceneConfig,
    shading: ShadingMode = ShadingMode.FLAT,
    *,
    cancel: threading.Event | None = None,
    progress: ProgressCallback | None = None,
) -> HologramResult:
    """
    Generate the hologram of a triangular mesh.

    See :meth:`HologramSolver.solve`.
    """
    return HologramSolver(mesh, config, shading).solve(cancel=cancel, progress=progress)
