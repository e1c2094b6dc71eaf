# tests/test_solver.py

import dataclasses
import threading
import time

import numpy as np
import pytest

from meshhologram.__main__ import main, pyramid_mesh
from meshhologram.analysis.geometry import FacetStatus
from meshhologram.config import SceneConfig, ShadingMode
from meshhologram.errors import GenerationAbortedError, InvalidMeshError
from meshhologram.pre.mesh import TriMesh
from meshhologram.solvers.solver import HologramSolver, generate_hologram

FRONT_TRIANGLE = [[1.0, -1.0, 0.0], [-1.0, -1.0, 0.0], [0.0, 1.0, 0.0]]
# Back-facing, and inside FRONT_TRIANGLE's bounding box so normalization is unchanged
BACK_TRIANGLE = [[-0.5, -0.5, 0.0], [0.5, -0.5, 0.0], [0.0, 0.5, 0.0]]
POINT_FACET = [[0.0, 0.0, 0.0]] * 3


def assert_close_to(actual, desired, rel=1e-10):
    np.testing.assert_allclose(actual, desired, rtol=0, atol=rel * np.abs(desired).max())


def assert_differs(actual, other, rel=1e-6):
    # spectra are tiny in absolute terms, so compare against their own magnitude
    assert np.abs(actual - other).max() > rel * np.abs(other).max()


def test_result_shapes_and_stats(front_triangle, small_config):
    result = generate_hologram(front_triangle, small_config)

    assert result.field.shape == (1, 32, 32)
    assert result.spectrum.shape == (1, 32, 32)
    assert result.field.dtype == np.complex128
    assert result.wavelengths == (500e-9,)
    assert result.elapsed >= 0.0
    assert result.stats.total == 1
    assert result.stats.accepted == 1
    assert result.stats.skipped == 0
    assert np.all(np.isfinite(result.field))


def test_back_facing_facet_contributes_nothing(small_config):
    alone = generate_hologram(TriMesh([FRONT_TRIANGLE]), small_config)
    both = generate_hologram(TriMesh([FRONT_TRIANGLE, BACK_TRIANGLE]), small_config)

    np.testing.assert_array_equal(both.spectrum, alone.spectrum)
    assert both.stats.counts[FacetStatus.BACK_FACING] == 1
    assert both.stats.accepted == 1


def test_zero_area_facet_is_skipped_without_nan(small_config):
    alone = generate_hologram(TriMesh([FRONT_TRIANGLE]), small_config)
    result = generate_hologram(TriMesh([FRONT_TRIANGLE, POINT_FACET]), small_config)

    assert np.all(np.isfinite(result.spectrum))
    np.testing.assert_array_equal(result.spectrum, alone.spectrum)
    assert result.stats.counts[FacetStatus.ZERO_NORMAL] == 1
    assert result.stats.skipped == 1


def test_evanescent_points_are_exact_zeros(front_triangle):
    config = SceneConfig(
        pixel_number=(10, 10),
        pixel_pitch=(0.2e-6, 0.2e-6),
        wavelengths=(0.55e-6,),
        object_scale=(1e-6, 1e-6, 1e-6),
    )
    result = generate_hologram(front_triangle, config)

    fx = (np.arange(10) - 5) / 2e-6
    fy = (5 - np.arange(10)) / 2e-6
    evanescent = np.add.outer(fy ** 2, fx ** 2) > 1.0 / 0.55e-6 ** 2

    assert evanescent.any()
    assert np.all(result.spectrum[0][evanescent] == 0.0)
    assert np.any(result.spectrum[0][~evanescent] != 0.0)
    assert np.all(np.isfinite(result.field))


def test_facet_order_is_immaterial(pyramid, small_config):
    forward = generate_hologram(pyramid, small_config)
    backward = generate_hologram(TriMesh(pyramid.vertices[::-1]), small_config)

    assert_close_to(backward.spectrum, forward.spectrum)
    assert_close_to(backward.field, forward.field)


def test_vertex_labelling_is_immaterial(pyramid, small_config):
    # cyclic relabelling keeps the orientation of every facet
    rotated = pyramid.vertices[:, [1, 2, 0], :]

    expected = generate_hologram(pyramid, small_config)
    result = generate_hologram(TriMesh(rotated), small_config)

    assert_close_to(result.spectrum, expected.spectrum, rel=1e-8)


def test_parallel_workers_match_sequential(pyramid, small_config):
    sequential = generate_hologram(pyramid, small_config)
    parallel_config = dataclasses.replace(small_config, workers=3)
    parallel = generate_hologram(pyramid, parallel_config)
    repeated = generate_hologram(pyramid, parallel_config)

    assert_close_to(parallel.spectrum, sequential.spectrum)
    # a fixed worker count reduces the partial spectra in a fixed order
    np.testing.assert_array_equal(repeated.spectrum, parallel.spectrum)
    assert parallel.stats.total == 4


def test_scaling_object_and_pitch_together_scales_spectrum_by_area(front_triangle, small_config):
    doubled = dataclasses.replace(
        small_config,
        pixel_pitch=tuple(2 * p for p in small_config.pixel_pitch),
        object_scale=tuple(2 * s for s in small_config.object_scale),
    )
    base = generate_hologram(front_triangle, small_config)
    scaled = generate_hologram(front_triangle, doubled)

    assert_close_to(scaled.spectrum, 4.0 * base.spectrum, rel=1e-9)


def test_continuous_shading_without_light_is_uniform(pyramid, small_config):
    flat = generate_hologram(pyramid, small_config, ShadingMode.FLAT)
    continuous = generate_hologram(pyramid, small_config, ShadingMode.CONTINUOUS)

    # every vertex weight is the 0.1 offset, flat shading uses 1
    assert_close_to(continuous.spectrum, 0.1 * flat.spectrum, rel=1e-12)


def test_illumination_scales_flat_facet(front_triangle, small_config):
    dark = generate_hologram(front_triangle, small_config)
    lit = generate_hologram(front_triangle, dataclasses.replace(small_config, illumination=(0.0, 0.0, 2.0)))

    assert_close_to(lit.spectrum, 2.3 * dark.spectrum, rel=1e-12)


def test_random_phase_is_reproducible(pyramid, small_config):
    config = dataclasses.replace(small_config, random_phase=True, seed=5)
    first = generate_hologram(pyramid, config)
    second = generate_hologram(pyramid, config)
    other = generate_hologram(pyramid, dataclasses.replace(config, seed=6))
    plain = generate_hologram(pyramid, small_config)

    np.testing.assert_array_equal(first.field, second.field)
    assert_differs(first.field, other.field)
    assert_differs(first.field, plain.field)


def test_one_channel_per_wavelength(pyramid, small_config):
    single = generate_hologram(pyramid, small_config)
    dual = generate_hologram(pyramid, dataclasses.replace(small_config, wavelengths=(500e-9, 600e-9)))

    assert dual.field.shape == (2, 32, 32)
    assert dual.wavelengths == (500e-9, 600e-9)
    np.testing.assert_array_equal(dual.spectrum[0], single.spectrum[0])
    assert_differs(dual.spectrum[1], dual.spectrum[0])


def test_progress_reaches_100(pyramid, small_config):
    reported = []
    generate_hologram(pyramid, small_config, progress=reported.append)

    assert reported == [25, 50, 75, 100]


def test_parallel_progress_is_monotonic(pyramid, small_config):
    reported = []

    def slow_callback(percent):
        # widen the window in which another worker could report a later count
        time.sleep(0.01)
        reported.append(percent)

    config = dataclasses.replace(small_config, workers=3)
    generate_hologram(pyramid, config, progress=slow_callback)

    assert reported == [25, 50, 75, 100]


def test_cancel_before_start(pyramid, small_config):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(GenerationAbortedError) as excinfo:
        generate_hologram(pyramid, small_config, cancel=cancel)

    assert excinfo.value.processed == 0
    assert excinfo.value.total == 4


def test_cancel_between_facets(pyramid, small_config):
    cancel = threading.Event()

    with pytest.raises(GenerationAbortedError) as excinfo:
        HologramSolver(pyramid, small_config).solve(cancel=cancel, progress=lambda _: cancel.set())

    assert excinfo.value.processed == 1


def test_degenerate_mesh_raises():
    with pytest.raises(InvalidMeshError):
        generate_hologram(TriMesh([POINT_FACET]), SceneConfig((8, 8), (1e-5, 1e-5), (5e-7,)))


def test_cli_pyramid_faces_the_hologram(restore_logging):
    normals = pyramid_mesh().facet_normals()
    assert np.all(normals[:, 2] > 0.0)

    main(["--pixels", "16", "16", "--pitch", "1e-5", "1e-5", "--scale", "8e-5", "8e-5", "8e-5"])


class TestSilhouette:
    """A planar triangle in the hologram plane reproduces itself in the field."""

    N = 128
    PITCH = 1e-5
    SIZE = 0.64e-3

    @pytest.fixture(scope="class")
    def intensity(self):
        config = SceneConfig(
            pixel_number=(self.N, self.N),
            pixel_pitch=(self.PITCH, self.PITCH),
            wavelengths=(0.5e-6,),
            object_scale=(self.SIZE, self.SIZE, self.SIZE),
        )
        field = generate_hologram(TriMesh([FRONT_TRIANGLE]), config).field[0]
        return np.abs(field)

    def pixel(self, x, y):
        # row r holds y = (N/2 - r) * pitch, column c holds x = (c - N/2) * pitch
        return round(self.N / 2 - y / self.PITCH), round(self.N / 2 + x / self.PITCH)

    def triangle(self, factor=1.0):
        """Scene-space triangle scaled by `factor` about its centroid."""
        tri = np.array(FRONT_TRIANGLE)[:, :2] * 0.5 * self.SIZE
        centroid = tri.mean(axis=0)
        return centroid + factor * (tri - centroid)

    def mask(self, tri):
        coords = (np.arange(self.N) - self.N / 2) * self.PITCH
        x = coords[None, :]
        y = -coords[:, None]
        signs = []
        for (x0, y0), (x1, y1) in zip(tri, np.roll(tri, -1, axis=0)):
            signs.append((x1 - x0) * (y - y0) - (y1 - y0) * (x - x0))
        signs = np.array(signs)
        return np.all(signs >= 0.0, axis=0) | np.all(signs <= 0.0, axis=0)

    def test_energy_is_inside_the_silhouette(self, intensity):
        energy = intensity ** 2
        inside = self.mask(self.triangle(1.2))
        assert energy[inside].sum() > 0.9 * energy.sum()

    def test_orientation_is_not_flipped(self, intensity):
        s = self.SIZE
        inside = intensity[self.pixel(0.25 * s, -0.3 * s)]
        mirrored = intensity[self.pixel(0.25 * s, 0.3 * s)]
        assert inside > 10.0 * mirrored

    def test_interior_amplitude_is_area_density(self, intensity):
        interior = intensity[self.mask(self.triangle(0.8))]
        # unnormalized inverse transform of an indicator: 1 / (dfx * dfy) = (N * pitch) ** 2
        expected = (self.N * self.PITCH) ** 2
        assert np.median(interior) == pytest.approx(expected, rel=0.15)
