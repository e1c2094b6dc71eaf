# tests/test_geometry.py

import unittest

import numpy as np

from meshhologram.analysis.geometry import (
    FacetStatus,
    _inv2,
    _rotation_to_z,
    check_validity,
    solve_facet_geometry,
)


def solve(facet):
    facet = np.asarray(facet, dtype=np.float64)
    normal = np.cross(facet[0] - facet[1], facet[2] - facet[1])
    return solve_facet_geometry(facet, normal)


def local_coordinates(facet, geometry):
    return np.asarray(facet) @ geometry.rotation.T + geometry.shift


class TestValidity(unittest.TestCase):
    def test_back_facing(self):
        self.assertIs(check_validity(np.array([0.3, 0.1, -1e-12])), FacetStatus.BACK_FACING)

    def test_zero_normal(self):
        self.assertIs(check_validity(np.zeros(3)), FacetStatus.ZERO_NORMAL)

    def test_accepted_including_edge_on(self):
        self.assertIs(check_validity(np.array([0.0, 0.0, 2.0])), FacetStatus.ACCEPTED)
        self.assertIs(check_validity(np.array([-1.0, 0.0, 0.0])), FacetStatus.ACCEPTED)

    def test_solve_reports_status_without_geometry(self):
        status, geometry = solve([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        self.assertIs(status, FacetStatus.BACK_FACING)
        self.assertIsNone(geometry)

        status, geometry = solve([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 2.0, 2.0]])
        self.assertIs(status, FacetStatus.ZERO_NORMAL)
        self.assertIsNone(geometry)


class TestRotation(unittest.TestCase):
    def test_rotation_is_orthonormal_and_maps_normal_to_z(self):
        for normal in ([0.0, 0.0, 1.0], [0.3, -0.2, 0.9], [-1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, -0.6, 0.8]):
            n = np.asarray(normal) / np.linalg.norm(normal)
            rot = _rotation_to_z(n[0], n[1], n[2])
            np.testing.assert_allclose(rot @ rot.T, np.eye(3), atol=1e-14)
            np.testing.assert_allclose(rot @ n, [0.0, 0.0, 1.0], atol=1e-14)

    def test_normal_along_z_gives_identity(self):
        np.testing.assert_array_equal(_rotation_to_z(0.0, 0.0, 1.0), np.eye(3))


class TestInverse(unittest.TestCase):
    def test_inv2(self):
        inv, det = _inv2(2.0, 1.0, 1.0, 3.0)
        self.assertAlmostEqual(det, 5.0)
        np.testing.assert_allclose(inv, [0.6, -0.2, -0.2, 0.4])


class TestFacetGeometry(unittest.TestCase):
    def test_reference_triangle_maps_onto_itself(self):
        status, geometry = solve([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0], [1.0, 0.0, 0.0]])

        self.assertIs(status, FacetStatus.ACCEPTED)
        np.testing.assert_array_equal(geometry.rotation, np.eye(3))
        np.testing.assert_array_equal(geometry.affine, np.eye(2))
        np.testing.assert_array_equal(geometry.affine_inv_t, np.eye(2))
        self.assertEqual(geometry.determinant, 1.0)

    def test_tilted_facet(self):
        facet = [[0.1, 0.2, 0.3], [0.3, 0.7, 0.2], [0.6, 0.1, 0.5]]
        status, geometry = solve(facet)
        self.assertIs(status, FacetStatus.ACCEPTED)

        np.testing.assert_allclose(geometry.unit_normal, np.array([-1.0, 1.0, 3.0]) / np.sqrt(11.0))
        np.testing.assert_allclose(geometry.rotation @ geometry.unit_normal, [0.0, 0.0, 1.0], atol=1e-14)

        local = local_coordinates(facet, geometry)
        # V1 at the origin, facet in the z = 0 plane
        np.testing.assert_allclose(local[0], 0.0, atol=1e-15)
        np.testing.assert_allclose(local[:, 2], 0.0, atol=1e-15)

        # V2 -> (1, 1), V3 -> (1, 0)
        np.testing.assert_allclose(geometry.affine @ local[1, :2], [1.0, 1.0], atol=1e-14)
        np.testing.assert_allclose(geometry.affine @ local[2, :2], [1.0, 0.0], atol=1e-14)

        np.testing.assert_allclose(geometry.affine_inv_t, np.linalg.inv(geometry.affine).T)
        self.assertAlmostEqual(geometry.determinant, np.linalg.det(geometry.affine))

    def test_edge_on_facet_is_accepted(self):
        facet = [[0.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
        status, geometry = solve(facet)

        self.assertIs(status, FacetStatus.ACCEPTED)
        np.testing.assert_allclose(geometry.rotation @ [-1.0, 0.0, 0.0], [0.0, 0.0, 1.0], atol=1e-15)
        np.testing.assert_allclose(local_coordinates(facet, geometry)[:, 2], 0.0, atol=1e-15)

    def test_vertex_normals_are_carried(self):
        facet = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0], [1.0, 0.0, 0.0]])
        normals = np.tile([0.0, 0.0, 1.0], (3, 1))
        _, geometry = solve_facet_geometry(facet, np.array([0.0, 0.0, 1.0]), normals)
        self.assertIs(geometry.vertex_normals, normals)


if __name__ == '__main__':
    unittest.main()
