import numpy as np
import pytest

from stbrecon.geometry import edge_lengths, ray_angles, spherical_to_cartesian

K = np.array([[420.0, 0.0, 320.0], [0.0, 410.0, 240.0], [0.0, 0.0, 1.0]])


def test_zero_angles_point_along_optical_axis():
    np.testing.assert_allclose(spherical_to_cartesian([0.0, 0.0, 2.5]), [0.0, 0.0, 2.5])


def test_norm_equals_distance():
    rng = np.random.default_rng(0)
    angles = np.column_stack(
        [rng.uniform(-1, 1, 20), rng.uniform(-1, 1, 20), rng.uniform(0.1, 5, 20)]
    )
    points = spherical_to_cartesian(angles)
    np.testing.assert_allclose(np.linalg.norm(points, axis=1), angles[:, 2])


def test_ray_angles_round_trip_with_back_projection():
    pixels = np.array([[10.0, 20.0], [320.0, 240.0], [600.0, 400.0]])
    angles = ray_angles(pixels, np.linalg.inv(K))
    unit = spherical_to_cartesian(np.column_stack([angles, np.ones(len(pixels))]))
    rays = np.column_stack([pixels, np.ones(len(pixels))]) @ np.linalg.inv(K).T
    expected = rays / np.linalg.norm(rays, axis=1, keepdims=True)
    np.testing.assert_allclose(unit, expected)


def test_principal_point_has_zero_angles():
    np.testing.assert_allclose(ray_angles([320.0, 240.0], np.linalg.inv(K)), [0.0, 0.0])


def test_ray_angles_rejects_bad_shape():
    with pytest.raises(ValueError):
        ray_angles([1.0, 2.0, 3.0], np.eye(3))


def test_edge_lengths_from_coordinates():
    points = [[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [0.0, 0.0, 0.0]]
    np.testing.assert_allclose(edge_lengths(points, [[0, 1, 2]]), [[2.0, 0.0, 2.0]])


def test_edge_lengths_translation_invariant():
    rng = np.random.default_rng(1)
    points = rng.normal(size=(6, 3))
    faces = [[0, 1, 2], [3, 4, 5], [0, 3, 5]]
    np.testing.assert_allclose(edge_lengths(points, faces), edge_lengths(points + 7.0, faces))


def test_equilateral_edges_equal():
    h = np.sqrt(3.0) / 2.0
    points = [[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.5, h, 1.0]]
    lengths = edge_lengths(points, [[0, 1, 2]])[0]
    np.testing.assert_allclose(lengths, np.full(3, lengths[0]))


def test_spherical_rejects_bad_shape():
    with pytest.raises(ValueError):
        spherical_to_cartesian([1.0, 2.0])