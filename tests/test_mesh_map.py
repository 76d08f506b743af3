from dataclasses import replace

import numpy as np
import pytest

from stbrecon.camera import Intrinsics
from stbrecon.mesh_map import MeshMap, OptimizationAlgorithm
from stbrecon.tracking import initial_observations

INTR = Intrinsics(100.0, 100.0, 50.0, 50.0)


def _mesh():
    xs, ys = (-1.0, 0.1, 1.2), (-0.9, 0.2, 1.1)
    vertices = [[x, y, 10 + 0.5 * x + 0.8 * y + 0.3 * x * y] for y in ys for x in xs]
    triangles = []
    for r in range(2):
        for c in range(2):
            a = r * 3 + c
            triangles += [[a, a + 1, a + 3], [a + 1, a + 4, a + 3]]
    return np.array(vertices), np.array(triangles)


def _config(algorithm):
    return {
        "Image": {"fx": 100.0, "fy": 100.0, "cx": 50.0, "cy": 50.0},
        "Optimizer": {"max_iteration": 10},
        "System": {"optimization_algorithm": algorithm, "verbose": False},
    }


def _observations(vertices, triangles):
    return initial_observations(vertices, triangles, np.ones(len(triangles), bool), INTR)


class _Source:
    def __init__(self, observations):
        self._obs = observations

    def observations(self):
        return list(self._obs)


def test_from_config_selects_algorithm():
    vertices, triangles = _mesh()
    mesh = MeshMap.from_config(vertices, triangles, _config(1))
    assert mesh.algorithm is OptimizationAlgorithm.CARTESIAN
    np.testing.assert_allclose(mesh.K, INTR.matrix())


def test_unknown_algorithm_is_rejected():
    vertices, triangles = _mesh()
    with pytest.raises(ValueError):
        MeshMap.from_config(vertices, triangles, _config(7))


@pytest.mark.parametrize("algorithm", [0, 1])
def test_matching_observations_keep_template(algorithm):
    vertices, triangles = _mesh()
    mesh = MeshMap.from_config(vertices, triangles, _config(algorithm))
    mesh.set_observations(_observations(vertices, triangles))
    result = mesh.optimize()
    np.testing.assert_allclose(result, vertices, atol=1e-6)
    assert len(mesh.triangle_mapping) == len(triangles)


def test_unobserved_vertex_is_untouched():
    vertices, triangles = _mesh()
    vertices = np.vstack([vertices, [[3.0, 3.0, 12.0]]])
    triangles = np.vstack([triangles, [[8, 5, 9]]])
    last = len(triangles) - 1
    obs = [o for o in _observations(vertices, triangles) if o.face_id != last]
    mesh = MeshMap(vertices, triangles, INTR.matrix(), 10, 1, False)
    mesh.set_observations(obs)
    result = mesh.optimize()
    np.testing.assert_array_equal(result[9], vertices[9])
    assert 9 not in mesh.vertex_mapping


def test_shifted_observations_reduce_reprojection_error():
    vertices, triangles = _mesh()
    obs = [replace(o, u=o.u + 1.0) for o in _observations(vertices, triangles)]
    mesh = MeshMap(vertices, triangles, INTR.matrix(), 10, 1, False)
    mesh.set_observations(obs)
    result = mesh.optimize()
    errors = []
    for o in obs:
        if o.is_vertex_sample():
            vertex = triangles[o.face_id][o.corner()]
            errors.append(np.hypot(*(INTR.project(result[vertex]) - (o.u, o.v))))
    assert np.mean(errors) < 0.5
    assert not np.allclose(result, vertices)


def test_observations_come_from_tracking():
    vertices, triangles = _mesh()
    mesh = MeshMap(vertices, triangles, INTR.matrix(), 10, 0, False)
    mesh.set_tracking(_Source(_observations(vertices, triangles)))
    np.testing.assert_allclose(mesh.optimize(), vertices, atol=1e-6)


def test_optimize_without_observations_fails():
    vertices, triangles = _mesh()
    mesh = MeshMap(vertices, triangles, INTR.matrix(), 10, 1, False)
    with pytest.raises(ValueError):
        mesh.optimize()