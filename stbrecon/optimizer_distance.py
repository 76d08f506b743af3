"""Gauss-Newton reconstruction with vertices constrained to their viewing rays."""

from __future__ import annotations

import math
import time
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from .geometry import ray_angles, spherical_to_cartesian
from .normal_equations import BlockSystem
from .observations import Observation
from .residuals import spherical_distance_residuals

# Iteration stops once the mean squared residual or the squared step falls below this.
CONVERGENCE_THRESHOLD = 1e-6


def _local_faces(
    triangles: np.ndarray,
    vertex_mapping: Mapping[int, int],
    triangle_mapping: Mapping[int, int],
) -> np.ndarray:
    faces = np.zeros((len(triangle_mapping), 3), dtype=int)
    for mesh_face, local in triangle_mapping.items():
        faces[local] = [vertex_mapping[int(v)] for v in triangles[mesh_face]]
    return faces


class DepthOptimizer:
    """Places observed vertices on the rays through their tracked pixels.

    Each observed vertex is written as ``(psi, theta, d)``; the ray angles are
    fixed by the observation and only the distance ``d`` is optimised so that
    the mesh edges keep their template lengths.
    """

    def __init__(
        self,
        max_iteration: int,
        vertices: Any,
        triangles: Any,
        K: Any,
        verbose: bool,
    ) -> None:
        self.max_iteration = int(max_iteration)
        self.verbose = bool(verbose)
        k = np.asarray(K, dtype=float)
        if k.shape != (3, 3):
            raise ValueError(f"calibration matrix must be 3x3, got shape {k.shape}")
        self._inverse_k = np.linalg.inv(k)
        self._vertices = np.array(vertices, dtype=float).reshape(-1, 3)
        self._reference = self._vertices.copy()
        self._triangles = np.array(triangles, dtype=int).reshape(-1, 3)
        self._observations: list[Observation] = []
        self._vertex_mapping: dict[int, int] = {}
        self._triangle_mapping: dict[int, int] = {}
        self._faces: np.ndarray | None = None
        self._params: np.ndarray | None = None
        self._local_reference: np.ndarray | None = None
        self._system: BlockSystem | None = None
        self.iterations = 0

    def set_parameters(
        self,
        observations: Iterable[Observation | Sequence[float]],
        vertex_mapping: Mapping[int, int],
        triangle_mapping: Mapping[int, int],
    ) -> None:
        """Set the observations and the mesh-to-local index mappings."""
        self._observations = [
            item if isinstance(item, Observation) else Observation.from_row(item)
            for item in observations
        ]
        self._vertex_mapping = {int(k): int(v) for k, v in vertex_mapping.items()}
        self._triangle_mapping = {int(k): int(v) for k, v in triangle_mapping.items()}

    def initialize(self) -> None:
        """Turn corner observations into ray angles and template distances."""
        if not self._triangle_mapping:
            raise ValueError("no observed triangles to optimise")
        self._faces = _local_faces(self._triangles, self._vertex_mapping, self._triangle_mapping)

        for obs in self._observations:
            corner = obs.corner()
            if corner is None:
                continue
            vertex = int(self._triangles[obs.face_id][corner])
            phi, theta = ray_angles((obs.u, obs.v), self._inverse_k)
            self._vertices[vertex] = (phi, theta, np.linalg.norm(self._reference[vertex]))

        count = len(self._vertex_mapping)
        self._params = np.zeros((count, 3))
        self._local_reference = np.zeros((count, 3))
        for mesh_index, local in self._vertex_mapping.items():
            self._params[local] = self._vertices[mesh_index]
            self._local_reference[local] = self._reference[mesh_index]
        self._system = BlockSystem(self._faces, count, 1)

    def _add_distance_terms(self, residuals: np.ndarray) -> None:
        system, params = self._system, self._params
        directions = spherical_to_cartesian(
            np.column_stack([params[:, :2], np.ones(len(params))])
        )
        points = directions * params[:, 2:3]
        for face, errors in zip(self._faces, residuals):
            a, b, c = (int(i) for i in face)
            for (i, j), error in zip(((a, b), (a, c), (b, c)), errors):
                diff = points[i] - points[j]
                length = np.linalg.norm(diff)
                jac_i = float(directions[i] @ diff) / length
                jac_j = -float(directions[j] @ diff) / length
                system.add_gradient(i, -jac_i * error)
                system.add_gradient(j, -jac_j * error)
                system.add_block(i, i, jac_i * jac_i)
                system.add_block(j, j, jac_j * jac_j)
                system.add_block(i, j, jac_i * jac_j)

    def run(self) -> None:
        """Run Gauss-Newton iterations on the distances and write the mesh back."""
        if self._system is None:
            raise RuntimeError("initialize() must be called before run()")
        system = self._system
        count = len(self._params)
        total_time = 0.0
        self.iterations = 0
        for iteration in range(1, self.max_iteration):
            start = time.perf_counter()
            system.reset()
            errors = spherical_distance_residuals(
                self._params, self._local_reference, self._faces
            )
            self._add_distance_terms(errors)

            step = system.solve()
            self._params[:, 2] = np.abs(self._params[:, 2] + step)
            dx = float(np.sum(step**2))

            cost = float(np.mean(errors**2))
            ed = cost
            self.iterations = iteration
            duration = time.perf_counter() - start
            total_time += duration
            if self.verbose:
                print(
                    f"Iteration: {iteration} Error: {math.sqrt(cost):g} dx: {dx / count:g} "
                    f"ed: {ed:g} Time: {duration:g} Total time: {total_time:g}"
                )
            if cost < CONVERGENCE_THRESHOLD or dx < CONVERGENCE_THRESHOLD:
                break

        points = spherical_to_cartesian(self._params)
        for mesh_index, local in self._vertex_mapping.items():
            self._vertices[mesh_index] = points[local]
        self._system = None

    def vertices(self) -> np.ndarray:
        """A copy of all mesh vertices with the optimised ones updated."""
        return self._vertices.copy()