"""Gauss-Newton reconstruction with free Cartesian vertex positions."""

from __future__ import annotations

import math
import time
from itertools import combinations
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from .camera import Intrinsics
from .normal_equations import BlockSystem
from .observations import Observation
from .residuals import CORNER_WEIGHT, distance_residuals, reprojection_residuals

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


class CartesianOptimizer:
    """Fits observed template vertices to tracked pixels while keeping edge lengths.

    Every observed vertex has three free coordinates. The cost is the sum of
    the squared reprojection errors of the corner observations and of the
    squared differences between current and template edge lengths.
    """

    def __init__(
        self,
        max_iteration: int,
        vertices: Any,
        triangles: Any,
        verbose: bool,
        K: Any,
    ) -> None:
        self.max_iteration = int(max_iteration)
        self.verbose = bool(verbose)
        self.intrinsics = Intrinsics.from_matrix(K)
        self._vertices = np.array(vertices, dtype=float).reshape(-1, 3)
        self._reference = self._vertices.copy()
        self._triangles = np.array(triangles, dtype=int).reshape(-1, 3)
        self._observations: list[Observation] = []
        self._vertex_mapping: dict[int, int] = {}
        self._triangle_mapping: dict[int, int] = {}
        self._faces: np.ndarray | None = None
        self._points: np.ndarray | None = None
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
        """Build the local problem, starting from the template vertices."""
        if not self._triangle_mapping:
            raise ValueError("no observed triangles to optimise")
        self._faces = _local_faces(self._triangles, self._vertex_mapping, self._triangle_mapping)
        count = len(self._vertex_mapping)
        self._local_reference = np.zeros((count, 3))
        for mesh_index, local in self._vertex_mapping.items():
            self._local_reference[local] = self._reference[mesh_index]
        self._points = self._local_reference.copy()
        self._system = BlockSystem(self._faces, count, 3)

    def _add_reprojection_terms(self, residuals: np.ndarray) -> None:
        system, faces, points = self._system, self._faces, self._points
        fx, fy = self.intrinsics.fx, self.intrinsics.fy
        for obs, error in zip(self._observations, residuals):
            if max(obs.weights) < CORNER_WEIGHT:
                continue
            face = faces[self._triangle_mapping[obs.face_id]]
            weights = np.asarray(obs.weights)
            x, y, z = weights @ points[face]
            base = np.array(
                [[-fx / z, 0.0, fx * x / (z * z)], [0.0, -fy / z, fy * y / (z * z)]]
            )
            terms = [(int(vertex), base * w) for vertex, w in zip(face, weights)]
            for vertex, jac in terms:
                system.add_gradient(vertex, -(jac.T @ error))
                system.add_block(vertex, vertex, jac.T @ jac)
            for (a, jac_a), (b, jac_b) in combinations(terms, 2):
                system.add_block(a, b, jac_a.T @ jac_b)

    def _add_distance_terms(self, residuals: np.ndarray) -> None:
        system, points = self._system, self._points
        for face, errors in zip(self._faces, residuals):
            a, b, c = (int(i) for i in face)
            for (i, j), error in zip(((a, b), (a, c), (b, c)), errors):
                diff = points[i] - points[j]
                jac_i = diff / np.linalg.norm(diff)
                jac_j = -jac_i
                system.add_gradient(i, -jac_i * error)
                system.add_gradient(j, -jac_j * error)
                system.add_block(i, i, np.outer(jac_i, jac_i))
                system.add_block(j, j, np.outer(jac_j, jac_j))
                system.add_block(i, j, np.outer(jac_i, jac_j))

    def run(self) -> None:
        """Run Gauss-Newton iterations and write the result back into the mesh."""
        if self._system is None:
            raise RuntimeError("initialize() must be called before run()")
        system = self._system
        count = len(self._points)
        total_time = 0.0
        self.iterations = 0
        for iteration in range(1, self.max_iteration):
            start = time.perf_counter()
            system.reset()
            reprojection = reprojection_residuals(
                self._observations,
                self._points,
                self._faces,
                self._triangle_mapping,
                self.intrinsics,
            )
            distance = distance_residuals(self._points, self._local_reference, self._faces)
            self._add_reprojection_terms(reprojection)
            self._add_distance_terms(distance)

            step = system.solve().reshape(-1, 3)
            self._points += step
            behind = self._points[:, 2] < 0
            self._points[behind] *= -1.0
            dx = float(np.sum(step**2))

            cost = float(np.sum(reprojection**2) + np.sum(distance**2)) / (
                reprojection.size + distance.size
            )
            ed = float(np.mean(distance**2))
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

        for mesh_index, local in self._vertex_mapping.items():
            self._vertices[mesh_index] = self._points[local]
        self._system = None

    def vertices(self) -> np.ndarray:
        """A copy of all mesh vertices with the optimised ones updated."""
        return self._vertices.copy()