"""The deformable template mesh and its per-frame optimisation."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Iterable, Mapping, Protocol, Sequence

import numpy as np

from .camera import Intrinsics
from .normal_equations import local_mappings
from .observations import Observation
from .optimizer_cartesian import CartesianOptimizer
from .optimizer_distance import DepthOptimizer


class OptimizationAlgorithm(IntEnum):
    """Which optimiser reconstructs the mesh."""

    DISTANCE_ONLY = 0
    CARTESIAN = 1


class _ObservationSource(Protocol):
    def observations(self) -> list[Observation]: ...


class MeshMap:
    """Holds the template mesh and fits it to the current observations."""

    def __init__(
        self,
        vertices: Any,
        triangles: Any,
        K: Any,
        max_iteration: int,
        optimization_algorithm: int,
        verbose: bool,
    ) -> None:
        self._vertices = np.array(vertices, dtype=float).reshape(-1, 3)
        self._triangles = np.array(triangles, dtype=int).reshape(-1, 3)
        self.K = np.array(K, dtype=float)
        self.intrinsics = Intrinsics.from_matrix(self.K)
        self.algorithm = OptimizationAlgorithm(optimization_algorithm)
        if self.algorithm is OptimizationAlgorithm.DISTANCE_ONLY:
            self._optimizer: DepthOptimizer | CartesianOptimizer = DepthOptimizer(
                max_iteration, self._vertices, self._triangles, self.K, verbose
            )
        else:
            self._optimizer = CartesianOptimizer(
                max_iteration, self._vertices, self._triangles, verbose, self.K
            )
        self._tracking: _ObservationSource | None = None
        self._observations: list[Observation] = []
        self.vertex_mapping: dict[int, int] = {}
        self.triangle_mapping: dict[int, int] = {}

    @classmethod
    def from_config(cls, vertices: Any, triangles: Any, config: Mapping[str, Any]) -> "MeshMap":
        """Build a mesh map from the ``Image``, ``Optimizer`` and ``System`` sections."""
        return cls(
            vertices,
            triangles,
            Intrinsics.from_config(config).matrix(),
            int(config["Optimizer"]["max_iteration"]),
            int(config["System"]["optimization_algorithm"]),
            bool(config["System"]["verbose"]),
        )

    @property
    def vertices(self) -> np.ndarray:
        return self._vertices.copy()

    @property
    def triangles(self) -> np.ndarray:
        return self._triangles.copy()

    def set_tracking(self, tracking: _ObservationSource) -> None:
        """Take the observations from ``tracking`` at every optimisation."""
        self._tracking = tracking

    def set_observations(self, observations: Iterable[Observation | Sequence[float]]) -> None:
        self._observations = [
            item if isinstance(item, Observation) else Observation.from_row(item)
            for item in observations
        ]

    def optimize(self) -> np.ndarray:
        """Fit the observed part of the mesh and return all vertices."""
        if self._tracking is not None:
            self.set_observations(self._tracking.observations())
        if not self._observations:
            raise ValueError("no observations to optimise against")
        self.vertex_mapping, self.triangle_mapping = local_mappings(
            self._observations, self._triangles
        )
        self._optimizer.set_parameters(
            self._observations, self.vertex_mapping, self.triangle_mapping
        )
        self._optimizer.initialize()
        self._optimizer.run()
        self._vertices = self._optimizer.vertices()
        return self.vertices