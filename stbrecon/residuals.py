"""Residuals of the template reconstruction least-squares problems."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from .camera import Intrinsics
from .geometry import edge_lengths, spherical_to_cartesian
from .observations import Observation

# A barycentric weight at least this large marks a sample on a triangle corner.
CORNER_WEIGHT = 0.99


def _as_observation(item: Observation | Sequence[float]) -> Observation:
    if isinstance(item, Observation):
        return item
    return Observation.from_row(item)


def _as_intrinsics(intrinsics: Intrinsics | Any) -> Intrinsics:
    if isinstance(intrinsics, Intrinsics):
        return intrinsics
    return Intrinsics.from_matrix(intrinsics)


def reprojection_residuals(
    observations: Iterable[Observation | Sequence[float]],
    points: Any,
    faces: Any,
    triangle_mapping: Mapping[int, int],
    intrinsics: Intrinsics | Any,
) -> np.ndarray:
    """Observed minus projected pixel for every observation, shape (N, 2).

    ``faces`` holds the local triangles indexing into ``points``; the mesh face
    of each observation is translated by ``triangle_mapping``. Observations
    that do not sit on a triangle corner get a zero residual.
    """
    camera = _as_intrinsics(intrinsics)
    p = np.asarray(points, dtype=float).reshape(-1, 3)
    f = np.asarray(faces, dtype=int).reshape(-1, 3)
    residuals: list[tuple[float, float]] = []
    for item in observations:
        obs = _as_observation(item)
        if max(obs.weights) < CORNER_WEIGHT:
            residuals.append((0.0, 0.0))
            continue
        try:
            local = triangle_mapping[obs.face_id]
        except KeyError:
            raise KeyError(f"observation refers to unmapped triangle {obs.face_id}") from None
        corners = p[f[local]]
        point = np.asarray(obs.weights) @ corners
        u, v = camera.project(point)
        residuals.append((obs.u - float(u), obs.v - float(v)))
    return np.array(residuals, dtype=float).reshape(-1, 2)


def distance_residuals(points: Any, reference: Any, faces: Any) -> np.ndarray:
    """Edge lengths of ``points`` minus those of ``reference``, shape (F, 3).

    The columns are the edges v1-v2, v1-v3 and v2-v3 of every face.
    """
    p = np.asarray(points, dtype=float).reshape(-1, 3)
    r = np.asarray(reference, dtype=float).reshape(-1, 3)
    if p.shape != r.shape:
        raise ValueError(
            f"points and reference differ in shape: {p.shape} and {r.shape}"
        )
    return edge_lengths(p, faces) - edge_lengths(r, faces)


def spherical_distance_residuals(params: Any, reference: Any, faces: Any) -> np.ndarray:
    """Edge-length residuals of vertices given as ``(psi, theta, d)``, shape (F, 3)."""
    return distance_residuals(
        spherical_to_cartesian(np.asarray(params, dtype=float).reshape(-1, 3)),
        reference,
        faces,
    )