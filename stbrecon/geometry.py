"""Spherical parametrisation of camera-frame points and mesh edge lengths."""

from __future__ import annotations

from typing import Any

import numpy as np


def spherical_to_cartesian(angles: Any) -> np.ndarray:
    """Map ``(psi, theta, d)`` triples (..., 3) to camera-frame points (..., 3).

    ``psi`` is the azimuth about the y axis measured from z, ``theta`` the
    elevation and ``d`` the distance from the camera centre.
    """
    a = np.asarray(angles, dtype=float)
    if a.shape[-1] != 3:
        raise ValueError("angles must have three components")
    psi, theta, d = a[..., 0], a[..., 1], a[..., 2]
    return np.stack(
        [
            np.sin(psi) * np.cos(theta) * d,
            np.sin(theta) * d,
            np.cos(psi) * np.cos(theta) * d,
        ],
        axis=-1,
    )


def ray_angles(pixel: Any, inverse_matrix: Any) -> np.ndarray:
    """Return ``(phi, theta)`` (..., 2) of the viewing rays through pixels (..., 2)."""
    q = np.asarray(pixel, dtype=float)
    if q.shape[-1] != 2:
        raise ValueError("pixels must have two coordinates")
    k_inv = np.asarray(inverse_matrix, dtype=float)
    homogeneous = np.concatenate([q, np.ones(q.shape[:-1] + (1,))], axis=-1)
    ray = homogeneous @ k_inv.T
    phi = np.arctan2(ray[..., 0], ray[..., 2])
    theta = np.arctan2(ray[..., 1], np.hypot(ray[..., 0], ray[..., 2]))
    return np.stack([phi, theta], axis=-1)


def edge_lengths(points: Any, faces: Any) -> np.ndarray:
    """Lengths of the edges (v1-v2, v1-v3, v2-v3) of every face, shape (F, 3)."""
    p = np.asarray(points, dtype=float).reshape(-1, 3)
    f = np.asarray(faces, dtype=int).reshape(-1, 3)
    v1, v2, v3 = p[f[:, 0]], p[f[:, 1]], p[f[:, 2]]
    return np.stack(
        [
            np.linalg.norm(v1 - v2, axis=1),
            np.linalg.norm(v1 - v3, axis=1),
            np.linalg.norm(v2 - v3, axis=1),
        ],
        axis=1,
    )