"""Selection of usable template parts and tracking of their observations."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping

import numpy as np

from .camera import Intrinsics
from .observations import Observation, barycentric_samples
from .optical_flow import LucasKanadeTracker

# Tolerance on the sum of barycentric weights.
_WEIGHT_TOLERANCE = 1e-9


def brightness_mask(image: Any, threshold: float) -> np.ndarray:
    """Return 255 where the HSV value of a BGR image exceeds ``threshold``, else 0."""
    img = np.asarray(image)
    if img.ndim == 2:
        value = img.astype(float)
    elif img.ndim == 3 and img.shape[2] in (3, 4):
        value = img[..., :3].astype(float).max(axis=2)
    else:
        raise ValueError(f"expected a grey or BGR image, got shape {img.shape}")
    return np.where(value > threshold, 255, 0).astype(np.uint8)


def usable_vertices(
    vertices: Any, intrinsics: Intrinsics, mask: Any, config: Mapping[str, Any]
) -> np.ndarray:
    """Flag the vertices that project inside the configured window and the mask."""
    section = config["Preprocessing"]
    points = np.asarray(vertices, dtype=float).reshape(-1, 3)
    if not bool(section["create_mask"]):
        return np.ones(len(points), dtype=bool)
    width_min = int(section["width_min"])
    height_min = int(section["height_min"])
    width_max = int(section["width_max"])
    height_max = int(section["height_max"])
    m = np.asarray(mask)
    rows, cols = m.shape[:2]
    flags = np.zeros(len(points), dtype=bool)
    for index, (u, v) in enumerate(intrinsics.project(points)):
        if not (width_min <= u <= width_max and height_min <= v <= height_max):
            continue
        row, col = int(v), int(u)
        if 0 <= row < rows and 0 <= col < cols and m[row, col] == 255:
            flags[index] = True
    return flags


def usable_triangles(triangles: Any, usable: Any) -> np.ndarray:
    """Flag the triangles whose three corners are all usable."""
    faces = np.asarray(triangles, dtype=int).reshape(-1, 3)
    flags = np.asarray(usable, dtype=bool)
    return flags[faces].all(axis=1) if len(faces) else np.zeros(0, dtype=bool)


def initial_observations(
    vertices: Any, triangles: Any, usable: Any, intrinsics: Intrinsics
) -> list[Observation]:
    """Project the barycentric samples of every usable triangle.

    A corner sample is taken only the first time its vertex is met, so every
    vertex is observed once; the centroid sample is taken for every triangle.
    """
    points = np.asarray(vertices, dtype=float).reshape(-1, 3)
    faces = np.asarray(triangles, dtype=int).reshape(-1, 3)
    usable_faces = np.asarray(usable, dtype=bool)
    seen: set[int] = set()
    observations: list[Observation] = []
    for face_id, (face, ok) in enumerate(zip(faces, usable_faces)):
        if not ok:
            continue
        for weights in barycentric_samples():
            corner = next((i for i, w in enumerate(weights) if int(w) == 1), None)
            if corner is not None:
                vertex = int(face[corner])
                if vertex in seen:
                    continue
                seen.add(vertex)
            total = sum(weights)
            if total > 1 + _WEIGHT_TOLERANCE or total < 0:
                raise ValueError(f"invalid barycentric weights {weights}")
            point = np.asarray(weights) @ points[face]
            u, v = intrinsics.project(point)
            observations.append(Observation(face_id, float(u), float(v), *weights))
    return observations


class Tracker:
    """Tracks the observed template points of a reference image into new frames."""

    def __init__(
        self, reference_image: Any, vertices: Any, triangles: Any, config: Mapping[str, Any]
    ) -> None:
        self.config = config
        self.intrinsics = Intrinsics.from_config(config)
        self.vertices = np.array(vertices, dtype=float).reshape(-1, 3)
        self.triangles = np.array(triangles, dtype=int).reshape(-1, 3)
        self.mask = brightness_mask(
            reference_image, float(config["Preprocessing"]["brightness_threshold"])
        )
        self.usable_vertices = usable_vertices(self.vertices, self.intrinsics, self.mask, config)
        self.usable_triangles = usable_triangles(self.triangles, self.usable_vertices)
        self._observations = initial_observations(
            self.vertices, self.triangles, self.usable_triangles, self.intrinsics
        )
        self.reference_points = np.array(
            [(obs.u, obs.v) for obs in self._observations], dtype=float
        ).reshape(-1, 2)
        self.correspondences = self.reference_points.copy()
        self.extractor = LucasKanadeTracker(reference_image, self.reference_points, config)

    @property
    def status(self) -> np.ndarray:
        """Whether each reference point was tracked successfully in the last frame."""
        return self.extractor.status

    def track(self, frame: Any) -> np.ndarray:
        """Track the reference points into ``frame`` and update the observations."""
        self.correspondences = self.extractor.track(frame)
        self._observations = [
            replace(obs, u=float(u), v=float(v))
            for obs, (u, v) in zip(self._observations, self.correspondences)
        ]
        return self.correspondences.copy()

    def observations(self) -> list[Observation]:
        """The current observations, one per tracked sample."""
        return list(self._observations)