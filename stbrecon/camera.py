"""Pinhole camera intrinsics and configuration loading."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import yaml


@dataclass(frozen=True)
class Intrinsics:
    """Focal lengths and principal point of a pinhole camera."""

    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Intrinsics":
        """Read ``fx``, ``fy``, ``cx`` and ``cy`` from the ``Image`` section."""
        image = config["Image"]
        return cls(
            fx=float(image["fx"]),
            fy=float(image["fy"]),
            cx=float(image["cx"]),
            cy=float(image["cy"]),
        )

    @classmethod
    def from_matrix(cls, matrix: Any) -> "Intrinsics":
        """Build intrinsics from a 3x3 calibration matrix."""
        k = np.asarray(matrix, dtype=float)
        if k.shape != (3, 3):
            raise ValueError(f"calibration matrix must be 3x3, got shape {k.shape}")
        return cls(fx=float(k[0, 0]), fy=float(k[1, 1]), cx=float(k[0, 2]), cy=float(k[1, 2]))

    def matrix(self) -> np.ndarray:
        """Return the 3x3 calibration matrix."""
        return np.array(
            [
                [self.fx, 0.0, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ]
        )

    def project(self, points: Any) -> np.ndarray:
        """Project camera-frame points of shape (..., 3) to pixels (..., 2)."""
        p = np.asarray(points, dtype=float)
        if p.shape[-1] != 3:
            raise ValueError("points must have three coordinates")
        x, y, z = p[..., 0], p[..., 1], p[..., 2]
        return np.stack([self.fx * x / z + self.cx, self.fy * y / z + self.cy], axis=-1)

    def back_project(self, pixels: Any) -> np.ndarray:
        """Return the rays (..., 3) with unit depth through the given pixels."""
        q = np.asarray(pixels, dtype=float)
        if q.shape[-1] != 2:
            raise ValueError("pixels must have two coordinates")
        u, v = q[..., 0], q[..., 1]
        return np.stack(
            [(u - self.cx) / self.fx, (v - self.cy) / self.fy, np.ones_like(u)], axis=-1
        )


def load_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file into a dictionary."""
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"configuration in {path} is not a mapping")
    return data