"""Barycentric observations of template triangles in the image."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

_SAMPLES: tuple[tuple[float, float, float], ...] = (
    (0.3333, 0.3333, 0.3334),
    (1.0, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (0.0, 0.0, 1.0),
)


def barycentric_samples() -> tuple[tuple[float, float, float], ...]:
    """Return the barycentric weights sampled on every triangle, in order."""
    return _SAMPLES


@dataclass(frozen=True)
class Observation:
    """A pixel observed for a point given by barycentric weights on a face."""

    face_id: int
    u: float
    v: float
    alpha: float
    beta: float
    gamma: float

    @classmethod
    def from_row(cls, row: Sequence[float]) -> "Observation":
        """Build an observation from ``(face_id, u, v, alpha, beta, gamma)``."""
        if len(row) != 6:
            raise ValueError(f"an observation row has 6 values, got {len(row)}")
        face_id, u, v, alpha, beta, gamma = row
        return cls(int(face_id), float(u), float(v), float(alpha), float(beta), float(gamma))

    def as_row(self) -> tuple[float, float, float, float, float, float]:
        """Return ``(face_id, u, v, alpha, beta, gamma)``."""
        return (self.face_id, self.u, self.v, self.alpha, self.beta, self.gamma)

    @property
    def weights(self) -> tuple[float, float, float]:
        return (self.alpha, self.beta, self.gamma)

    def corner(self) -> int | None:
        """Index (0, 1 or 2) of the triangle corner this sample sits on, if any."""
        for index, weight in enumerate(self.weights):
            if int(weight) == 1:
                return index
        return None

    def is_vertex_sample(self) -> bool:
        """True when the observation sits exactly on a triangle corner."""
        return self.corner() is not None