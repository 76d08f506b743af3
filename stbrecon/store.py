"""Thread-safe exchange of the current reconstruction between threads."""

from __future__ import annotations

import threading
from typing import Any

import numpy as np


class FrameStore:
    """Holds the latest mesh, texture and ground truth plus pause/terminate flags."""

    def __init__(self) -> None:
        self._vertices = np.empty((0, 3))
        self._triangles = np.empty((0, 3), dtype=int)
        self._texture: Any = None
        self._ground_truth = np.empty((0, 3))
        self._paused = False
        self._terminated = False
        self._vertex_lock = threading.Lock()
        self._triangle_lock = threading.Lock()
        self._texture_lock = threading.Lock()
        self._gt_lock = threading.Lock()
        self._pause_lock = threading.Lock()
        self._terminate_lock = threading.Lock()

    def pause(self) -> None:
        with self._pause_lock:
            self._paused = True

    def resume(self) -> None:
        with self._pause_lock:
            self._paused = False

    def terminate(self) -> None:
        with self._terminate_lock:
            self._terminated = True

    @property
    def paused(self) -> bool:
        with self._pause_lock:
            return self._paused

    @property
    def terminated(self) -> bool:
        with self._terminate_lock:
            return self._terminated

    @property
    def vertices(self) -> np.ndarray:
        """A copy of the current vertex positions, shape (N, 3)."""
        with self._vertex_lock:
            return self._vertices.copy()

    @vertices.setter
    def vertices(self, value: Any) -> None:
        array = np.array(value, dtype=float).reshape(-1, 3)
        with self._vertex_lock:
            self._vertices = array

    @property
    def triangles(self) -> np.ndarray:
        """A copy of the current triangle indices, shape (M, 3)."""
        with self._triangle_lock:
            return self._triangles.copy()

    @triangles.setter
    def triangles(self, value: Any) -> None:
        array = np.array(value, dtype=int).reshape(-1, 3)
        with self._triangle_lock:
            self._triangles = array

    @property
    def texture(self) -> Any:
        """The current texture image."""
        with self._texture_lock:
            return self._texture

    @texture.setter
    def texture(self, value: Any) -> None:
        with self._texture_lock:
            self._texture = value

    @property
    def ground_truth(self) -> np.ndarray:
        """A copy of the current ground-truth point cloud, shape (K, 3)."""
        with self._gt_lock:
            return self._ground_truth.copy()

    @ground_truth.setter
    def ground_truth(self, value: Any) -> None:
        array = np.array(value, dtype=float).reshape(-1, 3)
        with self._gt_lock:
            self._ground_truth = array