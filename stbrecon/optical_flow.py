"""Sparse pyramidal Lucas-Kanade optical flow."""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np
from scipy import ndimage

_PYRAMID_KERNEL = np.array([1.0, 4.0, 6.0, 4.0, 1.0]) / 16.0
_DERIVATIVE = np.array([-0.5, 0.0, 0.5])
_SMOOTH = np.array([3.0, 10.0, 3.0]) / 16.0
MIN_EIGEN_THRESHOLD = 1e-4


def bgr_to_gray(image: Any) -> np.ndarray:
    """Convert a BGR (or BGRA) image to grey; grey images are returned as a copy."""
    arr = np.asarray(image)
    if arr.ndim == 2:
        return arr.copy()
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"expected a grey or BGR image, got shape {arr.shape}")
    blue, green, red = (arr[..., i].astype(float) for i in range(3))
    gray = 0.114 * blue + 0.587 * green + 0.299 * red
    if arr.dtype == np.uint8:
        return np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    return gray


def _pyr_down(image: np.ndarray) -> np.ndarray:
    blurred = ndimage.convolve1d(image, _PYRAMID_KERNEL, axis=0, mode="reflect")
    blurred = ndimage.convolve1d(blurred, _PYRAMID_KERNEL, axis=1, mode="reflect")
    return blurred[::2, ::2]


def _pyramid(image: np.ndarray, max_level: int, window: tuple[int, int]) -> list[np.ndarray]:
    width, height = window
    levels = [np.asarray(image, dtype=float)]
    for _ in range(max_level):
        rows, cols = levels[-1].shape
        if rows // 2 < height or cols // 2 < width:
            break
        levels.append(_pyr_down(levels[-1]))
    return levels


def _gradients(image: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    gx = ndimage.correlate1d(image, _DERIVATIVE, axis=1, mode="reflect")
    gx = ndimage.correlate1d(gx, _SMOOTH, axis=0, mode="reflect")
    gy = ndimage.correlate1d(image, _DERIVATIVE, axis=0, mode="reflect")
    gy = ndimage.correlate1d(gy, _SMOOTH, axis=1, mode="reflect")
    return gx, gy


def _sample(image: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    return ndimage.map_coordinates(image, [ys, xs], order=1, mode="nearest")


def pyramidal_lucas_kanade(
    previous: Any,
    current: Any,
    points: Any,
    window_size: tuple[int, int],
    max_level: int,
    max_count: int,
    epsilon: float,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Track ``points`` (N, 2; x, y) from ``previous`` to ``current`` grey images.

    Returns the tracked points, a boolean status per point and the mean
    absolute intensity difference of each final window.
    """
    width, height = (int(s) for s in window_size)
    if width < 1 or height < 1:
        raise ValueError("window size must be positive")
    if max_level < 0:
        raise ValueError("max_level must not be negative")
    prev_img = np.asarray(previous, dtype=float)
    cur_img = np.asarray(current, dtype=float)
    if prev_img.ndim != 2 or prev_img.shape != cur_img.shape:
        raise ValueError("images must be grey and of equal size")
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    count = len(pts)
    if count == 0:
        return np.empty((0, 2)), np.empty(0, dtype=bool), np.empty(0)

    prev_pyr = _pyramid(prev_img, max_level, (width, height))
    cur_pyr = _pyramid(cur_img, max_level, (width, height))
    levels = min(len(prev_pyr), len(cur_pyr))

    oy, ox = np.meshgrid(
        np.arange(height) - (height - 1) / 2.0,
        np.arange(width) - (width - 1) / 2.0,
        indexing="ij",
    )
    area = float(width * height)
    status = np.ones(count, dtype=bool)
    guess = np.zeros((count, 2))

    for level in reversed(range(levels)):
        prev_l, cur_l = prev_pyr[level], cur_pyr[level]
        grad_x, grad_y = _gradients(prev_l)
        base = pts / 2.0**level
        ys = base[:, 1, None, None] + oy
        xs = base[:, 0, None, None] + ox
        template = _sample(prev_l, ys, xs)
        ix = _sample(grad_x, ys, xs)
        iy = _sample(grad_y, ys, xs)
        gxx = (ix * ix).sum(axis=(1, 2))
        gxy = (ix * iy).sum(axis=(1, 2))
        gyy = (iy * iy).sum(axis=(1, 2))
        det = gxx * gyy - gxy * gxy
        min_eig = (gxx + gyy - np.sqrt((gxx - gyy) ** 2 + 4.0 * gxy * gxy)) / (2.0 * area)
        valid = (min_eig >= MIN_EIGEN_THRESHOLD) & (det > np.finfo(float).eps)
        if level == 0:
            status &= valid

        flow = np.zeros((count, 2))
        active = valid.copy()
        for _ in range(max_count):
            idx = np.flatnonzero(active)
            if idx.size == 0:
                break
            pos = base[idx] + guess[idx] + flow[idx]
            warped = _sample(cur_l, pos[:, 1, None, None] + oy, pos[:, 0, None, None] + ox)
            diff = template[idx] - warped
            bx = (diff * ix[idx]).sum(axis=(1, 2))
            by = (diff * iy[idx]).sum(axis=(1, 2))
            dx = (gyy[idx] * bx - gxy[idx] * by) / det[idx]
            dy = (gxx[idx] * by - gxy[idx] * bx) / det[idx]
            flow[idx, 0] += dx
            flow[idx, 1] += dy
            active[idx] = dx * dx + dy * dy > epsilon * epsilon

        guess = guess + flow
        if level > 0:
            guess = 2.0 * guess

    tracked = pts + guess
    rows, cols = prev_img.shape
    inside = (
        (tracked[:, 0] >= 0)
        & (tracked[:, 0] <= cols - 1)
        & (tracked[:, 1] >= 0)
        & (tracked[:, 1] <= rows - 1)
    )
    status &= inside

    template = _sample(prev_img, pts[:, 1, None, None] + oy, pts[:, 0, None, None] + ox)
    warped = _sample(cur_img, tracked[:, 1, None, None] + oy, tracked[:, 0, None, None] + ox)
    errors = np.abs(template - warped).mean(axis=(1, 2))
    return tracked, status, errors


class LucasKanadeTracker:
    """Tracks fixed reference pixels of a reference frame into new frames."""

    max_count = 10
    epsilon = 0.03

    def __init__(self, frame: Any, reference_points: Any, config: Mapping[str, Any]) -> None:
        kanade = config["Kanade"]
        self.max_level = int(kanade["iteration"])
        self.window_size = (int(kanade["width"]), int(kanade["height"]))
        self.reference_points = np.array(reference_points, dtype=float).reshape(-1, 2)
        self._reference_gray = bgr_to_gray(frame)
        self.status = np.ones(len(self.reference_points), dtype=bool)
        self.errors = np.zeros(len(self.reference_points))

    def track(self, frame: Any) -> np.ndarray:
        """Return where the reference points moved to in ``frame``."""
        current = bgr_to_gray(frame)
        points, self.status, self.errors = pyramidal_lucas_kanade(
            self._reference_gray,
            current,
            self.reference_points,
            self.window_size,
            self.max_level,
            self.max_count,
            self.epsilon,
        )
        return points