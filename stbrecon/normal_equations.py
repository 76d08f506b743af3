"""Block-sparse symmetric normal equations of the mesh least-squares problems."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import numpy as np
from scipy import sparse
from scipy.linalg import cho_solve_banded, cholesky_banded
from scipy.sparse.csgraph import reverse_cuthill_mckee

from .observations import Observation


class NotPositiveDefiniteError(np.linalg.LinAlgError):
    """Raised when the normal matrix cannot be Cholesky-factorised."""


class BlockSystem:
    """Symmetric system ``S x = g`` with one ``block_size`` block per vertex pair.

    Only the upper block triangle (row <= column) of ``S`` is stored. A block
    exists for every vertex on its own and for every pair of vertices that
    share a triangle. Diagonal blocks contribute only their upper triangle.
    """

    def __init__(self, triangles: Any, number_vertices: int, block_size: int) -> None:
        if block_size < 1:
            raise ValueError("block size must be positive")
        if number_vertices < 0:
            raise ValueError("number of vertices must not be negative")
        faces = np.asarray(triangles, dtype=int).reshape(-1, 3)
        if faces.size and (faces.min() < 0 or faces.max() >= number_vertices):
            raise ValueError("triangle refers to a vertex outside the system")
        self.number_vertices = int(number_vertices)
        self.block_size = int(block_size)

        pairs: set[tuple[int, int]] = set()
        for face in faces:
            a, b, c = (int(i) for i in face)
            pairs.update({(a, a), (b, b), (c, c)})
            pairs.update({(min(a, b), max(a, b)), (min(a, c), max(a, c)), (min(b, c), max(b, c))})
        self._positions = {pair: pos for pos, pair in enumerate(sorted(pairs))}

        self.values = np.zeros((len(self._positions), block_size, block_size))
        self.gradient = np.zeros(self.number_vertices * block_size)

    @property
    def pairs(self) -> list[tuple[int, int]]:
        """Stored ``(row, col)`` block coordinates in storage order."""
        return list(self._positions)

    def __len__(self) -> int:
        return len(self._positions)

    def reset(self) -> None:
        """Set all matrix blocks and the gradient to zero."""
        self.values.fill(0.0)
        self.gradient.fill(0.0)

    def index(self, row: int, col: int) -> int:
        """Storage position of the block coupling ``row`` and ``col``."""
        key = (min(row, col), max(row, col))
        try:
            return self._positions[key]
        except KeyError:
            raise KeyError(f"no block for vertices {row} and {col}") from None

    def add_block(self, row: int, col: int, block: Any) -> None:
        """Add ``block`` at block position ``(row, col)`` of the symmetric matrix."""
        b = np.asarray(block, dtype=float).reshape(self.block_size, self.block_size)
        pos = self.index(row, col)
        self.values[pos] += b if row <= col else b.T

    def add_gradient(self, vertex: int, value: Any) -> None:
        """Add ``value`` to the gradient entries of ``vertex``."""
        if not 0 <= vertex < self.number_vertices:
            raise IndexError(f"vertex {vertex} outside the system")
        start = vertex * self.block_size
        self.gradient[start : start + self.block_size] += np.asarray(
            value, dtype=float
        ).reshape(self.block_size)

    def matrix(self) -> sparse.csc_matrix:
        """The full symmetric matrix as a sparse CSC matrix."""
        bs = self.block_size
        size = self.number_vertices * bs
        local_r, local_c = np.meshgrid(np.arange(bs), np.arange(bs), indexing="ij")
        rows: list[np.ndarray] = []
        cols: list[np.ndarray] = []
        data: list[np.ndarray] = []
        for (i, j), pos in self._positions.items():
            block = self.values[pos]
            if i == j:
                full = np.triu(block) + np.triu(block, 1).T
                rows.append((i * bs + local_r).ravel())
                cols.append((i * bs + local_c).ravel())
                data.append(full.ravel())
            else:
                rows.append((i * bs + local_r).ravel())
                cols.append((j * bs + local_c).ravel())
                data.append(block.ravel())
                rows.append((j * bs + local_r).ravel())
                cols.append((i * bs + local_c).ravel())
                data.append(block.T.ravel())
        if not data:
            return sparse.csc_matrix((size, size))
        return sparse.coo_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
            shape=(size, size),
        ).tocsc()

    def _ordering(self) -> np.ndarray:
        n = self.number_vertices
        if self._positions:
            pairs = np.array(list(self._positions), dtype=int)
            r = np.concatenate([pairs[:, 0], pairs[:, 1]])
            c = np.concatenate([pairs[:, 1], pairs[:, 0]])
        else:
            r = c = np.empty(0, dtype=int)
        graph = sparse.csr_matrix((np.ones(len(r)), (r, c)), shape=(n, n))
        block_perm = np.asarray(reverse_cuthill_mckee(graph, symmetric_mode=True), dtype=int)
        bs = self.block_size
        return (block_perm[:, None] * bs + np.arange(bs)).ravel()

    def solve(self) -> np.ndarray:
        """Solve ``S x = g`` by a Cholesky factorisation of the reordered matrix."""
        size = self.number_vertices * self.block_size
        if size == 0:
            return np.empty(0)
        perm = self._ordering()
        permuted = self.matrix().tocsr()[perm][:, perm].tocoo()
        upper = permuted.row <= permuted.col
        r, c, d = permuted.row[upper], permuted.col[upper], permuted.data[upper]
        bandwidth = int((c - r).max()) if len(c) else 0
        banded = np.zeros((bandwidth + 1, size))
        np.add.at(banded, (bandwidth + r - c, c), d)
        try:
            factor = cholesky_banded(banded, lower=False)
        except np.linalg.LinAlgError as exc:
            raise NotPositiveDefiniteError("normal matrix is not positive definite") from exc
        solution = np.empty(size)
        solution[perm] = cho_solve_banded((factor, False), self.gradient[perm])
        return solution


def _face_id(item: Any) -> int:
    if isinstance(item, Observation):
        return item.face_id
    return int(item[0])


def local_mappings(
    observations: Iterable[Observation | Sequence[float]], triangles: Any
) -> tuple[dict[int, int], dict[int, int]]:
    """Number the observed triangles and their vertices consecutively.

    Returns ``(vertex_mapping, triangle_mapping)`` from mesh indices to local
    indices, both in order of first appearance.
    """
    faces = np.asarray(triangles, dtype=int).reshape(-1, 3)
    triangle_mapping: dict[int, int] = {}
    vertex_mapping: dict[int, int] = {}
    for item in observations:
        face = _face_id(item)
        if face in triangle_mapping:
            continue
        if not 0 <= face < len(faces):
            raise IndexError(f"observation refers to unknown triangle {face}")
        triangle_mapping[face] = len(triangle_mapping)
        for vertex in faces[face]:
            vertex_mapping.setdefault(int(vertex), len(vertex_mapping))
    return vertex_mapping, triangle_mapping