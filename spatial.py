"""
Spatial index for EvoSim.

The world is a torus of width x height world units. SpatialGrid buckets
points into uniform cells so "everything within r of p" only looks at the
cells the query circle can touch. A grid is rebuilt once per tick from a
snapshot and is read-only afterwards, so any number of worker threads may
query it at once.
"""

import math

import numpy as np

from config import GRID_CELL_SIZE


def wrap(x: float, y: float, width: float, height: float) -> tuple:
    """Fold a point back onto the torus."""
    return x % width, y % height


def torus_delta(ax: float, ay: float, bx: float, by: float,
                width: float, height: float) -> tuple:
    """Shortest (dx, dy) from a to b on the torus."""
    dx = (bx - ax + width / 2.0) % width - width / 2.0
    dy = (by - ay + height / 2.0) % height - height / 2.0
    return dx, dy


class SpatialGrid:
    """
    Uniform bucket grid over point positions.

    Points are referred to by their row in the arrays handed to rebuild();
    query() returns those rows plus their toroidal distances.
    """

    def __init__(self, width: float, height: float, cell_size: float = GRID_CELL_SIZE):
        self.width  = float(width)
        self.height = float(height)
        self.cols   = max(1, int(math.ceil(self.width / cell_size)))
        self.rows   = max(1, int(math.ceil(self.height / cell_size)))
        self.cell_w = self.width / self.cols
        self.cell_h = self.height / self.rows
        self.rebuild(np.empty(0), np.empty(0))

    def __len__(self):
        return len(self._xs)

    # ──────────────────────────────────────────────────────────────────────────

    def rebuild(self, xs, ys):
        """Re-bucket all points. The stored arrays are frozen afterwards."""
        xs = np.array(xs, dtype=np.float64) % self.width
        ys = np.array(ys, dtype=np.float64) % self.height
        cx = np.minimum((xs / self.cell_w).astype(np.int64), self.cols - 1)
        cy = np.minimum((ys / self.cell_h).astype(np.int64), self.rows - 1)
        cells = cy * self.cols + cx
        order = np.argsort(cells, kind="stable")
        starts = np.searchsorted(cells[order], np.arange(self.cols * self.rows + 1))
        for arr in (xs, ys, order, starts):
            arr.setflags(write=False)
        self._xs, self._ys = xs, ys
        self._order, self._starts = order, starts

    def _span(self, centre: int, radius: float, cell: float, count: int) -> list:
        reach = int(math.ceil(radius / cell))
        if 2 * reach + 1 >= count:
            return list(range(count))
        return [(centre + d) % count for d in range(-reach, reach + 1)]

    def query(self, x: float, y: float, radius: float) -> tuple:
        """
        All points within `radius` of (x, y).
        Returns (rows, distances) as numpy arrays, in bucket order.
        """
        if len(self._xs) == 0:
            return np.empty(0, dtype=np.int64), np.empty(0)
        x %= self.width
        y %= self.height
        col = min(int(x / self.cell_w), self.cols - 1)
        row = min(int(y / self.cell_h), self.rows - 1)
        chunks = []
        for r in self._span(row, radius, self.cell_h, self.rows):
            base = r * self.cols
            for c in self._span(col, radius, self.cell_w, self.cols):
                lo, hi = self._starts[base + c], self._starts[base + c + 1]
                if hi > lo:
                    chunks.append(self._order[lo:hi])
        if not chunks:
            return np.empty(0, dtype=np.int64), np.empty(0)
        cand = np.concatenate(chunks)
        dx = np.abs(self._xs[cand] - x)
        dy = np.abs(self._ys[cand] - y)
        dx = np.minimum(dx, self.width - dx)
        dy = np.minimum(dy, self.height - dy)
        dist = np.hypot(dx, dy)
        hit = dist <= radius
        return cand[hit], dist[hit]
