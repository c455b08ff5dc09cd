"""
k-d tree for nearest neighbor and radius queries over 3-D positions.

The tree is stored implicitly in a permutation of the point indices: the
subrange ``[lo, hi)`` is sorted along the split axis of its depth (x, y, z,
x, ...) and its median ``(lo + hi) // 2`` is the node, with the left and right
halves as children. Subranges of at most ``leaf_size`` points are not split
further and are scanned with vectorized distance computations.
"""
import heapq
from typing import List, NamedTuple

import numpy as np

from .errors import InvalidInputError


class Neighbor(NamedTuple):
    index: int
    squared_distance: float


class KDTree:
    def __init__(self, positions, leaf_size=16):
        """
        Build the tree over a private copy of ``positions``.

        Args:
            positions: (N, 3) array-like of point positions
            leaf_size: Largest subrange that is scanned instead of split
        """
        if int(leaf_size) < 1:
            raise InvalidInputError(f"leaf_size must be at least 1, got {leaf_size}")
        self.leaf_size = int(leaf_size)
        self.data = np.array(positions, dtype=np.float64).reshape(-1, 3)
        self._order = np.arange(len(self.data))
        self._build(0, len(self.data), 0)
        self.data.setflags(write=False)
        self._order.setflags(write=False)

    def __len__(self):
        return len(self.data)

    def _build(self, lo, hi, depth):
        if hi - lo <= self.leaf_size:
            return
        idx = self._order[lo:hi]
        # sort by coordinate, ties by input index
        self._order[lo:hi] = idx[np.lexsort((idx, self.data[idx, depth % 3]))]
        mid = (lo + hi) // 2
        self._build(lo, mid, depth + 1)
        self._build(mid + 1, hi, depth + 1)

    @staticmethod
    def _as_query(query):
        q = np.asarray(query, dtype=np.float64).reshape(-1)
        if q.shape != (3,):
            raise InvalidInputError(f"query must be a 3-D point, got shape {np.shape(query)}")
        return q

    def _node(self, q, lo, hi, depth):
        """Split point index, its squared distance to q, and the near/far child ranges."""
        mid = (lo + hi) // 2
        i = int(self._order[mid])
        point = self.data[i]
        d = float(np.dot(point - q, point - q))
        diff = float(q[depth % 3] - point[depth % 3])
        if diff < 0:
            near, far = (lo, mid), (mid + 1, hi)
        else:
            near, far = (mid + 1, hi), (lo, mid)
        return i, d, diff, near, far

    def _leaf(self, q, lo, hi):
        idx = self._order[lo:hi]
        delta = self.data[idx] - q
        return idx, np.einsum('ij,ij->i', delta, delta)

    # ------------------------------------------------------------------
    # k nearest neighbors
    # ------------------------------------------------------------------
    def k_nearest(self, query, k) -> List[Neighbor]:
        """
        Return up to ``k`` neighbors of ``query``, nearest first.

        Distances are squared Euclidean; equal distances are ordered by
        input index.
        """
        q = self._as_query(query)
        k = int(k)
        if k <= 0 or len(self.data) == 0:
            return []
        # max-heap of the k best as (-distance, -index)
        heap = []
        self._search_knn(q, k, 0, len(self.data), 0, heap)
        best = sorted((-neg_d, -neg_i) for neg_d, neg_i in heap)
        return [Neighbor(int(i), float(d)) for d, i in best]

    @staticmethod
    def _offer(heap, k, d, i):
        if d != d:
            return
        item = (-d, -i)
        if len(heap) < k:
            heapq.heappush(heap, item)
        elif item > heap[0]:
            heapq.heapreplace(heap, item)

    def _search_knn(self, q, k, lo, hi, depth, heap):
        if hi - lo <= self.leaf_size:
            idx, dist = self._leaf(q, lo, hi)
            for i, d in zip(idx.tolist(), dist.tolist()):
                self._offer(heap, k, d, i)
            return
        i, d, diff, near, far = self._node(q, lo, hi, depth)
        self._offer(heap, k, d, i)
        self._search_knn(q, k, near[0], near[1], depth + 1, heap)
        # NaN split coordinates give no bound, so both sides are searched
        if diff != diff or len(heap) < k or diff * diff <= -heap[0][0]:
            self._search_knn(q, k, far[0], far[1], depth + 1, heap)

    # ------------------------------------------------------------------
    # radius search
    # ------------------------------------------------------------------
    def within_radius(self, query, radius) -> List[Neighbor]:
        """
        Return every point whose squared distance to ``query`` is at most
        ``radius ** 2``, in no particular order. A point equal to the query
        is included.
        """
        q = self._as_query(query)
        radius = float(radius)
        if not radius >= 0 or len(self.data) == 0:
            return []
        found = []
        self._search_radius(q, radius * radius, 0, len(self.data), 0, found)
        return found

    def _search_radius(self, q, r2, lo, hi, depth, found):
        if hi - lo <= self.leaf_size:
            idx, dist = self._leaf(q, lo, hi)
            hits = dist <= r2
            found.extend(Neighbor(int(i), float(d)) for i, d in zip(idx[hits], dist[hits]))
            return
        i, d, diff, near, far = self._node(q, lo, hi, depth)
        if d <= r2:
            found.append(Neighbor(i, d))
        self._search_radius(q, r2, near[0], near[1], depth + 1, found)
        if diff != diff or diff * diff <= r2:
            self._search_radius(q, r2, far[0], far[1], depth + 1, found)

    def radius_indices(self, query, radius):
        """Indices of ``within_radius`` as an integer array."""
        return np.fromiter((n.index for n in self.within_radius(query, radius)), dtype=np.intp)
