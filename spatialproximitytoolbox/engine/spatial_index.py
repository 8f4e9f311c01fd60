"""Spatial index over all the points of one field, queried for subsets of them."""

from importlib import import_module

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.distance import cdist  # type: ignore

from spatialproximitytoolbox.engine.exceptions import MissingDependencyError
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

RadiusHits = list[tuple[NDArray[np.int64], NDArray[np.float64]]]


def euclidean_distances(
    locations1: NDArray[np.float64],
    locations2: NDArray[np.float64],
) -> NDArray[np.float64]:
    """All distances between two sets of locations. Both distance strategies use this, so
    their values agree exactly.
    """
    if locations1.shape[0] == 0 or locations2.shape[0] == 0:
        return np.zeros((locations1.shape[0], locations2.shape[0]), dtype=np.float64)
    return cdist(locations1, locations2, metric='euclidean')


def rank_identifiers(identifiers: NDArray[np.object_]) -> NDArray[np.int64]:
    """Rank of each identifier in sorted order, ties broken by position.

    Identifiers of mixed, mutually unorderable types (e.g. ``1`` and ``'b'``) are ordered
    by type name first, then by value.
    """
    try:
        order = np.argsort(identifiers, kind='stable')
    except TypeError:
        order = np.array(
            sorted(range(len(identifiers)),
                   key=lambda i: (type(identifiers[i]).__name__, identifiers[i])),
            dtype=np.int64,
        )
    ranks = np.empty(len(identifiers), dtype=np.int64)
    ranks[order] = np.arange(len(identifiers), dtype=np.int64)
    return ranks


def load_ball_tree():
    try:
        neighbors = import_module('sklearn.neighbors')
    except ModuleNotFoundError as error:
        raise MissingDependencyError(error) from error
    return neighbors.BallTree


class SpatialIndex:
    """A ``BallTree`` over every point of a field.

    Queries are restricted to a subset of the indexed points with a boolean mask. Candidate
    distances reported by the tree are recomputed with :py:func:`euclidean_distances`, and
    the tree is searched with a small slack so that boundary points are never lost to
    rounding.
    """
    slack = 1e-9

    def __init__(self, locations: NDArray[np.float64], identifiers: NDArray[np.object_], tree):
        self.locations = locations
        self.identifiers = identifiers
        self.ranks = rank_identifiers(identifiers)
        self.tree = tree

    @classmethod
    def build(cls, locations: NDArray[np.float64], identifiers: NDArray[np.object_]) -> 'SpatialIndex':
        """
        Raises:
            MissingDependencyError: if scikit-learn is not installed.
        """
        ball_tree = load_ball_tree()
        tree = ball_tree(locations) if locations.shape[0] > 0 else None
        logger.debug('Built spatial index over %s points.', locations.shape[0])
        return cls(locations, identifiers, tree)

    def __len__(self) -> int:
        return self.locations.shape[0]

    def _padded(self, radius: float) -> float:
        return radius * (1 + self.slack) + self.slack

    def query_radius(self,
        points: NDArray[np.float64],
        radius: float,
        subset: NDArray[np.bool_] | None = None,
    ) -> RadiusHits:
        """For each query point, the positions of indexed points (within ``subset``) at
        distance at most ``radius``, and those distances. Positions are in increasing order.
        """
        empty = (np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.float64))
        if points.shape[0] == 0:
            return []
        if self.tree is None:
            return [empty for _ in range(points.shape[0])]
        candidates_list = self.tree.query_radius(points, self._padded(radius), return_distance=False)
        hits: RadiusHits = []
        for point, candidates in zip(points, candidates_list):
            candidates = np.sort(candidates.astype(np.int64))
            if subset is not None:
                candidates = candidates[subset[candidates]]
            if candidates.size == 0:
                hits.append(empty)
                continue
            distances = euclidean_distances(point[np.newaxis, :], self.locations[candidates])[0]
            keep = distances <= radius
            hits.append((candidates[keep], distances[keep]))
        return hits

    def query_nearest(self,
        points: NDArray[np.float64],
        query_identifiers: NDArray[np.object_],
        subset: NDArray[np.bool_] | None = None,
    ) -> tuple[NDArray[np.float64], NDArray[np.int64]]:
        """Nearest indexed point (within ``subset``) to each query point, excluding any
        indexed point with the same identifier as the query point.

        Ties at the minimal distance go to the lowest identifier. Returns distances (NaN when
        there is no candidate) and positions (-1 when there is no candidate).

        The number of neighbors requested from the tree grows until the candidates include
        every point tied at the minimal distance.
        """
        number_queries = points.shape[0]
        distances = np.full(number_queries, np.nan, dtype=np.float64)
        positions = np.full(number_queries, -1, dtype=np.int64)
        size = len(self)
        if subset is None:
            subset = np.ones(size, dtype=bool)
        subset_size = int(np.count_nonzero(subset))
        if number_queries == 0 or subset_size == 0 or self.tree is None:
            return distances, positions

        k = min(size, max(4, 2 * int(np.ceil(size / subset_size)) + 1))
        pending = np.arange(number_queries)
        while pending.size > 0:
            approximate, found = self.tree.query(points[pending], k=k, return_distance=True,
                                                 sort_results=True)
            incomplete = []
            for row, query in enumerate(pending):
                candidates = found[row].astype(np.int64)
                allowed = subset[candidates] & (self.identifiers[candidates] != query_identifiers[query])
                candidates = candidates[allowed]
                if candidates.size == 0:
                    if k < size:
                        incomplete.append(query)
                    continue
                exact = euclidean_distances(points[query][np.newaxis, :], self.locations[candidates])[0]
                best = exact.min()
                if k < size and approximate[row, -1] <= self._padded(best):
                    incomplete.append(query)
                    continue
                tied = candidates[exact == best]
                distances[query] = best
                positions[query] = tied[np.argmin(self.ranks[tied])]
            pending = np.array(incomplete, dtype=np.int64)
            k = min(size, 2 * k)
        return distances, positions
