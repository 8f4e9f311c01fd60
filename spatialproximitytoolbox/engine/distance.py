"""Distance providers: the dense matrix strategy and the spatial index strategy.

Both answer the same two questions about positions in one point set:

- per source point, how many target points lie at distance ``0 < d <= r``;
- per source point, which target point (other than itself) is nearest.
"""

import warnings
from abc import ABC
from abc import abstractmethod
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from attrs import define

from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.settings import resolve_settings
from spatialproximitytoolbox.engine.spatial_index import SpatialIndex
from spatialproximitytoolbox.engine.spatial_index import euclidean_distances
from spatialproximitytoolbox.engine.exceptions import MissingDependencyError
from spatialproximitytoolbox.engine.exceptions import StrategyFallbackWarning
from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

Positions = NDArray[np.int64]


@define(frozen=True, eq=False)
class DistanceRelation:
    """The full matrix of distances between the points of one point set, by position."""
    identifiers: NDArray[np.object_]
    matrix: NDArray[np.float64]

    def subset(self, source: Positions, target: Positions) -> NDArray[np.float64]:
        return self.matrix[np.ix_(source, target)]

    def restrict(self, mask: NDArray[np.bool_]) -> 'DistanceRelation':
        return DistanceRelation(self.identifiers[mask], self.matrix[np.ix_(mask, mask)])


def distance_matrix(point_set: PointSet) -> DistanceRelation:
    locations = point_set.locations
    return DistanceRelation(point_set.identifiers, euclidean_distances(locations, locations))


class DistanceProvider(ABC):
    """Distance computations over the positions of one point set."""
    strategy: str

    def __init__(self, point_set: PointSet):
        self.point_set = point_set

    @abstractmethod
    def count_within(self, source: Positions, target: Positions, radii: Sequence[float]) -> NDArray[np.int64]:
        """Array of shape ``(len(radii), len(source))``. Entry ``(i, j)`` is the number of
        targets at distance ``0 < d <= radii[i]`` from ``source[j]``.
        """

    @abstractmethod
    def nearest(self, source: Positions, target: Positions) -> tuple[NDArray[np.float64], Positions]:
        """Nearest target to each source point, excluding the point with the source point's
        own identifier. Ties go to the lowest identifier. Distances are NaN and positions -1
        where there is no candidate.
        """

    def _target_mask(self, target: Positions) -> NDArray[np.bool_]:
        mask = np.zeros(len(self.point_set), dtype=bool)
        mask[target] = True
        return mask

    def corresponds_to(self, point_set: PointSet) -> bool:
        if point_set is self.point_set:
            return True
        return np.array_equal(point_set.identifiers, self.point_set.identifiers) and \
            np.array_equal(point_set.locations, self.point_set.locations)


class DenseDistanceProvider(DistanceProvider):
    """Materializes the full distance matrix once, then answers every query from sub-blocks
    of it. Quadratic in time and space.
    """
    strategy = 'dense'

    def __init__(self, point_set: PointSet, relation: DistanceRelation | None = None):
        super().__init__(point_set)
        if relation is not None:
            if relation.matrix.shape != (len(point_set), len(point_set)) or \
                    not np.array_equal(relation.identifiers, point_set.identifiers):
                raise ValidationError('Distance matrix does not correspond to the point set.')
        self._relation = relation

    @property
    def relation(self) -> DistanceRelation:
        if self._relation is None:
            logger.debug('Computing %s x %s distance matrix.', len(self.point_set), len(self.point_set))
            self._relation = distance_matrix(self.point_set)
        return self._relation

    def subset(self, source: Positions, target: Positions) -> NDArray[np.float64]:
        return self.relation.subset(source, target)

    def count_within(self, source: Positions, target: Positions, radii: Sequence[float]) -> NDArray[np.int64]:
        counts = np.zeros((len(radii), len(source)), dtype=np.int64)
        if len(source) == 0 or len(target) == 0:
            return counts
        block = self.subset(source, target)
        positive = block > 0
        for i, radius in enumerate(radii):
            counts[i] = np.count_nonzero(positive & (block <= radius), axis=1)
        return counts

    def nearest(self, source: Positions, target: Positions) -> tuple[NDArray[np.float64], Positions]:
        distances = np.full(len(source), np.nan, dtype=np.float64)
        positions = np.full(len(source), -1, dtype=np.int64)
        if len(source) == 0 or len(target) == 0:
            return distances, positions
        ranks = self.point_set.identifier_ranks
        ordered = np.asarray(target)[np.argsort(ranks[target], kind='stable')]
        block = self.subset(source, ordered).copy()
        identifiers = self.point_set.identifiers
        block[identifiers[source][:, np.newaxis] == identifiers[ordered][np.newaxis, :]] = np.inf
        best = np.argmin(block, axis=1)
        found = block[np.arange(len(source)), best]
        valid = np.isfinite(found)
        distances[valid] = found[valid]
        positions[valid] = ordered[best[valid]]
        return distances, positions


class IndexedDistanceProvider(DistanceProvider):
    """Builds one spatial index over the whole point set and answers queries against it,
    restricted to the target subset. Sub-quadratic.
    """
    strategy = 'indexed'

    def __init__(self, point_set: PointSet, index: SpatialIndex | None = None):
        super().__init__(point_set)
        if index is None:
            index = SpatialIndex.build(point_set.locations, point_set.identifiers)
        self.index = index

    def count_within(self, source: Positions, target: Positions, radii: Sequence[float]) -> NDArray[np.int64]:
        counts = np.zeros((len(radii), len(source)), dtype=np.int64)
        if len(source) == 0 or len(target) == 0:
            return counts
        hits = self.index.query_radius(
            self.point_set.locations[source],
            max(radii),
            subset=self._target_mask(target),
        )
        for column, (_, distances) in enumerate(hits):
            positive = distances[distances > 0]
            for i, radius in enumerate(radii):
                counts[i, column] = np.count_nonzero(positive <= radius)
        return counts

    def nearest(self, source: Positions, target: Positions) -> tuple[NDArray[np.float64], Positions]:
        return self.index.query_nearest(
            self.point_set.locations[source],
            self.point_set.identifiers[source],
            subset=self._target_mask(target),
        )


def get_distance_provider(point_set: PointSet, settings: EngineSettings | None = None) -> DistanceProvider:
    """The provider for the configured strategy. A requested spatial index that cannot be
    built (missing library) falls back to the dense strategy with a warning.
    """
    settings = resolve_settings(settings)
    if settings.strategy == 'dense':
        return DenseDistanceProvider(point_set)
    try:
        return IndexedDistanceProvider(point_set)
    except MissingDependencyError as error:
        message = f'Falling back to the dense distance strategy. {error}'
        logger.warning(message)
        warnings.warn(message, StrategyFallbackWarning, stacklevel=2)
        return DenseDistanceProvider(point_set)


def as_distance_provider(
    distances: DistanceProvider | DistanceRelation | None,
    point_set: PointSet,
    settings: EngineSettings | None = None,
) -> DistanceProvider:
    """Reuse precomputed distances for ``point_set`` when given, or build a provider."""
    if distances is None:
        return get_distance_provider(point_set, settings)
    if isinstance(distances, DistanceRelation):
        return DenseDistanceProvider(point_set, relation=distances)
    if isinstance(distances, DistanceProvider):
        if not distances.corresponds_to(point_set):
            raise ValidationError('Distance provider was built for a different point set.')
        return distances
    raise ValidationError(f'Not a distance provider or distance matrix: {type(distances).__name__}')
