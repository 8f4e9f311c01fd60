"""Nearest cell of each phenotype, for every cell in a field."""

from typing import Iterable
from typing import Mapping

import numpy as np
import pandas as pd
from pandas import DataFrame

from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.selection import NamedSelector
from spatialproximitytoolbox.engine.selection import PhenotypeRules
from spatialproximitytoolbox.engine.selection import entry_names
from spatialproximitytoolbox.engine.distance import DistanceProvider
from spatialproximitytoolbox.engine.distance import DistanceRelation
from spatialproximitytoolbox.engine.distance import as_distance_provider
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)


def distance_column(phenotype: str) -> str:
    return f'distance to {phenotype}'


def identifier_column(phenotype: str) -> str:
    return f'nearest {phenotype} id'


def clean_phenotypes(phenotypes) -> list:
    if isinstance(phenotypes, str):
        return [phenotypes]
    if not isinstance(phenotypes, Iterable):
        raise ValidationError(f'Not a list of phenotypes: {phenotypes!r}')
    cleaned = list(phenotypes)
    if len(cleaned) == 0:
        raise ValidationError('No phenotypes requested.')
    return cleaned


def resolve_targets(
    point_set: PointSet,
    phenotypes=None,
    phenotype_rules: Mapping[str, object] | None = None,
) -> list[NamedSelector]:
    """Requested phenotypes, by default every phenotype present plus every rule name."""
    if phenotypes is None:
        defaults = point_set.phenotypes
        extra = [name for name in (phenotype_rules or {}) if name not in defaults]
        entries = defaults + extra
    else:
        entries = clean_phenotypes(phenotypes)
    rules = PhenotypeRules.create(entry_names(entries), phenotype_rules)
    targets = [rules.resolve(entry) for entry in entries]
    names = [target.name for target in targets]
    if len(set(names)) != len(names):
        raise ValidationError(f'Requested phenotype names are not distinct: {names}')
    return targets


def find_nearest_distance(
    point_set: PointSet,
    phenotypes=None,
    phenotype_rules: Mapping[str, object] | None = None,
    settings: EngineSettings | None = None,
    distances: DistanceProvider | DistanceRelation | None = None,
) -> DataFrame:
    """For each cell and each requested phenotype, the distance to the nearest other cell
    of that phenotype and its identifier.

    The cell itself is excluded by identifier; a different cell at the same location is a
    neighbor at distance 0. Among cells at the same minimal distance the one with the lowest
    identifier is reported.

    Returns:
        One row per cell, in point set order: ``id``, then ``distance to <phenotype>``
        (``Float64``) and ``nearest <phenotype> id`` for each phenotype. Both are
        ``pandas.NA`` when there is no other cell of the phenotype.

    Raises:
        ValidationError: for multi-field data or unresolvable phenotype rules.
    """
    point_set.require_single_field()
    targets = resolve_targets(point_set, phenotypes, phenotype_rules)
    provider = as_distance_provider(distances, point_set, settings)
    source = np.arange(len(point_set), dtype=np.int64)
    identifiers = point_set.cells['id'].array

    result = DataFrame({'id': point_set.cells['id']})
    for target in targets:
        target_positions = np.flatnonzero(target.select(point_set.cells['phenotype']))
        nearest_distances, nearest_positions = provider.nearest(source, target_positions)
        missing = nearest_positions < 0
        result[distance_column(target.name)] = pd.arrays.FloatingArray(
            np.where(missing, 0.0, nearest_distances),
            missing,
        )
        result[identifier_column(target.name)] = identifiers.take(nearest_positions, allow_fill=True)
        logger.debug('Nearest %s found for %s of %s cells.', target.name,
                     int(np.count_nonzero(~missing)), len(point_set))
    return result
