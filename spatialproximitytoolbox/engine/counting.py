"""Counts of cells within a radius, for one field and for many combinations in one field."""

from math import isfinite
from typing import Iterable
from typing import Mapping
from typing import Sequence

import numpy as np
import pandas as pd
from pandas import DataFrame
from pandas import concat
from pydantic import BaseModel  # pylint: disable=no-name-in-module

from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.selection import Combination
from spatialproximitytoolbox.engine.selection import Selector
from spatialproximitytoolbox.engine.selection import as_selector
from spatialproximitytoolbox.engine.selection import build_combinations
from spatialproximitytoolbox.engine.selection import clean_category
from spatialproximitytoolbox.engine.distance import DistanceProvider
from spatialproximitytoolbox.engine.distance import DistanceRelation
from spatialproximitytoolbox.engine.distance import as_distance_provider
from spatialproximitytoolbox.engine.distance import get_distance_provider
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.settings import resolve_settings
from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

RADIUS_COUNT_DTYPES = {
    'radius': 'float64',
    'from_count': 'Int64',
    'to_count': 'Int64',
    'from_with': 'Int64',
    'within_mean': 'Float64',
}
RADIUS_COUNT_COLUMNS = list(RADIUS_COUNT_DTYPES.keys())
COMBINATION_COLUMNS = ['category', 'from', 'to']


class RadiusCountRecord(BaseModel):
    """Counts for one radius. ``within_mean`` is ``None`` when there are no from or no to
    cells: the mean is undefined, not zero.
    """
    radius: float
    from_count: int
    to_count: int
    from_with: int
    within_mean: float | None


def validate_radii(radius: float | Iterable[float]) -> tuple[float, ...]:
    if isinstance(radius, (int, float, np.number)):
        values = [radius]
    else:
        values = list(radius)
    if len(values) == 0:
        raise ValidationError('At least one radius is required.')
    try:
        radii = tuple(float(value) for value in values)
    except (TypeError, ValueError) as error:
        raise ValidationError(f'Radius values must be numbers: {values!r}') from error
    bad = [value for value in radii if not isfinite(value) or value <= 0]
    if bad:
        raise ValidationError(f'Radius values must be positive: {bad}')
    return radii


def radius_count_records(
    provider: DistanceProvider,
    source: Selector,
    target: Selector,
    radii: Sequence[float],
    category: str | None = None,
) -> list[RadiusCountRecord]:
    point_set = provider.point_set
    in_category = point_set.category_mask(category)
    source_positions = np.flatnonzero(in_category & point_set.phenotype_mask(source))
    target_positions = np.flatnonzero(in_category & point_set.phenotype_mask(target))
    from_count = len(source_positions)
    to_count = len(target_positions)
    if from_count == 0 or to_count == 0:
        return [
            RadiusCountRecord(radius=radius, from_count=from_count, to_count=to_count,
                              from_with=0, within_mean=None)
            for radius in radii
        ]
    counts = provider.count_within(source_positions, target_positions, radii)
    return [
        RadiusCountRecord(
            radius=radius,
            from_count=from_count,
            to_count=to_count,
            from_with=int(np.count_nonzero(within)),
            within_mean=float(np.mean(within)),
        )
        for radius, within in zip(radii, counts)
    ]


def records_to_frame(records: list[RadiusCountRecord], leading: Mapping[str, object] | None = None) -> DataFrame:
    frame = DataFrame(
        [record.model_dump() for record in records],
        columns=RADIUS_COUNT_COLUMNS,
    ).astype(RADIUS_COUNT_DTYPES)
    if leading is not None:
        for position, (column, value) in enumerate(leading.items()):
            frame.insert(position, column, value)
    return frame


def empty_counts_frame(leading_columns: Sequence[str] = ()) -> DataFrame:
    frame = DataFrame(columns=RADIUS_COUNT_COLUMNS).astype(RADIUS_COUNT_DTYPES)
    for position, column in enumerate(leading_columns):
        frame.insert(position, column, pd.Series(dtype=object))
    return frame


def count_within(
    point_set: PointSet,
    from_,
    to,
    radius: float | Iterable[float],
    category: str | None = None,
    distances: DistanceProvider | DistanceRelation | None = None,
    settings: EngineSettings | None = None,
) -> DataFrame:
    """Count the ``from`` cells having ``to`` cells within ``radius``, in a single field.

    For each from cell, the number of to cells at distance ``0 < d <= radius`` is counted.
    ``from_with`` is the number of from cells with at least one, ``within_mean`` is the mean
    of the counts over all from cells.

    The result is not symmetric in ``from`` and ``to``, but ``from_count * within_mean`` (the
    number of directed from-to adjacencies) is.

    Args:
        point_set: Cells of one field.
        from_: Selector for the from cells: a phenotype name, a collection of names, or a
            selector object.
        to: Selector for the to cells.
        radius: The radius or radii to search within, in microns.
        category: Optional tissue category restricting both from and to cells.
        distances: Optional precomputed distances for ``point_set``, a provider or the
            result of :py:func:`distance_matrix`.
        settings: Engine settings (distance strategy).

    Returns:
        One row per radius, columns ``radius``, ``from_count``, ``to_count``, ``from_with``,
        ``within_mean``. ``within_mean`` is ``pandas.NA`` when either cell set is empty.

    Raises:
        ValidationError: for multi-field data, non-positive radii, or a category list.
    """
    point_set.require_single_field()
    radii = validate_radii(radius)
    category = clean_category(category)
    provider = as_distance_provider(distances, point_set, settings)
    records = radius_count_records(provider, as_selector(from_), as_selector(to), radii, category)
    return records_to_frame(records)


def count_combinations(
    point_set: PointSet,
    combinations: Sequence[Combination],
    radii: Sequence[float],
    settings: EngineSettings | None = None,
    source: object = None,
) -> DataFrame:
    """Counts for every combination and radius in one field, with one shared distance
    provider. Rows are ordered by combination, then radius.
    """
    if len(combinations) == 0:
        raise ValidationError('The combination list is empty.')
    field_identifier = point_set.require_single_field()
    if source is None:
        source = field_identifier
    slide = point_set.slide_identifier

    categories = {combination.category for combination in combinations}
    if None not in categories:
        point_set = point_set.restrict(point_set.categories_mask(categories))
    provider = get_distance_provider(point_set, settings)
    logger.debug('Counting %s combinations in %s with the %s strategy.', len(combinations),
                 source, provider.strategy)

    frames = []
    for combination in combinations:
        records = radius_count_records(
            provider,
            combination.source.selector,
            combination.target.selector,
            radii,
            combination.category,
        )
        frames.append(records_to_frame(records, leading={
            'category': combination.category_label,
            'from': combination.source.name,
            'to': combination.target.name,
        }))
    counts = concat(frames, ignore_index=True)
    counts.insert(0, 'source', source)
    if slide is not None:
        counts.insert(0, 'slide_id', slide)
    return counts


def count_within_many(
    point_set: PointSet,
    pairs,
    radius: float | Iterable[float],
    category=None,
    phenotype_rules: Mapping[str, object] | None = None,
    settings: EngineSettings | None = None,
) -> DataFrame:
    """Counts for several phenotype pairs and tissue categories in a single field.

    Args:
        point_set: Cells of one field.
        pairs: A list of (from, to) pairs, or a single pair.
        radius: The radius or radii to search within.
        category: A tissue category, a list of them, or ``None`` for all cells.
        phenotype_rules: Optional mapping from names used in ``pairs`` to selectors, e.g.
            ``{'T cell': ['CD8+', 'FoxP3+']}``.
        settings: Engine settings.

    Returns:
        Columns ``slide_id`` (when available), ``source``, ``category``, ``from``, ``to``, then
        the columns of :py:func:`count_within`.
    """
    settings = resolve_settings(settings)
    combinations = build_combinations(pairs, category, phenotype_rules)
    radii = validate_radii(radius)
    name = point_set.require_single_field()
    if settings.verbose:
        logger.info('Processing %s', name)
    return count_combinations(point_set, combinations, radii, settings=settings, source=name)


def summarize_by_slide(counts: DataFrame, by: Sequence[str] = ('slide_id',)) -> DataFrame:
    """Aggregate per-field counts over fields, e.g. by slide.

    ``within_mean`` is recomputed as the summed directed adjacency count divided by the summed
    ``from_count``; it is ``pandas.NA`` when the aggregated from or to count is zero.
    """
    keys = list(by) + COMBINATION_COLUMNS + ['radius']
    missing = [key for key in keys if key not in counts.columns]
    if missing:
        raise ValidationError(f'Counts table is missing columns: {", ".join(missing)}')
    frame = counts.copy()
    frame['within'] = frame['from_count'].astype('Float64') * frame['within_mean'].astype('Float64')
    summary = frame.groupby(keys, sort=False, dropna=False).agg(
        from_count=('from_count', 'sum'),
        to_count=('to_count', 'sum'),
        from_with=('from_with', 'sum'),
        within=('within', 'sum'),
    ).reset_index()
    undefined = (summary['from_count'] == 0) | (summary['to_count'] == 0)
    within_mean = summary['within'] / summary['from_count'].astype('Float64')
    summary['within_mean'] = within_mean.mask(undefined.astype(bool), pd.NA).astype('Float64')
    return summary.drop(columns=['within']).astype({
        'from_count': 'Int64', 'to_count': 'Int64', 'from_with': 'Int64',
    })
