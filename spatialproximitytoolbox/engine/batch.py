"""Apply the radius-count and nearest-distance queries over many fields.

Each field is processed independently (optionally in a worker pool). A field that fails is
logged and recorded, and the other fields still produce results.
"""

from multiprocessing import Pool
from os import PathLike
from typing import Any
from typing import Iterable
from typing import Mapping
from typing import Sequence

from pandas import DataFrame
from pandas import concat
from attrs import define
from attrs import field

from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.selection import Combination
from spatialproximitytoolbox.engine.selection import PhenotypeRules
from spatialproximitytoolbox.engine.selection import build_combinations
from spatialproximitytoolbox.engine.selection import entry_names
from spatialproximitytoolbox.engine.counting import COMBINATION_COLUMNS
from spatialproximitytoolbox.engine.counting import count_combinations
from spatialproximitytoolbox.engine.counting import empty_counts_frame
from spatialproximitytoolbox.engine.counting import validate_radii
from spatialproximitytoolbox.engine.nearest import clean_phenotypes
from spatialproximitytoolbox.engine.nearest import find_nearest_distance
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.settings import resolve_settings
from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import list_cell_seg_files
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import read_point_set
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import source_name
from spatialproximitytoolbox.standalone_utilities.fractional_progress_reporter import \
    FractionalProgressReporter
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

FAILURE_COLUMNS = ['source', 'error', 'message']

Sources = str | PathLike | Mapping[Any, PointSet] | PointSet


@define(frozen=True)
class FieldTask:
    """One field to process: a point set in memory, or a file to read it from."""
    source: Any
    point_set: PointSet | None = field(default=None, eq=False)
    path: str | None = None

    def load(self) -> PointSet:
        if self.point_set is not None:
            return self.point_set
        return read_point_set(self.path)


@define(frozen=True)
class FieldFailure:
    source: Any
    error: str
    message: str


@define(frozen=True)
class FieldOutcome:
    source: Any
    table: DataFrame | None = field(default=None, eq=False)
    failure: FieldFailure | None = None


@define(frozen=True)
class BatchResult:
    """Rows of every field that succeeded, in field order, and one record per failed field."""
    table: DataFrame = field(eq=False)
    failures: DataFrame = field(eq=False)
    sources: tuple = ()

    @property
    def failed(self) -> list:
        return self.failures['source'].tolist()

    @property
    def succeeded(self) -> list:
        failed = set(self.failed)
        return [source for source in self.sources if source not in failed]

    @property
    def ok(self) -> bool:
        return self.failures.shape[0] == 0


def collect_field_tasks(sources: Sources) -> list[FieldTask]:
    """Fields of a merged point set are taken in sorted field order, a mapping in its own
    order, and the cell seg data files of a directory in sorted path order.
    """
    if isinstance(sources, PointSet):
        return [
            FieldTask(source=name, point_set=point_set)
            for name, point_set in sources.split_fields().items()
        ]
    if isinstance(sources, Mapping):
        tasks = []
        for name, point_set in sources.items():
            if not isinstance(point_set, PointSet):
                raise ValidationError(f'Source "{name}" is not a point set: {type(point_set).__name__}')
            tasks.append(FieldTask(source=name, point_set=point_set))
        if len(tasks) == 0:
            raise ValidationError('No sources given.')
        return tasks
    if isinstance(sources, (str, PathLike)):
        files = list_cell_seg_files(sources)
        if len(files) == 0:
            raise ValidationError(f'No cell seg data files found in {sources}')
        logger.info('Found %s cell seg data files in %s', len(files), sources)
        return [FieldTask(source=source_name(path), path=path) for path in files]
    raise ValidationError(f'Not a directory, mapping of point sets, or point set: {type(sources).__name__}')


def _insert_source_columns(table: DataFrame, source: Any, point_set: PointSet) -> DataFrame:
    table.insert(0, 'source', source)
    slide = point_set.slide_identifier
    if slide is not None:
        table.insert(0, 'slide_id', slide)
    return table


@define(frozen=True)
class RadiusCountJob:
    combinations: tuple[Combination, ...] = field(converter=tuple)
    radii: tuple[float, ...] = field(converter=tuple)
    settings: EngineSettings

    def __call__(self, source: Any, point_set: PointSet) -> DataFrame:
        return count_combinations(point_set, self.combinations, self.radii,
                                  settings=self.settings, source=source)

    def empty_table(self) -> DataFrame:
        return empty_counts_frame(['slide_id', 'source'] + COMBINATION_COLUMNS)


@define(frozen=True)
class NearestDistanceJob:
    phenotypes: tuple | None
    phenotype_rules: Mapping[str, object] | None = field(eq=False)
    settings: EngineSettings

    def __call__(self, source: Any, point_set: PointSet) -> DataFrame:
        table = find_nearest_distance(point_set, self.phenotypes, self.phenotype_rules,
                                      settings=self.settings)
        return _insert_source_columns(table, source, point_set)

    def empty_table(self) -> DataFrame:
        return DataFrame(columns=['slide_id', 'source', 'id'])


def process_field(task: FieldTask, job: RadiusCountJob | NearestDistanceJob) -> FieldOutcome:
    try:
        point_set = task.load()
        table = job(task.source, point_set)
    except Exception as error:  # pylint: disable=broad-exception-caught
        logger.exception('Failed to process %s: %s', task.source, error)
        failure = FieldFailure(source=task.source, error=type(error).__name__, message=str(error))
        return FieldOutcome(source=task.source, failure=failure)
    return FieldOutcome(source=task.source, table=table)


def run_batch(
    tasks: Sequence[FieldTask],
    job: RadiusCountJob | NearestDistanceJob,
    settings: EngineSettings,
) -> BatchResult:
    """Outcomes are collected in task order whether or not a worker pool is used. The table
    always has a ``slide_id`` column, missing for fields without a slide identifier.
    """
    reporter = FractionalProgressReporter(len(tasks), parts=4, task_description='fields',
                                          logger=logger, verbose=settings.verbose)
    if settings.number_cores > 1 and len(tasks) > 1:
        logger.info('Processing %s fields with %s worker processes.', len(tasks),
                    settings.number_cores)
        with Pool(min(settings.number_cores, len(tasks))) as pool:
            outcomes = pool.starmap(process_field, [(task, job) for task in tasks])
        for outcome in outcomes:
            reporter.increment(iteration_details=str(outcome.source))
    else:
        outcomes = []
        for task in tasks:
            if settings.verbose:
                logger.info('Processing %s', task.source)
            outcomes.append(process_field(task, job))
            reporter.increment(iteration_details=str(task.source))

    tables = [outcome.table for outcome in outcomes if outcome.table is not None]
    failures = [outcome.failure for outcome in outcomes if outcome.failure is not None]
    reporter.done(failures=len(failures))
    if tables:
        table = concat(tables, ignore_index=True)
    else:
        table = job.empty_table()
    slide = table.pop('slide_id') if 'slide_id' in table.columns else None
    table.insert(0, 'slide_id', slide)
    failures_table = DataFrame(
        [[failure.source, failure.error, failure.message] for failure in failures],
        columns=FAILURE_COLUMNS,
    )
    return BatchResult(table=table, failures=failures_table,
                       sources=tuple(task.source for task in tasks))


def count_within_batch(
    sources: Sources,
    pairs,
    radius: float | Iterable[float],
    category=None,
    phenotype_rules: Mapping[str, object] | None = None,
    settings: EngineSettings | None = None,
) -> BatchResult:
    """Counts for every pair, category and radius in every field.

    Args:
        sources: A directory of cell seg data files, a mapping of source names to point
            sets, or a point set with a ``field`` column.
        pairs: A list of (from, to) phenotype pairs, or a single pair.
        radius: The radius or radii to search within, in microns.
        category: A tissue category, a list of them, or ``None`` for all cells.
        phenotype_rules: Optional mapping from names used in ``pairs`` to selectors.
        settings: Engine settings (distance strategy, worker processes, verbosity).

    Returns:
        A ``BatchResult``. The table has columns ``slide_id`` (missing without a slide),
        ``source``, ``category``, ``from``, ``to``, ``radius``, ``from_count``, ``to_count``,
        ``from_with``, ``within_mean``, ordered by field, then combination, then radius.

    Raises:
        ValidationError: for malformed arguments, before any field is processed.
    """
    settings = resolve_settings(settings)
    combinations = build_combinations(pairs, category, phenotype_rules)
    radii = validate_radii(radius)
    tasks = collect_field_tasks(sources)
    job = RadiusCountJob(combinations=combinations, radii=radii, settings=settings)
    return run_batch(tasks, job, settings)


def find_nearest_distance_batch(
    sources: Sources,
    phenotypes=None,
    phenotype_rules: Mapping[str, object] | None = None,
    settings: EngineSettings | None = None,
) -> BatchResult:
    """Nearest distances (see :py:func:`find_nearest_distance`) in every field. The table
    has ``slide_id`` (missing without a slide) and ``source`` columns prepended. Fields lacking some
    default phenotype have missing values in that phenotype's columns.
    """
    settings = resolve_settings(settings)
    if phenotypes is not None:
        phenotypes = tuple(clean_phenotypes(phenotypes))
        PhenotypeRules.create(entry_names(phenotypes), phenotype_rules)
    elif phenotype_rules is not None and not isinstance(phenotype_rules, Mapping):
        raise ValidationError('phenotype_rules must be a mapping of names to selectors.')
    tasks = collect_field_tasks(sources)
    job = NearestDistanceJob(phenotypes=phenotypes, phenotype_rules=phenotype_rules,
                             settings=settings)
    return run_batch(tasks, job, settings)
