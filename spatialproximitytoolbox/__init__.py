"""Spatial Proximity Toolbox python package."""

from spatialproximitytoolbox.standalone_utilities.configuration_settings import get_version
from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.selection import LiteralName
from spatialproximitytoolbox.engine.selection import NameSet
from spatialproximitytoolbox.engine.selection import RuleReference
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.distance import distance_matrix
from spatialproximitytoolbox.engine.nearest import find_nearest_distance
from spatialproximitytoolbox.engine.counting import count_within
from spatialproximitytoolbox.engine.counting import count_within_many
from spatialproximitytoolbox.engine.counting import summarize_by_slide
from spatialproximitytoolbox.engine.batch import BatchResult
from spatialproximitytoolbox.engine.batch import count_within_batch
from spatialproximitytoolbox.engine.batch import find_nearest_distance_batch
from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.engine.exceptions import MissingDependencyError
from spatialproximitytoolbox.engine.exceptions import DataIntegrityWarning
from spatialproximitytoolbox.engine.exceptions import StrategyFallbackWarning
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import read_cell_seg_data
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import read_point_set

__version__ = get_version()

__all__ = [
    'PointSet',
    'LiteralName',
    'NameSet',
    'RuleReference',
    'EngineSettings',
    'distance_matrix',
    'find_nearest_distance',
    'count_within',
    'count_within_many',
    'summarize_by_slide',
    'BatchResult',
    'count_within_batch',
    'find_nearest_distance_batch',
    'ValidationError',
    'MissingDependencyError',
    'DataIntegrityWarning',
    'StrategyFallbackWarning',
    'read_cell_seg_data',
    'read_point_set',
]
