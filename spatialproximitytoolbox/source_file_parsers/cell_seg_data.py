"""Reader for inForm cell seg data tables, and conversion to point sets."""

import re
import warnings
from os import PathLike
from pathlib import Path

import numpy as np
import pandas as pd
from pandas import DataFrame
from pandas.api.types import is_numeric_dtype

from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.exceptions import DataIntegrityWarning
from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.standalone_utilities.configuration_settings import \
    cell_seg_data_suffix
from spatialproximitytoolbox.standalone_utilities.configuration_settings import \
    default_pixels_per_micron
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

NA_VALUES = ['NA', '#N/A']
NO_NA_COLUMNS = ['Path', 'Sample Name', 'Tissue Category', 'Phenotype', 'Cell ID', 'Slide ID']
PIXEL_COLUMNS = re.compile(
    r'position|Distance from Process Region Edge|Distance from Tissue Category Edge|axis',
    re.IGNORECASE,
)
AREA_COLUMNS = re.compile(r'area \(pixels\)', re.IGNORECASE)
DENSITY_COLUMNS = re.compile(r'megapixel', re.IGNORECASE)
PERCENT_COLUMNS = re.compile(r'percent|confidence', re.IGNORECASE)
MEAN_UNIT = re.compile(r'Mean( \(.*\))$')

POINT_SET_COLUMNS = {
    'Cell ID': 'id',
    'Cell X Position': 'x',
    'Cell Y Position': 'y',
    'Phenotype': 'phenotype',
    'Tissue Category': 'category',
    'Slide ID': 'slide',
}


def list_cell_seg_files(path: str | PathLike, recursive: bool = False) -> list[str]:
    """Cell seg data files in a directory (or directory hierarchy), in sorted order."""
    base = Path(path)
    pattern = f'*{cell_seg_data_suffix}'
    found = base.rglob(pattern) if recursive else base.glob(pattern)
    return sorted(str(file) for file in found if file.is_file())


def source_name(path: str | PathLike) -> str:
    """Base file name with the ``_cell_seg_data.txt`` suffix removed."""
    name = Path(path).name
    return re.sub(f'_?{re.escape(cell_seg_data_suffix)}$', '', name)


def _mean_columns(df: DataFrame) -> list[str]:
    return [column for column in df.columns if 'Mean' in column]


def _read_table(path: str | PathLike, decimal: str = '.') -> DataFrame:
    return pd.read_csv(path, sep='\t', na_values=NA_VALUES, keep_default_na=False,
                       decimal=decimal, low_memory=False)


def _read_with_decimal_mark(path: str | PathLike) -> DataFrame:
    """Expression columns read as text signal a file written with a comma decimal mark."""
    df = _read_table(path)
    character = [c for c in _mean_columns(df) if not is_numeric_dtype(df[c])]
    if not character:
        return df
    if not df[character[0]].astype(str).str.contains(',').any():
        raise ValidationError('Error reading cell seg data: expression columns have character values')
    logger.info('Reading cell seg data with comma separator.')
    df = _read_table(path, decimal=',')
    if any(not is_numeric_dtype(df[c]) for c in _mean_columns(df)):
        raise ValidationError('Error reading cell seg data: expression columns have character values')
    return df


def remove_common_prefix(values: list[str]) -> list[str]:
    low, high = min(values), max(values)
    if low == high:
        return values
    first_difference = next(
        (i for i, (a, b) in enumerate(zip(low, high)) if a != b),
        min(len(low), len(high)),
    )
    return [value[first_difference:] for value in values]


def remove_extension(value: str) -> str:
    return re.sub(r'\.[^.]+$', '', value)


def unit_is_microns(df: DataFrame) -> bool:
    return any('micron' in column for column in df.columns)


def _numeric(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors='coerce')


def convert_to_microns(df: DataFrame, pixels_per_micron: float) -> DataFrame:
    renames = {}
    for column in df.columns:
        if PIXEL_COLUMNS.search(column):
            df[column] = _numeric(df[column]) / pixels_per_micron
            renames[column] = column.replace('pixels', 'microns')
        elif AREA_COLUMNS.search(column):
            df[column] = _numeric(df[column]) / pixels_per_micron ** 2
            renames[column] = re.sub('pixels', 'square microns', column)
        elif DENSITY_COLUMNS.search(column):
            df[column] = _numeric(df[column]) * pixels_per_micron ** 2
            renames[column] = column.replace('megapixel', 'square mm')
    return df.rename(columns=renames)


def read_cell_seg_data(
    path: str | PathLike,
    pixels_per_micron: float | None = default_pixels_per_micron,
    remove_units: bool = True,
) -> DataFrame:
    """Read and clean an inForm cell seg data file.

    - Warns (``DataIntegrityWarning``) when key columns have missing values.
    - Adds a ``tag`` column, a short unique name per sample, for multi-sample files.
    - Converts percent columns to fractions.
    - Removes columns that are entirely missing or blank.
    - Converts pixel distances, areas and densities to microns, unless the file is already
      in microns or ``pixels_per_micron`` is ``None``.
    - Optionally removes the unit name from expression column names.
    """
    if str(path) == '':
        raise ValidationError('File name is missing.')
    df = _read_with_decimal_mark(path)

    bad_na_columns = [c for c in NO_NA_COLUMNS if c in df.columns and df[c].isna().any()]
    if bad_na_columns:
        message = (f'Some expected columns have missing data: {", ".join(bad_na_columns)}. '
                   f'{path} may be damaged.')
        logger.warning(message)
        warnings.warn(message, DataIntegrityWarning, stacklevel=2)

    if 'Sample Name' in df.columns and df['Sample Name'].nunique() > 1 and 'tag' not in df.columns:
        names = df['Sample Name'].astype(str).tolist()
        df.insert(0, 'tag', pd.Categorical([remove_extension(n) for n in remove_common_prefix(names)]))

    for column in df.columns:
        if PERCENT_COLUMNS.search(column) and not is_numeric_dtype(df[column]):
            cleaned = df[column].astype(str).str.replace(r'\s*%$', '', regex=True) \
                .str.replace(',', '.', regex=False)
            df[column] = _numeric(cleaned) / 100

    blank = [
        column for column in df.columns
        if df[column].isna().all() or (not is_numeric_dtype(df[column])
                                       and df[column].fillna('').astype(str).eq('').all())
    ]
    df = df.drop(columns=blank)

    if pixels_per_micron is not None:
        if unit_is_microns(df):
            logger.info('Data is already in microns, no conversion performed')
        else:
            df = convert_to_microns(df, pixels_per_micron)

    if remove_units:
        units = [m.group(1) for m in map(MEAN_UNIT.search, df.columns) if m is not None]
        if units:
            df = df.rename(columns={c: c.replace(units[0], '') for c in df.columns})
    return df


def point_set_from_cell_seg_data(df: DataFrame) -> PointSet:
    """The point set of a cell seg data table. The field identifier is taken from
    ``Annotation ID`` when present, otherwise ``Sample Name``.
    """
    missing = [c for c in ['Cell ID', 'Cell X Position', 'Cell Y Position', 'Phenotype']
               if c not in df.columns]
    if missing:
        raise ValidationError(f'Cell seg data is missing columns: {", ".join(missing)}')
    columns = {source: target for source, target in POINT_SET_COLUMNS.items() if source in df.columns}
    cells = df[list(columns.keys())].rename(columns=columns)
    field_column = 'Annotation ID' if 'Annotation ID' in df.columns else 'Sample Name'
    if field_column in df.columns:
        cells['field'] = df[field_column].to_numpy()
    cells['phenotype'] = cells['phenotype'].where(cells['phenotype'].isna(),
                                                  cells['phenotype'].astype(str))
    if 'x' in cells.columns:
        cells['x'] = cells['x'].astype(np.float64)
        cells['y'] = cells['y'].astype(np.float64)
    return PointSet(cells)


def read_point_set(path: str | PathLike, **kwargs) -> PointSet:
    """Read a cell seg data file (see :py:func:`read_cell_seg_data`) as a point set."""
    return point_set_from_cell_seg_data(read_cell_seg_data(path, **kwargs))
