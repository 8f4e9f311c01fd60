"""The labeled point set: cells of one field (or of several, when merged)."""

import warnings
from typing import Any
from typing import Iterable
from typing import Mapping

import numpy as np
from numpy.typing import NDArray
from pandas import DataFrame

from spatialproximitytoolbox.engine.exceptions import ValidationError
from spatialproximitytoolbox.engine.exceptions import DataIntegrityWarning
from spatialproximitytoolbox.engine.selection import as_selector
from spatialproximitytoolbox.engine.spatial_index import rank_identifiers
from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

REQUIRED_COLUMNS = ('id', 'x', 'y', 'phenotype')
NO_NA_COLUMNS = ('phenotype', 'category', 'field', 'slide')


class PointSet:
    """Labeled 2-D points, backed by a ``pandas.DataFrame``.

    Columns:

    - ``id``: identifier, unique within a field.
    - ``x``, ``y``: coordinates in microns, one origin per field.
    - ``phenotype``: categorical cell type label (may be empty).
    - ``category`` (optional): tissue category label.
    - ``field`` (optional): field/sample identifier. Without it the set is one unnamed field.
    - ``slide`` (optional): higher-level grouping identifier.

    Row order is preserved and defines the positions used by the distance providers.
    """

    def __init__(self, cells: DataFrame, validate: bool = True):
        if validate:
            cells = self._validate(cells)
        self.cells = cells.reset_index(drop=True)
        self.locations: NDArray[np.float64] = self.cells[['x', 'y']].to_numpy(dtype=np.float64)
        self.identifiers: NDArray[np.object_] = self.cells['id'].to_numpy(dtype=object)
        self._identifier_ranks: NDArray[np.int64] | None = None

    @staticmethod
    def _validate(cells: DataFrame) -> DataFrame:
        missing = [column for column in REQUIRED_COLUMNS if column not in cells.columns]
        if missing:
            raise ValidationError(f'Point set is missing required columns: {", ".join(missing)}.')
        table = cells.reset_index(drop=True).copy()
        for column in ('x', 'y'):
            try:
                table[column] = table[column].astype(np.float64)
            except (TypeError, ValueError) as error:
                raise ValidationError(f'Column "{column}" is not numeric: {error}') from error
            if table[column].isna().any() or not np.isfinite(table[column]).all():
                raise ValidationError(f'Column "{column}" has missing or non-finite values.')
        if table['id'].isna().any():
            raise ValidationError('Column "id" has missing values.')
        table['id'] = table['id'].convert_dtypes()

        keys = ['field', 'id'] if 'field' in table.columns else ['id']
        duplicated = table.duplicated(subset=keys, keep=False)
        if duplicated.any():
            examples = ', '.join(map(str, table.loc[duplicated, 'id'].unique()[:5]))
            raise ValidationError(f'Identifiers are not unique within a field: {examples}')

        bad_na_columns = [
            column for column in NO_NA_COLUMNS
            if column in table.columns and table[column].isna().any()
        ]
        if bad_na_columns:
            message = f'Some expected columns have missing data: {", ".join(bad_na_columns)}'
            logger.warning(message)
            warnings.warn(message, DataIntegrityWarning, stacklevel=3)
        return table

    @classmethod
    def from_records(cls,
        records: Iterable[Mapping[str, Any] | tuple],
        field: str | None = None,
        columns: Iterable[str] | None = None,
    ) -> 'PointSet':
        """Tuples are read in the order ``id, x, y, phenotype, category``, unless ``columns``
        says otherwise.
        """
        rows = list(records)
        if rows and not isinstance(rows[0], Mapping):
            names = list(columns) if columns is not None else ['id', 'x', 'y', 'phenotype', 'category']
            cells = DataFrame([tuple(row) for row in rows], columns=names[:len(rows[0])])
        else:
            cells = DataFrame(rows, columns=list(columns) if columns is not None else None)
        if cells.shape[1] == 0:
            cells = DataFrame(columns=list(REQUIRED_COLUMNS))
        if field is not None and 'field' not in cells.columns:
            cells['field'] = field
        return cls(cells)

    def __len__(self) -> int:
        return self.cells.shape[0]

    def __repr__(self) -> str:
        return f'PointSet({len(self)} points, fields={self.fields})'

    @property
    def identifier_ranks(self) -> NDArray[np.int64]:
        """Position of each identifier in sorted identifier order."""
        if self._identifier_ranks is None:
            self._identifier_ranks = rank_identifiers(self.identifiers)
        return self._identifier_ranks

    @property
    def fields(self) -> list:
        if 'field' not in self.cells.columns:
            return []
        return sorted(self.cells['field'].dropna().unique().tolist(), key=str)

    def require_single_field(self) -> Any:
        """Returns the field identifier (``None`` if not recorded).

        Raises:
            ValidationError: if the points come from more than one field.
        """
        fields = self.fields
        if len(fields) > 1:
            shown = ', '.join(map(str, fields[:5]))
            raise ValidationError(f'Data appears to contain multiple samples/fields: {shown}')
        if len(fields) == 0:
            return None
        return fields[0]

    @property
    def field_identifier(self) -> Any:
        return self.require_single_field()

    @property
    def slide_identifier(self) -> str | None:
        if 'slide' not in self.cells.columns:
            return None
        slides = self.cells['slide'].dropna()
        if slides.shape[0] == 0:
            return None
        return str(slides.iloc[0])

    @property
    def phenotypes(self) -> list[str]:
        """Distinct non-empty phenotype labels, sorted."""
        values = self.cells['phenotype'].dropna().astype(str).unique()
        return sorted(value for value in values if value != '')

    def phenotype_mask(self, selector) -> NDArray[np.bool_]:
        return as_selector(selector).select(self.cells['phenotype'])

    def category_mask(self, category: str | None) -> NDArray[np.bool_]:
        """``None`` selects every point. An absent category selects nothing."""
        if category is None:
            return np.ones(len(self), dtype=bool)
        if 'category' not in self.cells.columns:
            return np.zeros(len(self), dtype=bool)
        return self.cells['category'].isin([category]).to_numpy(dtype=bool)

    def categories_mask(self, categories: Iterable[str | None]) -> NDArray[np.bool_]:
        mask = np.zeros(len(self), dtype=bool)
        for category in categories:
            mask |= self.category_mask(category)
        return mask

    def restrict(self, mask: NDArray[np.bool_]) -> 'PointSet':
        return PointSet(self.cells.loc[np.asarray(mask, dtype=bool)], validate=False)

    def split_fields(self) -> dict[Any, 'PointSet']:
        """Per-field point sets, in sorted field order."""
        if 'field' not in self.cells.columns:
            return {None: self}
        grouped = self.cells.groupby('field', sort=False, dropna=False)
        parts = {field: PointSet(table, validate=False) for field, table in grouped}
        return {field: parts[field] for field in sorted(parts.keys(), key=str)}
