"""Phenotype selectors, named phenotype rules and the (pair, category) combinations."""

from typing import Iterable
from typing import Mapping
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
import pandas as pd
from pandas import Series
from attrs import define
from attrs import field

from spatialproximitytoolbox.engine.exceptions import ValidationError


@define(frozen=True)
class LiteralName:
    """Exact match on one phenotype label."""
    name: str

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name,)

    def select(self, phenotypes: Series) -> NDArray[np.bool_]:
        return phenotypes.isin([self.name]).to_numpy(dtype=bool)


@define(frozen=True)
class NameSet:
    """Any one of several phenotype labels."""
    names: tuple[str, ...] = field(converter=tuple)

    def select(self, phenotypes: Series) -> NDArray[np.bool_]:
        return phenotypes.isin(list(self.names)).to_numpy(dtype=bool)


@define(frozen=True)
class RuleReference:
    """A pseudo-phenotype (e.g. "T cell") standing for a concrete selector."""
    name: str
    selector: LiteralName | NameSet | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return self._require_selector().names

    def select(self, phenotypes: Series) -> NDArray[np.bool_]:
        return self._require_selector().select(phenotypes)

    def _require_selector(self) -> LiteralName | NameSet:
        if self.selector is None:
            raise ValidationError(f'Phenotype rule "{self.name}" has no definition.')
        return self.selector


Selector = LiteralName | NameSet | RuleReference
SELECTOR_TYPES = (LiteralName, NameSet, RuleReference)


def as_selector(value) -> Selector:
    """A string is a literal name; a collection of strings is a name set."""
    if isinstance(value, SELECTOR_TYPES):
        return value
    if isinstance(value, str):
        return LiteralName(value)
    if isinstance(value, Iterable):
        names = tuple(value)
        if len(names) == 0 or not all(isinstance(name, str) for name in names):
            raise ValidationError(f'Not a phenotype selector: {value!r}')
        if len(names) == 1:
            return LiteralName(names[0])
        return NameSet(names)
    raise ValidationError(f'Not a phenotype selector: {value!r}')


def selector_name(value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (LiteralName, RuleReference)):
        return value.name
    return '/'.join(as_selector(value).names)


@define(frozen=True)
class NamedSelector:
    """A concrete selector and the display name reported in result tables."""
    name: str
    selector: Selector

    def select(self, phenotypes: Series) -> NDArray[np.bool_]:
        return self.selector.select(phenotypes)


class PhenotypeRules:
    """Named rules, resolved once for every name used in a batch."""

    def __init__(self, rules: dict[str, LiteralName | NameSet]):
        self.rules = rules

    @classmethod
    def create(cls,
        names: Iterable[str],
        phenotype_rules: Mapping[str, object] | None = None,
    ) -> 'PhenotypeRules':
        """
        Args:
            names: Every phenotype name used by the caller (pair entries, targets).
            phenotype_rules: Rule name to selector (a name, a collection of names, a
                ``LiteralName`` or a ``NameSet``).

        Raises:
            ValidationError: if a rule is not used by any name, or a rule value is not a
                concrete selector.
        """
        if phenotype_rules is None:
            return cls({})
        if not isinstance(phenotype_rules, Mapping):
            raise ValidationError('phenotype_rules must be a mapping of names to selectors.')
        used = set(names)
        unused = [name for name in phenotype_rules.keys() if name not in used]
        if unused:
            raise ValidationError(f'phenotype_rules has unused names: {", ".join(map(str, unused))}')
        rules = {}
        for name, value in phenotype_rules.items():
            if isinstance(value, RuleReference):
                raise ValidationError(f'Rule "{name}" refers to another rule, "{value.name}".')
            rules[name] = as_selector(value)
        return cls(rules)

    def resolve(self, entry) -> NamedSelector:
        """A string naming a rule becomes a resolved ``RuleReference``, any other string a
        ``LiteralName``. An explicit ``RuleReference`` must have a rule.
        """
        if isinstance(entry, RuleReference):
            if entry.selector is not None:
                return NamedSelector(entry.name, entry)
            if entry.name not in self.rules:
                raise ValidationError(f'Phenotype rule "{entry.name}" has no definition.')
            return NamedSelector(entry.name, RuleReference(entry.name, self.rules[entry.name]))
        if isinstance(entry, str) and entry in self.rules:
            return NamedSelector(entry, RuleReference(entry, self.rules[entry]))
        return NamedSelector(selector_name(entry), as_selector(entry))


def entry_names(entries: Iterable) -> list[str]:
    names = []
    for entry in entries:
        if isinstance(entry, (str, RuleReference)):
            names.append(selector_name(entry))
    return names


@define(frozen=True)
class Combination:
    """One (from, to, category) combination. ``category`` ``None`` means all cells."""
    source: NamedSelector
    target: NamedSelector
    category: str | None = None

    @property
    def category_label(self) -> str:
        return 'all' if self.category is None else self.category


def _is_atomic(entry) -> bool:
    return isinstance(entry, (str,) + SELECTOR_TYPES)


def clean_pairs(pairs) -> list[tuple[object, object]]:
    """A single pair may be given on its own, as a 2-element sequence of names."""
    if isinstance(pairs, Sequence) and not isinstance(pairs, str) and len(pairs) == 2 \
            and all(_is_atomic(entry) for entry in pairs):
        pairs = [pairs]
    if isinstance(pairs, str) or not isinstance(pairs, Iterable):
        raise ValidationError(f'Not a list of phenotype pairs: {pairs!r}')
    cleaned = []
    for pair in pairs:
        if isinstance(pair, str) or not isinstance(pair, Sequence) or len(pair) != 2:
            raise ValidationError(f'Each phenotype pair must have exactly two entries: {pair!r}')
        cleaned.append((pair[0], pair[1]))
    if len(cleaned) == 0:
        raise ValidationError('No phenotype pairs given; the combination list is empty.')
    return cleaned


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def clean_category(category) -> str | None:
    """A single category restriction, or ``None`` for all cells."""
    if _is_missing(category):
        return None
    if not isinstance(category, str):
        raise ValidationError(f'Category must be a single name or None: {category!r}')
    return category


def clean_categories(category) -> list[str | None]:
    """Raises ValidationError when "all" (None/NA) is mixed with named categories."""
    if _is_missing(category) or isinstance(category, str):
        return [clean_category(category)]
    if not isinstance(category, Iterable):
        raise ValidationError(f'Not a category list: {category!r}')
    categories = [None if _is_missing(value) else value for value in category]
    if len(categories) == 0:
        return [None]
    if any(value is None for value in categories) and not all(value is None for value in categories):
        raise ValidationError('Category argument cannot include both NA and named categories.')
    return [clean_category(value) for value in categories]


def build_combinations(
    pairs,
    category=None,
    phenotype_rules: Mapping[str, object] | None = None,
) -> list[Combination]:
    """The cross product of pairs and categories, pairs varying fastest."""
    cleaned = clean_pairs(pairs)
    categories = clean_categories(category)
    names = entry_names(entry for pair in cleaned for entry in pair)
    rules = PhenotypeRules.create(names, phenotype_rules)
    resolved = [(rules.resolve(source), rules.resolve(target)) for source, target in cleaned]
    return [
        Combination(source, target, category_value)
        for category_value in categories
        for source, target in resolved
    ]
