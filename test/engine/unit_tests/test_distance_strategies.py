import numpy as np
import pandas as pd
import pytest

from spatialproximitytoolbox.engine import spatial_index
from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.counting import count_within_many
from spatialproximitytoolbox.engine.nearest import find_nearest_distance
from spatialproximitytoolbox.engine.distance import DenseDistanceProvider
from spatialproximitytoolbox.engine.distance import IndexedDistanceProvider
from spatialproximitytoolbox.engine.distance import get_distance_provider
from spatialproximitytoolbox.engine.spatial_index import SpatialIndex
from spatialproximitytoolbox.engine.exceptions import MissingDependencyError
from spatialproximitytoolbox.engine.exceptions import StrategyFallbackWarning

DENSE = EngineSettings(strategy='dense', verbose=False)
INDEXED = EngineSettings(strategy='indexed', verbose=False)


def random_point_set(seed: int, size: int, on_grid: bool) -> PointSet:
    generator = np.random.default_rng(seed)
    if on_grid:
        locations = generator.integers(0, 12, size=(size, 2)).astype(float)
    else:
        locations = generator.uniform(0, 100, size=(size, 2))
    phenotypes = generator.choice(['X', 'Y', 'Z'], size, p=[0.6, 0.3, 0.1])
    categories = generator.choice(['Tumor', 'Stroma'], size)
    identifiers = generator.permutation(size) + 1000
    return PointSet.from_records([
        (int(identifier), x, y, str(phenotype), str(category))
        for identifier, (x, y), phenotype, category
        in zip(identifiers, locations, phenotypes, categories)
    ])


@pytest.mark.parametrize('seed', [0, 1, 2, 3])
@pytest.mark.parametrize('on_grid', [True, False])
def test_counts_agree(seed, on_grid):
    point_set = random_point_set(seed, 120, on_grid)
    pairs = [('X', 'Y'), ('Y', 'X'), ('X', 'X'), ('Z', 'Y'), ('X', 'W'), ('W', 'X')]
    radii = [0.5, 1, 2, 5, 25]
    arguments = (point_set, pairs, radii)
    for category in [None, ['Tumor', 'Stroma']]:
        dense = count_within_many(*arguments, category=category, settings=DENSE)
        indexed = count_within_many(*arguments, category=category, settings=INDEXED)
        columns = ['category', 'from', 'to', 'radius', 'from_count', 'to_count', 'from_with']
        pd.testing.assert_frame_equal(dense[columns], indexed[columns])
        assert np.allclose(
            dense['within_mean'].to_numpy(dtype=float, na_value=np.nan),
            indexed['within_mean'].to_numpy(dtype=float, na_value=np.nan),
            equal_nan=True,
        )


@pytest.mark.parametrize('seed', [0, 1, 2, 3])
@pytest.mark.parametrize('on_grid', [True, False])
def test_nearest_agrees(seed, on_grid):
    point_set = random_point_set(seed, 120, on_grid)
    dense = find_nearest_distance(point_set, ['X', 'Y', 'Z', 'W'], settings=DENSE)
    indexed = find_nearest_distance(point_set, ['X', 'Y', 'Z', 'W'], settings=INDEXED)
    pd.testing.assert_frame_equal(dense, indexed)


def test_spatial_index_radius_query():
    locations = np.array([[0.0, 0.0], [3.0, 4.0], [6.0, 8.0], [0.0, 1.0]])
    index = SpatialIndex.build(locations, np.array(['a', 'b', 'c', 'd'], dtype=object))
    hits = index.query_radius(np.array([[0.0, 0.0]]), 5.0)
    positions, distances = hits[0]
    assert positions.tolist() == [0, 1, 3]
    assert distances.tolist() == [0.0, 5.0, 1.0]
    subset = np.array([False, True, True, False])
    positions, _ = index.query_radius(np.array([[0.0, 0.0]]), 5.0, subset=subset)[0]
    assert positions.tolist() == [1]


def test_empty_index():
    index = SpatialIndex.build(np.zeros((0, 2)), np.zeros(0, dtype=object))
    distances, positions = index.query_nearest(np.array([[0.0, 0.0]]), np.array(['a'], dtype=object))
    assert np.isnan(distances[0])
    assert positions[0] == -1


def test_provider_kinds(four_points):
    assert isinstance(get_distance_provider(four_points, DENSE), DenseDistanceProvider)
    assert isinstance(get_distance_provider(four_points, INDEXED), IndexedDistanceProvider)


def test_fallback_when_index_unavailable(four_points, monkeypatch):
    def unavailable():
        raise MissingDependencyError(ModuleNotFoundError("No module named 'sklearn'", name='sklearn'))

    monkeypatch.setattr(spatial_index, 'load_ball_tree', unavailable)
    with pytest.warns(StrategyFallbackWarning):
        provider = get_distance_provider(four_points, INDEXED)
    assert provider.strategy == 'dense'
    with pytest.warns(StrategyFallbackWarning):
        counts = count_within_many(four_points, [('X', 'Y')], 5, settings=INDEXED)
    assert counts['within_mean'].tolist() == [0.5]


def test_missing_dependency_message():
    error = MissingDependencyError(ModuleNotFoundError("No module named 'sklearn'", name='sklearn'))
    assert isinstance(error, ModuleNotFoundError)
    assert 'spatialproximitytoolbox[index]' in str(error)
    assert error.name == 'sklearn'


def test_rank_identifiers_mixed_types():
    identifiers = np.array(['b', 2, 'a', 1], dtype=object)
    assert spatial_index.rank_identifiers(identifiers).tolist() == [3, 1, 2, 0]
    assert spatial_index.rank_identifiers(np.array([30, 10, 20], dtype=object)).tolist() == [2, 0, 1]


@pytest.mark.parametrize('seed', [0, 1, 2])
def test_per_point_counts_never_decrease(seed):
    point_set = random_point_set(seed, 150, on_grid=seed % 2 == 0)
    generator = np.random.default_rng(seed + 100)
    phenotypes = point_set.cells['phenotype']
    source = np.flatnonzero(phenotypes.isin(['X']).to_numpy())
    target = np.flatnonzero(phenotypes.isin(['Y', 'Z']).to_numpy())
    providers = [DenseDistanceProvider(point_set), IndexedDistanceProvider(point_set)]
    for _ in range(10):
        r1, r2 = np.sort(generator.uniform(0.1, 30, 2))
        results = [provider.count_within(source, target, [r1, r2]) for provider in providers]
        for counts in results:
            assert counts.shape == (2, len(source))
            assert (counts[1] >= counts[0]).all()
        assert np.array_equal(results[0], results[1])
