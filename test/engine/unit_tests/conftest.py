import pytest

from spatialproximitytoolbox.engine.point_set import PointSet
from spatialproximitytoolbox.engine.settings import EngineSettings


@pytest.fixture(params=['dense', 'indexed'])
def settings(request):
    return EngineSettings(strategy=request.param, verbose=False)


@pytest.fixture
def four_points():
    return PointSet.from_records([
        ('A1', 0.0, 0.0, 'X'),
        ('A2', 10.0, 0.0, 'X'),
        ('B1', 3.0, 0.0, 'Y'),
        ('B2', 100.0, 0.0, 'Y'),
    ])


@pytest.fixture
def two_slides():
    """Field f1 has X and Y cells, f2 and f3 have no Y cells."""
    return PointSet.from_records(
        [
            {'id': 1, 'x': 0.0, 'y': 0.0, 'phenotype': 'X', 'field': 'f1', 'slide': 's1'},
            {'id': 2, 'x': 3.0, 'y': 0.0, 'phenotype': 'Y', 'field': 'f1', 'slide': 's1'},
            {'id': 1, 'x': 0.0, 'y': 0.0, 'phenotype': 'X', 'field': 'f2', 'slide': 's1'},
            {'id': 2, 'x': 1.0, 'y': 1.0, 'phenotype': 'X', 'field': 'f2', 'slide': 's1'},
            {'id': 1, 'x': 5.0, 'y': 5.0, 'phenotype': 'X', 'field': 'f3', 'slide': 's2'},
        ],
    )
