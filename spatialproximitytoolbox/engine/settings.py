"""Explicit configuration threaded into the engine entry points."""

from typing import Literal
from typing import get_args

from attrs import define
from attrs import field
from attrs import validators

from spatialproximitytoolbox.standalone_utilities.configuration_settings import \
    get_environment_setting
from spatialproximitytoolbox.standalone_utilities.configuration_settings import \
    get_integer_environment_setting
from spatialproximitytoolbox.standalone_utilities.configuration_settings import \
    strategy_environment_variable
from spatialproximitytoolbox.standalone_utilities.configuration_settings import \
    number_cores_environment_variable

DistanceStrategy = Literal['indexed', 'dense']


@define(frozen=True)
class EngineSettings:
    """Engine configuration.

    Attributes:
        strategy: ``'indexed'`` uses a spatial index when one is available (falling back to
            the dense matrix otherwise), ``'dense'`` always materializes the distance matrix.
        number_cores: Worker processes for per-field batch processing. 1 means sequential.
        verbose: Log per-field progress during batch processing.
    """
    strategy: DistanceStrategy = field(
        default='indexed',
        validator=validators.in_(get_args(DistanceStrategy)),
    )
    number_cores: int = field(default=1, validator=[validators.instance_of(int), validators.ge(1)])
    verbose: bool = True

    @classmethod
    def from_environment(cls, **overrides) -> 'EngineSettings':
        strategy = get_environment_setting(strategy_environment_variable, 'indexed').lower()
        number_cores = get_integer_environment_setting(number_cores_environment_variable, 1)
        values = {'strategy': strategy, 'number_cores': number_cores}
        values.update(overrides)
        return cls(**values)


def resolve_settings(settings: EngineSettings | None) -> EngineSettings:
    if settings is None:
        return EngineSettings()
    return settings
