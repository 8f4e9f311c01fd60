"""Configuration settings."""
import importlib.resources
import os
from warnings import warn

cell_seg_data_suffix = 'cell_seg_data.txt'
default_pixels_per_micron = 2.0
strategy_environment_variable = 'PROXIMITY_DISTANCE_STRATEGY'
number_cores_environment_variable = 'PROXIMITY_NUMBER_CORES'


def get_version() -> str:
    resource = importlib.resources.files('spatialproximitytoolbox').joinpath('version.txt')
    return resource.read_text(encoding='utf-8').rstrip('\n')


def get_environment_setting(variable: str, default: str) -> str:
    if variable in os.environ:
        return os.environ[variable]
    return default


def get_integer_environment_setting(variable: str, default: int) -> int:
    value = get_environment_setting(variable, str(default))
    try:
        return int(value)
    except ValueError:
        warn(f'{variable}={value} is not an integer. Using default: {default}.')
        return default
