"""Error and warning kinds raised by the proximity engine."""


class ValidationError(ValueError):
    """Malformed or contradictory inputs. Always raised immediately, never retried."""


class MissingDependencyError(ModuleNotFoundError):
    """The spatial index was requested but its library is not installed."""

    def __init__(self, module_not_found_error: ModuleNotFoundError, extras_section: str = 'index'):
        message = ' '.join([
            f'Spatial index unavailable ({module_not_found_error}).',
            f'Install it with: pip install "spatialproximitytoolbox[{extras_section}]"',
        ])
        super().__init__(message, name=module_not_found_error.name)
        self.extras_section = extras_section


class DataIntegrityWarning(UserWarning):
    """Unexpected missing values in key columns. Computation proceeds."""


class StrategyFallbackWarning(UserWarning):
    """The indexed distance strategy was requested, the dense one is used instead."""
