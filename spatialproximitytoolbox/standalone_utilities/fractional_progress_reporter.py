"""Logs basic indicator of amount of progress, at a configurable interval."""

from logging import Logger

from spatialproximitytoolbox.standalone_utilities.log_formats import colorized_logger

_logger = colorized_logger(__name__)


class FractionalProgressReporter:
    """Logs basic indicator of amount of progress, at a configurable interval."""
    def __init__(self,
        size: int,
        parts: int = 4,
        task_description: str = 'fields',
        logger: Logger = _logger,
        verbose: bool = True,
    ):
        self.size = size
        self.parts = min(parts, size) if size > 0 else 1
        self.task_description = task_description
        self.logger = logger
        self.verbose = verbose
        self.counter = 0
        self.key_times = {round((i + 1) * (size / self.parts)) for i in range(self.parts)}

    def increment(self, iteration_details: str | None = None) -> None:
        self.counter = self.counter + 1
        if self.verbose and self.counter in self.key_times:
            percent = round(100 * (self.counter / self.size))
            self.report(percent, iteration_details=iteration_details)

    def report(self, percent: int, iteration_details: str | None = None) -> None:
        arguments: list = [percent, self.task_description]
        message = '%s%% finished with %s.'
        if iteration_details is not None:
            arguments.append(iteration_details)
            message = '%s%% finished with %s. (%s ...)'
        self.logger.info(message, *arguments)

    def done(self, failures: int = 0) -> None:
        if not self.verbose:
            return
        if failures > 0:
            self.logger.warning('Done %s (%s of %s failed).', self.task_description, failures,
                                self.size)
        else:
            self.logger.info('Done %s. (%s iterations)', self.task_description, self.size)
