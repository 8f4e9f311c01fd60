"""Custom logger for general spatial proximity functionality."""
import logging
import os
import re


class CustomFormatter(logging.Formatter):
    """A custom colorizing logger."""
    blue = '\u001b[34m'
    magenta = '\u001b[35m'
    cyan = '\u001b[0;36m'
    bold_green = '\u001b[32;1m'
    bold_yellow = '\u001b[33;1m'
    bold_red = '\u001b[31;1m'
    div = '\u2503'
    reset = '\u001b[0m'

    @classmethod
    def _level_format(cls, color: str, bracket_padding: tuple[str, str], with_line: bool) -> str:
        left, right = bracket_padding
        line = cls.blue + '%(lineno)3d' + cls.reset + ' ' if with_line else ''
        width = 40 if with_line else 44
        return ''.join([
            cls.blue, '%(asctime)s ', cls.reset,
            cls.magenta, '[', left, cls.reset, color, '%(levelname)s', cls.reset,
            cls.magenta, right, '] ', line,
            cls.magenta, f'%(name)-{width}s', cls.reset,
            cls.cyan, cls.div, cls.reset, ' %(message)s',
        ])

    def __init__(self):
        super().__init__(datefmt='%m-%d %H:%M:%S')
        self.formats = {
            logging.DEBUG: self._level_format('', (' ', ' '), True),
            logging.INFO: self._level_format(self.bold_green, (' ', '  '), False),
            logging.WARNING: self._level_format(self.bold_yellow, ('', ''), True),
            logging.ERROR: self._level_format(self.bold_red, (' ', ' '), True),
            logging.CRITICAL: self._level_format(self.bold_red, ('', ''), True),
        }

    def format(self, record):
        log_fmt = self.formats.get(record.levelno)
        formatter = logging.Formatter(log_fmt, datefmt=self.datefmt)
        return formatter.format(record)


def get_log_level() -> int:
    name = os.environ.get('PROXIMITY_LOG_LEVEL', 'INFO').upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        return logging.INFO
    return level


def colorized_logger(name: str) -> logging.Logger:
    """A lightweight customization of the Python standard library's ``logging`` module
    loggers, to provide colorized log messages.

    Args:
        name (str):
            The name of the logger to requisition. Typically a module's
            ``__name__`` attribute.

    Returns:
        The logger. Its level is taken from the ``PROXIMITY_LOG_LEVEL`` environment
        variable (default ``INFO``).
    """
    logger = logging.getLogger(re.sub(r'^spatialproximitytoolbox\.', '', name))
    level = get_log_level()
    logger.setLevel(level)
    if not logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(CustomFormatter())
        logger.addHandler(stream_handler)
    return logger
