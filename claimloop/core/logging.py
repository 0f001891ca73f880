# claimloop/core/logging.py
import logging
import os
import sys
from datetime import datetime

LOGGER_PREFIX = 'claimloop'

# Applied to loggers created after set_default_level() is called.
_default_level: int = logging.INFO

_RESET = '\033[0m'
_TIME = '\033[94m'
_TEXT = '\033[97m'
_LEVELS = {
    logging.DEBUG: '\033[90m',
    logging.INFO: '\033[92m',
    logging.WARNING: '\033[93m',
    logging.ERROR: '\033[91m',
    logging.CRITICAL: '\033[1;91m',
}


def _paint(text: str, color: str, enabled: bool) -> str:
    return f'{color}{text}{_RESET}' if enabled else text


class ColoredFormatter(logging.Formatter):
    """Renders `[HH:MM:SS] [component] [LEVEL] message` with ANSI colors.

    The component is the last dotted part of the logger name, so
    `claimloop.poll_loop` shows up as `[poll_loop]`. Colors are skipped when
    NO_COLOR is set.
    """

    component_width = 13
    level_width = 10

    def __init__(self, use_colors: bool | None = None) -> None:
        super().__init__()
        if use_colors is None:
            use_colors = os.environ.get('NO_COLOR') is None
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        on = self.use_colors
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        component = f'[{record.name.rpartition(".")[2]}]'.ljust(self.component_width)
        level = f'[{record.levelname}]'.ljust(self.level_width)

        line = ' '.join(
            (
                _paint(f'[{stamp}]', _TIME, on),
                _paint(component, _TEXT, on)
                + _paint(level, _LEVELS.get(record.levelno, _TEXT), on)
                + _paint(record.getMessage(), _TEXT, on),
            )
        )
        if record.exc_info:
            line = f'{line}\n{self.formatException(record.exc_info)}'
        return line


def set_default_level(level: int) -> None:
    """Set the level used for loggers created from now on."""
    global _default_level
    _default_level = level


def _claimloop_loggers() -> list[logging.Logger]:
    names = [
        name
        for name in logging.Logger.manager.loggerDict
        if name == LOGGER_PREFIX or name.startswith(f'{LOGGER_PREFIX}.')
    ]
    return [logging.getLogger(name) for name in names]


def apply_level(level: int) -> None:
    """Set the default level and re-level every existing claimloop logger."""
    set_default_level(level)
    for lgr in _claimloop_loggers():
        lgr.setLevel(level)
        for handler in lgr.handlers:
            handler.setLevel(level)


def get_logger(component_name: str) -> logging.Logger:
    """Get a logger for the specified component."""
    logger = logging.getLogger(f'{LOGGER_PREFIX}.{component_name}')
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter())
    handler.setLevel(_default_level)
    logger.addHandler(handler)
    logger.setLevel(_default_level)
    # Handlers sit on each component logger; propagating would print twice.
    logger.propagate = False
    return logger
