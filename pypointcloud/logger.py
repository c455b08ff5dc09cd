"""
Package-wide logger for pypointcloud.

Every module fetches the shared instance through ``get_logger()`` so that an
application can redirect all codec and algorithm messages by installing its
own ``CloudLogger`` with ``set_logger()``.
"""
import os
import sys
import time
from typing import Optional, Union
from enum import Enum


class LogLevel(Enum):
    """Log levels, ordered by severity."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, level: Union[str, "LogLevel"]) -> "LogLevel":
        """Accept either a LogLevel or its case-insensitive name."""
        if isinstance(level, LogLevel):
            return level
        try:
            return cls[str(level).upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {level!r}")


class CloudLogger:
    """
    Logger that writes to the console, a file, or both.

    Console and file destinations have independent thresholds. Messages at
    WARNING and above go to stderr, everything else to stdout.
    """
    MODES = ('console', 'file', 'both', 'off')

    def __init__(
        self,
        mode: str = 'console',
        log_file: Optional[str] = None,
        console_level: Union[str, LogLevel] = LogLevel.INFO,
        file_level: Union[str, LogLevel] = LogLevel.DEBUG,
        include_timestamp: bool = True
    ):
        """
        Args:
            mode: 'console', 'file', 'both' or 'off'
            log_file: Path to the log file (required for 'file' and 'both')
            console_level: Minimum level printed to the console
            file_level: Minimum level appended to the log file
            include_timestamp: Prefix every line with the local time
        """
        if mode not in self.MODES:
            raise ValueError(f"mode must be one of {', '.join(self.MODES)}")
        if mode in ('file', 'both') and not log_file:
            raise ValueError("log_file must be provided when mode is 'file' or 'both'")

        self.mode = mode
        self.log_file = log_file
        self.console_level = LogLevel.parse(console_level)
        self.file_level = LogLevel.parse(file_level)
        self.include_timestamp = include_timestamp

        if self.log_file and mode in ('file', 'both'):
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            # Truncate any previous run
            with open(self.log_file, 'w'):
                pass

    def _console_enabled(self, level: LogLevel) -> bool:
        return self.mode in ('console', 'both') and level.value >= self.console_level.value

    def _file_enabled(self, level: LogLevel) -> bool:
        return self.mode in ('file', 'both') and level.value >= self.file_level.value

    def isEnabledFor(self, level: Union[str, LogLevel]) -> bool:
        """Same contract as ``logging.Logger.isEnabledFor``."""
        level = LogLevel.parse(level)
        return self._console_enabled(level) or self._file_enabled(level)

    def _format_message(self, message: str, level: LogLevel) -> str:
        stamp = f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] " if self.include_timestamp else ""
        return f"{stamp}[{level.name}] {message}"

    def log(self, message: str, level: Union[str, LogLevel] = LogLevel.INFO) -> None:
        level = LogLevel.parse(level)
        if not self.isEnabledFor(level):
            return
        line = self._format_message(message, level)
        if self._console_enabled(level):
            stream = sys.stderr if level.value >= LogLevel.WARNING.value else sys.stdout
            print(line, file=stream)
        if self._file_enabled(level):
            with open(self.log_file, 'a') as f:
                f.write(line + '\n')

    def debug(self, message: str) -> None:
        self.log(message, LogLevel.DEBUG)

    def info(self, message: str) -> None:
        self.log(message, LogLevel.INFO)

    def warning(self, message: str) -> None:
        self.log(message, LogLevel.WARNING)

    def error(self, message: str) -> None:
        self.log(message, LogLevel.ERROR)

    def critical(self, message: str) -> None:
        self.log(message, LogLevel.CRITICAL)

    def __call__(self, message: str, level: Union[str, LogLevel] = LogLevel.INFO) -> None:
        """Shorthand for ``log``: ``logger("loaded", "debug")``."""
        self.log(message, level)


DEFAULT_LOGGER = CloudLogger(mode='console')


def get_logger(name: Optional[str] = None) -> CloudLogger:
    """
    Return the shared logger.

    Args:
        name: Accepted for parity with ``logging.getLogger``; unused.
    """
    return DEFAULT_LOGGER


def set_logger(logger: Optional[CloudLogger]) -> None:
    """
    Replace the shared logger.

    Args:
        logger: A CloudLogger, or None to restore the default console logger
    """
    global DEFAULT_LOGGER
    if logger is None:
        DEFAULT_LOGGER = CloudLogger(mode='console')
    elif not isinstance(logger, CloudLogger):
        raise ValueError("Logger must be an instance of CloudLogger")
    else:
        DEFAULT_LOGGER = logger
