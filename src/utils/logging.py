"""Logging utilities module."""

import logging
import os
import re
import sys
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import ClassVar

import colorama
from colorama import Fore, Style

__all__ = ["Logger", "get_logger"]

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@lru_cache(maxsize=1)
def stream_supports_color() -> bool:
    """Check whether stdout is an interactive terminal that renders ANSI colors.

    Returns:
        bool: True if colors should be emitted on the console handler.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False
    if sys.platform == "win32":
        return (
            "ANSICON" in os.environ
            or "WT_SESSION" in os.environ
            or os.environ.get("TERM_PROGRAM") == "vscode"
        )
    return os.environ.get("TERM") != "dumb"


class ColorFormatter(logging.Formatter):
    """Formatter that adds terminal colors to log messages.

    Color Scheme:
        DEBUG: Cyan
        INFO: Green
        SUCCESS: Bright Green
        WARNING: Yellow
        ERROR: Red
        CRITICAL: Bright Red
        Quoted values: Light Blue (e.g., $$'NotInCollection'$$)
        Bracketed values: Dimmed (e.g., $${added: 3}$$)
    """

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "SUCCESS": Fore.GREEN + Style.BRIGHT,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }
    QUOTED_PATTERN = re.compile(r"\$\$'((?:[^']|'(?!\$\$))*)'\$\$")
    BRACED_PATTERN = re.compile(r"\$\$\{(.*?)\}\$\$")

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record with ANSI color codes.

        Args:
            record (logging.LogRecord): Log record to format

        Returns:
            str: Color-formatted log message
        """
        orig_msg = record.msg
        orig_levelname = record.levelname
        record.levelname = (
            f"{self.COLORS.get(record.levelname, '')}{record.levelname}"
            f"{Style.RESET_ALL}"
        )

        if isinstance(record.msg, str):
            record.msg = self.QUOTED_PATTERN.sub(
                f"{Fore.LIGHTBLUE_EX}'\\1'{Style.RESET_ALL}", record.msg
            )
            record.msg = self.BRACED_PATTERN.sub(
                f"{Style.DIM}{{\\1}}{Style.RESET_ALL}", record.msg
            )

        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname
            record.msg = orig_msg


class CleanFormatter(logging.Formatter):
    """Formatter that strips the color markers, used for log files."""

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record after removing the $$ markers.

        Args:
            record (logging.LogRecord): Log record to format

        Returns:
            str: Log message without color markers
        """
        if not isinstance(record.msg, str):
            return super().format(record)

        orig_msg = record.msg
        record.msg = ColorFormatter.QUOTED_PATTERN.sub("'\\1'", record.msg)
        record.msg = ColorFormatter.BRACED_PATTERN.sub("{\\1}", record.msg)
        try:
            return super().format(record)
        finally:
            record.msg = orig_msg


class Logger(logging.Logger):
    """Logger that prefixes messages with the calling class and adds SUCCESS."""

    SUCCESS = logging.INFO + 5

    def __init__(self, name, level=logging.NOTSET):
        """Initialize the logger and register the SUCCESS level name.

        Args:
            name (str): Logger name
            level (int, optional): Initial logging level. Defaults to NOTSET.
        """
        super().__init__(name, level)

        if logging.getLevelName(self.SUCCESS) != "SUCCESS":
            logging.addLevelName(self.SUCCESS, "SUCCESS")

    def _log(
        self,
        level,
        msg,
        args,
        exc_info=None,
        extra=None,
        stack_info=False,
        stacklevel=1,
    ):
        """Prefix the message with the class name of the caller, if any."""
        try:
            # Frame 0 is _log, frame 1 the level method, frame 2 the caller
            frame = sys._getframe(2)
            class_name = None
            if "self" in frame.f_locals:
                obj = frame.f_locals["self"]
                if not isinstance(obj, logging.Logger):
                    class_name = obj.__class__.__name__
            elif "cls" in frame.f_locals:
                cls = frame.f_locals["cls"]
                if isinstance(cls, type):
                    class_name = cls.__name__

            if class_name and isinstance(msg, str):
                msg = f"{class_name}: {msg}"
        except (ValueError, KeyError, AttributeError):
            pass

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )

    def success(self, msg, *args, **kwargs):
        """Log a message with SUCCESS level."""
        # Calls _log directly so the caller stays at frame 2
        if self.isEnabledFor(self.SUCCESS):
            self._log(self.SUCCESS, msg, args, **kwargs)

    def setup(self, log_level: str, log_dir: str | None = None) -> None:
        """Attach a console handler and, optionally, a rotating file handler.

        Args:
            log_level (str): Logging level ('DEBUG', 'INFO', 'SUCCESS', etc.)
            log_dir (str | None, optional): Directory where log files are written.
        """
        has_color_support = stream_supports_color()
        if has_color_support:
            try:
                if sys.platform == "win32":
                    colorama.just_fix_windows_console()
                else:
                    colorama.init()
            except (AttributeError, OSError):
                has_color_support = False

        if log_level == "SUCCESS":
            level = self.SUCCESS
        else:
            level = getattr(logging, log_level)

        self.setLevel(level)

        for handler in self.handlers[:]:
            self.removeHandler(handler)

        log_format = (
            "%(asctime)s - %(name)s - %(levelname)s\t%(filename)s:%(lineno)d\t"
            "%(message)s"
            if level <= logging.DEBUG
            else "%(asctime)s - %(name)s - %(levelname)s\t%(message)s"
        )

        if log_dir is not None:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_path / f"{self.name}.{log_level}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
            file_handler.setFormatter(CleanFormatter(log_format, datefmt=_DATE_FORMAT))
            file_handler.setLevel(level)
            self.addHandler(file_handler)

        console_formatter_cls = ColorFormatter if has_color_support else CleanFormatter
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            console_formatter_cls(log_format, datefmt=_DATE_FORMAT)
        )
        console_handler.setLevel(level)
        self.addHandler(console_handler)


logging.setLoggerClass(Logger)


def _get_logger(
    log_name: str, log_level: str = "INFO", log_dir: str | Path | None = None
) -> Logger:
    """Get a configured instance of Logger.

    Args:
        log_name (str): Name of the logger and base name for log file.
        log_level (str): Logging level. Defaults to "INFO".
        log_dir (str | Path | None): Directory where log files will be stored.

    Returns:
        Logger: Configured logger instance
    """
    logger = logging.getLogger(log_name)
    if not isinstance(logger, Logger):
        logger = Logger(log_name)

    logger.setup(log_level, str(log_dir) if log_dir is not None else None)
    return logger


@lru_cache(maxsize=1)
def get_logger() -> Logger:
    """Get the main application logger.

    Returns:
        Logger: Main application logger instance
    """
    from src.config.settings import get_config

    config = get_config()

    return _get_logger(
        log_name="CollectionMarker",
        log_level=str(config.log_level),
        log_dir=config.data_path / "logs",
    )
