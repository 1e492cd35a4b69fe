"""Loguru setup shared by the CLI and the library modules.

setup_logger() installs three sinks: the console, a daily execution log and
a daily error log. Every sink formats through redact_sensitive(), so store
credentials never reach a terminal or a file.
"""

import re
import sys
from pathlib import Path

from loguru import logger

# user:password@ in store contact points, masked completely
_URL_CREDENTIALS = re.compile(
    r"(?P<prefix>(?:cassandra|scylla|https?)://[^:/@\s]+:)[^@\s]+(?=@)"
)

# password=..., token: ..., secret="...", masked but for the last four characters
_SECRET_PAIR = re.compile(
    r"(?P<prefix>(?:password|passwd|secret|token|auth[_\-]?key)[\"'\s:=]+)"
    r"(?P<value>[^\s\"',;}{]+)",
    re.IGNORECASE,
)

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{function}:{line} | {message}\n"

_LOGGING_DEFAULTS = {
    "console_level": "INFO",
    "file_level": "DEBUG",
    "retention_days": 30,
    "execution_log_path": "data/logs/execution",
    "error_log_path": "data/logs/errors",
}

_configured = False


def _mask_secret(match: "re.Match[str]") -> str:
    value = match.group("value")
    tail = value[-4:] if len(value) > 4 else ""
    return f"{match.group('prefix')}****{tail}"


def redact_sensitive(message: str) -> str:
    """
    Mask credentials in a log message.

    URL passwords are hidden entirely; other secrets keep their last four
    characters so operators can tell two tokens apart.
    """
    message = _URL_CREDENTIALS.sub(r"\g<prefix>****", message)
    return _SECRET_PAIR.sub(_mask_secret, message)


def _format(record) -> str:
    record["message"] = redact_sensitive(record["message"])
    return _FORMAT


def _daily_file(directory: str, level: str, retention_days: int) -> None:
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(path / "{time:YYYY-MM-DD}.log"),
        level=level,
        format=_format,
        rotation="00:00",
        retention=f"{retention_days} days",
        encoding="utf-8",
    )


def setup_logger(config: dict = None) -> "logger.__class__":
    """
    Replace every loguru handler with the console and file sinks.

    Args:
        config: Merged config; its optional "logging" section overrides
            console_level, file_level, retention_days,
            execution_log_path and error_log_path.

    Returns:
        The configured loguru logger.
    """
    global _configured

    settings = {**_LOGGING_DEFAULTS, **(config or {}).get("logging", {})}

    logger.remove()
    logger.add(sys.stderr, level=settings["console_level"], format=_format, colorize=True)
    _daily_file(settings["execution_log_path"], settings["file_level"], settings["retention_days"])
    _daily_file(settings["error_log_path"], "ERROR", settings["retention_days"])

    _configured = True
    return logger


def get_logger() -> "logger.__class__":
    """
    Shared logger for module-level ``logger = get_logger()``.

    Importing a module must not create log directories, so the first call
    only swaps loguru's default handler for a redacting stderr sink.
    setup_logger() adds the files.
    """
    global _configured
    if not _configured:
        logger.remove()
        logger.add(sys.stderr, level="INFO", format=_format, colorize=True)
        _configured = True
    return logger
