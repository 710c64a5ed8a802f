"""Process-wide logging setup for runtime entrypoints."""

import logging

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def config_configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the running process.

    Args:
        level: Logging level name such as `INFO` or `DEBUG`.

    Returns:
        None: Logging is configured as side effect.

    Raises:
        ValueError: Raised when the level name is unknown.
    """

    normalized_level = level.strip().upper()
    numeric_level = logging.getLevelName(normalized_level)
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level}")

    logging.basicConfig(level=numeric_level, format=_LOG_FORMAT)
