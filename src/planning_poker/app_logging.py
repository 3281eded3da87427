"""Logging setup for the planning poker service."""

import logging

PACKAGE_LOGGER = "planning_poker"

# supabase client transports log every request and heartbeat at INFO
_CLIENT_LOGGERS = ("httpx", "hpack", "realtime", "websockets")

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Attach one stream handler to the package logger and return it.

    Calling it again only adjusts the level. Client transport loggers are
    capped at WARNING unless the package itself logs at DEBUG.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    client_level = (
        logging.DEBUG if logger.level <= logging.DEBUG else logging.WARNING
    )
    for name in _CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    return logger
