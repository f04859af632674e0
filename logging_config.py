"""Application-wide logging configuration."""
import logging

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level=logging.INFO):
    """Send log records to stderr, once per process.

    ``level`` may be a number or a level name such as ``"DEBUG"``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    already_configured = any(
        getattr(handler, "_inventory_handler", False) for handler in root_logger.handlers
    )
    if not already_configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._inventory_handler = True
        root_logger.addHandler(handler)

    # The discovery client is chatty at INFO.
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    return root_logger
