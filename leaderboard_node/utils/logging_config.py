import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname).1s | %(name)-30.30s | %(message)s"

# uvicorn installs its own handlers; these are re-routed to the root handler
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Send every leaderboard, uvicorn and SQLAlchemy record to one stdout handler."""
    root = logging.getLogger()
    root.setLevel(level)

    while root.hasHandlers():
        root.removeHandler(root.handlers[0])

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in _UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    # SQL echo only when explicitly debugging
    if root.getEffectiveLevel() > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root
