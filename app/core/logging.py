import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Apply one root handler for the process. Safe to call more than once (tests build several apps)."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level.upper())
    # SQLAlchemy echo is controlled by the engine; keep its logger quiet unless asked.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
