"""Configure logging for the application."""

import logging
import sys


def setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger("x_bookmarks")
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(handler)

    # Suppress noisy library logs unless in debug mode
    noisy_level = logging.DEBUG if debug else logging.WARNING
    for name in ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(name).setLevel(noisy_level)
