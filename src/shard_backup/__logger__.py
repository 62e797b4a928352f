# pyright: standard

"""shard-backup: shard_backup/__logger__.py
A common logger rendering through rich on standard error.
"""

import logging
import logging.handlers
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

cons = Console(stderr=True)
rich_handler = RichHandler(console=cons, show_path=False)
logger = logging.Logger("shard-backup", logging.INFO)


def create_logger(level="INFO", show_time=True) -> None:
    """Helper function to setup logging for a command."""
    # pylint: disable=global-statement
    global cons, rich_handler

    cons = Console(stderr=True)
    rich_handler = RichHandler(console=cons, show_time=show_time, show_path=False)

    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(level)
    logger.addHandler(rich_handler)

    logging.basicConfig(
        format="%(message)s",
        datefmt="%H:%M:%S",
        level=level,
        handlers=[rich_handler],
        force=True,
    )


def add_file_handler(path) -> logging.Handler:
    """Also write log records to a plain text file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.WatchedFileHandler(path)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logging.getLogger().addHandler(handler)
    return handler
