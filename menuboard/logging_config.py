import logging
import os
from typing import Optional, Union

from rich.logging import RichHandler

NOISY_LOGGERS = ("urllib3", "selenium", "httpx", "openai", "PIL")


def setup_logging(level: Optional[Union[int, str]] = None) -> None:
    """Send root logging through a RichHandler.

    Level comes from the argument, else LOG_LEVEL, else INFO. Safe to call
    again (the CLI does for --verbose): root handlers are replaced.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
    if isinstance(level, str):
        level = logging.getLevelName(level)
        if not isinstance(level, int):
            level = logging.INFO
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(show_time=False, rich_tracebacks=True, markup=False)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["setup_logging"]
