import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "gcptool"


def setup_logger(name: str = LOGGER_NAME, level: int = logging.ERROR) -> logging.Logger:
    """
    Returns the tool's logger, attaching a stderr RichHandler on first use so
    diagnostics never mix with table output on stdout.
    """
    log = logging.getLogger(name)
    log.setLevel(level)
    if not log.handlers:
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            markup=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(handler)
        log.propagate = False
    return log


def set_verbose(verbose: bool) -> None:
    logger.setLevel(logging.DEBUG if verbose else logging.ERROR)


# Quiet by default; -v/--verbose switches to DEBUG
logger = setup_logger()
