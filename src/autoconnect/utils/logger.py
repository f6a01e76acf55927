"""Logging utilities for the autoconnect system."""

import os
import sys
from pathlib import Path
from loguru import logger
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn

# Shared rich console for the CLI and helper scripts
console = Console()

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[component]: <10}</magenta> | <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[component]} | {name}:{function}:{line} | {message} | {extra}"


def setup_logger(log_level: str = "INFO", log_file: str = "autoconnect.log", log_dir: str = "logs"):
    """
    Route loguru to stderr and a rotating file.

    Records carry a ``component`` extra; BusLogger binds its own, everything
    else logs as "autoconnect".
    """
    logger.remove()
    logger.configure(extra={"component": "autoconnect"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    log_path = Path(log_dir) / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_path,
        format=FILE_FORMAT,
        level=log_level,
        rotation="10 MB",
        retention="7 days",
        compression="zip"
    )

    return logger


def create_progress() -> Progress:
    """Progress bar used while a run is connecting."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console
    )


log = setup_logger(os.getenv("LOG_LEVEL", "INFO"), log_dir=os.getenv("LOG_DIR", "logs"))
