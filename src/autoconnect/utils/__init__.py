"""Utility modules for the autoconnect system."""

from .config import config, Config, AutomationConfig, BrowserOptions
from .logger import log, console, create_progress

__all__ = [
    'config',
    'Config',
    'AutomationConfig',
    'BrowserOptions',
    'log',
    'console',
    'create_progress'
]
