"""LinkedIn connection automation with a live status/log gateway."""

__version__ = "0.1.0"
