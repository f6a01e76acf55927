"""Site adapters for the automation workflow."""

from autoconnect.adapters.base_adapter import BaseAdapter
from autoconnect.adapters.linkedin_adapter import LinkedInAdapter

__all__ = [
    'BaseAdapter',
    'LinkedInAdapter',
    'get_adapter'
]


def get_adapter(site_name: str = "linkedin") -> BaseAdapter:
    """
    Get the adapter for a site.

    Args:
        site_name: Name of the site

    Returns:
        Adapter instance
    """
    site_name = site_name.lower()

    if site_name == "linkedin":
        return LinkedInAdapter()
    raise ValueError(f"Unknown site: {site_name}")
