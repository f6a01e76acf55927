"""Text parsing for suggestion cards."""

import re
from typing import Optional

# Ordered from most to least specific
_MUTUAL_PATTERNS = [
    re.compile(r"\w+\s+and\s+(\d+)\s+other\s+mutual\s+connections?"),
    re.compile(r"and\s+(\d+)\s+other\s+mutual\s+connections?"),
    re.compile(r"(\d+)\s+mutual\s+connections?"),
    re.compile(r"(\d+)\s+other"),
]

_MUTUAL_HINTS = [
    re.compile(r"mutual\s+connections?"),
    re.compile(r"other\s+mutual"),
    re.compile(r"shared\s+connections?"),
]

# A single named mutual connection with no count, e.g. "Jane Doe is a mutual connection"
_SINGLE_MUTUAL = re.compile(r"is\s+a\s+mutual\s+connection")


def parse_mutual_connection_count(text: Optional[str]) -> int:
    """
    Parse the number of mutual connections from card text.

    Handles "Vitalii and 58 other mutual connections" (returns 58),
    "and 1 other mutual connection", "5 mutual connections" and
    "Jane is a mutual connection".

    Returns:
        The parsed count, 0 when nothing matches
    """
    if not text or not isinstance(text, str):
        return 0

    clean_text = " ".join(text.split()).lower()

    for pattern in _MUTUAL_PATTERNS:
        match = pattern.search(clean_text)
        if match:
            return int(match.group(1))

    if _SINGLE_MUTUAL.search(clean_text):
        return 1

    return 0


def contains_mutual_connection_info(text: Optional[str]) -> bool:
    if not text or not isinstance(text, str):
        return False
    clean_text = text.strip().lower()
    return any(pattern.search(clean_text) for pattern in _MUTUAL_HINTS)


def extract_mutual_line(text: Optional[str]) -> Optional[str]:
    """Return the first line of card text that mentions mutual connections."""
    if not text:
        return None
    for line in text.splitlines():
        if contains_mutual_connection_info(line):
            return line.strip()
    if contains_mutual_connection_info(text):
        return " ".join(text.split())
    return None


def extract_connection_name(text: Optional[str]) -> str:
    """Take the person's name from the first non-empty line of card text."""
    if not text or not isinstance(text, str):
        return ""

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return ""

    name = lines[0]
    name = re.sub(r"^(connect with|view profile of)\s+", "", name, flags=re.IGNORECASE)
    name = re.sub(r"\s+(connect|view profile)$", "", name, flags=re.IGNORECASE)
    # Degree markers such as "2nd"
    name = re.sub(r"\s+\d+(st|nd|rd|th)\s*$", "", name, flags=re.IGNORECASE)
    return name.strip()


def candidate_id(name: str, profile_url: Optional[str] = None) -> str:
    """
    Stable identifier for a candidate within a run.

    Uses the profile slug when a profile link is available, otherwise a
    slug of the name.
    """
    if profile_url:
        match = re.search(r"/in/([^/?#]+)", profile_url)
        if match:
            return f"in-{match.group(1).lower()}"
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"name-{slug or 'unknown'}"
