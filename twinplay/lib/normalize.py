"""String identity helpers used for cross-backend matching."""

from typing import NamedTuple


class MatchKey(NamedTuple):
    title: str
    subtitle: str


def normalize(s) -> str:
    """Trim surrounding whitespace/newlines and case-fold.  None → ""."""
    if not s:
        return ""
    return str(s).strip().casefold()


def match_key(title, subtitle) -> MatchKey:
    return MatchKey(normalize(title), normalize(subtitle))
