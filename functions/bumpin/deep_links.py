"""
Profile deep links of the form bumpin://profile/{username}.
"""

from __future__ import annotations

from urllib.parse import unquote, urlsplit

from bumpin.errors import InvalidProfileLinkError
from shared.constants import PROFILE_LINK_HOST, PROFILE_LINK_SCHEME


def build_profile_link(username: str) -> str:
    return f"{PROFILE_LINK_SCHEME}://{PROFILE_LINK_HOST}/{username}"


def parse_profile_link(url: str) -> str:
    """Returns the lowercased username a profile link points at."""
    parts = urlsplit(url.strip())
    if parts.scheme.lower() != PROFILE_LINK_SCHEME:
        raise InvalidProfileLinkError()
    if parts.netloc.lower() != PROFILE_LINK_HOST:
        raise InvalidProfileLinkError()
    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) != 1:
        raise InvalidProfileLinkError()
    return unquote(segments[0]).lower()
