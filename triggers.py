from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from typing import Iterable, List
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)


def _strip_query(url: str) -> str:
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


class AuthResponseFilter:
    """Decides whether an observed HTTP response means the user just authenticated.

    Patterns are shell-style wildcards matched against the URL without its
    query string or fragment; only status 200 responses count.
    """

    def __init__(self, patterns: Iterable[str]):
        self.patterns: List[str] = [p.strip() for p in patterns if p.strip()]

    def matches(self, url: str, status_code: int) -> bool:
        if status_code != 200:
            return False
        target = _strip_query(url)
        for pattern in self.patterns:
            if fnmatchcase(target, pattern):
                logger.debug("Response %s matched %s", target, pattern)
                return True
        return False
