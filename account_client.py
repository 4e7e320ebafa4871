"""
Alfred account service client.

Session presence is read from a Netscape-format cookie file; the profile is
fetched over HTTP with the same cookies. Both raise TransientFetchError on
any failure so callers only deal with one error type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http.cookiejar import LoadError, MozillaCookieJar
from pathlib import Path
from typing import FrozenSet

import requests

from alerts.errors import ConfigurationError, TransientFetchError
from alerts.next_alert import normalize_alert_hours

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserProfile:
    email: str
    first_name: str
    last_name: str
    alert_hours: FrozenSet[int]

    @classmethod
    def from_payload(cls, data: dict) -> "UserProfile":
        raw_hours = data.get("alert_hours") or []
        if not isinstance(raw_hours, list):
            raise ConfigurationError(f"alert_hours must be a list, got {type(raw_hours).__name__}")
        # An empty list is a valid profile; scheduling rejects it later.
        hours = frozenset(normalize_alert_hours(raw_hours)) if raw_hours else frozenset()
        return cls(
            email=str(data.get("email") or ""),
            first_name=str(data.get("first_name") or ""),
            last_name=str(data.get("last_name") or ""),
            alert_hours=hours,
        )


def load_cookie_jar(path: Path) -> MozillaCookieJar:
    jar = MozillaCookieJar(str(path))
    if path.exists():
        try:
            jar.load(ignore_discard=True, ignore_expires=False)
        except (LoadError, OSError) as exc:
            raise TransientFetchError(f"Cannot read cookie store {path}: {exc}") from exc
    return jar


class CookieSessionOracle:
    def __init__(self, cookie_jar_path: Path, cookie_name: str = "sessionid"):
        self.cookie_jar_path = cookie_jar_path
        self.cookie_name = cookie_name

    def has_active_session(self) -> bool:
        jar = load_cookie_jar(self.cookie_jar_path)
        return any(cookie.name == self.cookie_name for cookie in jar)


class ProfileClient:
    def __init__(self, profile_url: str, cookie_jar_path: Path, timeout: float = 10.0):
        self.profile_url = profile_url
        self.cookie_jar_path = cookie_jar_path
        self.timeout = timeout

    def fetch_profile(self) -> UserProfile:
        """GET the user profile; the body is ``{"user": {...}}``."""
        jar = load_cookie_jar(self.cookie_jar_path)
        try:
            resp = requests.get(self.profile_url, cookies=jar, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise TransientFetchError(f"Profile request failed: {exc}") from exc
        except ValueError as exc:
            raise TransientFetchError(f"Profile response is not JSON: {exc}") from exc

        user = payload.get("user") if isinstance(payload, dict) else None
        if not isinstance(user, dict):
            raise TransientFetchError("Profile response has no 'user' object")
        profile = UserProfile.from_payload(user)
        logger.debug("Fetched profile for %s (alert hours %s)", profile.email, sorted(profile.alert_hours))
        return profile
