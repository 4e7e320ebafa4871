class AlfredError(Exception):
    """Base class for errors raised by the push service."""


class ConfigurationError(AlfredError):
    """The user's alert configuration cannot be scheduled (e.g. no alert hours)."""


class TransientFetchError(AlfredError):
    """A session check or profile fetch failed; the cycle stalls until the next entry point."""


class StaleAlarmError(AlfredError):
    """A fired alarm does not carry the expected name prefix."""


class DuplicateFireError(AlfredError):
    """A fired alarm repeats the scheduled instant of the last accepted fire."""
