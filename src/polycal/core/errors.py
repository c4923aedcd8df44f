class PolycalError(Exception):
    """Base error."""

class ConfigError(PolycalError):
    """Raised when a calendar or schedule document is structurally invalid."""

class UnknownCalendarError(PolycalError, KeyError):
    """Raised when a calendar name is not registered."""
