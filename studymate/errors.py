"""
Error types surfaced to the user.

Remote failures and parse failures are not represented here: they are
logged and mapped to None/False at the component boundary.
"""


class StudymateError(Exception):
    """Base class for user-facing errors."""
    pass


class ConfigurationError(StudymateError):
    """Raised when a required credential or endpoint is not configured."""
    pass


class InputValidationError(StudymateError):
    """Raised when required user input is missing or invalid."""
    pass
