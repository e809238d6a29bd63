"""
Error taxonomy for the Shipping Order Comparator.

Every failure the service reports carries the HTTP status code it is
surfaced with. Service modules derive their own errors from these bases.
"""


class ShipCheckError(Exception):
    """Base class for all reported failures."""

    status_code: int = 500


class ConfigurationError(ShipCheckError):
    """A required credential or setting is missing. Never retried."""

    status_code = 500


class InputValidationError(ShipCheckError):
    """The caller supplied a missing or invalid payload."""

    status_code = 400


class UpstreamError(ShipCheckError):
    """The conversion service or the model provider failed."""

    status_code = 500
