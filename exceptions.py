"""
Error types raised by the TSS-RESTREND engines.

Statistical non-significance is never an error: it is reported through the
result record. InvalidValueError is likewise a result state (see
tssrestrend.py), not an exception.
"""


class TSSRError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(TSSRError):
    """Malformed or mismatched input series."""

    def __init__(self, name, message):
        self.name = name
        super().__init__(f"{name}: {message}")


class ShapeMismatchError(ValidationError):
    """Externally supplied pre/post-break climate arrays differ in length."""


class InsufficientDataError(TSSRError):
    """Neither an accumulation table nor a raw climate series was provided."""


class NoEligibleWindowError(TSSRError):
    """No climate window satisfies the slope sign constraint."""
