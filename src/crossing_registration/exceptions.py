"""
Exception types raised by the registration engine and its pipeline.

Every error that aborts a single crossing derives from RegistrationError so
the scheduler can report it and move on to the next crossing.
"""


class RegistrationError(Exception):
    """Base class for per-crossing failures."""


class EmptySwathError(RegistrationError):
    """Raised when a swath has no pings to sample a reference from."""


class ProjectionError(RegistrationError):
    """Raised when a local projection cannot be built for a reference point."""


class NonFiniteCloudError(RegistrationError):
    """Raised when a projected cloud still holds NaN or infinite coordinates."""

    def __init__(self, side: str, count: int):
        self.side = side
        self.count = count
        super().__init__(f"{side} cloud contains {count} non-finite point(s)")


class CrossingNotFoundError(RegistrationError):
    """Raised when an explicitly requested crossing is not in the project."""
