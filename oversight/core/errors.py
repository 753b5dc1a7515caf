class OversightError(Exception):
    """Base class for errors raised by the triage services."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OversightError):
    """Malformed input to a mutation; raised before any store call."""


class StoreError(OversightError):
    """Persistence failure. State is left unchanged and nothing is retried."""


class ConflictError(OversightError):
    """A write collided with a uniqueness constraint (duplicate email, username...)."""


class NotFoundError(OversightError):
    """The targeted record is no longer present."""
