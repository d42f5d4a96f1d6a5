"""Domain exceptions shared by the services and mapped to HTTP in ``tandem.main``."""

from __future__ import annotations


class TandemError(Exception):
    """Base class for every expected, caller-visible failure."""

    code: str = "error"
    status_code: int = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class IncompleteProfileError(TandemError):
    """Raised when the caller must complete their profile first."""

    code = "incomplete_profile"
    status_code = 403


class ConflictError(TandemError):
    """Raised when a transition is not valid from the current state."""

    code = "invalid_state"
    status_code = 409


class AlreadyConnectedError(ConflictError):
    """Raised when the pair already holds an accepted connection."""

    code = "already_connected"


class NotFoundError(TandemError):
    """Raised when the referenced user, request or connection does not exist."""

    code = "not_found"
    status_code = 404


class TransientError(TandemError):
    """Raised on lock contention; the whole transaction is safe to retry."""

    code = "transient"
    status_code = 503


class InvalidError(TandemError):
    """Raised for malformed input: bad weights, radius, coordinates, self-reference."""

    code = "invalid"
    status_code = 400
