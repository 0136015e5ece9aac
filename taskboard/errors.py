"""
Error taxonomy and the typed Result returned by the API client.

Server side, store methods raise a BoardError subclass where the problem is
detected; the Flask layer renders it once as {"errors": [...]} with the
error's status. Client side, HTTP and network failures become a failed
Result instead of an exception.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class BoardError(Exception):
    """Base class for failures that map onto an HTTP error response."""

    status = 500

    def __init__(self, *errors: str):
        self.errors: List[str] = [e for e in errors if e] or ["Unexpected error"]
        super().__init__("; ".join(self.errors))


class NotFound(BoardError):
    """Parent or child is absent, or not owned by the caller."""
    status = 404


class ValidationFailed(BoardError):
    """Malformed request: bad id set, empty list, out-of-range value."""
    status = 400


class OrderingError(ValidationFailed):
    """An id list is not an exact permutation of a parent's children."""
    pass


class Unauthorized(BoardError):
    """Missing or invalid bearer credential."""
    status = 401


class NetworkFailure(BoardError):
    """No definitive response from the server (timeout, refused, reset)."""
    status = 0


@dataclass
class Result:
    """Outcome of one API call: a value on success, error messages otherwise."""

    ok: bool
    value: Any = None
    errors: List[str] = field(default_factory=list)
    status: int = 0

    @classmethod
    def success(cls, value: Any = None, status: int = 200) -> "Result":
        return cls(ok=True, value=value, status=status)

    @classmethod
    def failure(cls, *errors: str, status: int = 0) -> "Result":
        return cls(ok=False, errors=[e for e in errors if e], status=status)

    @classmethod
    def from_error(cls, error: BoardError) -> "Result":
        return cls(ok=False, errors=list(error.errors), status=error.status)


def first_error(result: Optional[Result], fallback: str) -> str:
    """The message to show for a failed result: its first error, else fallback."""
    if result is not None and result.errors:
        first = result.errors[0]
        if isinstance(first, str) and first.strip():
            return first
    return fallback
