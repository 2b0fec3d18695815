"""Error taxonomy and explicit outcome kinds for Compute API calls.

Provider exceptions from ``google.api_core`` are mapped to an ``ErrorKind``
in exactly one place, ``classify_api_error``. Lifecycle code branches on the
returned ``Outcome`` instead of matching provider exception classes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from requests import exceptions as requests_exceptions

# the REST transport lets connection failures through unwrapped
PROVIDER_ERRORS = (
    api_exceptions.GoogleAPIError,
    auth_exceptions.GoogleAuthError,
    requests_exceptions.RequestException,
    OSError,
)

NOT_READY_REASONS = frozenset({"resourceNotReady", "RESOURCE_NOT_READY"})


class CirrusError(Exception):
    """Base class for every error raised by the reconciliation core."""


@dataclass(frozen=True)
class FieldError:
    """One validation failure. ``field`` is None for rules spanning several fields."""

    field: Optional[str]
    message: str

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ValidationError(CirrusError):
    """Misconfiguration detected before any network call was made."""

    def __init__(self, errors: list[FieldError], kind: str = "", name: str = ""):
        self.errors = list(errors)
        self.kind = kind
        self.name = name
        subject = f"{kind} '{name}'" if kind else "resource"
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"Invalid {subject}:\n{lines}")

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors if e.field]


@dataclass(frozen=True)
class OperationErrorDetail:
    code: str
    message: str
    location: str = ""

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" if self.code else self.message


class OperationFailure(CirrusError):
    """An operation reached DONE carrying a non-empty error list."""

    def __init__(self, errors: list[OperationErrorDetail], operation: str = ""):
        self.errors = list(errors)
        self.operation = operation
        super().__init__("\n".join(str(e) for e in self.errors))

    @property
    def codes(self) -> list[str]:
        return [e.code for e in self.errors]


class TransientNotReady(CirrusError):
    """The server reported that a resource this call depends on is not ready yet."""

    def __init__(self, message: str, dependency: str = ""):
        self.dependency = dependency
        super().__init__(message)


class OperationTimeout(TransientNotReady):
    """Polling gave up before the operation reached DONE."""

    def __init__(self, operation: str, timeout: float, dependency: str = ""):
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            f"Operation '{operation}' did not complete within {timeout:g}s",
            dependency=dependency,
        )


class NotReadyExhausted(CirrusError):
    """The outer resubmit budget ran out while a dependency stayed not ready."""

    def __init__(self, dependency: str, attempts: int, last: TransientNotReady):
        self.dependency = dependency
        self.attempts = attempts
        super().__init__(
            f"'{dependency}' was still not ready after {attempts} attempts: {last}"
        )


class OperationAbandoned(CirrusError):
    """The caller stopped waiting; the remote operation may still complete."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Stopped waiting for operation '{operation}'")


class TransportError(CirrusError):
    """Network, auth or unexpected API error, carrying the raw provider message."""


# ---------------------------------------------------------------------------
# Explicit outcome kinds
# ---------------------------------------------------------------------------


class ErrorKind(Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    ERROR = "error"


def _reasons(exc: api_exceptions.GoogleAPICallError) -> set[str]:
    reasons = set()
    if exc.reason:
        reasons.add(exc.reason)
    for detail in exc.errors or ():
        if isinstance(detail, dict) and detail.get("reason"):
            reasons.add(detail["reason"])
    return reasons


def classify_api_error(exc: Exception, reading: bool = False) -> ErrorKind:
    """Map a provider exception to an ``ErrorKind``.

    When ``reading`` is set, an invalid-argument response is treated as not
    found: the API answers that way for lookups of malformed or foreign names.
    """
    if isinstance(exc, api_exceptions.GoogleAPICallError):
        if _reasons(exc) & NOT_READY_REASONS:
            return ErrorKind.NOT_READY
        if isinstance(exc, api_exceptions.NotFound):
            return ErrorKind.NOT_FOUND
        if reading and isinstance(exc, (api_exceptions.InvalidArgument, api_exceptions.BadRequest)):
            return ErrorKind.NOT_FOUND
    return ErrorKind.ERROR


@dataclass
class Outcome:
    """Result of one API call: a value, or an error tagged with its kind."""

    kind: ErrorKind
    value: Any = None
    error: Optional[Exception] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.kind is ErrorKind.SUCCESS

    @property
    def not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    def unwrap(self, dependency: str = "") -> Any:
        """Return the value, or raise the core error matching the kind."""
        if self.kind is ErrorKind.SUCCESS:
            return self.value
        message = str(self.error) if self.error is not None else self.kind.value
        if self.kind is ErrorKind.NOT_READY:
            raise TransientNotReady(message, dependency=dependency) from self.error
        raise TransportError(message) from self.error


def attempt(call: Callable[[], Any], reading: bool = False) -> Outcome:
    """Run a zero-argument API call and capture its outcome."""
    try:
        return Outcome(ErrorKind.SUCCESS, value=call())
    except PROVIDER_ERRORS as exc:
        return Outcome(classify_api_error(exc, reading=reading), error=exc)
