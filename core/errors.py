"""
core/errors.py -- Error kinds, core exceptions, and the tagged Result envelope.

Every public operation of the auth, invite, and submission services returns a
Result: either Result(success=True, data=...) or Result(success=False,
error_kind=..., message=...). No exception crosses that boundary.

Inside the services, rule violations are raised as CoreError subclasses at
the point where they are detected. The @core_operation decorator sits on each
public operation and converts:
  - CoreError        -> failed Result carrying the error's kind and fields
  - anything else    -> ErrorKind.internal; logged with the traceback, and
                        the exception text is exposed as `detail` only when
                        Settings.debug is true

Unauthenticated and Forbidden are separate kinds all the way out. The route
layer maps them to 401 and 403 respectively.

Layer rule: core/ is the kernel. Imports only core.config.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from core.config import get_settings

logger = logging.getLogger("reviewdesk.core")

T = TypeVar("T")


class ErrorKind(str, Enum):
    validation_error = "validation_error"
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"
    not_found = "not_found"
    conflict = "conflict"
    invalid_transition = "invalid_transition"
    finalized = "finalized"
    account_locked = "account_locked"
    invite_expired_or_invalid = "invite_expired_or_invalid"
    internal = "internal"


# ---------------------------------------------------------------------------
# Exceptions raised inside the core
# ---------------------------------------------------------------------------


class CoreError(Exception):
    """Base class for business-rule failures detected inside the core.

    `code` is a finer-grained machine-readable reason within the kind
    (e.g. kind=conflict, code="duplicate_invite"). `fields` carries
    per-field validation messages.
    """

    kind: ErrorKind = ErrorKind.internal

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        fields: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.value
        self.fields = fields or {}


class ValidationError(CoreError):
    kind = ErrorKind.validation_error


class Unauthenticated(CoreError):
    kind = ErrorKind.unauthenticated


class Forbidden(CoreError):
    kind = ErrorKind.forbidden


class NotFound(CoreError):
    kind = ErrorKind.not_found


class Conflict(CoreError):
    kind = ErrorKind.conflict


class InvalidTransition(CoreError):
    kind = ErrorKind.invalid_transition

    def __init__(self, current: str, requested: str, *, message: Optional[str] = None, code: Optional[str] = None):
        super().__init__(
            message or f"Invalid status transition from {current} to {requested}.",
            code=code,
        )
        self.current = current
        self.requested = requested


class Finalized(CoreError):
    kind = ErrorKind.finalized


class AccountLocked(CoreError):
    """Raised while an account's lock-until is in the future.

    retry_after is the remaining lockout in whole seconds (rounded up).
    """

    kind = ErrorKind.account_locked

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Account temporarily locked. Try again in {retry_after} seconds.")
        self.retry_after = retry_after


class InviteExpiredOrInvalid(CoreError):
    kind = ErrorKind.invite_expired_or_invalid


# ---------------------------------------------------------------------------
# Result envelope
# ---------------------------------------------------------------------------


@dataclass
class Result(Generic[T]):
    """Tagged outcome of a core operation."""

    success: bool
    data: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    code: Optional[str] = None
    fields: dict[str, str] = field(default_factory=dict)
    retry_after: Optional[int] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def from_error(cls, exc: CoreError) -> "Result":
        return cls(
            success=False,
            error_kind=exc.kind,
            message=exc.message,
            code=exc.code,
            fields=dict(exc.fields),
            retry_after=getattr(exc, "retry_after", None),
        )


def core_operation(func: Callable[..., Any]) -> Callable[..., Result]:
    """Wrap a service method so it always returns a Result.

    The wrapped function returns its payload directly (or a Result, which is
    passed through). CoreError becomes a failed Result with the same kind.
    Any other exception is logged with its traceback and downgraded to
    ErrorKind.internal -- the exception text reaches the caller only in
    DEBUG mode.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Result:
        try:
            value = func(*args, **kwargs)
        except CoreError as exc:
            return Result.from_error(exc)
        except Exception as exc:
            logger.exception("Unexpected failure in %s", func.__qualname__)
            return Result(
                success=False,
                error_kind=ErrorKind.internal,
                message="An unexpected error occurred.",
                code=ErrorKind.internal.value,
                detail=str(exc) if get_settings().debug else None,
            )
        if isinstance(value, Result):
            return value
        return Result.ok(value)

    return wrapper
