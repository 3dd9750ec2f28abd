"""
api/results.py -- Turn a core Result into an HTTP response or an HTTPException.

The status table is the one place error kinds meet status codes:

  validation_error           400
  unauthenticated            401
  forbidden                  403
  not_found                  404
  conflict                   409
  invalid_transition         409
  finalized                  409
  account_locked             429  + Retry-After: <seconds>
  invite_expired_or_invalid  400
  internal                   500

The raised HTTPException carries an ErrorDetail dict; the handler in
api/main.py wraps it in the {"error": {...}} envelope.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException

from api.models import ErrorDetail
from core.errors import ErrorKind, Result

STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation_error: 400,
    ErrorKind.unauthenticated: 401,
    ErrorKind.forbidden: 403,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 409,
    ErrorKind.invalid_transition: 409,
    ErrorKind.finalized: 409,
    ErrorKind.account_locked: 429,
    ErrorKind.invite_expired_or_invalid: 400,
    ErrorKind.internal: 500,
}


def unwrap(result: Result) -> Any:
    """Return result.data, or raise the HTTPException matching its error kind."""
    if result.success:
        return result.data
    kind = result.error_kind or ErrorKind.internal
    headers = None
    if result.retry_after is not None:
        headers = {"Retry-After": str(result.retry_after)}
    raise HTTPException(
        status_code=STATUS_FOR_KIND[kind],
        detail=ErrorDetail(
            code=result.code or kind.value,
            message=result.message or "Request failed.",
            detail=result.detail,
            fields=result.fields or None,
            retry_after=result.retry_after,
        ).model_dump(exclude_none=True),
        headers=headers,
    )
