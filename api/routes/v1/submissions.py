"""
api/routes/v1/submissions.py -- Public project intake and staff review.

Routes:
  POST   /api/v1/submissions              -- public; rate-limited per IP
  GET    /api/v1/submissions              -- ?status=pending|approved|rejected&sort=newest|oldest
  GET    /api/v1/submissions/{id}         -- one submission with its status history
  PATCH  /api/v1/submissions/{id}/status  -- approve or reject
  DELETE /api/v1/submissions/{id}

Everything but the public POST requires an admin-tier session.
A finalized (approved or rejected) submission answers 409 "finalized" to any
further status change.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    StatusUpdateRequest,
    SubmissionCreatedResponse,
    SubmissionCreateRequest,
    SubmissionListResponse,
    SubmissionResponse,
)
from api.results import unwrap
from auth.dependencies import require_admin_tier
from auth.models import Account
from core.config import get_settings
from core.db import to_iso
from submissions.store import MAX_PAGE
from submissions.workflow import SubmissionWorkflow

router = APIRouter()

_settings = get_settings()


def _workflow(request: Request) -> SubmissionWorkflow:
    return request.app.state.submissions


@limiter.limit(_settings.submission_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/submissions", response_model=SubmissionCreatedResponse, status_code=201)
def create_submission(request: Request, body: SubmissionCreateRequest) -> JSONResponse:
    """Accept a project submission and return its 6-character code."""
    submission = unwrap(_workflow(request).submit(body.model_dump()))
    return JSONResponse(
        status_code=201,
        content=SubmissionCreatedResponse(
            id=submission.id,
            code=submission.submission_code,
            submitted_at=to_iso(submission.submitted_at),
        ).model_dump(),
    )


@router.get("/submissions", response_model=SubmissionListResponse)
def list_submissions(
    request: Request,
    status: Optional[str] = Query(default=None),
    sort: str = Query(default="newest"),
    limit: int = Query(default=MAX_PAGE, ge=1, le=MAX_PAGE),
    account: Account = Depends(require_admin_tier),
) -> SubmissionListResponse:
    rows = unwrap(_workflow(request).list(status=status, sort=sort, limit=limit))
    return SubmissionListResponse(count=len(rows), data=[SubmissionResponse.from_domain(s) for s in rows])


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    request: Request,
    submission_id: int,
    account: Account = Depends(require_admin_tier),
) -> SubmissionResponse:
    return SubmissionResponse.from_domain(unwrap(_workflow(request).get(submission_id)))


@router.patch("/submissions/{submission_id}/status", response_model=SubmissionResponse)
def update_status(
    request: Request,
    submission_id: int,
    body: StatusUpdateRequest,
    account: Account = Depends(require_admin_tier),
) -> SubmissionResponse:
    """Move a pending submission to approved or rejected. Either one locks it."""
    return SubmissionResponse.from_domain(unwrap(_workflow(request).transition(submission_id, body.status, account)))


@router.delete("/submissions/{submission_id}", status_code=204)
def delete_submission(
    request: Request,
    submission_id: int,
    account: Account = Depends(require_admin_tier),
) -> Response:
    unwrap(_workflow(request).delete(submission_id))
    return Response(status_code=204)
