"""
submissions/store.py -- SQLAlchemy Core persistence layer for submissions.

Pattern: Repository + Data Mapper, same shape as auth/store.py.

Two tables:
  submissions                 one row per project, socials flattened into columns
  submission_status_history   insert-only audit trail, ordered by id

apply_transition() writes the status, the lock flag, the approver/rejector
and the history row in one transaction, and only if the row is still
unlocked and still in the status the caller read. A concurrent reviewer who
got there first leaves rowcount at 0 and nothing is written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from core.db import from_iso, to_iso, utcnow
from submissions.models import Socials, StatusChange, Submission, SubmissionStatus, TERMINAL_STATUSES

_metadata = MetaData()

_submissions = Table(
    "submissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_name", String(100), nullable=False),
    Column("description", Text, nullable=False),
    Column("email", String(255)),
    Column("x_handle", String(32), nullable=False),
    Column("telegram", String(40), nullable=False),
    Column("discord", String(255), nullable=False),
    Column("founder_tg", String(40)),
    Column("submission_code", String(6), nullable=False, unique=True),
    Column("status", String(16), nullable=False),
    Column("status_locked", Boolean, nullable=False, server_default="0"),
    Column("approved_by", Integer),
    Column("rejected_by", Integer),
    Column("submitted_at", String(32), nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
)

_history = Table(
    "submission_status_history",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "submission_id",
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("status", String(16), nullable=False),
    Column("changed_by", Integer, nullable=False),
    Column("changed_at", String(32), nullable=False),
)

MAX_PAGE = 100


class SubmissionStore:
    """Repository for Submission and StatusChange entities."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create_submission(self, submission: Submission) -> int:
        """Insert a submission and return its ID.

        Raises sqlalchemy.exc.IntegrityError if submission_code is taken.
        """
        now = to_iso(utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(
                _submissions.insert().values(
                    project_name=submission.project_name,
                    description=submission.description,
                    email=submission.email,
                    x_handle=submission.socials.x,
                    telegram=submission.socials.telegram,
                    discord=submission.socials.discord,
                    founder_tg=submission.socials.founder_tg,
                    submission_code=submission.submission_code,
                    status=SubmissionStatus.pending.value,
                    status_locked=False,
                    submitted_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, submission_id: int, with_history: bool = False) -> Optional[Submission]:
        with self.engine.connect() as conn:
            row = conn.execute(_submissions.select().where(_submissions.c.id == submission_id)).fetchone()
            if row is None:
                return None
            history = self._history(conn, submission_id) if with_history else []
        return _row_to_submission(row, history)

    def list_submissions(
        self,
        status: Optional[str] = None,
        newest_first: bool = True,
        limit: int = MAX_PAGE,
    ) -> list[Submission]:
        query = _submissions.select()
        if status:
            query = query.where(_submissions.c.status == status)
        if newest_first:
            query = query.order_by(_submissions.c.submitted_at.desc(), _submissions.c.id.desc())
        else:
            query = query.order_by(_submissions.c.submitted_at, _submissions.c.id)
        query = query.limit(max(1, min(limit, MAX_PAGE)))
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_submission(r, []) for r in rows]

    def apply_transition(
        self,
        submission_id: int,
        from_status: str,
        new_status: str,
        actor_id: int,
        now: datetime,
    ) -> bool:
        """Move an unlocked submission from from_status to new_status and record it.

        Returns False (and writes nothing) if the row is locked or no longer
        in from_status.
        """
        now_iso = to_iso(now)
        values: dict = {
            "status": new_status,
            "status_locked": SubmissionStatus(new_status) in TERMINAL_STATUSES,
            "updated_at": now_iso,
        }
        if new_status == SubmissionStatus.approved.value:
            values["approved_by"] = actor_id
        elif new_status == SubmissionStatus.rejected.value:
            values["rejected_by"] = actor_id

        with self.engine.begin() as conn:
            result = conn.execute(
                _submissions.update()
                .where(
                    (_submissions.c.id == submission_id)
                    & (_submissions.c.status == from_status)
                    & _submissions.c.status_locked.is_(False)
                )
                .values(**values)
            )
            if result.rowcount == 0:
                return False
            conn.execute(
                _history.insert().values(
                    submission_id=submission_id,
                    status=new_status,
                    changed_by=actor_id,
                    changed_at=now_iso,
                )
            )
        return True

    def delete_submission(self, submission_id: int) -> bool:
        """Delete a submission and its history. Returns False if not found."""
        with self.engine.begin() as conn:
            conn.execute(_history.delete().where(_history.c.submission_id == submission_id))
            result = conn.execute(_submissions.delete().where(_submissions.c.id == submission_id))
        return result.rowcount > 0

    def count_approvals_by_account(self) -> dict[int, int]:
        """{account_id: number of submissions that account approved}."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_submissions.c.approved_by, func.count())
                .where(_submissions.c.approved_by.isnot(None))
                .group_by(_submissions.c.approved_by)
            ).fetchall()
        return {account_id: count for account_id, count in rows}

    def _history(self, conn, submission_id: int) -> list[StatusChange]:
        rows = conn.execute(
            _history.select().where(_history.c.submission_id == submission_id).order_by(_history.c.id)
        ).fetchall()
        return [_row_to_change(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_submission(row, history: list[StatusChange]) -> Submission:
    return Submission(
        id=row.id,
        project_name=row.project_name,
        description=row.description,
        email=row.email,
        socials=Socials(
            x=row.x_handle,
            telegram=row.telegram,
            discord=row.discord,
            founder_tg=row.founder_tg,
        ),
        submission_code=row.submission_code,
        status=row.status,
        status_locked=bool(row.status_locked),
        approved_by=row.approved_by,
        rejected_by=row.rejected_by,
        submitted_at=from_iso(row.submitted_at),
        updated_at=from_iso(row.updated_at),
        history=history,
    )


def _row_to_change(row) -> StatusChange:
    return StatusChange(
        id=row.id,
        status=row.status,
        changed_by=row.changed_by,
        changed_at=from_iso(row.changed_at),
    )
