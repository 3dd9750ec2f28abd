"""
submissions/workflow.py -- Submission intake and the review state machine.

transition() checks, in this order:
  1. the submission exists                      (NotFound)
  2. it is not locked                           (Finalized, whatever the target)
  3. the target is allowed from the current one (InvalidTransition)
then applies the change with SubmissionStore.apply_transition(). If another
reviewer finalized the record between the read and the write, the
conditional update matches nothing and the caller gets Finalized.

Every public method is a @core_operation and returns a core.errors.Result.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Account, AccountSummary
from auth.store import AccountStore
from core.db import to_iso, utcnow
from core.errors import Finalized, InvalidTransition, NotFound, ValidationError, core_operation
from core.roles import STAFF_ROLES
from notify.mailer import Mailer
from notify.publisher import NullPublisher, Publisher, publish_to_roles
from submissions.models import TRANSITIONS, Submission, SubmissionStatus
from submissions.store import MAX_PAGE, SubmissionStore
from submissions.validation import validate_submission

logger = logging.getLogger("reviewdesk.submissions")

# No 0/O, 1/I: the code is read aloud and typed back in.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
_CODE_ATTEMPTS = 5

SORT_ORDERS = ("newest", "oldest")

_FINALIZED = "This submission has been finalized and cannot be modified."


def new_submission_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class SubmissionWorkflow:
    def __init__(
        self,
        store: SubmissionStore,
        accounts: AccountStore,
        mailer: Optional[Mailer] = None,
        publisher: Optional[Publisher] = None,
    ) -> None:
        self.store = store
        self.accounts = accounts
        self.mailer = mailer or Mailer()
        self.publisher = publisher or NullPublisher()

    @core_operation
    def submit(self, fields: Mapping[str, Any]) -> Submission:
        """Validate and store a new public submission in status pending."""
        submission = validate_submission(fields)

        for attempt in range(1, _CODE_ATTEMPTS + 1):
            submission.submission_code = new_submission_code()
            try:
                submission_id = self.store.create_submission(submission)
            except IntegrityError:
                logger.info("Submission code collision (attempt %d)", attempt)
                continue
            break
        else:
            raise RuntimeError(f"Could not allocate a unique submission code after {_CODE_ATTEMPTS} attempts")

        created = self.store.get_by_id(submission_id, with_history=True)
        logger.info("Submission %d received (%s)", created.id, created.submission_code)
        if created.email:
            sent = self.mailer.send(
                "submission_confirmation", [created.submission_code, created.project_name], created.email
            )
            if not sent:
                logger.warning("Confirmation mail for submission %d was not delivered", created.id)
        publish_to_roles(self.publisher, STAFF_ROLES, "submission.created", submission_event_payload(created))
        return created

    @core_operation
    def list(self, status: Optional[str] = None, sort: str = "newest", limit: int = MAX_PAGE) -> list[Submission]:
        if status is not None and status not in {s.value for s in SubmissionStatus}:
            raise ValidationError("Unknown status filter.", fields={"status": "Must be pending, approved or rejected."})
        if sort not in SORT_ORDERS:
            raise ValidationError("Unknown sort order.", fields={"sort": "Must be newest or oldest."})
        submissions = self.store.list_submissions(status=status, newest_first=sort == "newest", limit=limit)
        self._resolve_people(submissions)
        return submissions

    @core_operation
    def get(self, submission_id: int) -> Submission:
        submission = self._get(submission_id)
        self._resolve_people([submission])
        return submission

    @core_operation
    def transition(self, submission_id: int, new_status: str, actor: Account) -> Submission:
        submission = self._get(submission_id)
        if submission.status_locked:
            raise Finalized(_FINALIZED)

        current = SubmissionStatus(submission.status)
        try:
            target = SubmissionStatus(new_status)
        except ValueError:
            target = None
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(current.value, str(new_status))

        if not self.store.apply_transition(submission.id, current.value, target.value, actor.id, utcnow()):
            # Someone else moved it first; the only way out of pending is a terminal status.
            raise Finalized(_FINALIZED)

        updated = self._get(submission_id)
        self._resolve_people([updated])
        logger.info("Submission %d: %s -> %s by account %d", updated.id, current.value, target.value, actor.id)
        publish_to_roles(self.publisher, STAFF_ROLES, "submission.status_changed", submission_event_payload(updated))
        return updated

    @core_operation
    def delete(self, submission_id: int) -> None:
        if not self.store.delete_submission(submission_id):
            raise NotFound("Submission not found.")
        logger.info("Submission %d deleted", submission_id)
        publish_to_roles(self.publisher, STAFF_ROLES, "submission.deleted", {"id": submission_id})

    def _get(self, submission_id: int) -> Submission:
        submission = self.store.get_by_id(submission_id, with_history=True)
        if submission is None:
            raise NotFound("Submission not found.")
        return submission

    def _resolve_people(self, submissions: list[Submission]) -> None:
        ids: set[int] = set()
        for s in submissions:
            ids.update(i for i in (s.approved_by, s.rejected_by) if i is not None)
            ids.update(change.changed_by for change in s.history)
        people = {i: AccountSummary.of(a) for i, a in self.accounts.get_many(ids).items()}
        for s in submissions:
            s.approver = people.get(s.approved_by)
            s.rejector = people.get(s.rejected_by)
            for change in s.history:
                change.changer = people.get(change.changed_by)


def submission_event_payload(submission: Submission) -> dict[str, Any]:
    return {
        "id": submission.id,
        "project_name": submission.project_name,
        "submission_code": submission.submission_code,
        "status": submission.status,
        "status_locked": submission.status_locked,
        "approved_by": submission.approved_by,
        "rejected_by": submission.rejected_by,
        "submitted_at": to_iso(submission.submitted_at) if submission.submitted_at else None,
    }
