"""Completion operations exposed to collaborators.

Every operation validates its input before touching storage, runs as one
transaction, and returns a Result instead of raising. Callers supply `now`;
a missing `completed_at` means "completed at now".
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.errors import STEP_NOT_FOUND, NotFoundError, ValidationError
from ..core.result import Result
from ..core.validation import require_date, require_instant, require_uuid
from ..models import ScheduledStepCompletion
from ..repositories.completions import CompletionRepository
from .boundary import (
    FAILED_FETCH_STEPS,
    FAILED_MARK_OVERDUE,
    FAILED_UPDATE_COMPLETION,
    FAILED_UPDATE_COMPLETIONS,
    run_in_transaction,
)

logger = logging.getLogger("routine_compliance.completions")


def _completion_time(completed: bool, completed_at: Optional[datetime], now: datetime) -> Optional[datetime]:
    require_instant(now, "now")
    if not completed:
        return None
    if completed_at is None:
        return now
    return require_instant(completed_at, "completed_at")


def update_completion(
    db: Session,
    step_id: str,
    completed: bool,
    user_profile_id: str,
    completed_at: Optional[datetime] = None,
    *,
    now: datetime,
) -> Result[ScheduledStepCompletion]:
    def work():
        sid = require_uuid(step_id, "step ID")
        uid = require_uuid(user_profile_id, "user profile ID")
        at = _completion_time(completed, completed_at, now)

        record = CompletionRepository(db).update_completion(sid, uid, completed, at)
        if record is None:
            raise NotFoundError(STEP_NOT_FOUND)

        logger.info(
            "Step %s -> %s (completed_at=%s, deadline=%s, grace_end=%s)",
            record.id, record.status, record.completed_at,
            record.on_time_deadline, record.grace_period_end,
        )
        return record

    return run_in_transaction(db, FAILED_UPDATE_COMPLETION, work)


def update_completions_by_date(
    db: Session,
    scheduled_date: Union[date, str],
    completed: bool,
    user_profile_id: str,
    completed_at: Optional[datetime] = None,
    *,
    now: datetime,
) -> Result[list[ScheduledStepCompletion]]:
    def work():
        day = require_date(scheduled_date)
        uid = require_uuid(user_profile_id, "user profile ID")
        at = _completion_time(completed, completed_at, now)

        records = CompletionRepository(db).update_completions_by_date(uid, day, completed, at)
        logger.info("Updated %d step(s) for %s on %s", len(records), uid, day)
        return records

    return run_in_transaction(db, FAILED_UPDATE_COMPLETIONS, work)


def update_completions_by_step_ids(
    db: Session,
    step_ids: Sequence[str],
    completed: bool,
    user_profile_id: str,
    completed_at: Optional[datetime] = None,
    *,
    now: datetime,
) -> Result[list[ScheduledStepCompletion]]:
    def work():
        if not step_ids:
            raise ValidationError("stepIds must contain at least one ID")
        ids = [require_uuid(s, "step ID") for s in step_ids]
        uid = require_uuid(user_profile_id, "user profile ID")
        at = _completion_time(completed, completed_at, now)

        records = CompletionRepository(db).update_completions_by_step_ids(uid, ids, completed, at)
        logger.info("Updated %d of %d requested step(s) for %s", len(records), len(ids), uid)
        return records

    return run_in_transaction(db, FAILED_UPDATE_COMPLETIONS, work)


def get_steps_for_date(
    db: Session,
    user_profile_id: str,
    scheduled_date: Union[date, str],
    *,
    now: datetime,
) -> Result[list[ScheduledStepCompletion]]:
    """Steps for one day. Stale pending rows are swept to missed on the way out."""
    def work():
        day = require_date(scheduled_date)
        uid = require_uuid(user_profile_id, "user profile ID")
        require_instant(now, "now")
        return CompletionRepository(db).find_by_user_and_date(uid, day, now)

    return run_in_transaction(db, FAILED_FETCH_STEPS, work)


def mark_overdue_as_missed(
    db: Session,
    now: datetime,
    user_profile_id: Optional[str] = None,
) -> Result[int]:
    def work():
        require_instant(now, "now")
        uid = require_uuid(user_profile_id, "user profile ID") if user_profile_id else None
        count = CompletionRepository(db).mark_overdue(now, uid)
        if count:
            logger.info("Marked %d overdue step(s) missed", count)
        return count

    return run_in_transaction(db, FAILED_MARK_OVERDUE, work)
