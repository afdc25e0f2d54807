"""Persistence for scheduled step completions.

Every lookup that serves a user request filters by id AND owner in the same
query, so a record owned by someone else looks exactly like a missing one.
Methods flush but never commit; the service layer owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update, delete, func
from sqlalchemy.orm import Session

from ..core.errors import InvalidTransitionError
from ..models import STATUS_MISSED, STATUS_PENDING, ScheduledStepCompletion
from ..services import completion_state

logger = logging.getLogger("routine_compliance.repo.completions")


class CompletionRepository:
    def __init__(self, db: Session):
        self.db = db

    # --- Lookups ---

    def get_owned(
        self, step_id: str, user_profile_id: str, *, for_update: bool = False
    ) -> Optional[ScheduledStepCompletion]:
        stmt = select(ScheduledStepCompletion).where(
            ScheduledStepCompletion.id == step_id,
            ScheduledStepCompletion.user_profile_id == user_profile_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalar(stmt)

    def find_by_user_and_date(
        self,
        user_profile_id: str,
        scheduled_date: date,
        now: Optional[datetime] = None,
        *,
        for_update: bool = False,
    ) -> list[ScheduledStepCompletion]:
        """Rows for one user and day, ordered morning first.

        With `now`, stale pending rows are swept to missed before returning.
        """
        stmt = (
            select(ScheduledStepCompletion)
            .where(
                ScheduledStepCompletion.user_profile_id == user_profile_id,
                ScheduledStepCompletion.scheduled_date == scheduled_date,
            )
            .order_by(
                ScheduledStepCompletion.scheduled_time_of_day.desc(),  # morning > evening
                ScheduledStepCompletion.on_time_deadline,
                ScheduledStepCompletion.id,
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        rows = list(self.db.scalars(stmt).all())
        if now is not None:
            self._sweep_loaded(rows, now)
        return rows

    def find_by_user_and_range(
        self, user_profile_id: str, start: date, end: date
    ) -> list[ScheduledStepCompletion]:
        stmt = (
            select(ScheduledStepCompletion)
            .where(
                ScheduledStepCompletion.user_profile_id == user_profile_id,
                ScheduledStepCompletion.scheduled_date >= start,
                ScheduledStepCompletion.scheduled_date <= end,
            )
            .order_by(ScheduledStepCompletion.scheduled_date, ScheduledStepCompletion.id)
        )
        return list(self.db.scalars(stmt).all())

    def find_by_product(self, routine_product_id: str) -> list[ScheduledStepCompletion]:
        stmt = (
            select(ScheduledStepCompletion)
            .where(ScheduledStepCompletion.routine_product_id == routine_product_id)
            .order_by(ScheduledStepCompletion.scheduled_date)
        )
        return list(self.db.scalars(stmt).all())

    def existing_dates(self, routine_product_id: str, start: date, end: date) -> set[date]:
        stmt = select(ScheduledStepCompletion.scheduled_date).where(
            ScheduledStepCompletion.routine_product_id == routine_product_id,
            ScheduledStepCompletion.scheduled_date >= start,
            ScheduledStepCompletion.scheduled_date <= end,
        )
        return set(self.db.scalars(stmt).all())

    def max_scheduled_date(self, routine_product_ids: Sequence[str]) -> Optional[date]:
        if not routine_product_ids:
            return None
        return self.db.scalar(
            select(func.max(ScheduledStepCompletion.scheduled_date)).where(
                ScheduledStepCompletion.routine_product_id.in_(list(routine_product_ids))
            )
        )

    # --- Writes ---

    def create_many(self, records: Iterable[ScheduledStepCompletion]) -> int:
        records = list(records)
        if not records:
            return 0
        self.db.add_all(records)
        self.db.flush()
        return len(records)

    def update_completion(
        self,
        step_id: str,
        user_profile_id: str,
        completed: bool,
        at: Optional[datetime] = None,
    ) -> Optional[ScheduledStepCompletion]:
        """Apply one user transition. None when not found, not owned, or not allowed."""
        record = self.get_owned(step_id, user_profile_id, for_update=True)
        if record is None:
            logger.info("Step %s not found for profile %s", step_id, user_profile_id)
            return None

        try:
            completion_state.apply_completion(record, completed, at)
        except InvalidTransitionError as e:
            logger.info("Rejected transition for step %s (status=%s): %s", step_id, record.status, e)
            return None

        self.db.flush()
        return record

    def update_completions_by_date(
        self,
        user_profile_id: str,
        scheduled_date: date,
        completed: bool,
        at: Optional[datetime] = None,
    ) -> list[ScheduledStepCompletion]:
        rows = self.find_by_user_and_date(user_profile_id, scheduled_date, for_update=True)
        return self._apply_each(rows, completed, at)

    def update_completions_by_step_ids(
        self,
        user_profile_id: str,
        step_ids: Sequence[str],
        completed: bool,
        at: Optional[datetime] = None,
    ) -> list[ScheduledStepCompletion]:
        if not step_ids:
            return []
        stmt = (
            select(ScheduledStepCompletion)
            .where(
                ScheduledStepCompletion.user_profile_id == user_profile_id,
                ScheduledStepCompletion.id.in_(list(step_ids)),
            )
            .order_by(ScheduledStepCompletion.scheduled_date, ScheduledStepCompletion.id)
            .with_for_update()
        )
        rows = list(self.db.scalars(stmt).all())
        return self._apply_each(rows, completed, at)

    def _apply_each(
        self,
        rows: list[ScheduledStepCompletion],
        completed: bool,
        at: Optional[datetime],
    ) -> list[ScheduledStepCompletion]:
        # Each row transitions on its own; an invalid one is skipped, not fatal.
        applied = []
        for row in rows:
            try:
                completion_state.apply_completion(row, completed, at)
            except InvalidTransitionError as e:
                logger.debug("Skipping step %s (status=%s): %s", row.id, row.status, e)
                continue
            applied.append(row)
        self.db.flush()
        return applied

    def _sweep_loaded(self, rows: list[ScheduledStepCompletion], now: datetime) -> int:
        changed = completion_state.sweep(rows, now)
        if changed:
            self.db.flush()
            logger.info("Lazy sweep marked %d step(s) missed", len(changed))
        return len(changed)

    def mark_overdue(self, now: datetime, user_profile_id: Optional[str] = None) -> int:
        """Set-based sweep: pending rows past their grace period become missed."""
        stmt = (
            update(ScheduledStepCompletion)
            .where(
                ScheduledStepCompletion.status == STATUS_PENDING,
                ScheduledStepCompletion.grace_period_end < now,
            )
            .values(status=STATUS_MISSED)
            .execution_options(synchronize_session="fetch")
        )
        if user_profile_id is not None:
            stmt = stmt.where(ScheduledStepCompletion.user_profile_id == user_profile_id)
        result = self.db.execute(stmt)
        return result.rowcount or 0

    def delete_for_product(
        self,
        routine_product_id: str,
        from_date: Optional[date] = None,
        statuses: Optional[Sequence[str]] = None,
    ) -> int:
        stmt = delete(ScheduledStepCompletion).where(
            ScheduledStepCompletion.routine_product_id == routine_product_id
        )
        if from_date is not None:
            stmt = stmt.where(ScheduledStepCompletion.scheduled_date >= from_date)
        if statuses:
            stmt = stmt.where(ScheduledStepCompletion.status.in_(list(statuses)))
        result = self.db.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount or 0

