"""Keep a product's scheduled steps in line with its routine.

Triggers:
- routine published: generate every product's forward window
- product added to a published routine: generate its window
- product edited on a published routine: drop its pending rows from today
  onward, regenerate over the same window
- product deleted: drop all of its rows
- routine deleted: product rule applied to every product
- window top-up: extend published routines to the current rolling window

Settled rows (on-time, late) and missed rows are history and are never
rewritten by an edit. Nothing here commits; callers own the transaction and
roll back the whole workflow when any step raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..core.errors import PROFILE_NOT_FOUND, ROUTINE_NOT_FOUND, NotFoundError, ValidationError
from ..models import (
    FREQUENCIES,
    FREQUENCY_DAILY,
    ROUTINE_DRAFT,
    ROUTINE_PUBLISHED,
    STATUS_PENDING,
    TIMES_OF_DAY,
    Routine,
    RoutineProduct,
)
from ..repositories.completions import CompletionRepository
from ..repositories.routines import RoutineRepository
from . import schedule_generator
from .deadlines import DEFAULT_DEADLINE_CONFIG, DeadlineCache, DeadlineConfig

logger = logging.getLogger("routine_compliance.regeneration")

SCHEDULING_FIELDS = ("frequency", "days", "time_of_day")
EDITABLE_FIELDS = SCHEDULING_FIELDS + ("routine_step", "product_name", "instructions")


@dataclass(frozen=True)
class Window:
    start: date
    end: date


def utc_today(now: datetime) -> date:
    if now.tzinfo is None:
        raise ValidationError("now must be a timezone-aware instant")
    return now.astimezone(timezone.utc).date()


class RegenerationCoordinator:
    def __init__(
        self,
        db: Session,
        config: DeadlineConfig = DEFAULT_DEADLINE_CONFIG,
        window_days: int = 60,
    ):
        if window_days < 1:
            raise ValidationError("Schedule window must cover at least one day")
        self.db = db
        self.config = config
        self.window_days = window_days
        self.completions = CompletionRepository(db)
        self.routines = RoutineRepository(db)

    # --- Windows ---

    def forward_window(self, routine: Routine, now: datetime) -> Optional[Window]:
        """[max(start_date, today), +window_days), capped by the routine end date."""
        start = max(routine.start_date, utc_today(now))
        end = start + timedelta(days=self.window_days - 1)
        if routine.end_date is not None:
            end = min(end, routine.end_date)
        if end < start:
            return None
        return Window(start, end)

    def _regeneration_window(self, routine: Routine, now: datetime) -> Optional[Window]:
        # Routine end date first, then the routine's existing horizon, then the default.
        window = self.forward_window(routine, now)
        if window is None or routine.end_date is not None:
            return window

        product_ids = [p.id for p in self.routines.products_for_routine(routine.id)]
        horizon = self.completions.max_scheduled_date(product_ids)
        if horizon is not None and horizon >= window.start:
            return Window(window.start, horizon)
        return window

    # --- Generation ---

    def _generate(self, routine: Routine, product: RoutineProduct, window: Optional[Window]) -> int:
        if window is None:
            return 0

        profile = self.routines.get_profile(routine.user_profile_id)
        if profile is None:
            raise NotFoundError(PROFILE_NOT_FOUND)

        existing = self.completions.existing_dates(product.id, window.start, window.end)
        dates = schedule_generator.generate(product, window.start, window.end, existing)
        records = schedule_generator.build_pending_records(
            product,
            dates,
            DeadlineCache(profile.timezone, self.config),
            routine.user_profile_id,
        )
        created = self.completions.create_many(records)
        logger.info(
            "Generated %d step(s) for product %s (%s..%s, %d already present)",
            created, product.id, window.start, window.end, len(existing),
        )
        return created

    def generate_for_product(self, routine: Routine, product: RoutineProduct, now: datetime) -> int:
        if routine.status != ROUTINE_PUBLISHED:
            logger.info("Routine %s is %s; skipping generation", routine.id, routine.status)
            return 0
        return self._generate(routine, product, self.forward_window(routine, now))

    def publish_routine(self, routine: Routine, now: datetime) -> int:
        if routine.status != ROUTINE_DRAFT:
            raise ValidationError("Routine is already published")

        products = self.routines.products_for_routine(routine.id)
        if not products:
            raise ValidationError("Cannot publish routine without products")
        for product in products:
            schedule_generator.validate_recurrence(product.frequency, product.days)

        routine.status = ROUTINE_PUBLISHED
        window = self.forward_window(routine, now)
        return sum(self._generate(routine, product, window) for product in products)

    def extend_rolling_windows(self, now: datetime) -> int:
        """Top up every published routine to today's window. Existing dates are skipped."""
        created = 0
        for routine in self.routines.published_routines():
            window = self.forward_window(routine, now)
            for product in self.routines.products_for_routine(routine.id):
                created += self._generate(routine, product, window)
        return created

    # --- Edits and deletes ---

    def apply_product_edit(
        self, product: RoutineProduct, changes: dict[str, Any], now: datetime
    ) -> int:
        """Update product fields, regenerating its schedule when scheduling fields changed.

        Returns the number of steps created by regeneration.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited here: {sorted(unknown)}")

        frequency = changes.get("frequency", product.frequency)
        days = changes.get("days", product.days)
        time_of_day = changes.get("time_of_day", product.time_of_day)
        if frequency not in FREQUENCIES:
            raise ValidationError(f"Unknown frequency: {frequency!r}")
        if time_of_day not in TIMES_OF_DAY:
            raise ValidationError(f"Unknown time of day: {time_of_day!r}")
        if frequency == FREQUENCY_DAILY and "days" not in changes:
            days = None
        schedule_generator.validate_recurrence(frequency, days)

        scheduling_changed = (
            frequency != product.frequency
            or time_of_day != product.time_of_day
            or set(days or ()) != set(product.days or ())
        )

        if time_of_day != product.time_of_day:
            # (routine_id, time_of_day, order) is unique; join the target slot at the end
            product.order = self.routines.next_order(product.routine_id, time_of_day)
        for field, value in changes.items():
            setattr(product, field, value)
        product.days = days
        self.db.flush()

        routine = self.routines.get_routine(product.routine_id)
        if routine is None:
            raise NotFoundError(ROUTINE_NOT_FOUND)
        if routine.status != ROUTINE_PUBLISHED or not scheduling_changed:
            return 0

        window = self._regeneration_window(routine, now)
        removed = self.completions.delete_for_product(
            product.id, from_date=utc_today(now), statuses=[STATUS_PENDING]
        )
        logger.info("Removed %d pending step(s) for edited product %s", removed, product.id)
        return self._generate(routine, product, window)

    def remove_product_schedule(self, product: RoutineProduct) -> int:
        removed = self.completions.delete_for_product(product.id)
        logger.info("Removed %d step(s) for product %s", removed, product.id)
        return removed

    def delete_product(self, product: RoutineProduct) -> int:
        removed = self.remove_product_schedule(product)
        self.routines.delete_product(product)
        return removed

    def delete_routine(self, routine: Routine) -> int:
        removed = sum(
            self.remove_product_schedule(product)
            for product in self.routines.products_for_routine(routine.id)
        )
        self.routines.delete_routine(routine)
        return removed
