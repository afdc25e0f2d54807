"""Adherence aggregation over a date range.

Only settled and missed rows count; pending rows are still open and are
left out of every bucket. Stale pending rows for the user are swept first so
a read never reports an overdue step as open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Union

from sqlalchemy.orm import Session

from ..core.errors import ValidationError
from ..core.result import Result
from ..core.validation import require_date, require_instant, require_uuid
from ..models import (
    STATUS_LATE,
    STATUS_MISSED,
    STATUS_ON_TIME,
    STATUS_PENDING,
    ScheduledStepCompletion,
)
from ..repositories.completions import CompletionRepository
from ..repositories.routines import RoutineRepository
from .boundary import FAILED_FETCH_STATS, run_in_transaction

logger = logging.getLogger("routine_compliance.stats")


@dataclass
class Tally:
    prescribed: int = 0
    completed: int = 0
    on_time: int = 0
    late: int = 0
    missed: int = 0

    def add(self, status: str) -> None:
        self.prescribed += 1
        if status == STATUS_ON_TIME:
            self.on_time += 1
            self.completed += 1
        elif status == STATUS_LATE:
            self.late += 1
            self.completed += 1
        elif status == STATUS_MISSED:
            self.missed += 1


@dataclass
class ProductTally(Tally):
    routine_product_id: str = ""
    routine_step: str = ""
    product_name: str = ""
    time_of_day: str = ""
    frequency: str = ""
    missed_dates: list[date] = field(default_factory=list)


@dataclass
class ComplianceStats:
    overall: Tally
    am: Tally
    pm: Tally
    steps: list[ProductTally]


def summarize(records: Iterable[ScheduledStepCompletion], products: dict) -> ComplianceStats:
    overall, am, pm = Tally(), Tally(), Tally()
    by_product: dict[str, ProductTally] = {}

    for record in records:
        if record.status == STATUS_PENDING:
            continue
        overall.add(record.status)
        (am if record.scheduled_time_of_day == "morning" else pm).add(record.status)

        product = products.get(record.routine_product_id)
        if product is None:
            continue
        tally = by_product.get(product.id)
        if tally is None:
            tally = by_product[product.id] = ProductTally(
                routine_product_id=product.id,
                routine_step=product.routine_step,
                product_name=product.product_name,
                time_of_day=product.time_of_day,
                frequency=product.frequency,
            )
        tally.add(record.status)
        if record.status == STATUS_MISSED:
            tally.missed_dates.append(record.scheduled_date)

    return ComplianceStats(overall=overall, am=am, pm=pm, steps=list(by_product.values()))


def get_compliance_stats(
    db: Session,
    user_profile_id: str,
    start: Union[date, str],
    end: Union[date, str],
    *,
    now: datetime,
) -> Result[ComplianceStats]:
    def work():
        uid = require_uuid(user_profile_id, "user ID")
        start_date = require_date(start, "start date")
        end_date = require_date(end, "end date")
        if end_date < start_date:
            raise ValidationError("End date must not be before start date")
        require_instant(now, "now")

        completions = CompletionRepository(db)
        swept = completions.mark_overdue(now, uid)
        if swept:
            logger.info("Marked %d overdue step(s) missed before stats for %s", swept, uid)

        records = completions.find_by_user_and_range(uid, start_date, end_date)
        product_ids = {r.routine_product_id for r in records if r.status != STATUS_PENDING}
        products = {p.id: p for p in RoutineRepository(db).products_by_ids(sorted(product_ids))}
        return summarize(records, products)

    return run_in_transaction(db, FAILED_FETCH_STATS, work)
