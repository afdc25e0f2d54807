"""Schedule lifecycle operations exposed to collaborators.

The product or routine write and the schedule change it triggers share one
transaction. When regeneration fails the product write is rolled back with
it and the caller gets a failed Result.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.errors import PRODUCT_NOT_FOUND, ROUTINE_NOT_FOUND, NotFoundError, ValidationError
from ..core.result import Result
from ..core.validation import require_instant, require_uuid
from ..models import TIMES_OF_DAY, Routine, RoutineProduct
from ..repositories.routines import RoutineRepository
from ..settings import settings
from .boundary import (
    FAILED_DELETE_PRODUCT,
    FAILED_DELETE_ROUTINE,
    FAILED_DELETE_STEPS,
    FAILED_EXTEND_SCHEDULES,
    FAILED_GENERATE_STEPS,
    FAILED_PUBLISH_ROUTINE,
    FAILED_REORDER_PRODUCTS,
    FAILED_UPDATE_PRODUCT,
    run_in_transaction,
)
from .deadlines import DeadlineConfig, deadline_config_from_settings
from .regeneration import RegenerationCoordinator


def make_coordinator(
    db: Session,
    config: Optional[DeadlineConfig] = None,
    window_days: Optional[int] = None,
) -> RegenerationCoordinator:
    return RegenerationCoordinator(
        db,
        config=config or deadline_config_from_settings(settings),
        window_days=window_days or settings.schedule_window_days,
    )


def _owned_product(
    routines: RoutineRepository, product_id: str, routine_id: str, user_profile_id: str
) -> tuple[Routine, RoutineProduct]:
    pid = require_uuid(product_id, "product ID")
    rid = require_uuid(routine_id, "routine ID")
    uid = require_uuid(user_profile_id, "user profile ID")

    routine = routines.get_routine(rid, user_profile_id=uid)
    if routine is None:
        raise NotFoundError(ROUTINE_NOT_FOUND)
    product = routines.get_product(pid, routine_id=rid)
    if product is None:
        raise NotFoundError(PRODUCT_NOT_FOUND)
    return routine, product


def generate_scheduled_steps_for_product(
    db: Session,
    product_id: str,
    routine_id: str,
    user_profile_id: str,
    *,
    now: datetime,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[int]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        require_instant(now, "now")
        routine, product = _owned_product(coordinator.routines, product_id, routine_id, user_profile_id)
        return coordinator.generate_for_product(routine, product, now)

    return run_in_transaction(db, FAILED_GENERATE_STEPS, work)


def delete_scheduled_steps_for_product(
    db: Session,
    product_id: str,
    routine_id: str,
    user_profile_id: str,
    *,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[int]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        _, product = _owned_product(coordinator.routines, product_id, routine_id, user_profile_id)
        return coordinator.remove_product_schedule(product)

    return run_in_transaction(db, FAILED_DELETE_STEPS, work)


def publish_routine(
    db: Session,
    routine_id: str,
    *,
    now: datetime,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[Routine]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        require_instant(now, "now")
        routine = coordinator.routines.get_routine(require_uuid(routine_id, "routine ID"))
        if routine is None:
            raise NotFoundError(ROUTINE_NOT_FOUND)
        coordinator.publish_routine(routine, now)
        return routine

    return run_in_transaction(db, FAILED_PUBLISH_ROUTINE, work)


def update_routine_product(
    db: Session,
    product_id: str,
    changes: dict[str, Any],
    *,
    now: datetime,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[RoutineProduct]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        require_instant(now, "now")
        product = coordinator.routines.get_product(require_uuid(product_id, "product ID"))
        if product is None:
            raise NotFoundError(PRODUCT_NOT_FOUND)
        coordinator.apply_product_edit(product, changes, now)
        return product

    return run_in_transaction(db, FAILED_UPDATE_PRODUCT, work)


def delete_routine_product(
    db: Session,
    product_id: str,
    *,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[int]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        product = coordinator.routines.get_product(require_uuid(product_id, "product ID"))
        if product is None:
            raise NotFoundError(PRODUCT_NOT_FOUND)
        return coordinator.delete_product(product)

    return run_in_transaction(db, FAILED_DELETE_PRODUCT, work)


def delete_routine(
    db: Session,
    routine_id: str,
    *,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[int]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        routine = coordinator.routines.get_routine(require_uuid(routine_id, "routine ID"))
        if routine is None:
            raise NotFoundError(ROUTINE_NOT_FOUND)
        return coordinator.delete_routine(routine)

    return run_in_transaction(db, FAILED_DELETE_ROUTINE, work)


def reorder_routine_products(
    db: Session,
    routine_id: str,
    time_of_day: str,
    ordered_ids: Sequence[str],
) -> Result[list[RoutineProduct]]:
    routines = RoutineRepository(db)

    def work():
        rid = require_uuid(routine_id, "routine ID")
        if time_of_day not in TIMES_OF_DAY:
            raise ValidationError(f"Unknown time of day: {time_of_day!r}")
        ids = [require_uuid(p, "product ID") for p in ordered_ids]
        if routines.get_routine(rid) is None:
            raise NotFoundError(ROUTINE_NOT_FOUND)
        return routines.reorder_products(rid, time_of_day, ids)

    return run_in_transaction(db, FAILED_REORDER_PRODUCTS, work)


def extend_rolling_windows(
    db: Session,
    *,
    now: datetime,
    coordinator: Optional[RegenerationCoordinator] = None,
) -> Result[int]:
    coordinator = coordinator or make_coordinator(db)

    def work():
        require_instant(now, "now")
        return coordinator.extend_rolling_windows(now)

    return run_in_transaction(db, FAILED_EXTEND_SCHEDULES, work)
