"""Read access to the collaborator-owned routine, product and profile rows.

The CRUD layer owns these tables. This module only reads them, plus the
product writes regeneration and reordering need.
"""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.errors import ValidationError
from ..models import ROUTINE_PUBLISHED, Routine, RoutineProduct, UserProfile


class RoutineRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_profile_id: str) -> Optional[UserProfile]:
        return self.db.get(UserProfile, user_profile_id)

    def get_routine(self, routine_id: str, user_profile_id: Optional[str] = None) -> Optional[Routine]:
        stmt = select(Routine).where(Routine.id == routine_id)
        if user_profile_id is not None:
            stmt = stmt.where(Routine.user_profile_id == user_profile_id)
        return self.db.scalar(stmt)

    def get_product(
        self,
        product_id: str,
        routine_id: Optional[str] = None,
        user_profile_id: Optional[str] = None,
    ) -> Optional[RoutineProduct]:
        stmt = select(RoutineProduct).where(RoutineProduct.id == product_id)
        if routine_id is not None:
            stmt = stmt.where(RoutineProduct.routine_id == routine_id)
        if user_profile_id is not None:
            stmt = stmt.where(RoutineProduct.user_profile_id == user_profile_id)
        return self.db.scalar(stmt)

    def products_for_routine(self, routine_id: str) -> list[RoutineProduct]:
        stmt = (
            select(RoutineProduct)
            .where(RoutineProduct.routine_id == routine_id)
            .order_by(RoutineProduct.time_of_day, RoutineProduct.order)
        )
        return list(self.db.scalars(stmt).all())

    def products_by_ids(self, product_ids: Sequence[str]) -> list[RoutineProduct]:
        if not product_ids:
            return []
        stmt = select(RoutineProduct).where(RoutineProduct.id.in_(list(product_ids)))
        return list(self.db.scalars(stmt).all())

    def next_order(self, routine_id: str, time_of_day: str) -> int:
        stmt = select(func.max(RoutineProduct.order)).where(
            RoutineProduct.routine_id == routine_id,
            RoutineProduct.time_of_day == time_of_day,
        )
        current = self.db.scalar(stmt)
        return 0 if current is None else current + 1

    def published_routines(self) -> list[Routine]:
        return list(self.db.scalars(select(Routine).where(Routine.status == ROUTINE_PUBLISHED)).all())

    def delete_product(self, product: RoutineProduct) -> None:
        self.db.delete(product)
        self.db.flush()

    def delete_routine(self, routine: Routine) -> None:
        self.db.delete(routine)
        self.db.flush()

    def reorder_products(
        self, routine_id: str, time_of_day: str, ordered_ids: Sequence[str]
    ) -> list[RoutineProduct]:
        """Rewrite `order` for one routine/time-of-day slot.

        (routine_id, time_of_day, order) is unique, so a straight rewrite can
        collide mid-flight. Rows are parked on negative values first, flushed,
        then given their final positions.
        """
        slot = {
            p.id: p for p in self.products_for_routine(routine_id)
            if p.time_of_day == time_of_day
        }
        if len(set(ordered_ids)) != len(ordered_ids) or set(ordered_ids) != set(slot):
            raise ValidationError("Product IDs must list every product in the slot exactly once")

        for index, product_id in enumerate(ordered_ids):
            slot[product_id].order = -(index + 1)
        self.db.flush()

        for index, product_id in enumerate(ordered_ids):
            slot[product_id].order = index
        self.db.flush()

        return [slot[product_id] for product_id in ordered_ids]
