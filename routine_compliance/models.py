"""SQLAlchemy ORM models for the routine compliance service.

Tables:
- user_profiles: minimal projection of the collaborator-owned profile (timezone)
- skincare_routines: routine header with draft/published status
- skincare_routine_products: products with recurrence and time of day
- routine_step_completions: one scheduled occurrence per product per date
"""

from __future__ import annotations

import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    Date,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from .db import Base
from .orm_types import UTCDateTime


def generate_uuid() -> str:
    return str(uuid.uuid4())


ROUTINE_DRAFT = "draft"
ROUTINE_PUBLISHED = "published"

FREQUENCY_DAILY = "daily"
FREQUENCIES = ("daily", "2x per week", "3x per week", "specific_days")
TIMES_OF_DAY = ("morning", "evening")

STATUS_PENDING = "pending"
STATUS_ON_TIME = "on-time"
STATUS_LATE = "late"
STATUS_MISSED = "missed"
SETTLED_STATUSES = (STATUS_ON_TIME, STATUS_LATE)


class UserProfile(Base):
    """Subscriber profile. Only the fields this service reads are mapped."""
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(36), unique=True, nullable=True)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, server_default="Europe/London"
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    routines: Mapped[list["Routine"]] = relationship(
        "Routine", back_populates="user_profile", cascade="all, delete-orphan"
    )


class Routine(Base):
    """A subscriber's routine. Generation only runs while published."""
    __tablename__ = "skincare_routines"
    __table_args__ = (
        Index("ix_skincare_routines_user_profile_id", "user_profile_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # null = ongoing
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=ROUTINE_DRAFT
    )  # draft | published

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now()
    )

    user_profile: Mapped["UserProfile"] = relationship("UserProfile", back_populates="routines")
    products: Mapped[list["RoutineProduct"]] = relationship(
        "RoutineProduct", back_populates="routine", cascade="all, delete-orphan",
        order_by="[RoutineProduct.time_of_day, RoutineProduct.order]"
    )


class RoutineProduct(Base):
    """A product applied as one step of a routine on a recurrence."""
    __tablename__ = "skincare_routine_products"
    __table_args__ = (
        Index("ix_skincare_routine_products_routine_id", "routine_id"),
        Index("ix_skincare_routine_products_user_profile_id", "user_profile_id"),
        UniqueConstraint(
            "routine_id", "time_of_day", "order",
            name="uq_routine_product_routine_time_order"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    routine_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("skincare_routines.id", ondelete="CASCADE"), nullable=False
    )
    user_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )

    routine_step: Mapped[str] = mapped_column(Text, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    frequency: Mapped[str] = mapped_column(String(20), nullable=False)  # daily | 2x per week | 3x per week | specific_days
    days: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)  # ["Monday", "Thursday"]
    time_of_day: Mapped[str] = mapped_column(String(10), nullable=False)  # morning | evening
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now()
    )

    routine: Mapped["Routine"] = relationship("Routine", back_populates="products")
    completions: Mapped[list["ScheduledStepCompletion"]] = relationship(
        "ScheduledStepCompletion", back_populates="routine_product",
        cascade="all, delete-orphan", passive_deletes=True
    )


class ScheduledStepCompletion(Base):
    """One dated occurrence of a routine product and its compliance state."""
    __tablename__ = "routine_step_completions"
    __table_args__ = (
        UniqueConstraint(
            "routine_product_id", "scheduled_date",
            name="uq_routine_step_completion_schedule"
        ),
        CheckConstraint(
            "grace_period_end > on_time_deadline",
            name="ck_routine_step_completion_grace_after_deadline"
        ),
        Index("ix_routine_step_completions_user_date", "user_profile_id", "scheduled_date"),
        Index("ix_routine_step_completions_status_grace", "status", "grace_period_end"),
        Index("ix_routine_step_completions_product", "routine_product_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    routine_product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("skincare_routine_products.id", ondelete="CASCADE"), nullable=False
    )
    user_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time_of_day: Mapped[str] = mapped_column(String(10), nullable=False)
    on_time_deadline: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    grace_period_end: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=STATUS_PENDING
    )  # pending | on-time | late | missed
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now()
    )

    routine_product: Mapped["RoutineProduct"] = relationship(
        "RoutineProduct", back_populates="completions"
    )
