"""Pydantic schemas for the routine compliance API.

Request/response models for:
- Step completion updates (single, by ids, by date)
- Scheduled steps
- Routine and product lifecycle
- Compliance stats
"""

from datetime import datetime, date
from typing import Optional, Literal

from pydantic import BaseModel, Field, model_validator


# --- Scheduled steps ---

class StepCompletionOut(BaseModel):
    id: str
    routine_product_id: str
    user_profile_id: str
    scheduled_date: date
    scheduled_time_of_day: str  # morning | evening
    on_time_deadline: datetime
    grace_period_end: datetime
    status: str  # pending | on-time | late | missed
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class UpdateCompletionRequest(BaseModel):
    """Exactly one of stepId, stepIds or date selects the steps to update."""
    user_profile_id: str = Field(..., alias="userProfileId")
    completed: bool
    step_id: Optional[str] = Field(None, alias="stepId")
    step_ids: Optional[list[str]] = Field(None, alias="stepIds")
    scheduled_date: Optional[str] = Field(None, alias="date", pattern=r"^\d{4}-\d{2}-\d{2}$")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def _one_selector(self):
        chosen = [v for v in (self.step_id, self.step_ids, self.scheduled_date) if v is not None]
        if len(chosen) != 1:
            raise ValueError("Provide exactly one of stepId, stepIds or date")
        if self.step_ids is not None and not self.step_ids:
            raise ValueError("stepIds must contain at least one ID")
        return self


class UpdateCompletionResponse(BaseModel):
    steps: list[StepCompletionOut]


# --- Routines ---

class RoutineOut(BaseModel):
    id: str
    user_profile_id: str
    name: str
    start_date: date
    end_date: Optional[date]
    status: str  # draft | published

    class Config:
        from_attributes = True


class PublishRoutineOut(BaseModel):
    routine: RoutineOut


class RoutineProductOut(BaseModel):
    id: str
    routine_id: str
    routine_step: str
    product_name: str
    instructions: Optional[str]
    frequency: str
    days: Optional[list[str]]
    time_of_day: str
    order: int

    class Config:
        from_attributes = True


class RoutineProductUpdate(BaseModel):
    routine_step: Optional[str] = Field(None, min_length=1)
    product_name: Optional[str] = Field(None, min_length=1)
    instructions: Optional[str] = None
    frequency: Optional[Literal["daily", "2x per week", "3x per week", "specific_days"]] = None
    days: Optional[list[str]] = None
    time_of_day: Optional[Literal["morning", "evening"]] = None


class ReorderProductsRequest(BaseModel):
    time_of_day: Literal["morning", "evening"]
    product_ids: list[str] = Field(..., min_length=1)


class DeletedOut(BaseModel):
    ok: bool = True
    steps_removed: int


# --- Compliance ---

class SweepOut(BaseModel):
    marked_missed: int
    steps_created: int


class TallyOut(BaseModel):
    prescribed: int
    completed: int
    on_time: int
    late: int
    missed: int

    class Config:
        from_attributes = True


class ProductTallyOut(TallyOut):
    routine_product_id: str
    routine_step: str
    product_name: str
    time_of_day: str
    frequency: str
    missed_dates: list[date]


class ComplianceStatsOut(BaseModel):
    overall: TallyOut
    am: TallyOut
    pm: TallyOut
    steps: list[ProductTallyOut]

    class Config:
        from_attributes = True
