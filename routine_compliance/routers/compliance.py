from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db, get_now, unwrap
from ..services import completion_service, compliance_stats, schedule_service

router = APIRouter()


@router.post("/compliance/sweep", response_model=schemas.SweepOut)
def sweep(
    user_profile_id: Optional[str] = Query(None, alias="userProfileId"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Mark overdue steps missed. A full sweep also tops up rolling windows."""
    marked = unwrap(completion_service.mark_overdue_as_missed(db, now, user_profile_id))
    created = 0
    if user_profile_id is None:
        created = unwrap(schedule_service.extend_rolling_windows(db, now=now))
    return {"marked_missed": marked, "steps_created": created}


@router.get("/compliance/stats", response_model=schemas.ComplianceStatsOut)
def get_stats(
    user_profile_id: str = Query(..., alias="userProfileId"),
    start: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    end: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    result = compliance_stats.get_compliance_stats(db, user_profile_id, start, end, now=now)
    return schemas.ComplianceStatsOut.model_validate(unwrap(result))
