from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db, get_now, unwrap
from ..services import schedule_service

router = APIRouter()


@router.post("/routines/{routine_id}/publish", response_model=schemas.PublishRoutineOut)
def publish_routine(
    routine_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Publish a draft routine and generate its forward schedule."""
    routine = unwrap(schedule_service.publish_routine(db, routine_id, now=now))
    return {"routine": routine}


@router.delete("/routines/{routine_id}", response_model=schemas.DeletedOut)
def delete_routine(routine_id: str, db: Session = Depends(get_db)):
    removed = unwrap(schedule_service.delete_routine(db, routine_id))
    return {"ok": True, "steps_removed": removed}


@router.post("/routines/{routine_id}/products/reorder", response_model=list[schemas.RoutineProductOut])
def reorder_products(
    routine_id: str,
    payload: schemas.ReorderProductsRequest,
    db: Session = Depends(get_db),
):
    result = schedule_service.reorder_routine_products(
        db, routine_id, payload.time_of_day, payload.product_ids
    )
    return unwrap(result)


@router.patch("/routine-products/{product_id}", response_model=schemas.RoutineProductOut)
def update_routine_product(
    product_id: str,
    payload: schemas.RoutineProductUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Edit a product. Scheduling changes on a published routine regenerate
    pending steps from today onward; completed and missed history stays.
    """
    changes = payload.model_dump(exclude_unset=True)
    result = schedule_service.update_routine_product(db, product_id, changes, now=now)
    return unwrap(result)


@router.delete("/routine-products/{product_id}", response_model=schemas.DeletedOut)
def delete_routine_product(product_id: str, db: Session = Depends(get_db)):
    removed = unwrap(schedule_service.delete_routine_product(db, product_id))
    return {"ok": True, "steps_removed": removed}
