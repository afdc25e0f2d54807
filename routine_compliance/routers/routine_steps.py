from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import schemas
from ..deps import get_db, get_now, unwrap
from ..infra.idempotency import idempotency_clear_key, idempotency_precheck, idempotency_store_result
from ..services import completion_service

router = APIRouter()


@router.get("/routine-steps", response_model=list[schemas.StepCompletionOut])
def list_steps_for_date(
    user_profile_id: str = Query(..., alias="userProfileId"),
    date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Steps for one day, morning first. Overdue pending steps come back as missed."""
    result = completion_service.get_steps_for_date(db, user_profile_id, date, now=now)
    return unwrap(result)


@router.patch("/routine-steps", response_model=schemas.UpdateCompletionResponse)
async def update_steps(
    request: Request,
    payload: schemas.UpdateCompletionRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Mark one step, a list of steps, or a whole day complete or incomplete.

    A single stepId that is missing, owned by someone else, or cannot make the
    transition is a 404. Batch updates skip steps that cannot transition.
    """
    pre = await idempotency_precheck(
        request, user_profile_id=payload.user_profile_id, route_key="routine_steps", required=False
    )
    if isinstance(pre, JSONResponse):
        return pre

    try:
        if payload.step_id is not None:
            result = completion_service.update_completion(
                db, payload.step_id, payload.completed, payload.user_profile_id, now=now
            )
            steps = [unwrap(result)]
        elif payload.step_ids is not None:
            result = completion_service.update_completions_by_step_ids(
                db, payload.step_ids, payload.completed, payload.user_profile_id, now=now
            )
            steps = unwrap(result)
        else:
            result = completion_service.update_completions_by_date(
                db, payload.scheduled_date, payload.completed, payload.user_profile_id, now=now
            )
            steps = unwrap(result)

        body = jsonable_encoder(
            schemas.UpdateCompletionResponse(
                steps=[schemas.StepCompletionOut.model_validate(s) for s in steps]
            )
        )
    except HTTPException:
        if pre is not None:
            await idempotency_clear_key(pre[0])
        raise

    if pre is not None:
        redis_key, req_hash, _ = pre
        await idempotency_store_result(redis_key, req_hash, status=200, body=body)
    return body
