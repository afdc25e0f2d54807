import logging

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..deps import get_db
from ..infra.redis_client import get_redis

logger = logging.getLogger("routine_compliance.ready")

router = APIRouter()


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    db_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.warning("Database not ready", exc_info=True)

    redis_ok = False
    try:
        r = await get_redis()
        await r.ping()
        redis_ok = True
    except (RedisError, OSError):
        logger.warning("Redis not ready", exc_info=True)
    return {"ok": db_ok, "db_ok": db_ok, "redis_ok": redis_ok}
