"""Compliance sweep worker.

Each pass:
1. Takes a Redis lock (SET NX with TTL) so only one worker sweeps at a time
2. Marks pending steps past their grace period as missed
3. Tops up every published routine to the current rolling window

Usage:
    python -m routine_compliance.worker
"""

import logging
import sys
import time
import uuid
from datetime import datetime

from redis import Redis
from redis.exceptions import RedisError

from .core.clock import utcnow
from .db import init_engine, session_scope
from .infra.redis_client import get_sync_redis
from .services import completion_service, schedule_service
from .settings import settings

logger = logging.getLogger("routine_compliance.worker")

WORKER_ID = f"worker-{uuid.uuid4().hex[:8]}"
LOCK_KEY = "routine-compliance:sweep-lock"


def acquire_lock(r: Redis, ttl: int) -> bool:
    return bool(r.set(LOCK_KEY, WORKER_ID, nx=True, ex=ttl))


def release_lock(r: Redis) -> None:
    # TTL may have expired and another worker taken over
    if r.get(LOCK_KEY) == WORKER_ID:
        r.delete(LOCK_KEY)


def run_sweep(now: datetime) -> dict:
    """One sweep pass in its own transactions. Returns counts for logging."""
    with session_scope() as db:
        marked = completion_service.mark_overdue_as_missed(db, now)
        extended = schedule_service.extend_rolling_windows(db, now=now)

    if not marked.success:
        logger.error("Sweep failed: %s", marked.error)
    if not extended.success:
        logger.error("Window top-up failed: %s", extended.error)
    return {
        "marked_missed": marked.data or 0,
        "steps_created": extended.data or 0,
    }


def run_once(r: Redis) -> dict | None:
    """Sweep if the lock is free. None when another worker holds it."""
    if not acquire_lock(r, settings.sweep_lock_ttl):
        logger.info("[%s] Sweep lock held elsewhere; skipping", WORKER_ID)
        return None
    try:
        counts = run_sweep(utcnow())
        logger.info(
            "[%s] Sweep done: %d missed, %d created",
            WORKER_ID, counts["marked_missed"], counts["steps_created"],
        )
        return counts
    finally:
        release_lock(r)


def main():
    """Main worker loop."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logger.info("[%s] Starting (poll: %ss)", WORKER_ID, settings.sweep_poll_interval)

    init_engine()
    r = get_sync_redis()

    while True:
        try:
            run_once(r)
        except RedisError:
            logger.exception("[%s] Redis error; retrying next poll", WORKER_ID)
        time.sleep(settings.sweep_poll_interval)


if __name__ == "__main__":
    main()
