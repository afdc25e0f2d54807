"""Idempotency-Key replay for mutating endpoints.

A key moves through two states in Redis:
- processing: claimed with SET NX, short TTL, concurrent retries get 409
- done: stored response, replayed verbatim for a day

Keys are scoped per user profile and route. Reusing a key with a different
body is a 409.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .redis_client import get_redis

logger = logging.getLogger("routine_compliance.idempotency")

DONE_TTL_SEC = 60 * 60 * 24
PROCESSING_TTL_SEC = 60
KEY_PREFIX = "routine-compliance:idemp"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hash_request(method: str, path: str, body_bytes: bytes) -> str:
    h = hashlib.sha256()
    h.update(method.encode("utf-8"))
    h.update(b"|")
    h.update(path.encode("utf-8"))
    h.update(b"|")
    h.update(body_bytes or b"")
    return h.hexdigest()


def _idemp_redis_key(user_profile_id: str, route_key: str, idem_key: str) -> str:
    return f"{KEY_PREFIX}:{user_profile_id}:{route_key}:{idem_key}"


async def idempotency_precheck(
    request: Request,
    *,
    user_profile_id: str,
    route_key: str,
    required: bool = True,
) -> Union[tuple[str, str, bytes], JSONResponse, None]:
    """Return (redis_key, request_hash, body_bytes) if the caller should proceed,
    a JSONResponse when a stored response should be replayed, or None when the
    header is absent on an endpoint where it is optional.
    """
    idem_key = request.headers.get("Idempotency-Key")
    if not idem_key:
        if required:
            raise HTTPException(status_code=400, detail="Missing Idempotency-Key header")
        return None

    body_bytes = await request.body()
    req_hash = _hash_request(request.method, request.url.path, body_bytes)

    rkey = _idemp_redis_key(user_profile_id, route_key, idem_key)
    r = await get_redis()

    raw = await r.get(rkey)
    if raw:
        data = json.loads(raw)
        if data.get("request_hash") and data["request_hash"] != req_hash:
            raise HTTPException(status_code=409, detail="Idempotency-Key reused with different request payload")
        if data.get("state") == "done":
            return JSONResponse(
                content=data.get("body"),
                status_code=int(data.get("status", 200)),
                headers=data.get("headers") or {},
            )
        raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is still processing. Retry shortly.")

    processing_payload = {
        "state": "processing",
        "status": None,
        "headers": {"content-type": "application/json"},
        "body": None,
        "created_at": _iso_now(),
        "completed_at": None,
        "request_hash": req_hash,
    }
    ok = await r.set(rkey, json.dumps(processing_payload), ex=PROCESSING_TTL_SEC, nx=True)
    if not ok:
        # lost the race to a concurrent retry
        raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is still processing. Retry shortly.")

    return (rkey, req_hash, body_bytes)


async def idempotency_store_result(
    redis_key: str, req_hash: str, *, status: int, body: dict, headers: Optional[dict] = None
):
    r = await get_redis()
    payload = {
        "state": "done",
        "status": int(status),
        "headers": headers or {"content-type": "application/json"},
        "body": body,
        "created_at": None,
        "completed_at": _iso_now(),
        "request_hash": req_hash,
    }
    await r.set(redis_key, json.dumps(payload), ex=DONE_TTL_SEC)


async def idempotency_clear_key(redis_key: str):
    """Release the processing claim so the client can retry after a failure."""
    try:
        r = await get_redis()
        await r.delete(redis_key)
    except RedisError:
        logger.warning("Could not clear idempotency key %s", redis_key, exc_info=True)
