"""FastAPI dependencies for the routine compliance API.

Provides:
- Database session dependency
- Request clock (overridden in tests to pin "now")
- Result unwrapping into HTTP errors
"""

from datetime import datetime
from typing import TypeVar

from fastapi import HTTPException

from .core.clock import utcnow
from .core.errors import NOT_FOUND_MESSAGES
from .core.result import Result
from .db import get_db
from .services.boundary import STORAGE_FAILURE_MESSAGES

__all__ = ["get_db", "get_now", "unwrap"]

T = TypeVar("T")


def get_now() -> datetime:
    return utcnow()


def unwrap(result: Result[T]) -> T:
    """Return the data of a successful Result or raise the matching HTTPException.

    Failed Results carry only a message, matched against the fixed sets:
    - not-found messages -> 404 (absent and not-owned look the same)
    - storage failure messages -> 500
    - anything else -> 400
    """
    if result.success:
        return result.data

    message = result.error or "Request failed"
    if message in NOT_FOUND_MESSAGES:
        raise HTTPException(status_code=404, detail=message)
    if message in STORAGE_FAILURE_MESSAGES:
        raise HTTPException(status_code=500, detail=message)
    raise HTTPException(status_code=400, detail=message)
