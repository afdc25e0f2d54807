"""Transaction + error boundary shared by the public service operations.

Engine errors become a failed Result with their own message. Storage errors
are logged with the traceback and surfaced with a generic message. Either
way the session is rolled back, so a failure anywhere in a multi-step
workflow undoes the whole workflow.
"""

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import ComplianceError, StorageError
from ..core.result import Result

logger = logging.getLogger("routine_compliance.service")

T = TypeVar("T")

# Generic messages for storage failures, one per public operation.
FAILED_UPDATE_COMPLETION = "Failed to update completion"
FAILED_UPDATE_COMPLETIONS = "Failed to update completions"
FAILED_FETCH_STEPS = "Failed to fetch steps"
FAILED_MARK_OVERDUE = "Failed to mark overdue steps"
FAILED_GENERATE_STEPS = "Failed to generate scheduled steps"
FAILED_DELETE_STEPS = "Failed to delete scheduled steps"
FAILED_PUBLISH_ROUTINE = "Failed to publish routine"
FAILED_UPDATE_PRODUCT = "Failed to update routine product"
FAILED_DELETE_PRODUCT = "Failed to delete routine product"
FAILED_DELETE_ROUTINE = "Failed to delete routine"
FAILED_REORDER_PRODUCTS = "Failed to reorder routine products"
FAILED_EXTEND_SCHEDULES = "Failed to extend schedules"
FAILED_FETCH_STATS = "Failed to fetch compliance stats"

STORAGE_FAILURE_MESSAGES = frozenset({
    FAILED_UPDATE_COMPLETION,
    FAILED_UPDATE_COMPLETIONS,
    FAILED_FETCH_STEPS,
    FAILED_MARK_OVERDUE,
    FAILED_GENERATE_STEPS,
    FAILED_DELETE_STEPS,
    FAILED_PUBLISH_ROUTINE,
    FAILED_UPDATE_PRODUCT,
    FAILED_DELETE_PRODUCT,
    FAILED_DELETE_ROUTINE,
    FAILED_REORDER_PRODUCTS,
    FAILED_EXTEND_SCHEDULES,
    FAILED_FETCH_STATS,
})


def run_in_transaction(db: Session, failure_message: str, work: Callable[[], T]) -> Result[T]:
    try:
        data = work()
        db.commit()
    except StorageError:
        db.rollback()
        logger.exception(failure_message)
        return Result.fail(failure_message)
    except ComplianceError as e:
        db.rollback()
        logger.info("%s: %s", failure_message, e)
        return Result.fail(str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.exception(failure_message)
        return Result.fail(failure_message)
    return Result.ok(data)
