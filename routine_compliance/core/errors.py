"""Error taxonomy for the compliance engine.

Raised inside the engine and recovered at the service boundary, where each
becomes a failed ``Result`` carrying a plain message.
"""


class ComplianceError(Exception):
    """Base exception for compliance engine errors."""
    pass


class ValidationError(ComplianceError):
    """Malformed id, date, recurrence or config. Raised before storage is touched."""
    pass


class NotFoundError(ComplianceError):
    """Record, product or routine absent, or not owned by the caller.

    Both cases carry the same message so existence never leaks across users.
    """
    pass


class InvalidTransitionError(ComplianceError):
    """Completion state change not allowed from the record's current status."""
    pass


class StorageError(ComplianceError):
    """Persistence failure. Detail is logged server-side, message stays generic."""
    pass


# Fixed not-found messages. The HTTP layer maps exactly these to 404.
STEP_NOT_FOUND = "Step not found or not authorized"
ROUTINE_NOT_FOUND = "Routine not found"
PRODUCT_NOT_FOUND = "Product not found"
PROFILE_NOT_FOUND = "User profile not found"

NOT_FOUND_MESSAGES = frozenset({STEP_NOT_FOUND, ROUTINE_NOT_FOUND, PRODUCT_NOT_FOUND, PROFILE_NOT_FOUND})
