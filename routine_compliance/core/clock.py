from datetime import datetime, timezone


def utcnow() -> datetime:
    """Wall clock for the HTTP and worker boundaries only.

    Engine code takes ``now`` as an argument and never calls this.
    """
    return datetime.now(timezone.utc)
