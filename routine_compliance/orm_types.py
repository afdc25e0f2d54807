# routine_compliance/orm_types.py
from datetime import datetime, timezone

from sqlalchemy.types import TypeDecorator, DateTime


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC instant on every dialect.

    - PostgreSQL: TIMESTAMP WITH TIME ZONE, values normalized to UTC
    - SQLite: naive DATETIME holding UTC, tzinfo re-attached on load
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed for instant column: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
