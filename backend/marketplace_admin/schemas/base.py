"""Base schema class with camelCase alias generation.

All API schemas inherit from this instead of BaseModel directly.
Backend Python code stays snake_case. API JSON output becomes camelCase.
"""
from datetime import datetime, timezone
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for request and computed response schemas. Accepts and outputs camelCase."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "protected_namespaces": (),
    }


def iso_utc(value: datetime | None) -> str | None:
    """Render a timestamp as UTC ISO-8601 with millisecond precision and a Z suffix.

    Naive values (SQLite drops tzinfo) are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
