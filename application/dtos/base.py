"""
DTO base shared by the settlement DTOs.
"""
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, model_serializer


class DTOBase(BaseModel):
    """Serialise datetimes as UTC ``Z`` strings and Decimal amounts as strings."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, Decimal):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)
