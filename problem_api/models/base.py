"""
Base Pydantic models with common configurations.

API payloads use camelCase on the wire and snake_case in Python, and all
datetime fields are serialized with an explicit UTC timezone.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


def serialize_datetime_utc(dt: Optional[datetime]) -> Optional[str]:
    """
    Serialize datetime to ISO format with UTC timezone.

    Naive datetimes come from the database in UTC, so the timezone is added.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.isoformat()


# Type alias for datetime fields that should be serialized with UTC timezone
UTCDatetime = Annotated[datetime, PlainSerializer(serialize_datetime_utc, return_type=str)]


class APIBaseModel(BaseModel):
    """
    Base model for API requests and responses.

    Accepts both camelCase and snake_case input and builds from ORM objects.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
