from datetime import datetime, timezone
from typing import Optional

from beanie import Document, Indexed
from pydantic import Field


class Device(Document):
    """
    A wearable known by its hardware address.

    `assigned_employee` is a display-time name match, not a foreign key.
    Connection state is never stored; it is derived from `last_activity`.
    """

    mac_address: Indexed(str, unique=True)  # type: ignore
    assigned_employee: Optional[str] = None
    last_activity: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "devices"
