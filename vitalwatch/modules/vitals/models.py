from datetime import datetime, timezone
from enum import Enum

from beanie import Document, Indexed
from pydantic import Field
from pymongo import IndexModel


class VitalKind(str, Enum):
    """Monitored physiological measurements."""

    HEART_RATE = "heart_rate"
    TEMPERATURE = "temperature"
    RESPIRATORY_RATE = "respiratory_rate"
    BLOOD_PRESSURE = "blood_pressure"
    BODY_ACTIVITY = "body_activity"


# Kinds that carry a number (or a systolic/diastolic pair) and feed the charts
NUMERIC_KINDS: tuple[VitalKind, ...] = (
    VitalKind.HEART_RATE,
    VitalKind.TEMPERATURE,
    VitalKind.RESPIRATORY_RATE,
    VitalKind.BLOOD_PRESSURE,
)


class BodyActivity(str, Enum):
    ACTIVE = "Active"
    FALLEN = "Fallen"
    NO_DATA = "NoData"


class HealthStatus(Document):
    """
    Raw reading row as written by a wearable.

    Columns stay permissive on purpose: rows are validated into
    `VitalReading` when they are read back, not when they are stored.
    """

    mac_address: Indexed(str)  # type: ignore
    heart_rate: float | None = None
    temperature: float | None = None
    respiratory_rate: float | None = None
    blood_pressure: str | float | None = None
    body_activity: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "health_status"
        indexes = [
            IndexModel(
                [
                    ("mac_address", 1),
                    ("updated_at", -1),
                ]
            )
        ]
