"""Shared builders for readings used across test modules."""

from datetime import datetime, timezone
from typing import Any

from vitalwatch.modules.vitals.schemas import VitalReading

DEVICE_ID = "AA:BB:CC:DD:EE:01"
OTHER_DEVICE_ID = "AA:BB:CC:DD:EE:02"


def reading_payload(at: datetime | None = None, device_id: str = DEVICE_ID, **values: Any) -> dict[str, Any]:
    """A healthy reading; override any column by keyword."""
    payload: dict[str, Any] = {
        "device_id": device_id,
        "heart_rate": 75,
        "temperature": 36.8,
        "respiratory_rate": 16,
        "blood_pressure": "120/80",
        "body_activity": "Active",
    }
    if at is not None:
        payload["timestamp"] = at
    payload.update(values)
    return payload


def make_reading(at: datetime, device_id: str = DEVICE_ID, **values: Any) -> VitalReading:
    return VitalReading.model_validate(reading_payload(at, device_id, **values))


def utcnow_ms() -> datetime:
    """Current UTC time at the millisecond precision the store keeps."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)
