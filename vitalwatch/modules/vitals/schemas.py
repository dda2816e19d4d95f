import math
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from pydantic import AliasChoices, Field, ValidationError, ValidationInfo, field_validator

from vitalwatch.modules.vitals.models import BodyActivity, NUMERIC_KINDS, VitalKind
from vitalwatch.shared.schemas import CamelModel, FrozenCamelModel

log = structlog.get_logger()

_ACTIVITY_ALIASES: dict[str, BodyActivity] = {
    "active": BodyActivity.ACTIVE,
    "fallen": BodyActivity.FALLEN,
    "fall": BodyActivity.FALLEN,
    "nodata": BodyActivity.NO_DATA,
    "no_data": BodyActivity.NO_DATA,
    "no data": BodyActivity.NO_DATA,
}


def to_number(value: Any, field: str) -> float | None:
    """
    Coerce a raw column value to a positive float.

    Zero, blanks and the "--" placeholder mean "no data". Anything that is not a
    finite positive number is dropped with a warning instead of leaking NaN into
    classification.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value or value == "--":
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        log.warning("non-numeric vital value dropped", field=field, value=str(value))
        return None
    if not math.isfinite(number) or number < 0:
        log.warning("invalid vital value dropped", field=field, value=str(value))
        return None
    if number == 0:
        return None
    return number


def _format_number(value: float) -> str:
    return f"{value:g}"


class BloodPressure(FrozenCamelModel):
    """Structured blood pressure; a bare number is read as systolic only."""

    systolic: float = Field(gt=0)
    diastolic: float | None = Field(default=None, gt=0)

    def as_string(self) -> str:
        if self.diastolic is None:
            return _format_number(self.systolic)
        return f"{_format_number(self.systolic)}/{_format_number(self.diastolic)}"

    @classmethod
    def parse(cls, value: Any) -> Optional["BloodPressure"]:
        if value is None or isinstance(value, BloodPressure):
            return value
        if isinstance(value, dict):
            systolic = to_number(value.get("systolic"), "blood_pressure.systolic")
            diastolic = to_number(value.get("diastolic"), "blood_pressure.diastolic")
        elif isinstance(value, str) and "/" in value:
            systolic_raw, diastolic_raw = value.split("/", 1)
            systolic = to_number(systolic_raw, "blood_pressure.systolic")
            diastolic = to_number(diastolic_raw, "blood_pressure.diastolic")
        else:
            systolic = to_number(value, "blood_pressure")
            diastolic = None
        if systolic is None:
            return None
        return cls(systolic=systolic, diastolic=diastolic)


class ReadingFields(FrozenCamelModel):
    """Columns shared by inbound payloads and stored readings, with ingestion-boundary coercion."""

    device_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("deviceId", "device_id", "macAddress", "mac_address"),
    )
    heart_rate: float | None = None
    temperature: float | None = None
    respiratory_rate: float | None = None
    blood_pressure: BloodPressure | None = None
    body_activity: BodyActivity | None = None

    @field_validator("device_id", mode="before")
    @classmethod
    def normalize_device_id(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("heart_rate", "temperature", "respiratory_rate", mode="before")
    @classmethod
    def coerce_numeric(cls, value: object, info: ValidationInfo) -> float | None:
        return to_number(value, info.field_name or "value")

    @field_validator("blood_pressure", mode="before")
    @classmethod
    def coerce_blood_pressure(cls, value: object) -> BloodPressure | None:
        try:
            return BloodPressure.parse(value)
        except ValidationError:
            log.warning("invalid blood pressure dropped", value=str(value))
            return None

    @field_validator("body_activity", mode="before")
    @classmethod
    def coerce_body_activity(cls, value: object) -> BodyActivity | None:
        if value is None or isinstance(value, BodyActivity):
            return value
        activity = _ACTIVITY_ALIASES.get(str(value).strip().lower())
        if activity is None:
            log.warning("unknown body activity dropped", value=str(value))
        return activity

    # Allow integer/float epoch seconds as timestamp input
    @field_validator("timestamp", mode="before", check_fields=False)
    @classmethod
    def parse_epoch_timestamp(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return value

    @field_validator("timestamp", mode="after", check_fields=False)
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def value_of(self, kind: VitalKind) -> float | BloodPressure | BodyActivity | None:
        return getattr(self, kind.value)

    @property
    def has_numeric_data(self) -> bool:
        return any(self.value_of(kind) is not None for kind in NUMERIC_KINDS)


class ReadingCreate(ReadingFields):
    """Inbound reading from a device; the server stamps it when no timestamp is sent."""

    timestamp: Optional[datetime] = None


class ReadingBulkCreate(CamelModel):
    readings: list[ReadingCreate] = Field(default_factory=list)

    @field_validator("readings")
    @classmethod
    def ensure_non_empty(cls, value: list[ReadingCreate]) -> list[ReadingCreate]:
        if not value:
            raise ValueError("readings list cannot be empty")
        return value


class VitalReading(ReadingFields):
    """A validated, immutable reading as it flows through the monitoring pipeline."""

    timestamp: datetime = Field(
        validation_alias=AliasChoices("timestamp", "updatedAt", "updated_at")
    )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Optional["VitalReading"]:
        """Validate a store row; rows that fail are quarantined (logged and dropped)."""
        try:
            return cls.model_validate(row)
        except ValidationError as exc:
            log.warning(
                "reading quarantined",
                device_id=str(row.get("mac_address") or row.get("deviceId") or ""),
                errors=exc.error_count(),
                error=str(exc),
            )
            return None
