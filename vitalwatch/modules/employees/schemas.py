import re
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator, model_validator

from vitalwatch.shared.schemas import CamelModel, PyObjectId

BLOOD_GROUPS = {"A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"}
_MAC_PATTERN = re.compile(r"^[0-9A-F]{2}([:-][0-9A-F]{2}){5}$")


class EmployeeBase(CamelModel):
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[str] = None
    location: Optional[str] = None
    blood_group: Optional[str] = None
    contact_number: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    device_mac: Optional[str] = None


class EmployeeCreate(EmployeeBase):
    """Roster entry; `name` is derived from first/last name when omitted."""

    @field_validator("blood_group")
    @classmethod
    def validate_blood_group(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        normalized = v.strip().upper()
        if normalized not in BLOOD_GROUPS:
            raise ValueError(f"Unknown blood group: {v}")
        return normalized

    @field_validator("device_mac")
    @classmethod
    def normalize_device_mac(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        normalized = v.strip().upper()
        if not _MAC_PATTERN.match(normalized):
            raise ValueError(f"Invalid MAC address: {v}")
        return normalized

    @model_validator(mode="after")
    def ensure_name(self) -> "EmployeeCreate":
        if self.name and self.name.strip():
            self.name = self.name.strip()
            return self
        parts = [part.strip() for part in (self.first_name, self.last_name) if part and part.strip()]
        if not parts:
            raise ValueError("name or first/last name is required")
        self.name = " ".join(parts)
        return self


class EmployeeResponse(EmployeeBase):
    id: PyObjectId
    name: str
    created_at: datetime
    updated_at: datetime
