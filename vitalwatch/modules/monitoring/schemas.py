from datetime import datetime
from typing import Literal

from vitalwatch.modules.alerts.models import VitalLevel
from vitalwatch.modules.alerts.schemas import Alert, VitalStatusOut
from vitalwatch.modules.monitoring.history import HistoryPoint
from vitalwatch.shared.schemas import CamelModel


class MonitorSnapshot(CamelModel):
    """Everything the dashboard renders for one device."""

    device_id: str
    connected: bool
    device_status: VitalLevel
    current: dict[str, float | str | None]
    statuses: list[VitalStatusOut]
    history: dict[str, list[HistoryPoint]]
    alerts: list[Alert]
    last_reading_at: datetime | None = None
    last_update_age_seconds: float | None = None


class SnapshotEvent(CamelModel):
    event: Literal["snapshot"] = "snapshot"
    snapshot: MonitorSnapshot


class MonitorLease(CamelModel):
    device_id: str
    viewers: int
