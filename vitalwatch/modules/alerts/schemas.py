from datetime import datetime
from typing import Literal

from vitalwatch.modules.alerts.models import AlertSeverity, VitalLevel
from vitalwatch.modules.vitals.models import VitalKind
from vitalwatch.shared.schemas import CamelModel, FrozenCamelModel


class Alert(FrozenCamelModel):
    """An emitted alert; never mutated after creation."""

    id: str
    device_id: str
    kind: VitalKind
    message: str
    value: float | str | None = None
    severity: AlertSeverity = AlertSeverity.CRITICAL
    time: datetime


class AlertEvent(CamelModel):
    """Outbound alert notification for WebSocket and SSE consumers."""

    event: Literal["alert"] = "alert"
    alert: Alert


class DeviceLivenessEvent(CamelModel):
    event: Literal["device_offline", "device_online"]
    device_id: str
    last_activity: datetime | None = None
    timestamp: datetime


class VitalStatusOut(CamelModel):
    kind: VitalKind
    current_value: float | str | None = None
    level: VitalLevel = VitalLevel.NO_DATA
    consecutive_critical_count: int = 0
    last_alert_time: datetime | None = None
    is_critical: bool = False
