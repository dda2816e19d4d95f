from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from vitalwatch.modules.alerts.config import Threshold
from vitalwatch.modules.vitals.models import VitalKind


class VitalLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    NO_DATA = "no_data"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class VitalStatus:
    """Debounce state for one vital kind on one device."""

    kind: VitalKind
    current_value: float | str | None = None
    level: VitalLevel = VitalLevel.NO_DATA
    consecutive_critical_count: int = 0
    last_alert_time: datetime | None = None
    is_critical: bool = False
    last_sample: Any = field(default=None, repr=False)

    def clear(self) -> None:
        """Drop derived state; the cooldown clock survives."""
        self.current_value = None
        self.level = VitalLevel.NO_DATA
        self.consecutive_critical_count = 0
        self.is_critical = False
        self.last_sample = None


@dataclass
class AlertDecision:
    device_id: str
    kind: VitalKind
    value: float | str | None
    consecutive_count: int
    sample_time: datetime
    threshold: Threshold | None = None
