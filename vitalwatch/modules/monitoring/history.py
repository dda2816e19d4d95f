from collections import deque
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from vitalwatch.modules.vitals.models import VitalKind
from vitalwatch.shared.schemas import FrozenCamelModel


class HistoryPoint(FrozenCamelModel):
    time: str
    value: float | None = None


def display_time(moment: datetime, tz: ZoneInfo | timezone = timezone.utc) -> str:
    """Render a sample time as HH:MM:SS in the dashboard's timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).strftime("%H:%M:%S")


class RollingHistory:
    """Fixed-capacity FIFO of chart points per vital kind."""

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            raise ValueError("history capacity must be at least 1")
        self.capacity = capacity
        self._points: dict[VitalKind, deque[HistoryPoint]] = {}

    def append(self, kind: VitalKind, point: HistoryPoint) -> None:
        points = self._points.get(kind)
        if points is None:
            points = self._points[kind] = deque(maxlen=self.capacity)
        points.append(point)

    def snapshot(self, kind: VitalKind) -> list[HistoryPoint]:
        """Oldest first; a new list on every call."""
        return list(self._points.get(kind, ()))

    def snapshot_all(self) -> dict[VitalKind, list[HistoryPoint]]:
        return {kind: self.snapshot(kind) for kind in VitalKind}

    def clear(self) -> None:
        self._points.clear()
