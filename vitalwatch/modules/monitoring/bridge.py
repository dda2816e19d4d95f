"""
Per-device ingestion: one change-feed subscription plus a heartbeat poll.

The subscription is the only path that applies fresh readings. The heartbeat
checks that the store is reachable and that the push channel has not stalled;
when the store holds a reading newer than the last one applied, the missed
readings are applied once and the subscription is replaced.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import structlog

from vitalwatch.core.backend import READINGS_TABLE, BackendClient
from vitalwatch.core.changefeed import ChangeEventType, Subscription
from vitalwatch.modules.alerts.classifier import StatusClassifier, is_sensor_dropout
from vitalwatch.modules.alerts.engine import AlertService
from vitalwatch.modules.alerts.manager import AlertConnectionManager
from vitalwatch.modules.alerts.models import VitalLevel
from vitalwatch.modules.alerts.schemas import Alert, VitalStatusOut
from vitalwatch.modules.monitoring.history import HistoryPoint, RollingHistory, display_time
from vitalwatch.modules.monitoring.liveness import DeviceLivenessTracker
from vitalwatch.modules.monitoring.schemas import MonitorSnapshot, SnapshotEvent
from vitalwatch.modules.vitals.models import NUMERIC_KINDS, BodyActivity, VitalKind
from vitalwatch.modules.vitals.schemas import BloodPressure, VitalReading

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chart_value(kind: VitalKind, reading: VitalReading) -> float | None:
    value = reading.value_of(kind)
    if isinstance(value, BloodPressure):
        return value.systolic
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _display_value(value: object) -> float | str | None:
    if isinstance(value, BloodPressure):
        return value.as_string()
    if isinstance(value, BodyActivity):
        return value.value
    if isinstance(value, (int, float)):
        return float(value)
    return None


class DeviceMonitor:
    def __init__(
        self,
        device_id: str,
        backend: BackendClient,
        classifier: StatusClassifier,
        alerts: AlertService,
        manager: AlertConnectionManager | None = None,
        liveness: DeviceLivenessTracker | None = None,
        *,
        history_capacity: int = 10,
        display_tz: ZoneInfo | timezone = timezone.utc,
        initial_load_limit: int = 10,
        heartbeat_seconds: float = 10.0,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self.device_id = device_id
        self._backend = backend
        self._classifier = classifier
        self._alerts = alerts
        self._manager = manager
        self._liveness = liveness or DeviceLivenessTracker()
        self._display_tz = display_tz
        self._initial_load_limit = initial_load_limit
        self._heartbeat_seconds = heartbeat_seconds
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

        self.history = RollingHistory(history_capacity)
        self._current: dict[VitalKind, float | str | None] = {}
        self._levels: dict[VitalKind, VitalLevel] = {}
        self.last_applied_at: datetime | None = None
        self.last_successful_update: datetime | None = None

        self._subscription: Subscription | None = None
        self._consumer_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ========== Lifecycle ==========

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        # Subscribe before loading so nothing lands in the gap; duplicates are
        # dropped by the ordering rule
        self._subscription = self._subscribe()
        await self.load_initial()
        self._consumer_task = asyncio.create_task(self._consume())
        self._consumer_task.add_done_callback(self._log_task_failure)
        if self._heartbeat_seconds > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat())
            self._heartbeat_task.add_done_callback(self._log_task_failure)
        log.info("device monitor started", device_id=self.device_id)

    async def stop(self) -> None:
        """Unsubscribe, then cancel both tasks and wait until they have finished."""
        self._running = False
        if self._subscription is not None:
            self._backend.unsubscribe(self._subscription)
            self._subscription = None
        tasks = [task for task in (self._consumer_task, self._heartbeat_task) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer_task = None
        self._heartbeat_task = None
        self._alerts.reset(self.device_id)
        log.info("device monitor stopped", device_id=self.device_id)

    def _log_task_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "device monitor task failed",
                device_id=self.device_id,
                task=task.get_name(),
                error=str(exc),
            )

    async def load_initial(self) -> int:
        try:
            readings = await self._backend.fetch_recent(self.device_id, self._initial_load_limit)
        except Exception as exc:
            log.warning("initial load failed", device_id=self.device_id, error=str(exc))
            return 0
        self.last_successful_update = _utcnow()
        # Newest first from the store; apply oldest first
        for reading in reversed(readings):
            await self.handle(reading)
        log.info("initial readings loaded", device_id=self.device_id, count=len(readings))
        return len(readings)

    # ========== Pipeline ==========

    def process(self, reading: VitalReading) -> list[Alert] | None:
        """
        Apply one reading synchronously: ordering, dropout, classification,
        debounce, history and current values.

        Returns the alerts emitted, or None when the reading was not applied.
        """
        if reading.device_id != self.device_id:
            return None
        if self.last_applied_at is not None and reading.timestamp <= self.last_applied_at:
            log.debug(
                "out-of-order reading discarded",
                device_id=self.device_id,
                timestamp=reading.timestamp.isoformat(),
            )
            return None

        self.last_applied_at = reading.timestamp
        self.last_successful_update = _utcnow()
        self._liveness.touch(self.device_id, reading.timestamp)

        if is_sensor_dropout(reading):
            self._alerts.reset(self.device_id)
            self._current.clear()
            self._levels.clear()
            log.info("sensor dropout", device_id=self.device_id)
            return []

        levels = self._classifier.classify_reading(reading)
        alerts = self._alerts.evaluate(self.device_id, levels, reading)
        self._levels = dict(levels)

        for kind in VitalKind:
            value = reading.value_of(kind)
            if value is not None:
                self._current[kind] = _display_value(value)

        point_time = display_time(reading.timestamp, self._display_tz)
        for kind in NUMERIC_KINDS:
            chart_value = _chart_value(kind, reading)
            if chart_value is None:
                continue
            self.history.append(kind, HistoryPoint(time=point_time, value=chart_value))
        return alerts

    async def handle(self, reading: VitalReading) -> bool:
        alerts = self.process(reading)
        if alerts is None:
            return False
        if alerts:
            await self._alerts.notify(self.device_id, alerts)
        await self._publish_snapshot()
        return True

    # ========== Push path ==========

    def _subscribe(self) -> Subscription:
        return self._backend.subscribe(
            READINGS_TABLE, event=ChangeEventType.ALL, device_id=self.device_id
        )

    def resubscribe(self) -> None:
        """Swap in a fresh subscription; the consumer picks it up without backoff."""
        previous = self._subscription
        self._subscription = self._subscribe()
        if previous is not None:
            self._backend.unsubscribe(previous)

    async def _consume(self) -> None:
        backoff = self._backoff_initial
        while self._running:
            subscription = self._subscription
            if subscription is None:
                return
            async for change in subscription:
                backoff = self._backoff_initial
                if change.type not in (ChangeEventType.INSERT, ChangeEventType.UPDATE):
                    continue
                reading = VitalReading.from_row(change.record)
                if reading is not None:
                    await self.handle(reading)

            if not self._running:
                return
            if subscription is not self._subscription:
                # Replaced deliberately by resubscribe()
                continue
            log.warning(
                "subscription closed, resubscribing",
                device_id=self.device_id,
                delay=backoff,
            )
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self._backoff_max)
            if self._running:
                self._subscription = self._subscribe()

    # ========== Heartbeat ==========

    async def _heartbeat(self) -> None:
        while self._running:
            await asyncio.sleep(self._heartbeat_seconds)
            await self.poll()

    async def poll(self) -> int:
        """Heartbeat tick; returns how many missed readings were applied."""
        try:
            readings = await self._backend.fetch_recent(self.device_id, self._initial_load_limit)
        except Exception as exc:
            log.warning("heartbeat poll failed", device_id=self.device_id, error=str(exc))
            return 0
        self.last_successful_update = _utcnow()

        if self._subscription is not None and not self._subscription.queue.empty():
            # Consumer is behind, not stalled
            return 0
        missed = [
            reading
            for reading in reversed(readings)
            if self.last_applied_at is None or reading.timestamp > self.last_applied_at
        ]
        if not missed:
            return 0

        log.warning(
            "change feed stalled, applying missed readings",
            device_id=self.device_id,
            count=len(missed),
        )
        for reading in missed:
            await self.handle(reading)
        if self._running:
            self.resubscribe()
        return len(missed)

    # ========== Views ==========

    def device_status(self) -> VitalLevel:
        return self._classifier.device_status(self._levels)

    def current_values(self) -> dict[VitalKind, float | str | None]:
        return {kind: self._current.get(kind) for kind in VitalKind}

    def snapshot(self, now: datetime | None = None) -> MonitorSnapshot:
        now = now or _utcnow()
        age = None
        if self.last_successful_update is not None:
            age = max((now - self.last_successful_update).total_seconds(), 0.0)
        statuses = self._alerts.statuses(self.device_id)
        return MonitorSnapshot(
            device_id=self.device_id,
            connected=self._liveness.is_connected(self.device_id, now=now),
            device_status=self.device_status(),
            current={kind.value: value for kind, value in self.current_values().items()},
            statuses=[
                VitalStatusOut(
                    kind=kind,
                    current_value=status.current_value,
                    level=status.level,
                    consecutive_critical_count=status.consecutive_critical_count,
                    last_alert_time=status.last_alert_time,
                    is_critical=status.is_critical,
                )
                for kind, status in statuses.items()
            ],
            history={kind.value: self.history.snapshot(kind) for kind in NUMERIC_KINDS},
            alerts=self._alerts.recent(self.device_id),
            last_reading_at=self.last_applied_at,
            last_update_age_seconds=age,
        )

    async def _publish_snapshot(self) -> None:
        if self._manager is None:
            return
        payload = SnapshotEvent(snapshot=self.snapshot()).model_dump(by_alias=True, mode="json")
        try:
            await self._manager.send_to_device(self.device_id, payload)
        except Exception as exc:
            log.warning("snapshot broadcast failed", device_id=self.device_id, error=str(exc))
