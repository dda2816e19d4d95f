"""Device liveness: a device is connected while its last reading is recent enough."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from vitalwatch.core.backend import READINGS_TABLE, BackendClient
from vitalwatch.modules.alerts.manager import AlertConnectionManager
from vitalwatch.modules.alerts.schemas import DeviceLivenessEvent
from vitalwatch.modules.vitals.schemas import VitalReading

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DeviceLivenessTracker:
    """
    Track the last activity per device and flip it offline when it goes quiet.

    Each `touch` re-arms a per-device timer on the running loop. When the timer
    fires the device is marked offline and a `device_offline` event goes out to
    that device's subscribers; the next reading sends `device_online`.
    """

    def __init__(
        self,
        manager: AlertConnectionManager | None = None,
        offline_seconds: float = 15.0,
    ) -> None:
        self._manager = manager
        self.offline_seconds = offline_seconds
        self._last_activity: dict[str, datetime] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._offline: set[str] = set()
        self._pending: set[asyncio.Task] = set()
        self._watch_task: asyncio.Task | None = None

    def last_seen(self, device_id: str) -> datetime | None:
        return self._last_activity.get(device_id)

    def is_connected(
        self,
        device_id: str,
        now: datetime | None = None,
        last_activity: datetime | None = None,
    ) -> bool:
        """`now - last_activity < offline timeout`; a device never seen is disconnected."""
        last = last_activity or self._last_activity.get(device_id)
        if last is None:
            return False
        now = _as_utc(now) if now is not None else _utcnow()
        return (now - _as_utc(last)).total_seconds() < self.offline_seconds

    def touch(self, device_id: str, at: datetime | None = None) -> None:
        at = _as_utc(at) if at is not None else _utcnow()
        previous = self._last_activity.get(device_id)
        if previous is not None and previous >= at:
            return
        self._last_activity[device_id] = at

        if device_id in self._offline:
            self._offline.discard(device_id)
            log.info("device online", device_id=device_id)
            self._broadcast("device_online", device_id)

        self._arm(device_id, at)

    def _arm(self, device_id: str, at: datetime) -> None:
        timer = self._timers.pop(device_id, None)
        if timer is not None:
            timer.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync callers): liveness is still answered by is_connected
            return
        remaining = self.offline_seconds - (_utcnow() - at).total_seconds()
        self._timers[device_id] = loop.call_later(
            max(remaining, 0.0), self._expire, device_id
        )

    def _expire(self, device_id: str) -> None:
        self._timers.pop(device_id, None)
        if self.is_connected(device_id):
            # A newer touch landed after the timer was scheduled
            self._arm(device_id, self._last_activity[device_id])
            return
        if device_id in self._offline:
            return
        self._offline.add(device_id)
        log.info(
            "device offline",
            device_id=device_id,
            last_activity=str(self._last_activity.get(device_id)),
        )
        self._broadcast("device_offline", device_id)

    def _broadcast(self, event: str, device_id: str) -> None:
        if self._manager is None:
            return
        payload = DeviceLivenessEvent(
            event=event,
            device_id=device_id,
            last_activity=self._last_activity.get(device_id),
            timestamp=_utcnow(),
        ).model_dump(by_alias=True, mode="json")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._send(device_id, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, device_id: str, payload: dict) -> None:
        try:
            await self._manager.send_to_device(device_id, payload)
        except Exception as exc:
            log.warning("liveness notification failed", device_id=device_id, error=str(exc))

    # ========== Feed consumer ==========

    def watch(self, backend: BackendClient) -> asyncio.Task:
        """Follow every stored reading, independent of any dashboard monitor."""
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.create_task(self._consume(backend))
        return self._watch_task

    async def _consume(self, backend: BackendClient) -> None:
        subscription = backend.subscribe(READINGS_TABLE)
        try:
            async for change in subscription:
                reading = VitalReading.from_row(change.record)
                if reading is not None:
                    self.touch(reading.device_id, reading.timestamp)
        finally:
            backend.unsubscribe(subscription)

    async def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        tasks = [task for task in (self._watch_task, *self._pending) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._watch_task = None
