import asyncio
from typing import Callable

import structlog

from vitalwatch.modules.monitoring.bridge import DeviceMonitor

log = structlog.get_logger()


class MonitorRegistry:
    """Reference-counted monitors: started for the first viewer, stopped after the last."""

    def __init__(self, factory: Callable[[str], DeviceMonitor]) -> None:
        self._factory = factory
        self._monitors: dict[str, DeviceMonitor] = {}
        self._viewers: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def get(self, device_id: str) -> DeviceMonitor | None:
        return self._monitors.get(device_id)

    def viewers(self, device_id: str) -> int:
        return self._viewers.get(device_id, 0)

    @property
    def active_devices(self) -> list[str]:
        return sorted(self._monitors)

    async def acquire(self, device_id: str) -> DeviceMonitor:
        async with self._lock:
            monitor = self._monitors.get(device_id)
            if monitor is None:
                monitor = self._factory(device_id)
                await monitor.start()
                self._monitors[device_id] = monitor
            self._viewers[device_id] = self._viewers.get(device_id, 0) + 1
            return monitor

    async def release(self, device_id: str) -> bool:
        """Drop one viewer; returns False when the device had no monitor."""
        async with self._lock:
            if device_id not in self._monitors:
                return False
            remaining = self._viewers.get(device_id, 1) - 1
            if remaining > 0:
                self._viewers[device_id] = remaining
                return True
            self._viewers.pop(device_id, None)
            monitor = self._monitors.pop(device_id)
        await monitor.stop()
        return True

    async def close(self) -> None:
        async with self._lock:
            monitors = list(self._monitors.values())
            self._monitors.clear()
            self._viewers.clear()
        for monitor in monitors:
            await monitor.stop()
        if monitors:
            log.info("device monitors stopped", count=len(monitors))
