"""Application object graph, built once in the lifespan and stored on `app.state`."""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

import structlog

from vitalwatch.core.backend import BackendClient
from vitalwatch.core.cache import JsonCache
from vitalwatch.core.config import Settings
from vitalwatch.modules.alerts.classifier import StatusClassifier
from vitalwatch.modules.alerts.config import ThresholdTable, load_rules
from vitalwatch.modules.alerts.decision import DebouncedAlertEmitter
from vitalwatch.modules.alerts.engine import AlertService
from vitalwatch.modules.alerts.manager import AlertConnectionManager
from vitalwatch.modules.monitoring.bridge import DeviceMonitor
from vitalwatch.modules.monitoring.liveness import DeviceLivenessTracker
from vitalwatch.modules.monitoring.registry import MonitorRegistry

log = structlog.get_logger()


@dataclass
class Services:
    config: Settings
    backend: BackendClient
    cache: JsonCache
    manager: AlertConnectionManager
    classifier: StatusClassifier
    alerts: AlertService
    liveness: DeviceLivenessTracker
    monitors: MonitorRegistry

    async def start(self) -> None:
        await self.backend.connect()
        await self.cache.connect()
        self.liveness.watch(self.backend)

    async def close(self) -> None:
        # Monitors unsubscribe before the feed they read from goes away
        await self.monitors.close()
        await self.liveness.close()
        await self.cache.close()
        await self.backend.close()


def build_services(config: Settings, backend: BackendClient | None = None) -> Services:
    rules = load_rules(config.ALERT_RULES_PATH)
    table = ThresholdTable(rules, temperature_unit=config.TEMPERATURE_UNIT)
    classifier = StatusClassifier(table)
    manager = AlertConnectionManager()
    alerts = AlertService(
        manager=manager,
        emitter=DebouncedAlertEmitter(rules, table),
        log_size=config.ALERT_LOG_SIZE,
    )
    backend = backend or BackendClient(config)
    liveness = DeviceLivenessTracker(manager, offline_seconds=config.DEVICE_OFFLINE_SECONDS)
    display_tz = ZoneInfo(config.DISPLAY_TIMEZONE)

    def monitor_factory(device_id: str) -> DeviceMonitor:
        return DeviceMonitor(
            device_id,
            backend,
            classifier,
            alerts,
            manager,
            liveness,
            history_capacity=config.HISTORY_CAPACITY,
            display_tz=display_tz,
            initial_load_limit=config.INITIAL_LOAD_LIMIT,
            heartbeat_seconds=config.HEARTBEAT_POLL_SECONDS,
            backoff_initial=config.RESUBSCRIBE_BACKOFF_INITIAL_SECONDS,
            backoff_max=config.RESUBSCRIBE_BACKOFF_MAX_SECONDS,
        )

    log.info(
        "services built",
        rules_version=rules.version,
        temperature_unit=config.TEMPERATURE_UNIT,
        cooldown_seconds=rules.cooldown_seconds,
    )
    return Services(
        config=config,
        backend=backend,
        cache=JsonCache(config.REDIS_URL, ttl_seconds=config.ROSTER_CACHE_TTL_SECONDS),
        manager=manager,
        classifier=classifier,
        alerts=alerts,
        liveness=liveness,
        monitors=MonitorRegistry(monitor_factory),
    )
