from __future__ import annotations

import uuid
from collections import deque
from typing import Mapping

import structlog

from vitalwatch.modules.alerts.config import Threshold
from vitalwatch.modules.alerts.decision import DebouncedAlertEmitter
from vitalwatch.modules.alerts.manager import AlertConnectionManager
from vitalwatch.modules.alerts.models import AlertDecision, AlertSeverity, VitalLevel, VitalStatus
from vitalwatch.modules.alerts.schemas import Alert, AlertEvent
from vitalwatch.modules.vitals.models import VitalKind
from vitalwatch.modules.vitals.schemas import VitalReading

log = structlog.get_logger()


class AlertService:
    """Turn emitter decisions into alerts, keep the bounded per-device log, and fan out."""

    def __init__(
        self,
        manager: AlertConnectionManager,
        emitter: DebouncedAlertEmitter,
        log_size: int = 6,
    ) -> None:
        self._manager = manager
        self._emitter = emitter
        self._log_size = log_size
        self._alerts: dict[str, deque[Alert]] = {}

    @property
    def emitter(self) -> DebouncedAlertEmitter:
        return self._emitter

    def evaluate(
        self,
        device_id: str,
        levels: Mapping[VitalKind, VitalLevel],
        reading: VitalReading,
    ) -> list[Alert]:
        """Feed one reading's levels to the emitter; return the alerts it produced."""
        emitted: list[Alert] = []
        for kind in VitalKind:
            decision = self._emitter.observe(
                device_id,
                kind,
                reading.value_of(kind),
                levels.get(kind, VitalLevel.NO_DATA),
                reading.timestamp,
            )
            if decision is None:
                continue
            alert = self._build_alert(decision)
            self._remember(alert)
            emitted.append(alert)
            log.info(
                "alert emitted",
                device_id=device_id,
                vital=kind.value,
                value=alert.value,
                count=decision.consecutive_count,
            )
        return emitted

    def recent(self, device_id: str) -> list[Alert]:
        """Most recent alerts for a device, newest first."""
        return list(self._alerts.get(device_id, ()))

    def statuses(self, device_id: str) -> dict[VitalKind, VitalStatus]:
        return self._emitter.statuses(device_id)

    def reset(self, device_id: str) -> None:
        self._emitter.reset(device_id)

    def forget(self, device_id: str) -> None:
        self._emitter.forget(device_id)

    async def notify(self, device_id: str, alerts: list[Alert]) -> None:
        for alert in alerts:
            payload = AlertEvent(alert=alert).model_dump(by_alias=True, mode="json")
            try:
                await self._manager.send_to_device(device_id, payload)
            except Exception as exc:
                log.warning(
                    "alert notification failed",
                    device_id=device_id,
                    alert_id=alert.id,
                    error=str(exc),
                )

    def _remember(self, alert: Alert) -> None:
        entries = self._alerts.setdefault(alert.device_id, deque(maxlen=self._log_size))
        entries.appendleft(alert)

    def _build_alert(self, decision: AlertDecision) -> Alert:
        return Alert(
            id=uuid.uuid4().hex,
            device_id=decision.device_id,
            kind=decision.kind,
            message=self._build_message(decision),
            value=decision.value,
            severity=AlertSeverity.CRITICAL,
            time=decision.sample_time,
        )

    @staticmethod
    def _build_message(decision: AlertDecision) -> str:
        if decision.kind == VitalKind.BODY_ACTIVITY:
            return "Fall detected"
        value = _format(decision.value)
        bound = _describe_bounds(decision.threshold)
        return (
            f"{decision.kind.value} {value} outside {bound} "
            f"for {decision.consecutive_count} consecutive readings"
        )


def _format(value: float | str | None) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _describe_bounds(threshold: Threshold | None) -> str:
    if threshold is None:
        return "custom bounds"
    low, high = threshold.critical_min, threshold.critical_max
    if low is not None and high is not None:
        bound = f"{low:g}-{high:g}"
    elif low is not None:
        bound = f">= {low:g}"
    elif high is not None:
        bound = f"<= {high:g}"
    else:
        return "custom bounds"
    if threshold.unit:
        bound = f"{bound} {threshold.unit}"
    return bound
