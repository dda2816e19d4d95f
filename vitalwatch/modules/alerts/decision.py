from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from vitalwatch.modules.alerts.config import AlertRulesConfig, Threshold, ThresholdTable
from vitalwatch.modules.alerts.models import AlertDecision, VitalLevel, VitalStatus
from vitalwatch.modules.vitals.models import BodyActivity, VitalKind
from vitalwatch.modules.vitals.schemas import BloodPressure

log = structlog.get_logger()

RawValue = float | BloodPressure | BodyActivity | None


class DebouncedAlertEmitter:
    """
    Count consecutive critical samples per (device, kind) and decide when to alert.

    A kind alerts once its run of critical samples reaches the configured length
    and the previous alert for that kind is older than the cooldown. While the
    cooldown holds, the run keeps growing silently. Any non-critical or absent
    sample ends the run.
    """

    def __init__(self, rules: AlertRulesConfig, table: ThresholdTable) -> None:
        self._rules = rules
        self._table = table
        self._cooldown = timedelta(seconds=rules.cooldown_seconds)
        self._statuses: dict[str, dict[VitalKind, VitalStatus]] = {}

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    def observe(
        self,
        device_id: str,
        kind: VitalKind,
        value: RawValue,
        level: VitalLevel,
        sample_time: datetime | None,
    ) -> AlertDecision | None:
        sample_time = self._ensure_utc(sample_time) or datetime.now(timezone.utc)
        status = self.status(device_id, kind)

        sample = self._sample_key(value, sample_time)
        if status.last_sample is not None and status.last_sample == sample:
            return None
        status.last_sample = sample
        status.current_value = self._display_value(value)
        status.level = level

        if level != VitalLevel.CRITICAL:
            status.consecutive_critical_count = 0
            status.is_critical = False
            return None

        status.is_critical = True
        status.consecutive_critical_count += 1
        required = self._rules.consecutive_for(kind)
        if status.consecutive_critical_count < required:
            return None

        if (
            status.last_alert_time is not None
            and sample_time - status.last_alert_time <= self._cooldown
        ):
            log.debug(
                "alert suppressed by cooldown",
                device_id=device_id,
                vital=kind.value,
                count=status.consecutive_critical_count,
            )
            return None

        decision = AlertDecision(
            device_id=device_id,
            kind=kind,
            value=status.current_value,
            consecutive_count=status.consecutive_critical_count,
            sample_time=sample_time,
            threshold=self._threshold_for(kind),
        )
        status.last_alert_time = sample_time
        status.consecutive_critical_count = 0
        return decision

    def status(self, device_id: str, kind: VitalKind) -> VitalStatus:
        device_statuses = self._statuses.setdefault(device_id, {})
        if kind not in device_statuses:
            device_statuses[kind] = VitalStatus(kind=kind)
        return device_statuses[kind]

    def statuses(self, device_id: str) -> dict[VitalKind, VitalStatus]:
        return {kind: self.status(device_id, kind) for kind in VitalKind}

    def reset(self, device_id: str) -> None:
        """Sensor dropout: zero every run and clear derived status for the device."""
        for status in self._statuses.get(device_id, {}).values():
            status.clear()

    def forget(self, device_id: str) -> None:
        self._statuses.pop(device_id, None)

    def _threshold_for(self, kind: VitalKind) -> Threshold | None:
        if kind == VitalKind.BODY_ACTIVITY:
            return None
        return self._table.ranges_for(kind)

    def _sample_key(self, value: RawValue, sample_time: datetime) -> Any:
        value_key = self._value_key(value)
        if self._rules.require_value_change:
            return ("value", value_key)
        return ("sample", value_key, sample_time)

    @staticmethod
    def _value_key(value: RawValue) -> Any:
        if isinstance(value, BloodPressure):
            return (value.systolic, value.diastolic)
        if isinstance(value, BodyActivity):
            return value.value
        return value

    @staticmethod
    def _display_value(value: RawValue) -> float | str | None:
        if isinstance(value, BloodPressure):
            return value.as_string()
        if isinstance(value, BodyActivity):
            return value.value
        return value

    @staticmethod
    def _ensure_utc(value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
