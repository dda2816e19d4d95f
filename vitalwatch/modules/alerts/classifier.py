"""Map raw readings to normal / warning / critical."""

import math
from typing import Iterable, Mapping

from vitalwatch.modules.alerts.config import Threshold, ThresholdTable
from vitalwatch.modules.alerts.models import VitalLevel
from vitalwatch.modules.vitals.models import BodyActivity, VitalKind
from vitalwatch.modules.vitals.schemas import BloodPressure, VitalReading, to_number

# Kinds that make up the composite device status shown on the dashboard
COMPOSITE_KINDS: tuple[VitalKind, ...] = (
    VitalKind.HEART_RATE,
    VitalKind.TEMPERATURE,
    VitalKind.RESPIRATORY_RATE,
)

_SEVERITY_ORDER = {
    VitalLevel.NO_DATA: -1,
    VitalLevel.NORMAL: 0,
    VitalLevel.WARNING: 1,
    VitalLevel.CRITICAL: 2,
}


def _outside(value: float, low: float | None, high: float | None) -> bool:
    if low is not None and value < low:
        return True
    if high is not None and value > high:
        return True
    return False


def classify_value(value: float | None, threshold: Threshold) -> VitalLevel:
    if value is None or value == 0 or not math.isfinite(value):
        return VitalLevel.NO_DATA
    if _outside(value, threshold.critical_min, threshold.critical_max):
        return VitalLevel.CRITICAL
    if _outside(value, threshold.warning_min, threshold.warning_max):
        return VitalLevel.WARNING
    return VitalLevel.NORMAL


def worst(levels: Iterable[VitalLevel]) -> VitalLevel:
    return max(levels, key=_SEVERITY_ORDER.__getitem__, default=VitalLevel.NO_DATA)


def is_sensor_dropout(reading: VitalReading) -> bool:
    """Every tracked numeric value is zero or absent at once."""
    return not reading.has_numeric_data


class StatusClassifier:
    def __init__(self, table: ThresholdTable) -> None:
        self.table = table

    def classify(
        self, kind: VitalKind, value: float | BloodPressure | BodyActivity | str | None
    ) -> VitalLevel:
        if kind == VitalKind.BODY_ACTIVITY:
            return self._classify_activity(value)
        if kind == VitalKind.BLOOD_PRESSURE:
            return self._classify_blood_pressure(value)
        if isinstance(value, (BloodPressure, BodyActivity)):
            return VitalLevel.NO_DATA
        # Same coercion as ingestion: blanks, "--", NaN and negatives are no data
        return classify_value(to_number(value, kind.value), self.table.ranges_for(kind))

    def classify_reading(self, reading: VitalReading) -> dict[VitalKind, VitalLevel]:
        return {kind: self.classify(kind, reading.value_of(kind)) for kind in VitalKind}

    def device_status(
        self,
        levels: Mapping[VitalKind, VitalLevel],
        kinds: Iterable[VitalKind] = COMPOSITE_KINDS,
    ) -> VitalLevel:
        """Critical beats warning beats normal; kinds without data are left out."""
        evaluated = [
            levels[kind]
            for kind in kinds
            if levels.get(kind, VitalLevel.NO_DATA) != VitalLevel.NO_DATA
        ]
        for candidate in (VitalLevel.CRITICAL, VitalLevel.WARNING):
            if candidate in evaluated:
                return candidate
        return VitalLevel.NORMAL

    def _classify_blood_pressure(self, value: object) -> VitalLevel:
        reading = value if isinstance(value, BloodPressure) else BloodPressure.parse(value)
        if reading is None:
            return VitalLevel.NO_DATA
        levels = [classify_value(reading.systolic, self.table.ranges_for(VitalKind.BLOOD_PRESSURE))]
        if reading.diastolic is not None:
            levels.append(classify_value(reading.diastolic, self.table.diastolic_ranges()))
        return worst(levels)

    @staticmethod
    def _classify_activity(value: object) -> VitalLevel:
        if value == BodyActivity.FALLEN:
            return VitalLevel.CRITICAL
        if value == BodyActivity.ACTIVE:
            return VitalLevel.NORMAL
        return VitalLevel.NO_DATA
