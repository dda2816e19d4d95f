import json
from dataclasses import dataclass
from pathlib import Path

import structlog
from pydantic import Field

from vitalwatch.modules.vitals.models import VitalKind
from vitalwatch.shared.schemas import CamelModel

log = structlog.get_logger()


class VitalThresholdConfig(CamelModel):
    """Inclusive band; a value below `min` or above `max` lies outside it."""

    min: float | None = None
    max: float | None = None


class VitalRuleConfig(CamelModel):
    unit: str | None = None
    critical: VitalThresholdConfig = Field(default_factory=VitalThresholdConfig)
    warning: VitalThresholdConfig = Field(default_factory=VitalThresholdConfig)


class AlertRulesConfig(CamelModel):
    version: str = "builtin-v1"
    consecutive_samples: int = Field(default=5, ge=1)
    cooldown_seconds: float = Field(default=30.0, ge=0)
    require_value_change: bool = False
    consecutive_overrides: dict[VitalKind, int] = Field(default_factory=dict)
    vitals: dict[str, VitalRuleConfig] = Field(default_factory=dict)

    def consecutive_for(self, kind: VitalKind) -> int:
        return max(1, self.consecutive_overrides.get(kind, self.consecutive_samples))


@dataclass(frozen=True)
class Threshold:
    kind: VitalKind
    critical_min: float | None
    critical_max: float | None
    warning_min: float | None
    warning_max: float | None
    unit: str | None = None


TEMPERATURE_KEYS = {"celsius": "temperature_c", "fahrenheit": "temperature_f"}
SYSTOLIC_KEY = "blood_pressure_systolic"
DIASTOLIC_KEY = "blood_pressure_diastolic"


def _rule(unit: str, critical: tuple[float, float], warning: tuple[float, float]) -> VitalRuleConfig:
    return VitalRuleConfig(
        unit=unit,
        critical=VitalThresholdConfig(min=critical[0], max=critical[1]),
        warning=VitalThresholdConfig(min=warning[0], max=warning[1]),
    )


DEFAULT_RULES = AlertRulesConfig(
    consecutive_samples=5,
    cooldown_seconds=30.0,
    consecutive_overrides={VitalKind.BODY_ACTIVITY: 1},
    vitals={
        "heart_rate": _rule("bpm", (60, 140), (65, 135)),
        "temperature_c": _rule("°C", (35.5, 38.0), (36.1, 37.5)),
        "temperature_f": _rule("°F", (95.9, 100.4), (97.0, 99.5)),
        "respiratory_rate": _rule("rpm", (10, 24), (12, 20)),
        SYSTOLIC_KEY: _rule("mmHg", (90, 180), (100, 140)),
        DIASTOLIC_KEY: _rule("mmHg", (60, 120), (65, 90)),
    },
)


def load_rules(path: Path) -> AlertRulesConfig:
    try:
        payload = json.loads(path.read_text())
        return AlertRulesConfig.model_validate(payload)
    except FileNotFoundError:
        log.info("alert rules file not found, using defaults", path=str(path))
        return DEFAULT_RULES
    except Exception as exc:
        log.warning("alert rules load failed, using defaults", path=str(path), error=str(exc))
        return DEFAULT_RULES


class ThresholdTable:
    """One canonical band set per vital kind, resolved for the configured temperature unit."""

    def __init__(self, rules: AlertRulesConfig, temperature_unit: str = "celsius") -> None:
        if temperature_unit not in TEMPERATURE_KEYS:
            raise ValueError(f"unsupported temperature unit: {temperature_unit}")
        self.rules = rules
        self.temperature_unit = temperature_unit
        self._keys: dict[VitalKind, str] = {
            VitalKind.HEART_RATE: "heart_rate",
            VitalKind.TEMPERATURE: TEMPERATURE_KEYS[temperature_unit],
            VitalKind.RESPIRATORY_RATE: "respiratory_rate",
            VitalKind.BLOOD_PRESSURE: SYSTOLIC_KEY,
        }

    def ranges_for(self, kind: VitalKind) -> Threshold:
        """Bands for a kind; blood pressure resolves to its systolic bands."""
        key = self._keys.get(kind)
        if key is None:
            raise KeyError(f"{kind.value} has no numeric thresholds")
        return self.ranges_for_key(key, kind)

    def diastolic_ranges(self) -> Threshold:
        return self.ranges_for_key(DIASTOLIC_KEY, VitalKind.BLOOD_PRESSURE)

    def ranges_for_key(self, key: str, kind: VitalKind) -> Threshold:
        rule = self.rules.vitals.get(key) or DEFAULT_RULES.vitals[key]
        return Threshold(
            kind=kind,
            critical_min=rule.critical.min,
            critical_max=rule.critical.max,
            warning_min=rule.warning.min,
            warning_max=rule.warning.max,
            unit=rule.unit,
        )
