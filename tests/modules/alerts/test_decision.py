from datetime import datetime
from typing import Callable

import pytest

from vitalwatch.modules.alerts.config import DEFAULT_RULES, AlertRulesConfig, ThresholdTable
from vitalwatch.modules.alerts.decision import DebouncedAlertEmitter
from vitalwatch.modules.alerts.models import VitalLevel
from vitalwatch.modules.vitals.models import BodyActivity, VitalKind
from tests.helpers import DEVICE_ID, OTHER_DEVICE_ID

HR = VitalKind.HEART_RATE


def _emitter(rules: AlertRulesConfig = DEFAULT_RULES) -> DebouncedAlertEmitter:
    return DebouncedAlertEmitter(rules, ThresholdTable(rules))


def _critical(emitter: DebouncedAlertEmitter, when: datetime, value: float = 150, device: str = DEVICE_ID):
    return emitter.observe(device, HR, value, VitalLevel.CRITICAL, when)


def test_five_consecutive_criticals_then_cooldown(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()

    decisions = [_critical(emitter, at(second)) for second in range(5)]
    assert decisions[:4] == [None, None, None, None]
    first = decisions[4]
    assert first is not None
    assert first.value == 150
    assert first.consecutive_count == 5
    assert first.threshold is not None and first.threshold.critical_max == 140

    status = emitter.status(DEVICE_ID, HR)
    assert status.last_alert_time == at(4)
    assert status.consecutive_critical_count == 0
    assert status.is_critical

    # Sixth reading inside the cooldown
    assert _critical(emitter, at(5)) is None
    for second in (10, 15, 20):
        assert _critical(emitter, at(second)) is None

    second_alert = _critical(emitter, at(35))
    assert second_alert is not None
    assert second_alert.sample_time == at(35)


def test_cooldown_suppression_keeps_accumulating(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()
    for second in range(5):
        _critical(emitter, at(second))

    for second in range(5, 35):
        assert _critical(emitter, at(second)) is None
    # Exactly 30 s after the last alert is still inside the cooldown
    assert emitter.status(DEVICE_ID, HR).consecutive_critical_count == 30

    assert _critical(emitter, at(35)) is not None
    assert emitter.status(DEVICE_ID, HR).consecutive_critical_count == 0


def test_four_criticals_do_not_alert(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()

    assert all(_critical(emitter, at(second)) is None for second in range(4))
    assert emitter.status(DEVICE_ID, HR).consecutive_critical_count == 4


@pytest.mark.parametrize("level", [VitalLevel.NORMAL, VitalLevel.WARNING, VitalLevel.NO_DATA])
def test_non_critical_sample_resets_run(at: Callable[[float], datetime], level: VitalLevel) -> None:
    emitter = _emitter()
    for second in range(4):
        _critical(emitter, at(second))

    assert emitter.observe(DEVICE_ID, HR, 80, level, at(4)) is None
    status = emitter.status(DEVICE_ID, HR)
    assert status.consecutive_critical_count == 0
    assert not status.is_critical

    assert all(_critical(emitter, at(second)) is None for second in range(5, 9))


def test_redelivered_sample_is_not_counted_twice(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()

    _critical(emitter, at(0))
    _critical(emitter, at(0))
    _critical(emitter, at(0))

    assert emitter.status(DEVICE_ID, HR).consecutive_critical_count == 1


def test_value_change_mode_requires_a_new_value(at: Callable[[float], datetime]) -> None:
    emitter = _emitter(DEFAULT_RULES.model_copy(update={"require_value_change": True}))

    for second in range(6):
        _critical(emitter, at(second), value=150)
    assert emitter.status(DEVICE_ID, HR).consecutive_critical_count == 1

    decisions = [_critical(emitter, at(10 + i), value=value) for i, value in enumerate((151, 150, 152, 149))]
    assert decisions[-1] is not None


def test_runs_are_independent_per_device_and_kind(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()
    for second in range(4):
        _critical(emitter, at(second))
        _critical(emitter, at(second), device=OTHER_DEVICE_ID)
        emitter.observe(DEVICE_ID, VitalKind.TEMPERATURE, 39.0, VitalLevel.CRITICAL, at(second))

    assert _critical(emitter, at(4)) is not None
    assert emitter.status(OTHER_DEVICE_ID, HR).consecutive_critical_count == 4
    assert emitter.status(DEVICE_ID, VitalKind.TEMPERATURE).consecutive_critical_count == 4


def test_fall_alerts_on_first_sample(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()

    decision = emitter.observe(
        DEVICE_ID, VitalKind.BODY_ACTIVITY, BodyActivity.FALLEN, VitalLevel.CRITICAL, at(0)
    )

    assert decision is not None
    assert decision.value == "Fallen"
    assert decision.threshold is None
    assert (
        emitter.observe(
            DEVICE_ID, VitalKind.BODY_ACTIVITY, BodyActivity.FALLEN, VitalLevel.CRITICAL, at(1)
        )
        is None
    )


def test_reset_clears_runs_but_keeps_cooldown(at: Callable[[float], datetime]) -> None:
    emitter = _emitter()
    for second in range(5):
        _critical(emitter, at(second))
    _critical(emitter, at(5))

    emitter.reset(DEVICE_ID)

    status = emitter.status(DEVICE_ID, HR)
    assert status.consecutive_critical_count == 0
    assert status.current_value is None
    assert status.level == VitalLevel.NO_DATA
    assert status.last_alert_time == at(4)


def test_statuses_lists_every_kind() -> None:
    statuses = _emitter().statuses(DEVICE_ID)

    assert set(statuses) == set(VitalKind)
    assert all(status.level == VitalLevel.NO_DATA for status in statuses.values())
