# tests/test_planning.py
import datetime

import pytest

from feasibility.models import Conflict, ConflictType, PlanningRules, Severity
from feasibility.planning import (
    PlanningState,
    PlanningWorkflowError,
    lock_planning,
    planning_state,
    unlock_planning,
    validate_planning,
)

AT = datetime.datetime(2026, 3, 15, 5, 0, tzinfo=datetime.timezone.utc)


def conflict(severity):
    return Conflict(flight_id="F1", type=ConflictType.TURNAROUND, severity=severity, message="short turnaround")


def test_lock_validate_unlock_cycle():
    rules = PlanningRules()
    assert planning_state(rules) == PlanningState.EDITABLE

    locked = lock_planning(rules, "ops.lead", AT)
    assert planning_state(locked) == PlanningState.LOCKED
    assert locked.locked_by == "ops.lead"
    assert locked.locked_at == AT
    # the input snapshot is left as it was
    assert rules.locked is False

    validated = validate_planning(locked, "chief.pilot", [conflict(Severity.WARNING)], AT)
    assert planning_state(validated) == PlanningState.VALIDATED
    assert validated.validated_by == "chief.pilot"

    unlocked = unlock_planning(validated)
    assert planning_state(unlocked) == PlanningState.EDITABLE
    assert unlocked.validated_by is None
    assert unlocked.locked_at is None
    # the numeric rules travel through the workflow unchanged
    assert unlocked.min_turnaround_minutes == rules.min_turnaround_minutes


def test_validation_refused_with_critical_conflicts():
    locked = lock_planning(PlanningRules(), "ops.lead", AT)
    with pytest.raises(PlanningWorkflowError) as exc:
        validate_planning(locked, "chief.pilot", [conflict(Severity.CRITICAL), conflict(Severity.WARNING)])
    assert "1 critical" in str(exc.value)
    assert exc.value.state == PlanningState.LOCKED


def test_validation_requires_lock():
    with pytest.raises(PlanningWorkflowError):
        validate_planning(PlanningRules(), "chief.pilot", [])


def test_illegal_transitions():
    locked = lock_planning(PlanningRules(), "ops.lead", AT)
    with pytest.raises(PlanningWorkflowError):
        lock_planning(locked, "someone.else")
    with pytest.raises(PlanningWorkflowError):
        unlock_planning(PlanningRules())
    with pytest.raises(PlanningWorkflowError):
        lock_planning(PlanningRules(), "")
    validated = validate_planning(locked, "chief.pilot", [])
    with pytest.raises(PlanningWorkflowError):
        validate_planning(validated, "chief.pilot", [])


def test_default_timestamp_is_aware():
    locked = lock_planning(PlanningRules(), "ops.lead")
    assert locked.locked_at.tzinfo is not None
