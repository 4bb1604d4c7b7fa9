# feasibility/planning.py
"""
Lock / validate workflow of a day's plan.

The workflow state lives on the PlanningRules snapshot itself:
    editable  --lock-->  locked  --validate-->  validated
        ^                  |                        |
        +-----unlock-------+-----------unlock-------+

A plan can only be validated while locked and free of critical conflicts.
Each transition returns a new PlanningRules; the input is never modified.
"""

from enum import Enum
from typing import Any, Iterable, Optional
import datetime
import logging

from .conflicts import count_critical
from .models import Conflict, PlanningRules
from .timeutils import to_datetime

log = logging.getLogger("feasibility.planning")


class PlanningState(str, Enum):
    EDITABLE = "editable"
    LOCKED = "locked"
    VALIDATED = "validated"


class PlanningWorkflowError(Exception):
    """Transition not allowed from the plan's current state."""

    def __init__(self, message: str, state: PlanningState):
        super().__init__(message)
        self.state = state


def planning_state(rules: PlanningRules) -> PlanningState:
    if not rules.locked:
        return PlanningState.EDITABLE
    if rules.validated_by:
        return PlanningState.VALIDATED
    return PlanningState.LOCKED


def _stamp(at: Any) -> datetime.datetime:
    if at is None:
        return datetime.datetime.now(datetime.timezone.utc)
    dt = to_datetime(at)
    if dt is None:
        raise ValueError(f"Unreadable timestamp: {at!r}")
    return dt


def lock_planning(rules: PlanningRules, user: Optional[str], at: Any = None) -> PlanningRules:
    state = planning_state(rules)
    if state != PlanningState.EDITABLE:
        raise PlanningWorkflowError(f"Planning is already {state.value}", state)
    if not user:
        raise PlanningWorkflowError("A user is required to lock the planning", state)
    log.info("Planning locked by %s", user)
    return rules.model_copy(update={"locked": True, "locked_by": user, "locked_at": _stamp(at)})


def unlock_planning(rules: PlanningRules) -> PlanningRules:
    """Back to editable; a previous validation is discarded with the lock."""
    state = planning_state(rules)
    if state == PlanningState.EDITABLE:
        raise PlanningWorkflowError("Planning is not locked", state)
    log.info("Planning unlocked (was %s)", state.value)
    return rules.model_copy(update={
        "locked": False,
        "locked_by": None,
        "locked_at": None,
        "validated_by": None,
        "validated_at": None,
    })


def validate_planning(
    rules: PlanningRules,
    user: Optional[str],
    conflicts: Iterable[Conflict],
    at: Any = None,
) -> PlanningRules:
    state = planning_state(rules)
    if state != PlanningState.LOCKED:
        if state == PlanningState.EDITABLE:
            raise PlanningWorkflowError("Planning must be locked before it can be validated", state)
        raise PlanningWorkflowError("Planning is already validated", state)
    if not user:
        raise PlanningWorkflowError("A user is required to validate the planning", state)

    critical = count_critical(conflicts)
    if critical:
        raise PlanningWorkflowError(f"{critical} critical conflict(s) must be resolved before validation", state)

    log.info("Planning validated by %s", user)
    return rules.model_copy(update={"validated_by": user, "validated_at": _stamp(at)})
