# feasibility/routes.py
"""
HTTP endpoints of the feasibility engine.

Every endpoint is a thin wrapper over the pure functions of conflicts / ftl /
planning: the request body is the snapshot, the response is the freshly computed
result. Rules come from app.state.ruleset (loaded at startup from feasibility/rules)
unless the request carries its own planning rules ("what-if" evaluation).
"""

from typing import Any, Dict, List, Optional
import datetime
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from .conflicts import analyze_all_conflicts, build_conflict_index, compute_heatmap, count_critical
from .ftl import calculate_ftl, validate_crew_for_flight
from .load_rules import RuleSet
from .models import (
    Aircraft,
    Conflict,
    CrewMember,
    CrewValidation,
    Flight,
    FtlLog,
    FtlResult,
    HeatmapCell,
    PlanningRules,
    Qualification,
)
from .planning import (
    PlanningState,
    PlanningWorkflowError,
    lock_planning,
    planning_state,
    unlock_planning,
    validate_planning,
)

log = logging.getLogger("uvicorn.error")
router = APIRouter()


# ---------- Request / Response Models ----------
class ConflictsRequest(BaseModel):
    flights: List[Flight] = Field(default_factory=list)
    fleet: List[Aircraft] = Field(default_factory=list)
    rules: Optional[PlanningRules] = None


class ConflictsResponse(BaseModel):
    conflicts: List[Conflict]
    index: Dict[str, List[Conflict]]
    critical_count: int


class HeatmapRequest(BaseModel):
    flights: List[Flight] = Field(default_factory=list)
    fleet: List[Aircraft] = Field(default_factory=list)
    start_hour: int = Field(6, ge=0, le=23)
    end_hour: int = Field(19, ge=1, le=24)
    day: Optional[datetime.date] = None


class FtlRequest(BaseModel):
    logs: Optional[List[FtlLog]] = None
    flight_date: Any
    new_flight_minutes: float = Field(0, ge=0)
    new_duty_start: Optional[Any] = None
    new_duty_end: Optional[Any] = None


class CrewValidateRequest(BaseModel):
    member: Optional[CrewMember] = None
    qualifications: Optional[Qualification] = None
    ftl_logs: Optional[List[FtlLog]] = None
    flight: Flight


class PlanningRequest(BaseModel):
    rules: Optional[PlanningRules] = None
    user: Optional[str] = None
    flights: List[Flight] = Field(default_factory=list)
    fleet: List[Aircraft] = Field(default_factory=list)
    at: Optional[datetime.datetime] = None


class PlanningResponse(BaseModel):
    state: PlanningState
    rules: PlanningRules
    critical_count: int = 0


# ---------- Helpers ----------
def _ruleset(request: Request) -> RuleSet:
    try:
        ruleset = getattr(request.app.state, "ruleset", None)
    except Exception as e:
        log.exception("Failed to access app state: %s", e)
        raise HTTPException(status_code=500, detail="Server internal error while loading rules")
    return ruleset if ruleset is not None else RuleSet()


def _planning_rules(request: Request, override: Optional[PlanningRules]) -> PlanningRules:
    return override if override is not None else _ruleset(request).planning_rules


def _analyze(flights: List[Flight], fleet: List[Aircraft], rules: PlanningRules) -> List[Conflict]:
    try:
        return analyze_all_conflicts(flights, fleet, rules)
    except Exception as e:
        log.exception("Conflict analysis failed: %s", e)
        raise HTTPException(status_code=500, detail="Conflict analysis failed")


# ---------- /conflicts ----------
@router.post("/conflicts", response_model=ConflictsResponse)
def post_conflicts(payload: ConflictsRequest, request: Request):
    rules = _planning_rules(request, payload.rules)
    conflicts = _analyze(payload.flights, payload.fleet, rules)
    return ConflictsResponse(
        conflicts=conflicts,
        index=build_conflict_index(conflicts),
        critical_count=count_critical(conflicts),
    )


@router.post("/conflicts/heatmap", response_model=List[HeatmapCell])
def post_heatmap(payload: HeatmapRequest):
    if payload.end_hour <= payload.start_hour:
        raise HTTPException(status_code=422, detail="end_hour must be after start_hour")
    return compute_heatmap(payload.flights, payload.fleet, payload.start_hour, payload.end_hour, payload.day)


# ---------- /ftl ----------
@router.post("/ftl", response_model=FtlResult)
def post_ftl(payload: FtlRequest, request: Request):
    limits = _ruleset(request).ftl_limits
    try:
        return calculate_ftl(
            payload.logs,
            payload.flight_date,
            payload.new_flight_minutes,
            payload.new_duty_start,
            payload.new_duty_end,
            limits,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ---------- /crew/validate ----------
@router.post("/crew/validate", response_model=CrewValidation)
def post_crew_validate(payload: CrewValidateRequest, request: Request):
    limits = _ruleset(request).ftl_limits
    return validate_crew_for_flight(
        payload.member,
        payload.qualifications,
        payload.ftl_logs,
        payload.flight,
        limits,
    )


# ---------- /planning/{action} ----------
@router.post("/planning/{action}", response_model=PlanningResponse)
def post_planning(action: str, payload: PlanningRequest, request: Request):
    rules = _planning_rules(request, payload.rules)
    critical = 0
    try:
        if action == "lock":
            updated = lock_planning(rules, payload.user, payload.at)
        elif action == "unlock":
            updated = unlock_planning(rules)
        elif action == "validate":
            conflicts = _analyze(payload.flights, payload.fleet, rules)
            critical = count_critical(conflicts)
            updated = validate_planning(rules, payload.user, conflicts, payload.at)
        else:
            raise HTTPException(status_code=404, detail=f"Unknown planning action '{action}'")
    except PlanningWorkflowError as e:
        raise HTTPException(status_code=409, detail={"error": str(e), "state": e.state.value})
    return PlanningResponse(state=planning_state(updated), rules=updated, critical_count=critical)
