# feasibility/models.py
"""
Snapshot models consumed and produced by the feasibility engine.

Every model is frozen: the engine receives immutable snapshots of the
flight / fleet / crew stores and hands back fresh result objects.
Timestamps are coerced with timeutils.to_datetime, so a malformed value
becomes None instead of failing the whole snapshot; the detectors then
skip that record.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .timeutils import to_datetime, to_day


# ---------- Ranked enumerations ----------
class RankedEnum(str, Enum):
    """
    String enum ordered by declaration order rather than by string value,
    so 'critical' > 'warning' holds even though 'c' < 'w'.
    """

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def _check(self, other: Any) -> bool:
        return isinstance(other, type(self))

    def __lt__(self, other: Any) -> bool:
        if not self._check(other):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: Any) -> bool:
        if not self._check(other):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: Any) -> bool:
        if not self._check(other):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: Any) -> bool:
        if not self._check(other):
            return NotImplemented
        return self.rank >= other.rank


class Severity(RankedEnum):
    WARNING = "warning"
    CRITICAL = "critical"


class RiskLevel(RankedEnum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    VIOLATION = "violation"


class ConflictType(str, Enum):
    OVERLAP = "overlap"
    TURNAROUND = "turnaround"
    UNAVAILABLE = "unavailable"
    FTL = "ftl"
    OVERLOAD = "overload"


class SuggestionAction(str, Enum):
    SWAP_AIRCRAFT = "swap_aircraft"
    DELAY_FLIGHT = "delay_flight"
    CANCEL_FLIGHT = "cancel_flight"


class FlightStatus(str, Enum):
    SCHEDULED = "scheduled"
    BOARDING = "boarding"
    IN_FLIGHT = "in_flight"
    LANDED = "landed"
    CANCELLED = "cancelled"


class FlightCategory(str, Enum):
    REGULAR = "regular"
    PRIVATE = "private"


class AircraftStatus(str, Enum):
    AVAILABLE = "available"
    IN_FLIGHT = "in_flight"
    MAINTENANCE = "maintenance"


class ExpiryStatus(str, Enum):
    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class CrewStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    INACTIVE = "inactive"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


# ---------- Schedule snapshot ----------
class Flight(_Snapshot):
    id: str
    flight_number: str = ""
    aircraft: Optional[str] = None
    aircraft_type: Optional[str] = None
    pilot: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    departure_time: Optional[datetime.datetime] = None
    arrival_time: Optional[datetime.datetime] = None
    status: FlightStatus = FlightStatus.SCHEDULED
    flight_type: FlightCategory = FlightCategory.REGULAR
    pax: int = 0

    @field_validator("id", "flight_number", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("aircraft", "aircraft_type", "pilot", mode="before")
    @classmethod
    def _optional_ref(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("departure_time", "arrival_time", mode="before")
    @classmethod
    def _instant(cls, v: Any) -> Optional[datetime.datetime]:
        return to_datetime(v)

    @field_validator("pax", mode="before")
    @classmethod
    def _pax(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def is_cancelled(self) -> bool:
        return self.status == FlightStatus.CANCELLED

    @property
    def has_valid_window(self) -> bool:
        """Both instants present and arrival not before departure."""
        return (
            self.departure_time is not None
            and self.arrival_time is not None
            and self.arrival_time >= self.departure_time
        )

    @property
    def label(self) -> str:
        return self.flight_number or self.id


class Aircraft(_Snapshot):
    registration: str
    status: AircraftStatus = AircraftStatus.AVAILABLE
    type: Optional[str] = None

    @property
    def in_maintenance(self) -> bool:
        return self.status == AircraftStatus.MAINTENANCE


class PlanningRules(_Snapshot):
    """
    Planning configuration, supplied per evaluation. The lock / validation
    fields describe the workflow state of the plan the rules belong to.
    """
    min_turnaround_minutes: int = Field(20, ge=0)
    buffer_minutes: int = Field(5, ge=0)
    max_daily_cycles: int = Field(8, ge=1)
    max_crew_duty_minutes: int = Field(900, gt=0)
    locked: bool = False
    locked_by: Optional[str] = None
    locked_at: Optional[datetime.datetime] = None
    validated_by: Optional[str] = None
    validated_at: Optional[datetime.datetime] = None

    @field_validator("locked_at", "validated_at", mode="before")
    @classmethod
    def _instant(cls, v: Any) -> Optional[datetime.datetime]:
        return to_datetime(v)

    @property
    def required_ground_minutes(self) -> int:
        return self.min_turnaround_minutes + self.buffer_minutes


DEFAULT_RULES = PlanningRules()


# ---------- Conflicts ----------
class SuggestionPayload(_Snapshot):
    flight_id: str
    new_aircraft_registration: Optional[str] = None
    delay_minutes: Optional[int] = None


class Suggestion(_Snapshot):
    action: SuggestionAction
    label: str
    payload: SuggestionPayload


class Conflict(_Snapshot):
    flight_id: str
    type: ConflictType
    severity: Severity
    message: str
    related_flight_ids: List[str] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


class HeatmapCell(_Snapshot):
    hour: int
    aircraft: str
    load: float


# ---------- Crew snapshot ----------
class FtlLog(_Snapshot):
    crew_id: str = ""
    flight_id: Optional[str] = None
    date: Optional[datetime.date] = None
    duty_start_utc: Optional[datetime.datetime] = None
    duty_end_utc: Optional[datetime.datetime] = None
    flight_minutes: float = 0

    @field_validator("date", mode="before")
    @classmethod
    def _day(cls, v: Any) -> Optional[datetime.date]:
        return to_day(v)

    @field_validator("duty_start_utc", "duty_end_utc", mode="before")
    @classmethod
    def _instant(cls, v: Any) -> Optional[datetime.datetime]:
        return to_datetime(v)

    @field_validator("flight_minutes", mode="before")
    @classmethod
    def _minutes(cls, v: Any) -> float:
        # an unreadable ledger value counts as no flight time
        if v is None or isinstance(v, bool):
            return 0
        try:
            return float(v)
        except (TypeError, ValueError):
            return 0

    @property
    def duty_minutes(self) -> float:
        if self.duty_start_utc is None or self.duty_end_utc is None:
            return 0.0
        return max(0.0, (self.duty_end_utc - self.duty_start_utc).total_seconds() / 60.0)


class Qualification(_Snapshot):
    crew_id: Optional[str] = None
    medical_expiry: Optional[datetime.date] = None
    license_expiry: Optional[datetime.date] = None
    last_sim_check: Optional[datetime.date] = None
    instrument_rating_expiry: Optional[datetime.date] = None
    type_ratings: FrozenSet[str] = frozenset()

    @field_validator("medical_expiry", "license_expiry", "last_sim_check", "instrument_rating_expiry", mode="before")
    @classmethod
    def _day(cls, v: Any) -> Optional[datetime.date]:
        return to_day(v)

    @field_validator("type_ratings", mode="before")
    @classmethod
    def _ratings(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, str):
            return frozenset([v])
        return frozenset(str(r).strip() for r in v if r)


class CrewMember(_Snapshot):
    id: str
    name: str = ""
    role: Optional[str] = None
    active: bool = True
    base: Optional[str] = None


# ---------- FTL ----------
class FtlLimits(_Snapshot):
    """Regulatory ceilings and the risk thresholds applied to them."""
    max_duty_hours_per_day: float = Field(13, gt=0)
    max_flight_hours_per_day: float = Field(8, gt=0)
    max_flight_hours_7_days: float = Field(60, gt=0)
    max_flight_hours_28_days: float = Field(190, gt=0)
    min_rest_hours: float = Field(10, ge=0)
    warning_ratio: float = Field(0.80, gt=0)
    critical_ratio: float = Field(0.95, gt=0)

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "FtlLimits":
        if not self.warning_ratio < self.critical_ratio <= 1:
            raise ValueError("expected warning_ratio < critical_ratio <= 1")
        return self


FTL_LIMITS = FtlLimits()


class FtlCheck(_Snapshot):
    id: str
    label: str
    used: float
    limit: float
    unit: str = "h"
    message: str
    risk: RiskLevel
    pct: int


class FtlCounters(_Snapshot):
    duty_hours_today: float
    flight_hours_today: float
    flight_hours_7d: float
    flight_hours_28d: float


class FtlMargins(_Snapshot):
    duty_today_remaining: float
    ft_today_remaining: float
    ft_7d_remaining: float
    ft_28d_remaining: float


class FtlResult(_Snapshot):
    compliant: bool
    reason: str
    risk_level: RiskLevel
    counters: FtlCounters
    margins: FtlMargins
    checks: List[FtlCheck]
    rest_hours: Optional[float] = None
    rest_violation: Optional[str] = None
    counters_hhmm: Dict[str, Optional[str]] = Field(default_factory=dict)

    def checks_at(self, risk: RiskLevel) -> List[FtlCheck]:
        return [c for c in self.checks if c.risk == risk]


class CrewValidation(_Snapshot):
    valid: bool
    blockers: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
