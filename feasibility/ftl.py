# feasibility/ftl.py
"""
Flight / duty time limitation (FTL) calculator and crew legality checks.

Limits (defaults in models.FTL_LIMITS, overridable from rules/ftl_limits.json):
 - Max duty time   : 13h per calendar day
 - Max flight time :  8h per calendar day
 - Max flight time : 60h over 7 calendar days
 - Max flight time : 190h over 28 calendar days
 - Min rest        : 10h between two duties

Windows are calendar-day buckets on the ledger's date labels: the 7-day window of
2026-03-15 is 2026-03-09 .. 2026-03-15, whatever the hour of each duty.

Risk per limit, ratio = projected / limit:
    ok < 80% <= warning < 95% <= critical < 100% <= violation
A counter that reaches its ceiling is already a violation.

Internally everything is minutes; counters, margins and check values are
reported in hours, messages use HH:MM.
"""

from typing import Any, Iterable, List, Optional, Sequence
import datetime
import logging

from .models import (
    FTL_LIMITS,
    CrewMember,
    CrewStatus,
    CrewValidation,
    ExpiryStatus,
    Flight,
    FtlCheck,
    FtlCounters,
    FtlLimits,
    FtlLog,
    FtlMargins,
    FtlResult,
    Qualification,
    RiskLevel,
)
from .timeutils import (
    hours_to_hhmm,
    minutes_between,
    minutes_to_hhmm,
    minutes_to_hours,
    round_half_up,
    select_in_window,
    to_datetime,
    to_day,
)

log = logging.getLogger("feasibility.ftl")

REASON_SEPARATOR = " | "
EXPIRY_WARNING_DAYS = 30
SIM_CHECK_EXPIRING_AFTER_DAYS = 150
SIM_CHECK_EXPIRED_AFTER_DAYS = 180
# estimated duty around a scheduled flight: briefing before, post-flight after
PRE_FLIGHT_DUTY = datetime.timedelta(minutes=60)
POST_FLIGHT_DUTY = datetime.timedelta(minutes=30)


# ---------- Ledger aggregation ----------
def _as_logs(logs: Optional[Iterable[Any]]) -> List[FtlLog]:
    return [l if isinstance(l, FtlLog) else FtlLog.model_validate(l) for l in (logs or [])]


def logs_for_day(logs: Sequence[FtlLog], day: datetime.date) -> List[FtlLog]:
    return [l for l in logs if l.date == day]


def logs_in_window(logs: Sequence[FtlLog], reference: datetime.date, days: int) -> List[FtlLog]:
    return select_in_window(logs, reference, days, key=lambda l: l.date)


def sum_flight_minutes(logs: Sequence[FtlLog]) -> float:
    return sum(float(l.flight_minutes or 0) for l in logs)


def sum_duty_minutes(logs: Sequence[FtlLog]) -> float:
    return sum(l.duty_minutes for l in logs)


def risk_level(used: float, limit: float, limits: FtlLimits = FTL_LIMITS) -> RiskLevel:
    ratio = used / limit
    if ratio >= 1:
        return RiskLevel.VIOLATION
    if ratio >= limits.critical_ratio:
        return RiskLevel.CRITICAL
    if ratio >= limits.warning_ratio:
        return RiskLevel.WARNING
    return RiskLevel.OK


def _last_duty_end_before(logs: Sequence[FtlLog], start: datetime.datetime) -> Optional[datetime.datetime]:
    ends = [l.duty_end_utc for l in logs if l.duty_end_utc is not None and l.duty_end_utc < start]
    return max(ends) if ends else None


# ---------- Main calculation ----------
def calculate_ftl(
    existing_logs: Optional[Iterable[Any]],
    flight_date: Any,
    new_flight_minutes: float = 0,
    new_duty_start: Any = None,
    new_duty_end: Any = None,
    limits: FtlLimits = FTL_LIMITS,
) -> FtlResult:
    """
    FTL exposure of one crew member if a new flight / duty is added on flight_date.

    existing_logs: the member's ledger (FtlLog or dicts); None is treated as empty.
    flight_date: the calendar day of the new flight (date, datetime or 'YYYY-MM-DD').
    new_duty_start / new_duty_end: optional projected duty window; when a start is
    given, rest since the most recent earlier duty end is checked too.
    """
    logs = _as_logs(existing_logs)
    day = to_day(flight_date)
    if day is None:
        raise ValueError(f"flight_date is not a readable date: {flight_date!r}")

    duty_start = to_datetime(new_duty_start)
    duty_end = to_datetime(new_duty_end)
    new_minutes = float(new_flight_minutes or 0)

    logs_today = logs_for_day(logs, day)
    logs_7d = logs_in_window(logs, day, 7)
    logs_28d = logs_in_window(logs, day, 28)

    new_duty_minutes = 0.0
    if duty_start is not None and duty_end is not None:
        new_duty_minutes = max(0.0, minutes_between(duty_start, duty_end))

    projected = {
        "duty_day": sum_duty_minutes(logs_today) + new_duty_minutes,
        "ft_day": sum_flight_minutes(logs_today) + new_minutes,
        "ft_7d": sum_flight_minutes(logs_7d) + new_minutes,
        "ft_28d": sum_flight_minutes(logs_28d) + new_minutes,
    }

    rest_hours: Optional[float] = None
    rest_violation: Optional[str] = None
    if duty_start is not None:
        last_end = _last_duty_end_before(logs, duty_start)
        if last_end is not None:
            rest_minutes = minutes_between(last_end, duty_start)
            rest_hours = minutes_to_hours(rest_minutes)
            if rest_hours < limits.min_rest_hours:
                rest_violation = (
                    f"Insufficient rest: {minutes_to_hhmm(rest_minutes)} "
                    f"(min {hours_to_hhmm(limits.min_rest_hours)} required)"
                )

    definitions = [
        ("duty_day", "Daily duty", limits.max_duty_hours_per_day),
        ("ft_day", "Daily flight time", limits.max_flight_hours_per_day),
        ("ft_7d", "7-day flight time", limits.max_flight_hours_7_days),
        ("ft_28d", "28-day flight time", limits.max_flight_hours_28_days),
    ]
    checks: List[FtlCheck] = []
    for check_id, label, limit in definitions:
        used_minutes = projected[check_id]
        used = minutes_to_hours(used_minutes)
        checks.append(FtlCheck(
            id=check_id,
            label=label,
            used=round(used, 2),
            limit=limit,
            message=f"{label} limit reached: {minutes_to_hhmm(used_minutes)} / {hours_to_hhmm(limit)} max",
            risk=risk_level(used, limit, limits),
            pct=min(100, round_half_up(used / limit * 100)),
        ))

    reasons = [c.message for c in checks if c.risk == RiskLevel.VIOLATION]
    levels = [c.risk for c in checks]
    if rest_violation:
        reasons.append(rest_violation)
        levels.append(RiskLevel.VIOLATION)
    worst = max(levels)

    def _hours(key: str) -> float:
        return round(minutes_to_hours(projected[key]), 2)

    result = FtlResult(
        compliant=not reasons,
        reason=REASON_SEPARATOR.join(reasons),
        risk_level=worst,
        counters=FtlCounters(
            duty_hours_today=_hours("duty_day"),
            flight_hours_today=_hours("ft_day"),
            flight_hours_7d=_hours("ft_7d"),
            flight_hours_28d=_hours("ft_28d"),
        ),
        margins=FtlMargins(
            duty_today_remaining=round(limits.max_duty_hours_per_day - minutes_to_hours(projected["duty_day"]), 2),
            ft_today_remaining=round(limits.max_flight_hours_per_day - minutes_to_hours(projected["ft_day"]), 2),
            ft_7d_remaining=round(limits.max_flight_hours_7_days - minutes_to_hours(projected["ft_7d"]), 2),
            ft_28d_remaining=round(limits.max_flight_hours_28_days - minutes_to_hours(projected["ft_28d"]), 2),
        ),
        checks=checks,
        rest_hours=round(rest_hours, 2) if rest_hours is not None else None,
        rest_violation=rest_violation,
        counters_hhmm={
            "duty_today": minutes_to_hhmm(projected["duty_day"]),
            "flight_today": minutes_to_hhmm(projected["ft_day"]),
            "flight_7d": minutes_to_hhmm(projected["ft_7d"]),
            "flight_28d": minutes_to_hhmm(projected["ft_28d"]),
        },
    )
    log.debug(
        "FTL %s: %d log(s), risk=%s compliant=%s",
        day.isoformat(), len(logs), result.risk_level.value, result.compliant,
    )
    return result


# ---------- Qualification expiry ----------
def _reference_day(reference_date: Any) -> datetime.date:
    ref = to_day(reference_date)
    return ref if ref is not None else datetime.date.today()


def get_expiry_status(expiry_date: Any, reference_date: Any = None) -> ExpiryStatus:
    """Document expiry: past -> expired, within 30 days (same day included) -> expiring."""
    expiry = to_day(expiry_date)
    if expiry is None:
        return ExpiryStatus.EXPIRED
    days_left = (expiry - _reference_day(reference_date)).days
    if days_left < 0:
        return ExpiryStatus.EXPIRED
    if days_left <= EXPIRY_WARNING_DAYS:
        return ExpiryStatus.EXPIRING
    return ExpiryStatus.VALID


def get_sim_check_status(last_check_date: Any, reference_date: Any = None) -> ExpiryStatus:
    """Simulator check validity: six months, flagged as expiring in the last month."""
    last = to_day(last_check_date)
    if last is None:
        return ExpiryStatus.EXPIRED
    age = (_reference_day(reference_date) - last).days
    if age > SIM_CHECK_EXPIRED_AFTER_DAYS:
        return ExpiryStatus.EXPIRED
    if age > SIM_CHECK_EXPIRING_AFTER_DAYS:
        return ExpiryStatus.EXPIRING
    return ExpiryStatus.VALID


def _check_document(
    label: str,
    expiry: Optional[datetime.date],
    reference: datetime.date,
    blockers: List[str],
    warnings: List[str],
) -> None:
    status = get_expiry_status(expiry, reference)
    shown = expiry.isoformat() if expiry else "not recorded"
    if status == ExpiryStatus.EXPIRED:
        blockers.append(f"{label} expired ({shown})")
    elif status == ExpiryStatus.EXPIRING:
        warnings.append(f"{label} expires soon ({shown})")


def _check_qualifications(
    qualifications: Qualification,
    flight: Optional[Flight],
    reference: datetime.date,
    blockers: List[str],
    warnings: List[str],
) -> None:
    _check_document("Medical certificate", qualifications.medical_expiry, reference, blockers, warnings)
    _check_document("License", qualifications.license_expiry, reference, blockers, warnings)

    last_sim = qualifications.last_sim_check
    sim_status = get_sim_check_status(last_sim, reference)
    if sim_status == ExpiryStatus.EXPIRED:
        blockers.append(f"Simulator check expired (last: {last_sim.isoformat() if last_sim else 'never'})")
    elif sim_status == ExpiryStatus.EXPIRING:
        warnings.append(f"Simulator check due for renewal (last: {last_sim.isoformat()})")

    # instrument rating only limits the operation to VFR, it never grounds the pilot
    ir_expiry = qualifications.instrument_rating_expiry
    if ir_expiry is not None:
        ir_status = get_expiry_status(ir_expiry, reference)
        if ir_status == ExpiryStatus.EXPIRED:
            warnings.append(f"Instrument rating expired ({ir_expiry.isoformat()}): VFR only")
        elif ir_status == ExpiryStatus.EXPIRING:
            warnings.append(f"Instrument rating expires soon ({ir_expiry.isoformat()})")

    if flight is not None and flight.aircraft_type and flight.aircraft_type not in qualifications.type_ratings:
        blockers.append(f"Missing type rating: {flight.aircraft_type}")


def _check_ftl(
    member: CrewMember,
    ftl_logs: Iterable[Any],
    flight: Flight,
    limits: FtlLimits,
    blockers: List[str],
    warnings: List[str],
) -> None:
    logs = [l for l in _as_logs(ftl_logs) if not l.crew_id or l.crew_id == member.id]
    departure, arrival = flight.departure_time, flight.arrival_time
    ftl = calculate_ftl(
        logs,
        departure.date(),
        round_half_up(minutes_between(departure, arrival)),
        departure - PRE_FLIGHT_DUTY,
        arrival + POST_FLIGHT_DUTY,
        limits,
    )
    if not ftl.compliant:
        blockers.append(f"FTL non-compliant: {ftl.reason}")
    elif ftl.risk_level == RiskLevel.CRITICAL:
        detail = ", ".join(f"{c.label} {c.pct}%" for c in ftl.checks_at(RiskLevel.CRITICAL))
        warnings.append(f"FTL critical: {detail}")
    elif ftl.risk_level == RiskLevel.WARNING:
        detail = ", ".join(f"{c.label} {c.pct}%" for c in ftl.checks_at(RiskLevel.WARNING))
        warnings.append(f"FTL close to limit: {detail}")


# ---------- Crew legality ----------
def validate_crew_for_flight(
    member: Optional[CrewMember],
    qualifications: Optional[Qualification],
    ftl_logs: Optional[Iterable[Any]],
    flight: Optional[Flight],
    limits: FtlLimits = FTL_LIMITS,
) -> CrewValidation:
    """
    Go / no-go for assigning member to flight.

    Blockers: missing or inactive member, no qualification record, expired medical /
    license / simulator check, missing type rating, FTL non-compliance (duty estimated
    from 1h before departure to 30min after arrival), no FTL history, incomplete flight
    schedule. Missing data is a blocker, never a pass.

    Warnings: anything expiring soon, FTL risk at warning or critical level.
    """
    blockers: List[str] = []
    warnings: List[str] = []

    if member is None:
        blockers.append("Crew member not found")
        return CrewValidation(valid=False, blockers=blockers, warnings=warnings)
    if not member.active:
        blockers.append("Crew member is inactive")
        return CrewValidation(valid=False, blockers=blockers, warnings=warnings)

    schedulable = flight is not None and flight.has_valid_window
    if not schedulable:
        blockers.append("Flight schedule is incomplete: departure and arrival times are required")
    # documents are still checked without a schedule, against today
    reference = flight.departure_time.date() if schedulable else _reference_day(None)

    if qualifications is None:
        blockers.append("No qualification record on file")
    else:
        _check_qualifications(qualifications, flight, reference, blockers, warnings)

    if ftl_logs is None:
        blockers.append("No FTL history on file")
    elif schedulable:
        _check_ftl(member, ftl_logs, flight, limits, blockers, warnings)

    if blockers:
        log.info("Crew %s not legal for flight %s: %d blocker(s)", member.id, flight.id if flight else None, len(blockers))
    return CrewValidation(valid=not blockers, blockers=blockers, warnings=warnings)


def crew_member_status(
    member: Optional[CrewMember],
    qualifications: Optional[Qualification],
    ftl_result: Optional[FtlResult] = None,
    reference_date: Any = None,
) -> CrewStatus:
    """Badge status of a crew member on reference_date (today by default)."""
    if member is None or not member.active:
        return CrewStatus.INACTIVE

    reference = _reference_day(reference_date)
    q = qualifications
    statuses = [
        get_expiry_status(q.medical_expiry if q else None, reference),
        get_expiry_status(q.license_expiry if q else None, reference),
        get_sim_check_status(q.last_sim_check if q else None, reference),
    ]
    risk = ftl_result.risk_level if ftl_result is not None else RiskLevel.OK

    if ExpiryStatus.EXPIRED in statuses or risk == RiskLevel.VIOLATION:
        return CrewStatus.CRITICAL
    if ExpiryStatus.EXPIRING in statuses or risk >= RiskLevel.WARNING:
        return CrewStatus.WARNING
    return CrewStatus.OK
