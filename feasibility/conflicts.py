# feasibility/conflicts.py
"""
Schedule conflict detection for the planning board.

Pipeline:
 - Five independent detectors, each a pure function (flights, fleet, rules) -> List[Conflict].
   They never mutate their inputs and skip malformed records (no aircraft / pilot,
   missing or inverted time window) instead of raising.
 - One enrichment pass that searches the fleet for swap candidates and prepends
   swap_aircraft suggestions to unavailable / turnaround conflicts.
 - analyze_all_conflicts() composes both; build_conflict_index() gives O(1) lookup per flight.

Cancelled flights never take part in any check. Planning rules are always passed in;
nothing here reads a module-level rule set.
"""

from collections import defaultdict
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple
import datetime
import logging
import math

from .models import (
    Aircraft,
    Conflict,
    ConflictType,
    Flight,
    HeatmapCell,
    PlanningRules,
    Severity,
    Suggestion,
    SuggestionAction,
    SuggestionPayload,
)
from .timeutils import gap_minutes, minutes_between, round_half_up

log = logging.getLogger("feasibility.conflicts")

Detector = Callable[[Sequence[Flight], Sequence[Aircraft], PlanningRules], List[Conflict]]

# ---------------- CONFIG ----------------
DUTY_WARNING_RATIO = 0.9  # duty span above 90% of the limit is reported as a warning
MAX_SWAP_SUGGESTIONS = 2
ENRICHED_TYPES = (ConflictType.UNAVAILABLE, ConflictType.TURNAROUND)
HEATMAP_START_HOUR = 6
HEATMAP_END_HOUR = 19
# ----------------------------------------


# ---------- Grouping helpers ----------
def _by_departure(f: Flight) -> Tuple[datetime.datetime, str]:
    return (f.departure_time, f.id)


def _group_sorted(flights: Sequence[Flight], key: Callable[[Flight], Optional[Hashable]]) -> Dict[Hashable, List[Flight]]:
    """
    Group non-cancelled flights with a usable time window by key(flight),
    each group sorted by departure (flight id breaks ties). Flights whose
    key is None are left out.
    """
    groups: Dict[Hashable, List[Flight]] = defaultdict(list)
    for f in flights:
        if f.is_cancelled:
            continue
        if not f.has_valid_window:
            log.debug("Skipping flight %s: incomplete time window", f.id)
            continue
        k = key(f)
        if k is None:
            continue
        groups[k].append(f)
    return {k: sorted(v, key=_by_departure) for k, v in groups.items()}


def flights_by_aircraft(flights: Sequence[Flight]) -> Dict[str, List[Flight]]:
    return _group_sorted(flights, lambda f: f.aircraft)


def flights_by_pilot_day(flights: Sequence[Flight]) -> Dict[Tuple[str, datetime.date], List[Flight]]:
    return _group_sorted(flights, lambda f: (f.pilot, f.departure_time.date()) if f.pilot else None)


def flights_by_aircraft_day(flights: Sequence[Flight]) -> Dict[Tuple[str, datetime.date], List[Flight]]:
    return _group_sorted(flights, lambda f: (f.aircraft, f.departure_time.date()) if f.aircraft else None)


def _rotation_pairs(sequence: List[Flight]):
    """
    Yield (previous, flight) along a departure-sorted sequence, where previous is
    the earlier flight whose arrival reaches furthest. For a plain chain of legs
    this is simply the preceding leg.
    """
    reaching: Optional[Flight] = None
    for f in sequence:
        if reaching is not None:
            yield reaching, f
        if reaching is None or f.arrival_time > reaching.arrival_time:
            reaching = f


# ---------- Detectors ----------
def detect_overlaps(flights: Sequence[Flight], fleet: Sequence[Aircraft], rules: PlanningRules) -> List[Conflict]:
    """One aircraft on two flights at once. Remediation is left to the enrichment pass."""
    conflicts: List[Conflict] = []
    for reg, sequence in flights_by_aircraft(flights).items():
        for prev, nxt in _rotation_pairs(sequence):
            if nxt.departure_time < prev.arrival_time:
                conflicts.append(Conflict(
                    flight_id=nxt.id,
                    type=ConflictType.OVERLAP,
                    severity=Severity.CRITICAL,
                    message=f"{nxt.label} overlaps {prev.label} on {reg}",
                    related_flight_ids=[prev.id],
                ))
    return conflicts


def detect_turnaround_violations(flights: Sequence[Flight], fleet: Sequence[Aircraft], rules: PlanningRules) -> List[Conflict]:
    """
    Ground time shorter than turnaround + buffer. Critical below the bare
    turnaround, warning inside the buffer. Overlaps (negative gaps) belong
    to detect_overlaps.
    """
    conflicts: List[Conflict] = []
    required = rules.required_ground_minutes
    for reg, sequence in flights_by_aircraft(flights).items():
        for prev, nxt in _rotation_pairs(sequence):
            gap = gap_minutes(prev.arrival_time, nxt.departure_time)
            if gap < 0 or gap >= required:
                continue
            delay = int(math.ceil(required - gap))
            critical = gap < rules.min_turnaround_minutes
            conflicts.append(Conflict(
                flight_id=nxt.id,
                type=ConflictType.TURNAROUND,
                severity=Severity.CRITICAL if critical else Severity.WARNING,
                message=(
                    f"Turnaround on {reg} too short: {round_half_up(gap)} min "
                    f"(min. {rules.min_turnaround_minutes} min + {rules.buffer_minutes} min buffer)"
                ),
                related_flight_ids=[prev.id],
                suggestions=[Suggestion(
                    action=SuggestionAction.DELAY_FLIGHT,
                    label=f"Delay {nxt.label} by {delay} min",
                    payload=SuggestionPayload(flight_id=nxt.id, delay_minutes=delay),
                )],
            ))
    return conflicts


def detect_unavailable_aircraft(flights: Sequence[Flight], fleet: Sequence[Aircraft], rules: PlanningRules) -> List[Conflict]:
    """Every active flight on an aircraft in maintenance, whatever its timing."""
    grounded = {ac.registration for ac in fleet if ac.in_maintenance}
    conflicts: List[Conflict] = []
    for f in flights:
        if f.is_cancelled or f.aircraft not in grounded:
            continue
        conflicts.append(Conflict(
            flight_id=f.id,
            type=ConflictType.UNAVAILABLE,
            severity=Severity.CRITICAL,
            message=f"{f.aircraft} is in maintenance: flight {f.label} cannot operate",
        ))
    return conflicts


def detect_duty_span_violations(flights: Sequence[Flight], fleet: Sequence[Aircraft], rules: PlanningRules) -> List[Conflict]:
    """
    Schedule-level duty check: first departure to last arrival of a pilot's day
    against max_crew_duty_minutes. Single-leg days are not evaluated.
    """
    conflicts: List[Conflict] = []
    limit = rules.max_crew_duty_minutes
    for (pilot, day), sequence in flights_by_pilot_day(flights).items():
        if len(sequence) < 2:
            continue
        first_departure = sequence[0].departure_time
        last_arrival = max(f.arrival_time for f in sequence)
        span = minutes_between(first_departure, last_arrival)
        last = sequence[-1]
        related = [f.id for f in sequence[:-1]]
        if span > limit:
            conflicts.append(Conflict(
                flight_id=last.id,
                type=ConflictType.FTL,
                severity=Severity.CRITICAL,
                message=f"Duty limit exceeded for {pilot} on {day.isoformat()}: {round_half_up(span)} min (max {limit} min)",
                related_flight_ids=related,
            ))
        elif span > limit * DUTY_WARNING_RATIO:
            conflicts.append(Conflict(
                flight_id=last.id,
                type=ConflictType.FTL,
                severity=Severity.WARNING,
                message=f"Duty at {round_half_up(span / limit * 100)}% for {pilot} on {day.isoformat()} ({round_half_up(span)} min)",
                related_flight_ids=related,
            ))
    return conflicts


def detect_overload(flights: Sequence[Flight], fleet: Sequence[Aircraft], rules: PlanningRules) -> List[Conflict]:
    conflicts: List[Conflict] = []
    for (reg, day), sequence in flights_by_aircraft_day(flights).items():
        if len(sequence) <= rules.max_daily_cycles:
            continue
        conflicts.append(Conflict(
            flight_id=sequence[-1].id,
            type=ConflictType.OVERLOAD,
            severity=Severity.WARNING,
            message=f"{reg}: {len(sequence)} cycles on {day.isoformat()} (max {rules.max_daily_cycles})",
            related_flight_ids=[f.id for f in sequence[:-1]],
        ))
    return conflicts


DETECTORS: Tuple[Detector, ...] = (
    detect_overlaps,
    detect_turnaround_violations,
    detect_unavailable_aircraft,
    detect_duty_span_violations,
    detect_overload,
)


# ---------- Suggestion enrichment ----------
def _free_aircraft(
    schedule: Dict[str, List[Flight]],
    fleet: Sequence[Aircraft],
    departure: datetime.datetime,
    arrival: datetime.datetime,
    exclude_registration: Optional[str],
    rules: PlanningRules,
) -> List[Aircraft]:
    margin = datetime.timedelta(minutes=rules.min_turnaround_minutes)
    available: List[Aircraft] = []
    for ac in fleet:
        if ac.registration == exclude_registration or ac.in_maintenance:
            continue
        if all(
            arrival + margin <= f.departure_time or f.arrival_time + margin <= departure
            for f in schedule.get(ac.registration, [])
        ):
            available.append(ac)
    return available


def find_available_aircraft(
    flights: Sequence[Flight],
    fleet: Sequence[Aircraft],
    departure: datetime.datetime,
    arrival: datetime.datetime,
    exclude_registration: Optional[str],
    rules: PlanningRules,
) -> List[Aircraft]:
    """
    Fleet members (in fleet order) that could take the [departure, arrival] slot:
    not in maintenance, not the excluded registration, and with at least
    min_turnaround_minutes of ground time on both sides of every flight they fly.
    """
    return _free_aircraft(flights_by_aircraft(flights), fleet, departure, arrival, exclude_registration, rules)


def enrich_suggestions_with_fleet(
    conflicts: Sequence[Conflict],
    flights: Sequence[Flight],
    fleet: Sequence[Aircraft],
    rules: PlanningRules,
) -> List[Conflict]:
    """
    Best-effort remediation: up to two swap_aircraft suggestions, ahead of any
    existing ones, for unavailable and turnaround conflicts. Conflicts are copied,
    the inputs stay untouched. Finding no candidate is a normal outcome.
    """
    by_id: Dict[str, Flight] = {}
    for f in flights:
        by_id.setdefault(f.id, f)
    schedule = flights_by_aircraft(flights)

    enriched: List[Conflict] = []
    for conflict in conflicts:
        flight = by_id.get(conflict.flight_id) if conflict.type in ENRICHED_TYPES else None
        if flight is None or not flight.has_valid_window:
            enriched.append(conflict)
            continue
        candidates = _free_aircraft(
            schedule, fleet, flight.departure_time, flight.arrival_time, flight.aircraft, rules
        )[:MAX_SWAP_SUGGESTIONS]
        swaps = [
            Suggestion(
                action=SuggestionAction.SWAP_AIRCRAFT,
                label=f"Reassign to {ac.registration}",
                payload=SuggestionPayload(flight_id=flight.id, new_aircraft_registration=ac.registration),
            )
            for ac in candidates
        ]
        if not swaps:
            enriched.append(conflict)
            continue
        enriched.append(conflict.model_copy(update={"suggestions": swaps + list(conflict.suggestions)}))
    return enriched


# ---------- Aggregation ----------
def analyze_all_conflicts(
    flights: Sequence[Flight],
    fleet: Sequence[Aircraft],
    rules: PlanningRules,
    detectors: Sequence[Detector] = DETECTORS,
) -> List[Conflict]:
    """Run every detector in order, concatenate, then enrich once over the union."""
    flights = list(flights)
    fleet = list(fleet)
    raw: List[Conflict] = []
    for detector in detectors:
        found = detector(flights, fleet, rules)
        log.debug("%s: %d conflict(s)", getattr(detector, "__name__", detector), len(found))
        raw.extend(found)
    return enrich_suggestions_with_fleet(raw, flights, fleet, rules)


def build_conflict_index(conflicts: Sequence[Conflict]) -> Dict[str, List[Conflict]]:
    index: Dict[str, List[Conflict]] = {}
    for c in conflicts:
        index.setdefault(c.flight_id, []).append(c)
    return index


def count_critical(conflicts: Sequence[Conflict]) -> int:
    return sum(1 for c in conflicts if c.is_critical)


def compute_heatmap(
    flights: Sequence[Flight],
    fleet: Sequence[Aircraft],
    start_hour: int = HEATMAP_START_HOUR,
    end_hour: int = HEATMAP_END_HOUR,
    day: Optional[datetime.date] = None,
) -> List[HeatmapCell]:
    """
    Hourly load per aircraft: occupied minutes in each [h, h+1) slot of the
    day divided by 60, clipped to [0, 1]. A load metric only, not a conflict signal.
    When day is given, only flights departing that day are counted.
    """
    schedule = flights_by_aircraft(flights)
    cells: List[HeatmapCell] = []
    for ac in fleet:
        spans: List[Tuple[float, float]] = []
        for f in schedule.get(ac.registration, []):
            if day is not None and f.departure_time.date() != day:
                continue
            start = f.departure_time.hour * 60 + f.departure_time.minute
            spans.append((start, start + minutes_between(f.departure_time, f.arrival_time)))
        for hour in range(start_hour, end_hour):
            slot_start, slot_end = hour * 60, (hour + 1) * 60
            occupied = sum(max(0.0, min(end, slot_end) - max(start, slot_start)) for start, end in spans)
            cells.append(HeatmapCell(hour=hour, aircraft=ac.registration, load=min(1.0, occupied / 60.0)))
    return cells
