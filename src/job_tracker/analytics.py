"""Analytics over applications and their audit logs.

`compute_snapshot` is a pure function of (applications, stages, range,
classification). Population counts filter on `date_applied`, transition
metrics on the audit entry dates; both bounds are inclusive. Percentages
stay unrounded; `format_percent` is for display only.
"""
import logging
import math
import threading
from collections import Counter, OrderedDict, defaultdict
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from .models import (AnalyticsSnapshot, Application, DateRange, MetricPoint, Stage,
                     StageClassification, TimelineBucket)
from .store import ApplicationStore
from .workflow import WorkflowStore

logger = logging.getLogger(__name__)

UNSPECIFIED_TYPE = "Unspecified"


def percent(part: int, whole: int) -> float:
    return 100.0 * part / whole if whole else 0.0


def format_percent(value: float) -> str:
    # floor so a display never overstates a rate
    return f"{math.floor(value)}%"


def format_days(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{round(value)} days"


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def iter_months(start: date, end: date) -> List[str]:
    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append(f"{year:04d}-{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


def reached_stages(app: Application, date_range: DateRange) -> Set[str]:
    """Stage names the application entered within the range."""
    if not app.logs:
        return {app.stage}
    return {e.to_stage for e in app.logs if date_range.contains(e.date)}


def first_reached(app: Application, stages: FrozenSet[str],
                  date_range: Optional[DateRange] = None) -> Optional[date]:
    for entry in app.logs:
        if entry.to_stage in stages and (date_range is None or date_range.contains(entry.date)):
            return entry.date
    if not app.logs and app.stage in stages:
        return app.date_applied
    return None


def _time_to_offer(apps: Sequence[Application], date_range: DateRange,
                   classification: StageClassification) -> Optional[float]:
    deltas = []
    for app in apps:
        offered = first_reached(app, classification.offer, date_range)
        if offered is None:
            continue
        started = app.logs[0].date if app.logs else app.date_applied
        deltas.append((offered - started).days)
    return sum(deltas) / len(deltas) if deltas else None


def _timeline(apps: Iterable[Application], date_range: DateRange,
              classification: StageClassification) -> List[TimelineBucket]:
    counts: Dict[str, List[int]] = {m: [0, 0, 0] for m in iter_months(date_range.start, date_range.end)}

    def bump(day: Optional[date], slot: int) -> None:
        if date_range.contains(day):
            counts[month_key(day)][slot] += 1

    for app in apps:
        bump(app.date_applied, 0)
        bump(first_reached(app, classification.interview_or_beyond), 1)
        bump(first_reached(app, classification.offer), 2)

    return [TimelineBucket(month=m, applications=c[0], interviews=c[1], offers=c[2])
            for m, c in counts.items()]


def _stage_durations(apps: Iterable[Application], stages: Sequence[Stage],
                     date_range: DateRange) -> List[MetricPoint]:
    stints: Dict[str, List[int]] = defaultdict(list)
    for app in apps:
        current, entered = None, None
        for entry in app.logs:
            # a same-stage entry is new evidence, not a move
            if entry.to_stage == current:
                continue
            if current is not None and date_range.contains(entered):
                stints[current].append((entry.date - entered).days)
            current, entered = entry.to_stage, entry.date

    points = []
    for stage in stages:
        days = stints.get(stage.name)
        points.append(MetricPoint(stage.name, sum(days) / len(days) if days else 0.0))
    return points


def compute_snapshot(
    applications: Iterable[Application],
    stages: Sequence[Stage],
    date_range: DateRange,
    classification: StageClassification,
) -> AnalyticsSnapshot:
    apps = list(applications)
    stages = sorted(stages, key=lambda s: s.order)
    initial = stages[0].name if stages else None
    in_range = [a for a in apps if date_range.contains(a.date_applied)]
    total = len(in_range)

    reached = {a.id: reached_stages(a, date_range) for a in in_range}
    responded = sum(1 for a in in_range if reached[a.id] - {initial})
    interviewed = sum(1 for a in in_range if reached[a.id] & classification.interview_or_beyond)
    offered = sum(1 for a in in_range if reached[a.id] & classification.offer)

    response_rate = percent(responded, total)
    interview_rate = percent(interviewed, total)
    offer_rate = percent(offered, total)

    current = Counter(a.stage for a in in_range)
    types = Counter(a.type or UNSPECIFIED_TYPE for a in in_range)

    return AnalyticsSnapshot(
        date_range=date_range,
        total=total,
        response_rate=response_rate,
        interview_rate=interview_rate,
        offer_rate=offer_rate,
        time_to_offer=_time_to_offer(in_range, date_range, classification),
        stage_distribution=[MetricPoint(s.name, current.get(s.name, 0)) for s in stages],
        type_distribution=[MetricPoint(name, count) for name, count
                           in sorted(types.items(), key=lambda kv: (-kv[1], kv[0]))],
        success_metrics=[
            MetricPoint("Response Rate", response_rate),
            MetricPoint("Interview Rate", interview_rate),
            MetricPoint("Offer Rate", offer_rate),
        ],
        timeline=_timeline(apps, date_range, classification),
        funnel=[MetricPoint(s.name, sum(1 for a in in_range if s.name in reached[a.id])) for s in stages],
        stage_durations=_stage_durations(apps, stages, date_range),
    )


class AnalyticsAggregator:
    """Recomputes snapshots on demand, memoised on the store versions."""

    def __init__(self, workflow: WorkflowStore, store: ApplicationStore,
                 classification: StageClassification, cache_size: int = 16):
        self.workflow = workflow
        self.store = store
        self.classification = classification
        self.cache_size = cache_size
        self._cache: "OrderedDict[tuple, AnalyticsSnapshot]" = OrderedDict()
        self._lock = threading.Lock()

    def snapshot(self, date_range: DateRange) -> AnalyticsSnapshot:
        key = (self.store.version, self.workflow.version, self.classification, date_range)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                logger.debug(f"Analytics cache hit for {date_range.start} .. {date_range.end}")
                return cached

        snap = compute_snapshot(self.store.get_all(), self.workflow.get_stages(),
                                date_range, self.classification)

        with self._lock:
            self._cache[key] = snap
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return snap
