from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

EMAIL_SOURCES = frozenset({"import", "email"})

# Fields an edit may touch; stage, logs and last_updated only change through transitions
EDITABLE_FIELDS = frozenset({
    "company", "position", "date_applied", "type", "tags",
    "description", "salary", "location", "notes",
})


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def _day(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # ISO timestamps from the REST layer carry a time part
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class Stage:
    id: str
    name: str
    order: int
    color: str
    visible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "order": self.order,
                "color": self.color, "visible": self.visible}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stage":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            order=int(data["order"]),
            color=data.get("color", ""),
            visible=bool(data.get("visible", True)),
        )


@dataclass(frozen=True)
class AuditEntry:
    id: str
    date: date
    from_stage: Optional[str]      # None only for the creation entry
    to_stage: str
    message: str
    source: str                    # manual | import | email | workflow | ...
    email_id: Optional[str] = None
    email_title: Optional[str] = None
    email_body: Optional[str] = None

    @property
    def dedup_key(self) -> Tuple[Optional[str], str, str, Optional[str]]:
        return (self.from_stage, self.to_stage, self.source, self.email_id)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "date": _iso(self.date),
            "fromStage": self.from_stage,
            "toStage": self.to_stage,
            "message": self.message,
            "source": self.source,
        }
        if self.email_id is not None:
            data.update(emailId=self.email_id, emailTitle=self.email_title, emailBody=self.email_body)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            id=str(data["id"]),
            date=_day(data["date"]),
            from_stage=data.get("fromStage"),
            to_stage=data["toStage"],
            message=data.get("message", ""),
            source=data.get("source", "manual"),
            email_id=data.get("emailId"),
            email_title=data.get("emailTitle"),
            email_body=data.get("emailBody"),
        )


@dataclass(frozen=True)
class Application:
    id: str
    company: str
    position: str
    date_applied: date
    stage: str
    type: str = ""
    tags: FrozenSet[str] = frozenset()
    last_updated: Optional[date] = None
    description: str = ""
    salary: str = ""
    location: str = ""
    notes: str = ""
    logs: Tuple[AuditEntry, ...] = ()

    @property
    def last_entry(self) -> Optional[AuditEntry]:
        return self.logs[-1] if self.logs else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "company": self.company,
            "position": self.position,
            "dateApplied": _iso(self.date_applied),
            "stage": self.stage,
            "type": self.type,
            "tags": sorted(self.tags),
            "lastUpdated": _iso(self.last_updated),
            "description": self.description,
            "salary": self.salary,
            "location": self.location,
            "notes": self.notes,
            "logs": [entry.to_dict() for entry in self.logs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Application":
        logs = tuple(AuditEntry.from_dict(e) for e in data.get("logs") or [])
        last_updated = logs[-1].date if logs else _day(data.get("lastUpdated"))
        return cls(
            id=str(data["id"]),
            company=data.get("company", ""),
            position=data.get("position", ""),
            date_applied=_day(data["dateApplied"]),
            stage=data["stage"],
            type=data.get("type") or "",
            tags=frozenset(data.get("tags") or []),
            last_updated=last_updated,
            description=data.get("description") or "",
            salary=data.get("salary") or "",
            location=data.get("location") or "",
            notes=data.get("notes") or "",
            logs=logs,
        )


@dataclass
class ApplicationDraft:
    company: str
    position: str
    stage: str
    date_applied: Any = None       # date, datetime or free text; defaults to today
    type: str = ""
    tags: Iterable[str] = ()
    description: str = ""
    salary: str = ""
    location: str = ""
    notes: str = ""


@dataclass(frozen=True)
class TransitionMeta:
    message: Optional[str] = None
    email_id: Optional[str] = None
    email_title: Optional[str] = None
    email_body: Optional[str] = None

    @property
    def has_email(self) -> bool:
        return self.email_id is not None


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def contains(self, day: Optional[date]) -> bool:
        return day is not None and self.start <= day <= self.end


@dataclass(frozen=True)
class MetricPoint:
    name: str
    value: float


@dataclass(frozen=True)
class TimelineBucket:
    month: str          # YYYY-MM
    applications: int = 0
    interviews: int = 0
    offers: int = 0


@dataclass(frozen=True)
class StageClassification:
    interview: FrozenSet[str] = frozenset({"Interview"})
    offer: FrozenSet[str] = frozenset({"Offer"})

    @property
    def interview_or_beyond(self) -> FrozenSet[str]:
        return self.interview | self.offer

    def renamed(self, old_name: str, new_name: str) -> "StageClassification":
        def swap(names: FrozenSet[str]) -> FrozenSet[str]:
            return frozenset(new_name if n == old_name else n for n in names)
        return StageClassification(interview=swap(self.interview), offer=swap(self.offer))


@dataclass(frozen=True)
class ApplicationFilter:
    search: str = ""
    tags: FrozenSet[str] = frozenset()

    def matches(self, app: Application) -> bool:
        term = self.search.strip().lower()
        if term and term not in app.company.lower() and term not in app.position.lower():
            return False
        return not self.tags or bool(self.tags & app.tags)


@dataclass(frozen=True)
class ActivityItem:
    application_id: str
    company: str
    position: str
    entry: AuditEntry


@dataclass(frozen=True)
class AnalyticsSnapshot:
    date_range: DateRange
    total: int
    response_rate: float
    interview_rate: float
    offer_rate: float
    time_to_offer: Optional[float]      # mean days; None when no offers in range
    stage_distribution: List[MetricPoint] = field(default_factory=list)
    type_distribution: List[MetricPoint] = field(default_factory=list)
    success_metrics: List[MetricPoint] = field(default_factory=list)
    timeline: List[TimelineBucket] = field(default_factory=list)
    funnel: List[MetricPoint] = field(default_factory=list)
    stage_durations: List[MetricPoint] = field(default_factory=list)
