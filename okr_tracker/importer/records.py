"""
Typed views of the records found in a goal-tracking export.

The export uses display names as JSON keys ("Time Period", "Parent IDs", ...)
and a single polymorphic goal-item shape discriminated by "Type". Each raw
dict is parsed into one of the classes below; a goal item becomes exactly one
of OutcomeItem ("Big rock"), MetricItem ("Kpi") or InitiativeItem ("Project").
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from sqlmodel import SQLModel, Field

from okr_tracker.importer.values import (
    RecordError, SourceId, parse_date, parse_number, source_id, text_value
)


class GoalKind(str, Enum):
    OUTCOME = "Outcome"
    METRIC = "Metric"
    INITIATIVE = "Initiative"


# Source "Type" labels, lower-cased
_KIND_LABELS = {
    "big rock": GoalKind.OUTCOME,
    "objective": GoalKind.OUTCOME,
    "outcome": GoalKind.OUTCOME,
    "kpi": GoalKind.METRIC,
    "key result": GoalKind.METRIC,
    "metric": GoalKind.METRIC,
    "project": GoalKind.INITIATIVE,
    "initiative": GoalKind.INITIATIVE,
}


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _require_id(raw: Mapping[str, Any], key: str = "ID") -> SourceId:
    value = source_id(raw.get(key))
    if value is None:
        raise RecordError(f"missing {key}")
    return value


# ============================================================================
# REFERENCE DATA
# ============================================================================

class SourceUser(SQLModel):
    id: Optional[SourceId] = None
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["SourceUser"]:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            id=source_id(raw.get("ID")),
            name=text_value(raw.get("Name")),
            email=text_value(raw.get("Email")),
        )


class SourcePeriod(SQLModel):
    id: Optional[SourceId] = None
    label: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "SourcePeriod":
        label = text_value(raw.get("Time Period Name"))
        if not label:
            raise RecordError("missing Time Period Name")
        return cls(
            id=source_id(raw.get("ID")),
            label=label,
            start_date=parse_date(raw.get("Start Date")),
            end_date=parse_date(raw.get("End Date")),
        )


class SourceTeamRef(SQLModel):
    id: SourceId
    name: str


class SourceTeam(SQLModel):
    id: SourceId
    name: str
    parent_team_name: Optional[str] = None
    owners: List[SourceUser] = Field(default_factory=list)
    description: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "SourceTeam":
        name = text_value(raw.get("Team Name"))
        if not name:
            raise RecordError("missing Team Name")
        owners = [SourceUser.from_raw(o) for o in _list(raw.get("Team Owners"))]
        return cls(
            id=_require_id(raw),
            name=name,
            parent_team_name=text_value(raw.get("Parent Team")),
            owners=[o for o in owners if o],
            description=text_value(raw.get("Description")),
        )


# ============================================================================
# GOAL ITEMS (tagged union)
# ============================================================================

class PhasedTarget(SQLModel):
    target_value: float
    target_date: Optional[str] = None


class PhasedTargets(SQLModel):
    interval: str = "custom"
    targets: List[PhasedTarget] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["PhasedTargets"]:
        block = _mapping(raw)
        entries = _list(block.get("Phased Targets"))
        if not entries:
            return None
        interval = (text_value(block.get("Interval")) or "").lower()
        targets = []
        for entry in entries:
            entry = _mapping(entry)
            value = parse_number(entry.get("Target Value"), "Phased Targets.Target Value")
            if value is None:
                continue
            targets.append(PhasedTarget(
                target_value=value,
                target_date=text_value(entry.get("Target Date")),
            ))
        if not targets:
            return None
        return cls(
            interval=interval if interval in ("monthly", "quarterly") else "custom",
            targets=targets,
        )

    def as_json(self) -> Dict[str, Any]:
        return {
            "interval": self.interval,
            "targets": [
                {"targetValue": t.target_value, "targetDate": t.target_date}
                for t in self.targets
            ],
        }


class MetricOutcome(SQLModel):
    """How a metric item is measured."""
    outcome_type: str = "Percentage"
    metric_name: Optional[str] = None
    metric_unit: Optional[str] = None
    start: Optional[float] = None
    target: Optional[float] = None
    target_type: Optional[str] = None

    @property
    def is_metric(self) -> bool:
        return self.outcome_type.strip().lower() == "metric"

    @classmethod
    def from_raw(cls, raw: Any) -> "MetricOutcome":
        block = _mapping(raw)
        return cls(
            outcome_type=text_value(block.get("Outcome Type")) or "Percentage",
            metric_name=text_value(block.get("Metric Name")),
            metric_unit=text_value(block.get("Metric Unit")),
            start=parse_number(block.get("Start"), "Outcome.Start"),
            target=parse_number(block.get("Target"), "Outcome.Target"),
            target_type=text_value(block.get("Target Type")),
        )


class GoalItemBase(SQLModel):
    """Fields shared by every goal item kind."""
    id: SourceId
    title: str
    description: Optional[str] = None
    owners: List[SourceUser] = Field(default_factory=list)
    team_refs: List[SourceTeamRef] = Field(default_factory=list)
    period_id: Optional[SourceId] = None
    period_label: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    parent_ids: List[SourceId] = Field(default_factory=list)
    progress_config: Optional[str] = None
    progress: float = 0.0
    status: Optional[str] = None
    goal_type: Optional[str] = None
    last_check_in_at: Optional[datetime] = None

    @property
    def parent_id(self) -> Optional[SourceId]:
        """The first declared parent; later ones are alignment hints only."""
        return self.parent_ids[0] if self.parent_ids else None

    @property
    def is_aspirational(self) -> bool:
        return (self.goal_type or "").lower() == "aspirational"


class OutcomeItem(GoalItemBase):
    kind: Literal[GoalKind.OUTCOME] = GoalKind.OUTCOME
    phased_targets: Optional[PhasedTargets] = None


class MetricItem(GoalItemBase):
    kind: Literal[GoalKind.METRIC] = GoalKind.METRIC
    outcome: MetricOutcome = Field(default_factory=MetricOutcome)
    phased_targets: Optional[PhasedTargets] = None


class InitiativeItem(GoalItemBase):
    kind: Literal[GoalKind.INITIATIVE] = GoalKind.INITIATIVE


GoalItem = Union[OutcomeItem, MetricItem, InitiativeItem]


def goal_kind(raw: Any) -> Optional[GoalKind]:
    """Kind of a raw goal item, or None for unsupported types."""
    label = text_value(_mapping(raw).get("Type"))
    return _KIND_LABELS.get(label.lower()) if label else None


def parse_goal_item(raw: Any) -> GoalItem:
    """Parse one raw goal item; raises RecordError (or ValidationError) if malformed."""
    if not isinstance(raw, Mapping):
        raise RecordError("goal item is not an object")
    kind = goal_kind(raw)
    if kind is None:
        raise RecordError(f"unsupported goal item type {raw.get('Type')!r}")
    title = text_value(raw.get("Title"))
    if not title:
        raise RecordError("missing Title")

    period = _mapping(raw.get("Time Period"))
    config = _mapping(raw.get("Progress and Status Configuration"))
    owners = [SourceUser.from_raw(o) for o in _list(raw.get("Owner"))]
    team_refs = []
    for ref in _list(raw.get("Teams")):
        ref = _mapping(ref)
        ref_id, ref_name = source_id(ref.get("ID")), text_value(ref.get("Name"))
        if ref_id is not None and ref_name:
            team_refs.append(SourceTeamRef(id=ref_id, name=ref_name))
    parent_ids = [pid for pid in (source_id(p) for p in _list(raw.get("Parent IDs"))) if pid is not None]

    fields: Dict[str, Any] = dict(
        id=_require_id(raw),
        title=title,
        description=text_value(raw.get("Description")),
        owners=[o for o in owners if o],
        team_refs=team_refs,
        period_id=source_id(period.get("ID")),
        period_label=text_value(period.get("Name")),
        start_date=parse_date(raw.get("Start Date")),
        end_date=parse_date(raw.get("End Date")),
        parent_ids=parent_ids,
        progress_config=text_value(config.get("Progress")),
        progress=parse_number(raw.get("Progress"), "Progress") or 0.0,
        status=text_value(raw.get("Status")),
        goal_type=text_value(raw.get("Goal Type")),
        last_check_in_at=parse_date(raw.get("Last Check-in")),
    )
    if kind is GoalKind.OUTCOME:
        return OutcomeItem(phased_targets=PhasedTargets.from_raw(raw.get("Phased Targets")), **fields)
    if kind is GoalKind.METRIC:
        return MetricItem(
            outcome=MetricOutcome.from_raw(raw.get("Outcome")),
            phased_targets=PhasedTargets.from_raw(raw.get("Phased Targets")),
            **fields,
        )
    return InitiativeItem(**fields)


# ============================================================================
# CHECK-INS
# ============================================================================

class SourceCheckIn(SQLModel):
    id: SourceId
    goal_item_id: SourceId
    check_in_date: Optional[datetime] = None
    owner: Optional[SourceUser] = None
    note: Optional[str] = None
    metric_name: Optional[str] = None
    status: Optional[str] = None
    current_value: float = 0.0
    activity_date: Optional[datetime] = None

    @property
    def as_of(self) -> Optional[datetime]:
        return self.activity_date or self.check_in_date

    @classmethod
    def from_raw(cls, raw: Any) -> "SourceCheckIn":
        if not isinstance(raw, Mapping):
            raise RecordError("check-in is not an object")
        note = raw.get("Check In Note")
        if isinstance(note, Mapping):
            note = note.get("Check In Note")
        return cls(
            id=_require_id(raw),
            goal_item_id=_require_id(raw, "OKR ID"),
            check_in_date=parse_date(raw.get("CheckIn Date")),
            owner=SourceUser.from_raw(raw.get("Check In Owner")),
            note=text_value(note),
            metric_name=text_value(raw.get("Metric Name")),
            status=text_value(raw.get("Status")),
            current_value=parse_number(raw.get("Current Value"), "Current Value") or 0.0,
            activity_date=parse_date(raw.get("Activity Date")),
        )
