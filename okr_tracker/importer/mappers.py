"""
Semantic mappers: one typed source record in, one unsaved target draft out.

Mappers never touch the store. Parent and team ids are resolved by the caller
and passed in as target ids.
"""
from typing import Dict, Optional, Tuple

from okr_tracker.config import CHECK_IN_SOURCE
from okr_tracker.models import (
    Objective, KeyResult, BigRock, CheckIn,
    ObjectiveLevel, ProgressMode, OkrStatus, GoalType, MetricType, EntityType,
)
from okr_tracker.importer.options import ImportOptions
from okr_tracker.importer.periods import PeriodParser, ParsedPeriod
from okr_tracker.importer.records import (
    GoalItemBase, OutcomeItem, MetricItem, InitiativeItem, SourceCheckIn, SourceUser
)
from okr_tracker.importer.result import EntityMapping
from okr_tracker.importer.values import SourceId

PLACEHOLDER_TITLE = "[Imported] Missing Parent Objective (source ID: {source_id})"
PLACEHOLDER_DESCRIPTION = (
    "Created during a goal archive import to hold key results whose parent "
    "objective (source ID {source_id}) was not in the archive."
)

_STATUS_MAP = {
    "on track": OkrStatus.ON_TRACK,
    "at risk": OkrStatus.AT_RISK,
    "behind": OkrStatus.BEHIND,
    "closed": OkrStatus.COMPLETED,
    "completed": OkrStatus.COMPLETED,
    "not started": OkrStatus.NOT_STARTED,
}

# Checked in order; first family with a keyword in the target type wins
_METRIC_KEYWORDS = (
    (MetricType.DECREASE, ("below", "at most", "at-most", "under", "decrease")),
    (MetricType.MAINTAIN, ("maintain", "keep at", "keep-at")),
    (MetricType.COMPLETE, ("complete", "finish", "done")),
)


class MappingContext:
    """Run-wide inputs every mapper needs."""

    def __init__(self, options: ImportOptions, periods: PeriodParser,
                 users: Optional[Dict[SourceId, SourceUser]] = None):
        self.options = options
        self.periods = periods
        self.users = users or {}

    def owner_email(self, owner: Optional[SourceUser]) -> Optional[str]:
        """E-mail of an owner, looked up in the users list when the record omits it."""
        if owner is None:
            return None
        if owner.email:
            return owner.email
        known = self.users.get(owner.id) if owner.id is not None else None
        return known.email if known else None

    def first_owner_email(self, item: GoalItemBase) -> Optional[str]:
        return self.owner_email(item.owners[0]) if item.owners else None

    def period_of(self, item: GoalItemBase) -> ParsedPeriod:
        return self.periods.parse(item.period_label, item.period_id)


# ============================================================================
# VOCABULARY
# ============================================================================

def map_status(raw: Optional[str]) -> OkrStatus:
    """Translate a source status label; anything unknown is not started."""
    if not raw:
        return OkrStatus.NOT_STARTED
    return _STATUS_MAP.get(" ".join(raw.replace("_", " ").lower().split()), OkrStatus.NOT_STARTED)


def infer_progress_mode(config: Optional[str]) -> ProgressMode:
    """Rollup when progress is configured to come from child items."""
    text = (config or "").lower()
    if "child" in text or "roll" in text:
        return ProgressMode.ROLLUP
    return ProgressMode.MANUAL


def map_metric_type(target_type: Optional[str]) -> MetricType:
    text = (target_type or "").lower()
    for metric_type, keywords in _METRIC_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return metric_type
    return MetricType.INCREASE


def map_goal_type(item: GoalItemBase) -> GoalType:
    return GoalType.ASPIRATIONAL if item.is_aspirational else GoalType.COMMITTED


# ============================================================================
# NUMERIC INFERENCE
# ============================================================================

def infer_unit(explicit: Optional[str], start: float, target: float) -> str:
    if explicit:
        return explicit
    if target == 100 and start == 0:
        return "%"
    return "Number"


def is_absolute_progress(progress: float, target: float) -> bool:
    """
    Whether a metric's recorded progress is already its current value rather
    than a 0-100 percentage. The export does not say which; small absolute
    values against small targets are read as percentages.
    """
    if progress > 100:
        return True
    return target > 100 and progress > 10 and progress >= 0.01 * target


def interpolate(metric_type: MetricType, start: float, target: float, percent: float) -> float:
    """Current value implied by a completion percentage."""
    fraction = percent / 100
    if metric_type == MetricType.INCREASE:
        return start + (target - start) * fraction
    if metric_type == MetricType.DECREASE:
        return start - (start - target) * fraction
    if metric_type == MetricType.MAINTAIN:
        return target
    return fraction


def progress_between(current: float, initial: float, target: float) -> float:
    """Percent of the way from initial to target; floored at 0, may exceed 100."""
    if target == initial:
        return 100.0 if current >= target else 0.0
    return max(0.0, (current - initial) / (target - initial) * 100)


def resolve_metric_values(item: MetricItem) -> Tuple[MetricType, float, float, float, str, float]:
    """
    Work out (metric_type, initial, target, current, unit, progress) for a
    metric item.
    """
    outcome = item.outcome
    if not outcome.is_metric:
        return MetricType.INCREASE, 0.0, 100.0, item.progress, "%", item.progress

    metric_type = map_metric_type(outcome.target_type)
    start = outcome.start if outcome.start is not None else 0.0
    target = outcome.target if outcome.target is not None else 100.0
    unit = infer_unit(outcome.metric_unit, start, target)

    if is_absolute_progress(item.progress, target):
        current = item.progress
        return metric_type, start, target, current, unit, progress_between(current, start, target)
    current = interpolate(metric_type, start, target, item.progress)
    return metric_type, start, target, current, unit, item.progress


# ============================================================================
# ENTITY MAPPERS
# ============================================================================

def objective_level(team_id: Optional[int], parent_id: Optional[int]) -> ObjectiveLevel:
    if team_id is not None:
        return ObjectiveLevel.TEAM
    if parent_id is not None:
        return ObjectiveLevel.DIVISION
    return ObjectiveLevel.ORGANIZATION


def map_objective(item: OutcomeItem, ctx: MappingContext, team_id: Optional[int] = None,
                  parent_id: Optional[int] = None) -> Objective:
    period = ctx.period_of(item)
    user_id = ctx.options.user_id
    return Objective(
        tenant_id=ctx.options.tenant_id,
        title=item.title,
        description=item.description,
        parent_id=parent_id,
        team_id=team_id,
        level=objective_level(team_id, parent_id),
        owner_email=ctx.first_owner_email(item),
        progress=item.progress,
        progress_mode=infer_progress_mode(item.progress_config),
        status=map_status(item.status),
        quarter=period.quarter,
        year=period.year,
        start_date=item.start_date,
        end_date=item.end_date,
        goal_type=map_goal_type(item),
        phased_targets=item.phased_targets.as_json() if item.phased_targets else None,
        last_check_in_at=item.last_check_in_at,
        created_by=user_id,
        updated_by=user_id,
    )


def map_key_result(item: MetricItem, ctx: MappingContext, objective_id: int) -> KeyResult:
    metric_type, initial, target, current, unit, progress = resolve_metric_values(item)
    user_id = ctx.options.user_id
    return KeyResult(
        tenant_id=ctx.options.tenant_id,
        objective_id=objective_id,
        title=item.title,
        description=item.description,
        metric_type=metric_type,
        initial_value=initial,
        target_value=target,
        current_value=current,
        unit=unit,
        progress=progress,
        status=map_status(item.status),
        phased_targets=item.phased_targets.as_json() if item.phased_targets else None,
        last_check_in_at=item.last_check_in_at,
        created_by=user_id,
        updated_by=user_id,
    )


def map_big_rock(item: InitiativeItem, ctx: MappingContext, objective_id: Optional[int] = None,
                 key_result_id: Optional[int] = None, team_id: Optional[int] = None) -> BigRock:
    period = ctx.period_of(item)
    user_id = ctx.options.user_id
    return BigRock(
        tenant_id=ctx.options.tenant_id,
        title=item.title,
        description=item.description,
        objective_id=objective_id,
        key_result_id=key_result_id,
        team_id=team_id,
        owner_email=ctx.first_owner_email(item),
        status=map_status(item.status),
        completion_percentage=item.progress,
        quarter=period.quarter,
        year=period.year,
        start_date=item.start_date,
        due_date=item.end_date,
        created_by=user_id,
        updated_by=user_id,
    )


def map_check_in(check_in: SourceCheckIn, ctx: MappingContext, target: EntityMapping) -> CheckIn:
    """Imported check-ins have no history, so previous values are zero."""
    new_value = check_in.current_value
    if target.target_type == EntityType.KEY_RESULT:
        initial = target.initial_value if target.initial_value is not None else 0.0
        goal = target.target_value if target.target_value is not None else 100.0
        new_progress = progress_between(new_value, initial, goal)
    else:
        new_progress = new_value

    return CheckIn(
        tenant_id=ctx.options.tenant_id,
        entity_type=target.target_type,
        entity_id=target.target_id,
        previous_value=0.0,
        new_value=new_value,
        previous_progress=0.0,
        new_progress=new_progress,
        previous_status=OkrStatus.NOT_STARTED,
        new_status=map_status(check_in.status),
        note=check_in.note,
        source=CHECK_IN_SOURCE,
        user_id=ctx.options.user_id,
        user_email=ctx.owner_email(check_in.owner) or ctx.options.user_email,
        as_of_date=check_in.as_of,
    )


def build_placeholder_objective(missing_id: SourceId, sample: Optional[MetricItem],
                                ctx: MappingContext) -> Objective:
    """
    Stand-in objective for key results whose parent is not in the archive.
    The period is borrowed from one of the orphans so the placeholder lands
    next to them.
    """
    period = ctx.period_of(sample) if sample is not None else ParsedPeriod(None, ctx.periods.today.year)
    user_id = ctx.options.user_id
    return Objective(
        tenant_id=ctx.options.tenant_id,
        title=PLACEHOLDER_TITLE.format(source_id=missing_id),
        description=PLACEHOLDER_DESCRIPTION.format(source_id=missing_id),
        level=ObjectiveLevel.ORGANIZATION,
        progress=0.0,
        progress_mode=ProgressMode.ROLLUP,
        status=OkrStatus.NOT_STARTED,
        quarter=period.quarter,
        year=period.year,
        is_placeholder=True,
        created_by=user_id,
        updated_by=user_id,
    )
