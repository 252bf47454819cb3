"""
SQLModel classes for the tenant-scoped OKR store.
Hierarchy: Objective (self-nesting) -> KeyResult, with BigRock linked to either,
Team for ownership, CheckIn for progress history and ImportHistory for archive imports.
"""
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, event, Index
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ObjectiveLevel(str, Enum):
    """Where an objective sits in the organisation."""
    ORGANIZATION = "organization"
    DIVISION = "division"
    TEAM = "team"
    INDIVIDUAL = "individual"


class ProgressMode(str, Enum):
    ROLLUP = "rollup"    # Progress aggregated from children
    MANUAL = "manual"


class OkrStatus(str, Enum):
    """Shared status vocabulary for objectives, key results and big rocks."""
    NOT_STARTED = "not_started"
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BEHIND = "behind"
    COMPLETED = "completed"


class GoalType(str, Enum):
    COMMITTED = "committed"
    ASPIRATIONAL = "aspirational"


class MetricType(str, Enum):
    """Direction a key result metric is expected to move."""
    INCREASE = "increase"
    DECREASE = "decrease"
    MAINTAIN = "maintain"
    COMPLETE = "complete"


class EntityType(str, Enum):
    """Entities a check-in can point at."""
    OBJECTIVE = "objective"
    KEY_RESULT = "key_result"
    BIG_ROCK = "big_rock"


class ImportStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class DuplicateStrategy(str, Enum):
    """What to do when an incoming record matches an existing one."""
    SKIP = "skip"      # Keep the existing record untouched
    MERGE = "merge"    # Update the existing record
    CREATE = "create"  # Create another record anyway


# ============================================================================
# BASE MODELS (shared fields)
# ============================================================================

class NodeBase(SQLModel):
    """Base class for tenant-scoped OKR nodes."""
    tenant_id: str = Field(index=True)
    title: str = Field(index=True)
    description: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


# ============================================================================
# TABLE MODELS
# ============================================================================

class Team(SQLModel, table=True):
    """Team that can own objectives and big rocks."""
    __tablename__ = "team"
    __table_args__ = (
        Index("ix_team_tenant_name", "tenant_id", "name"),
        {"extend_existing": True}
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    name: str
    description: Optional[str] = None
    parent_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    leader_email: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Objective(NodeBase, table=True):
    """Objective, optionally nested under a parent objective."""
    __tablename__ = "objective"
    __table_args__ = (
        Index("ix_objective_tenant_period", "tenant_id", "year", "quarter"),
        {"extend_existing": True}
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: Optional[int] = Field(default=None, foreign_key="objective.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id", index=True)
    level: ObjectiveLevel = Field(default=ObjectiveLevel.ORGANIZATION)
    owner_email: Optional[str] = None

    progress: float = Field(default=0.0)
    progress_mode: ProgressMode = Field(default=ProgressMode.ROLLUP)
    status: OkrStatus = Field(default=OkrStatus.NOT_STARTED)

    quarter: Optional[int] = Field(default=None, ge=1, le=4)
    year: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    goal_type: GoalType = Field(default=GoalType.COMMITTED)
    phased_targets: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    # Synthesized to host key results whose parent was missing from an import
    is_placeholder: bool = Field(default=False)
    last_check_in_at: Optional[datetime] = None

    # Relationships
    key_results: List["KeyResult"] = Relationship(
        back_populates="objective",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )


class KeyResult(NodeBase, table=True):
    """Measurable key result for an objective."""
    __tablename__ = "key_result"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    objective_id: int = Field(foreign_key="objective.id", index=True)

    # KR-specific fields
    metric_type: MetricType = Field(default=MetricType.INCREASE)
    initial_value: float = Field(default=0.0)
    target_value: float = Field(default=100.0)
    current_value: float = Field(default=0.0)
    unit: Optional[str] = None  # e.g., "%", "Number", "USD"

    progress: float = Field(default=0.0)
    weight: int = Field(default=25)
    status: OkrStatus = Field(default=OkrStatus.NOT_STARTED)

    phased_targets: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    last_check_in_at: Optional[datetime] = None

    # Relationships
    objective: Optional[Objective] = Relationship(back_populates="key_results")


class BigRock(NodeBase, table=True):
    """Initiative or project, linked to an objective or key result when known."""
    __tablename__ = "big_rock"
    __table_args__ = (
        Index("ix_big_rock_tenant_period", "tenant_id", "year", "quarter"),
        {"extend_existing": True}
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    objective_id: Optional[int] = Field(default=None, foreign_key="objective.id", index=True)
    key_result_id: Optional[int] = Field(default=None, foreign_key="key_result.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    owner_email: Optional[str] = None

    status: OkrStatus = Field(default=OkrStatus.NOT_STARTED)
    completion_percentage: float = Field(default=0.0)  # Fractional values are kept as-is

    quarter: Optional[int] = Field(default=None, ge=1, le=4)
    year: Optional[int] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class CheckIn(SQLModel, table=True):
    """Progress update recorded against an objective, key result or big rock."""
    __tablename__ = "check_in"
    __table_args__ = (
        Index("ix_check_in_entity", "tenant_id", "entity_type", "entity_id"),
        {"extend_existing": True}
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    entity_type: EntityType
    entity_id: int

    previous_value: float = Field(default=0.0)
    new_value: float = Field(default=0.0)
    previous_progress: float = Field(default=0.0)
    new_progress: float = Field(default=0.0)  # May exceed 100 on over-achievement
    previous_status: OkrStatus = Field(default=OkrStatus.NOT_STARTED)
    new_status: OkrStatus = Field(default=OkrStatus.NOT_STARTED)

    note: Optional[str] = None
    source: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    as_of_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class ImportHistory(SQLModel, table=True):
    """One row per archive import, with the report returned to the user."""
    __tablename__ = "import_history"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    import_type: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None

    status: ImportStatus
    objectives_created: int = Field(default=0)
    key_results_created: int = Field(default=0)
    big_rocks_created: int = Field(default=0)
    check_ins_created: int = Field(default=0)
    teams_created: int = Field(default=0)

    warnings: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    errors: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    skipped_items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    duplicate_strategy: Optional[str] = None
    fiscal_year_start_month: Optional[int] = None
    imported_by: str
    imported_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# EVENT LISTENERS
# ============================================================================

@event.listens_for(NodeBase, 'before_update', propagate=True)
def timestamp_before_update(mapper, connection, target):
    """Automatically update updated_at timestamp before update."""
    target.updated_at = utc_now()
