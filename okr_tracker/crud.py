"""
CRUD operations for the OKR store.
Every operation is scoped by tenant id. The module itself is the store the
goal-archive importer writes through (see okr_tracker.importer.engine).
"""
from sqlmodel import select, col
from typing import Optional, List

from okr_tracker.models import (
    Team, Objective, KeyResult, BigRock, CheckIn, ImportHistory, EntityType
)
from okr_tracker.database import get_session_context

# Fields a merge must never overwrite on an existing record
_PROTECTED_FIELDS = {"id", "tenant_id", "created_at", "created_by"}


def _apply_draft(target, draft, always=()):
    """
    Copy the populated fields of a draft onto a persisted record.
    Fields named in ``always`` are copied even when the draft leaves them None.
    """
    values = draft.model_dump(exclude=_PROTECTED_FIELDS, exclude_none=True)
    for key in always:
        values[key] = getattr(draft, key)
    for key, value in values.items():
        setattr(target, key, value)


# ============================================================================
# TEAM OPERATIONS
# ============================================================================

def create_team(team: Team) -> Team:
    """Persist a new team."""
    with get_session_context() as session:
        session.add(team)
        session.commit()
        session.refresh(team)
        return team


def get_team_by_name(tenant_id: str, name: str) -> Optional[Team]:
    """Get a tenant's team by exact name."""
    with get_session_context() as session:
        statement = (
            select(Team)
            .where(Team.tenant_id == tenant_id)
            .where(Team.name == name)
            .order_by(Team.id)
        )
        return session.exec(statement).first()


# ============================================================================
# OBJECTIVE OPERATIONS
# ============================================================================

def create_objective(objective: Objective) -> Objective:
    """Persist a new objective."""
    with get_session_context() as session:
        session.add(objective)
        session.commit()
        session.refresh(objective)
        return objective


def update_objective(tenant_id: str, objective_id: int, draft: Objective) -> Optional[Objective]:
    """Merge a draft into an existing objective of the tenant."""
    with get_session_context() as session:
        objective = session.get(Objective, objective_id)
        if not objective or objective.tenant_id != tenant_id:
            return None
        _apply_draft(objective, draft, always=("parent_id",))
        session.add(objective)
        session.commit()
        session.refresh(objective)
        return objective


def get_objective(tenant_id: str, objective_id: int) -> Optional[Objective]:
    """Get one of a tenant's objectives by id."""
    with get_session_context() as session:
        objective = session.get(Objective, objective_id)
        if objective and objective.tenant_id == tenant_id:
            return objective
        return None


def get_objectives_by_tenant(tenant_id: str, quarter: Optional[int] = None,
                             year: Optional[int] = None) -> List[Objective]:
    """Get a tenant's objectives, optionally narrowed to a quarter and/or year."""
    with get_session_context() as session:
        statement = select(Objective).where(Objective.tenant_id == tenant_id)
        if quarter is not None:
            statement = statement.where(Objective.quarter == quarter)
        if year is not None:
            statement = statement.where(Objective.year == year)
        return list(session.exec(statement.order_by(Objective.id)).all())


# ============================================================================
# KEY RESULT OPERATIONS
# ============================================================================

def create_key_result(key_result: KeyResult) -> KeyResult:
    """Persist a new key result."""
    with get_session_context() as session:
        session.add(key_result)
        session.commit()
        session.refresh(key_result)
        return key_result


def update_key_result(tenant_id: str, key_result_id: int, draft: KeyResult) -> Optional[KeyResult]:
    """Merge a draft into an existing key result of the tenant."""
    with get_session_context() as session:
        key_result = session.get(KeyResult, key_result_id)
        if not key_result or key_result.tenant_id != tenant_id:
            return None
        _apply_draft(key_result, draft)
        session.add(key_result)
        session.commit()
        session.refresh(key_result)
        return key_result


def get_key_results_by_objective(tenant_id: str, objective_id: int) -> List[KeyResult]:
    """Get all key results of one objective."""
    with get_session_context() as session:
        statement = (
            select(KeyResult)
            .where(KeyResult.tenant_id == tenant_id)
            .where(KeyResult.objective_id == objective_id)
            .order_by(KeyResult.id)
        )
        return list(session.exec(statement).all())


# ============================================================================
# BIG ROCK OPERATIONS
# ============================================================================

def create_big_rock(big_rock: BigRock) -> BigRock:
    """Persist a new big rock."""
    with get_session_context() as session:
        session.add(big_rock)
        session.commit()
        session.refresh(big_rock)
        return big_rock


def update_big_rock(tenant_id: str, big_rock_id: int, draft: BigRock) -> Optional[BigRock]:
    """Merge a draft into an existing big rock of the tenant."""
    with get_session_context() as session:
        big_rock = session.get(BigRock, big_rock_id)
        if not big_rock or big_rock.tenant_id != tenant_id:
            return None
        _apply_draft(big_rock, draft)
        session.add(big_rock)
        session.commit()
        session.refresh(big_rock)
        return big_rock


def get_big_rocks_by_tenant(tenant_id: str, quarter: Optional[int] = None,
                            year: Optional[int] = None) -> List[BigRock]:
    """Get a tenant's big rocks, optionally narrowed to a quarter and/or year."""
    with get_session_context() as session:
        statement = select(BigRock).where(BigRock.tenant_id == tenant_id)
        if quarter is not None:
            statement = statement.where(BigRock.quarter == quarter)
        if year is not None:
            statement = statement.where(BigRock.year == year)
        return list(session.exec(statement.order_by(BigRock.id)).all())


# ============================================================================
# CHECK-IN OPERATIONS
# ============================================================================

def create_check_in(check_in: CheckIn) -> CheckIn:
    """Persist a new check-in."""
    with get_session_context() as session:
        session.add(check_in)
        session.commit()
        session.refresh(check_in)
        return check_in


def get_check_ins_by_entity(tenant_id: str, entity_type: EntityType, entity_id: int) -> List[CheckIn]:
    """Get all check-ins recorded against one entity, oldest first."""
    with get_session_context() as session:
        statement = (
            select(CheckIn)
            .where(CheckIn.tenant_id == tenant_id)
            .where(CheckIn.entity_type == entity_type)
            .where(CheckIn.entity_id == entity_id)
            .order_by(CheckIn.id)
        )
        return list(session.exec(statement).all())


# ============================================================================
# IMPORT HISTORY
# ============================================================================

def create_import_history(history: ImportHistory) -> ImportHistory:
    """Record the outcome of an archive import."""
    with get_session_context() as session:
        session.add(history)
        session.commit()
        session.refresh(history)
        return history


def get_import_history(tenant_id: str, limit: int = 50) -> List[ImportHistory]:
    """Get a tenant's past imports, newest first."""
    with get_session_context() as session:
        statement = (
            select(ImportHistory)
            .where(ImportHistory.tenant_id == tenant_id)
            .order_by(col(ImportHistory.imported_at).desc(), col(ImportHistory.id).desc())
            .limit(limit)
        )
        return list(session.exec(statement).all())
