"""
Team resolution: maps source team ids to store teams, creating missing ones.
"""
from typing import Dict, List, Optional

from pydantic import ValidationError

from okr_tracker.app_logger import get_logger
from okr_tracker.models import Team
from okr_tracker.importer.records import GoalItemBase, SourceTeam
from okr_tracker.importer.result import ImportResult
from okr_tracker.importer.values import RecordError, SourceId

logger = get_logger(__name__)


def parent_first(teams: List[SourceTeam]) -> List[SourceTeam]:
    """
    Order teams so a team named as "Parent Team" comes before its children.
    Teams caught in a parent cycle keep their input order at the end.
    """
    names = {team.name for team in teams}
    placed = set()
    ordered: List[SourceTeam] = []
    pending = list(teams)
    while pending:
        ready = [
            t for t in pending
            if not t.parent_team_name or t.parent_team_name not in names
            or t.parent_team_name in placed or t.parent_team_name == t.name
        ]
        if not ready:
            ordered.extend(pending)
            break
        for team in ready:
            ordered.append(team)
            placed.add(team.name)
        pending = [t for t in pending if t.name not in placed]
    return ordered


class TeamResolver:
    """
    Resolves teams referenced explicitly (the teams list) or implicitly
    (team refs on goal items). Existing teams are matched by name; new ones
    are created only when the import allows it.
    """

    def __init__(self, store, tenant_id: str, user_id: str, result: ImportResult,
                 create_missing: bool = True, users: Optional[dict] = None):
        self.store = store
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.result = result
        self.create_missing = create_missing
        self.users = users or {}
        self.team_ids: Dict[SourceId, int] = {}
        self._by_name: Dict[str, int] = {}

    def resolve(self, teams: List[SourceTeam], items: List[GoalItemBase]) -> Dict[SourceId, int]:
        for team in parent_first(teams):
            self._resolve_explicit(team)
        for item in items:
            for ref in item.team_refs:
                if ref.id not in self.team_ids:
                    self._resolve_reference(ref.id, ref.name)
        logger.info("Resolved %d teams", len(self.team_ids))
        return self.team_ids

    def team_id_for(self, item: GoalItemBase) -> Optional[int]:
        """Store id of the item's first team that could be resolved."""
        for ref in item.team_refs:
            team_id = self.team_ids.get(ref.id)
            if team_id is not None:
                return team_id
        return None

    def _lookup(self, name: str) -> Optional[int]:
        if name in self._by_name:
            return self._by_name[name]
        existing = self.store.get_team_by_name(self.tenant_id, name)
        if existing is not None:
            self._by_name[name] = existing.id
            return existing.id
        return None

    def _leader_email(self, team: SourceTeam) -> Optional[str]:
        for owner in team.owners:
            if owner.email:
                return owner.email
            known = self.users.get(owner.id)
            if known is not None and known.email:
                return known.email
        return None

    def _create(self, name: str, description: Optional[str] = None, leader_email: Optional[str] = None,
                parent_team_id: Optional[int] = None) -> int:
        created = self.store.create_team(Team(
            tenant_id=self.tenant_id,
            name=name,
            description=description,
            leader_email=leader_email,
            parent_team_id=parent_team_id,
            created_by=self.user_id,
            updated_by=self.user_id,
        ))
        self._by_name[name] = created.id
        self.result.summary.teams_created += 1
        logger.debug("Created team %s (%s)", name, created.id)
        return created.id

    def _resolve_explicit(self, team: SourceTeam):
        try:
            team_id = self._lookup(team.name)
            if team_id is None and self.create_missing:
                parent_id = None
                if team.parent_team_name and team.parent_team_name != team.name:
                    parent_id = self._lookup(team.parent_team_name)
                team_id = self._create(team.name, team.description, self._leader_email(team), parent_id)
            if team_id is not None:
                self.team_ids[team.id] = team_id
        except (RecordError, ValidationError, ValueError) as exc:
            self._failed(team.name, team.id, exc)
        except Exception as exc:
            logger.exception("Store error while importing team %s", team.name)
            self._failed(team.name, team.id, exc)

    def _resolve_reference(self, source_id: SourceId, name: str):
        try:
            team_id = self._lookup(name)
            if team_id is None and self.create_missing:
                team_id = self._create(name)
            if team_id is not None:
                self.team_ids[source_id] = team_id
        except Exception as exc:
            logger.exception("Store error while importing team %s", name)
            self._failed(name, source_id, exc)

    def _failed(self, name: str, source_id: SourceId, exc: Exception):
        message = f'Failed to import team "{name}" (source ID {source_id}): {exc}'
        self.result.warn(message)
        self.result.skip("team", name, source_id)
        logger.warning(message)
