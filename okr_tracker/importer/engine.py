"""
Reconciliation engine for goal archive imports.

Phases run in a fixed order, each reading the entity map filled by the ones
before it:

    teams -> root objectives -> child objectives -> key results
          -> big rocks -> check-ins

A record that fails to map or save is reported and skipped; the run goes on.
Only an unreadable archive fails the whole import.
"""
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from okr_tracker import crud
from okr_tracker.app_logger import get_logger
from okr_tracker.models import DuplicateStrategy, EntityType, ImportStatus
from okr_tracker.importer.archive import ArchiveContents, ArchiveError, read_archive
from okr_tracker.importer.hierarchy import (
    find_missing_parents, order_by_depth, select_child_objectives, select_root_objectives,
)
from okr_tracker.importer.mappers import (
    MappingContext, build_placeholder_objective, map_big_rock, map_check_in,
    map_key_result, map_objective,
)
from okr_tracker.importer.options import ImportOptions
from okr_tracker.importer.periods import PeriodParser
from okr_tracker.importer.records import (
    GoalItem, GoalKind, InitiativeItem, MetricItem, SourceCheckIn, SourcePeriod,
    SourceTeam, SourceUser, goal_kind, parse_goal_item,
)
from okr_tracker.importer.result import ImportResult
from okr_tracker.importer.teams import TeamResolver
from okr_tracker.importer.values import RecordError, SourceId, as_utc, source_id, text_value

logger = get_logger(__name__)

_NO_DATE = datetime.min.replace(tzinfo=timezone.utc)

# Skipped-item type and report label per goal item kind
_KIND_TYPES = {
    GoalKind.OUTCOME: ("objective", "objective"),
    GoalKind.METRIC: ("key_result", "key result"),
    GoalKind.INITIATIVE: ("big_rock", "big rock"),
}
_RECORD_ERRORS = (RecordError, ValidationError, ValueError)


class GoalArchiveImporter:
    """
    One import run for one tenant. Not reusable: create a new importer per
    archive.
    """

    def __init__(self, options: ImportOptions, store=crud, today: Optional[date] = None):
        self.options = options
        self.store = store
        self.today = today
        self.result = ImportResult()
        self.entity_map = self.result.entity_map
        self.ctx: Optional[MappingContext] = None
        self.teams: Optional[TeamResolver] = None

    @property
    def strategy(self) -> DuplicateStrategy:
        return self.options.duplicate_strategy

    def run(self, archive_bytes: bytes) -> ImportResult:
        try:
            contents = read_archive(archive_bytes)
        except ArchiveError as exc:
            logger.error("Import failed for tenant %s: %s", self.options.tenant_id, exc)
            self.result.fail(str(exc))
            return self.result
        return self.run_contents(contents)

    def run_contents(self, contents: ArchiveContents) -> ImportResult:
        """Import already-extracted archive contents."""
        result = self.result
        for message in contents.errors:
            result.error(message)
        if not contents.is_readable:
            result.status = ImportStatus.FAILED
            logger.error("Goal items could not be read; nothing imported")
            return result

        users = self._load_users(contents.users)
        periods = self._load_periods(contents.periods)
        source_teams = self._load_teams(contents.teams)
        items = self._load_goal_items(contents.goal_items)

        parser = PeriodParser(
            periods,
            warnings=result.warnings,
            fiscal_year_start_month=self.options.fiscal_year_start_month,
            today=self.today,
        )
        self.ctx = MappingContext(self.options, parser, users)

        logger.info("Phase 1: teams")
        self.teams = TeamResolver(
            self.store, self.options.tenant_id, self.options.user_id, result,
            create_missing=self.options.import_teams, users=users,
        )
        self.teams.resolve(source_teams, items)

        logger.info("Phase 2: root objectives")
        for item in select_root_objectives(items):
            self._import_objective(item, parent_id=None)

        logger.info("Phase 3: child objectives")
        self._import_child_objectives(items)

        logger.info("Phase 4: key results")
        self._import_key_results([i for i in items if isinstance(i, MetricItem)])

        logger.info("Phase 5: big rocks")
        initiatives = [i for i in items if isinstance(i, InitiativeItem)]
        for item in sorted(initiatives, key=lambda i: (i.title, str(i.id))):
            self._import_big_rock(item)

        if self.options.import_check_ins:
            logger.info("Phase 6: check-ins")
            self._import_check_ins(contents.check_ins)
        else:
            logger.info("Phase 6: check-ins disabled")

        result.finalize()
        logger.info(
            "Import for tenant %s finished: %s (%d warnings, %d errors)",
            self.options.tenant_id, result.status.value, len(result.warnings), len(result.errors),
        )
        return result

    # ========================================================================
    # REFERENCE DATA
    # ========================================================================

    def _load_users(self, raw_users: List[Any]) -> Dict[SourceId, SourceUser]:
        users = {}
        for raw in raw_users:
            user = SourceUser.from_raw(raw)
            if user is None or user.id is None:
                self.result.warn(f"Skipped malformed user record: {raw!r}")
                continue
            users.setdefault(user.id, user)
        return users

    def _load_periods(self, raw_periods: List[Any]) -> List[SourcePeriod]:
        periods = []
        for raw in raw_periods:
            try:
                if not isinstance(raw, Mapping):
                    raise RecordError("time period is not an object")
                periods.append(SourcePeriod.from_raw(raw))
            except _RECORD_ERRORS as exc:
                self.result.warn(f"Skipped malformed time period: {exc}")
        return periods

    def _load_teams(self, raw_teams: List[Any]) -> List[SourceTeam]:
        teams = []
        for raw in raw_teams:
            try:
                if not isinstance(raw, Mapping):
                    raise RecordError("team is not an object")
                teams.append(SourceTeam.from_raw(raw))
            except _RECORD_ERRORS as exc:
                name = text_value(raw.get("Team Name")) if isinstance(raw, Mapping) else None
                team_id = source_id(raw.get("ID")) if isinstance(raw, Mapping) else None
                self._record_failed("team", "team", name, team_id, exc)
        return teams

    def _load_goal_items(self, raw_items: List[Any]) -> List[GoalItem]:
        items: List[GoalItem] = []
        seen = set()
        for raw in raw_items:
            try:
                item = parse_goal_item(raw)
            except _RECORD_ERRORS as exc:
                kind = goal_kind(raw)
                item_type, label = _KIND_TYPES.get(kind, ("goal_item", "goal item"))
                fields = raw if isinstance(raw, Mapping) else {}
                self._record_failed(
                    item_type, label, text_value(fields.get("Title")), source_id(fields.get("ID")), exc
                )
                continue
            if item.id in seen:
                item_type, label = _KIND_TYPES[item.kind]
                self.result.warn(f'Duplicate source ID {item.id} for {label} "{item.title}"; keeping the first')
                self.result.skip(item_type, item.title, item.id)
                continue
            seen.add(item.id)
            items.append(item)
        logger.info("Parsed %d of %d goal items", len(items), len(raw_items))
        return items

    # ========================================================================
    # OBJECTIVES
    # ========================================================================

    def _import_child_objectives(self, items: List[GoalItem]):
        children = select_child_objectives(items)
        for item in order_by_depth(children, self.entity_map.is_objective):
            parent_id = self.entity_map.objective_id_for(item.parent_id)
            if parent_id is None:
                self.result.warn(
                    f'Parent {item.parent_id} of objective "{item.title}" could not be resolved; '
                    f"imported as a root objective"
                )
            self._import_objective(item, parent_id=parent_id)

    def _import_objective(self, item, parent_id: Optional[int]):
        def save():
            draft = map_objective(item, self.ctx, team_id=self.teams.team_id_for(item), parent_id=parent_id)
            saved = self._reconcile(
                "objective", "objective", item, draft,
                find=self._find_objective,
                create=self.store.create_objective,
                update=self._merge_objective,
            )
            self.entity_map.register(item.id, EntityType.OBJECTIVE, saved.id)
        self._guarded("objective", "objective", item.title, item.id, save)

    def _find_objective(self, draft):
        for existing in self.store.get_objectives_by_tenant(self.options.tenant_id, year=draft.year):
            if existing.title == draft.title and existing.quarter == draft.quarter:
                return existing
        return None

    def _merge_objective(self, tenant_id: str, objective_id: int, draft):
        if draft.parent_id is not None and self._is_ancestor(objective_id, draft.parent_id):
            current = self.store.get_objective(tenant_id, objective_id)
            self.result.warn(
                f'Objective "{draft.title}" (ID {objective_id}) cannot be moved under objective '
                f"{draft.parent_id}, which descends from it; kept its current parent"
            )
            if current is not None:
                draft.parent_id, draft.level = current.parent_id, current.level
        return self.store.update_objective(tenant_id, objective_id, draft)

    def _is_ancestor(self, ancestor_id: int, objective_id: Optional[int]) -> bool:
        """Whether ancestor_id sits on the stored parent chain of objective_id (inclusive)."""
        seen = set()
        while objective_id is not None and objective_id not in seen:
            if objective_id == ancestor_id:
                return True
            seen.add(objective_id)
            current = self.store.get_objective(self.options.tenant_id, objective_id)
            objective_id = current.parent_id if current else None
        return False

    # ========================================================================
    # KEY RESULTS
    # ========================================================================

    def _import_key_results(self, metrics: List[MetricItem]):
        linked = []
        for item in metrics:
            if item.parent_id is None:
                message = f'Key result "{item.title}" (source ID {item.id}) has no parent objective; skipped'
                self.result.warn(message)
                self.result.skip("key_result", item.title, item.id)
                continue
            linked.append(item)

        def is_resolved(parent: SourceId) -> bool:
            return self.entity_map.objective_id_for(parent) is not None

        batch_ids = [item.id for item in linked]
        for missing_id, orphans in find_missing_parents(linked, is_resolved, batch_ids).items():
            self._import_placeholder(missing_id, orphans)

        for item in order_by_depth(linked, is_resolved):
            objective_id = self.entity_map.objective_id_for(item.parent_id)
            if objective_id is None:
                message = (
                    f'Parent {item.parent_id} of key result "{item.title}" (source ID {item.id}) '
                    f"could not be resolved; skipped"
                )
                self.result.warn(message)
                self.result.skip("key_result", item.title, item.id)
                continue
            self._import_key_result(item, objective_id)

    def _import_key_result(self, item: MetricItem, objective_id: int):
        def save():
            draft = map_key_result(item, self.ctx, objective_id)
            saved = self._reconcile(
                "key_result", "key result", item, draft,
                find=self._find_key_result,
                create=self.store.create_key_result,
                update=self.store.update_key_result,
            )
            self.entity_map.register(
                item.id, EntityType.KEY_RESULT, saved.id,
                target_value=saved.target_value,
                initial_value=saved.initial_value,
                objective_id=saved.objective_id,
            )
        self._guarded("key_result", "key result", item.title, item.id, save)

    def _find_key_result(self, draft):
        for existing in self.store.get_key_results_by_objective(self.options.tenant_id, draft.objective_id):
            if existing.title == draft.title:
                return existing
        return None

    def _import_placeholder(self, missing_id: SourceId, orphans: List[MetricItem]):
        try:
            draft = build_placeholder_objective(missing_id, orphans[0], self.ctx)
            existing = None
            if self.strategy != DuplicateStrategy.CREATE:
                existing = self._find_objective(draft)
            if existing is not None:
                placeholder_id = existing.id
                self.result.warn(
                    f"Reused placeholder objective {placeholder_id} for missing parent ID {missing_id} "
                    f"({len(orphans)} orphaned key results)"
                )
            else:
                placeholder_id = self.store.create_objective(draft).id
                self.result.summary.objectives_created += 1
                self.result.warn(
                    f"Created placeholder objective for missing parent ID {missing_id} "
                    f"({len(orphans)} orphaned key results)"
                )
            self.entity_map.register_placeholder(missing_id, placeholder_id)
        except Exception as exc:
            message = f"Failed to create placeholder objective for missing parent ID {missing_id}: {exc}"
            logger.exception(message)
            self.result.error(message)

    # ========================================================================
    # BIG ROCKS
    # ========================================================================

    def _import_big_rock(self, item: InitiativeItem):
        def save():
            objective_id = key_result_id = None
            if item.parent_id is not None:
                parent = self.entity_map.get(item.parent_id)
                if parent is not None and parent.target_type == EntityType.KEY_RESULT:
                    key_result_id = parent.target_id
                    objective_id = parent.objective_id
                else:
                    objective_id = self.entity_map.objective_id_for(item.parent_id)
                if objective_id is None:
                    self.result.warn(
                        f'Parent {item.parent_id} of big rock "{item.title}" could not be resolved; '
                        f"imported without a parent"
                    )
            draft = map_big_rock(
                item, self.ctx,
                objective_id=objective_id,
                key_result_id=key_result_id,
                team_id=self.teams.team_id_for(item),
            )
            saved = self._reconcile(
                "big_rock", "big rock", item, draft,
                find=self._find_big_rock,
                create=self.store.create_big_rock,
                update=self.store.update_big_rock,
            )
            self.entity_map.register(item.id, EntityType.BIG_ROCK, saved.id, objective_id=saved.objective_id)
        self._guarded("big_rock", "big rock", item.title, item.id, save)

    def _find_big_rock(self, draft):
        for existing in self.store.get_big_rocks_by_tenant(self.options.tenant_id, year=draft.year):
            if existing.title == draft.title and existing.quarter == draft.quarter:
                return existing
        return None

    # ========================================================================
    # CHECK-INS
    # ========================================================================

    def _import_check_ins(self, raw_check_ins: List[Any]):
        check_ins: List[SourceCheckIn] = []
        for raw in raw_check_ins:
            try:
                check_ins.append(SourceCheckIn.from_raw(raw))
            except _RECORD_ERRORS as exc:
                fields = raw if isinstance(raw, Mapping) else {}
                self._record_failed(
                    "check_in", "check-in", text_value(fields.get("Metric Name")),
                    source_id(fields.get("ID")), exc,
                )
        check_ins.sort(key=lambda c: (c.as_of or _NO_DATE, str(c.id)))

        for check_in in check_ins:
            title = check_in.metric_name or f"check-in {check_in.id}"
            target = self.entity_map.get(check_in.goal_item_id)
            if target is None:
                self.result.warn(
                    f"Check-in {check_in.id} references goal item {check_in.goal_item_id}, "
                    f"which was not imported; skipped"
                )
                self.result.skip("check_in", title, check_in.id)
                continue
            self._guarded("check_in", "check-in", title, check_in.id,
                          lambda: self._save_check_in(check_in, target, title))

    def _save_check_in(self, check_in: SourceCheckIn, target, title: str):
        draft = map_check_in(check_in, self.ctx, target)
        if self.strategy != DuplicateStrategy.CREATE:
            existing = self.store.get_check_ins_by_entity(
                self.options.tenant_id, draft.entity_type, draft.entity_id
            )
            as_of = as_utc(draft.as_of_date)
            if any(as_utc(c.as_of_date) == as_of and c.new_value == draft.new_value for c in existing):
                self.result.warn(f'Skipped duplicate check-in "{title}" (source ID {check_in.id})')
                self.result.skip("check_in", title, check_in.id)
                return
        self.store.create_check_in(draft)
        self.result.summary.check_ins_created += 1

    # ========================================================================
    # SHARED
    # ========================================================================

    def _reconcile(self, item_type: str, label: str, item, draft,
                   find: Callable, create: Callable, update: Callable):
        """Apply the duplicate strategy to one draft and return the stored record."""
        summary = self.result.summary
        existing = None if self.strategy == DuplicateStrategy.CREATE else find(draft)
        if existing is None:
            saved = create(draft)
            setattr(summary, f"{item_type}s_created", getattr(summary, f"{item_type}s_created") + 1)
            return saved

        if self.strategy == DuplicateStrategy.SKIP:
            self.result.warn(
                f'Skipped duplicate {label} "{item.title}" (source ID {item.id}); '
                f"already exists as ID {existing.id}"
            )
            self.result.skip(item_type, item.title, item.id)
            return existing

        merged = update(self.options.tenant_id, existing.id, draft)
        if merged is None:
            raise RecordError(f"{label} {existing.id} disappeared before it could be merged")
        setattr(summary, f"{item_type}s_updated", getattr(summary, f"{item_type}s_updated") + 1)
        return merged

    def _guarded(self, item_type: str, label: str, title: Optional[str], item_id, action: Callable):
        try:
            action()
        except _RECORD_ERRORS as exc:
            self._record_failed(item_type, label, title, item_id, exc)
        except Exception as exc:
            logger.exception("Store error while importing %s %s", label, item_id)
            self._record_failed(item_type, label, title, item_id, exc, is_error=True)

    def _record_failed(self, item_type: str, label: str, title: Optional[str], item_id,
                       exc: Exception, is_error: bool = False):
        message = f'Failed to import {label} "{title or ""}" (source ID {item_id}): {exc}'
        if is_error:
            self.result.error(message)
        else:
            self.result.warn(message)
        self.result.skip(item_type, title, item_id)
        logger.warning(message)


def import_archive(archive_bytes: bytes, options: ImportOptions, store=crud,
                   today: Optional[date] = None) -> ImportResult:
    """Import one goal archive for one tenant and return the report."""
    return GoalArchiveImporter(options, store=store, today=today).run(archive_bytes)
