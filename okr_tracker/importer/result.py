"""
Run-scoped report and source-id correspondence table for an archive import.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterator, List, Optional, Tuple

from okr_tracker.models import EntityType, ImportStatus
from okr_tracker.importer.values import SourceId


@dataclass
class EntityMapping:
    """Where one source record ended up."""
    target_type: EntityType
    target_id: int
    # Key results keep their bounds so check-ins can be turned into progress
    target_value: Optional[float] = None
    initial_value: Optional[float] = None
    objective_id: Optional[int] = None


class EntityMap:
    """
    Source id -> target record, filled phase by phase during one run.

    A source id is present only if its record was imported (created, merged
    or matched). Placeholder objectives are kept apart: their key is a parent
    id that the archive referenced but never contained.
    """

    def __init__(self):
        self._entries: Dict[SourceId, EntityMapping] = {}
        self._placeholders: Dict[SourceId, int] = {}

    def register(self, source_id: SourceId, target_type: EntityType, target_id: int,
                 **bounds) -> EntityMapping:
        mapping = EntityMapping(target_type=target_type, target_id=target_id, **bounds)
        self._entries[source_id] = mapping
        return mapping

    def register_placeholder(self, missing_id: SourceId, objective_id: int):
        self._placeholders[missing_id] = objective_id

    def get(self, source_id: Optional[SourceId]) -> Optional[EntityMapping]:
        if source_id is None:
            return None
        return self._entries.get(source_id)

    def placeholder_for(self, missing_id: Optional[SourceId]) -> Optional[int]:
        if missing_id is None:
            return None
        return self._placeholders.get(missing_id)

    def objective_id_for(self, source_id: Optional[SourceId]) -> Optional[int]:
        """Objective a child of ``source_id`` should hang under, if known."""
        mapping = self.get(source_id)
        if mapping is not None:
            if mapping.target_type == EntityType.OBJECTIVE:
                return mapping.target_id
            if mapping.target_type == EntityType.KEY_RESULT:
                return mapping.objective_id
            return None
        return self.placeholder_for(source_id)

    def is_objective(self, source_id: Optional[SourceId]) -> bool:
        mapping = self.get(source_id)
        return mapping is not None and mapping.target_type == EntityType.OBJECTIVE

    def target_ids(self) -> set:
        """Every target id this run registered, placeholders included."""
        ids = {(m.target_type, m.target_id) for m in self._entries.values()}
        ids.update((EntityType.OBJECTIVE, oid) for oid in self._placeholders.values())
        return ids

    def items(self) -> Iterator[Tuple[SourceId, EntityMapping]]:
        return iter(self._entries.items())

    @property
    def placeholders(self) -> Dict[SourceId, int]:
        return dict(self._placeholders)

    def __contains__(self, source_id) -> bool:
        return source_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> Dict[str, Any]:
        entries = {}
        for source_id, mapping in self._entries.items():
            entry = {k: v for k, v in asdict(mapping).items() if v is not None}
            entry["target_type"] = mapping.target_type.value
            entries[str(source_id)] = entry
        return {
            "entries": entries,
            "placeholders": {str(k): v for k, v in self._placeholders.items()},
        }


@dataclass
class ImportSummary:
    objectives_created: int = 0
    key_results_created: int = 0
    big_rocks_created: int = 0
    check_ins_created: int = 0
    teams_created: int = 0
    objectives_updated: int = 0
    key_results_updated: int = 0
    big_rocks_updated: int = 0


@dataclass
class SkippedItem:
    type: str
    title: str
    source_id: Optional[SourceId] = None


@dataclass
class ImportResult:
    status: ImportStatus = ImportStatus.SUCCESS
    summary: ImportSummary = field(default_factory=ImportSummary)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped_items: List[SkippedItem] = field(default_factory=list)
    entity_map: EntityMap = field(default_factory=EntityMap)

    def warn(self, message: str):
        self.warnings.append(message)

    def error(self, message: str):
        self.errors.append(message)

    def skip(self, item_type: str, title: Optional[str], source_id: Optional[SourceId] = None):
        self.skipped_items.append(SkippedItem(type=item_type, title=title or "", source_id=source_id))

    def fail(self, message: str):
        self.status = ImportStatus.FAILED
        self.errors.append(message)

    def finalize(self) -> "ImportResult":
        if self.status != ImportStatus.FAILED:
            if self.warnings or self.errors:
                self.status = ImportStatus.PARTIAL
            else:
                self.status = ImportStatus.SUCCESS
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "summary": asdict(self.summary),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "skipped_items": [asdict(item) for item in self.skipped_items],
            "entity_map": self.entity_map.to_dict(),
        }
