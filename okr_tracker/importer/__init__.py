"""Goal archive importer."""
from okr_tracker.importer.archive import ArchiveError, preview_archive, read_archive
from okr_tracker.importer.engine import GoalArchiveImporter, import_archive
from okr_tracker.importer.options import ImportOptions, InvalidImportOptions
from okr_tracker.importer.result import EntityMap, ImportResult, ImportSummary, SkippedItem

__all__ = [
    "ArchiveError",
    "EntityMap",
    "GoalArchiveImporter",
    "ImportOptions",
    "ImportResult",
    "ImportSummary",
    "InvalidImportOptions",
    "SkippedItem",
    "import_archive",
    "preview_archive",
    "read_archive",
]
