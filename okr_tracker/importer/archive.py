"""
Reads a goal-tracking export archive (zip) into raw record collections.

Only .json members are read. They are classified by substring of their full
path, case-sensitive, so no particular folder layout is required. Records
are returned untouched; typing and validation happen per record during the
import.
"""
import io
import json
import zipfile
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from okr_tracker.app_logger import get_logger
from okr_tracker.importer.records import goal_kind

logger = get_logger(__name__)

PERIODS = "periods"
TEAMS = "teams"
USERS = "users"
GOAL_ITEMS = "goal_items"
CHECK_INS = "check_ins"

# First matching marker wins
MEMBER_MARKERS = (
    ("TimePeriods", PERIODS),
    ("Teams", TEAMS),
    ("Users", USERS),
    ("objectives", GOAL_ITEMS),
    ("checkins", CHECK_INS),
)

# Without this member there is nothing to import
REQUIRED_COLLECTION = GOAL_ITEMS


class ArchiveError(Exception):
    """The archive itself cannot be opened."""


@dataclass
class ArchiveContents:
    periods: List[Any] = field(default_factory=list)
    teams: List[Any] = field(default_factory=list)
    users: List[Any] = field(default_factory=list)
    goal_items: List[Any] = field(default_factory=list)
    check_ins: List[Any] = field(default_factory=list)
    # member name -> collection it was read into
    members: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    failed_collections: set = field(default_factory=set)

    @property
    def is_readable(self) -> bool:
        if REQUIRED_COLLECTION not in self.failed_collections:
            return True
        return REQUIRED_COLLECTION in self.members.values()


def classify_member(name: str) -> Optional[str]:
    """Collection a member file belongs to, or None if it is not part of the export."""
    if "__MACOSX/" in name or not name.endswith(".json"):
        return None
    if name.rsplit("/", 1)[-1].startswith("._"):
        return None
    for marker, collection in MEMBER_MARKERS:
        if marker in name:
            return collection
    return None


def read_archive(data: bytes) -> ArchiveContents:
    """
    Extract and deserialize the five collections of an export archive.

    Raises ArchiveError if the container is not a readable zip. A member
    that is not a JSON array is reported in ``errors`` and leaves its
    collection untouched; the other members are still read.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, ValueError) as exc:
        raise ArchiveError(f"Failed to open archive: {exc}") from exc

    contents = ArchiveContents()
    with archive:
        for info in sorted(archive.infolist(), key=lambda i: i.filename):
            if info.is_dir():
                continue
            collection = classify_member(info.filename)
            if collection is None:
                logger.debug("Ignoring archive member %s", info.filename)
                continue
            try:
                payload = json.loads(archive.read(info).decode("utf-8-sig"))
            except (ValueError, UnicodeDecodeError, zipfile.BadZipFile, RuntimeError) as exc:
                _member_failed(contents, info.filename, collection, f"is not valid JSON: {exc}")
                continue
            if not isinstance(payload, list):
                _member_failed(contents, info.filename, collection, "does not contain a JSON array")
                continue
            getattr(contents, collection).extend(payload)
            contents.members[info.filename] = collection
            logger.info("Read %d %s from %s", len(payload), collection, info.filename)
    return contents


def _member_failed(contents: ArchiveContents, name: str, collection: str, reason: str):
    message = f"Archive member '{name}' {reason}"
    contents.errors.append(message)
    contents.failed_collections.add(collection)
    logger.warning(message)


def preview_archive(data: bytes) -> Dict[str, Any]:
    """Dry run: what an archive holds, without touching the store."""
    contents = read_archive(data)
    kinds = Counter()
    for raw in contents.goal_items:
        kind = goal_kind(raw)
        kinds[kind.value if kind else "Unsupported"] += 1
    return {
        "members": dict(contents.members),
        "counts": {
            PERIODS: len(contents.periods),
            TEAMS: len(contents.teams),
            USERS: len(contents.users),
            GOAL_ITEMS: len(contents.goal_items),
            CHECK_INS: len(contents.check_ins),
        },
        "goal_item_kinds": dict(kinds),
        "errors": list(contents.errors),
    }
