"""
Runtime settings for the OKR Tracker importer.

Values come from environment variables, optionally loaded from a ``.env``
file at the repository root:
    OKR_DATABASE_URL       SQLAlchemy URL of the entity store
    OKR_SQL_ECHO           "true" to echo SQL statements
    OKR_LOG_LEVEL          log level for the okr_tracker logger
    OKR_IMPORT_MAX_BYTES   upload size cap for goal archives
"""
import os

from dotenv import load_dotenv

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(REPO_ROOT, ".env"))


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: {raw}") from exc


DATABASE_PATH = os.path.join(REPO_ROOT, "okr_database.db")
DATABASE_URL = os.getenv("OKR_DATABASE_URL", f"sqlite:///{DATABASE_PATH}")
SQL_ECHO = _env_bool("OKR_SQL_ECHO")

LOG_LEVEL = os.getenv("OKR_LOG_LEVEL", "INFO").upper()

# 50 MB
MAX_ARCHIVE_BYTES = _env_int("OKR_IMPORT_MAX_BYTES", 50 * 1024 * 1024)

IMPORT_TYPE = "goal_archive"
CHECK_IN_SOURCE = "goal_archive_import"
