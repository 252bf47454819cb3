"""
Upload-level entry point for goal archive imports.

Guards the upload (type and size), runs the importer, and records an
ImportHistory row for the tenant. The returned ImportResult is the report
shown to the user; failing to write history never changes it.
"""
import os
from dataclasses import asdict
from typing import Optional

from okr_tracker import crud
from okr_tracker.app_logger import get_logger
from okr_tracker.config import IMPORT_TYPE, MAX_ARCHIVE_BYTES
from okr_tracker.importer.engine import GoalArchiveImporter
from okr_tracker.importer.options import ImportOptions
from okr_tracker.importer.result import ImportResult
from okr_tracker.models import ImportHistory

logger = get_logger(__name__)

ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")
ZIP_CONTENT_TYPES = {"application/zip", "application/x-zip-compressed", "application/octet-stream"}


class ImportRejected(ValueError):
    """The upload was refused before any import work started."""


class ArchiveTooLarge(ImportRejected):
    pass


class UnsupportedArchive(ImportRejected):
    pass


def validate_upload(file_name: Optional[str], data: bytes, max_bytes: int = MAX_ARCHIVE_BYTES,
                    content_type: Optional[str] = None):
    """Reject uploads that are empty, too large, or not zip archives."""
    if not data:
        raise UnsupportedArchive("Uploaded file is empty")
    if len(data) > max_bytes:
        raise ArchiveTooLarge(
            f"Archive is {len(data)} bytes; the limit is {max_bytes} bytes"
        )
    if file_name and os.path.splitext(file_name)[1].lower() != ".zip":
        raise UnsupportedArchive(f"Only .zip archives are supported, got '{file_name}'")
    if content_type and content_type not in ZIP_CONTENT_TYPES:
        raise UnsupportedArchive(f"Unsupported content type '{content_type}'")
    if not data.startswith(ZIP_MAGIC):
        raise UnsupportedArchive("File is not a zip archive")


def build_history(result: ImportResult, options: ImportOptions, file_name: Optional[str] = None,
                  file_size: Optional[int] = None) -> ImportHistory:
    summary = result.summary
    return ImportHistory(
        tenant_id=options.tenant_id,
        import_type=IMPORT_TYPE,
        file_name=file_name,
        file_size=file_size,
        status=result.status,
        objectives_created=summary.objectives_created,
        key_results_created=summary.key_results_created,
        big_rocks_created=summary.big_rocks_created,
        check_ins_created=summary.check_ins_created,
        teams_created=summary.teams_created,
        warnings=list(result.warnings),
        errors=list(result.errors),
        skipped_items=[asdict(item) for item in result.skipped_items],
        duplicate_strategy=options.duplicate_strategy.value,
        fiscal_year_start_month=options.fiscal_year_start_month,
        imported_by=options.user_id,
    )


def run_archive_import(data: bytes, options: ImportOptions, file_name: Optional[str] = None,
                       store=crud, max_bytes: int = MAX_ARCHIVE_BYTES,
                       content_type: Optional[str] = None) -> ImportResult:
    """
    Validate an uploaded archive, import it and record the run.

    Raises ImportRejected (before anything is written) when the upload is
    refused; every later problem is reported inside the result.
    """
    validate_upload(file_name, data, max_bytes=max_bytes, content_type=content_type)
    logger.info(
        "Importing %s (%d bytes) for tenant %s with strategy %s",
        file_name or "archive", len(data), options.tenant_id, options.duplicate_strategy.value,
    )
    result = GoalArchiveImporter(options, store=store).run(data)

    try:
        store.create_import_history(build_history(result, options, file_name, len(data)))
    except Exception:
        logger.exception("Could not record import history for tenant %s", options.tenant_id)
    return result
