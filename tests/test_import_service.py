"""Tests for the upload-level import service and import history."""
import importlib.util

import pytest

from conftest import PROJECT_ROOT
from okr_tracker import crud
from okr_tracker.models import ImportStatus
from okr_tracker.services.import_service import (
    ArchiveTooLarge, UnsupportedArchive, run_archive_import, validate_upload,
)


class TestValidateUpload:
    def test_accepts_zip(self, sample_archive):
        validate_upload("export.zip", sample_archive)

    def test_too_large(self, sample_archive):
        with pytest.raises(ArchiveTooLarge):
            validate_upload("export.zip", sample_archive, max_bytes=10)

    @pytest.mark.parametrize("name,data", [
        ("export.txt", b"PK\x03\x04rest"),
        ("export.zip", b"plain text"),
        ("export.zip", b""),
    ])
    def test_rejects_non_zip(self, name, data):
        with pytest.raises(UnsupportedArchive):
            validate_upload(name, data)

    def test_rejects_content_type(self, sample_archive):
        with pytest.raises(UnsupportedArchive):
            validate_upload("export.zip", sample_archive, content_type="text/plain")


class TestRunArchiveImport:
    def test_records_history(self, db, sample_archive, options):
        result = run_archive_import(sample_archive, options, file_name="export.zip")

        history = crud.get_import_history("t1")
        assert len(history) == 1
        entry = history[0]
        assert entry.status == ImportStatus.SUCCESS == result.status
        assert entry.import_type == "goal_archive"
        assert entry.file_name == "export.zip"
        assert entry.file_size == len(sample_archive)
        assert entry.objectives_created == 2
        assert entry.teams_created == 1
        assert entry.duplicate_strategy == "skip"
        assert entry.imported_by == "u1"
        assert crud.get_import_history("t2") == []

    def test_history_newest_first(self, db, sample_archive, options):
        run_archive_import(sample_archive, options, file_name="first.zip")
        run_archive_import(sample_archive, options, file_name="second.zip")

        history = crud.get_import_history("t1")
        assert [h.file_name for h in history] == ["second.zip", "first.zip"]
        assert history[0].status == ImportStatus.PARTIAL
        assert history[0].skipped_items[0]["type"] == "objective"

    def test_failed_import_is_recorded(self, db, options):
        result = run_archive_import(b"PK\x03\x04broken", options, file_name="broken.zip")

        assert result.status == ImportStatus.FAILED
        assert crud.get_import_history("t1")[0].status == ImportStatus.FAILED

    def test_history_failure_does_not_change_result(self, db, sample_archive, options, monkeypatch):
        def boom(_history):
            raise RuntimeError("history table missing")

        monkeypatch.setattr(crud, "create_import_history", boom)

        result = run_archive_import(sample_archive, options, file_name="export.zip")

        assert result.status == ImportStatus.SUCCESS
        assert result.summary.objectives_created == 2

    def test_rejected_upload_writes_nothing(self, db, options):
        with pytest.raises(UnsupportedArchive):
            run_archive_import(b"hello", options, file_name="export.zip")
        assert crud.get_import_history("t1") == []


def load_cli():
    spec = importlib.util.spec_from_file_location("import_archive_cli", PROJECT_ROOT / "scripts" / "import_archive.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_cli_imports_archive(db, sample_archive, tmp_path, capsys):
    path = tmp_path / "export.zip"
    path.write_bytes(sample_archive)

    exit_code = load_cli().main([str(path), "--tenant", "t1", "--user", "u1", "--no-check-ins"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Import success" in out
    assert "objectives_created: 2" in out
    assert crud.get_import_history("t1")[0].file_name == "export.zip"


def test_cli_rejects_bad_options(db, sample_archive, tmp_path, capsys):
    path = tmp_path / "export.zip"
    path.write_bytes(sample_archive)

    assert load_cli().main([str(path), "--tenant", "t1", "--user", "u1", "--fiscal-start", "13"]) == 2
    assert "fiscal_year_start_month" in capsys.readouterr().err
