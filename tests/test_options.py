"""Tests for import option validation."""
import pytest

from okr_tracker.importer.options import ImportOptions, InvalidImportOptions
from okr_tracker.models import DuplicateStrategy


def test_defaults():
    options = ImportOptions.from_form({"tenantId": "t1", "userId": "u1"})

    assert options.fiscal_year_start_month == 1
    assert options.duplicate_strategy == DuplicateStrategy.SKIP
    assert options.import_check_ins is True
    assert options.import_teams is True
    assert options.user_email is None


def test_json_form_field_with_overrides():
    options = ImportOptions.from_form(
        '{"duplicateStrategy": "merge", "fiscalYearStartMonth": 4, "importCheckIns": false}',
        tenant_id="t1", user_id="u1", user_email=None,
    )

    assert options.duplicate_strategy == DuplicateStrategy.MERGE
    assert options.fiscal_year_start_month == 4
    assert options.import_check_ins is False


def test_overrides_win_over_form():
    options = ImportOptions.from_form({"tenant_id": "forged", "user_id": "u1"}, tenant_id="t1")
    assert options.tenant_id == "t1"


@pytest.mark.parametrize("raw", [
    {"tenantId": "t1", "userId": "u1", "fiscalYearStartMonth": 13},
    {"tenantId": "t1", "userId": "u1", "duplicateStrategy": "overwrite"},
    {"tenantId": "", "userId": "u1"},
    {"userId": "u1"},
    "{not json",
    "[1, 2]",
])
def test_invalid_options(raw):
    with pytest.raises(InvalidImportOptions):
        ImportOptions.from_form(raw)


def test_error_names_the_field():
    with pytest.raises(InvalidImportOptions, match="fiscal_year_start_month"):
        ImportOptions.from_form({"tenantId": "t1", "userId": "u1", "fiscalYearStartMonth": 0})
