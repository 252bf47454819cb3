"""Tests for source record typing and value coercion."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from conftest import check_in, goal_item, metric_outcome
from okr_tracker.importer.records import (
    GoalKind, InitiativeItem, MetricItem, OutcomeItem, PhasedTargets, SourceCheckIn, SourceTeam,
    goal_kind, parse_goal_item,
)
from okr_tracker.importer.values import RecordError, parse_date, parse_number, source_id


class TestValues:
    def test_source_id_normalises_numbers(self):
        assert source_id("42") == 42
        assert source_id(42.0) == 42
        assert source_id(" abc ") == "abc"
        assert source_id(None) is None
        assert source_id(True) is None
        assert source_id("") is None

    def test_parse_number(self):
        assert parse_number("20,000", "x") == 20000.0
        assert parse_number("45%", "x") == 45.0
        assert parse_number(3, "x") == 3.0
        assert parse_number("", "x") is None
        assert parse_number(None, "x") is None

    @pytest.mark.parametrize("bad", ["lots", True, float("nan"), "inf"])
    def test_parse_number_rejects_junk(self, bad):
        with pytest.raises(RecordError):
            parse_number(bad, "Progress")

    def test_parse_date(self):
        assert parse_date("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert parse_date("2024-03-01") == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert parse_date("03/15/2024") == datetime(2024, 3, 15, tzinfo=timezone.utc)
        assert parse_date("not a date") is None
        assert parse_date(None) is None

    def test_parse_date_is_always_utc_aware(self):
        parsed = parse_date("2024-03-01T12:00:00+02:00")

        assert parsed.utcoffset() == timedelta(0)
        assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert parse_date(datetime(2024, 3, 1)).tzinfo is timezone.utc


class TestGoalItems:
    def test_kinds_map_to_variants(self):
        assert isinstance(parse_goal_item(goal_item(1, "A")), OutcomeItem)
        assert isinstance(parse_goal_item(goal_item(2, "B", kind="Kpi")), MetricItem)
        assert isinstance(parse_goal_item(goal_item(3, "C", kind="Project")), InitiativeItem)

    def test_goal_kind_is_case_insensitive(self):
        assert goal_kind({"Type": "BIG ROCK"}) is GoalKind.OUTCOME
        assert goal_kind({"Type": "Milestone"}) is None
        assert goal_kind("nope") is None

    def test_metric_fields(self):
        item = parse_goal_item(goal_item(
            "7", "Revenue", kind="Kpi", parents=["1", 2], progress="16,108",
            outcome=metric_outcome(start="0", target="20,000", target_type="At least", unit="USD"),
        ))

        assert item.id == 7
        assert item.parent_ids == [1, 2]
        assert item.parent_id == 1
        assert item.progress == 16108.0
        assert item.outcome.is_metric
        assert item.outcome.target == 20000.0
        assert item.outcome.metric_unit == "USD"

    def test_outcome_defaults_to_percentage(self):
        item = parse_goal_item(goal_item(1, "A", kind="Kpi"))
        assert item.outcome.outcome_type == "Percentage"
        assert not item.outcome.is_metric

    def test_team_refs_and_owners(self):
        item = parse_goal_item(goal_item(
            1, "A", teams=[{"ID": 5, "Name": "Ops"}, {"ID": None, "Name": "ghost"}],
            owner={"ID": 77, "Name": "Ann", "Email": "ann@example.com"},
        ))
        assert [(t.id, t.name) for t in item.team_refs] == [(5, "Ops")]
        assert item.owners[0].email == "ann@example.com"

    def test_aspirational(self):
        item = parse_goal_item(goal_item(1, "A", **{"Goal Type": "Aspirational"}))
        assert item.is_aspirational

    @pytest.mark.parametrize("raw", [
        goal_item(1, "A", kind="Milestone"),
        goal_item(1, ""),
        goal_item(None, "No id"),
        goal_item(1, "Bad", progress="lots"),
        "not a dict",
    ])
    def test_malformed_items_raise(self, raw):
        with pytest.raises((RecordError, ValidationError)):
            parse_goal_item(raw)

    def test_phased_targets(self):
        raw = goal_item(1, "A", kind="Kpi", **{"Phased Targets": {
            "Interval": "Quarterly",
            "Phased Targets": [
                {"Target Value": "10", "Target Date": "2024-03-31"},
                {"Target Value": 20, "Target Date": "2024-06-30"},
            ],
        }})

        targets = parse_goal_item(raw).phased_targets

        assert targets.as_json() == {
            "interval": "quarterly",
            "targets": [
                {"targetValue": 10.0, "targetDate": "2024-03-31"},
                {"targetValue": 20.0, "targetDate": "2024-06-30"},
            ],
        }

    def test_empty_phased_targets_are_none(self):
        assert PhasedTargets.from_raw({"Interval": "monthly", "Phased Targets": []}) is None
        assert PhasedTargets.from_raw(None) is None


class TestOtherRecords:
    def test_check_in(self):
        parsed = SourceCheckIn.from_raw(check_in(900, "3", "1,500", when="2024-02-01"))

        assert parsed.goal_item_id == 3
        assert parsed.current_value == 1500.0
        assert parsed.note == "weekly update"
        assert parsed.as_of == datetime(2024, 2, 1, tzinfo=timezone.utc)

    def test_check_in_needs_target(self):
        raw = check_in(900, None, 1)
        with pytest.raises(RecordError):
            SourceCheckIn.from_raw(raw)

    def test_team(self):
        team = SourceTeam.from_raw({
            "ID": 5, "Team Name": "Platform", "Parent Team": "Engineering",
            "Team Owners": [{"ID": 1, "Name": "Bo", "Email": "bo@example.com"}],
        })
        assert team.parent_team_name == "Engineering"
        assert team.owners[0].email == "bo@example.com"

    def test_team_without_name(self):
        with pytest.raises(RecordError):
            SourceTeam.from_raw({"ID": 5})
