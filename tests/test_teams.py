"""Tests for team resolution against the store."""
from types import SimpleNamespace

from conftest import goal_item
from okr_tracker import crud
from okr_tracker.importer.records import SourceTeam, parse_goal_item
from okr_tracker.importer.result import ImportResult
from okr_tracker.importer.teams import TeamResolver, parent_first
from okr_tracker.models import Team


def team(team_id, name, parent=None, owner_email=None):
    owners = [{"ID": 1, "Name": "Owner", "Email": owner_email}] if owner_email else []
    return SourceTeam.from_raw({"ID": team_id, "Team Name": name, "Parent Team": parent, "Team Owners": owners})


def test_parent_first_ordering():
    teams = [team(3, "Platform", parent="Engineering"), team(1, "Engineering"), team(4, "Orphan", parent="Gone")]
    assert [t.name for t in parent_first(teams)] == ["Engineering", "Orphan", "Platform"]


def test_parent_cycle_still_returns_every_team():
    teams = [team(1, "A", parent="B"), team(2, "B", parent="A")]
    assert {t.name for t in parent_first(teams)} == {"A", "B"}


def test_creates_teams_with_hierarchy(db):
    result = ImportResult()
    resolver = TeamResolver(crud, "t1", "u1", result)

    mapping = resolver.resolve(
        [team(3, "Platform", parent="Engineering", owner_email="lead@example.com"), team(1, "Engineering")], []
    )

    engineering = crud.get_team_by_name("t1", "Engineering")
    platform = crud.get_team_by_name("t1", "Platform")
    assert mapping == {1: engineering.id, 3: platform.id}
    assert platform.parent_team_id == engineering.id
    assert platform.leader_email == "lead@example.com"
    assert result.summary.teams_created == 2


def test_existing_team_is_matched_by_name(db):
    existing = crud.create_team(Team(tenant_id="t1", name="Sales"))
    crud.create_team(Team(tenant_id="t2", name="Ops"))
    result = ImportResult()

    mapping = TeamResolver(crud, "t1", "u1", result).resolve([team(7, "Sales"), team(8, "Ops")], [])

    assert mapping[7] == existing.id
    assert crud.get_team_by_name("t1", "Ops") is not None
    assert result.summary.teams_created == 1


def test_implicit_team_refs(db):
    item = parse_goal_item(goal_item(1, "A", teams=[{"ID": 42, "Name": "Support"}]))
    result = ImportResult()
    resolver = TeamResolver(crud, "t1", "u1", result)

    resolver.resolve([], [item])

    assert resolver.team_id_for(item) == crud.get_team_by_name("t1", "Support").id
    assert result.summary.teams_created == 1


def test_no_creation_when_disabled(db):
    crud.create_team(Team(tenant_id="t1", name="Sales"))
    item = parse_goal_item(goal_item(1, "A", teams=[{"ID": 42, "Name": "Support"}]))
    result = ImportResult()
    resolver = TeamResolver(crud, "t1", "u1", result, create_missing=False)

    mapping = resolver.resolve([team(7, "Sales"), team(8, "Marketing")], [item])

    assert list(mapping) == [7]
    assert resolver.team_id_for(item) is None
    assert result.summary.teams_created == 0


def test_store_failure_becomes_warning():
    def boom(_team):
        raise RuntimeError("database is locked")

    store = SimpleNamespace(get_team_by_name=lambda tenant, name: None, create_team=boom)
    result = ImportResult()

    mapping = TeamResolver(store, "t1", "u1", result).resolve([team(1, "Ops")], [])

    assert mapping == {}
    assert len(result.warnings) == 1
    assert "database is locked" in result.warnings[0]
    assert result.skipped_items[0].type == "team"
