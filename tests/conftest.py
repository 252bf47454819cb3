"""Shared fixtures for the OKR Tracker test suite."""
import io
import json
import sys
import zipfile
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from okr_tracker import database  # noqa: E402
from okr_tracker import models  # noqa: E402,F401
from okr_tracker.importer.options import ImportOptions  # noqa: E402

TODAY = date(2025, 6, 1)


# ── Database ─────────────────────────────────────────────────────────────

@pytest.fixture
def db(monkeypatch):
    """In-memory SQLite swapped in for the module-level engine."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    monkeypatch.setattr(database, "engine", engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def options():
    return ImportOptions(tenant_id="t1", user_id="u1", user_email="importer@example.com")


# ── Source records ───────────────────────────────────────────────────────

def goal_item(item_id, title, kind="Big rock", parents=None, period="Q1 2024", progress=0,
              outcome=None, teams=None, owner=None, status="On Track", **extra):
    """A goal item the way the export writes it."""
    raw = {
        "ID": item_id,
        "Title": title,
        "Type": kind,
        "Owner": [owner] if owner else [],
        "Teams": teams,
        "Time Period": {"ID": None, "Name": period},
        "Start Date": "2024-01-01",
        "End Date": "2024-03-31",
        "Parent IDs": parents,
        "Description": None,
        "Progress and Status Configuration": {"Progress": "Manual", "Status": "Manual"},
        "Progress": progress,
        "Status": status,
        "Goal Type": "Committed",
    }
    if outcome is not None:
        raw["Outcome"] = outcome
    raw.update(extra)
    return raw


def metric_outcome(start=0, target=100, target_type="Increase", unit=None, outcome_type="Metric"):
    return {
        "Outcome Type": outcome_type,
        "Metric Name": "value",
        "Metric Unit": unit,
        "Start": start,
        "Target": target,
        "Target Type": target_type,
    }


def check_in(check_in_id, goal_item_id, value, when="2024-02-01", status="On Track", email=None):
    return {
        "ID": check_in_id,
        "OKR ID": goal_item_id,
        "CheckIn Date": when,
        "Check In Owner": {"ID": 77, "Name": "Ann", "Email": email},
        "Check In Note": {"Check In Note": "weekly update"},
        "Metric Name": "value",
        "Status": status,
        "Current Value": value,
        "Activity Date": when,
    }


def make_zip(members):
    """Zip bytes from {member name: JSON-able payload, str or bytes}."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, payload in members.items():
            if isinstance(payload, bytes):
                archive.writestr(name, payload)
            elif isinstance(payload, str):
                archive.writestr(name, payload.encode("utf-8"))
            else:
                archive.writestr(name, json.dumps(payload))
    return buffer.getvalue()


def build_archive(goal_items, check_ins=(), periods=(), teams=(), users=()):
    return make_zip({
        "Export/TimePeriods.json": list(periods),
        "Export/Teams.json": list(teams),
        "Export/Users.json": list(users),
        "Export/objectives.json": list(goal_items),
        "Export/checkins.json": list(check_ins),
    })


SAMPLE_USERS = [{"ID": 77, "Name": "Ann", "Email": "ann@example.com"}]
SAMPLE_TEAMS = [{
    "ID": 500,
    "Team Name": "EMEA",
    "Parent Team": None,
    "Team Owners": [{"ID": 77, "Name": "Ann", "Email": "ann@example.com"}],
    "Description": "Sales in Europe",
}]
SAMPLE_PERIODS = [{"ID": 1, "Time Period Name": "Q1 2024", "Start Date": "2024-01-01", "End Date": "2024-03-31"}]


def sample_goal_items(nps_progress=45):
    return [
        goal_item(1, "Grow revenue", owner={"ID": 77, "Name": "Ann"}),
        goal_item(2, "Expand EMEA", parents=[1], teams=[{"ID": 500, "Name": "EMEA"}]),
        goal_item(3, "Close 20k deals", kind="Kpi", parents=[2], progress=16108,
                  outcome=metric_outcome(start=0, target="20,000")),
        goal_item(4, "NPS above 50", kind="Kpi", parents=[1], progress=nps_progress,
                  outcome=metric_outcome(outcome_type="Percentage")),
        goal_item(5, "Launch partner portal", kind="Project", parents=[3], progress=33.5),
    ]


def sample_check_ins():
    return [
        check_in(900, 3, 10000),
        check_in(901, 1, 20, when="2024-02-15"),
    ]


@pytest.fixture
def sample_archive():
    return build_archive(
        sample_goal_items(), sample_check_ins(),
        periods=SAMPLE_PERIODS, teams=SAMPLE_TEAMS, users=SAMPLE_USERS,
    )
