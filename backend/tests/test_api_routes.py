from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base, get_db  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def _create_habit(client, **fields) -> dict:
    response = client.post("/api/habits", json={"name": "Stretch", **fields})
    assert response.status_code == 201
    return response.json()["data"]


def test_health_check(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_today_uses_configured_boundary(client):
    assert client.put("/api/settings/dayBoundaryHour", json={"value": 4}).status_code == 200
    data = client.get("/api/habits/today").json()["data"]
    assert data["day_boundary_hour"] == 4
    assert len(data["effective_date"]) == 10
    assert data["week_start"] <= data["effective_date"]


def test_invalid_boundary_hour_setting_is_rejected(client):
    response = client.put("/api/settings/dayBoundaryHour", json={"value": 24})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_BOUNDARY_HOUR"


def test_entry_upsert_and_listing(client):
    habit = _create_habit(client)
    first = client.post(f"/api/habits/{habit['id']}/entries", json={"date": "2024-01-15", "status": "complete"})
    second = client.post(f"/api/habits/{habit['id']}/entries", json={"date": "2024-01-15", "status": "partial"})
    assert first.status_code == 201
    assert first.json()["data"]["id"] == second.json()["data"]["id"]

    listing = client.get(f"/api/habits/{habit['id']}/entries", params={"start_date": "2024-01-01"}).json()
    assert listing["count"] == 1
    assert listing["data"][0]["status"] == "partial"
    assert listing["summary"]["partial"] == 1


def test_entry_with_invalid_status_returns_error_envelope(client):
    habit = _create_habit(client)
    response = client.post(f"/api/habits/{habit['id']}/entries", json={"date": "2024-01-15", "status": "done"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATUS"
    assert "error" in response.json()


def test_entry_with_negative_count_is_rejected(client):
    habit = _create_habit(client, daily_target=3)
    response = client.post(
        f"/api/habits/{habit['id']}/entries",
        json={"date": "2024-01-15", "status": "partial", "count": -2},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_COUNT"


def test_cycle_endpoint_walks_the_quick_tap_order(client):
    habit = _create_habit(client)
    seen = []
    for _ in range(3):
        response = client.post(f"/api/habits/{habit['id']}/entries/cycle", json={"date": "2024-01-15"})
        seen.append(response.json()["data"]["status"])
    assert seen == ["complete", "missed", "partial"]


def test_missing_habit_returns_404(client):
    response = client.get("/api/habits/999")
    assert response.status_code == 404
    assert response.json() == {"error": "Habit not found", "code": "HABIT_NOT_FOUND"}


def test_self_parent_update_is_rejected(client):
    habit = _create_habit(client)
    response = client.put(f"/api/habits/{habit['id']}", json={"parent_habit_id": habit["id"]})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PARENT"


def test_soft_delete_and_restore(client):
    habit = _create_habit(client)
    assert client.delete(f"/api/habits/{habit['id']}").status_code == 200
    assert client.get("/api/habits").json()["count"] == 0
    assert client.get("/api/habits", params={"include_deleted": True}).json()["count"] == 1

    restored = client.patch(f"/api/habits/{habit['id']}/restore").json()["data"]
    assert restored["is_deleted"] is False
    assert client.get("/api/habits").json()["count"] == 1


def test_import_dry_run_does_not_write(client):
    content = "# Health\n## Morning\n- Stretch\n- Meditation"
    response = client.post("/api/habits/import", json={"content": content, "dry_run": True})
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["dry_run"] is True
    assert [c["name"] for c in data["categories"]] == ["Health", "Health > Morning"]
    assert client.get("/api/habits").json()["count"] == 0


def test_import_writes_habits_and_categories(client):
    content = "# Fitness\n- Running\n# Nutrition\n- Eating\n# Fitness\n- Gym"
    response = client.post("/api/habits/import", json={"content": content})
    assert response.status_code == 201
    assert response.json()["data"]["created"] == {"categories": 2, "habits": 3}

    categories = client.get("/api/categories").json()["data"]
    assert [c["name"] for c in categories] == ["Fitness", "Nutrition"]
    habits = client.get("/api/habits").json()["data"]
    assert {h["name"]: h["category_name"] for h in habits}["Gym"] == "Fitness"


@pytest.mark.parametrize(
    "content, code",
    [("", "EMPTY_IMPORT_CONTENT"), ("   \n  ", "EMPTY_IMPORT_CONTENT"), ("# Only heading", "NO_HABITS_FOUND")],
)
def test_import_rejects_invalid_documents(client, content, code):
    response = client.post("/api/habits/import", json={"content": content})
    assert response.status_code == 400
    assert response.json()["code"] == code


def test_import_validate_endpoint(client):
    ok = client.post("/api/habits/import/validate", json={"content": "# Category\n- My Habit"}).json()["data"]
    bad = client.post("/api/habits/import/validate", json={"content": ""}).json()["data"]
    assert ok == {"is_valid": True, "errors": []}
    assert bad["is_valid"] is False and bad["errors"]


def test_trend_endpoint(client):
    habit = _create_habit(client, monthly_target=10)
    for day in ("2024-04-01", "2024-04-02", "2024-04-03"):
        client.post(f"/api/habits/{habit['id']}/entries", json={"date": day, "status": "complete"})
    data = client.get(f"/api/habits/{habit['id']}/trend", params={"as_of": "2024-04-03"}).json()["data"]
    assert data["completed_count"] == 3
    assert data["on_pace"] is True
    assert data["overlay"] is None


def test_day_view_endpoint(client):
    habit = _create_habit(client)
    client.post(f"/api/habits/{habit['id']}/entries", json={"date": "2024-01-15", "status": "na"})
    data = client.get("/api/habits/day/2024-01-15").json()["data"]
    assert data[0]["status"] == "na"


def test_malformed_date_is_rejected(client):
    habit = _create_habit(client)
    response = client.get(f"/api/habits/{habit['id']}/trend", params={"as_of": "April 3"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DATE"


def test_settings_defaults_and_reset(client):
    defaults = client.get("/api/settings/defaults").json()["data"]
    assert defaults["dayBoundaryHour"] == 6
    client.put("/api/settings/weekStartDay", json={"value": 1})
    assert client.get("/api/settings").json()["data"]["weekStartDay"] == 1
    assert client.put("/api/settings/weekStartDay", json={"value": 9}).status_code == 400
    client.post("/api/settings/reset")
    assert client.get("/api/settings/weekStartDay").json()["data"]["is_default"] is True


def test_bulk_auto_fill_skips_inactive_habits(client):
    active = _create_habit(client, name="Read")
    paused = _create_habit(client, name="Swim", is_active=False)
    start = (date.today() - timedelta(days=3)).isoformat()

    response = client.post("/api/habits/auto-fill-missed", json={"start_date": start})
    assert response.status_code == 200
    assert response.json()["data"]["habits_processed"] == 1
    assert client.get(f"/api/habits/{paused['id']}/entries").json()["count"] == 0
    assert client.get(f"/api/habits/{active['id']}/entries").json()["count"] >= 1
