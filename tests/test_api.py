"""
Test the timetable API with self-contained test data.
"""
import pytest
from fastapi.testclient import TestClient
from main import app
from config.settings import Settings
from routers.schedule import get_engine
from service.engine import SchedulingEngine


client = TestClient(app)


@pytest.fixture(autouse=True)
def fresh_engine():
    """Every test talks to its own in-memory engine."""
    engine = SchedulingEngine(Settings(storage_path="")).load()
    app.dependency_overrides[get_engine] = lambda: engine
    yield engine
    app.dependency_overrides.clear()


# Test data fixtures
def get_registry():
    """Return a small registry: two teachers, three subjects, two groups."""
    return {
        "teachers": [
            {
                "id": "t1",
                "name": "Alice Smith",
                "subjects": [
                    {"id": "s1", "name": "Mathematics", "abbreviation": "MAT"},
                    {"id": "s3", "name": "Chemistry", "abbreviation": "CHE"}
                ]
            },
            {
                "id": "t2",
                "name": "Bob Johnson",
                "subjects": [
                    {"id": "s2", "name": "Physics", "abbreviation": "PHY"}
                ]
            }
        ],
        "subjects": [
            {"id": "s1", "name": "Mathematics", "abbreviation": "MAT"},
            {"id": "s2", "name": "Physics", "abbreviation": "PHY"},
            {"id": "s3", "name": "Chemistry", "abbreviation": "CHE"}
        ],
        "groups": [
            {"id": "g1", "name": "1A"},
            {"id": "g2", "name": "1B"}
        ]
    }


def get_generator_config(hours=3, shift="morning"):
    """Return a generator config for one teacher, one subject, one group."""
    return {
        "teachers": [
            {
                "teacher_id": "t1",
                "subjects": [
                    {"subject_id": "s1", "group_ids": ["g1"], "hours": hours}
                ]
            }
        ],
        "shifts": [
            {"teacher_id": "t1", "subject_id": "s1", "group_id": "g1", "shift": shift}
        ]
    }


def load_registry():
    response = client.put("/api/v1/registry", json=get_registry())
    assert response.status_code == 200


def create(weekday="monday", start_time="07:00", subject_id="s1", teacher_id="t1", group_id="g1"):
    return client.post("/api/v1/assignments", json={
        "weekday": weekday,
        "start_time": start_time,
        "subject_id": subject_id,
        "teacher_id": teacher_id,
        "group_id": group_id
    })


def test_root_endpoint():
    """Test root endpoint is accessible."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "service" in data
    assert data["status"] == "healthy"


def test_grid_endpoint():
    response = client.get("/api/v1/grid")
    assert response.status_code == 200
    data = response.json()

    assert data["weekdays"] == ["monday", "tuesday", "wednesday", "thursday", "friday"]
    breaks = [b["start_time"] for b in data["blocks"] if b["is_break"]]
    assert breaks == ["09:30", "16:00"]


def test_shift_blocks_endpoint():
    response = client.get("/api/v1/grid/afternoon")
    assert response.status_code == 200
    assert response.json()[0]["start_time"] == "13:30"

    response = client.get("/api/v1/grid/night")
    assert response.status_code == 422


def test_create_assignment_and_reject_break():
    """A class block accepts an assignment, the break block right after does not."""
    load_registry()

    response = create(start_time="07:00")
    assert response.status_code == 201
    assignment = response.json()["assignment"]
    assert assignment["end_time"] == "07:50"
    assert assignment["id"]

    response = create(start_time="09:30", subject_id="s2", teacher_id="t2", group_id="g2")
    assert response.status_code == 422
    assert "break" in str(response.json()["errors"])


def test_teacher_double_booking_returns_conflict_list():
    load_registry()
    first = create(group_id="g1").json()["assignment"]

    response = create(group_id="g2")

    assert response.status_code == 409
    data = response.json()
    assert [c["assignment_id"] for c in data["conflicts"]] == [first["id"]]
    assert data["conflicts"][0]["group_name"] == "1A"


def test_group_double_booking_returns_conflict_list():
    load_registry()
    first = create(teacher_id="t1").json()["assignment"]

    response = create(teacher_id="t2", subject_id="s2")

    assert response.status_code == 409
    conflict = response.json()["conflicts"][0]
    assert conflict["assignment_id"] == first["id"]
    assert conflict["teacher_name"] == "Alice Smith"


def test_conflict_check_endpoint():
    load_registry()
    create()

    response = client.post("/api/v1/conflicts/check", json={
        "weekday": "monday",
        "start_time": "07:00",
        "teacher_id": "t2",
        "group_id": "g1"
    })
    assert response.status_code == 200
    data = response.json()
    assert data["has_conflict"] is True
    assert data["conflicts"][0]["entity_kind"] == "group"

    response = client.post("/api/v1/conflicts/check", json={
        "weekday": "monday",
        "start_time": "07:50",
        "teacher_id": "t1",
        "group_id": "g1"
    })
    assert response.json() == {"has_conflict": False, "conflicts": []}


def test_update_and_delete_assignment():
    load_registry()
    assignment = create().json()["assignment"]

    response = client.patch(f"/api/v1/assignments/{assignment['id']}", json={"subject_id": "s3"})
    assert response.status_code == 200
    assert response.json()["assignment"]["subject_id"] == "s3"

    response = client.delete(f"/api/v1/assignments/{assignment['id']}")
    assert response.status_code == 200

    response = client.delete(f"/api/v1/assignments/{assignment['id']}")
    assert response.status_code == 404


def test_invalid_time_format_is_human_readable():
    response = client.post("/api/v1/assignments", json={
        "weekday": "monday",
        "start_time": "7am",
        "subject_id": "s1",
        "group_id": "g1"
    })
    assert response.status_code == 422
    data = response.json()
    assert "Start Time" in data["errors"]
    assert "HH:MM" in data["errors"]["Start Time"][0]


def test_workflow_teacher_anchor():
    """Entity -> subject -> cell -> group commits and keeps the subject selected."""
    load_registry()
    session_id = client.post("/api/v1/workflow/sessions").json()["session"]["id"]
    base = f"/api/v1/workflow/sessions/{session_id}"

    response = client.post(f"{base}/entity", json={"entity_id": "t1", "is_teacher": True})
    assert response.json()["session"]["state"] == "entity_selected"

    # tapping a cell before a subject is a validation error
    response = client.post(f"{base}/cell", json={"weekday": "monday", "start_time": "07:00"})
    assert response.status_code == 422
    assert "Select a subject first" in str(response.json()["errors"])

    subjects = client.get(f"{base}/subjects").json()
    assert [s["id"] for s in subjects] == ["s1", "s3"]

    client.post(f"{base}/subject", json={"subject_id": "s1"})
    response = client.post(f"{base}/cell", json={"weekday": "monday", "start_time": "07:00"})
    assert response.json()["session"]["state"] == "counterpart_selection"

    response = client.post(f"{base}/counterpart", json={"group_id": "g1"})
    assert response.status_code == 200
    session = response.json()["session"]
    assert session["state"] == "subject_selected"
    assert session["subject_id"] == "s1"

    assignments = client.get("/api/v1/assignments", params={"teacher_id": "t1"}).json()["assignments"]
    assert len(assignments) == 1
    assert assignments[0]["group_id"] == "g1"


def test_workflow_conflict_keeps_session():
    load_registry()
    create(teacher_id="t2", subject_id="s2", group_id="g1")
    session_id = client.post("/api/v1/workflow/sessions").json()["session"]["id"]
    base = f"/api/v1/workflow/sessions/{session_id}"

    client.post(f"{base}/entity", json={"entity_id": "t1", "is_teacher": True})
    client.post(f"{base}/subject", json={"subject_id": "s1"})
    client.post(f"{base}/cell", json={"weekday": "monday", "start_time": "07:00"})
    response = client.post(f"{base}/counterpart", json={"group_id": "g1"})

    assert response.status_code == 409
    assert response.json()["conflicts"][0]["teacher_id"] == "t2"

    session = client.get(base).json()["session"]
    assert session["state"] == "cell_chosen"
    assert len(session["conflicts"]) == 1


def test_workflow_delete_cell_and_clear_anchor():
    load_registry()
    create(start_time="07:00", group_id="g1")
    create(start_time="07:50", group_id="g2")
    session_id = client.post("/api/v1/workflow/sessions").json()["session"]["id"]
    base = f"/api/v1/workflow/sessions/{session_id}"
    client.post(f"{base}/entity", json={"entity_id": "g1", "is_teacher": False})

    prompt = client.get(f"{base}/cell", params={"weekday": "monday", "start_time": "07:00"}).json()
    assert prompt["assignment"]["teacher_id"] == "t1"

    response = client.delete(f"{base}/cell", params={"weekday": "monday", "start_time": "07:00"})
    assert response.status_code == 200

    client.post(f"{base}/entity", json={"entity_id": "t1", "is_teacher": True})
    response = client.delete(f"{base}/assignments")
    assert response.json()["removed"] == 1
    assert client.get("/api/v1/assignments").json()["assignments"] == []


def test_clear_assignments_for_group():
    """Generate 3 hours for G1, then clearing G1 removes all of them."""
    load_registry()
    client.put("/api/v1/generator/config", json=get_generator_config(hours=3))
    client.post("/api/v1/generator/run")

    response = client.delete("/api/v1/assignments", params={"entity_id": "g1", "is_teacher": False})

    assert response.status_code == 200
    assert response.json()["removed"] == 3
    assert client.get("/api/v1/assignments").json()["assignments"] == []


def test_generator_run_places_first_morning_blocks():
    load_registry()
    create(weekday="friday", start_time="19:00", teacher_id="t2", subject_id="s2", group_id="g2")

    response = client.put("/api/v1/generator/config", json=get_generator_config(hours=3))
    assert response.status_code == 200
    assert response.json()["shifts"][0]["shift"] == "morning"

    response = client.post("/api/v1/generator/run")
    assert response.status_code == 200
    result = response.json()["result"]

    assert result["replaced_count"] == 1
    assert [(a["weekday"], a["start_time"]) for a in result["assignments"]] == [
        ("monday", "07:00"), ("monday", "07:50"), ("monday", "08:40")
    ]
    assert result["unfulfilled"] == []
    assert len(client.get("/api/v1/assignments").json()["assignments"]) == 3


def test_generator_reports_unfulfilled_quota():
    load_registry()
    client.put("/api/v1/generator/config", json=get_generator_config(hours=50, shift="afternoon"))

    result = client.post("/api/v1/generator/run").json()["result"]

    assert len(result["assignments"]) == 30
    shortfall = result["unfulfilled"][0]
    assert shortfall["shift"] == "afternoon"
    assert shortfall["missing"] == 20


def test_generator_config_round_trips_through_api():
    config = get_generator_config(hours=4, shift="afternoon")
    client.put("/api/v1/generator/config", json=config)

    response = client.get("/api/v1/generator/config")

    assert response.status_code == 200
    assert response.json() == config


def test_persistence_warning_is_attached_to_response(fresh_engine, monkeypatch):
    load_registry()

    def broken_set(key, value):
        raise OSError("read-only file system")

    monkeypatch.setattr(fresh_engine.persistence.store, "set", broken_set)

    response = create()

    assert response.status_code == 201
    warnings = response.json()["messages"]["warnings"]
    assert len(warnings) == 1
    assert warnings[0]["key"] == "assignments"
    assert len(client.get("/api/v1/assignments").json()["assignments"]) == 1


def test_create_rejects_subject_the_teacher_does_not_teach():
    load_registry()

    response = create(subject_id="s2", teacher_id="t1")

    assert response.status_code == 422
    assert "Subject Id" in response.json()["errors"]
    assert client.get("/api/v1/assignments").json()["assignments"] == []


def test_patch_rejects_teacher_without_the_subject():
    load_registry()
    assignment = create(subject_id="s1", teacher_id="t1").json()["assignment"]

    response = client.patch(f"/api/v1/assignments/{assignment['id']}", json={"teacher_id": "t2"})

    assert response.status_code == 422
    stored = client.get("/api/v1/assignments").json()["assignments"][0]
    assert stored["teacher_id"] == "t1"


@pytest.mark.parametrize("overrides", [
    {"teacher_id": "ghost"},
    {"group_id": "ghost"},
    {"teacher_id": "", "subject_id": "nope"},
])
def test_create_with_unknown_entity_is_not_found(overrides):
    load_registry()

    response = create(**overrides)

    assert response.status_code == 404
    assert client.get("/api/v1/assignments").json()["assignments"] == []


def test_conflict_check_lists_each_assignment_once():
    """The same assignment holds both the teacher and the group."""
    load_registry()
    existing = create(teacher_id="t1", group_id="g1").json()["assignment"]

    response = client.post("/api/v1/conflicts/check", json={
        "weekday": "monday",
        "start_time": "07:00",
        "teacher_id": "t1",
        "group_id": "g1"
    })

    data = response.json()
    assert data["has_conflict"] is True
    assert [c["assignment_id"] for c in data["conflicts"]] == [existing["id"]]
    assert data["conflicts"][0]["entity_kind"] == "teacher"


def test_close_workflow_session(fresh_engine):
    session_id = client.post("/api/v1/workflow/sessions").json()["session"]["id"]
    base = f"/api/v1/workflow/sessions/{session_id}"

    response = client.delete(base)
    assert response.status_code == 200
    assert response.json()["session"]["id"] == session_id
    assert fresh_engine.sessions == {}

    assert client.get(base).status_code == 404
    assert client.delete(base).status_code == 404
