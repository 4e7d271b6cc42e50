from conftest import make_activity, make_user

import pytest


@pytest.fixture
def setup(db, admin):
    worker = make_user(db, name="Sipho", phone="+27831112222", role="Maintenance")
    activity = make_activity(db, admin)
    return activity, worker, admin


def _assign(client, activity, user, admin, **extra):
    body = {"user_id": user.id, "assigned_by": admin.id}
    body.update(extra)
    return client.post(f"/api/activities/{activity.id}/assignments", json=body)


def test_create_assignment(client, setup):
    activity, worker, admin = setup

    response = _assign(client, activity, worker, admin, role_instructions="Hold the ladder")

    assert response.status_code == 201
    data = response.json()
    assert data["assignment_type"] == "secondary"
    assert data["status"] == "active"
    assert data["receive_notifications"] is True
    assert data["assigned_user_name"] == "Sipho"
    assert data["assigned_by_name"] == admin.name


def test_duplicate_assignment_is_409(client, setup):
    activity, worker, admin = setup
    _assign(client, activity, worker, admin)

    response = _assign(client, activity, worker, admin)

    assert response.status_code == 409
    assert response.json()["detail"] == "User is already assigned to this activity"


def test_malformed_activity_id_is_400(client, setup):
    _, worker, admin = setup
    response = client.post("/api/activities/bad-id/assignments", json={"user_id": worker.id, "assigned_by": admin.id})

    assert response.status_code == 400
    assert "CUID" in response.json()["detail"]


def test_unknown_activity_is_404(client, setup):
    _, worker, admin = setup
    response = client.post(
        "/api/activities/cmissingmissingmissing123/assignments",
        json={"user_id": worker.id, "assigned_by": admin.id},
    )
    assert response.status_code == 404


def test_list_orders_by_type_then_newest(client, db, setup):
    activity, worker, admin = setup
    observer = make_user(db, name="Observer", phone="+27831113333")
    _assign(client, activity, observer, admin, assignment_type="observer")
    _assign(client, activity, worker, admin, assignment_type="primary")

    rows = client.get(f"/api/activities/{activity.id}/assignments").json()

    assert [r["assignment_type"] for r in rows] == ["observer", "primary"]
    assert rows[1]["assigned_user_role"] == "Maintenance"


def test_get_update_and_delete_assignment(client, setup):
    activity, worker, admin = setup
    assignment_id = _assign(client, activity, worker, admin).json()["id"]
    url = f"/api/activities/{activity.id}/assignments/{assignment_id}"

    assert client.get(url).json()["id"] == assignment_id

    updated = client.put(url, json={"status": "completed", "receive_notifications": False}).json()
    assert updated["status"] == "completed"
    assert updated["receive_notifications"] is False
    assert updated["assignment_type"] == "secondary"

    assert client.delete(url).status_code == 204
    assert client.get(url).status_code == 404


def test_assignment_update_rejects_unknown_status(client, setup):
    activity, worker, admin = setup
    assignment_id = _assign(client, activity, worker, admin).json()["id"]

    response = client.put(
        f"/api/activities/{activity.id}/assignments/{assignment_id}", json={"status": "paused"}
    )
    assert response.status_code == 400


def test_missing_assignment_is_404(client, setup):
    activity, _, _ = setup
    response = client.get(f"/api/activities/{activity.id}/assignments/cmissingmissingmissing123")
    assert response.status_code == 404
