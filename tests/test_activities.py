from conftest import make_activity, make_update, make_user

from database import Activity


def _new_activity(admin, **overrides):
    body = {
        "user_id": admin.id,
        "category_id": "maintenance",
        "subcategory": "Leaking tap",
        "location": "Block B",
        "notes": "Dripping since Monday",
    }
    body.update(overrides)
    return body


def test_create_activity_returns_serialized_row(client, admin):
    response = client.post("/api/activities", json=_new_activity(admin))

    assert response.status_code == 201
    data = response.json()
    assert data["id"].startswith("c") and len(data["id"]) == 25
    assert data["status"] == "Unassigned"
    assert data["category_id"] == "maintenance"
    assert data["timestamp"].endswith("Z")
    assert data["updates"] == []


def test_create_activity_validation_maps_to_400(client, admin):
    response = client.post("/api/activities", json=_new_activity(admin, subcategory="", latitude=120))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail.startswith("Validation failed:")
    assert "subcategory" in detail
    assert "latitude" in detail


def test_create_activity_unknown_category_is_404(client, admin):
    response = client.post("/api/activities", json=_new_activity(admin, category_id="nope"))
    assert response.status_code == 404


def test_list_activities_paginates_newest_first(client, db, admin):
    for hours in (5, 1, 3):
        make_activity(db, admin, hours_ago=hours, subcategory=f"{hours}h ago")

    response = client.get("/api/activities", params={"page": 1, "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert [a["subcategory"] for a in body["activities"]] == ["1h ago", "3h ago"]
    assert body["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalRecords": 3,
        "pageSize": 2,
        "hasNextPage": True,
        "hasPreviousPage": False,
    }


def test_list_activities_bad_pagination_falls_back_to_defaults(client, admin):
    response = client.get("/api/activities", params={"page": "abc", "limit": "500"})

    assert response.status_code == 200
    pagination = response.json()["pagination"]
    assert pagination["currentPage"] == 1
    assert pagination["pageSize"] == 100


def test_get_missing_activity_is_404(client, admin):
    assert client.get("/api/activities/cmissingmissingmissing123").status_code == 404


def test_full_update_changes_only_sent_fields(client, db, admin):
    activity = make_activity(db, admin, notes="original")

    response = client.put(
        f"/api/activities/{activity.id}",
        json={"type": "full_update", "payload": {"location": "Hall"}},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["location"] == "Hall"
    assert data["notes"] == "original"


def test_full_update_rejects_null_for_required_columns(client, db, admin):
    activity = make_activity(db, admin)

    for field in ("user_id", "category_id", "subcategory", "location"):
        response = client.put(
            f"/api/activities/{activity.id}",
            json={"type": "full_update", "payload": {field: None}},
        )
        assert response.status_code == 400
        assert field in response.json()["detail"]

    db.expire_all()
    assert db.get(Activity, activity.id).subcategory == "Broken window"


def test_full_update_allows_clearing_optional_columns(client, db, admin):
    activity = make_activity(db, admin, notes="to clear")

    response = client.put(
        f"/api/activities/{activity.id}",
        json={"type": "full_update", "payload": {"notes": None}},
    )

    assert response.status_code == 200
    assert response.json()["notes"] is None


def test_status_update_assigning_opens_unassigned_activity(client, db, admin):
    worker = make_user(db, name="Sipho", phone="+27831112222", role="Maintenance")
    activity = make_activity(db, admin)

    response = client.put(
        f"/api/activities/{activity.id}",
        json={"type": "status_update", "payload": {"assignToUserId": worker.id, "instructions": "Bring a ladder"}},
    )

    data = response.json()
    assert data["status"] == "Open"
    assert data["assigned_to_user_id"] == worker.id
    assert data["assignment_instructions"] == "Bring a ladder"


def test_reopening_resolved_activity_clears_resolution_notes(client, db, admin):
    activity = make_activity(db, admin, status="Resolved", resolution_notes="Fixed")

    response = client.put(
        f"/api/activities/{activity.id}",
        json={"type": "status_update", "payload": {"status": "Open"}},
    )

    assert response.json()["status"] == "Open"
    assert response.json()["resolution_notes"] is None


def test_unassigning_clears_assignee_and_instructions(client, db, admin):
    activity = make_activity(
        db, admin, status="In Progress", assigned_to_user_id=admin.id, assignment_instructions="Go"
    )

    response = client.put(
        f"/api/activities/{activity.id}",
        json={"type": "status_update", "payload": {"status": "Unassigned"}},
    )

    data = response.json()
    assert data["status"] == "Unassigned"
    assert data["assigned_to_user_id"] is None
    assert data["assignment_instructions"] is None


def test_unknown_update_type_is_400(client, db, admin):
    activity = make_activity(db, admin)
    response = client.put(f"/api/activities/{activity.id}", json={"type": "bogus", "payload": {}})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid update type"


def test_update_of_missing_activity_is_404(client, admin):
    response = client.put(
        "/api/activities/cmissingmissingmissing123",
        json={"type": "status_update", "payload": {"status": "Open"}},
    )
    assert response.status_code == 404


def test_delete_activity_removes_updates(client, db, admin):
    activity = make_activity(db, admin)
    make_update(db, activity, admin)

    response = client.delete(f"/api/activities/{activity.id}")

    assert response.status_code == 204
    db.expire_all()
    assert db.get(Activity, activity.id) is None
    assert client.delete(f"/api/activities/{activity.id}").status_code == 404


def test_add_update_returns_activity_with_history(client, db, admin):
    activity = make_activity(db, admin)

    response = client.post(
        f"/api/activities/{activity.id}/updates",
        json={"notes": "Ordered a new pane", "author_id": admin.id},
    )

    assert response.status_code == 201
    updates = response.json()["updates"]
    assert len(updates) == 1
    assert updates[0]["notes"] == "Ordered a new pane"
    assert updates[0]["update_type"] == "progress"


def test_add_update_with_unknown_author_is_404(client, db, admin):
    activity = make_activity(db, admin)
    response = client.post(
        f"/api/activities/{activity.id}/updates",
        json={"notes": "Hello", "author_id": "cnobodynobodynobodynobod1"},
    )
    assert response.status_code == 404


def test_mutations_are_audited(client, admin):
    from utils import get_audit_logger

    client.post("/api/activities", json=_new_activity(admin))

    actions = [entry["action_type"] for entry in get_audit_logger().get_logs_for_period(1)]
    assert "activity_created" in actions


def test_dashboard_bundle(client, db, admin):
    make_activity(db, admin)

    body = client.get("/api/data").json()

    assert {u["id"] for u in body["users"]} == {admin.id}
    assert {"learner_wellness", "maintenance", "unplanned"} <= {c["id"] for c in body["categories"]}
    assert len(body["activities"]) == 1
    assert body["pagination"]["totalRecords"] == 1
