from conftest import make_activity, make_update, make_user

from database import Activity, ActivityUpdate, User


def test_create_user(client, admin):
    response = client.post(
        "/api/users",
        json={"name": "  Lerato Dlamini ", "phone_number": "+27821230000", "role": "Teacher"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Lerato Dlamini"
    assert data["role"] == "Teacher"


def test_create_user_rejects_bad_phone_and_role(client, admin):
    response = client.post("/api/users", json={"name": "X", "phone_number": "0821230000", "role": "Janitor"})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "phone_number" in detail
    assert "role" in detail


def test_create_user_missing_fields_is_400(client, admin):
    assert client.post("/api/users", json={"name": "Only a name"}).status_code == 400


def test_duplicate_phone_is_409(client, db, admin):
    make_user(db, phone="+27829999999")
    response = client.post("/api/users", json={"name": "Copy", "phone_number": "+27829999999", "role": "Teacher"})
    assert response.status_code == 409


def test_list_users_sorted_by_name(client, db, admin):
    make_user(db, name="Zanele", phone="+27820000001")
    make_user(db, name="Bongani", phone="+27820000002")

    names = [u["name"] for u in client.get("/api/users").json()["users"]]

    assert names == sorted(names)
    assert "Zanele" in names and "Bongani" in names


def test_update_user_partial(client, db, admin):
    user = make_user(db)

    response = client.put(f"/api/users/{user.id}", json={"role": "Support Staff"})

    assert response.status_code == 200
    assert response.json()["role"] == "Support Staff"
    assert response.json()["name"] == user.name


def test_update_missing_user_is_404(client, admin):
    assert client.put("/api/users/cmissingmissingmissing123", json={"name": "A"}).status_code == 404


def test_update_user_with_malformed_id_is_400(client, admin):
    assert client.put("/api/users/not-a-cuid", json={"name": "A"}).status_code == 400


def test_cannot_delete_last_admin(client, admin):
    response = client.delete(f"/api/users/{admin.id}")

    assert response.status_code == 403
    assert response.json()["detail"] == "Cannot delete the last administrative user."


def test_delete_user_reassigns_work_to_admin(client, db, admin):
    teacher = make_user(db)
    logged = make_activity(db, teacher)
    assigned = make_activity(db, admin, status="Open", assigned_to_user_id=teacher.id)
    make_update(db, assigned, teacher)

    response = client.delete(f"/api/users/{teacher.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User deleted successfully"
    assert body["activitiesToReassign"] == [{"id": logged.id, "user_id": admin.id}]

    db.expire_all()
    assert db.get(User, teacher.id) is None
    assert db.get(Activity, logged.id).user_id == admin.id
    assert db.get(Activity, assigned.id).assigned_to_user_id == admin.id
    assert db.query(ActivityUpdate).filter(ActivityUpdate.author_id == teacher.id).count() == 0


def test_delete_second_admin_is_allowed(client, db, admin):
    other = make_user(db, name="Deputy", phone="+27825550000", role="Admin")
    assert client.delete(f"/api/users/{other.id}").status_code == 200
