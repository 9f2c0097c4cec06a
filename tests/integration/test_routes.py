from app.core import config

BASE = "/api/v1/permission-management"


def permission_id(client, name):
    response = client.get(f"{BASE}/permissions")
    return next(p["id"] for p in response.json()["data"] if p["name"] == name)


def effective(client, user_id="7"):
    return client.get(f"{BASE}/users/{user_id}/permissions").json()["data"]["effectivePermissions"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_list_permissions(client):
    response = client.get(f"{BASE}/permissions")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [p["name"] for p in body["data"]] == sorted(
        ["create_quiz", "view_students", "edit_syllabus", "publish_quiz", "manage_coupons"]
    )


def test_get_user_permissions(client):
    response = client.get(f"{BASE}/users/7/permissions")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {
            "userId": "7",
            "role": "Instructor",
            "effectivePermissions": ["create_quiz", "view_students"],
            "rolePermissions": ["create_quiz", "view_students"],
            "grantedPermissions": [],
            "revokedPermissions": [],
        },
    }


def test_unknown_user_uses_default_role(client):
    data = client.get(f"{BASE}/users/404/permissions").json()["data"]
    assert data["role"] == "User"
    assert data["effectivePermissions"] == []


def test_unknown_user_rejected_in_strict_mode(client, monkeypatch):
    monkeypatch.setattr(config, "DEFAULT_USER_ROLE", None)

    response = client.get(f"{BASE}/users/404/permissions")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_bulk_update(client):
    response = client.put(
        f"{BASE}/users/7/permissions",
        json={"grantPermissions": ["edit_syllabus", "fly_rocket"], "revokePermissions": ["view_students"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User permissions updated"
    assert body["data"] == {"granted": ["edit_syllabus"], "revoked": ["view_students"], "ignored": ["fly_rocket"]}
    assert effective(client) == ["create_quiz", "edit_syllabus"]


def test_bulk_update_requires_a_list(client):
    response = client.put(f"{BASE}/users/7/permissions", json={})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_single_update_and_reset_one(client):
    response = client.patch(f"{BASE}/users/7/permissions", json={"permissionName": "create_quiz", "type": "revoke"})
    assert response.status_code == 200
    assert effective(client) == ["view_students"]

    response = client.patch(f"{BASE}/users/7/permissions", json={"permissionName": "create_quiz"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "User permission updated"}
    assert effective(client) == ["create_quiz", "view_students"]


def test_single_reset_without_override_succeeds(client):
    response = client.patch(f"{BASE}/users/7/permissions", json={"permissionName": "create_quiz"})
    assert response.status_code == 200


def test_single_update_by_id(client):
    pid = permission_id(client, "publish_quiz")
    response = client.patch(f"{BASE}/users/7/permissions", json={"permissionId": pid, "type": "grant"})

    assert response.status_code == 200
    assert "publish_quiz" in effective(client)


def test_single_update_unknown_permission(client):
    response = client.patch(f"{BASE}/users/7/permissions", json={"permissionName": "fly_rocket", "type": "grant"})

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Permission not found"}


def test_legacy_endpoint_dispatches_bulk(client):
    response = client.post(
        f"{BASE}/users/7/permissions",
        json={"grantPermissions": ["edit_syllabus"], "revokePermissions": ["view_students"]},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "User permissions updated"
    assert effective(client) == ["create_quiz", "edit_syllabus"]


def test_legacy_endpoint_dispatches_single(client):
    response = client.post(f"{BASE}/users/7/permissions", json={"permissionName": "view_students", "type": "revoke"})

    assert response.status_code == 200
    assert response.json()["message"] == "User permission updated"
    assert effective(client) == ["create_quiz"]



def test_legacy_endpoint_empty_type_resets_one(client):
    client.patch(f"{BASE}/users/7/permissions", json={"permissionName": "view_students", "type": "revoke"})
    assert effective(client) == ["create_quiz"]

    response = client.post(f"{BASE}/users/7/permissions", json={"permissionName": "view_students", "type": ""})

    assert response.status_code == 200
    assert effective(client) == ["create_quiz", "view_students"]


def test_legacy_endpoint_rejects_unrecognized_body(client):
    response = client.post(f"{BASE}/users/7/permissions", json={"type": "grant"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_grant_and_revoke_wrappers(client):
    assert client.post(f"{BASE}/users/7/permissions/grant", json={"permissionName": "publish_quiz"}).status_code == 200
    assert "publish_quiz" in effective(client)

    assert client.post(f"{BASE}/users/7/permissions/revoke", json={"permissionName": "publish_quiz"}).status_code == 200
    data = client.get(f"{BASE}/users/7/permissions").json()["data"]
    assert "publish_quiz" not in data["effectivePermissions"]
    assert data["revokedPermissions"] == ["publish_quiz"]
    assert data["grantedPermissions"] == []


def test_reset_all_overrides(client):
    client.put(f"{BASE}/users/7/permissions", json={"grantPermissions": ["publish_quiz"], "revokePermissions": ["create_quiz"]})

    response = client.delete(f"{BASE}/users/7/permissions")

    assert response.json() == {"success": True, "message": "User permissions reset"}
    data = client.get(f"{BASE}/users/7/permissions").json()["data"]
    assert data["effectivePermissions"] == data["rolePermissions"]
    assert client.delete(f"{BASE}/users/7/permissions").status_code == 200


def test_role_permissions_read(client):
    response = client.get(f"{BASE}/roles/Instructor/permissions")

    assert response.json()["data"] == {
        "roleId": "Instructor",
        "roleName": "Instructor",
        "permissions": ["create_quiz", "view_students"],
        "userCount": 1,
    }


def test_role_permissions_replace(client):
    response = client.put(f"{BASE}/roles/Instructor/permissions", json={"permissions": ["publish_quiz", "bogus"]})

    assert response.status_code == 200
    assert response.json()["data"]["permissions"] == ["publish_quiz"]
    assert effective(client) == ["publish_quiz"]


def test_role_permissions_replace_with_legacy_key_and_empty_list(client):
    response = client.put(f"{BASE}/roles/Instructor/permissions", json={"permissionNames": []})

    assert response.status_code == 200
    assert client.get(f"{BASE}/roles/Instructor/permissions").json()["data"]["permissions"] == []
    assert effective(client) == []


def test_superadmin_alias(client):
    response = client.get("/api/v1/superadmin/users/7/permissions")
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "Instructor"
