"""Tests for roles and permissions."""
from __future__ import annotations

from sqlalchemy import select

from storeadmin.extensions import db
from storeadmin.models import RolePermission


def _permission_rows(app, role_id: int) -> set[int]:
    with app.app_context():
        return set(
            db.session.execute(
                select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
            ).scalars()
        )


def test_replacing_permission_set(app, client, seeded, permissions) -> None:
    p1, p2, p3 = permissions
    created = client.post(
        "/api/roles",
        json={"name": "Viewer", "permissionIds": [p1, p2]},
        headers=seeded.headers.admin,
    )
    assert created.status_code == 201
    role_id = created.get_json()["id"]
    assert sorted(created.get_json()["permissionIds"]) == [p1, p2]

    updated = client.put(
        f"/api/roles/{role_id}", json={"permissionIds": [p2, p3]}, headers=seeded.headers.admin
    )

    assert updated.status_code == 200
    assert sorted(updated.get_json()["permissionIds"]) == [p2, p3]
    assert _permission_rows(app, role_id) == {p2, p3}


def test_create_role_defaults(client, seeded) -> None:
    response = client.post("/api/roles", json={"name": "Support"}, headers=seeded.headers.admin)

    assert response.status_code == 201
    assert response.get_json()["status"] == "Active"
    assert response.get_json()["permissionIds"] == []


def test_role_validation(client, seeded, permissions) -> None:
    headers = seeded.headers.admin

    unknown = client.post(
        "/api/roles", json={"name": "Viewer", "permissionIds": [999]}, headers=headers
    )
    assert unknown.status_code == 400

    duplicate = client.post("/api/roles", json={"name": "manager"}, headers=headers)
    assert duplicate.status_code == 409

    bad_status = client.post(
        "/api/roles", json={"name": "Viewer", "status": "Archived"}, headers=headers
    )
    assert bad_status.status_code == 400


def test_rename_role_conflict(client, seeded) -> None:
    response = client.put(
        f"/api/roles/{seeded.ids.manager_role}", json={"name": "admin"}, headers=seeded.headers.admin
    )

    assert response.status_code == 409


def test_roles_are_admin_only(client, seeded) -> None:
    assert client.get("/api/roles", headers=seeded.headers.manager).status_code == 403
    assert client.get("/api/permissions", headers=seeded.headers.alice).status_code == 403


def test_list_and_get_roles(client, seeded) -> None:
    roles = client.get("/api/roles", headers=seeded.headers.admin).get_json()
    assert [role["name"] for role in roles] == ["admin", "manager"]

    detail = client.get(f"/api/roles/{seeded.ids.admin_role}", headers=seeded.headers.admin)
    assert detail.get_json()["permissionIds"] == []
    assert client.get("/api/roles/999", headers=seeded.headers.admin).status_code == 404


def test_delete_role_in_use_conflicts(client, seeded) -> None:
    response = client.delete(f"/api/roles/{seeded.ids.manager_role}", headers=seeded.headers.admin)

    assert response.status_code == 409


def test_delete_unused_role_removes_links(app, client, seeded, permissions) -> None:
    role_id = client.post(
        "/api/roles",
        json={"name": "Viewer", "permissionIds": permissions[:2]},
        headers=seeded.headers.admin,
    ).get_json()["id"]

    response = client.delete(f"/api/roles/{role_id}", headers=seeded.headers.admin)

    assert response.status_code == 204
    assert _permission_rows(app, role_id) == set()


def test_permissions_listing(client, seeded, permissions) -> None:
    body = client.get("/api/permissions", headers=seeded.headers.admin).get_json()
    assert [item["name"] for item in body] == ["edit_orders", "view_orders", "view_reports"]

    detail = client.get(f"/api/permissions/{permissions[0]}", headers=seeded.headers.admin)
    assert detail.get_json()["name"] == "view_orders"
    assert client.get("/api/permissions/999", headers=seeded.headers.admin).status_code == 404


def test_update_with_same_permissions_keeps_set(app, client, seeded, permissions) -> None:
    p1, p2, _ = permissions
    role_id = client.post(
        "/api/roles", json={"name": "Viewer", "permissionIds": [p1, p2]}, headers=seeded.headers.admin
    ).get_json()["id"]

    response = client.put(
        f"/api/roles/{role_id}", json={"permissionIds": [p2, p1]}, headers=seeded.headers.admin
    )

    assert response.status_code == 200
    assert _permission_rows(app, role_id) == {p1, p2}
