from taskboard_api.models import ProjectMember
from taskboard_api.rbac import accessible_project_ids, can_access, can_manage


def test_can_access_by_membership_or_admin(db, project, owner, make_user):
    outsider = make_user("outsider")
    admin = make_user("root", role="admin")
    member = make_user("member")
    db.add(ProjectMember(project_id=project.id, user_id=member.id, role="member"))
    db.commit()

    assert can_access(db, owner, project.id) is True
    assert can_access(db, member, project.id) is True
    assert can_access(db, admin, project.id) is True
    assert can_access(db, outsider, project.id) is False

    assert can_manage(db, owner, project.id) is True
    assert can_manage(db, member, project.id) is False
    assert can_manage(db, admin, project.id) is True


def test_accessible_project_ids(db, project, owner, make_user):
    admin = make_user("root", role="admin")
    outsider = make_user("outsider")

    assert accessible_project_ids(db, owner) == [project.id]
    assert accessible_project_ids(db, outsider) == []
    assert accessible_project_ids(db, admin) is None


def test_missing_and_invalid_tokens(client):
    resp = client.get("/me")
    assert resp.status_code == 401

    resp = client.get("/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.json()["detail"].startswith("Invalid token")


def test_me_provisions_user_from_claims(client, headers_for):
    resp = client.get("/me", headers=headers_for("carol", role="admin"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["subject"] == "carol"
    assert body["role"] == "admin"
    assert body["email"] == "carol@example.com"

    resp = client.get("/me", headers=headers_for("carol"))
    assert resp.json()["id"] == body["id"]
    assert resp.json()["role"] == "member"


def test_outsider_cannot_see_board(client, headers_for):
    resp = client.post("/projects", json={"name": "Private"}, headers=headers_for("alice"))
    project_id = resp.json()["id"]

    resp = client.get(f"/statuses/kanban/{project_id}", headers=headers_for("mallory"))
    assert resp.status_code == 403
    assert resp.json()["code"] == "access_denied"

    resp = client.get(f"/statuses/kanban/{project_id}", headers=headers_for("boss", role="admin"))
    assert resp.status_code == 200

    resp = client.get("/statuses/kanban/99999", headers=headers_for("alice"))
    assert resp.status_code == 404


def test_unknown_token_roles_map_to_member(client, headers_for):
    resp = client.get("/me", headers=headers_for("dave", role="viewer"))

    assert resp.status_code == 200
    assert resp.json()["role"] == "member"
