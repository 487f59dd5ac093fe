"""
tests/test_roles.py -- Role catalogue checks (auth/roles.py) and /api/v1/roles routes.
"""

from __future__ import annotations

from auth import roles
from auth.models import User


def _user(role: str, uid: int = 1) -> User:
    return User(username="u", email="u@example.com", hashed_password="x", role=role, id=uid)


class TestRoleChecks:
    def test_catalogue(self) -> None:
        assert roles.valid_roles() == ["admin", "editor", "customer"]
        assert roles.DEFAULT_ROLE == "customer"
        assert roles.is_valid_role("editor")
        assert not roles.is_valid_role("root")
        assert not roles.is_valid_role(None)

    def test_normalize_role(self) -> None:
        assert roles.normalize_role("admin") == "admin"
        assert roles.normalize_role("bogus") == "customer"
        assert roles.normalize_role(None) == "customer"

    def test_has_role_accepts_str_or_list(self) -> None:
        editor = _user("editor")
        assert roles.has_role(editor, "editor")
        assert roles.has_role(editor, ["admin", "editor"])
        assert not roles.has_role(editor, "admin")

    def test_hierarchy(self) -> None:
        assert roles.has_minimum_role(_user("admin"), "editor")
        assert roles.has_minimum_role(_user("editor"), "editor")
        assert not roles.has_minimum_role(_user("customer"), "editor")
        assert not roles.has_minimum_role(_user("unknown"), "customer")

    def test_ownership(self) -> None:
        user = _user("customer", uid=5)
        assert roles.is_owner(user, {"user_id": 5})
        assert roles.is_owner(user, {"user_id": "5"})
        assert not roles.is_owner(user, {"user_id": 6})
        assert roles.is_owner(user, User(username="x", email="x@example.com", hashed_password="x", id=9), owner_field="id") is False

    def test_has_access_falls_back_to_ownership(self) -> None:
        user = _user("customer", uid=5)
        assert roles.has_access(_user("admin"), "admin")
        assert roles.has_access(user, "admin", {"user_id": 5})
        assert not roles.has_access(user, "admin", {"user_id": 6})
        assert not roles.has_access(user, "admin")


class TestRoleRoutes:
    def test_list_roles_public(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/roles")
        assert resp.status_code == 200
        assert resp.json() == [
            {"name": "admin", "level": 100},
            {"name": "editor", "level": 50},
            {"name": "customer", "level": 10},
        ]

    def test_defaults(self, api_client) -> None:
        client, _, _ = api_client
        data = client.get("/api/v1/roles/defaults").json()
        assert data == {"ADMIN": "admin", "EDITOR": "editor", "CUSTOMER": "customer", "DEFAULT": "customer"}

    def test_validate_requires_auth(self, api_client, auth_headers) -> None:
        client, token, _ = api_client
        assert client.get("/api/v1/roles/validate/editor").status_code == 401
        assert client.get("/api/v1/roles/validate/editor", headers=auth_headers(token)).json()["valid"] is True
        assert client.get("/api/v1/roles/validate/pirate", headers=auth_headers(token)).json()["valid"] is False

    def test_users_with_role(self, api_client, make_user, auth_headers) -> None:
        client, token, _ = api_client
        make_user("role_editor_a", role="editor")
        make_user("role_editor_b", role="editor")
        resp = client.get("/api/v1/roles/editor/users", headers=auth_headers(token))
        assert resp.status_code == 200, resp.text
        names = [u["username"] for u in resp.json()["items"]]
        assert names == ["role_editor_a", "role_editor_b"]

    def test_users_with_unknown_role(self, api_client, auth_headers) -> None:
        client, token, _ = api_client
        resp = client.get("/api/v1/roles/pirate/users", headers=auth_headers(token))
        assert resp.status_code == 404

    def test_users_with_role_admin_only(self, api_client, make_user, auth_headers) -> None:
        client, _, _ = api_client
        _, token = make_user("role_snoop", role="editor")
        assert client.get("/api/v1/roles/admin/users", headers=auth_headers(token)).status_code == 403
