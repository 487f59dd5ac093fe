"""
tests/test_content_routes.py -- Integration tests for the content kind routers.

Covers every kind at least once through a parametrized smoke test, then
goes deep on news/products/events:
  - Editors and admins write; customers and anonymous callers get 401/403
  - Drafts are invisible (404, not 403) to the public
  - Lookup by id or slug
  - Kind-specific fields appear at top level of the response
  - Partial updates, publish stamping, slug regeneration, delete
"""

from __future__ import annotations

import pytest

from content.models import KINDS


@pytest.fixture(scope="module")
def editor_headers(make_user, auth_headers) -> dict[str, str]:
    _, token = make_user("content_editor", role="editor")
    return auth_headers(token)


@pytest.fixture(scope="module")
def customer_headers(make_user, auth_headers) -> dict[str, str]:
    _, token = make_user("content_customer")
    return auth_headers(token)


class TestEveryKind:
    @pytest.mark.parametrize("kind", KINDS)
    def test_crud_cycle(self, api_client, editor_headers, kind: str) -> None:
        client, _, _ = api_client
        resp = client.post(f"/api/v1/{kind}", json={"title": f"First {kind}", "status": "published"}, headers=editor_headers)
        assert resp.status_code == 201, resp.text
        item = resp.json()
        assert item["kind"] == kind
        assert item["slug"] == f"first-{kind}"

        assert client.get(f"/api/v1/{kind}/{item['id']}").status_code == 200
        assert client.get(f"/api/v1/{kind}/{item['slug']}").json()["id"] == item["id"]

        resp = client.put(f"/api/v1/{kind}/{item['id']}", json={"summary": "Updated"}, headers=editor_headers)
        assert resp.status_code == 200
        assert resp.json()["summary"] == "Updated"
        assert resp.json()["title"] == f"First {kind}"

        assert client.delete(f"/api/v1/{kind}/{item['id']}", headers=editor_headers).status_code == 204
        assert client.get(f"/api/v1/{kind}/{item['id']}").status_code == 404


class TestWriteAccess:
    def test_anonymous_cannot_create(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/news", json={"title": "Nope"})
        assert resp.status_code == 401

    def test_customer_cannot_create(self, api_client, customer_headers) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/news", json={"title": "Nope"}, headers=customer_headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_can_create(self, api_client, auth_headers) -> None:
        client, token, uid = api_client
        resp = client.post("/api/v1/services", json={"title": "Maintenance"}, headers=auth_headers(token))
        assert resp.status_code == 201
        assert resp.json()["author_id"] == uid

    def test_missing_title_is_400(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/news", json={"summary": "no title"}, headers=editor_headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_unknown_kind_404(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        assert client.post("/api/v1/blogs", json={"title": "x"}, headers=editor_headers).status_code == 404


class TestVisibility:
    def test_draft_hidden_from_public(self, api_client, editor_headers, customer_headers) -> None:
        client, _, _ = api_client
        draft = client.post("/api/v1/news", json={"title": "Secret Plans"}, headers=editor_headers).json()
        assert draft["status"] == "draft"
        assert draft["published_at"] is None

        assert client.get(f"/api/v1/news/{draft['id']}").status_code == 404
        assert client.get(f"/api/v1/news/{draft['slug']}", headers=customer_headers).status_code == 404
        assert client.get(f"/api/v1/news/{draft['id']}", headers=editor_headers).status_code == 200

        public_titles = [i["title"] for i in client.get("/api/v1/news", params={"page_size": 100}).json()["items"]]
        assert "Secret Plans" not in public_titles

    def test_public_status_filter_is_ignored(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        client.post("/api/v1/projects", json={"title": "Hidden Project"}, headers=editor_headers)
        resp = client.get("/api/v1/projects", params={"status": "draft"})
        assert resp.status_code == 200
        assert all(i["status"] == "published" for i in resp.json()["items"])

    def test_editor_status_filter(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        client.post("/api/v1/projects", json={"title": "Draft Project"}, headers=editor_headers)
        resp = client.get("/api/v1/projects", params={"status": "draft"}, headers=editor_headers)
        items = resp.json()["items"]
        assert items
        assert all(i["status"] == "draft" for i in items)

    def test_publish_makes_visible(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        item = client.post("/api/v1/news", json={"title": "Coming Soon"}, headers=editor_headers).json()
        resp = client.put(f"/api/v1/news/{item['id']}", json={"status": "published"}, headers=editor_headers)
        assert resp.json()["published_at"] is not None
        assert client.get(f"/api/v1/news/{item['id']}").status_code == 200


class TestKindFields:
    def test_product_fields(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/products",
            json={"title": "Inverter 5kW", "price": 1250.0, "sku": "INV-5", "stock": 4, "status": "published"},
            headers=editor_headers,
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert (data["price"], data["sku"], data["stock"]) == (1250.0, "INV-5", 4)

        resp = client.put(f"/api/v1/products/{data['id']}", json={"stock": 0}, headers=editor_headers)
        assert resp.json()["stock"] == 0
        assert resp.json()["price"] == 1250.0

    def test_negative_price_rejected(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/products", json={"title": "Bad", "price": -1}, headers=editor_headers)
        assert resp.status_code == 400

    def test_foreign_field_ignored(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/news", json={"title": "Plain News", "price": 10}, headers=editor_headers)
        assert resp.status_code == 201
        assert "price" not in resp.json()

    def test_event_dates_validated(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/events",
            json={"title": "Expo", "starts_at": "2026-05-02T09:00:00", "ends_at": "2026-05-01T17:00:00"},
            headers=editor_headers,
        )
        assert resp.status_code == 400
        resp = client.post(
            "/api/v1/events",
            json={"title": "Expo", "location": "Hue", "starts_at": "2026-05-01T09:00:00", "ends_at": "2026-05-01T17:00:00"},
            headers=editor_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["location"] == "Hue"


class TestSlugs:
    def test_duplicate_titles_get_suffix(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        a = client.post("/api/v1/news", json={"title": "Tin tức mới"}, headers=editor_headers).json()
        b = client.post("/api/v1/news", json={"title": "Tin tức mới"}, headers=editor_headers).json()
        assert a["slug"] == "tin-tuc-moi"
        assert b["slug"] == "tin-tuc-moi-2"

    def test_explicit_slug_conflict(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        client.post("/api/v1/news", json={"title": "One", "slug": "fixed-slug"}, headers=editor_headers)
        resp = client.post("/api/v1/news", json={"title": "Two", "slug": "fixed-slug"}, headers=editor_headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "slug_taken"

    def test_all_digit_slug_lookup(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        item = client.post("/api/v1/projects", json={"title": "98765", "status": "published"}, headers=editor_headers).json()
        assert item["slug"] == "98765"
        resp = client.get("/api/v1/projects/98765")
        assert resp.status_code == 200
        assert resp.json()["id"] == item["id"]

    def test_invalid_slug_pattern(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        resp = client.post("/api/v1/news", json={"title": "Bad", "slug": "Not A Slug"}, headers=editor_headers)
        assert resp.status_code == 400

    def test_regenerate_slug_on_update(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        item = client.post("/api/v1/services", json={"title": "Old Service"}, headers=editor_headers).json()
        resp = client.put(
            f"/api/v1/services/{item['id']}",
            json={"title": "Fresh Service", "regenerate_slug": True},
            headers=editor_headers,
        )
        assert resp.json()["slug"] == "fresh-service"


class TestListing:
    def test_pagination_and_search(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        for i in range(3):
            client.post("/api/v1/events", json={"title": f"Workshop {i}", "status": "published"}, headers=editor_headers)
        resp = client.get("/api/v1/events", params={"search": "workshop", "page_size": 2})
        data = resp.json()
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["total_pages"] == 2
        assert len(data["items"]) == 2

    def test_missing_item_update_and_delete(self, api_client, editor_headers) -> None:
        client, _, _ = api_client
        assert client.put("/api/v1/news/999999", json={"title": "x"}, headers=editor_headers).status_code == 404
        assert client.delete("/api/v1/news/999999", headers=editor_headers).status_code == 404
