"""Category API tests."""

from sqlalchemy.exc import SQLAlchemyError

from bookstore.extensions import db
from bookstore.models import Book
from bookstore.services import catalog_service


class TestCategories:

    def test_create_and_list(self, client, admin_headers):
        resp = client.post("/api/categories", json={"name": "Poetry", "description": "Verse"}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["name"] == "Poetry"

        listed = client.get("/api/categories")
        assert listed.status_code == 200
        assert [c["name"] for c in listed.json] == ["Poetry"]

    def test_name_required(self, client, admin_headers):
        resp = client.post("/api/categories", json={"description": "No name"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "name"

    def test_rename(self, client, category, admin_headers):
        resp = client.patch(f"/api/categories/{category.id}", json={"name": "Literary Fiction"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["name"] == "Literary Fiction"
        assert resp.json["description"] == "Novels"

    def test_rename_unknown_returns_404(self, client, admin_headers):
        resp = client.patch("/api/categories/999", json={"name": "X"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_delete_detaches_books(self, client, category, make_book, admin_headers):
        book = make_book(category_id=category.id)

        resp = client.delete(f"/api/categories/{category.id}", headers=admin_headers)

        assert resp.status_code == 204
        assert client.get("/api/categories").json == []
        assert db.session.get(Book, book.id).category_id is None
        assert client.get(f"/api/books/{book.id}").json["category_id"] is None

    def test_delete_unknown_returns_404(self, client, admin_headers):
        assert client.delete("/api/categories/999", headers=admin_headers).status_code == 404

    def test_writes_require_admin(self, client, category, customer_headers):
        assert client.post("/api/categories", json={"name": "X"}).status_code == 401
        assert client.post("/api/categories", json={"name": "X"}, headers=customer_headers).status_code == 403
        assert client.delete(f"/api/categories/{category.id}", headers=customer_headers).status_code == 403

    def test_update_storage_failure_returns_500(self, client, category, admin_headers, monkeypatch):
        def fail(**_kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(catalog_service, "update_category", fail)

        resp = client.patch(f"/api/categories/{category.id}", json={"name": "X"}, headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}
