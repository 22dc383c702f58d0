"""
Order API tests.

Verifies:
- Placing an order moves stock and writes one ledger row per line
- Rejected orders leave stock and the ledger untouched
- Cancellation restores stock exactly once
- Status updates are admin-only and limited to the configured workflow
"""

import pytest

from bookstore.extensions import db
from bookstore.models import Book, InventoryHistory, Order


def _order_body(*items, **overrides):
    body = {
        "items": [{"book_id": book_id, "quantity": qty} for book_id, qty in items],
        "customer_name": "Ada Lovelace",
        "address": "12 Analytical Row, London",
    }
    body.update(overrides)
    return body


def _ledger(book_id):
    return (
        db.session.query(InventoryHistory)
        .filter_by(book_id=book_id)
        .order_by(InventoryHistory.id)
        .all()
    )


def _stock(book_id):
    return db.session.get(Book, book_id).stock


class TestCreateOrder:

    def test_order_decrements_stock_and_records_ledger(self, client, make_book):
        book = make_book(stock=10, price_cents=500)

        resp = client.post("/api/orders", json=_order_body((book.id, 3)))

        assert resp.status_code == 201
        order = resp.json
        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["total_amount_cents"] == 1500
        assert order["items"] == [
            {"book_id": book.id, "quantity": 3, "unit_price_cents": 500, "line_total_cents": 1500}
        ]

        assert _stock(book.id) == 7
        entries = _ledger(book.id)
        assert [(e.change_amount, e.reason) for e in entries] == [
            (10, "initial stock"),
            (-3, f"order #{order['id']}"),
        ]

    def test_total_is_sum_of_lines(self, client, make_book):
        a = make_book(price_cents=899, stock=5)
        b = make_book(price_cents=1250, stock=5)

        resp = client.post("/api/orders", json=_order_body((a.id, 2), (b.id, 3)))

        assert resp.status_code == 201
        assert resp.json["total_amount_cents"] == 2 * 899 + 3 * 1250

    def test_later_price_change_does_not_alter_total(self, client, make_book, admin_headers):
        book = make_book(price_cents=1000)
        order = client.post("/api/orders", json=_order_body((book.id, 2))).json

        resp = client.patch(f"/api/books/{book.id}", json={"price_cents": 5000}, headers=admin_headers)
        assert resp.status_code == 200

        orders = client.get("/api/orders", headers=admin_headers).json
        assert orders[0]["id"] == order["id"]
        assert orders[0]["total_amount_cents"] == 2000
        assert orders[0]["items"][0]["unit_price_cents"] == 1000

    def test_payment_method_is_stored(self, client, make_book):
        book = make_book()
        resp = client.post("/api/orders", json=_order_body((book.id, 1), payment_method="cod"))
        assert resp.status_code == 201
        assert resp.json["payment_method"] == "cod"

    def test_insufficient_stock_rejected_without_side_effects(self, client, make_book):
        book = make_book(stock=2)

        resp = client.post("/api/orders", json=_order_body((book.id, 5)))

        assert resp.status_code == 409
        assert "Insufficient stock" in resp.json["error"]
        assert resp.json["details"]["items"][0]["stock"] == 2
        assert _stock(book.id) == 2
        assert [e.reason for e in _ledger(book.id)] == ["initial stock"]
        assert db.session.query(Order).count() == 0

    def test_failing_line_leaves_earlier_lines_untouched(self, client, make_book):
        plenty = make_book(stock=10)
        scarce = make_book(stock=1)

        resp = client.post("/api/orders", json=_order_body((plenty.id, 4), (scarce.id, 2)))

        assert resp.status_code == 409
        assert _stock(plenty.id) == 10
        assert _stock(scarce.id) == 1
        assert len(_ledger(plenty.id)) == 1

    def test_repeated_book_quantities_are_summed(self, client, make_book):
        book = make_book(stock=5)

        resp = client.post("/api/orders", json=_order_body((book.id, 3), (book.id, 3)))

        assert resp.status_code == 409
        assert resp.json["details"]["items"][0]["requested_quantity"] == 6
        assert _stock(book.id) == 5

    def test_exact_stock_can_be_ordered(self, client, make_book):
        book = make_book(stock=4)
        resp = client.post("/api/orders", json=_order_body((book.id, 4)))
        assert resp.status_code == 201
        assert _stock(book.id) == 0

    def test_unknown_book_returns_404(self, client, make_book):
        book = make_book()
        resp = client.post("/api/orders", json=_order_body((book.id, 1), (book.id + 999, 1)))
        assert resp.status_code == 404
        assert _stock(book.id) == 10

    def test_out_of_range_book_id_is_rejected(self, client, make_book):
        book = make_book()
        resp = client.post("/api/orders", json=_order_body((10**20, 1)))

        assert resp.status_code == 400
        assert resp.json["field"] == "items[0].book_id"
        assert _stock(book.id) == 10
        assert db.session.query(Order).count() == 0

    def test_deleted_book_cannot_be_ordered(self, client, make_book, admin_headers):
        book = make_book()
        assert client.delete(f"/api/books/{book.id}", headers=admin_headers).status_code == 204

        resp = client.post("/api/orders", json=_order_body((book.id, 1)))
        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "body,field",
        [
            ({"items": [], "customer_name": "A", "address": "B"}, "items"),
            ({"customer_name": "A", "address": "B"}, "items"),
            ({"items": [{"book_id": 1, "quantity": 0}], "customer_name": "A", "address": "B"}, "items[0].quantity"),
            ({"items": [{"book_id": 1, "quantity": -2}], "customer_name": "A", "address": "B"}, "items[0].quantity"),
            ({"items": [{"book_id": 1, "quantity": 1.5}], "customer_name": "A", "address": "B"}, "items[0].quantity"),
            ({"items": [{"quantity": 1}], "customer_name": "A", "address": "B"}, "items[0].book_id"),
            ({"items": [{"book_id": 1, "quantity": 1}], "address": "B"}, "customer_name"),
            ({"items": [{"book_id": 1, "quantity": 1}], "customer_name": "  ", "address": "B"}, "customer_name"),
            ({"items": [{"book_id": 1, "quantity": 1}], "customer_name": "A"}, "address"),
            (
                {"items": [{"book_id": 1, "quantity": 1}], "customer_name": "A", "address": "B", "payment_method": "iou"},
                "payment_method",
            ),
            ({"items": [{"book_id": 1, "quantity": 1}], "customer_name": "A", "address": "B", "status": "delivered"}, "status"),
        ],
    )
    def test_malformed_body_returns_400(self, client, make_book, body, field):
        book = make_book()
        resp = client.post("/api/orders", json=body)

        assert resp.status_code == 400
        assert resp.json["field"] == field
        assert _stock(book.id) == 10
        assert db.session.query(Order).count() == 0

    def test_guest_order_has_no_user(self, client, make_book):
        book = make_book()
        resp = client.post("/api/orders", json=_order_body((book.id, 1)))
        assert resp.json["user_id"] is None

    def test_signed_in_order_is_linked_to_user(self, client, make_book, customer_user, customer_headers):
        book = make_book()
        resp = client.post("/api/orders", json=_order_body((book.id, 1)), headers=customer_headers)
        assert resp.status_code == 201
        assert resp.json["user_id"] == customer_user.id

    def test_require_auth_setting_blocks_guests(self, app, client, make_book, customer_headers, monkeypatch):
        monkeypatch.setitem(app.config, "ORDERS_REQUIRE_AUTH", True)
        book = make_book()

        assert client.post("/api/orders", json=_order_body((book.id, 1))).status_code == 401
        resp = client.post("/api/orders", json=_order_body((book.id, 1)), headers=customer_headers)
        assert resp.status_code == 201


class TestOrderStatus:

    def _place(self, client, book, qty=3):
        resp = client.post("/api/orders", json=_order_body((book.id, qty)))
        assert resp.status_code == 201
        return resp.json

    def test_cancel_restores_stock_and_records_ledger(self, client, make_book, admin_headers):
        book = make_book(stock=10)
        order = self._place(client, book)
        assert _stock(book.id) == 7

        resp = client.patch(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["status"] == "cancelled"
        assert _stock(book.id) == 10
        entries = _ledger(book.id)
        assert [(e.change_amount, e.reason) for e in entries[1:]] == [
            (-3, f"order #{order['id']}"),
            (3, f"order #{order['id']} cancelled"),
        ]

    def test_cancelling_twice_restores_once(self, client, make_book, admin_headers):
        book = make_book(stock=10)
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"

        assert client.patch(url, json={"status": "cancelled"}, headers=admin_headers).status_code == 200
        assert client.patch(url, json={"status": "cancelled"}, headers=admin_headers).status_code == 200

        assert _stock(book.id) == 10
        assert sum(1 for e in _ledger(book.id) if e.reason.endswith("cancelled")) == 1

    def test_cancelled_order_cannot_be_reopened(self, client, make_book, admin_headers):
        book = make_book(stock=10)
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"
        client.patch(url, json={"status": "cancelled"}, headers=admin_headers)

        resp = client.patch(url, json={"status": "pending"}, headers=admin_headers)

        assert resp.status_code == 409
        assert db.session.get(Order, order["id"]).status == "cancelled"
        assert _stock(book.id) == 10

    def test_forward_progression_does_not_touch_stock(self, client, make_book, admin_headers):
        book = make_book(stock=10)
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"

        for status in ("processing", "shipped", "delivered"):
            resp = client.patch(url, json={"status": status}, headers=admin_headers)
            assert resp.status_code == 200
            assert resp.json["status"] == status

        assert _stock(book.id) == 7
        assert len(_ledger(book.id)) == 2

    def test_backward_transition_is_accepted(self, client, make_book, admin_headers):
        book = make_book()
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"

        client.patch(url, json={"status": "delivered"}, headers=admin_headers)
        resp = client.patch(url, json={"status": "pending"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "pending"

    def test_cancel_after_delivery_still_restores(self, client, make_book, admin_headers):
        book = make_book(stock=10)
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"

        client.patch(url, json={"status": "delivered"}, headers=admin_headers)
        client.patch(url, json={"status": "cancelled"}, headers=admin_headers)
        assert _stock(book.id) == 10

    def test_cancel_restores_stock_of_deleted_book(self, client, make_book, admin_headers):
        book = make_book(stock=10)
        order = self._place(client, book)
        client.delete(f"/api/books/{book.id}", headers=admin_headers)

        client.patch(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
        assert _stock(book.id) == 10

    def test_payment_status_update(self, client, make_book, admin_headers):
        book = make_book()
        order = self._place(client, book)

        resp = client.patch(
            f"/api/orders/{order['id']}/status",
            json={"status": "processing", "payment_status": "paid"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["payment_status"] == "paid"

    @pytest.mark.parametrize(
        "body,field",
        [
            ({}, "status"),
            ({"status": "lost"}, "status"),
            ({"status": "completed"}, "status"),
            ({"status": "shipped", "payment_status": "maybe"}, "payment_status"),
        ],
    )
    def test_invalid_status_body(self, client, make_book, admin_headers, body, field):
        book = make_book()
        order = self._place(client, book)
        resp = client.patch(f"/api/orders/{order['id']}/status", json=body, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == field

    def test_simple_workflow(self, app, client, make_book, admin_headers, monkeypatch):
        monkeypatch.setitem(app.config, "ORDER_WORKFLOW", "simple")
        book = make_book()
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"

        assert client.patch(url, json={"status": "shipped"}, headers=admin_headers).status_code == 400
        resp = client.patch(url, json={"status": "completed"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "completed"

    def test_unknown_order_returns_404(self, client, admin_headers):
        resp = client.patch("/api/orders/9999/status", json={"status": "cancelled"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_unknown_order_is_reported_before_bad_status(self, client, admin_headers):
        resp = client.patch("/api/orders/9999/status", json={"status": "lost"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_requires_admin(self, client, make_book, customer_headers):
        book = make_book()
        order = self._place(client, book)
        url = f"/api/orders/{order['id']}/status"

        assert client.patch(url, json={"status": "cancelled"}).status_code == 401
        assert client.patch(url, json={"status": "cancelled"}, headers=customer_headers).status_code == 403
        assert _stock(book.id) == 7


class TestOrderListing:

    def test_admin_lists_all_orders_newest_first(self, client, make_book, admin_headers):
        book = make_book()
        first = client.post("/api/orders", json=_order_body((book.id, 1))).json
        second = client.post("/api/orders", json=_order_body((book.id, 1))).json

        resp = client.get("/api/orders", headers=admin_headers)
        assert resp.status_code == 200
        assert [o["id"] for o in resp.json] == [second["id"], first["id"]]

    def test_admin_can_filter_by_status(self, client, make_book, admin_headers):
        book = make_book()
        order = client.post("/api/orders", json=_order_body((book.id, 1))).json
        client.post("/api/orders", json=_order_body((book.id, 1)))
        client.patch(f"/api/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin_headers)

        resp = client.get("/api/orders?status=shipped", headers=admin_headers)
        assert [o["id"] for o in resp.json] == [order["id"]]

    def test_customer_cannot_list_all_orders(self, client, customer_headers):
        assert client.get("/api/orders", headers=customer_headers).status_code == 403

    def test_my_orders_only_returns_callers_orders(self, client, make_book, customer_headers):
        book = make_book()
        mine = client.post("/api/orders", json=_order_body((book.id, 1)), headers=customer_headers).json
        client.post("/api/orders", json=_order_body((book.id, 1)))

        resp = client.get("/api/orders/my-orders", headers=customer_headers)
        assert resp.status_code == 200
        assert [o["id"] for o in resp.json] == [mine["id"]]

    def test_my_orders_requires_auth(self, client):
        assert client.get("/api/orders/my-orders").status_code == 401

    def test_customer_reads_own_order_only(self, client, make_book, customer_headers, admin_headers):
        book = make_book()
        mine = client.post("/api/orders", json=_order_body((book.id, 1)), headers=customer_headers).json
        guest = client.post("/api/orders", json=_order_body((book.id, 1))).json

        assert client.get(f"/api/orders/{mine['id']}", headers=customer_headers).status_code == 200
        assert client.get(f"/api/orders/{guest['id']}", headers=customer_headers).status_code == 404
        assert client.get(f"/api/orders/{guest['id']}", headers=admin_headers).status_code == 200
