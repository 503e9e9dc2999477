"""
Shop tests: products, orders and order receipt verification.

Verifies:
- Prices are computed server-side (sale price honoured)
- Stock is checked before anything is written and decremented on order
- Cancelling restores stock and cancels the pending transaction
- Receipt approval confirms the order and completes the transaction;
  rejection leaves the transaction untouched
- Product deletion is two-step (inactive, then permanent)
"""

import io
from datetime import date, timedelta

from pawpal.models import Notification, Order, OrderItem, Product, Transaction
from pawpal.services import order_service


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def place(client, headers, product, quantity=2, **extra):
    payload = {
        "items": [{"product_id": product.id, "quantity": quantity}],
        "paymentMethod": "gcash",
        "receiptUrl": "/uploads/order-receipts/order_receipt_1_1700000000000.png",
    }
    payload.update(extra)
    return client.post("/api/client/orders", headers=headers, json=payload)


# =============================================================================
# PLACING ORDERS
# =============================================================================


class TestPlaceOrder:

    def test_place_order_decrements_stock(self, client, client_headers, client_user, product, db_session):
        resp = place(client, client_headers, product, quantity=3, shippingFee=50)
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["status"] == "pending"
        assert order["subtotal"] == 1350
        assert order["total_amount"] == 1400
        assert order["customer_name"] == "Ana Cruz"
        assert order["shipping_address"] == "12 Mabini St"
        assert order["order_number"] == f"ORD-{order['id']:04d}"
        assert order["items"][0]["quantity"] == 3

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 7

        txn = db_session.query(Transaction).filter_by(order_id=order["id"]).one()
        assert txn.transaction_type == "product_purchase"
        assert txn.status == "pending"
        assert txn.description == "Order - 1 item"

    def test_client_price_is_ignored(self, client, client_headers, product):
        resp = client.post("/api/client/orders", headers=client_headers, json={
            "items": [{"product_id": product.id, "quantity": 1, "price": 1}],
            "paymentMethod": "cash",
        })
        assert resp.status_code == 201
        assert resp.json["order"]["items"][0]["price"] == 450

    def test_sale_price_applies(self, client, client_headers, product, db_session):
        product.is_on_sale = True
        product.discount_type = "percentage"
        product.discount_value = 10
        product.discount_start_date = date.today() - timedelta(days=1)
        product.discount_end_date = date.today() + timedelta(days=1)
        db_session.commit()

        resp = place(client, client_headers, product, quantity=1)
        assert resp.status_code == 201
        assert resp.json["order"]["subtotal"] == 405

    def test_insufficient_stock_writes_nothing(self, client, client_headers, product, db_session):
        resp = place(client, client_headers, product, quantity=11)
        assert resp.status_code == 400
        assert resp.json["error"] == "Insufficient stock for Premium Kibble 2kg. Available: 10"

        db_session.expire_all()
        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, product.id).stock_quantity == 10

    def test_product_rows_are_locked_before_the_stock_check(self, client, client_headers, product, monkeypatch):
        locked = []

        def record(query):
            locked.append(query.column_descriptions[0]["entity"])
            return query.with_for_update()

        monkeypatch.setattr(order_service, "lock_for_update", record)
        resp = place(client, client_headers, product, quantity=1)
        assert resp.status_code == 201
        assert locked == [Product]

    def test_repeated_lines_share_one_stock_check(self, client, client_headers, product, db_session):
        resp = client.post("/api/client/orders", headers=client_headers, json={
            "items": [
                {"product_id": product.id, "quantity": 8},
                {"product_id": product.id, "quantity": 8},
            ],
            "paymentMethod": "cash",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Insufficient stock for Premium Kibble 2kg. Available: 10"

        db_session.expire_all()
        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, product.id).stock_quantity == 10

    def test_repeated_lines_are_merged(self, client, client_headers, product, db_session):
        resp = client.post("/api/client/orders", headers=client_headers, json={
            "items": [
                {"product_id": product.id, "quantity": 3},
                {"product_id": product.id, "quantity": 2},
            ],
            "paymentMethod": "cash",
        })
        assert resp.status_code == 201
        assert [i["quantity"] for i in resp.json["order"]["items"]] == [5]
        assert resp.json["order"]["subtotal"] == 2250

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 5

    def test_receipt_required_for_non_cash(self, client, client_headers, product):
        resp = place(client, client_headers, product, receiptUrl=None)
        assert resp.status_code == 400
        assert resp.json["error"] == "Payment receipt is required"

    def test_unknown_product(self, client, client_headers):
        resp = client.post("/api/client/orders", headers=client_headers, json={
            "items": [{"product_id": 9999, "quantity": 1}],
            "paymentMethod": "cash",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Product with ID 9999 not found"

    def test_empty_items_rejected(self, client, client_headers):
        resp = client.post("/api/client/orders", headers=client_headers, json={"items": [], "paymentMethod": "cash"})
        assert resp.status_code == 400

    def test_cancel_restores_stock(self, client, client_headers, product, db_session):
        order_id = place(client, client_headers, product, quantity=4).json["order"]["id"]

        resp = client.post(f"/api/client/orders/{order_id}/cancel", headers=client_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "cancelled"

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 10
        assert db_session.query(Transaction).filter_by(order_id=order_id).one().status == "cancelled"

    def test_cancel_confirmed_order_refused(self, client, client_headers, admin_headers, product):
        order_id = place(client, client_headers, product).json["order"]["id"]
        client.post(f"/api/admin/orders/{order_id}/verify-receipt", headers=admin_headers, json={"approved": True})

        resp = client.post(f"/api/client/orders/{order_id}/cancel", headers=client_headers)
        assert resp.status_code == 400

    def test_other_client_cannot_see_order(self, client, client_headers, other_headers, product):
        order_id = place(client, client_headers, product).json["order"]["id"]
        resp = client.get(f"/api/client/orders/{order_id}", headers=other_headers)
        assert resp.status_code == 404

    def test_upload_receipt_for_order(self, client, client_headers, product):
        order_id = place(client, client_headers, product).json["order"]["id"]

        resp = client.post(
            "/api/client/orders/upload-receipt",
            headers=client_headers,
            data={"file": (io.BytesIO(PNG_BYTES), "receipt.png", "image/png"), "orderId": str(order_id)},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        assert resp.json["url"].startswith("/uploads/order-receipts/order_receipt_")
        assert resp.json["order"]["receipt_url"] == resp.json["url"]
        assert resp.json["order"]["receipt_verified"] is False


# =============================================================================
# ORDER RECEIPT VERIFICATION
# =============================================================================


class TestOrderReceiptVerification:

    def test_approve_confirms_and_completes_transaction(
        self, client, client_headers, admin_headers, client_user, product, db_session
    ):
        order_id = place(client, client_headers, product).json["order"]["id"]

        resp = client.post(f"/api/admin/orders/{order_id}/verify-receipt", headers=admin_headers, json={"approved": True})
        assert resp.status_code == 200
        assert resp.json["message"] == "Receipt verified and order confirmed successfully"
        assert resp.json["order"]["status"] == "confirmed"
        assert resp.json["order"]["receipt_verified"] is True

        assert db_session.query(Transaction).filter_by(order_id=order_id).one().status == "completed"
        note = db_session.query(Notification).filter_by(user_id=client_user.id).one()
        assert note.title == "Order Confirmed"

    def test_reject_returns_to_pending(
        self, client, client_headers, admin_headers, client_user, product, db_session
    ):
        order_id = place(client, client_headers, product).json["order"]["id"]

        resp = client.post(f"/api/admin/orders/{order_id}/verify-receipt", headers=admin_headers, json={"approved": False})
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "pending"
        assert resp.json["order"]["receipt_verified"] is False

        assert db_session.query(Transaction).filter_by(order_id=order_id).one().status == "pending"
        note = db_session.query(Notification).filter_by(user_id=client_user.id).one()
        assert note.title == "Receipt Rejected"

    def test_cash_order_without_receipt(self, client, client_headers, admin_headers, product):
        order_id = client.post("/api/client/orders", headers=client_headers, json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "paymentMethod": "cash",
        }).json["order"]["id"]

        resp = client.post(f"/api/admin/orders/{order_id}/verify-receipt", headers=admin_headers, json={"approved": True})
        assert resp.status_code == 400
        assert resp.json["error"] == "No receipt found for this order"


# =============================================================================
# ADMIN ORDER MANAGEMENT
# =============================================================================


class TestAdminOrders:

    def test_status_change_notifies_owner(self, client, client_headers, admin_headers, client_user, product, db_session):
        order_id = place(client, client_headers, product).json["order"]["id"]

        resp = client.patch(f"/api/admin/orders/{order_id}", headers=admin_headers, json={"status": "shipped"})
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "shipped"
        assert db_session.query(Notification).filter_by(user_id=client_user.id).count() == 1

    def test_invalid_status(self, client, client_headers, admin_headers, product):
        order_id = place(client, client_headers, product).json["order"]["id"]
        resp = client.patch(f"/api/admin/orders/{order_id}", headers=admin_headers, json={"status": "lost"})
        assert resp.status_code == 400

    def test_admin_cancel_restores_stock(self, client, client_headers, admin_headers, product, db_session):
        order_id = place(client, client_headers, product, quantity=5).json["order"]["id"]
        client.patch(f"/api/admin/orders/{order_id}", headers=admin_headers, json={"status": "cancelled"})

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_quantity == 10

    def test_cancelled_order_cannot_be_reopened(self, client, client_headers, admin_headers, product, db_session):
        order_id = place(client, client_headers, product, quantity=4).json["order"]["id"]
        resp = client.patch(f"/api/admin/orders/{order_id}", headers=admin_headers, json={"status": "cancelled"})
        assert resp.status_code == 200

        resp = client.patch(f"/api/admin/orders/{order_id}", headers=admin_headers, json={"status": "pending"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Cancelled orders cannot be reopened"

        client.patch(f"/api/admin/orders/{order_id}", headers=admin_headers, json={"status": "cancelled"})

        db_session.expire_all()
        assert db_session.get(Order, order_id).status == "cancelled"
        assert db_session.get(Product, product.id).stock_quantity == 10

    def test_delete_detaches_transactions(self, client, client_headers, admin_headers, product, db_session):
        order_id = place(client, client_headers, product).json["order"]["id"]

        resp = client.delete(f"/api/admin/orders/{order_id}", headers=admin_headers)
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Order, order_id) is None
        txn = db_session.query(Transaction).one()
        assert txn.order_id is None
        assert txn.reference_id == order_id
        assert txn.status == "cancelled"

    def test_admin_list_search(self, client, client_headers, admin_headers, product):
        place(client, client_headers, product)
        resp = client.get("/api/admin/orders?search=Ana", headers=admin_headers)
        assert resp.status_code == 200
        assert len(resp.json["orders"]) == 1


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProducts:

    def test_create_product(self, client, admin_headers):
        resp = client.post("/api/admin/products", headers=admin_headers, json={
            "name": "Flea Collar",
            "category": "accessories",
            "price": 299.5,
            "stock_quantity": 20,
            "low_stock_threshold": 5,
            "sku": "FC-001",
        })
        assert resp.status_code == 201
        assert resp.json["product"]["status"] == "active"
        assert resp.json["product"]["is_on_sale"] is False

    def test_missing_fields(self, client, admin_headers):
        resp = client.post("/api/admin/products", headers=admin_headers, json={"name": "Leash"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Missing required fields"

    def test_duplicate_sku(self, client, admin_headers, product):
        resp = client.post("/api/admin/products", headers=admin_headers, json={
            "name": "Kibble copy",
            "category": "food",
            "price": 100,
            "stock_quantity": 1,
            "low_stock_threshold": 1,
            "sku": product.sku,
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "SKU already exists"

    def test_percentage_discount_bounds(self, client, admin_headers, product):
        resp = client.put(f"/api/admin/products/{product.id}", headers=admin_headers, json={
            "is_on_sale": True,
            "discount_type": "percentage",
            "discount_value": 150,
        })
        assert resp.status_code == 400

    def test_permanent_delete_requires_inactive(self, client, admin_headers, product):
        resp = client.delete(f"/api/admin/products/{product.id}/permanent", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Product must be moved to inactive status before permanent deletion"

    def test_two_step_delete_keeps_order_history(
        self, client, client_headers, admin_headers, product, db_session
    ):
        place(client, client_headers, product, quantity=1)

        resp = client.delete(f"/api/admin/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["status"] == "inactive"

        resp = client.delete(f"/api/admin/products/{product.id}/permanent", headers=admin_headers)
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Product, product.id) is None
        item = db_session.query(OrderItem).one()
        assert item.product_id is None
        assert item.price == 450

    def test_client_catalog_hides_inactive(self, client, client_headers, admin_headers, product):
        client.delete(f"/api/admin/products/{product.id}", headers=admin_headers)
        resp = client.get("/api/client/products", headers=client_headers)
        assert resp.status_code == 200
        assert resp.json["products"] == []

    def test_upload_photo_rejects_non_image(self, client, admin_headers, product):
        resp = client.post(
            "/api/admin/products/upload",
            headers=admin_headers,
            data={"file": (io.BytesIO(b"%PDF-1.4"), "invoice.pdf", "application/pdf"), "product_id": str(product.id)},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid file type. Only JPEG, PNG, and WebP images are allowed."

    def test_upload_photo_attaches_to_product(self, client, admin_headers, product, db_session):
        resp = client.post(
            "/api/admin/products/upload",
            headers=admin_headers,
            data={"file": (io.BytesIO(PNG_BYTES), "kibble.png", "image/png"), "product_id": str(product.id)},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        db_session.expire_all()
        assert db_session.get(Product, product.id).photo_url == resp.json["url"]

        served = client.get(resp.json["url"])
        assert served.status_code == 200
        assert served.data == PNG_BYTES
