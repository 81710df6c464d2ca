"""
Product and stock API tests.

Covers create-or-restock by barcode, barcode conflicts, the product
cascade delete, manual stock receipt/adjustment and the bulk import.
"""

from decimal import Decimal

from condostock.models import Batch, Product, Sale, SaleItem, Stock
from condostock.services import inventory_service

from conftest import add_lot, make_product


class TestProducts:

    def test_create_product_with_initial_stock(self, client, admin_headers, db_session):
        resp = client.post("/api/products", json={
            "name": "Café 500g",
            "barcode": "7896005800010",
            "price": "18.90",
            "minStock": 3,
            "stock": 12,
        }, headers=admin_headers)

        assert resp.status_code == 201
        product = resp.json["product"]
        assert resp.json["created"] is True
        assert product["price"] == "18.90"
        assert product["min_stock"] == 3
        assert product["total_stock"] == 12

        batch = db_session.query(Batch).filter_by(product_id=product["id"]).one()
        assert batch.code.startswith("LOTE-")

    def test_existing_barcode_restocks(self, client, admin_headers, db_session, milk):
        resp = client.post("/api/products", json={
            "name": "ignored on restock",
            "barcode": milk.barcode,
            "price": 5.10,
            "stock": 10,
        }, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["created"] is False
        assert resp.json["product"]["total_stock"] == 18
        assert resp.json["product"]["price"] == "5.10"
        assert db_session.query(Product).count() == 1
        assert db_session.query(Batch).filter_by(product_id=milk.id).count() == 3

    def test_new_product_requires_name(self, client, admin_headers):
        resp = client.post("/api/products", json={"barcode": "123", "price": 1}, headers=admin_headers)
        assert resp.status_code == 400

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={
            "name": "X", "barcode": "124", "price": -1,
        }, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["kind"] == "INVALID_REQUEST"

    def test_list_orders_by_name_with_totals(self, client, owner_headers, db_session, milk):
        make_product(db_session, name="Açúcar", barcode="789000000030")

        resp = client.get("/api/products", headers=owner_headers)

        assert resp.status_code == 200
        names = [p["name"] for p in resp.json["products"]]
        assert names == ["Açúcar", "Leite Integral"]
        assert resp.json["products"][1]["total_stock"] == 8
        assert resp.json["products"][0]["total_stock"] == 0

    def test_find_by_barcode(self, client, owner_headers, milk):
        resp = client.get(f"/api/products/barcode/{milk.barcode}", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["id"] == milk.id

        assert client.get("/api/products/barcode/000", headers=owner_headers).status_code == 404

    def test_get_missing_product(self, client, owner_headers):
        resp = client.get("/api/products/unknown", headers=owner_headers)
        assert resp.status_code == 404
        assert resp.json["details"]["entity"] == "product"

    def test_update_product(self, client, admin_headers, milk):
        resp = client.patch(f"/api/products/{milk.id}", json={"price": "6.00", "name": "Leite"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["product"]["price"] == "6.00"
        assert resp.json["product"]["name"] == "Leite"
        assert resp.json["product"]["total_stock"] == 8

    def test_update_barcode_conflict(self, client, admin_headers, db_session, milk):
        other = make_product(db_session, name="Outro", barcode="789000000031")

        resp = client.patch(f"/api/products/{other.id}", json={"barcode": milk.barcode}, headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["kind"] == "CONFLICT"

    def test_resident_cannot_write(self, client, owner_headers, milk):
        assert client.post("/api/products", json={"barcode": "1", "name": "x"}, headers=owner_headers).status_code == 403
        assert client.delete(f"/api/products/{milk.id}", headers=owner_headers).status_code == 403


class TestProductDeletion:

    def test_delete_cascades_stock_batches_and_items(self, client, admin_headers, db_session, milk):
        bread = make_product(db_session, name="Pão", barcode="789000000032", price="1.00")
        add_lot(db_session, bread, code="B1", expiry="2026-01-01", quantity=5)

        sale = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}, {"product_id": bread.id, "quantity": 1}],
            "payment_type": "CASH",
        }, headers=admin_headers).json["sale"]

        resp = client.delete(f"/api/products/{milk.id}", headers=admin_headers)
        assert resp.status_code == 200

        assert db_session.query(Product).filter_by(id=milk.id).first() is None
        assert db_session.query(Batch).filter_by(product_id=milk.id).count() == 0
        assert db_session.query(Stock).count() == 1
        assert db_session.query(SaleItem).filter_by(product_id=milk.id).count() == 0

        # The sale header and the other product's line remain
        remaining = db_session.query(Sale).filter_by(id=sale["id"]).one()
        assert remaining.total == Decimal("5.50")
        assert [i.product_id for i in remaining.items] == [bread.id]

    def test_delete_missing_product(self, client, admin_headers):
        assert client.delete("/api/products/nope", headers=admin_headers).status_code == 404


class TestStocks:

    def test_receive_stock(self, client, admin_headers, milk):
        resp = client.post("/api/stocks", json={
            "product_id": milk.id,
            "batch_code": "LOTE-C",
            "expiry_date": "2025-03-01",
            "quantity": 4,
        }, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json["batch"]["code"] == "LOTE-C"
        assert resp.json["batch"]["expiry_date"] == "2025-03-01"
        assert resp.json["stock"]["quantity"] == 4
        assert inventory_service.get_available_quantity(milk.id) == 12

    def test_receive_for_unknown_product(self, client, admin_headers):
        resp = client.post("/api/stocks", json={
            "product_id": "ghost", "batch_code": "X", "expiry_date": "2025-03-01", "quantity": 1,
        }, headers=admin_headers)
        assert resp.status_code == 404

    def test_receive_rejects_zero_quantity(self, client, admin_headers, milk):
        resp = client.post("/api/stocks", json={
            "product_id": milk.id, "batch_code": "X", "expiry_date": "2025-03-01", "quantity": 0,
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_receive_rejects_bad_date(self, client, admin_headers, milk):
        resp = client.post("/api/stocks", json={
            "product_id": milk.id, "batch_code": "X", "expiry_date": "03/01/2025", "quantity": 1,
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_list_and_get(self, client, admin_headers, milk):
        listed = client.get(f"/api/stocks?product_id={milk.id}", headers=admin_headers).json["stocks"]
        assert [s["batch"]["code"] for s in listed] == ["LOTE-A", "LOTE-B"]
        assert listed[0]["product"]["id"] == milk.id

        one = client.get(f"/api/stocks/{listed[0]['id']}", headers=admin_headers)
        assert one.status_code == 200
        assert one.json["stock"]["quantity"] == 3

    def test_update_stock(self, client, admin_headers, milk):
        stock_id = inventory_service.list_fefo_stocks(milk.id)[0].id

        resp = client.patch(f"/api/stocks/{stock_id}", json={
            "quantity": 0, "expiry_date": "2025-02-01", "batch_code": "LOTE-A2",
        }, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["stock"]["quantity"] == 0
        assert resp.json["stock"]["batch"]["code"] == "LOTE-A2"
        assert inventory_service.get_available_quantity(milk.id) == 5

    def test_update_rejects_negative(self, client, admin_headers, milk):
        stock_id = inventory_service.list_fefo_stocks(milk.id)[0].id
        resp = client.patch(f"/api/stocks/{stock_id}", json={"quantity": -1}, headers=admin_headers)
        assert resp.status_code == 400

    def test_delete_stock_removes_batch(self, client, admin_headers, db_session, milk):
        stock = inventory_service.list_fefo_stocks(milk.id)[0]
        batch_id = stock.batch_id

        resp = client.delete(f"/api/stocks/{stock.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert db_session.query(Batch).filter_by(id=batch_id).first() is None
        assert inventory_service.get_available_quantity(milk.id) == 5

    def test_resident_cannot_manage_stock(self, client, owner_headers, milk):
        assert client.get("/api/stocks", headers=owner_headers).status_code == 403


class TestStockImport:

    def test_import_creates_and_restocks(self, client, admin_headers, db_session, milk):
        resp = client.post("/api/stocks/import", json={"rows": [
            {"barcode": milk.barcode, "batch_code": "IMP-1", "expiry_date": "2025-09-01", "quantity": "6"},
            {"barcode": "789000000040", "name": "Biscoito", "price": "3.20",
             "batch_code": "IMP-2", "expiry_date": "2025-10-01", "quantity": 10},
        ]}, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json == {"rows": 2, "products_created": 1, "units_received": 16}
        assert inventory_service.get_available_quantity(milk.id) == 14
        biscuit = db_session.query(Product).filter_by(barcode="789000000040").one()
        assert biscuit.price == Decimal("3.20")

    def test_bad_row_aborts_whole_import(self, client, admin_headers, db_session, milk):
        resp = client.post("/api/stocks/import", json={"rows": [
            {"barcode": milk.barcode, "batch_code": "IMP-1", "expiry_date": "2025-09-01", "quantity": 6},
            {"barcode": "789000000041", "batch_code": "IMP-2", "expiry_date": "2025-10-01", "quantity": 1},
        ]}, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["details"]["row"] == 2
        assert inventory_service.get_available_quantity(milk.id) == 8
        assert db_session.query(Product).filter_by(barcode="789000000041").first() is None

    def test_invalid_quantity_names_row(self, client, admin_headers, milk):
        resp = client.post("/api/stocks/import", json={"rows": [
            {"barcode": milk.barcode, "batch_code": "IMP-1", "expiry_date": "2025-09-01", "quantity": "abc"},
        ]}, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["error"].startswith("Row 1:")

    def test_empty_import_rejected(self, client, admin_headers):
        resp = client.post("/api/stocks/import", json={"rows": []}, headers=admin_headers)
        assert resp.status_code == 400
