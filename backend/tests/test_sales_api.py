"""
Sales API tests.

Verifies the HTTP contract of POST /api/sales (201 body, error kinds and
status codes) and the household scoping of sale reads and FIADO charges.
"""

from decimal import Decimal

from condostock.models import ResidentAccount
from condostock.models.residents import ACCOUNT_BLOCKED
from condostock.services import inventory_service

from conftest import add_lot, auth_headers, get_auth_token, make_product, make_resident


class TestCreateSale:

    def test_cash_sale_created(self, client, admin_headers, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 4}],
            "payment_type": "CASH",
        }, headers=admin_headers)

        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total"] == "18.00"
        assert sale["status"] == "COMPLETED"
        assert sale["resident_id"] is None
        assert sale["items"][0]["quantity"] == 4
        assert sale["items"][0]["unit_price"] == "4.50"
        assert sale["items"][0]["product"]["barcode"] == milk.barcode

    def test_camel_case_body(self, client, admin_headers, milk, owner):
        resp = client.post("/api/sales", json={
            "items": [{"productId": milk.id, "quantity": 1}],
            "paymentType": "FIADO",
            "residentId": owner.id,
        }, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json["sale"]["resident"]["id"] == owner.id

    def test_insufficient_stock_is_400_with_available(self, client, admin_headers, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 10}],
            "payment_type": "PIX",
        }, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["kind"] == "INSUFFICIENT_STOCK"
        assert resp.json["details"]["available"] == 8

    def test_unknown_product_is_404(self, client, admin_headers):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": "nope", "quantity": 1}],
            "payment_type": "CASH",
        }, headers=admin_headers)

        assert resp.status_code == 404
        assert resp.json["kind"] == "NOT_FOUND"

    def test_fiado_without_resident_is_400(self, client, admin_headers, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "FIADO",
        }, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["kind"] == "INVALID_REQUEST"
        assert inventory_service.get_available_quantity(milk.id) == 8

    def test_blocked_account_is_409(self, client, admin_headers, db_session, milk):
        blocked = make_resident(db_session, cpf="98765432100", account_status=ACCOUNT_BLOCKED)

        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "FIADO",
            "resident_id": blocked.id,
        }, headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["kind"] == "ACCOUNT_BLOCKED"

    def test_credit_limit_is_400(self, client, admin_headers, db_session):
        product = make_product(db_session, barcode="789000000020", price="30.00")
        add_lot(db_session, product, code="L1", expiry="2026-05-01", quantity=5)
        resident = make_resident(db_session, cpf="98765432101", balance="50.00", credit_limit="100.00")

        resp = client.post("/api/sales", json={
            "items": [{"product_id": product.id, "quantity": 2}],
            "payment_type": "FIADO",
            "resident_id": resident.id,
        }, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["kind"] == "CREDIT_LIMIT_EXCEEDED"
        account = db_session.query(ResidentAccount).filter_by(resident_id=resident.id).one()
        assert account.balance == Decimal("50.00")

    def test_bad_payment_type_is_400(self, client, admin_headers, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "CHEQUE",
        }, headers=admin_headers)

        assert resp.status_code == 400

    def test_requires_auth(self, client, db_session, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "CASH",
        })
        assert resp.status_code == 401


class TestHouseholdScoping:

    def test_resident_charges_own_tab(self, client, owner, owner_headers, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 2}],
            "payment_type": "FIADO",
            "resident_id": owner.id,
        }, headers=owner_headers)

        assert resp.status_code == 201
        assert resp.json["sale"]["total"] == "9.00"

    def test_resident_charges_member_of_unit(self, client, member, owner_headers, milk):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "FIADO",
            "resident_id": member.id,
        }, headers=owner_headers)

        assert resp.status_code == 201

    def test_resident_cannot_charge_other_unit(self, client, db_session, owner_headers, milk):
        neighbour = make_resident(db_session, cpf="44455566677", apartment="101")

        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "FIADO",
            "resident_id": neighbour.id,
        }, headers=owner_headers)

        assert resp.status_code == 403
        assert inventory_service.get_available_quantity(milk.id) == 8

    def test_listing_is_scoped(self, client, db_session, admin_headers, owner, milk):
        neighbour = make_resident(db_session, cpf="44455566678", apartment="101", password="vizinho")
        for resident_id in (owner.id, neighbour.id):
            client.post("/api/sales", json={
                "items": [{"product_id": milk.id, "quantity": 1}],
                "payment_type": "FIADO",
                "resident_id": resident_id,
            }, headers=admin_headers)

        all_sales = client.get("/api/sales", headers=admin_headers).json["sales"]
        assert len(all_sales) == 2

        neighbour_headers = auth_headers(get_auth_token(client, "44455566678", "vizinho"))
        mine = client.get("/api/sales", headers=neighbour_headers).json["sales"]
        assert [s["resident_id"] for s in mine] == [neighbour.id]

    def test_get_sale_of_other_unit_is_403(self, client, db_session, admin_headers, owner_headers, milk):
        neighbour = make_resident(db_session, cpf="44455566679", apartment="101")
        created = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "FIADO",
            "resident_id": neighbour.id,
        }, headers=admin_headers).json["sale"]

        assert client.get(f"/api/sales/{created['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/sales/{created['id']}", headers=owner_headers).status_code == 403

    def test_get_missing_sale_is_404(self, client, admin_headers):
        assert client.get("/api/sales/missing", headers=admin_headers).status_code == 404

    def test_self_checkout_sale_visible_to_its_unit(self, client, db_session, member, owner_headers, milk):
        created = client.post("/api/sales", json={
            "items": [{"product_id": milk.id, "quantity": 1}],
            "payment_type": "CASH",
        }, headers=owner_headers)
        assert created.status_code == 201
        sale_id = created.json["sale"]["id"]
        assert created.json["sale"]["resident_id"] is None

        assert client.get(f"/api/sales/{sale_id}", headers=owner_headers).status_code == 200
        assert [s["id"] for s in client.get("/api/sales", headers=owner_headers).json["sales"]] == [sale_id]

        member_headers = auth_headers(get_auth_token(client, member.cpf, member.cpf[:4]))
        assert client.get(f"/api/sales/{sale_id}", headers=member_headers).status_code == 200

        make_resident(db_session, cpf="44455566680", apartment="101", password="vizinho")
        neighbour_headers = auth_headers(get_auth_token(client, "44455566680", "vizinho"))
        assert client.get(f"/api/sales/{sale_id}", headers=neighbour_headers).status_code == 403
        assert client.get("/api/sales", headers=neighbour_headers).json["sales"] == []
