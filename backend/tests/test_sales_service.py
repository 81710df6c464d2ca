"""
Sale processor tests.

Verifies:
- FEFO allocation across batches
- Conservation of stock and the price snapshot on sale items
- All-or-nothing behavior when any line or the FIADO charge fails
- Credit limit and blocked-account rules for FIADO sales
- Cart parsing at the request boundary
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from condostock.errors import (
    AccountBlockedError,
    CreditLimitExceededError,
    InsufficientStockError,
    InvalidRequestError,
    NotFoundError,
)
from condostock.models import Batch, ResidentAccount, SaleItem, Sale, Stock
from condostock.models.residents import ACCOUNT_BLOCKED
from condostock.services import inventory_service, sales_service
from condostock.services.sales_service import CartLine, SaleRequest, parse_sale_request

from conftest import add_lot, make_product, make_resident


def _stock_quantities(product):
    rows = inventory_service.list_fefo_stocks(product.id)
    return {s.batch.code: s.quantity for s in rows}


def _quantity_of(session, stock_id):
    return session.query(Stock.quantity).filter(Stock.id == stock_id).scalar()


def _cart(*lines, payment_type="CASH", resident_id=None):
    return SaleRequest(
        items=tuple(CartLine(product_id=p, quantity=q) for p, q in lines),
        payment_type=payment_type,
        resident_id=resident_id,
    )


# =============================================================================
# FEFO ALLOCATION
# =============================================================================


class TestFefoAllocation:

    def test_earliest_expiry_consumed_first(self, db_session, milk):
        """Batch A (3, expires first) empties, batch B (5) gives up the remaining 1."""
        sale = sales_service.create_sale(_cart((milk.id, 4)))

        assert _stock_quantities(milk) == {"LOTE-B": 4}
        assert len(sale.items) == 1
        assert sale.items[0].quantity == 4
        assert sale.items[0].unit_price == Decimal("4.50")
        assert sale.total == Decimal("18.00")

    def test_partial_sale_touches_only_earliest_batch(self, db_session):
        product = make_product(db_session, barcode="789000000001")
        late = add_lot(db_session, product, code="LATE", expiry="2026-12-01", quantity=10)
        early = add_lot(db_session, product, code="EARLY", expiry="2026-11-01", quantity=10)

        sales_service.create_sale(_cart((product.id, 3)))

        assert _quantity_of(db_session, early.id) == 7
        assert _quantity_of(db_session, late.id) == 10

    def test_same_expiry_falls_back_to_receipt_order(self, db_session):
        product = make_product(db_session, barcode="789000000002")
        first = add_lot(db_session, product, code="FIRST", expiry="2026-11-01", quantity=2)
        second = add_lot(db_session, product, code="SECOND", expiry="2026-11-01", quantity=2)

        sales_service.create_sale(_cart((product.id, 3)))

        assert _quantity_of(db_session, first.id) == 0
        assert _quantity_of(db_session, second.id) == 1

    def test_receipt_order_survives_identical_timestamps(self, db_session):
        product = make_product(db_session, barcode="789000000004")
        codes = ["R1", "R2", "R3", "R4", "R5"]
        for code in codes:
            add_lot(db_session, product, code=code, expiry="2026-11-01", quantity=1)
        same_instant = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        db_session.query(Batch).filter(Batch.product_id == product.id).update({Batch.created_at: same_instant})
        db_session.commit()

        rows = inventory_service.list_fefo_stocks(product.id)
        assert [s.batch.code for s in rows] == codes
        assert [s.batch.receipt_seq for s in rows] == [1, 2, 3, 4, 5]

        sales_service.create_sale(_cart((product.id, 2)))
        assert list(_stock_quantities(product)) == ["R3", "R4", "R5"]

    def test_conservation_across_lines(self, db_session, milk):
        soda = make_product(db_session, name="Refrigerante", barcode="789000000003", price="7.25")
        add_lot(db_session, soda, code="S1", expiry="2026-03-01", quantity=6)

        before = inventory_service.get_available_quantity(milk.id) + inventory_service.get_available_quantity(soda.id)
        sale = sales_service.create_sale(_cart((milk.id, 5), (soda.id, 2)))
        after = inventory_service.get_available_quantity(milk.id) + inventory_service.get_available_quantity(soda.id)

        assert before - after == 7
        assert sum(item.quantity for item in sale.items) == 7
        assert sale.total == Decimal("37.00")

    def test_allocation_report(self, db_session, milk):
        allocations = inventory_service.allocate_fefo(milk, 4)
        db_session.rollback()

        assert [a["quantity"] for a in allocations] == [3, 1]
        assert inventory_service.get_available_quantity(milk.id) == 8

    def test_availability_read_is_stable(self, db_session, milk):
        first = inventory_service.get_available_quantity(milk.id)
        second = inventory_service.get_available_quantity(milk.id)
        assert first == second == 8


# =============================================================================
# FAILURES ROLL BACK EVERYTHING
# =============================================================================


class TestAtomicity:

    def test_insufficient_stock_changes_nothing(self, db_session, milk):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(_cart((milk.id, 10)))

        assert exc.value.details["available"] == 8
        assert exc.value.details["requested_quantity"] == 10
        assert _stock_quantities(milk) == {"LOTE-A": 3, "LOTE-B": 5}
        assert db_session.query(Sale).count() == 0

    def test_missing_second_product_rolls_back_first_line(self, db_session, milk):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(_cart((milk.id, 2), ("does-not-exist", 1)))

        assert inventory_service.get_available_quantity(milk.id) == 8
        assert db_session.query(SaleItem).count() == 0

    def test_duplicate_lines_checked_against_fresh_stock(self, db_session, milk):
        """Two lines of 5 for 8 units: the second line fails and the first is undone."""
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(_cart((milk.id, 5), (milk.id, 5)))

        assert exc.value.details["available"] == 3
        assert inventory_service.get_available_quantity(milk.id) == 8

    def test_duplicate_lines_kept_separately(self, db_session, milk):
        sale = sales_service.create_sale(_cart((milk.id, 2), (milk.id, 3)))

        assert [item.quantity for item in sale.items] == [2, 3]
        assert inventory_service.get_available_quantity(milk.id) == 3


# =============================================================================
# FIADO (TAB) RULES
# =============================================================================


class TestFiado:

    @pytest.fixture
    def cheap(self, db_session):
        product = make_product(db_session, name="Pão", barcode="789000000010", price="10.00")
        add_lot(db_session, product, code="P1", expiry="2026-01-10", quantity=20)
        return product

    def test_charge_within_limit(self, db_session, cheap):
        resident = make_resident(db_session, cpf="12345678901", balance="50.00", credit_limit="100.00")

        sale = sales_service.create_sale(
            _cart((cheap.id, 4), payment_type="FIADO", resident_id=resident.id)
        )

        account = db_session.query(ResidentAccount).filter_by(resident_id=resident.id).one()
        assert account.balance == Decimal("90.00")
        assert sale.resident_id == resident.id
        assert sale.payment_type == "FIADO"

    def test_charge_reaching_exact_limit_is_allowed(self, db_session, cheap):
        resident = make_resident(db_session, cpf="12345678902", balance="60.00", credit_limit="100.00")

        sales_service.create_sale(_cart((cheap.id, 4), payment_type="FIADO", resident_id=resident.id))

        account = db_session.query(ResidentAccount).filter_by(resident_id=resident.id).one()
        assert account.balance == Decimal("100.00")

    def test_charge_over_limit_rejected(self, db_session, cheap):
        resident = make_resident(db_session, cpf="12345678903", balance="50.00", credit_limit="100.00")

        with pytest.raises(CreditLimitExceededError) as exc:
            sales_service.create_sale(_cart((cheap.id, 6), payment_type="FIADO", resident_id=resident.id))

        assert exc.value.details["available"] == "50.00"
        account = db_session.query(ResidentAccount).filter_by(resident_id=resident.id).one()
        assert account.balance == Decimal("50.00")
        assert inventory_service.get_available_quantity(cheap.id) == 20

    def test_blocked_account_rejected_without_stock_change(self, db_session, cheap):
        resident = make_resident(db_session, cpf="12345678904", account_status=ACCOUNT_BLOCKED)

        with pytest.raises(AccountBlockedError):
            sales_service.create_sale(_cart((cheap.id, 1), payment_type="FIADO", resident_id=resident.id))

        assert inventory_service.get_available_quantity(cheap.id) == 20

    def test_fiado_without_resident_is_invalid(self, db_session, cheap):
        with pytest.raises(InvalidRequestError):
            sales_service.create_sale(_cart((cheap.id, 1), payment_type="FIADO"))

        assert inventory_service.get_available_quantity(cheap.id) == 20

    def test_fiado_for_unknown_account(self, db_session, cheap):
        with pytest.raises(NotFoundError) as exc:
            sales_service.create_sale(_cart((cheap.id, 1), payment_type="FIADO", resident_id="ghost"))

        assert exc.value.details["entity"] == "account"
        assert inventory_service.get_available_quantity(cheap.id) == 20

    def test_cash_sale_ignores_resident(self, db_session, cheap):
        sale = sales_service.create_sale(_cart((cheap.id, 1), payment_type="CASH", resident_id="ghost"))
        assert sale.resident_id is None


# =============================================================================
# PRICE SNAPSHOT
# =============================================================================


def test_price_change_does_not_rewrite_sale(db_session, milk):
    sale = sales_service.create_sale(_cart((milk.id, 1)))
    sale_id = sale.id

    milk.price = Decimal("9.99")
    db_session.commit()

    item = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()
    assert item.unit_price == Decimal("4.50")


# =============================================================================
# CART PARSING
# =============================================================================


class TestParseSaleRequest:

    def test_accepts_camel_case(self):
        req = parse_sale_request({
            "items": [{"productId": "p1", "quantity": 2}],
            "paymentType": "FIADO",
            "residentId": "r1",
        })
        assert req.items == (CartLine(product_id="p1", quantity=2),)
        assert req.payment_type == "FIADO"
        assert req.resident_id == "r1"

    def test_resident_dropped_for_non_fiado(self):
        req = parse_sale_request({
            "items": [{"product_id": "p1", "quantity": 1}],
            "payment_type": "PIX",
            "resident_id": "r1",
        })
        assert req.resident_id is None

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {},
            {"items": [], "payment_type": "CASH"},
            {"items": [{"product_id": "p1", "quantity": 0}], "payment_type": "CASH"},
            {"items": [{"product_id": "p1", "quantity": 1.5}], "payment_type": "CASH"},
            {"items": [{"product_id": 7, "quantity": 1}], "payment_type": "CASH"},
            {"items": [{"product_id": "p1", "quantity": 1}], "payment_type": "BARTER"},
        ],
    )
    def test_rejects_bad_shapes(self, payload):
        with pytest.raises(InvalidRequestError):
            parse_sale_request(payload)
