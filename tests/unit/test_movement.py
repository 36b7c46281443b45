"""Movement variants fix kind and direction; callers cannot choose them."""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.movement import (
    DETAIL_TYPES,
    AdjustmentReason,
    IngredientUsage,
    MovementDirection,
    MovementRequest,
    ProductionOutput,
    PurchaseReceipt,
    SaleShipment,
    StockAdjustment,
    TransactionKind,
    TransferLeg,
)


def _request(detail, quantity=Decimal("5")):
    return MovementRequest(
        tenant_id=uuid4(),
        item_id=uuid4(),
        warehouse_id=uuid4(),
        quantity=quantity,
        detail=detail,
        actor_id=uuid4(),
    )


class TestVariantKinds:
    @pytest.mark.parametrize(
        "detail, kind, direction",
        [
            (PurchaseReceipt(uuid4(), uuid4()), TransactionKind.PURCHASE, MovementDirection.IN),
            (SaleShipment(uuid4(), uuid4()), TransactionKind.SALE, MovementDirection.OUT),
            (IngredientUsage(uuid4()), TransactionKind.USAGE, MovementDirection.OUT),
            (ProductionOutput(uuid4()), TransactionKind.PURCHASE, MovementDirection.IN),
            (
                TransferLeg(MovementDirection.OUT, uuid4()),
                TransactionKind.TRANSFER,
                MovementDirection.OUT,
            ),
            (
                StockAdjustment(MovementDirection.IN, AdjustmentReason.FOUND),
                TransactionKind.ADJUSTMENT,
                MovementDirection.IN,
            ),
        ],
    )
    def test_request_takes_kind_and_direction_from_detail(self, detail, kind, direction):
        request = _request(detail)
        assert request.kind is kind
        assert request.direction is direction

    def test_negative_quantity_does_not_flip_a_purchase(self):
        request = _request(PurchaseReceipt(uuid4(), uuid4()), quantity=Decimal("-5"))
        assert request.direction is MovementDirection.IN

    def test_production_output_is_distinguishable_from_receipt(self):
        assert ProductionOutput.kind is PurchaseReceipt.kind
        assert ProductionOutput.detail_type != PurchaseReceipt.detail_type

    def test_detail_types_are_unique_and_complete(self):
        assert set(DETAIL_TYPES) == {
            "PURCHASE_RECEIPT",
            "SALE_SHIPMENT",
            "TRANSFER_LEG",
            "STOCK_ADJUSTMENT",
            "INGREDIENT_USAGE",
            "PRODUCTION_OUTPUT",
        }


class TestDirection:
    def test_sign(self):
        assert MovementDirection.IN.sign == 1
        assert MovementDirection.OUT.sign == -1


class TestImmutability:
    def test_variants_are_frozen(self):
        detail = SaleShipment(uuid4(), uuid4(), Decimal("2"))
        with pytest.raises(AttributeError):
            detail.reserved_quantity = Decimal("0")

    def test_sale_shipment_defaults_to_nothing_reserved(self):
        assert SaleShipment(uuid4(), uuid4()).reserved_quantity == Decimal("0")
