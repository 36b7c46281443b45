"""
LedgerEngine -- the only writer of stock balances.

Responsibility:
    Validates one movement, computes the new balance, and persists the new
    balance, an immutable InventoryTransaction and its StockMovement in one
    flush.  Also owns reserve/release, the only other change a balance row
    ever sees.

Architecture position:
    Kernel > Services.  Called by the orchestrators in inventory_services;
    never calls out to them.

Invariants enforced:
    NON_NEGATIVE_STOCK -- checked against the locked row before any write.
    LEDGER_RECONCILES  -- balance, transaction and movement are written in
                          the same flush, inside the caller's transaction.
    APPEND_ONLY        -- the engine only ever INSERTs log rows.

Concurrency:
    The balance row is read with SELECT ... FOR UPDATE (PostgreSQL) and
    populate_existing, so the check and the write see the same committed
    value.  Every write also bumps StockBalance.version; on backends without
    row locks (SQLite) a concurrent writer fails at flush with StaleDataError
    instead of overwriting, and the unit-of-work runner retries it.

Failure modes:
    - InvalidQuantityError / MissingIdentifierError before any store access.
    - InsufficientStockError when a decrease exceeds available stock.
    - UnknownStockTargetError when the item or warehouse does not exist.
    - ReleaseExceedsReservedError on an oversized release.
    - StaleDataError / OperationalError propagate to the caller untouched.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import PostedMovement, StockBalanceInfo, TransactionRecord
from inventory_kernel.domain.movement import (
    IngredientUsage,
    MovementDirection,
    MovementRequest,
    ProductionOutput,
    PurchaseReceipt,
    SaleShipment,
    StockAdjustment,
    TransferLeg,
)
from inventory_kernel.domain.validation import require_id, require_non_negative, require_quantity
from inventory_kernel.exceptions import (
    InsufficientStockError,
    MissingIdentifierError,
    ReleaseExceedsReservedError,
    UnknownStockTargetError,
)
from inventory_kernel.invariants import LedgerInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import Item, Warehouse
from inventory_kernel.models.ledger import (
    InventoryTransaction,
    ReservationAction,
    ReservationEntry,
    StockMovement,
)
from inventory_kernel.models.stock import StockBalance
from inventory_kernel.services.base import BaseService

logger = get_logger("services.ledger_engine")


def _link_columns(detail) -> dict:
    """Transaction columns populated by each movement variant."""
    if isinstance(detail, PurchaseReceipt):
        return {
            "purchase_order_id": detail.purchase_order_id,
            "purchase_order_line_id": detail.purchase_order_line_id,
        }
    if isinstance(detail, SaleShipment):
        return {
            "sale_order_id": detail.sale_order_id,
            "sale_order_line_id": detail.sale_order_line_id,
            "reserved_consumed": detail.reserved_quantity,
        }
    if isinstance(detail, TransferLeg):
        return {
            "counterpart_warehouse_id": detail.counterpart_warehouse_id,
            "transfer_direction": detail.direction,
        }
    if isinstance(detail, StockAdjustment):
        return {"reason_code": detail.reason}
    if isinstance(detail, (IngredientUsage, ProductionOutput)):
        return {"production_batch_id": detail.production_batch_id}
    raise TypeError(f"Unsupported movement detail: {type(detail).__name__}")


class LedgerEngine(BaseService[StockBalance]):
    """
    Applies single stock movements.

    Contract:
        ``apply_movement`` either flushes balance + transaction + movement
        or raises having written nothing.  Commit belongs to the caller.

    Guarantees:
        - Direction comes from the movement variant, never from the sign of
          the quantity.
        - Every applied movement is remembered in ``posted`` (with old and
          new quantity) so the caller can publish events after commit.

    Non-goals:
        - Does NOT check tenant ownership; orchestrators do that first.
        - Does NOT publish events or commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._posted: list[PostedMovement] = []

    @property
    def posted(self) -> tuple[PostedMovement, ...]:
        return tuple(self._posted)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def apply_movement(self, request: MovementRequest) -> TransactionRecord:
        """
        Apply one movement to the (warehouse, item) balance.

        Preconditions:
            - ``request.quantity`` is non-zero; its sign is ignored.
            - TRANSFER legs carry the shared reference.

        Postconditions:
            - balance.quantity changed by exactly +/- |quantity|.
            - One InventoryTransaction (signed quantity, balance_after) and
              one StockMovement were flushed.

        Raises:
            InvalidQuantityError, MissingIdentifierError,
            InsufficientStockError, UnknownStockTargetError,
            ReleaseExceedsReservedError.
        """
        require_id(request.tenant_id, "tenant_id")
        require_id(request.item_id, "item_id")
        require_id(request.warehouse_id, "warehouse_id")
        require_id(request.actor_id, "actor_id")
        magnitude = abs(require_quantity(request.quantity, positive=False))
        detail = request.detail
        if isinstance(detail, TransferLeg) and not request.reference:
            raise MissingIdentifierError("reference")

        direction = request.direction
        consume_reserved = Decimal("0")
        if isinstance(detail, SaleShipment):
            consume_reserved = require_non_negative(
                detail.reserved_quantity, "reserved_quantity"
            )
            if consume_reserved > magnitude:
                raise ReleaseExceedsReservedError(
                    str(request.item_id), str(request.warehouse_id),
                    consume_reserved, magnitude,
                )

        balance = self.lock_balance(
            request.warehouse_id,
            request.item_id,
            create_for=request if direction is MovementDirection.IN else None,
        )
        if balance is None:
            self._require_targets(request.item_id, request.warehouse_id)
            self._reject(request, magnitude, Decimal("0"))

        old_quantity = balance.quantity
        if direction is MovementDirection.IN:
            new_quantity = old_quantity + magnitude
            new_reserved = balance.reserved
        else:
            if consume_reserved > balance.reserved:
                raise ReleaseExceedsReservedError(
                    str(request.item_id), str(request.warehouse_id),
                    consume_reserved, balance.reserved,
                )
            # Unreserved demand may only draw on available stock.
            available = balance.available + consume_reserved
            if magnitude > available:
                self._reject(request, magnitude, available)
            new_quantity = old_quantity - magnitude
            new_reserved = balance.reserved - consume_reserved

        # INVARIANT: NON_NEGATIVE_STOCK
        assert new_quantity >= 0 and new_reserved <= new_quantity, (
            "NON_NEGATIVE_STOCK violated after availability check"
        )

        now = self._clock.now()
        balance.quantity = new_quantity
        balance.reserved = new_reserved
        balance.updated_by_id = request.actor_id

        signed = magnitude * direction.sign
        txn = InventoryTransaction(
            tenant_id=request.tenant_id,
            kind=detail.kind,
            detail_type=detail.detail_type,
            item_id=request.item_id,
            warehouse_id=request.warehouse_id,
            stock_balance_id=balance.id,
            quantity=signed,
            balance_after=new_quantity,
            unit_cost=request.unit_cost,
            reference=request.reference,
            actor_id=request.actor_id,
            occurred_at=now,
            note=request.note,
            **_link_columns(detail),
        )
        txn.movement = StockMovement(
            tenant_id=request.tenant_id,
            item_id=request.item_id,
            warehouse_id=request.warehouse_id,
            direction=direction,
            quantity=magnitude,
            reference=request.reference,
            occurred_at=now,
        )
        self.session.add(txn)
        if consume_reserved > 0:
            self.session.add(ReservationEntry(
                tenant_id=request.tenant_id,
                item_id=request.item_id,
                warehouse_id=request.warehouse_id,
                action=ReservationAction.CONSUME,
                quantity=consume_reserved,
                reserved_after=new_reserved,
                sale_order_id=detail.sale_order_id,
                reference=request.reference,
                actor_id=request.actor_id,
                occurred_at=now,
            ))
        self.session.flush()

        record = TransactionRecord.from_model(txn)
        self._posted.append(PostedMovement(record, old_quantity, new_quantity))
        logger.info(
            "movement_applied",
            extra={
                "transaction_id": txn.id,
                "kind": detail.kind.value,
                "detail_type": detail.detail_type,
                "item_id": str(request.item_id),
                "warehouse_id": str(request.warehouse_id),
                "quantity": signed,
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
                "balance_version": balance.version,
            },
        )
        return record

    def _reject(self, request: MovementRequest, requested: Decimal, available: Decimal):
        logger.warning(
            "movement_rejected",
            extra={
                "invariant": LedgerInvariant.NON_NEGATIVE_STOCK,
                "kind": request.kind.value,
                "item_id": str(request.item_id),
                "warehouse_id": str(request.warehouse_id),
                "requested": requested,
                "available": available,
            },
        )
        raise InsufficientStockError(
            item_id=str(request.item_id),
            warehouse_id=str(request.warehouse_id),
            requested=requested,
            available=available,
        )

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(
        self,
        tenant_id: UUID,
        warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        sale_order_id: UUID | None = None,
        reference: str | None = None,
    ) -> StockBalanceInfo:
        """
        Allocate available stock without changing on-hand quantity.

        Raises:
            InsufficientStockError: ``quantity`` exceeds quantity - reserved.
        """
        qty = require_quantity(quantity)
        require_id(actor_id, "actor_id")
        balance = self.lock_balance(warehouse_id, item_id)
        available = balance.available if balance is not None else Decimal("0")
        if balance is None:
            self._require_targets(item_id, warehouse_id)
        if qty > available:
            logger.warning(
                "reservation_rejected",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "requested": qty,
                    "available": available,
                },
            )
            raise InsufficientStockError(str(item_id), str(warehouse_id), qty, available)
        return self._change_reserved(
            balance, tenant_id, ReservationAction.RESERVE, qty, actor_id,
            sale_order_id, reference,
        )

    def release(
        self,
        tenant_id: UUID,
        warehouse_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        sale_order_id: UUID | None = None,
        reference: str | None = None,
    ) -> StockBalanceInfo:
        """
        Return reserved stock to available.

        Raises:
            ReleaseExceedsReservedError: ``quantity`` exceeds reserved.
        """
        qty = require_quantity(quantity)
        require_id(actor_id, "actor_id")
        balance = self.lock_balance(warehouse_id, item_id)
        reserved = balance.reserved if balance is not None else Decimal("0")
        if qty > reserved:
            raise ReleaseExceedsReservedError(str(item_id), str(warehouse_id), qty, reserved)
        return self._change_reserved(
            balance, tenant_id, ReservationAction.RELEASE, qty, actor_id,
            sale_order_id, reference,
        )

    def _change_reserved(
        self, balance, tenant_id, action, qty, actor_id, sale_order_id, reference
    ) -> StockBalanceInfo:
        delta = qty if action is ReservationAction.RESERVE else -qty
        balance.reserved = balance.reserved + delta
        balance.updated_by_id = actor_id
        self.session.add(ReservationEntry(
            tenant_id=tenant_id,
            item_id=balance.item_id,
            warehouse_id=balance.warehouse_id,
            action=action,
            quantity=qty,
            reserved_after=balance.reserved,
            sale_order_id=sale_order_id,
            reference=reference,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
        ))
        self.session.flush()
        logger.info(
            "reservation_changed",
            extra={
                "action": action.value,
                "item_id": str(balance.item_id),
                "warehouse_id": str(balance.warehouse_id),
                "quantity": qty,
                "reserved_after": balance.reserved,
                "quantity_on_hand": balance.quantity,
            },
        )
        return StockBalanceInfo.from_model(balance)

    # ------------------------------------------------------------------
    # Balance rows
    # ------------------------------------------------------------------

    def lock_balance(
        self,
        warehouse_id: UUID,
        item_id: UUID,
        create_for: MovementRequest | None = None,
    ) -> StockBalance | None:
        """
        Read the balance row under a row lock, always from the database.

        Args:
            create_for: When given and the row is missing, create it lazily
                (after checking item and warehouse exist) for this request's
                tenant and actor.

        Returns:
            The locked row, or None if it does not exist and was not created.
        """
        balance = self._select_for_update(warehouse_id, item_id)
        if balance is not None or create_for is None:
            return balance

        self._require_targets(item_id, warehouse_id)
        self._insert_balance_if_absent(create_for)
        return self._select_for_update(warehouse_id, item_id)

    def _select_for_update(self, warehouse_id: UUID, item_id: UUID) -> StockBalance | None:
        return self.session.execute(
            select(StockBalance)
            .where(
                StockBalance.warehouse_id == warehouse_id,
                StockBalance.item_id == item_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert_balance_if_absent(self, request: MovementRequest) -> None:
        values = {
            "id": uuid4(),
            "tenant_id": request.tenant_id,
            "warehouse_id": request.warehouse_id,
            "item_id": request.item_id,
            "quantity": Decimal("0"),
            "reserved": Decimal("0"),
            "version": 1,
            "created_by_id": request.actor_id,
        }
        dialect = self.session.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            dialect_insert = pg_insert if dialect == "postgresql" else sqlite_insert
            self.session.execute(
                dialect_insert(StockBalance)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["warehouse_id", "item_id"])
            )
            return

        # Other backends: a savepoint absorbs a concurrent creator's row.
        savepoint = self.session.begin_nested()
        try:
            self.session.execute(insert(StockBalance).values(**values))
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "stock_balance_creation_race",
                extra={"item_id": str(request.item_id), "warehouse_id": str(request.warehouse_id)},
            )
            savepoint.rollback()

    def _require_targets(self, item_id: UUID, warehouse_id: UUID) -> None:
        if self.session.get(Item, item_id) is None:
            raise UnknownStockTargetError(str(item_id), str(warehouse_id), "item does not exist")
        if self.session.get(Warehouse, warehouse_id) is None:
            raise UnknownStockTargetError(
                str(item_id), str(warehouse_id), "warehouse does not exist"
            )
