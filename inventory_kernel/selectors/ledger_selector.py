"""
Module: inventory_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the append-only ledger: transactions
    and movements per (warehouse, item) or per reference, replay of a
    balance from zero, reconciliation of every stored balance against its
    log, and a canonical hash of the ledger.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Invariants verified (not enforced):
    LEDGER_RECONCILES -- reconcile() compares, per balance row, the stored
        quantity with the sum of signed transaction quantities, the sum of
        signed movements, and the last transaction's balance_after; and the
        stored reserved amount with the reservation log.
    TRANSFER_ZERO_SUM -- transfer_legs() returns both legs for a reference.

Failure modes:
    - Returns empty results / zero for pairs that never moved.
"""

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import TransactionRecord
from inventory_kernel.domain.movement import MovementDirection, TransactionKind
from inventory_kernel.models.ledger import (
    InventoryTransaction,
    ReservationAction,
    ReservationEntry,
    StockMovement,
)
from inventory_kernel.models.stock import StockBalance
from inventory_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MovementRecord:
    id: int
    transaction_id: int
    direction: MovementDirection
    quantity: Decimal
    reference: str | None

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity * self.direction.sign


@dataclass(frozen=True)
class ReconciliationResult:
    """Stored balance versus what the logs say it should be."""

    warehouse_id: UUID
    item_id: UUID
    balance_quantity: Decimal
    ledger_quantity: Decimal
    movement_quantity: Decimal
    last_balance_after: Decimal
    balance_reserved: Decimal
    reservation_log_reserved: Decimal
    transaction_count: int

    @property
    def is_balanced(self) -> bool:
        return (
            self.balance_quantity
            == self.ledger_quantity
            == self.movement_quantity
            == self.last_balance_after
            and self.balance_reserved == self.reservation_log_reserved
        )


_RESERVATION_SIGN = {
    ReservationAction.RESERVE: 1,
    ReservationAction.RELEASE: -1,
    ReservationAction.CONSUME: -1,
}


class LedgerSelector(BaseSelector[InventoryTransaction]):
    """
    Queries over InventoryTransaction and StockMovement.

    Guarantees:
        - Results are ordered by transaction id (insertion order).
        - Sums are computed in Python over Decimal values so they are exact
          on every backend.
    """

    def transactions_for(self, warehouse_id: UUID, item_id: UUID) -> list[TransactionRecord]:
        rows = self.session.execute(
            select(InventoryTransaction)
            .where(
                InventoryTransaction.warehouse_id == warehouse_id,
                InventoryTransaction.item_id == item_id,
            )
            .order_by(InventoryTransaction.id)
        ).scalars()
        return [TransactionRecord.from_model(r) for r in rows]

    def transactions_by_reference(
        self, tenant_id: UUID, reference: str
    ) -> list[TransactionRecord]:
        rows = self.session.execute(
            select(InventoryTransaction)
            .where(
                InventoryTransaction.tenant_id == tenant_id,
                InventoryTransaction.reference == reference,
            )
            .order_by(InventoryTransaction.id)
        ).scalars()
        return [TransactionRecord.from_model(r) for r in rows]

    def transfer_legs(self, tenant_id: UUID, reference: str) -> list[TransactionRecord]:
        return [
            t for t in self.transactions_by_reference(tenant_id, reference)
            if t.kind is TransactionKind.TRANSFER
        ]

    def transactions_for_purchase_order(self, purchase_order_id: UUID) -> list[TransactionRecord]:
        return self._by_link(InventoryTransaction.purchase_order_id, purchase_order_id)

    def transactions_for_sale_order(self, sale_order_id: UUID) -> list[TransactionRecord]:
        return self._by_link(InventoryTransaction.sale_order_id, sale_order_id)

    def transactions_for_batch(self, production_batch_id: UUID) -> list[TransactionRecord]:
        return self._by_link(InventoryTransaction.production_batch_id, production_batch_id)

    def _by_link(self, column, value) -> list[TransactionRecord]:
        rows = self.session.execute(
            select(InventoryTransaction)
            .where(column == value)
            .order_by(InventoryTransaction.id)
        ).scalars()
        return [TransactionRecord.from_model(r) for r in rows]

    def transaction_count(self, tenant_id: UUID | None = None) -> int:
        stmt = select(InventoryTransaction.id)
        if tenant_id is not None:
            stmt = stmt.where(InventoryTransaction.tenant_id == tenant_id)
        return len(self.session.execute(stmt).all())

    def movements_for(self, warehouse_id: UUID, item_id: UUID) -> list[MovementRecord]:
        rows = self.session.execute(
            select(StockMovement)
            .where(
                StockMovement.warehouse_id == warehouse_id,
                StockMovement.item_id == item_id,
            )
            .order_by(StockMovement.id)
        ).scalars()
        return [
            MovementRecord(
                id=m.id,
                transaction_id=m.transaction_id,
                direction=MovementDirection(m.direction),
                quantity=m.quantity,
                reference=m.reference,
            )
            for m in rows
        ]

    def replay_balance(self, warehouse_id: UUID, item_id: UUID) -> Decimal:
        """
        Rebuild the on-hand quantity by replaying transactions from zero.

        Raises:
            AssertionError: if an intermediate running balance differs from
                the transaction's recorded balance_after or goes negative.
        """
        running = Decimal("0")
        for txn in self.transactions_for(warehouse_id, item_id):
            running += txn.quantity
            assert running >= 0, f"replay went negative at transaction {txn.id}"
            assert running == txn.balance_after, (
                f"replay diverged at transaction {txn.id}: "
                f"{running} != {txn.balance_after}"
            )
        return running

    def reconcile(self, tenant_id: UUID | None = None) -> list[ReconciliationResult]:
        """One result per stored balance row, ordered by warehouse then item."""
        stmt = select(StockBalance).order_by(StockBalance.warehouse_id, StockBalance.item_id)
        if tenant_id is not None:
            stmt = stmt.where(StockBalance.tenant_id == tenant_id)
        balances = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().all()

        results = []
        for balance in balances:
            txns = self.transactions_for(balance.warehouse_id, balance.item_id)
            movements = self.movements_for(balance.warehouse_id, balance.item_id)
            results.append(ReconciliationResult(
                warehouse_id=balance.warehouse_id,
                item_id=balance.item_id,
                balance_quantity=balance.quantity,
                ledger_quantity=sum((t.quantity for t in txns), Decimal("0")),
                movement_quantity=sum((m.signed_quantity for m in movements), Decimal("0")),
                last_balance_after=txns[-1].balance_after if txns else Decimal("0"),
                balance_reserved=balance.reserved,
                reservation_log_reserved=self._reserved_from_log(
                    balance.warehouse_id, balance.item_id
                ),
                transaction_count=len(txns),
            ))
        return results

    def unreconciled(self, tenant_id: UUID | None = None) -> list[ReconciliationResult]:
        return [r for r in self.reconcile(tenant_id) if not r.is_balanced]

    def _reserved_from_log(self, warehouse_id: UUID, item_id: UUID) -> Decimal:
        rows = self.session.execute(
            select(ReservationEntry.action, ReservationEntry.quantity).where(
                ReservationEntry.warehouse_id == warehouse_id,
                ReservationEntry.item_id == item_id,
            )
        ).all()
        return sum(
            (qty * _RESERVATION_SIGN[ReservationAction(action)] for action, qty in rows),
            Decimal("0"),
        )

    def outstanding_reservations(self, sale_order_id: UUID) -> dict[tuple[UUID, UUID], Decimal]:
        """
        Stock still held for one sale order, keyed by (warehouse_id, item_id).

        Reserved minus released minus consumed by shipments; pairs that
        netted to zero are left out.
        """
        rows = self.session.execute(
            select(
                ReservationEntry.warehouse_id,
                ReservationEntry.item_id,
                ReservationEntry.action,
                ReservationEntry.quantity,
            )
            .where(ReservationEntry.sale_order_id == sale_order_id)
            .order_by(ReservationEntry.id)
        ).all()
        outstanding: dict[tuple[UUID, UUID], Decimal] = {}
        for warehouse_id, item_id, action, qty in rows:
            key = (warehouse_id, item_id)
            signed = qty * _RESERVATION_SIGN[ReservationAction(action)]
            outstanding[key] = outstanding.get(key, Decimal("0")) + signed
        return {key: qty for key, qty in outstanding.items() if qty != 0}

    def canonical_hash(self, tenant_id: UUID) -> str:
        """
        Deterministic SHA-256 over the tenant's transactions.

        Two ledgers with the same postings in the same order hash equal,
        independent of database or row ids.
        """
        rows = self.session.execute(
            select(InventoryTransaction)
            .where(InventoryTransaction.tenant_id == tenant_id)
            .order_by(InventoryTransaction.id)
        ).scalars()
        digest = hashlib.sha256()
        for txn in rows:
            digest.update(json.dumps(
                [
                    TransactionKind(txn.kind).value,
                    txn.detail_type,
                    str(txn.item_id),
                    str(txn.warehouse_id),
                    str(txn.quantity.normalize()),
                    str(txn.balance_after.normalize()),
                    txn.reference,
                ],
                separators=(",", ":"),
            ).encode())
        return digest.hexdigest()
