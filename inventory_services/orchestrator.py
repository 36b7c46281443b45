"""
inventory_services.orchestrator -- per-session DI container.

Responsibility:
    Creates every ledger service exactly once for one session and wires
    them to a single LedgerEngine.  No service constructs another service
    internally; this is the only place the dependency graph is assembled.

Architecture position:
    Services -- built by the unit-of-work runner for each attempt, so each
    attempt starts with a fresh engine and an empty ``posted`` list.

Invariants enforced:
    - Single LedgerEngine per unit of work: every movement of an operation
      flows through one engine and therefore one ``posted`` list.
    - All services share the same Session and Clock instances.

Usage:
    container = LedgerOrchestrator(session, clock=clock)
    container.purchase_receipts.receive(tenant_id, po_id, lines, actor_id)
    container.engine.posted    # movements to publish after commit
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from inventory_kernel.db.types import COST_DECIMAL_PLACES
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.adjustment import AdjustmentService
from inventory_services.order_lifecycle import OrderLifecycleService
from inventory_services.production import ProductionOrchestrator
from inventory_services.purchase_receipt import PurchaseReceiptProcessor
from inventory_services.reservation import ReservationService
from inventory_services.sale_fulfillment import SaleFulfillmentProcessor
from inventory_services.transfer import TransferCoordinator


class LedgerOrchestrator:
    """
    Contract:
        Receives a Session and optional Clock; constructs the engine, the
        selectors and every processor in dependency order and exposes them
        as public attributes.

    Non-goals:
        - Does NOT manage transaction boundaries.
        - Does NOT own the Session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        cost_decimal_places: int = COST_DECIMAL_PLACES,
    ):
        self.session = session
        self.clock = clock or SystemClock()

        # Kernel
        self.engine = LedgerEngine(session, self.clock)
        self.stock = StockSelector(session)
        self.ledger = LedgerSelector(session)

        # Processors (all share the one engine)
        self.purchase_receipts = PurchaseReceiptProcessor(session, self.engine, self.clock)
        self.sale_fulfillment = SaleFulfillmentProcessor(session, self.engine, self.clock)
        self.production = ProductionOrchestrator(
            session, self.engine, self.clock, cost_decimal_places=cost_decimal_places
        )
        self.transfers = TransferCoordinator(session, self.engine, self.clock)
        self.adjustments = AdjustmentService(session, self.engine, self.clock)
        self.reservations = ReservationService(session, self.engine, self.clock)
        self.orders = OrderLifecycleService(session, self.engine, self.clock)
