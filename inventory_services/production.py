"""
ProductionOrchestrator -- runs a production batch from a recipe.

Responsibility:
    Scales the recipe by the batch quantity, checks every ingredient
    against the warehouse's available stock under row locks, and only then
    creates the batch, posts one USAGE movement per ingredient and one
    PURCHASE-kind output movement for the finished product, and stamps the
    batch with its per-unit cost.

Architecture position:
    Services -- orchestration over the kernel LedgerEngine and the pure
    costing functions in inventory_kernel.domain.costing.  Flush only.

Invariants enforced:
    - All-or-nothing feasibility: a short ingredient fails the run before
      the batch row or any movement exists, naming every short ingredient.
    - Batch status moves RUNNING -> COMPLETED via the transition table.

Failure modes:
    - RecipeNotFoundError, EmptyRecipeError, CrossTenantViolationError.
    - InsufficientIngredientsError listing every shortage.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.db.types import COST_DECIMAL_PLACES
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.costing import (
    batch_unit_cost,
    find_shortages,
    required_quantities,
)
from inventory_kernel.domain.dtos import ProductionBatchInfo, ProductionResult
from inventory_kernel.domain.movement import (
    IngredientUsage,
    MovementRequest,
    ProductionOutput,
)
from inventory_kernel.domain.status import ProductionBatchStatus, validate_transition
from inventory_kernel.domain.validation import require_id, require_quantity
from inventory_kernel.exceptions import EmptyRecipeError, InsufficientIngredientsError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.production import ProductionBatch
from inventory_kernel.services.ledger_engine import LedgerEngine
from inventory_services.lookups import load_item, load_recipe, load_warehouse

logger = get_logger("services.production")


def new_batch_ref() -> str:
    return f"BATCH-{uuid4().hex.upper()}"


class ProductionOrchestrator:
    """
    Contract:
        ``produce`` either completes the batch with all movements flushed,
        or raises having written nothing.

    Guarantees:
        - Ingredient cost is the item's current unit cost; the batch cost
          is rounded to ``cost_decimal_places``.
    """

    def __init__(
        self,
        session: Session,
        engine: LedgerEngine,
        clock: Clock | None = None,
        cost_decimal_places: int = COST_DECIMAL_PLACES,
    ):
        self._session = session
        self._engine = engine
        self._clock = clock or SystemClock()
        self._cost_decimal_places = cost_decimal_places

    def produce(
        self,
        tenant_id: UUID,
        recipe_id: UUID,
        batch_quantity: Decimal,
        warehouse_id: UUID,
        actor_id: UUID,
    ) -> ProductionResult:
        require_id(tenant_id, "tenant_id")
        require_id(actor_id, "actor_id")
        qty = require_quantity(batch_quantity)

        recipe = load_recipe(self._session, tenant_id, recipe_id)
        load_warehouse(self._session, tenant_id, warehouse_id)
        load_item(self._session, tenant_id, recipe.product_item_id)
        if not recipe.lines:
            raise EmptyRecipeError(str(recipe.id))

        ingredients = []
        for line in recipe.lines:
            item = load_item(self._session, tenant_id, line.item_id)
            ingredients.append((line.item_id, line.quantity, item.unit_cost))
        requirements = required_quantities(ingredients, qty)

        available: dict[UUID, Decimal] = {}
        for req in sorted(requirements, key=lambda r: str(r.item_id)):
            balance = self._engine.lock_balance(warehouse_id, req.item_id)
            available[req.item_id] = balance.available if balance is not None else Decimal("0")

        shortages = find_shortages(requirements, available)
        if shortages:
            logger.warning(
                "production_rejected",
                extra={
                    "recipe_id": str(recipe.id),
                    "warehouse_id": str(warehouse_id),
                    "batch_quantity": qty,
                    "shortage_count": len(shortages),
                    "short_items": [s["item_id"] for s in shortages],
                },
            )
            raise InsufficientIngredientsError(str(recipe.id), str(warehouse_id), shortages)

        batch = ProductionBatch(
            tenant_id=tenant_id,
            recipe_id=recipe.id,
            warehouse_id=warehouse_id,
            batch_ref=new_batch_ref(),
            quantity=qty,
            status=ProductionBatchStatus.RUNNING,
            started_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(batch)
        self._session.flush()
        logger.info(
            "production_batch_started",
            extra={"batch_id": str(batch.id), "batch_ref": batch.batch_ref},
        )

        records = []
        for req in requirements:
            records.append(self._engine.apply_movement(MovementRequest(
                tenant_id=tenant_id,
                item_id=req.item_id,
                warehouse_id=warehouse_id,
                quantity=req.required,
                detail=IngredientUsage(production_batch_id=batch.id),
                actor_id=actor_id,
                reference=batch.batch_ref,
                unit_cost=req.unit_cost,
            )))

        unit_cost = batch_unit_cost(requirements, qty, self._cost_decimal_places)
        records.append(self._engine.apply_movement(MovementRequest(
            tenant_id=tenant_id,
            item_id=recipe.product_item_id,
            warehouse_id=warehouse_id,
            quantity=qty,
            detail=ProductionOutput(production_batch_id=batch.id),
            actor_id=actor_id,
            reference=batch.batch_ref,
            unit_cost=unit_cost,
        )))

        validate_transition(
            "ProductionBatch", batch.id, batch.status, ProductionBatchStatus.COMPLETED
        )
        batch.status = ProductionBatchStatus.COMPLETED
        batch.unit_cost = unit_cost
        batch.finished_at = self._clock.now()
        batch.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "production_batch_completed",
            extra={
                "batch_id": str(batch.id),
                "batch_ref": batch.batch_ref,
                "recipe_id": str(recipe.id),
                "batch_quantity": qty,
                "unit_cost": unit_cost,
                "ingredient_count": len(requirements),
            },
        )
        return ProductionResult(
            batch=ProductionBatchInfo.from_model(batch),
            transactions=tuple(records),
            unit_cost=unit_cost,
        )
