"""
Costing -- pure production arithmetic.

Required ingredient quantities, shortage detection and the per-unit cost of
a production batch.  No I/O; the ProductionOrchestrator feeds in recipe
lines and balances read under lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from inventory_kernel.db.types import COST_DECIMAL_PLACES, round_cost


@dataclass(frozen=True, slots=True)
class IngredientRequirement:
    item_id: UUID
    per_unit: Decimal
    required: Decimal
    unit_cost: Decimal

    @property
    def extended_cost(self) -> Decimal:
        return self.unit_cost * self.required


def required_quantities(
    recipe_lines: Iterable[tuple[UUID, Decimal, Decimal]],
    batch_quantity: Decimal,
) -> list[IngredientRequirement]:
    """
    Scale ``(item_id, per_unit_quantity, unit_cost)`` lines by the batch.

    Lines naming the same ingredient twice are merged so the availability
    check sees the total demand.
    """
    merged: dict[UUID, IngredientRequirement] = {}
    for item_id, per_unit, unit_cost in recipe_lines:
        existing = merged.get(item_id)
        if existing is None:
            merged[item_id] = IngredientRequirement(
                item_id=item_id,
                per_unit=per_unit,
                required=per_unit * batch_quantity,
                unit_cost=unit_cost,
            )
        else:
            merged[item_id] = IngredientRequirement(
                item_id=item_id,
                per_unit=existing.per_unit + per_unit,
                required=existing.required + per_unit * batch_quantity,
                unit_cost=existing.unit_cost,
            )
    return list(merged.values())


def find_shortages(
    requirements: Iterable[IngredientRequirement],
    available: Mapping[UUID, Decimal],
) -> list[dict]:
    """Every requirement the available stock cannot cover, in recipe order."""
    shortages = []
    for req in requirements:
        have = available.get(req.item_id, Decimal("0"))
        if have < req.required:
            shortages.append({
                "item_id": str(req.item_id),
                "required": req.required,
                "available": have,
                "shortfall": req.required - have,
            })
    return shortages


def batch_unit_cost(
    requirements: Iterable[IngredientRequirement],
    batch_quantity: Decimal,
    decimal_places: int = COST_DECIMAL_PLACES,
) -> Decimal:
    """Sum of ingredient cost times consumed quantity, per output unit."""
    total = sum((req.extended_cost for req in requirements), Decimal("0"))
    return round_cost(total / batch_quantity, decimal_places)
