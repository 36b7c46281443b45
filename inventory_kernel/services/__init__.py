"""Kernel services: the single writer of stock balances."""

from inventory_kernel.services.base import BaseService
from inventory_kernel.services.ledger_engine import LedgerEngine

__all__ = ["BaseService", "LedgerEngine"]
