"""Read-only selectors (CQRS-lite query side)."""

from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_kernel.selectors.delivery_selector import DeliveredItemSelector
from fulfillment_kernel.selectors.pool_selector import PoolItemSelector
from fulfillment_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "PoolItemSelector",
    "StockSelector",
    "DeliveredItemSelector",
]
