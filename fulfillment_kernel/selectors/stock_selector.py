"""
Module: fulfillment_kernel.selectors.stock_selector
Responsibility: Stock levels derived from pool items.  There are no stored
    counters; every level is computed from the rows themselves.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - available + assigned == total for every StockLevel: both counts come
      from one grouped query, never from two separate reads.

Failure modes:
    None beyond database errors.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, select

from fulfillment_kernel.domain.dtos import StockLevel
from fulfillment_kernel.domain.values import ItemType, item_type_for_mode
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.models.product_delivery import ProductDeliverySettings
from fulfillment_kernel.selectors.base import BaseSelector

DEFAULT_LOW_STOCK_THRESHOLD = 5


class StockSelector(BaseSelector[PoolItem]):
    """Derived, read-only stock counts."""

    def __init__(self, session, low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD):
        super().__init__(session)
        self._threshold = low_stock_threshold

    def get_stock(self, product_id: UUID, item_type: ItemType | str) -> StockLevel:
        item_type = ItemType(item_type)
        rows = self.session.execute(
            select(PoolItem.is_assigned, func.count(PoolItem.id))
            .where(
                PoolItem.product_id == product_id,
                PoolItem.item_type == item_type.value,
            )
            .group_by(PoolItem.is_assigned)
        ).all()

        counts = {bool(is_assigned): count for is_assigned, count in rows}
        return StockLevel(
            product_id=product_id,
            item_type=item_type,
            available=counts.get(False, 0),
            assigned=counts.get(True, 0),
            low_stock_threshold=self._threshold,
        )

    def stock_for_seller(self, seller_id: UUID) -> list[StockLevel]:
        """
        One StockLevel per (product, item type) the seller stocks.

        Products configured with a pool-backed delivery mode but holding no
        items yet are reported with zero counts.
        """
        rows = self.session.execute(
            select(
                PoolItem.product_id,
                PoolItem.item_type,
                PoolItem.is_assigned,
                func.count(PoolItem.id),
            )
            .where(PoolItem.seller_id == seller_id)
            .group_by(PoolItem.product_id, PoolItem.item_type, PoolItem.is_assigned)
        ).all()

        counts: dict[tuple[UUID, ItemType], dict[bool, int]] = defaultdict(dict)
        for product_id, item_type, is_assigned, count in rows:
            counts[(product_id, ItemType(item_type))][bool(is_assigned)] = count

        configured = self.session.execute(
            select(ProductDeliverySettings.product_id, ProductDeliverySettings.delivery_mode)
            .where(ProductDeliverySettings.seller_id == seller_id)
        ).all()
        for product_id, mode in configured:
            item_type = item_type_for_mode(mode)
            if item_type is not None:
                counts.setdefault((product_id, item_type), {})

        levels = [
            StockLevel(
                product_id=product_id,
                item_type=item_type,
                available=by_state.get(False, 0),
                assigned=by_state.get(True, 0),
                low_stock_threshold=self._threshold,
            )
            for (product_id, item_type), by_state in counts.items()
        ]
        levels.sort(key=lambda level: (str(level.product_id), level.item_type.value))
        return levels

    def low_stock_products(self, seller_id: UUID) -> list[StockLevel]:
        """Pools of the seller that are low on stock or out of stock."""
        return [
            level
            for level in self.stock_for_seller(seller_id)
            if level.is_low_stock or level.is_out_of_stock
        ]
