"""
Module: fulfillment_kernel.selectors.pool_selector
Responsibility: Read-only queries over pool items: single lookups,
    per-pool listings in claim order, counts, and the seller-wide
    inventory view.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Per-pool listings use the same ordering as the allocation engine
      (display_order, created_at, id), so the first available row listed
      is the next one a claim would take.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from fulfillment_kernel.domain.dtos import PoolItemSnapshot
from fulfillment_kernel.domain.values import ItemType, StockStatus
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.selectors.base import BaseSelector

CLAIM_ORDER = (PoolItem.display_order, PoolItem.created_at, PoolItem.id)


class PoolItemSelector(BaseSelector[PoolItem]):
    """Selector for pool item queries."""

    def get(self, pool_item_id: UUID) -> PoolItemSnapshot | None:
        item = self.session.get(PoolItem, pool_item_id)
        return PoolItemSnapshot.from_model(item) if item is not None else None

    def list_by_product_and_type(
        self,
        product_id: UUID,
        item_type: ItemType | str,
    ) -> list[PoolItemSnapshot]:
        """Every item of the pool, in claim order."""
        rows = self.session.execute(
            select(PoolItem)
            .where(
                PoolItem.product_id == product_id,
                PoolItem.item_type == ItemType(item_type).value,
            )
            .order_by(*CLAIM_ORDER)
        ).scalars()
        return [PoolItemSnapshot.from_model(row) for row in rows]

    def _count(self, product_id: UUID, item_type: ItemType | str, assigned: bool) -> int:
        return self.session.execute(
            select(func.count(PoolItem.id)).where(
                PoolItem.product_id == product_id,
                PoolItem.item_type == ItemType(item_type).value,
                PoolItem.is_assigned.is_(assigned),
            )
        ).scalar_one()

    def count_available(self, product_id: UUID, item_type: ItemType | str) -> int:
        return self._count(product_id, item_type, assigned=False)

    def count_assigned(self, product_id: UUID, item_type: ItemType | str) -> int:
        return self._count(product_id, item_type, assigned=True)

    def next_display_order(self, product_id: UUID, item_type: ItemType | str) -> int:
        """One past the pool's highest display_order; 0 for an empty pool."""
        return self.session.execute(
            select(func.coalesce(func.max(PoolItem.display_order), -1) + 1).where(
                PoolItem.product_id == product_id,
                PoolItem.item_type == ItemType(item_type).value,
            )
        ).scalar_one()

    def list_for_seller(
        self,
        seller_id: UUID,
        item_type: ItemType | str | None = None,
        status: StockStatus | str | None = None,
        product_id: UUID | None = None,
        search: str | None = None,
    ) -> list[PoolItemSnapshot]:
        """
        Seller inventory across all products, newest first.

        Args:
            seller_id: Owner of the items.
            item_type: Restrict to one item type.
            status: ``available`` or ``assigned``.
            product_id: Restrict to one product.
            search: Case-insensitive substring matched against the label
                and every payload value.
        """
        stmt = select(PoolItem).where(PoolItem.seller_id == seller_id)
        if item_type is not None:
            stmt = stmt.where(PoolItem.item_type == ItemType(item_type).value)
        if status is not None:
            assigned = StockStatus(status) is StockStatus.ASSIGNED
            stmt = stmt.where(PoolItem.is_assigned.is_(assigned))
        if product_id is not None:
            stmt = stmt.where(PoolItem.product_id == product_id)
        stmt = stmt.order_by(
            PoolItem.created_at.desc(),
            PoolItem.display_order.desc(),
            PoolItem.id,
        )

        snapshots = [
            PoolItemSnapshot.from_model(row)
            for row in self.session.execute(stmt).scalars()
        ]
        if search:
            # Payloads are JSON; matching in Python keeps this dialect-neutral
            needle = search.strip().lower()
            snapshots = [s for s in snapshots if _matches(s, needle)]
        return snapshots


def _matches(snapshot: PoolItemSnapshot, needle: str) -> bool:
    haystack = [snapshot.label or ""]
    haystack.extend(str(v) for v in snapshot.payload.values())
    return any(needle in value.lower() for value in haystack)
