"""
Module: fulfillment_kernel.selectors.delivery_selector
Responsibility: Read-only queries over delivered item records (order
    lookups and the buyer library).
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.domain.dtos import DeliveredItemRecord
from fulfillment_kernel.models.delivered_item import DeliveredItem
from fulfillment_kernel.selectors.base import BaseSelector


class DeliveredItemSelector(BaseSelector[DeliveredItem]):
    """Selector for delivered item queries."""

    def get(self, delivered_item_id: UUID) -> DeliveredItemRecord | None:
        item = self.session.get(DeliveredItem, delivered_item_id)
        return DeliveredItemRecord.from_model(item) if item is not None else None

    def get_for_order(self, order_id: UUID) -> DeliveredItemRecord | None:
        item = self.session.execute(
            select(DeliveredItem).where(DeliveredItem.order_id == order_id)
        ).scalar_one_or_none()
        return DeliveredItemRecord.from_model(item) if item is not None else None

    def list_for_buyer(self, buyer_id: UUID) -> list[DeliveredItemRecord]:
        """Buyer library, newest first."""
        rows = self.session.execute(
            select(DeliveredItem)
            .where(DeliveredItem.buyer_id == buyer_id)
            .order_by(DeliveredItem.delivered_at.desc(), DeliveredItem.id)
        ).scalars()
        return [DeliveredItemRecord.from_model(row) for row in rows]
