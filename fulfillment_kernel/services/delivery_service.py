"""
DeliveryService -- buyer-side operations on delivered item records.

Responsibility:
    The one-way reveal transition and the masked/unmasked buyer view.

Architecture position:
    Kernel > Services -- imperative shell, owns no transaction.

Invariants enforced:
    - Reveal is a conditional UPDATE (``is_revealed`` false -> true only).
      Repeating it is a no-op; there is no operation that hides an item
      again.
    - Sensitive values leave the kernel unmasked only after reveal, and
      only to the buyer who owns the record.

Failure modes:
    - DeliveredItemNotFoundError: unknown id, or a record owned by a
      different buyer (the two are indistinguishable to the caller).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import update

from fulfillment_kernel.domain.dtos import DeliveredItemRecord, DeliveredItemView
from fulfillment_kernel.domain.masking import mask_delivered_data
from fulfillment_kernel.exceptions import DeliveredItemNotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.delivered_item import DeliveredItem
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.delivery")


class DeliveryService(BaseService[DeliveredItem]):
    """Reveal and buyer view of delivered items."""

    def reveal(self, delivered_item_id: UUID) -> DeliveredItemRecord:
        """
        Mark a delivered item as revealed.  Idempotent.

        Raises:
            DeliveredItemNotFoundError: unknown id.
        """
        result = self.session.execute(
            update(DeliveredItem)
            .where(
                DeliveredItem.id == delivered_item_id,
                DeliveredItem.is_revealed.is_(False),
            )
            .values(is_revealed=True)
            .execution_options(synchronize_session=False)
        )

        item = self.session.get(DeliveredItem, delivered_item_id, populate_existing=True)
        if item is None:
            raise DeliveredItemNotFoundError(str(delivered_item_id))

        if result.rowcount:
            logger.info(
                "delivered_item_revealed",
                extra={"delivered_item_id": str(delivered_item_id)},
            )
        return DeliveredItemRecord.from_model(item)

    def view_for_buyer(self, delivered_item_id: UUID, buyer_id: UUID) -> DeliveredItemView:
        """
        Buyer-facing view of a delivered item.

        Raises:
            DeliveredItemNotFoundError: unknown id or not owned by ``buyer_id``.
        """
        item = self.session.get(DeliveredItem, delivered_item_id)
        if item is None or item.buyer_id != buyer_id:
            raise DeliveredItemNotFoundError(str(delivered_item_id))

        record = DeliveredItemRecord.from_model(item)
        masked = not record.is_revealed
        data = (
            mask_delivered_data(record.delivered_data)
            if masked
            else record.delivered_data
        )
        return DeliveredItemView(
            id=record.id,
            order_id=record.order_id,
            product_id=record.product_id,
            delivery_type=record.delivery_type,
            data=data,
            is_revealed=record.is_revealed,
            is_masked=masked,
            delivered_at=record.delivered_at,
            usage_guide=record.usage_guide,
        )
