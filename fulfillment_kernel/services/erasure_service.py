"""
ErasureService -- whole-account data erasure.

Responsibility:
    The only path through which delivered records and assigned pool items
    are deleted.  Runs under ``authorize_erasure``, which lifts the delete
    rules of both the ORM immutability listeners and the PostgreSQL
    triggers for the current transaction.

Architecture position:
    Kernel > Services -- imperative shell, owns no transaction.

Audit relevance:
    Deletes go through the ORM unit of work so that each row passes the
    immutability listeners individually, and each erasure is logged with
    its counts.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.db.immutability import authorize_erasure, revoke_erasure
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.delivered_item import DeliveredItem
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.models.product_delivery import ProductDeliverySettings
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.erasure")


@dataclass(frozen=True)
class SellerErasureResult:
    pool_items_deleted: int
    settings_deleted: int


class ErasureService(BaseService):
    """Account erasure for buyers and sellers."""

    def _delete_all(self, rows) -> int:
        count = 0
        for row in rows:
            self.session.delete(row)
            count += 1
        self.session.flush()
        return count

    def erase_buyer(self, buyer_id: UUID) -> int:
        """
        Delete every delivered record of ``buyer_id``.

        Returns:
            Number of delivered records deleted.
        """
        authorize_erasure(self.session)
        try:
            rows = self.session.execute(
                select(DeliveredItem).where(DeliveredItem.buyer_id == buyer_id)
            ).scalars().all()
            deleted = self._delete_all(rows)
        finally:
            revoke_erasure(self.session)

        logger.warning(
            "buyer_erased",
            extra={"buyer_id": str(buyer_id), "delivered_items_deleted": deleted},
        )
        return deleted

    def erase_seller(self, seller_id: UUID) -> SellerErasureResult:
        """
        Delete every pool item (assigned ones included) and every product
        setting of ``seller_id``.  Buyers' delivered records are kept.
        """
        authorize_erasure(self.session)
        try:
            items = self.session.execute(
                select(PoolItem).where(PoolItem.seller_id == seller_id)
            ).scalars().all()
            pool_deleted = self._delete_all(items)

            settings = self.session.execute(
                select(ProductDeliverySettings).where(
                    ProductDeliverySettings.seller_id == seller_id
                )
            ).scalars().all()
            settings_deleted = self._delete_all(settings)
        finally:
            revoke_erasure(self.session)

        logger.warning(
            "seller_erased",
            extra={
                "seller_id": str(seller_id),
                "pool_items_deleted": pool_deleted,
                "settings_deleted": settings_deleted,
            },
        )
        return SellerErasureResult(
            pool_items_deleted=pool_deleted,
            settings_deleted=settings_deleted,
        )
