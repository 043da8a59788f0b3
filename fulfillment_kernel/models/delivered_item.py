"""
Module: fulfillment_kernel.models.delivered_item
Responsibility: ORM persistence for what a buyer actually received for an
    order: a copy of the pool payload taken at claim time.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - At most one record per order (UNIQUE order_id).  The allocation
      engine relies on this constraint to settle concurrent claims for the
      same order.
    - At most one record per pool item (UNIQUE pool_item_id), backing the
      allocation engine's guarded UPDATE at the schema level.
    - delivered_data is a snapshot; later pool changes never reach it.
    - is_revealed is one-way (false -> true).

Failure modes:
    - IntegrityError on a duplicate order_id or pool_item_id.
    - ImmutableRecordError from the ORM listeners on any other update, or on
      delete outside account erasure.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.values import ItemType


class DeliveredItem(Base):
    """
    Immutable snapshot of an item handed to a buyer.

    pool_item_id is an audit link, deliberately not a foreign key: the
    record must survive erasure of the seller's pool.
    """

    __tablename__ = "delivered_items"

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_delivered_item_order"),
        UniqueConstraint("pool_item_id", name="uq_delivered_item_pool_item"),
        Index("idx_delivered_item_buyer", "buyer_id", "delivered_at"),
        Index("idx_delivered_item_product", "product_id"),
    )

    order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    buyer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    pool_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Mirrors PoolItem.item_type of the source item
    delivery_type: Mapped[ItemType] = mapped_column(String(20), nullable=False)

    delivered_data: Mapped[dict] = mapped_column(JSON, nullable=False)

    delivered_at: Mapped[datetime] = mapped_column(nullable=False)

    is_revealed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    usage_guide: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<DeliveredItem order={self.order_id} {self.delivery_type}>"
