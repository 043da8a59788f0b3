"""
Module: fulfillment_kernel.models.pool_item
Responsibility: ORM persistence for the fulfillable items a seller stocks
    against a product: account credentials, license keys, download links.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - is_assigned moves false -> true exactly once (guarded UPDATE in the
      allocation engine; ORM listener + DB trigger reject everything else).
    - assigned_order_id / assigned_buyer_id / assigned_at are set iff
      is_assigned, and never change afterwards.
    - payload is frozen once the item is assigned.

Failure modes:
    - ImmutableRecordError from the ORM listeners on forbidden updates or
      deletes (see db/immutability.py).

Audit relevance:
    An assigned pool item is the provenance of a delivered record.  Its
    assigned_order_id answers "which order consumed this key?".
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.values import ItemType


class PoolItem(Base):
    """
    One unique, fulfillable item in a product's pool.

    Contract:
        Rows are created by seller action (single add or bulk import) in
        the *available* state and become *assigned* exactly once, through
        the allocation engine.

    Non-goals:
        - The model does not validate payload shape; see domain/payloads.py.
    """

    __tablename__ = "pool_items"

    __table_args__ = (
        Index(
            "idx_pool_item_claim",
            "product_id",
            "item_type",
            "is_assigned",
            "display_order",
        ),
        Index("idx_pool_item_seller", "seller_id", "created_at"),
        Index("idx_pool_item_order", "assigned_order_id"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seller_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_type: Mapped[ItemType] = mapped_column(String(20), nullable=False)

    # account: {email, password, notes?}
    # license_key: {key, activation_url?}
    # download: {file_url, file_name?}
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Seller-facing label, never shown to buyers
    label: Mapped[str | None] = mapped_column(String(200), nullable=True)

    is_assigned: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    assigned_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    assigned_buyer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)

    display_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        state = "assigned" if self.is_assigned else "available"
        return f"<PoolItem {self.item_type}:{self.id} {state}>"
