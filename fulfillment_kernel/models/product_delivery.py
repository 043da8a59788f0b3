"""
Module: fulfillment_kernel.models.product_delivery
Responsibility: Per-product delivery settings: how a product is fulfilled
    and the usage guide shown to buyers next to their item.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.values import DeliveryMode


class ProductDeliverySettings(Base):
    """Delivery mode and buyer usage guide for one product."""

    __tablename__ = "product_delivery_settings"

    __table_args__ = (
        UniqueConstraint("product_id", name="uq_product_delivery_product"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seller_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    delivery_mode: Mapped[DeliveryMode] = mapped_column(String(30), nullable=False)

    usage_guide: Mapped[str | None] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ProductDeliverySettings {self.product_id} {self.delivery_mode}>"
