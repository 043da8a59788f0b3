"""
ProductSettingsService -- per-product delivery mode and usage guide.

Responsibility:
    Upserts and reads ProductDeliverySettings.  The usage guide configured
    here is copied into every delivered record of the product at claim
    time, so later edits never rewrite what a buyer already received.

Failure modes:
    - ValidationError: unknown delivery mode, oversized guide, or an attempt
      to overwrite another seller's product settings.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.domain.dtos import FieldViolation, ProductDeliverySnapshot
from fulfillment_kernel.domain.values import DeliveryMode
from fulfillment_kernel.exceptions import ValidationError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.product_delivery import ProductDeliverySettings
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.product_settings")

MAX_USAGE_GUIDE_LENGTH = 10_000


def _invalid(code: str, message: str, field: str) -> ValidationError:
    return ValidationError(None, (FieldViolation(code, message, field),))


class ProductSettingsService(BaseService[ProductDeliverySettings]):
    """Delivery settings of products."""

    def _load(self, product_id: UUID) -> ProductDeliverySettings | None:
        return self.session.execute(
            select(ProductDeliverySettings).where(
                ProductDeliverySettings.product_id == product_id
            )
        ).scalar_one_or_none()

    def get(self, product_id: UUID) -> ProductDeliverySnapshot | None:
        settings = self._load(product_id)
        return ProductDeliverySnapshot.from_model(settings) if settings else None

    def configure(
        self,
        product_id: UUID,
        seller_id: UUID,
        delivery_mode: DeliveryMode | str,
        usage_guide: str | None = None,
    ) -> ProductDeliverySnapshot:
        """
        Create or update the settings of ``product_id``.

        Raises:
            ValidationError: see module docstring.
        """
        try:
            mode = DeliveryMode(delivery_mode)
        except ValueError:
            raise _invalid(
                "UNKNOWN_DELIVERY_MODE",
                f"Unknown delivery mode: {delivery_mode!r}",
                "delivery_mode",
            ) from None

        if usage_guide is not None:
            usage_guide = usage_guide.strip() or None
        if usage_guide is not None and len(usage_guide) > MAX_USAGE_GUIDE_LENGTH:
            raise _invalid(
                "USAGE_GUIDE_TOO_LONG",
                f"'usage_guide' must be at most {MAX_USAGE_GUIDE_LENGTH} characters",
                "usage_guide",
            )

        settings = self._load(product_id)
        if settings is None:
            settings = ProductDeliverySettings(product_id=product_id, seller_id=seller_id)
            self.session.add(settings)
        elif settings.seller_id != seller_id:
            raise _invalid(
                "NOT_PRODUCT_OWNER",
                "Product is owned by a different seller",
                "seller_id",
            )

        settings.delivery_mode = mode.value
        settings.usage_guide = usage_guide
        settings.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "product_delivery_configured",
            extra={"product_id": str(product_id), "delivery_mode": mode.value},
        )
        return ProductDeliverySnapshot.from_model(settings)
