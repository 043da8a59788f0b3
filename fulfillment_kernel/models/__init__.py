"""Domain models for the fulfillment kernel."""

from fulfillment_kernel.domain.values import DeliveryMode, ItemType
from fulfillment_kernel.models.delivered_item import DeliveredItem
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.models.product_delivery import ProductDeliverySettings

__all__ = [
    "PoolItem",
    "ItemType",
    "DeliveredItem",
    "ProductDeliverySettings",
    "DeliveryMode",
]
