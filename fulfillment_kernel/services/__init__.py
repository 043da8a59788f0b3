"""Kernel services (the write side) and the FulfillmentService facade."""

from fulfillment_kernel.services.allocation_service import AllocationEngine
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.delivery_service import DeliveryService
from fulfillment_kernel.services.erasure_service import ErasureService, SellerErasureResult
from fulfillment_kernel.services.fulfillment_service import FulfillmentService
from fulfillment_kernel.services.import_service import ImportService
from fulfillment_kernel.services.pool_service import PoolItemService
from fulfillment_kernel.services.product_settings_service import ProductSettingsService

__all__ = [
    "BaseService",
    "AllocationEngine",
    "PoolItemService",
    "ImportService",
    "DeliveryService",
    "ProductSettingsService",
    "ErasureService",
    "SellerErasureResult",
    "FulfillmentService",
]
