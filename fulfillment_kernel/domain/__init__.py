"""
Pure domain layer.

Data transfer objects, payload rules, parsing and masking with NO
dependencies on the ORM, the database, or the clock.
"""

from fulfillment_kernel.domain.alerts import (
    LoggingStockAlertAdapter,
    StockAlert,
    StockAlertKind,
    StockAlertPort,
)
from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.dtos import (
    DeliveredItemRecord,
    DeliveredItemView,
    FieldViolation,
    ImportResult,
    OutOfStockSignal,
    PoolItemSnapshot,
    ProductDeliverySnapshot,
    SkippedLine,
    StockLevel,
)
from fulfillment_kernel.domain.values import (
    DeliveryMode,
    ItemType,
    StockStatus,
    item_type_for_mode,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ItemType",
    "DeliveryMode",
    "StockStatus",
    "item_type_for_mode",
    "FieldViolation",
    "PoolItemSnapshot",
    "DeliveredItemRecord",
    "DeliveredItemView",
    "OutOfStockSignal",
    "StockLevel",
    "SkippedLine",
    "ImportResult",
    "ProductDeliverySnapshot",
    "StockAlert",
    "StockAlertKind",
    "StockAlertPort",
    "LoggingStockAlertAdapter",
]
