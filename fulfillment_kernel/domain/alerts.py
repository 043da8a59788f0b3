"""
Alerts -- Outbound stock notifications to sellers.

Responsibility:
    Defines the StockAlert value, the StockAlertPort interface the kernel
    calls, the default logging adapter, and the pure rule that decides
    which alert (if any) a stock level warrants.

Architecture position:
    Kernel > Domain.  The port is an interface; delivery (email, push,
    dashboard) lives outside the kernel.  LoggingStockAlertAdapter only
    writes a structured log line.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from fulfillment_kernel.domain.dtos import StockLevel
from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("domain.alerts")


class StockAlertKind(str, Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    PENDING_MANUAL = "pending_manual"


@dataclass(frozen=True)
class StockAlert:
    kind: StockAlertKind
    product_id: UUID
    item_type: ItemType | None
    available: int
    order_id: UUID | None = None


class StockAlertPort(ABC):
    """Receiver of stock alerts.  Implementations must not block for long."""

    @abstractmethod
    def notify(self, alert: StockAlert) -> None:
        ...


class LoggingStockAlertAdapter(StockAlertPort):
    """Default adapter: one ``stock_alert`` log entry per alert."""

    def notify(self, alert: StockAlert) -> None:
        logger.warning(
            "stock_alert",
            extra={
                "alert_kind": alert.kind.value,
                "product_id": str(alert.product_id),
                "item_type": alert.item_type.value if alert.item_type else None,
                "available": alert.available,
                "order_id": str(alert.order_id) if alert.order_id else None,
            },
        )


def alert_for_level(level: StockLevel, order_id: UUID | None = None) -> StockAlert | None:
    """Alert warranted by ``level`` right after a claim, or None."""
    if level.is_out_of_stock:
        kind = StockAlertKind.OUT_OF_STOCK
    elif level.is_low_stock:
        kind = StockAlertKind.LOW_STOCK
    else:
        return None
    return StockAlert(
        kind=kind,
        product_id=level.product_id,
        item_type=level.item_type,
        available=level.available,
        order_id=order_id,
    )
