"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable structures the kernel hands to its callers:
    pool item and delivered item snapshots, the out-of-stock signal,
    stock levels, import results, and field violations.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Callers never receive ORM rows; every result is a frozen dataclass.
    - Payloads are deep-frozen (MappingProxyType) so a snapshot cannot be
      used to mutate what the kernel stored.
    - StockLevel.total == available + assigned by construction.

Data flow:
    PoolItem (ORM) -> PoolItemSnapshot
    DeliveredItem (ORM) -> DeliveredItemRecord -> DeliveredItemView
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from fulfillment_kernel.domain.values import DeliveryMode, ItemType

if TYPE_CHECKING:
    from fulfillment_kernel.models.delivered_item import DeliveredItem
    from fulfillment_kernel.models.pool_item import PoolItem
    from fulfillment_kernel.models.product_delivery import ProductDeliverySettings


def _deep_freeze_dict(d: Mapping[str, Any]) -> MappingProxyType:
    """
    Deep-freeze a dictionary by converting nested dicts to MappingProxyType
    and nested lists to tuples.
    """
    frozen = {}
    for k, v in d.items():
        frozen[k] = _deep_freeze_value(v)
    return MappingProxyType(frozen)


def _deep_freeze_value(v: Any) -> Any:
    if isinstance(v, (dict, MappingProxyType)):
        return _deep_freeze_dict(v)
    elif isinstance(v, (list, tuple)):
        return tuple(_deep_freeze_value(item) for item in v)
    return v


def thaw(value: Any) -> Any:
    """Turn a deep-frozen payload back into plain dicts and lists (e.g. for JSON)."""
    if isinstance(value, (dict, MappingProxyType)):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class FieldViolation:
    """
    A single payload validation failure.

    Contract:
        Carries a machine-readable code, a human-readable message and the
        offending field name (None for whole-input problems).
    """

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class PoolItemSnapshot:
    """Read-only view of one pool item."""

    id: UUID
    product_id: UUID
    seller_id: UUID
    item_type: ItemType
    payload: Mapping[str, Any]
    label: str | None
    is_assigned: bool
    assigned_order_id: UUID | None
    assigned_buyer_id: UUID | None
    assigned_at: datetime | None
    display_order: int
    created_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _deep_freeze_dict(self.payload))

    @classmethod
    def from_model(cls, model: PoolItem) -> PoolItemSnapshot:
        from fulfillment_kernel.db.base import ensure_utc

        return cls(
            id=model.id,
            product_id=model.product_id,
            seller_id=model.seller_id,
            item_type=ItemType(model.item_type),
            payload=model.payload,
            label=model.label,
            is_assigned=bool(model.is_assigned),
            assigned_order_id=model.assigned_order_id,
            assigned_buyer_id=model.assigned_buyer_id,
            assigned_at=ensure_utc(model.assigned_at),
            display_order=model.display_order,
            created_at=ensure_utc(model.created_at),
        )


@dataclass(frozen=True)
class DeliveredItemRecord:
    """
    What the buyer received for an order.

    Contract:
        Returned by every successful claim, including idempotent repeats;
        two claims for the same order compare equal.
    """

    id: UUID
    order_id: UUID
    buyer_id: UUID
    product_id: UUID
    pool_item_id: UUID
    delivery_type: ItemType
    delivered_data: Mapping[str, Any]
    delivered_at: datetime
    is_revealed: bool
    usage_guide: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "delivered_data", _deep_freeze_dict(self.delivered_data)
        )

    @property
    def is_delivered(self) -> bool:
        return True

    @classmethod
    def from_model(cls, model: DeliveredItem) -> DeliveredItemRecord:
        from fulfillment_kernel.db.base import ensure_utc

        return cls(
            id=model.id,
            order_id=model.order_id,
            buyer_id=model.buyer_id,
            product_id=model.product_id,
            pool_item_id=model.pool_item_id,
            delivery_type=ItemType(model.delivery_type),
            delivered_data=model.delivered_data,
            delivered_at=ensure_utc(model.delivered_at),
            is_revealed=bool(model.is_revealed),
            usage_guide=model.usage_guide,
        )


@dataclass(frozen=True)
class DeliveredItemView:
    """
    Buyer-facing rendering of a delivered record.

    ``data`` is masked until the record is revealed.
    """

    id: UUID
    order_id: UUID
    product_id: UUID
    delivery_type: ItemType
    data: Mapping[str, Any]
    is_revealed: bool
    is_masked: bool
    delivered_at: datetime
    usage_guide: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _deep_freeze_dict(self.data))


@dataclass(frozen=True)
class OutOfStockSignal:
    """
    No pool item could be assigned to the order.

    Not an error: the order stays paid and falls back to manual
    fulfillment by the seller.

    reason is one of ``pool_exhausted``, ``retries_exhausted``,
    ``not_pool_backed``.
    """

    order_id: UUID
    product_id: UUID
    item_type: ItemType | None
    status: str = "pending_manual"
    reason: str = "pool_exhausted"

    @property
    def is_delivered(self) -> bool:
        return False


@dataclass(frozen=True)
class StockLevel:
    """Available/assigned counts for one (product, item type) pool."""

    product_id: UUID
    item_type: ItemType
    available: int
    assigned: int
    low_stock_threshold: int = 5
    total: int = field(init=False)

    def __post_init__(self) -> None:
        if self.available < 0 or self.assigned < 0:
            raise ValueError("Stock counts cannot be negative")
        object.__setattr__(self, "total", self.available + self.assigned)

    @property
    def is_out_of_stock(self) -> bool:
        return self.available == 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.available <= self.low_stock_threshold


@dataclass(frozen=True)
class SkippedLine:
    """A bulk-import line that produced no pool item."""

    line_number: int
    reason: str


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a bulk import."""

    created: int
    skipped: int
    skipped_lines: tuple[SkippedLine, ...] = ()
    items: tuple[PoolItemSnapshot, ...] = ()


@dataclass(frozen=True)
class ProductDeliverySnapshot:
    """Read-only view of a product's delivery settings."""

    product_id: UUID
    seller_id: UUID
    delivery_mode: DeliveryMode
    usage_guide: str | None
    updated_at: datetime

    @property
    def item_type(self) -> ItemType | None:
        from fulfillment_kernel.domain.values import item_type_for_mode

        return item_type_for_mode(self.delivery_mode)

    @classmethod
    def from_model(cls, model: ProductDeliverySettings) -> ProductDeliverySnapshot:
        from fulfillment_kernel.db.base import ensure_utc

        return cls(
            product_id=model.product_id,
            seller_id=model.seller_id,
            delivery_mode=DeliveryMode(model.delivery_mode),
            usage_guide=model.usage_guide,
            updated_at=ensure_utc(model.updated_at),
        )
