"""
PoolItemService -- seller-side writes to the pool item store.

Responsibility:
    Adds single validated pool items and removes unassigned ones.

Architecture position:
    Kernel > Services -- imperative shell, owns no transaction.

Invariants enforced:
    - Payload shape is validated before anything is written.
    - display_order of a new item is one past the highest in its
      (product, item type) pool, so sellers' insertion order is the claim
      order even after deletes.
    - Deletion is a single conditional DELETE (``WHERE is_assigned IS
      false``).  A concurrent claim either commits first, and the delete
      matches nothing, or it finds the row gone; there is no window in
      which an assigned item is deleted.

Failure modes:
    - ValidationError: malformed payload, unknown item type, oversized label.
    - PoolItemNotFoundError: unknown id, or an id owned by another seller.
    - ImmutableRecordError: the item is assigned.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import delete

from fulfillment_kernel.domain.dtos import FieldViolation, PoolItemSnapshot
from fulfillment_kernel.domain.payloads import coerce_item_type, normalize_payload
from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.exceptions import (
    ImmutableRecordError,
    PoolItemNotFoundError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.selectors.pool_selector import PoolItemSelector
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.pool")

MAX_LABEL_LENGTH = 200


def normalize_label(label: str | None) -> str | None:
    if label is None:
        return None
    label = label.strip()
    if len(label) > MAX_LABEL_LENGTH:
        raise ValidationError(
            None,
            (
                FieldViolation(
                    "LABEL_TOO_LONG",
                    f"'label' must be at most {MAX_LABEL_LENGTH} characters",
                    "label",
                ),
            ),
        )
    return label or None


class PoolItemService(BaseService[PoolItem]):
    """
    Write operations on pool items.

    Non-goals:
        - Does NOT assign items; only the AllocationEngine does.
    """

    def new_item(
        self,
        product_id: UUID,
        seller_id: UUID,
        item_type: ItemType,
        payload: dict[str, Any],
        display_order: int,
        label: str | None = None,
    ) -> PoolItem:
        """Stage an already-validated item on the session (no flush)."""
        item = PoolItem(
            product_id=product_id,
            seller_id=seller_id,
            item_type=item_type.value,
            payload=payload,
            label=label,
            is_assigned=False,
            display_order=display_order,
            created_at=self._clock.now(),
        )
        self.session.add(item)
        return item

    def add(
        self,
        product_id: UUID,
        seller_id: UUID,
        item_type: ItemType | str,
        payload: dict[str, Any],
        label: str | None = None,
    ) -> PoolItemSnapshot:
        """
        Validate and add one pool item.

        Postconditions:
            The item is flushed as available, at the end of its pool.

        Raises:
            ValidationError: carrying every field violation.
        """
        item_type = coerce_item_type(item_type)
        normalized = normalize_payload(item_type, payload)
        label = normalize_label(label)

        display_order = PoolItemSelector(self.session).next_display_order(product_id, item_type)
        item = self.new_item(
            product_id, seller_id, item_type, normalized, display_order, label
        )
        self.session.flush()

        logger.info(
            "pool_item_added",
            extra={
                "pool_item_id": str(item.id),
                "product_id": str(product_id),
                "item_type": item_type.value,
                "display_order": display_order,
            },
        )
        return PoolItemSnapshot.from_model(item)

    def remove(self, pool_item_id: UUID, seller_id: UUID | None = None) -> None:
        """
        Delete an unassigned pool item.

        Args:
            pool_item_id: Item to delete.
            seller_id: If given, the item must belong to this seller.

        Raises:
            ImmutableRecordError: the item is assigned.
            PoolItemNotFoundError: no such item (for this seller).
        """
        stmt = delete(PoolItem).where(
            PoolItem.id == pool_item_id,
            PoolItem.is_assigned.is_(False),
        )
        if seller_id is not None:
            stmt = stmt.where(PoolItem.seller_id == seller_id)

        result = self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info("pool_item_removed", extra={"pool_item_id": str(pool_item_id)})
            return

        existing = self.session.get(PoolItem, pool_item_id)
        if existing is None or (seller_id is not None and existing.seller_id != seller_id):
            raise PoolItemNotFoundError(str(pool_item_id))

        logger.warning(
            "pool_item_remove_rejected",
            extra={"pool_item_id": str(pool_item_id), "reason": "assigned"},
        )
        raise ImmutableRecordError(
            entity_type="PoolItem",
            entity_id=str(pool_item_id),
            reason="Assigned pool items cannot be deleted",
        )
