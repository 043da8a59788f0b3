"""
ImportService -- bulk loading of pool items from pasted seller text.

Responsibility:
    Runs the pure bulk parser and stages every valid line as a pool item
    in one flush.

Architecture position:
    Kernel > Services -- imperative shell, owns no transaction.

Invariants enforced:
    - Per-line failures are reported and skipped; they never abort the
      batch.
    - The batch is one unit of work: all parsed items are written by a
      single flush inside the caller's transaction, so a storage failure
      leaves none of them behind.
    - display_order continues the pool's existing sequence.
"""

from __future__ import annotations

from uuid import UUID

from fulfillment_kernel.domain.bulk_parser import parse_bulk
from fulfillment_kernel.domain.dtos import ImportResult, PoolItemSnapshot
from fulfillment_kernel.domain.payloads import coerce_item_type
from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.selectors.pool_selector import PoolItemSelector
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.pool_service import PoolItemService

logger = get_logger("services.import")


class ImportService(BaseService[PoolItem]):
    """Bulk import of pool items."""

    def bulk_import(
        self,
        product_id: UUID,
        seller_id: UUID,
        item_type: ItemType | str,
        raw_text: str,
    ) -> ImportResult:
        """
        Import one item per line of ``raw_text``.

        Returns:
            ImportResult with created/skipped counts, the skipped lines
            (1-based number + reason) and snapshots of the created items.
        """
        item_type = coerce_item_type(item_type)
        start_order = PoolItemSelector(self.session).next_display_order(product_id, item_type)
        parsed = parse_bulk(item_type, raw_text, start_order=start_order)

        pool = PoolItemService(self.session, self._clock)
        items = [
            pool.new_item(
                product_id,
                seller_id,
                item_type,
                line.payload,
                display_order=start_order + i,
            )
            for i, line in enumerate(parsed.parsed)
        ]
        if items:
            self.session.flush()

        result = ImportResult(
            created=len(items),
            skipped=len(parsed.skipped),
            skipped_lines=parsed.skipped,
            items=tuple(PoolItemSnapshot.from_model(item) for item in items),
        )
        logger.info(
            "bulk_import_completed",
            extra={
                "product_id": str(product_id),
                "item_type": item_type.value,
                "created_count": result.created,
                "skipped_count": result.skipped,
            },
        )
        return result
