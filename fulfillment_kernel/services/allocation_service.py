"""
AllocationEngine -- atomic, idempotent assignment of one pool item per order.

Responsibility:
    Given a paid order, claims the next available pool item of the product,
    writes the delivered record, and returns it.  When nothing can be
    claimed it returns an OutOfStockSignal so the order falls back to
    manual fulfillment.

Architecture position:
    Kernel > Services -- imperative shell.  Unlike the flush-only services,
    the engine owns its transactions: every attempt is one short
    ``session_scope`` so that a lost race rolls back cleanly and the next
    attempt starts from fresh state.

Invariants enforced:
    - No double assignment: the only statement that sets is_assigned is a
      guarded ``UPDATE ... WHERE id = :candidate AND is_assigned IS false``
      whose row count is checked.  A count other than 1 means another
      claimer won; the attempt is rolled back and retried.
    - One delivered record per order: UNIQUE(order_id).  A concurrent claim
      for the same order loses on the constraint, rolls back (releasing the
      item it had assigned) and returns the winner's record.
    - Claim order: candidates are taken by (display_order, created_at, id).
    - The pool item and the delivered record commit together or not at all.

Concurrency:
    PostgreSQL  SELECT ... FOR UPDATE SKIP LOCKED LIMIT 1, then the guarded
                UPDATE.  Concurrent claimers skip each other's rows instead
                of queueing on them.
    SQLite      The transaction starts with BEGIN IMMEDIATE (``begin_write``),
                serializing writers; the guarded UPDATE is the
                compare-and-swap that makes a lost race detectable anyway.

Failure modes:
    - Lost CAS race, deadlock, serialization failure, lock timeout, SQLite
      "database is locked": retried up to ``max_attempts``; then an
      OutOfStockSignal with reason ``retries_exhausted``.  Never raised.
    - Non-transient database errors propagate.
"""

from __future__ import annotations

import copy
import time
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from fulfillment_kernel.db.engine import (
    begin_write,
    is_transient_error,
    session_scope,
    supports_skip_locked,
)
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import DeliveredItemRecord, OutOfStockSignal
from fulfillment_kernel.domain.payloads import coerce_item_type
from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.exceptions import ClaimConflictError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.delivered_item import DeliveredItem
from fulfillment_kernel.models.pool_item import PoolItem
from fulfillment_kernel.models.product_delivery import ProductDeliverySettings
from fulfillment_kernel.selectors.delivery_selector import DeliveredItemSelector
from fulfillment_kernel.selectors.pool_selector import CLAIM_ORDER

logger = get_logger("services.allocation")

ClaimOutcome = DeliveredItemRecord | OutOfStockSignal


class AllocationEngine:
    """
    Claims pool items for orders.

    Contract:
        ``claim()`` returns a DeliveredItemRecord or an OutOfStockSignal and
        never raises for contention.  Calling it again for the same order
        returns the same record.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_attempts: int = 10,
        backoff_seconds: float = 0.005,
    ):
        """
        Args:
            session_factory: Factory for the per-attempt sessions.
            clock: Clock for assigned_at/delivered_at. Defaults to SystemClock.
            max_attempts: Claim attempts before giving up on contention.
            backoff_seconds: Base delay between attempts (linear backoff).
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    def claim(
        self,
        order_id: UUID,
        buyer_id: UUID,
        product_id: UUID,
        item_type: ItemType | str,
    ) -> ClaimOutcome:
        """
        Assign one available pool item to ``order_id``.

        Preconditions:
            The order is paid (asserted by the caller, not checked here).

        Returns:
            DeliveredItemRecord on success or idempotent repeat;
            OutOfStockSignal(status="pending_manual") otherwise.
        """
        item_type = coerce_item_type(item_type)

        with LogContext.bind(order_id=order_id, buyer_id=buyer_id, product_id=product_id):
            existing = self._find_existing(order_id)
            if existing is not None:
                logger.info("claim_idempotent_hit", extra={"delivered_item_id": str(existing.id)})
                return existing

            for attempt in range(1, self._max_attempts + 1):
                try:
                    with session_scope(self._session_factory) as session:
                        outcome = self._attempt(session, order_id, buyer_id, product_id, item_type)
                except ClaimConflictError as exc:
                    logger.info(
                        "claim_conflict_retry",
                        extra={"attempt": attempt, "pool_item_id": exc.pool_item_id},
                    )
                    self._backoff(attempt)
                    continue
                except IntegrityError:
                    # Lost the UNIQUE(order_id) race to a concurrent claim for this order
                    existing = self._find_existing(order_id)
                    if existing is None:
                        raise
                    logger.info(
                        "claim_concurrent_duplicate",
                        extra={"delivered_item_id": str(existing.id)},
                    )
                    return existing
                except DBAPIError as exc:
                    if not is_transient_error(exc):
                        raise
                    logger.warning(
                        "claim_transient_error_retry",
                        extra={"attempt": attempt, "exc_type": type(exc.orig).__name__},
                    )
                    self._backoff(attempt)
                    continue

                if outcome is None:
                    logger.warning(
                        "claim_out_of_stock",
                        extra={"item_type": item_type.value, "reason": "pool_exhausted"},
                    )
                    return OutOfStockSignal(
                        order_id=order_id,
                        product_id=product_id,
                        item_type=item_type,
                        reason="pool_exhausted",
                    )

                logger.info(
                    "claim_completed",
                    extra={
                        "delivered_item_id": str(outcome.id),
                        "pool_item_id": str(outcome.pool_item_id),
                        "item_type": item_type.value,
                        "attempt": attempt,
                    },
                )
                return outcome

            logger.warning(
                "claim_out_of_stock",
                extra={
                    "item_type": item_type.value,
                    "reason": "retries_exhausted",
                    "attempts": self._max_attempts,
                },
            )
            return OutOfStockSignal(
                order_id=order_id,
                product_id=product_id,
                item_type=item_type,
                reason="retries_exhausted",
            )

    def _find_existing(self, order_id: UUID) -> DeliveredItemRecord | None:
        with session_scope(self._session_factory) as session:
            return DeliveredItemSelector(session).get_for_order(order_id)

    def _attempt(
        self,
        session: Session,
        order_id: UUID,
        buyer_id: UUID,
        product_id: UUID,
        item_type: ItemType,
    ) -> DeliveredItemRecord | None:
        """
        One claim transaction.  Returns None when the pool is empty.

        Raises:
            ClaimConflictError: the candidate was assigned concurrently.
        """
        begin_write(session)

        # Re-check inside the transaction: another claim for this order may
        # have committed since the pre-check.
        existing = DeliveredItemSelector(session).get_for_order(order_id)
        if existing is not None:
            return existing

        candidate = (
            select(PoolItem.id)
            .where(
                PoolItem.product_id == product_id,
                PoolItem.item_type == item_type.value,
                PoolItem.is_assigned.is_(False),
            )
            .order_by(*CLAIM_ORDER)
            .limit(1)
        )
        if supports_skip_locked(session):
            candidate = candidate.with_for_update(skip_locked=True)

        candidate_id = session.execute(candidate).scalar_one_or_none()
        if candidate_id is None:
            return None

        now = self._clock.now()
        result = session.execute(
            update(PoolItem)
            .where(PoolItem.id == candidate_id, PoolItem.is_assigned.is_(False))
            .values(
                is_assigned=True,
                assigned_order_id=order_id,
                assigned_buyer_id=buyer_id,
                assigned_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ClaimConflictError(str(candidate_id), str(order_id))

        item = session.get(PoolItem, candidate_id, populate_existing=True)
        usage_guide = session.execute(
            select(ProductDeliverySettings.usage_guide).where(
                ProductDeliverySettings.product_id == product_id
            )
        ).scalar_one_or_none()

        delivered = DeliveredItem(
            order_id=order_id,
            buyer_id=buyer_id,
            product_id=product_id,
            pool_item_id=item.id,
            delivery_type=item.item_type,
            delivered_data=copy.deepcopy(item.payload),
            delivered_at=now,
            is_revealed=False,
            usage_guide=usage_guide,
        )
        session.add(delivered)
        session.flush()
        return DeliveredItemRecord.from_model(delivered)

    def _backoff(self, attempt: int) -> None:
        if self._backoff_seconds > 0:
            time.sleep(self._backoff_seconds * attempt)
