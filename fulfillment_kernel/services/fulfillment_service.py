"""
FulfillmentService -- the kernel's public entry point.

Responsibility:
    Constructed once per process.  Owns the engine and session factory,
    wires services, selectors and the allocation engine together, and
    gives every public operation its own transaction.

Architecture position:
    Kernel > Services -- the outermost kernel layer.  Callers (checkout,
    seller dashboard, buyer library, CLI) talk to this class only.

Invariants enforced:
    - One transaction per operation (``session_scope``); write operations
      open it with ``begin_write`` so SQLite writers are serialized.
    - Callers only ever receive frozen snapshots.
    - Stock alerts are best-effort: a failing alert adapter is logged and
      never changes the outcome of the claim that triggered it.

Failure modes:
    See the individual operations; everything raised derives from
    FulfillmentKernelError except non-transient database errors.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator
from uuid import UUID

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fulfillment_kernel.config import FulfillmentConfig, load_config
from fulfillment_kernel.db.engine import (
    begin_write,
    build_engine_from_config,
    build_session_factory,
    create_tables,
    session_scope,
)
from fulfillment_kernel.db.immutability import register_immutability_listeners
from fulfillment_kernel.domain.alerts import (
    LoggingStockAlertAdapter,
    StockAlert,
    StockAlertKind,
    StockAlertPort,
    alert_for_level,
)
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import (
    DeliveredItemRecord,
    DeliveredItemView,
    ImportResult,
    OutOfStockSignal,
    PoolItemSnapshot,
    ProductDeliverySnapshot,
    StockLevel,
)
from fulfillment_kernel.domain.values import (
    DeliveryMode,
    ItemType,
    StockStatus,
    item_type_for_mode,
)
from fulfillment_kernel.exceptions import DeliveredItemNotFoundError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.selectors.delivery_selector import DeliveredItemSelector
from fulfillment_kernel.selectors.pool_selector import PoolItemSelector
from fulfillment_kernel.selectors.stock_selector import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    StockSelector,
)
from fulfillment_kernel.services.allocation_service import AllocationEngine, ClaimOutcome
from fulfillment_kernel.services.delivery_service import DeliveryService
from fulfillment_kernel.services.erasure_service import ErasureService, SellerErasureResult
from fulfillment_kernel.services.import_service import ImportService
from fulfillment_kernel.services.pool_service import PoolItemService
from fulfillment_kernel.services.product_settings_service import ProductSettingsService

logger = get_logger("services.fulfillment")


class FulfillmentService:
    """
    Facade over the fulfillment kernel.

    Usage:
        service = FulfillmentService.from_config(load_config())
        service.create_schema()
        service.add_item(product_id, seller_id, "license_key", {"key": "AAAA-BBBB"})
        outcome = service.claim(order_id, buyer_id, product_id, "license_key")
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        alert_port: StockAlertPort | None = None,
        claim_max_attempts: int = 10,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
        claim_backoff_seconds: float = 0.005,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._alerts = alert_port or LoggingStockAlertAdapter()
        self._threshold = low_stock_threshold
        self._engine = AllocationEngine(
            session_factory,
            clock=self._clock,
            max_attempts=claim_max_attempts,
            backoff_seconds=claim_backoff_seconds,
        )
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: FulfillmentConfig | None = None,
        clock: Clock | None = None,
        alert_port: StockAlertPort | None = None,
    ) -> FulfillmentService:
        """Build the engine and session factory described by ``config``."""
        config = config or load_config()
        engine = build_engine_from_config(config)
        return cls(
            build_session_factory(engine),
            clock=clock,
            alert_port=alert_port,
            claim_max_attempts=config.claim_max_attempts,
            low_stock_threshold=config.low_stock_threshold,
        )

    @property
    def engine(self) -> Engine:
        return self._session_factory.kw["bind"]

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    def create_schema(self, install_triggers: bool = True) -> None:
        """Create the kernel tables (and PostgreSQL triggers)."""
        create_tables(self.engine, install_triggers=install_triggers)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _read(self) -> Generator[Session, None, None]:
        with session_scope(self._session_factory) as session:
            yield session

    @contextmanager
    def _write(self) -> Generator[Session, None, None]:
        with session_scope(self._session_factory) as session:
            begin_write(session)
            yield session

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def claim(
        self,
        order_id: UUID,
        buyer_id: UUID,
        product_id: UUID,
        item_type: ItemType | str | None = None,
    ) -> ClaimOutcome:
        """
        Fulfill a paid order from the product's pool.

        Args:
            item_type: Pool to draw from.  None resolves it from the
                product's delivery mode; a product without a pool-backed
                mode yields OutOfStockSignal(reason="not_pool_backed").

        Returns:
            DeliveredItemRecord, or OutOfStockSignal(status="pending_manual").
        """
        if item_type is None:
            settings = self.get_product_settings(product_id)
            resolved = item_type_for_mode(settings.delivery_mode) if settings else None
            if resolved is None:
                with LogContext.bind(order_id=order_id, product_id=product_id):
                    logger.info("claim_not_pool_backed")
                signal = OutOfStockSignal(
                    order_id=order_id,
                    product_id=product_id,
                    item_type=None,
                    reason="not_pool_backed",
                )
                self._notify(
                    StockAlert(
                        kind=StockAlertKind.PENDING_MANUAL,
                        product_id=product_id,
                        item_type=None,
                        available=0,
                        order_id=order_id,
                    )
                )
                return signal
            item_type = resolved

        outcome = self._engine.claim(order_id, buyer_id, product_id, item_type)

        if isinstance(outcome, OutOfStockSignal):
            self._notify(
                StockAlert(
                    kind=StockAlertKind.PENDING_MANUAL,
                    product_id=product_id,
                    item_type=outcome.item_type,
                    available=0,
                    order_id=order_id,
                )
            )
        else:
            level = self.get_stock(product_id, outcome.delivery_type)
            alert = alert_for_level(level, order_id=order_id)
            if alert is not None:
                self._notify(alert)
        return outcome

    def _notify(self, alert: StockAlert) -> None:
        try:
            self._alerts.notify(alert)
        except Exception:
            logger.exception(
                "stock_alert_failed",
                extra={"alert_kind": alert.kind.value, "product_id": str(alert.product_id)},
            )

    # ------------------------------------------------------------------
    # Pool item store
    # ------------------------------------------------------------------

    def add_item(
        self,
        product_id: UUID,
        seller_id: UUID,
        item_type: ItemType | str,
        payload: dict[str, Any],
        label: str | None = None,
    ) -> PoolItemSnapshot:
        with LogContext.bind(seller_id=seller_id, product_id=product_id):
            with self._write() as session:
                return PoolItemService(session, self._clock).add(
                    product_id, seller_id, item_type, payload, label=label
                )

    def bulk_import(
        self,
        product_id: UUID,
        seller_id: UUID,
        item_type: ItemType | str,
        raw_text: str,
    ) -> ImportResult:
        with LogContext.bind(seller_id=seller_id, product_id=product_id):
            with self._write() as session:
                return ImportService(session, self._clock).bulk_import(
                    product_id, seller_id, item_type, raw_text
                )

    def delete_item(self, pool_item_id: UUID, seller_id: UUID | None = None) -> None:
        with LogContext.bind(seller_id=seller_id):
            with self._write() as session:
                PoolItemService(session, self._clock).remove(pool_item_id, seller_id=seller_id)

    def get_item(self, pool_item_id: UUID) -> PoolItemSnapshot | None:
        with self._read() as session:
            return PoolItemSelector(session).get(pool_item_id)

    def list_items(self, product_id: UUID, item_type: ItemType | str) -> list[PoolItemSnapshot]:
        with self._read() as session:
            return PoolItemSelector(session).list_by_product_and_type(product_id, item_type)

    def list_seller_inventory(
        self,
        seller_id: UUID,
        item_type: ItemType | str | None = None,
        status: StockStatus | str | None = None,
        product_id: UUID | None = None,
        search: str | None = None,
    ) -> list[PoolItemSnapshot]:
        with self._read() as session:
            return PoolItemSelector(session).list_for_seller(
                seller_id,
                item_type=item_type,
                status=status,
                product_id=product_id,
                search=search,
            )

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def get_stock(self, product_id: UUID, item_type: ItemType | str) -> StockLevel:
        with self._read() as session:
            return StockSelector(session, self._threshold).get_stock(product_id, item_type)

    def low_stock_products(self, seller_id: UUID) -> list[StockLevel]:
        with self._read() as session:
            return StockSelector(session, self._threshold).low_stock_products(seller_id)

    # ------------------------------------------------------------------
    # Product settings
    # ------------------------------------------------------------------

    def configure_product(
        self,
        product_id: UUID,
        seller_id: UUID,
        delivery_mode: DeliveryMode | str,
        usage_guide: str | None = None,
    ) -> ProductDeliverySnapshot:
        with LogContext.bind(seller_id=seller_id, product_id=product_id):
            with self._write() as session:
                return ProductSettingsService(session, self._clock).configure(
                    product_id, seller_id, delivery_mode, usage_guide=usage_guide
                )

    def get_product_settings(self, product_id: UUID) -> ProductDeliverySnapshot | None:
        with self._read() as session:
            return ProductSettingsService(session, self._clock).get(product_id)

    # ------------------------------------------------------------------
    # Delivered items
    # ------------------------------------------------------------------

    def reveal(self, delivered_item_id: UUID) -> DeliveredItemRecord:
        with self._write() as session:
            return DeliveryService(session, self._clock).reveal(delivered_item_id)

    def get_delivered_item(self, delivered_item_id: UUID) -> DeliveredItemRecord:
        with self._read() as session:
            record = DeliveredItemSelector(session).get(delivered_item_id)
        if record is None:
            raise DeliveredItemNotFoundError(str(delivered_item_id))
        return record

    def get_delivered_for_order(self, order_id: UUID) -> DeliveredItemRecord | None:
        with self._read() as session:
            return DeliveredItemSelector(session).get_for_order(order_id)

    def buyer_library(self, buyer_id: UUID) -> list[DeliveredItemRecord]:
        with self._read() as session:
            return DeliveredItemSelector(session).list_for_buyer(buyer_id)

    def view_delivered_item(self, delivered_item_id: UUID, buyer_id: UUID) -> DeliveredItemView:
        with self._read() as session:
            return DeliveryService(session, self._clock).view_for_buyer(
                delivered_item_id, buyer_id
            )

    # ------------------------------------------------------------------
    # Erasure
    # ------------------------------------------------------------------

    def erase_buyer(self, buyer_id: UUID) -> int:
        with self._write() as session:
            return ErasureService(session, self._clock).erase_buyer(buyer_id)

    def erase_seller(self, seller_id: UUID) -> SellerErasureResult:
        with self._write() as session:
            return ErasureService(session, self._clock).erase_seller(seller_id)
