"""
Tests for claiming pool items (AllocationEngine via FulfillmentService).

Sequential behavior only; races live in tests/concurrency/.
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from fulfillment_kernel.domain.dtos import DeliveredItemRecord, OutOfStockSignal
from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.exceptions import ClaimConflictError
from fulfillment_kernel.services.allocation_service import AllocationEngine


class TestClaimSuccess:

    def test_claim_returns_delivered_record(self, service, product_id, license_pool, buyer_id, deterministic_clock):
        pool = license_pool(2)
        order_id = uuid4()

        record = service.claim(order_id, buyer_id, product_id, "license_key")

        assert isinstance(record, DeliveredItemRecord)
        assert record.is_delivered
        assert record.order_id == order_id
        assert record.buyer_id == buyer_id
        assert record.product_id == product_id
        assert record.pool_item_id == pool[0].id
        assert record.delivery_type is ItemType.LICENSE_KEY
        assert dict(record.delivered_data) == {"key": "KEY-0001"}
        assert record.delivered_at == deterministic_clock.now()
        assert record.is_revealed is False

    def test_pool_item_records_assignment(self, service, product_id, license_pool, buyer_id):
        pool = license_pool(1)
        order_id = uuid4()
        service.claim(order_id, buyer_id, product_id, "license_key")

        item = service.get_item(pool[0].id)
        assert item.is_assigned is True
        assert item.assigned_order_id == order_id
        assert item.assigned_buyer_id == buyer_id
        assert item.assigned_at is not None

    def test_fifo_consumption(self, service, product_id, license_pool, buyer_id):
        license_pool(5)
        keys = [
            service.claim(uuid4(), buyer_id, product_id, "license_key").delivered_data["key"]
            for _ in range(5)
        ]
        assert keys == ["KEY-0001", "KEY-0002", "KEY-0003", "KEY-0004", "KEY-0005"]

    def test_claim_after_delete_skips_gap(self, service, product_id, seller_id, license_pool, buyer_id):
        pool = license_pool(3)
        service.delete_item(pool[0].id, seller_id=seller_id)
        record = service.claim(uuid4(), buyer_id, product_id, "license_key")
        assert record.delivered_data["key"] == "KEY-0002"

    def test_pools_are_isolated_by_item_type(self, service, product_id, seller_id, buyer_id):
        service.add_item(product_id, seller_id, "account", {"email": "a@x.com", "password": "p"})
        signal = service.claim(uuid4(), buyer_id, product_id, "license_key")
        assert isinstance(signal, OutOfStockSignal)
        assert service.get_stock(product_id, "account").available == 1

    def test_claim_is_logged(self, service, product_id, license_pool, buyer_id, captured_logs):
        license_pool(1)
        order_id = uuid4()
        service.claim(order_id, buyer_id, product_id, "license_key")

        records = [r for r in captured_logs() if r["message"] == "claim_completed"]
        assert len(records) == 1
        assert records[0]["order_id"] == str(order_id)
        assert "KEY-0001" not in str(captured_logs())


class TestDeliveredSnapshot:

    def test_delivered_data_is_a_copy(self, service, session_factory, product_id, license_pool, buyer_id):
        from fulfillment_kernel.models.delivered_item import DeliveredItem
        from fulfillment_kernel.models.pool_item import PoolItem

        pool = license_pool(1)
        record = service.claim(uuid4(), buyer_id, product_id, "license_key")

        with session_factory() as session:
            item = session.get(PoolItem, pool[0].id)
            delivered = session.get(DeliveredItem, record.id)
            assert delivered.delivered_data == item.payload
            assert delivered.delivered_data is not item.payload

    def test_usage_guide_is_attached(self, service, product_id, seller_id, license_pool, buyer_id):
        service.configure_product(product_id, seller_id, "auto_license", usage_guide="Redeem at example.com/redeem")
        license_pool(1)
        record = service.claim(uuid4(), buyer_id, product_id, "license_key")
        assert record.usage_guide == "Redeem at example.com/redeem"

    def test_later_guide_edits_do_not_change_delivered_records(self, service, product_id, seller_id, license_pool, buyer_id):
        service.configure_product(product_id, seller_id, "auto_license", usage_guide="v1")
        license_pool(2)
        first = service.claim(uuid4(), buyer_id, product_id, "license_key")
        service.configure_product(product_id, seller_id, "auto_license", usage_guide="v2")
        second = service.claim(uuid4(), buyer_id, product_id, "license_key")

        assert service.get_delivered_item(first.id).usage_guide == "v1"
        assert second.usage_guide == "v2"


class TestIdempotency:

    def test_same_order_returns_same_record(self, service, product_id, license_pool, buyer_id, captured_logs):
        license_pool(3)
        order_id = uuid4()

        first = service.claim(order_id, buyer_id, product_id, "license_key")
        second = service.claim(order_id, buyer_id, product_id, "license_key")

        assert first == second
        assert service.get_stock(product_id, "license_key").assigned == 1
        assert any(r["message"] == "claim_idempotent_hit" for r in captured_logs())

    def test_repeat_after_pool_exhausted_still_returns_record(self, service, product_id, license_pool, buyer_id):
        license_pool(1)
        order_id = uuid4()
        first = service.claim(order_id, buyer_id, product_id, "license_key")
        assert isinstance(service.claim(uuid4(), buyer_id, product_id, "license_key"), OutOfStockSignal)

        assert service.claim(order_id, buyer_id, product_id, "license_key") == first

    def test_get_delivered_for_order(self, service, product_id, license_pool, buyer_id):
        license_pool(1)
        order_id = uuid4()
        record = service.claim(order_id, buyer_id, product_id, "license_key")
        assert service.get_delivered_for_order(order_id) == record
        assert service.get_delivered_for_order(uuid4()) is None


class TestOutOfStock:

    def test_empty_pool_signals_pending_manual(self, service, product_id, buyer_id, recording_alerts):
        order_id = uuid4()
        signal = service.claim(order_id, buyer_id, product_id, "account")

        assert isinstance(signal, OutOfStockSignal)
        assert signal.status == "pending_manual"
        assert signal.reason == "pool_exhausted"
        assert signal.order_id == order_id
        assert signal.is_delivered is False
        assert service.get_delivered_for_order(order_id) is None
        assert recording_alerts.kinds() == ["pending_manual"]

    def test_exhaustion_after_last_item(self, service, product_id, license_pool, buyer_id):
        license_pool(2)
        outcomes = [service.claim(uuid4(), buyer_id, product_id, "license_key") for _ in range(3)]
        assert [type(o).__name__ for o in outcomes] == [
            "DeliveredItemRecord", "DeliveredItemRecord", "OutOfStockSignal",
        ]


class TestDeliveryModeResolution:

    def test_item_type_resolved_from_mode(self, service, product_id, seller_id, buyer_id):
        service.configure_product(product_id, seller_id, "auto_account")
        service.add_item(product_id, seller_id, "account", {"email": "a@x.com", "password": "p"})

        record = service.claim(uuid4(), buyer_id, product_id)
        assert record.delivery_type is ItemType.ACCOUNT

    @pytest.mark.parametrize("mode", ["manual", "instant_download"])
    def test_non_pool_modes(self, service, product_id, seller_id, buyer_id, mode, recording_alerts):
        service.configure_product(product_id, seller_id, mode)
        signal = service.claim(uuid4(), buyer_id, product_id)

        assert isinstance(signal, OutOfStockSignal)
        assert signal.reason == "not_pool_backed"
        assert signal.item_type is None
        assert recording_alerts.kinds() == ["pending_manual"]

    def test_unconfigured_product_without_item_type(self, service, product_id, buyer_id):
        signal = service.claim(uuid4(), buyer_id, product_id)
        assert signal.reason == "not_pool_backed"


class TestStockAlerts:

    def test_low_stock_alert_after_claim(self, service, product_id, license_pool, buyer_id, recording_alerts):
        license_pool(7)
        service.claim(uuid4(), buyer_id, product_id, "license_key")  # 6 left
        assert recording_alerts.alerts == []

        order_id = uuid4()
        service.claim(order_id, buyer_id, product_id, "license_key")  # 5 left
        assert recording_alerts.kinds() == ["low_stock"]
        assert recording_alerts.alerts[0].available == 5
        assert recording_alerts.alerts[0].order_id == order_id

    def test_out_of_stock_alert_on_last_item(self, service, product_id, license_pool, buyer_id, recording_alerts):
        license_pool(1)
        service.claim(uuid4(), buyer_id, product_id, "license_key")
        assert recording_alerts.kinds() == ["out_of_stock"]

    def test_failing_alert_adapter_does_not_affect_claim(self, session_factory, product_id, seller_id, buyer_id, captured_logs):
        from fulfillment_kernel.domain.alerts import StockAlertPort
        from fulfillment_kernel.services.fulfillment_service import FulfillmentService

        class Broken(StockAlertPort):
            def notify(self, alert):
                raise RuntimeError("smtp down")

        service = FulfillmentService(session_factory, alert_port=Broken(), claim_backoff_seconds=0)
        service.add_item(product_id, seller_id, "license_key", {"key": "ONLY"})

        record = service.claim(uuid4(), buyer_id, product_id, "license_key")
        assert isinstance(record, DeliveredItemRecord)
        assert any(r["message"] == "stock_alert_failed" for r in captured_logs())

    def test_low_stock_products(self, service, seller_id, buyer_id):
        low, healthy, configured_empty = uuid4(), uuid4(), uuid4()
        for i in range(3):
            service.add_item(low, seller_id, "license_key", {"key": f"L{i}"})
        for i in range(8):
            service.add_item(healthy, seller_id, "license_key", {"key": f"H{i}"})
        service.configure_product(configured_empty, seller_id, "auto_download")

        levels = {(lvl.product_id, lvl.item_type): lvl for lvl in service.low_stock_products(seller_id)}

        assert set(levels) == {(low, ItemType.LICENSE_KEY), (configured_empty, ItemType.DOWNLOAD)}
        assert levels[(low, ItemType.LICENSE_KEY)].is_low_stock
        assert levels[(configured_empty, ItemType.DOWNLOAD)].is_out_of_stock


class TestRetries:

    def test_lost_race_is_retried(self, session_factory, product_id, license_pool, buyer_id, captured_logs, monkeypatch):
        license_pool(2)
        engine = AllocationEngine(session_factory, backoff_seconds=0)
        original = AllocationEngine._attempt
        calls = {"n": 0}

        def flaky(self, session, order_id, *args):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ClaimConflictError("candidate", str(order_id))
            return original(self, session, order_id, *args)

        monkeypatch.setattr(AllocationEngine, "_attempt", flaky)
        record = engine.claim(uuid4(), buyer_id, product_id, "license_key")

        assert isinstance(record, DeliveredItemRecord)
        assert calls["n"] == 2
        assert any(r["message"] == "claim_conflict_retry" for r in captured_logs())

    def test_retries_exhausted(self, session_factory, product_id, license_pool, buyer_id, monkeypatch):
        license_pool(1)
        engine = AllocationEngine(session_factory, max_attempts=3, backoff_seconds=0)

        def always_conflict(self, session, order_id, *args):
            raise ClaimConflictError("candidate", str(order_id))

        monkeypatch.setattr(AllocationEngine, "_attempt", always_conflict)
        signal = engine.claim(uuid4(), buyer_id, product_id, "license_key")

        assert isinstance(signal, OutOfStockSignal)
        assert signal.reason == "retries_exhausted"

    def test_database_locked_is_retried(self, session_factory, product_id, license_pool, buyer_id, monkeypatch):
        license_pool(1)
        engine = AllocationEngine(session_factory, backoff_seconds=0)
        original = AllocationEngine._attempt
        calls = {"n": 0}

        def locked_once(self, session, *args):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return original(self, session, *args)

        monkeypatch.setattr(AllocationEngine, "_attempt", locked_once)
        assert isinstance(engine.claim(uuid4(), buyer_id, product_id, "license_key"), DeliveredItemRecord)

    def test_non_transient_error_propagates(self, session_factory, product_id, buyer_id, monkeypatch):
        engine = AllocationEngine(session_factory, backoff_seconds=0)

        def broken(self, session, *args):
            raise OperationalError("SELECT", {}, Exception("no such table: pool_items"))

        monkeypatch.setattr(AllocationEngine, "_attempt", broken)
        with pytest.raises(OperationalError):
            engine.claim(uuid4(), buyer_id, product_id, "license_key")

    def test_max_attempts_must_be_positive(self, session_factory):
        with pytest.raises(ValueError):
            AllocationEngine(session_factory, max_attempts=0)
