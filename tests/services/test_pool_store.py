"""Tests for the pool item store: add, list, count, delete guard, inventory view."""

from uuid import uuid4

import pytest

from fulfillment_kernel.domain.values import ItemType
from fulfillment_kernel.exceptions import (
    ImmutableRecordError,
    PoolItemNotFoundError,
    ValidationError,
)
from fulfillment_kernel.selectors.pool_selector import PoolItemSelector


class TestAddItem:

    def test_add_returns_available_snapshot(self, service, product_id, seller_id, deterministic_clock):
        item = service.add_item(
            product_id, seller_id, "account",
            {"email": "a@x.com", "password": "p1"}, label="batch-1",
        )

        assert item.item_type is ItemType.ACCOUNT
        assert item.is_assigned is False
        assert item.assigned_order_id is None
        assert item.assigned_buyer_id is None
        assert item.assigned_at is None
        assert item.label == "batch-1"
        assert item.created_at == deterministic_clock.now()
        assert dict(item.payload) == {"email": "a@x.com", "password": "p1"}

    def test_snapshot_payload_is_read_only(self, service, product_id, seller_id):
        item = service.add_item(product_id, seller_id, "license_key", {"key": "K1"})
        with pytest.raises(TypeError):
            item.payload["key"] = "other"

    def test_display_order_follows_insertion(self, service, product_id, seller_id):
        items = [
            service.add_item(product_id, seller_id, "license_key", {"key": f"K{i}"})
            for i in range(3)
        ]
        assert [i.display_order for i in items] == [0, 1, 2]

    def test_display_order_is_per_item_type(self, service, product_id, seller_id):
        service.add_item(product_id, seller_id, "license_key", {"key": "K1"})
        download = service.add_item(
            product_id, seller_id, "download", {"file_url": "https://cdn.example/a.zip"}
        )
        assert download.display_order == 0

    def test_delete_then_add_keeps_claim_order(self, service, product_id, seller_id, buyer_id):
        items = [
            service.add_item(product_id, seller_id, "license_key", {"key": f"K{i}"})
            for i in range(3)
        ]
        service.delete_item(items[0].id, seller_id=seller_id)
        latest = service.add_item(product_id, seller_id, "license_key", {"key": "K3"})

        assert latest.display_order == 3
        orders = [i.display_order for i in service.list_items(product_id, "license_key")]
        assert orders == [1, 2, 3]

        claimed = [
            service.claim(uuid4(), buyer_id, product_id, "license_key").delivered_data["key"]
            for _ in range(3)
        ]
        assert claimed == ["K1", "K2", "K3"]

    def test_invalid_payload_writes_nothing(self, service, product_id, seller_id):
        with pytest.raises(ValidationError):
            service.add_item(product_id, seller_id, "account", {"email": "a@x.com"})
        assert service.get_stock(product_id, "account").total == 0

    def test_label_too_long(self, service, product_id, seller_id):
        with pytest.raises(ValidationError) as exc_info:
            service.add_item(product_id, seller_id, "license_key", {"key": "K"}, label="x" * 201)
        assert exc_info.value.fields == ("label",)

    def test_add_is_logged(self, service, product_id, seller_id, captured_logs):
        service.add_item(product_id, seller_id, "license_key", {"key": "SECRET-KEY"})
        records = [r for r in captured_logs() if r["message"] == "pool_item_added"]
        assert len(records) == 1
        assert records[0]["product_id"] == str(product_id)
        assert "SECRET-KEY" not in str(captured_logs())


class TestListingsAndCounts:

    def test_list_by_product_and_type_in_claim_order(self, service, product_id, license_pool):
        loaded = license_pool(4)
        listed = service.list_items(product_id, "license_key")
        assert [i.id for i in listed] == [i.id for i in loaded]

    def test_counts_after_claim(self, service, product_id, license_pool, buyer_id):
        license_pool(3)
        service.claim(uuid4(), buyer_id, product_id, "license_key")

        stock = service.get_stock(product_id, "license_key")
        assert (stock.available, stock.assigned, stock.total) == (2, 1, 3)

    def test_selector_counts(self, service, session, product_id, license_pool, buyer_id):
        license_pool(4)
        service.claim(uuid4(), buyer_id, product_id, "license_key")

        selector = PoolItemSelector(session)
        assert selector.count_available(product_id, "license_key") == 3
        assert selector.count_assigned(product_id, ItemType.LICENSE_KEY) == 1
        assert selector.next_display_order(product_id, "license_key") == 4
        assert selector.next_display_order(product_id, "account") == 0

    def test_unknown_pool_is_empty(self, service):
        stock = service.get_stock(uuid4(), ItemType.ACCOUNT)
        assert (stock.available, stock.assigned, stock.total) == (0, 0, 0)
        assert stock.is_out_of_stock


class TestDeleteGuard:

    def test_delete_unassigned(self, service, product_id, seller_id, license_pool):
        item = license_pool(1)[0]
        service.delete_item(item.id, seller_id=seller_id)
        assert service.get_item(item.id) is None

    def test_delete_assigned_raises_and_keeps_item(self, service, product_id, license_pool, buyer_id):
        item = license_pool(1)[0]
        service.claim(uuid4(), buyer_id, product_id, "license_key")

        with pytest.raises(ImmutableRecordError) as exc_info:
            service.delete_item(item.id)

        assert exc_info.value.code == "IMMUTABLE_RECORD"
        assert exc_info.value.entity_type == "PoolItem"
        assert service.get_item(item.id).is_assigned is True

    def test_delete_unknown_item(self, service):
        with pytest.raises(PoolItemNotFoundError):
            service.delete_item(uuid4())

    def test_delete_other_sellers_item(self, service, license_pool):
        item = license_pool(1)[0]
        with pytest.raises(PoolItemNotFoundError):
            service.delete_item(item.id, seller_id=uuid4())
        assert service.get_item(item.id) is not None


class TestSellerInventory:

    @pytest.fixture
    def inventory(self, service, seller_id, deterministic_clock, buyer_id):
        first_product, second_product = uuid4(), uuid4()
        service.add_item(first_product, seller_id, "account", {"email": "alpha@x.com", "password": "p"})
        deterministic_clock.advance(10)
        service.add_item(first_product, seller_id, "license_key", {"key": "BETA-KEY"}, label="promo")
        deterministic_clock.advance(10)
        service.add_item(second_product, seller_id, "license_key", {"key": "GAMMA-KEY"})
        service.claim(uuid4(), buyer_id, second_product, "license_key")
        service.add_item(uuid4(), uuid4(), "license_key", {"key": "OTHER-SELLER"})
        return first_product, second_product

    def test_newest_first(self, service, seller_id, inventory):
        keys = [i.payload.get("key") or i.payload.get("email") for i in service.list_seller_inventory(seller_id)]
        assert keys == ["GAMMA-KEY", "BETA-KEY", "alpha@x.com"]

    def test_filters(self, service, seller_id, inventory):
        first_product, second_product = inventory
        assert len(service.list_seller_inventory(seller_id, item_type="license_key")) == 2
        assert [i.product_id for i in service.list_seller_inventory(seller_id, status="assigned")] == [second_product]
        assert len(service.list_seller_inventory(seller_id, status="available")) == 2
        assert len(service.list_seller_inventory(seller_id, product_id=first_product)) == 2

    def test_search_matches_payload_and_label(self, service, seller_id, inventory):
        assert len(service.list_seller_inventory(seller_id, search="ALPHA")) == 1
        assert len(service.list_seller_inventory(seller_id, search="promo")) == 1
        assert service.list_seller_inventory(seller_id, search="other-seller") == []
