"""Schema-level uniqueness on delivered records, independent of the allocation engine."""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from fulfillment_kernel.models.delivered_item import DeliveredItem


@pytest.fixture
def record(service, product_id, license_pool, buyer_id):
    license_pool(2)
    return service.claim(uuid4(), buyer_id, product_id, "license_key")


def _delivered(record, deterministic_clock, **overrides):
    fields = dict(
        order_id=uuid4(),
        buyer_id=uuid4(),
        product_id=record.product_id,
        pool_item_id=record.pool_item_id,
        delivery_type="license_key",
        delivered_data={"key": "COPY"},
        delivered_at=deterministic_clock.now(),
        is_revealed=False,
    )
    fields.update(overrides)
    return DeliveredItem(**fields)


def test_pool_item_cannot_back_two_deliveries(session, record, deterministic_clock):
    session.add(_delivered(record, deterministic_clock))
    with pytest.raises(IntegrityError):
        session.flush()


def test_order_cannot_have_two_deliveries(session, record, deterministic_clock):
    session.add(_delivered(record, deterministic_clock, order_id=record.order_id, pool_item_id=uuid4()))
    with pytest.raises(IntegrityError):
        session.flush()


def test_distinct_pool_items_are_accepted(session, record, deterministic_clock):
    session.add(_delivered(record, deterministic_clock, pool_item_id=uuid4()))
    session.flush()
