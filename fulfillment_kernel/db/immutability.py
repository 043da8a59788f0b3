"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

A pool item that has been handed to a buyer is the audit trail of that sale,
and the delivered record is the buyer's receipt.  Neither may drift after the
fact: a seller must not be able to swap the credential behind a delivered
order, and nobody may "un-assign" an item so it can be sold twice.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through Python/SQLAlchemy unit-of-work code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, Core UPDATE/DELETE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|-------------------------------------------------------------
PoolItem        | is_assigned / assigned_* are never written by the ORM; the
                | allocation engine's guarded Core UPDATE is the only path.
                | payload, item_type, product_id, seller_id frozen once
                | assigned.  Assigned items are not deletable.
DeliveredItem   | Only is_revealed false -> true may change.  Not deletable.

Both delete rules are lifted for a session that carries the erasure
authorization flag (see ``authorize_erasure``); ``ErasureService`` is the
only caller that sets it.

===============================================================================
USAGE
===============================================================================

    from fulfillment_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called by FulfillmentService

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import get_history

from fulfillment_kernel.db.triggers import ERASURE_SETTING
from fulfillment_kernel.exceptions import ImmutableRecordError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

ERASURE_FLAG = "fulfillment_erasure_authorized"

_ASSIGNMENT_FIELDS = ("is_assigned", "assigned_order_id", "assigned_buyer_id", "assigned_at")
_FROZEN_WHEN_ASSIGNED = ("payload", "item_type", "product_id", "seller_id")


def authorize_erasure(session: Session) -> None:
    """
    Mark ``session`` as running an account erasure.

    On PostgreSQL this also sets the transaction-local ``fulfillment.erasure``
    setting checked by the delete triggers; it is cleared at commit or
    rollback.
    """
    session.info[ERASURE_FLAG] = True
    if session.get_bind().dialect.name == "postgresql":
        session.execute(
            text("SELECT set_config(:name, 'on', true)"),
            {"name": ERASURE_SETTING},
        )


def revoke_erasure(session: Session) -> None:
    session.info.pop(ERASURE_FLAG, None)


def _erasure_authorized(target) -> bool:
    session = object_session(target)
    return bool(session is not None and session.info.get(ERASURE_FLAG))


def _blocked(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(target.id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    return ImmutableRecordError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_pool_item_update(mapper, connection, target):
    """
    Reject assignment changes made through the ORM and any content change
    to an item that is already assigned.
    """
    for name in _ASSIGNMENT_FIELDS:
        if get_history(target, name).has_changes():
            raise _blocked(
                "PoolItem",
                target,
                "UPDATE",
                f"Field '{name}' is only written by the allocation engine",
                field=name,
            )

    if not target.is_assigned:
        return

    for name in _FROZEN_WHEN_ASSIGNED:
        if get_history(target, name).has_changes():
            raise _blocked(
                "PoolItem",
                target,
                "UPDATE",
                f"Cannot modify field '{name}' on an assigned pool item",
                field=name,
            )


def _check_pool_item_delete(mapper, connection, target):
    if target.is_assigned and not _erasure_authorized(target):
        raise _blocked(
            "PoolItem",
            target,
            "DELETE",
            "Assigned pool items cannot be deleted",
        )


def _check_delivered_item_update(mapper, connection, target):
    """Only the one-way reveal transition is permitted."""
    insp = inspect(target)
    for attr in insp.attrs:
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key == "is_revealed":
            old = hist.deleted[0] if hist.deleted else False
            new = hist.added[0] if hist.added else old
            if not old and new:
                continue
            raise _blocked(
                "DeliveredItem",
                target,
                "UPDATE",
                "A revealed item cannot be hidden again",
                field="is_revealed",
            )
        raise _blocked(
            "DeliveredItem",
            target,
            "UPDATE",
            f"Cannot modify field '{attr.key}' on a delivered item",
            field=attr.key,
        )


def _check_delivered_item_delete(mapper, connection, target):
    if not _erasure_authorized(target):
        raise _blocked(
            "DeliveredItem",
            target,
            "DELETE",
            "Delivered items are only removed by account erasure",
        )


def _listeners():
    from fulfillment_kernel.models.delivered_item import DeliveredItem
    from fulfillment_kernel.models.pool_item import PoolItem

    return (
        (PoolItem, "before_update", _check_pool_item_update),
        (PoolItem, "before_delete", _check_pool_item_delete),
        (DeliveredItem, "before_update", _check_delivered_item_update),
        (DeliveredItem, "before_delete", _check_delivered_item_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register the immutability listeners on PoolItem and DeliveredItem.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, identifier, fn in _listeners():
        if not event.contains(target, identifier, fn):
            event.listen(target, identifier, fn)


def unregister_immutability_listeners() -> None:
    """Remove the immutability listeners. FOR TESTING ONLY."""
    for target, identifier, fn in _listeners():
        if event.contains(target, identifier, fn):
            event.remove(target, identifier, fn)
