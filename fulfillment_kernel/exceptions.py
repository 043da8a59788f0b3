"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (the order/payment subsystem, seller dashboards, the
buyer library) must react to failures precisely.  Parsing message strings is
fragile, so every error is:

  1. A TYPED exception class (catch by type, not message)
  2. Tagged with a CODE attribute (machine-readable, API-safe)
  3. Loaded with structured DATA (not just a message string)

Example:
    try:
        service.delete_item(pool_item_id)
    except ImmutableRecordError as e:
        api_response(code=e.code, entity=e.entity_type, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentKernelError (base)
    |
    +-- ValidationError
    |
    +-- PoolItemError
    |   +-- PoolItemNotFoundError
    |
    +-- DeliveryError
    |   +-- DeliveredItemNotFoundError
    |
    +-- ImmutabilityError
    |   +-- ImmutableRecordError
    |
    +-- ConcurrencyError
    |   +-- ClaimConflictError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Add/import payload misses a required field
----------------|-----------------------------|-----------------------------------------
Pool            | POOL_ITEM_NOT_FOUND         | Pool item id doesn't exist (or not owned)
----------------|-----------------------------|-----------------------------------------
Delivery        | DELIVERED_ITEM_NOT_FOUND    | Delivered record id doesn't exist
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABLE_RECORD            | Delete assigned item, touch assignment
                |                             | fields, mutate a delivered record
----------------|-----------------------------|-----------------------------------------
Concurrency     | CLAIM_CONFLICT              | Claim lost a race (internal, retried)
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_INVALID       | Config file or value is unusable

Running out of stock is NOT an exception: the allocation engine returns an
``OutOfStockSignal`` value and the caller falls back to manual fulfillment.

===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fulfillment_kernel.domain.dtos import FieldViolation


class FulfillmentKernelError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FULFILLMENT_KERNEL_ERROR"


# Validation


class ValidationError(FulfillmentKernelError):
    """
    Pool item payload is malformed for its declared item type.

    Raised at write time (single add, product configuration) and never at
    claim time.  Carries every field violation found, not just the first.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        item_type: str | None,
        violations: tuple[FieldViolation, ...],
    ):
        self.item_type = item_type
        self.violations = tuple(violations)
        details = "; ".join(v.message for v in self.violations) or "invalid input"
        prefix = f"Invalid {item_type} payload" if item_type else "Invalid input"
        super().__init__(f"{prefix}: {details}")

    @property
    def fields(self) -> tuple[str, ...]:
        """Names of the offending fields, in report order."""
        return tuple(v.field for v in self.violations if v.field)


# Pool item exceptions


class PoolItemError(FulfillmentKernelError):
    """Base exception for pool item errors."""

    code: str = "POOL_ITEM_ERROR"


class PoolItemNotFoundError(PoolItemError):
    """Pool item with given ID was not found."""

    code: str = "POOL_ITEM_NOT_FOUND"

    def __init__(self, pool_item_id: str):
        self.pool_item_id = pool_item_id
        super().__init__(f"Pool item not found: {pool_item_id}")


# Delivery exceptions


class DeliveryError(FulfillmentKernelError):
    """Base exception for delivered item errors."""

    code: str = "DELIVERY_ERROR"


class DeliveredItemNotFoundError(DeliveryError):
    """Delivered item record with given ID was not found."""

    code: str = "DELIVERED_ITEM_NOT_FOUND"

    def __init__(self, delivered_item_id: str):
        self.delivered_item_id = delivered_item_id
        super().__init__(f"Delivered item not found: {delivered_item_id}")


# Immutability exceptions


class ImmutabilityError(FulfillmentKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutableRecordError(ImmutabilityError):
    """
    Attempted to delete or modify a record the kernel has frozen.

    Assigned pool items back a delivered record and form its audit trail;
    delivered records are snapshots handed to a buyer.  Neither may be
    changed by ordinary seller or buyer action.
    """

    code: str = "IMMUTABLE_RECORD"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutable record {entity_type} {entity_id}: {reason}"
        )


# Concurrency exceptions


class ConcurrencyError(FulfillmentKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ClaimConflictError(ConcurrencyError):
    """
    Another claimer assigned the candidate pool item first.

    Internal to the allocation engine: it is raised inside the claim
    transaction to force a rollback and is always caught by the retry loop.
    """

    code: str = "CLAIM_CONFLICT"

    def __init__(self, pool_item_id: str, order_id: str):
        self.pool_item_id = pool_item_id
        self.order_id = order_id
        super().__init__(
            f"Pool item {pool_item_id} was claimed concurrently "
            f"while allocating order {order_id}"
        )


# Configuration exceptions


class ConfigurationError(FulfillmentKernelError):
    """Configuration file or value is unusable."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")
