"""
Values -- Enumerations shared by every layer of the kernel.

Responsibility:
    Defines the item types a pool can hold, the delivery modes a product
    can be configured with, and the mapping between the two.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Imported by models,
    services, and selectors alike.
"""

from __future__ import annotations

from enum import Enum


class ItemType(str, Enum):
    """Kind of fulfillable item.  Determines the payload shape."""

    ACCOUNT = "account"
    LICENSE_KEY = "license_key"
    DOWNLOAD = "download"


class DeliveryMode(str, Enum):
    """How orders for a product are fulfilled."""

    AUTO_ACCOUNT = "auto_account"
    AUTO_LICENSE = "auto_license"
    AUTO_DOWNLOAD = "auto_download"
    INSTANT_DOWNLOAD = "instant_download"
    MANUAL = "manual"


class StockStatus(str, Enum):
    """Assignment state filter for inventory listings."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"


_POOL_BACKED_MODES: dict[DeliveryMode, ItemType] = {
    DeliveryMode.AUTO_ACCOUNT: ItemType.ACCOUNT,
    DeliveryMode.AUTO_LICENSE: ItemType.LICENSE_KEY,
    DeliveryMode.AUTO_DOWNLOAD: ItemType.DOWNLOAD,
}


def item_type_for_mode(mode: DeliveryMode | str) -> ItemType | None:
    """
    Pool item type consumed by a delivery mode.

    Returns None for modes that are not fulfilled from a pool
    (``instant_download`` ships one shared file, ``manual`` needs the seller).
    """
    return _POOL_BACKED_MODES.get(DeliveryMode(mode))
