"""
Fulfillment Kernel

Auto-delivery of digital goods for a marketplace:
- Seller-supplied pools of unique items (accounts, license keys, downloads)
- Exactly one item per paid order, under concurrent checkout
- Idempotent claims with an out-of-stock fallback to manual delivery
- Immutable delivered records with a one-way reveal
"""

__version__ = "0.1.0"
