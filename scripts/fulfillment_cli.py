#!/usr/bin/env python3
"""
Fulfillment kernel command line.

Usage:
    python scripts/fulfillment_cli.py init-db
    python scripts/fulfillment_cli.py add --product P --seller S --type license_key \
        --payload '{"key": "AAAA-BBBB-CCCC"}'
    python scripts/fulfillment_cli.py import --product P --seller S --type account --file accounts.txt
    python scripts/fulfillment_cli.py stock --product P --type account
    python scripts/fulfillment_cli.py claim --order O --buyer B --product P
    python scripts/fulfillment_cli.py reveal --delivered-id D

The database comes from FULFILLMENT_DATABASE_URL / DATABASE_URL, a
--config YAML file, or --database-url.
"""

import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from fulfillment_kernel.cli import main

if __name__ == "__main__":
    sys.exit(main())
