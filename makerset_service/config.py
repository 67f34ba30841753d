"""
config.py — Runtime Configuration for the MakerSet Checkout Service

All settings come from environment variables so the service can be pointed at
a different backend (or a mock backend) without code changes.
"""

import os
from decimal import Decimal

# Backend REST API (normally from env vars)
MAKERSET_API_URL = os.environ.get("MAKERSET_API_URL", "http://localhost:5001/api")
MAKERSET_API_TIMEOUT = float(os.environ.get("MAKERSET_API_TIMEOUT", "5.0"))
MAKERSET_API_RETRIES = int(os.environ.get("MAKERSET_API_RETRIES", "2"))

# Shipping
SHIPPING_HANDLING_COST = Decimal(os.environ.get("SHIPPING_HANDLING_COST", "15"))
_free_threshold = os.environ.get("FREE_SHIPPING_THRESHOLD", "").strip()
FREE_SHIPPING_THRESHOLD = Decimal(_free_threshold) if _free_threshold else None

# Local persisted state
MAKERSET_STORAGE_PATH = os.environ.get("MAKERSET_STORAGE_PATH", "makerset_storage.json")
CART_MAX_AGE_DAYS = int(os.environ.get("CART_MAX_AGE_DAYS", "7"))

LOG_FILE = os.environ.get("LOG_FILE", "makerset_service.log")
