"""Configuration for the PC parts catalog server."""

import os
from pathlib import Path

# Server settings
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))

# Database paths
_PACKAGE_DATA_DIR = Path(__file__).parent.parent.parent / "data"
DATA_DIR = Path(os.getenv("CATALOG_DATA_DIR", str(_PACKAGE_DATA_DIR)))
DB_PATH = Path(os.getenv("CATALOG_DB_PATH", str(DATA_DIR / "catalog.db")))
SEED_PATH = Path(os.getenv("CATALOG_SEED_PATH", str(DATA_DIR / "catalog.jsonl")))

# Request settings
MAX_QUERY_LENGTH = 500
DEFAULT_PAGE_SIZE = 15
MAX_PAGE_SIZE = 100
MAX_SELECTED_PRODUCTS = 50  # Max ids accepted by sequential narrowing

# Cart sessions expire after this many seconds without a write
CART_SESSION_TTL = int(os.getenv("CART_SESSION_TTL", str(60 * 60 * 24)))

# Human-readable order/quotation ids: O-001, Q-001
ORDER_ID_PREFIX = "O"
QUOTE_ID_PREFIX = "Q"
ID_PAD_WIDTH = 3

ORDER_TYPES = ("Order", "Quotation")
ORDER_STATUSES = ("Pending", "Confirmed", "Cancelled")
PRODUCT_STATUSES = ("Active", "Inactive", "Out of Stock")
