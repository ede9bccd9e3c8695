"""
Runtime configuration for the Paint Inventory service.

All settings are read from the process environment once, at import time.
"""
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./paint_inventory.db")

# Identifier scheme
ID_PREFIX = os.getenv("ID_PREFIX", "H66")

# Legacy shared-secret admin name and the alias it is recorded under
ADMIN_NAME = os.getenv("ADMIN_NAME", "admin123")
ADMIN_DISPLAY_NAME = os.getenv("ADMIN_DISPLAY_NAME", "Admin")

# Inventory defaults
DEFAULT_MIN_QUANTITY = int(os.getenv("DEFAULT_MIN_QUANTITY", "30"))
STALE_DAYS = int(os.getenv("STALE_DAYS", "30"))

# Audit log paging
DEFAULT_AUDIT_LIMIT = int(os.getenv("DEFAULT_AUDIT_LIMIT", "100"))
MAX_AUDIT_LIMIT = int(os.getenv("MAX_AUDIT_LIMIT", "5000"))

# JWT settings
SECRET_KEY = os.getenv("SECRET_KEY", "d5a1f0c7b9e24e6c8a3f1b2d4c6e8f0a1b3c5d7e9f1a3b5c7d9e1f3a5b7c9d1e")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))

# Redis cache (empty URL disables caching)
REDIS_URL = os.getenv("REDIS_URL", "")
DASHBOARD_CACHE_TTL = int(os.getenv("DASHBOARD_CACHE_TTL", "60"))  # seconds

# Optimistic concurrency
CAS_MAX_RETRIES = int(os.getenv("CAS_MAX_RETRIES", "10"))
