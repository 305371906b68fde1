"""
Runtime configuration for the Clinic Slot Allocator.

Every tunable lives here so the rules engine never carries magic numbers.
Values can be overridden through environment variables (or a local .env file).
"""

import os
from datetime import time

from dotenv import load_dotenv

load_dotenv()

# --- Clinic Context ---
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/Argentina/Buenos_Aires")

# --- Persistence ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# --- Grid & Hours ---
SLOT_GRANULARITY_MINUTES = 20   # Standard booking grid
LEGACY_GRID_MINUTES = 30        # Old combined-service grid, still accepted
EXTENDED_GRID_MINUTES = 40      # Sub-grid for 40 minute services

# Minutes a service may run past closing time.
GRACE_MINUTES = int(os.getenv("GRACE_MINUTES", "20"))

# The end-of-day "squeeze-in" slot. Exempt from hours/grid rules,
# only blocked by an appointment starting at exactly the same time.
SPECIAL_SLOT = time(11, 40)

# --- Storage Resilience ---
STORAGE_RETRIES = int(os.getenv("STORAGE_RETRIES", "3"))
RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "0.05"))

# --- Patient Self-Service ---
CANCELLATION_NOTICE_HOURS = 48

# --- Side Effects ---
NOTIFICATION_WORKERS = int(os.getenv("NOTIFICATION_WORKERS", "2"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Database Tuning ---
SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "5"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "false").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))
