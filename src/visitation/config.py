"""
Runtime configuration for the visitation engine.
Values come from the environment (optionally a .env file).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# HTTP
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Database; DATABASE_URL wins over the POSTGRES_* parts when set
DATABASE_URL = os.getenv("DATABASE_URL")
POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = int(os.getenv("POSTGRES_PORT", "5432"))
POSTGRES_DB = os.getenv("POSTGRES_DB")

# Wall-clock strings ("09:05 AM") and visit dates are rendered in this zone
FACILITY_TIMEZONE = os.getenv("FACILITY_TIMEZONE", "UTC")

# Visit timer
STANDARD_VISIT_HOURS = int(os.getenv("STANDARD_VISIT_HOURS", "3"))
CUSTOM_TIMER_MIN_MINUTES = int(os.getenv("CUSTOM_TIMER_MIN_MINUTES", "15"))
CUSTOM_TIMER_MAX_MINUTES = int(os.getenv("CUSTOM_TIMER_MAX_MINUTES", str(8 * 60)))
TIMER_WARNING_MINUTES = int(os.getenv("TIMER_WARNING_MINUTES", "30"))
TIMER_CRITICAL_MINUTES = int(os.getenv("TIMER_CRITICAL_MINUTES", "10"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
