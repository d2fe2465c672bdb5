"""
Configuration settings for the Flashdeck study library.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Database Settings
DATABASE_PATH = os.getenv("DATABASE_PATH", "data/flashdeck.db")

# Time zone used for calendar-day arithmetic when scheduling reviews
TIMEZONE = os.getenv("FLASHDECK_TIMEZONE", "UTC")

# Study session settings
STUDY_BATCH_SIZE = int(os.getenv("STUDY_BATCH_SIZE", "20"))
if STUDY_BATCH_SIZE < 1:
    raise ValueError("STUDY_BATCH_SIZE must be a positive integer")

# Seconds to wait for a store call before reporting the store as unavailable
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))
if STORE_TIMEOUT_SECONDS <= 0:
    raise ValueError("STORE_TIMEOUT_SECONDS must be greater than zero")

# Logging
LOG_FILE = os.getenv("LOG_FILE", "logs/flashdeck.log")

# Application settings
DEBUG_MODE = os.getenv("DEBUG_MODE", "False").lower() == "true"
