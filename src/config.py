import os
from decimal import Decimal

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///ledger.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Drift above this triggers a write-back of a derived balance
BALANCE_TOLERANCE = Decimal(os.getenv("BALANCE_TOLERANCE", "0.01"))

# Logging
APP_LOG_LEVEL = os.getenv("APP_LOG_LEVEL", "INFO")
THIRD_PARTY_LOG_LEVEL = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING")
LOG_FILE = os.getenv("LOG_FILE")
