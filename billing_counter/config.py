import os
from dotenv import load_dotenv

load_dotenv() # Optional: Load .env file

# Catalog and billing live behind the same inventory service
INVENTORY_SERVICE_URL = os.getenv("INVENTORY_SERVICE_URL", "http://inventory_service:8001")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10.0"))

# Clock skew tolerated when matching a timed-out checkout against new bills in history
RECONCILE_WINDOW_SECONDS = int(os.getenv("RECONCILE_WINDOW_SECONDS", "30"))

# Receipt header
STORE_NAME = os.getenv("STORE_NAME", "My Store")
STORE_ADDRESS = os.getenv("STORE_ADDRESS", "123 Store Street, City, State 12345")
STORE_PHONE = os.getenv("STORE_PHONE", "(123) 456-7890")
CURRENCY_PREFIX = os.getenv("CURRENCY_PREFIX", "inr")

LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))

APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8002")) # Port for this service

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
