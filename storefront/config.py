# storefront/config.py
import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

CART_SERVICE_URL = os.getenv("CART_SERVICE_URL", "http://cart_service:8002")
ACCOUNT_SERVICE_URL = os.getenv("ACCOUNT_SERVICE_URL", "http://account_service:8001")

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))  # секунды

# Пауза перед очисткой локальной корзины после успешной оплаты
CART_CLEAR_DELAY = float(os.getenv("CART_CLEAR_DELAY", "1.0"))

DEFAULT_STORE_ID = int(os.getenv("DEFAULT_STORE_ID", "1"))
DEFAULT_DELIVERY_ADDRESS = os.getenv("DEFAULT_DELIVERY_ADDRESS", "123 Main St")

INITIAL_WALLET_BALANCE = Decimal(os.getenv("INITIAL_WALLET_BALANCE", "13400"))

# Сколько магазинов держать в памяти; самые давние вытесняются
SHOP_CACHE_SIZE = int(os.getenv("SHOP_CACHE_SIZE", "1000"))
