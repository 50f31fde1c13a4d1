"""HTTP transport and the backend wire contract."""

from orderwatch.api.backend import (
    AUTHENTICATE_PATH,
    GET_ORDERS_PATH,
    VERIFY_PATH,
    OrderBackend,
)
from orderwatch.api.http_client import ApiHttpClient

__all__ = [
    "ApiHttpClient",
    "OrderBackend",
    "AUTHENTICATE_PATH",
    "VERIFY_PATH",
    "GET_ORDERS_PATH",
]
