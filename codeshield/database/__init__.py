# Database package exports

from .settings import DatabaseSettings
from .pool import init_pool, get_pool, close_pool, ensure_vector_extension

__all__ = [
    "DatabaseSettings",
    "init_pool",
    "get_pool",
    "close_pool",
    "ensure_vector_extension",
]
