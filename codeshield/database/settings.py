from dataclasses import dataclass
import os
from typing import Optional


@dataclass
class DatabaseSettings:
    """Connection settings for the pgvector knowledge store."""

    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    ssl_mode: Optional[str] = None
    schema: str = "codeshield"
    command_timeout: float = 30.0
    min_pool_size: int = 1
    max_pool_size: int = 10

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.database)

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        port = os.getenv("POSTGRESQL_PORT")
        return cls(
            host=os.getenv("POSTGRESQL_HOST"),
            port=int(port) if port else None,
            database=os.getenv("POSTGRESQL_DATABASE"),
            user=os.getenv("POSTGRESQL_USER"),
            password=os.getenv("POSTGRESQL_PASSWORD"),
            ssl_mode=os.getenv("POSTGRESQL_SSL_MODE"),
            schema=os.getenv("POSTGRESQL_SCHEMA", "codeshield"),
            command_timeout=float(os.getenv("POSTGRESQL_COMMAND_TIMEOUT", 30)),
            min_pool_size=int(os.getenv("POSTGRESQL_MIN_POOL_SIZE", 1)),
            max_pool_size=int(os.getenv("POSTGRESQL_POOL_SIZE", 10)),
        )
