"""
Configuration for typecache, read from the environment (and a .env file if present).
"""
import os
from typing import Callable, Optional

from dotenv import load_dotenv

from typecache.models.descriptors import DEFAULT_SCHEMA


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Configuration settings for a typed connection"""

    def __init__(self, on_recovery: Optional[Callable] = None, load_env_file: bool = True):
        if load_env_file:
            load_dotenv()

        # Connection
        self.database_url = os.environ.get('TYPECACHE_DATABASE_URL') or \
                            os.environ.get('DATABASE_URL')
        self.statement_timeout_ms = int(os.environ.get('TYPECACHE_STATEMENT_TIMEOUT_MS', '5000'))
        self.use_savepoints = _env_flag('TYPECACHE_USE_SAVEPOINTS')

        # Cache
        self.default_schema = os.environ.get('TYPECACHE_DEFAULT_SCHEMA', DEFAULT_SCHEMA)
        self.max_descriptor_age = float(os.environ.get('TYPECACHE_MAX_DESCRIPTOR_AGE', '0'))  # 0 = never

        # Logging
        self.log_level = os.environ.get('TYPECACHE_LOG_LEVEL', 'INFO').upper()

        # Observability hook, called with a RecoveryEvent
        self.on_recovery = on_recovery

    @property
    def descriptor_max_age(self) -> Optional[float]:
        """Max descriptor age in seconds, or None when entries never expire."""
        return self.max_descriptor_age if self.max_descriptor_age > 0 else None

    def connect_args(self) -> dict:
        """Driver connect arguments. statement_timeout bounds catalog lookups too."""
        if self.statement_timeout_ms <= 0:
            return {}
        return {"options": f"-c statement_timeout={self.statement_timeout_ms}"}

    def validate(self) -> tuple[bool, str]:
        """Validate configuration"""
        if not self.database_url:
            return False, "No database URL found. Set TYPECACHE_DATABASE_URL environment variable"

        if self.statement_timeout_ms < 0:
            return False, "TYPECACHE_STATEMENT_TIMEOUT_MS must not be negative"

        if self.max_descriptor_age < 0:
            return False, "TYPECACHE_MAX_DESCRIPTOR_AGE must not be negative"

        if not self.default_schema:
            return False, "TYPECACHE_DEFAULT_SCHEMA must not be empty"

        return True, "Configuration valid"
