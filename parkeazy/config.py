# File: parkeazy/config.py
"""
Application settings

Settings are read from PARKEAZY_* environment variables. Redis and MongoDB
are optional; leaving their URLs unset disables the matching sinks.
"""

from typing import Mapping, Optional
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator


ENV_PREFIX = "PARKEAZY_"


class Settings(BaseModel):
    """Runtime configuration for Park-Eazy"""

    model_config = ConfigDict(frozen=True)

    database_url: str = "sqlite:///./parkeazy.db"
    redis_url: Optional[str] = None
    redis_channel: str = "parkeazy:notifications"
    mongo_url: Optional[str] = None
    mongo_database: str = "parkeazy"

    log_level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "parkeazy.log"

    currency: str = "BDT"

    read_max_retries: int = Field(default=2, ge=0)
    read_timeout_seconds: float = Field(default=12.0, gt=0)
    read_timeout_multiplier: float = Field(default=1.5, ge=1)
    read_backoff_seconds: float = Field(default=1.0, ge=0)
    store_lock_timeout_seconds: float = Field(default=30.0, gt=0)

    geocoder_url: str = "https://nominatim.openstreetmap.org"
    geocoder_country: str = "bd"
    geocoder_min_interval: float = Field(default=1.0, ge=0)

    @field_validator('log_level')
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator('currency')
    @classmethod
    def _currency_code(cls, value: str) -> str:
        value = value.strip().upper()
        if len(value) != 3:
            raise ValueError(f"Currency must be 3-letter code: {value}")
        return value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from the environment; unset variables keep their defaults"""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if environ.get(key):
                values[name] = environ[key]

        if 'database_url' not in values and environ.get('DATABASE_URL'):
            values['database_url'] = environ['DATABASE_URL']

        return cls(**values)
