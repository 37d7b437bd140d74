"""Configuration for the diary backend, read from the environment."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Server
HOST = get_env("HOST", "0.0.0.0")
PORT = get_env_int("PORT", 5000)

# Logging
LOG_LEVEL = get_env("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in (get_env("CORS_ORIGINS", "*") or "*").split(",")
    if origin.strip()
]


def setup_logging() -> logging.Logger:
    """Configure and return logger."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    )
    return logging.getLogger(__name__)
