"""
Configuration module for global settings and environment variable handling.

This module centralizes configuration settings and provides a consistent
interface for accessing environment variables. Curator scoring settings are
resolved separately in ``morpho.curator_config`` on top of these helpers.
"""

import math
import os
from typing import Optional

from dotenv import load_dotenv

from utils.logging import get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger("utils.config")


class Config:
    """Global configuration handler."""

    # Default values that can be overridden by environment variables
    DEFAULT_TIMEOUT = 30  # seconds

    @staticmethod
    def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
        """Get environment variable with fallback to default."""
        return os.getenv(key, default)

    @staticmethod
    def get_env_int(key: str, default: int) -> int:
        """Get environment variable as integer with fallback to default."""
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for %s: %s. Using default %s", key, value, default)
            return default

    @staticmethod
    def get_env_optional_float(key: str) -> Optional[float]:
        """Get environment variable as a finite float, or None when unset, empty or unparsable."""
        value = os.getenv(key)
        if not value:
            return None
        try:
            parsed = float(value)
        except ValueError:
            logger.debug("Ignoring non-numeric value for %s: %s", key, value)
            return None
        if not math.isfinite(parsed):
            logger.debug("Ignoring non-finite value for %s: %s", key, value)
            return None
        return parsed

    @classmethod
    def get_request_timeout(cls) -> int:
        """Get HTTP request timeout in seconds."""
        return cls.get_env_int("REQUEST_TIMEOUT", cls.DEFAULT_TIMEOUT)
