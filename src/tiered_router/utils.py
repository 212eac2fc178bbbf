"""
Utility functions for the tiered routing engine.

This module provides:
- Environment variable loading and typed configuration defaults
- Logging configuration with structured JSON output
- Timing utilities for performance measurement
- Injectable clock sources for TTL and timeout computation
- Input sanitization for safe logging
"""

import os
import re
import sys
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional, Protocol
from dotenv import load_dotenv
from loguru import logger


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure structured JSON logging with Loguru.

    Args:
        level: Minimum log level, defaults to LOG_LEVEL from configuration
    """
    logger.remove()

    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        serialize=True
    )

    logger.info("Logging configuration complete")


_INT_SETTINGS = [
    "MAX_ESCALATION_HOPS", "CACHE_MAX_SIZE", "CACHE_TTL_DAYS_HIGH",
    "CACHE_TTL_DAYS_NORMAL", "CACHE_TTL_DAYS_LOW", "LEARNING_MIN_OUTCOMES",
    "ANALYTICS_LOG_SIZE", "PATTERN_LIBRARY_SIZE", "PROPOSAL_HISTORY_SIZE"
]

_FLOAT_SETTINGS = [
    "TIER_DIRECT_MAX", "TIER_1_MAX", "TIER_2_MAX", "CONSULTATION_TIMEOUT_SECONDS",
    "QUALITY_ACCEPTABLE_THRESHOLD", "QUALITY_EXCELLENT_THRESHOLD", "SIMILARITY_THRESHOLD"
]


def load_and_validate_env() -> Dict[str, Any]:
    """
    Load environment variables and apply typed defaults.

    Returns:
        Dict[str, Any]: Configuration dictionary

    Raises:
        ConfigurationError: If the resulting settings are inconsistent
    """
    load_dotenv()

    optional_vars = {
        "LOG_LEVEL": "INFO",
        "TIER_DIRECT_MAX": 3.5,
        "TIER_1_MAX": 6.5,
        "TIER_2_MAX": 8.5,
        "CONSULTATION_TIMEOUT_SECONDS": 30.0,
        "MAX_ESCALATION_HOPS": 3,
        "CACHE_MAX_SIZE": 1000,
        "CACHE_TTL_DAYS_HIGH": 7,
        "CACHE_TTL_DAYS_NORMAL": 3,
        "CACHE_TTL_DAYS_LOW": 1,
        "QUALITY_ACCEPTABLE_THRESHOLD": 0.75,
        "QUALITY_EXCELLENT_THRESHOLD": 0.9,
        "LEARNING_MIN_OUTCOMES": 50,
        "ANALYTICS_LOG_SIZE": 10000,
        "PATTERN_LIBRARY_SIZE": 500,
        "PROPOSAL_HISTORY_SIZE": 20,
        "SIMILARITY_THRESHOLD": 0.7,
    }

    config = {}

    for var, default in optional_vars.items():
        value = os.getenv(var, default)
        if var in _INT_SETTINGS:
            try:
                config[var] = int(value)
            except ValueError:
                logger.warning(f"Invalid value for {var}: {value}, using default: {default}")
                config[var] = default
        elif var in _FLOAT_SETTINGS:
            try:
                config[var] = float(value)
            except ValueError:
                logger.warning(f"Invalid value for {var}: {value}, using default: {default}")
                config[var] = default
        else:
            config[var] = value

    boundaries = [config["TIER_DIRECT_MAX"], config["TIER_1_MAX"], config["TIER_2_MAX"]]
    if boundaries != sorted(boundaries) or len(set(boundaries)) != 3:
        raise ConfigurationError(f"Tier boundaries must be strictly increasing, got {boundaries}")

    if config["CONSULTATION_TIMEOUT_SECONDS"] <= 0:
        raise ConfigurationError("CONSULTATION_TIMEOUT_SECONDS must be positive")

    if not 0 < config["QUALITY_ACCEPTABLE_THRESHOLD"] <= config["QUALITY_EXCELLENT_THRESHOLD"] <= 1:
        raise ConfigurationError("Quality thresholds must satisfy 0 < acceptable <= excellent <= 1")

    logger.info("Environment configuration loaded and validated")
    return config


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique identifier using UUID4.

    Args:
        prefix: Optional prefix, e.g. "task" or "proposal"

    Returns:
        str: Unique identifier
    """
    value = str(uuid.uuid4())
    return f"{prefix}_{value}" if prefix else value


def sanitize_for_logging(text: str, max_length: int = 200) -> str:
    """
    Sanitize task text for safe logging by masking secrets and truncating.

    Args:
        text: Input text to sanitize
        max_length: Maximum length of sanitized text

    Returns:
        str: Sanitized text safe for logging
    """
    if not text:
        return ""

    sensitive_patterns = [
        r'sk-[a-zA-Z0-9]+',  # API keys starting with sk-
        r'Bearer\s+[a-zA-Z0-9]+',  # Bearer tokens
        r'\b[A-Za-z0-9]{20,}\b'  # Long alphanumeric strings (potential tokens)
    ]

    sanitized = text
    for pattern in sensitive_patterns:
        sanitized = re.sub(pattern, '[REDACTED]', sanitized, flags=re.IGNORECASE)

    # Braces would be read as format fields by the logger
    sanitized = sanitized.replace("{", "(").replace("}", ")")

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


class Timer:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str = "operation"):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = datetime.now(timezone.utc)
        logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = datetime.now(timezone.utc)
        duration_ms = (self.end_time - self.start_time).total_seconds() * 1000

        if exc_type is None:
            logger.info(f"Completed {self.operation_name}", duration_ms=duration_ms)
        else:
            logger.error(f"Failed {self.operation_name}", duration_ms=duration_ms, error=str(exc_val))

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds() * 1000
        return 0.0


class Clock(Protocol):
    """Source of the current time in UTC."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """
    Clock that only moves when told to.

    Used for deterministic TTL and expiry checks in tests and simulations.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta built from kwargs (hours=1, days=2, ...)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


# Global configuration instance
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """
    Get the global configuration, loading it if not already loaded.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    global _config
    if _config is None:
        _config = load_and_validate_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None


def initialize_app() -> Dict[str, Any]:
    """
    Initialize logging and configuration.
    Call this at process startup.
    """
    setup_logging()
    config = get_config()

    logger.info(
        "Application initialization complete",
        tier_boundaries={
            "direct": config["TIER_DIRECT_MAX"],
            "tier_1": config["TIER_1_MAX"],
            "tier_2": config["TIER_2_MAX"]
        },
        cache_settings={
            "max_size": config["CACHE_MAX_SIZE"],
            "ttl_days_normal": config["CACHE_TTL_DAYS_NORMAL"]
        }
    )
    return config


__all__ = [
    "ConfigurationError",
    "setup_logging",
    "load_and_validate_env",
    "generate_id",
    "sanitize_for_logging",
    "Timer",
    "Clock",
    "SystemClock",
    "ManualClock",
    "get_config",
    "reset_config",
    "initialize_app",
]
