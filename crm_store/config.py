"""
Configuration management for the CRM local store.

All configuration is read from environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have defaults that work for a single local user
    - Invalid values fail at startup with a ValueError naming the variable

How to change safely:
    - Add new settings with defaults that keep existing setups working
    - Keep the storage root the only setting that points at user data
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass(frozen=True)
class StorageConfig:
    """Storage root configuration.

    Attributes:
        root: Directory holding database.json, offers/ and invoices/
    """

    root: str = "./data"

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            root=os.getenv("CRM_STORAGE_PATH", os.getenv("STORAGE_PATH", "./data")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """Local HTTP server configuration.

    Attributes:
        host: Interface to bind; loopback by default since there is no auth
        port: TCP port
        cors_origins: Origins allowed to call the API
    """

    host: str = "127.0.0.1"
    port: int = 3456
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        port_str = os.getenv("PORT", "3456")
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"Invalid PORT '{port_str}'. Must be an integer")

        origins = tuple(
            origin.strip()
            for origin in os.getenv("CRM_CORS_ORIGINS", "*").split(",")
            if origin.strip()
        )
        return cls(
            host=os.getenv("CRM_HOST", "127.0.0.1"),
            port=port,
            cors_origins=origins or ("*",),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (text, json)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class AppConfig:
    """Complete application configuration.

    Attributes:
        storage: Storage root configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.root.strip():
            raise ValueError("CRM_STORAGE_PATH must not be empty")

        if not 0 < self.http.port < 65536:
            raise ValueError(f"PORT must be between 1 and 65535, got {self.http.port}")

        if self.observability.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL '{self.observability.log_level}'. "
                f"Must be one of: {', '.join(LOG_LEVELS)}"
            )

        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. "
                f"Must be one of: {', '.join(LOG_FORMATS)}"
            )

        if self.http.host not in ("127.0.0.1", "localhost", "::1"):
            logger.warning(
                f"CRM_HOST={self.http.host} exposes the unauthenticated API beyond this machine"
            )

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info("Configuration:")
        logger.info(f"  Storage root: {self.storage.root}")
        logger.info(f"  HTTP: {self.http.host}:{self.http.port}")
        logger.info(f"  CORS origins: {', '.join(self.http.cors_origins)}")
        logger.info(f"  Log level: {self.observability.log_level}")
        logger.info(f"  Log format: {self.observability.log_format}")
