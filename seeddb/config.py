"""
Configuration management for seeddb.

Configuration comes from constructor arguments or environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Unset directories fall back to the platform's conventional locations
    - The copy buffer size never affects the bytes produced, only throughput

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable; they are part of the CLI surface
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "seeddb"
DEFAULT_COPY_BUFFER_SIZE = 512


@dataclass(frozen=True)
class StorageConfig:
    """Application-private database storage configuration.

    Attributes:
        app_name: Application name used to derive platform directories
        data_dir: Directory for database files (platform data dir if None)
        busy_timeout_ms: SQLite busy timeout in milliseconds
        copy_buffer_size: Chunk size used when copying database bytes
    """

    app_name: str = DEFAULT_APP_NAME
    data_dir: str | None = None
    busy_timeout_ms: int = 5000
    copy_buffer_size: int = DEFAULT_COPY_BUFFER_SIZE

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            app_name=os.getenv("SEEDDB_APP_NAME", DEFAULT_APP_NAME),
            data_dir=os.getenv("SEEDDB_DATA_DIR"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            copy_buffer_size=int(
                os.getenv("SEEDDB_COPY_BUFFER_SIZE", str(DEFAULT_COPY_BUFFER_SIZE))
            ),
        )


@dataclass(frozen=True)
class SeedConfig:
    """Seed image configuration.

    Attributes:
        seed_resource: Resource path of the bundled seed (None disables seeding)
        seed_dir: Directory that resource paths are resolved against
    """

    seed_resource: str | None = None
    seed_dir: str | None = None

    @classmethod
    def from_env(cls) -> SeedConfig:
        """Load configuration from environment variables."""
        return cls(
            seed_resource=os.getenv("SEEDDB_SEED_RESOURCE") or None,
            seed_dir=os.getenv("SEEDDB_SEED_DIR"),
        )


@dataclass(frozen=True)
class ExportConfig:
    """Snapshot export configuration.

    Attributes:
        export_dir: Directory exports are written to (user downloads if None)
    """

    export_dir: str | None = None

    @classmethod
    def from_env(cls) -> ExportConfig:
        """Load configuration from environment variables."""
        return cls(export_dir=os.getenv("SEEDDB_EXPORT_DIR"))


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
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
class HelperConfig:
    """Complete seeddb configuration.

    Attributes:
        storage: Database storage configuration
        seed: Seed image configuration
        export: Snapshot export configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    seed: SeedConfig = field(default_factory=SeedConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> HelperConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            seed=SeedConfig.from_env(),
            export=ExportConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.app_name:
            raise ValueError("SEEDDB_APP_NAME must not be empty")
        if self.storage.copy_buffer_size <= 0:
            raise ValueError(
                f"SEEDDB_COPY_BUFFER_SIZE must be positive, got {self.storage.copy_buffer_size}"
            )
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must not be negative")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.seed.seed_dir and not os.path.isdir(self.seed.seed_dir):
            logger.warning(
                f"Seed directory does not exist: {self.seed.seed_dir}. "
                "Seeding will fall back to an empty database."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "seeddb configuration loaded",
            extra={
                "app_name": self.storage.app_name,
                "data_dir": self.storage.data_dir,
                "copy_buffer_size": self.storage.copy_buffer_size,
                "seed_resource": self.seed.seed_resource,
                "seed_dir": self.seed.seed_dir,
                "export_dir": self.export.export_dir,
                "log_level": self.observability.log_level,
            },
        )
