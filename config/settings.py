"""
Configuration management for the location ping service.

This module provides centralized configuration loading and validation using
Pydantic settings. Values come from environment variables or .env files;
the store connection string is required unless the in-memory store is
selected for development.
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


# Elasticsearch index names: lowercase, no leading -, _ or +, no separators
_INDEX_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file
    overrides it.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    env_specific_file = env_file_map.get(environment, ".env.development")

    return (".env", env_specific_file)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    ``ELASTIC_ENDPOINT`` must be provided for the Elasticsearch store.
    Everything else has a default suitable for local development.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Store Configuration
    store_type: str = Field(
        default="elasticsearch",
        description="Location store type: 'elasticsearch' or 'memory'"
    )
    elastic_endpoint: Optional[str] = Field(
        default=None,
        description="Elasticsearch endpoint URL (store connection string)"
    )
    elastic_api_key: Optional[str] = Field(
        default=None,
        description="Elasticsearch API key for authentication"
    )
    elastic_request_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Elasticsearch request timeout in seconds"
    )
    locations_index: str = Field(
        default="locations",
        description="Index holding location samples"
    )

    # Ingestion
    dedup_window_ms: int = Field(
        default=5000,
        ge=0,
        le=3_600_000,
        description="Window within which an identical resubmission is a duplicate"
    )
    max_list_size: int = Field(
        default=10000,
        ge=1,
        le=10000,  # Elasticsearch default index.max_result_window
        description="Maximum number of samples returned by a list query"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="location-ping-service",
        description="Service name for OpenTelemetry traces"
    )

    # HTTP
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )
    static_dir: str = Field(
        default="public",
        description="Directory served at the site root, if it exists"
    )
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Port the HTTP server listens on"
    )
    health_check_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Timeout for the readiness check against the store"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("store_type")
    @classmethod
    def validate_store_type(cls, v: str) -> str:
        """Validate that store_type is either 'elasticsearch' or 'memory'."""
        v = v.strip().lower()
        if v not in {"elasticsearch", "memory"}:
            raise ValueError("store_type must be 'elasticsearch' or 'memory'")
        return v

    @field_validator("elastic_endpoint")
    @classmethod
    def validate_elastic_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that elastic_endpoint, when given, is a valid URL format."""
        if v is None:
            return None
        v = v.strip().strip('"')
        if not v:
            raise ValueError("elastic_endpoint cannot be empty")
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("elastic_endpoint must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("elastic_api_key")
    @classmethod
    def validate_elastic_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Blank API keys mean no API key."""
        if v is None:
            return None
        v = v.strip().strip('"')
        return v or None

    @field_validator("locations_index")
    @classmethod
    def validate_locations_index(cls, v: str) -> str:
        """Validate the index name against Elasticsearch naming rules."""
        v = v.strip()
        if not _INDEX_NAME_PATTERN.match(v):
            raise ValueError(
                "locations_index must be lowercase and contain only letters, "
                "digits, '.', '_' or '-'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins format and reject wildcard patterns."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if origin == "*" or "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}. "
                    "Specify exact frontend domains."
                )
            if not (origin.startswith("http://") or origin.startswith("https://")):
                raise ValueError(
                    f"Invalid CORS origin format: {origin}. "
                    "Must start with http:// or https://"
                )
            validated_origins.append(origin)
        return validated_origins

    @model_validator(mode="after")
    def validate_store_config(self) -> "Settings":
        """Validate that the selected store is fully configured."""
        if self.store_type == "elasticsearch" and not self.elastic_endpoint:
            raise ValueError(
                "elastic_endpoint is required when store_type is 'elasticsearch'"
            )
        if self.store_type == "memory" and self.environment != Environment.DEVELOPMENT:
            # Samples would vanish on restart
            raise ValueError(
                "store_type 'memory' is only allowed in the development environment"
            )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Detects the environment from the ENVIRONMENT variable (if not provided)
    and loads the matching environment-specific .env file.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()]

    # pydantic-settings skips files that do not exist
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, 'errors'):
            for error in e.errors():
                field_name = '.'.join(str(loc) for loc in error.get('loc', []))
                error_type = error.get('type', '')
                error_msg = error.get('msg', str(error))

                if error_type == 'missing':
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() reloads."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate settings that can only be judged as a whole, before serving.

    Raises:
        ConfigurationError: If any settings are unacceptable for the environment.
    """
    settings = settings or get_settings()

    validation_errors = {}

    # Production must name its real frontend
    if settings.environment == Environment.PRODUCTION:
        localhost_only = all(
            "localhost" in origin or "127.0.0.1" in origin
            for origin in settings.cors_origins
        )
        if localhost_only:
            validation_errors["cors_origins"] = (
                "Production environment requires non-localhost CORS origins. "
                "Configure your production frontend domain(s)."
            )
        if settings.elastic_endpoint and not settings.elastic_endpoint.startswith("https://"):
            validation_errors["elastic_endpoint"] = (
                "Production environment requires an https:// Elasticsearch endpoint"
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )

