"""Settings for the service request API."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the service request API.

    [pydantic.BaseSettings](https://docs.pydantic.dev/latest/concepts/pydantic_settings/) is a popular
    framework for organizing, validating, and reading configuration values from a variety of sources
    including environment variables.

    This class automatically reads from:
    1. Environment variables (production)
    2. .env file (local development)

    Environment variable names are treated case-insensitively.
    """

    app_name: str = "Service Request Workflow API"
    """Title shown in the OpenAPI docs and the health endpoint."""

    environment: str = "dev"
    """Deployment environment name (dev, test, prod); added to health responses."""

    # Logging
    log_level: str = "INFO"
    """Minimum level for the stdout sink."""

    log_file: Optional[str] = None
    """Optional path of a rotating log file sink."""

    log_serialize: bool = False
    """Write the file sink as JSON lines (loguru serialize=True)."""

    # Domain database
    domain_db_connection_string: Optional[str] = None
    """PostgreSQL connection string for the workflow database. Unset uses the in-memory store."""

    db_pool_min_size: int = Field(default=2, ge=1)
    """Minimum pooled database connections."""

    db_pool_max_size: int = Field(default=10, ge=1)
    """Maximum pooled database connections."""

    enable_audit_trail: bool = True
    """Persist audit events to the audit_trail table (requires the domain database)."""

    # Workflow policy
    enable_sunday_verification: bool = True
    """Put vehicle requests whose trip covers a Sunday into the verification lane on submit."""

    item_reference_prefix: str = "REQ"
    """Reference code prefix for item requests."""

    vehicle_reference_prefix: str = "SVR"
    """Reference code prefix for vehicle requests."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",  # Load from .env file if it exists (local development)
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables not defined in the model
        validate_default=True,  # Validate default values
    )
