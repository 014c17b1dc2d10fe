"""
Configuration module for the records toolkit.

Provides centralized configuration for cascade limits, validation thresholds,
retention windows and the purge scheduler.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, field_validator


class RecordsConfig(BaseModel):
    """Central configuration for the cascade engines and the retention sweep.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (RECORDS_ prefix)
        3. Default values (lowest priority)

    Example:
        >>> config = RecordsConfig(cascade_max_depth=8, notice_retention_days=14)

        Loading from environment:

        >>> import os
        >>> os.environ['RECORDS_PURGE_INTERVAL_HOURS'] = '12'
        >>> config = RecordsConfig.from_env()

    Note:
        Retention windows decide when soft-deleted rows are erased for good.
        Shortening them takes effect on the next sweep.
    """

    # General settings
    application_name: str = Field(
        "Records Backend", description="Name of the application in log records"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )
    database_url: str = Field(
        "sqlite:///records.db", description="SQLAlchemy database URL"
    )
    log_level: str = Field("INFO", description="Root log level for the CLI")

    # Cascade settings
    cascade_max_depth: int = Field(
        10, description="Maximum cascade traversal depth", ge=1, le=100
    )
    department_principal_warning_threshold: int = Field(
        50, description="Principals above which a department delete warns", ge=0
    )
    department_work_item_warning_threshold: int = Field(
        500, description="Work items above which a department delete warns", ge=0
    )
    department_material_warning_threshold: int = Field(
        100, description="Materials above which a department delete warns", ge=0
    )
    tenant_cascade_warning_threshold: int = Field(
        1000, description="Owned records above which a tenant delete warns", ge=0
    )

    # Purge scheduler settings
    purge_enabled: bool = Field(True, description="Enable the retention sweep")
    purge_interval_hours: float = Field(
        24, description="Hours between retention sweeps", gt=0
    )
    purge_run_on_start: bool = Field(
        True, description="Run a sweep immediately when the scheduler starts"
    )
    blob_storage_path: Optional[str] = Field(
        None, description="Directory holding attachment blobs"
    )

    # Retention windows (days after soft deletion)
    notice_retention_days: int = Field(30, gt=0)
    attachment_retention_days: int = Field(30, gt=0)
    material_retention_days: int = Field(90, gt=0)
    external_party_retention_days: int = Field(90, gt=0)
    activity_record_retention_days: int = Field(90, gt=0)
    annotation_retention_days: int = Field(90, gt=0)
    work_item_retention_days: int = Field(180, gt=0)
    principal_retention_days: int = Field(365, gt=0)
    department_retention_days: int = Field(365, gt=0)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(levels))}")
        return v.upper()

    def retention_days(self, kind: Any) -> Optional[int]:
        """Retention window for a kind, or None when the kind is never purged."""
        name = getattr(kind, "value", kind)
        if name == "tenant":
            return None
        return int(getattr(self, f"{name}_retention_days"))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()

    @classmethod
    def from_env(cls, prefix: str = "RECORDS_") -> "RecordsConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        import os

        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]

                field_type = field_info.annotation

                # Handle Optional types
                if get_origin(field_type) is Union:
                    args = get_args(field_type)
                    field_type = next(
                        (arg for arg in args if arg is not type(None)), str
                    )

                try:
                    if field_type == bool:
                        config_dict[field_name] = value.lower() in (
                            "true",
                            "1",
                            "yes",
                            "on",
                        )
                    elif field_type == int:
                        config_dict[field_name] = int(value)
                    elif field_type == float:
                        config_dict[field_name] = float(value)
                    elif isinstance(field_type, type) and issubclass(field_type, Enum):
                        config_dict[field_name] = field_type(value)
                    else:
                        config_dict[field_name] = value
                except (ValueError, TypeError):
                    # Leave the raw string for pydantic to report
                    config_dict[field_name] = value

        return cls.model_validate(config_dict)


# Global configuration instance
_config: Optional[RecordsConfig] = None


def get_config() -> RecordsConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = RecordsConfig.from_env()

    return _config


def set_config(config: Optional[RecordsConfig]) -> None:
    """
    Set the global configuration instance.

    Passing None resets it so the next get_config() reloads from the environment.
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> RecordsConfig:
    """
    Configure the toolkit with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = RecordsConfig(**kwargs)
    else:
        config_dict = _config.to_dict()
        config_dict.update(kwargs)
        _config = RecordsConfig(**config_dict)

    return _config
