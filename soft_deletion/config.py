"""
Configuration module for soft deletion.

Provides centralized configuration for marker naming, scoping, validation
and hook failure handling.
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class SoftDeletionConfig(BaseModel):
    """Central configuration for soft deletion.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (SOFT_DELETION_ prefix)
        3. Default values (lowest priority)

    Example:
        >>> config = SoftDeletionConfig(deleted_field_name="removed_at")

        Loading from environment:

        >>> import os
        >>> os.environ['SOFT_DELETION_RAISE_HOOK_ERRORS'] = 'true'
        >>> config = SoftDeletionConfig.from_env()

    Note:
        Descriptors are built from the configuration in effect when a model is
        registered. Changing the marker name afterwards does not affect models
        that are already registered.
    """

    # Marker settings
    deleted_field_name: str = Field(
        "deleted_at", description="Name of the deletion marker column", min_length=1
    )
    use_utc: bool = Field(
        True, description="Stamp markers with timezone-aware UTC timestamps"
    )

    # Scoping settings
    include_deleted_option: str = Field(
        "include_deleted",
        description="Execution option that lifts the marker filter for a statement",
        min_length=1,
    )

    # Validation settings
    validation_method: str = Field(
        "validate", description="Record method run before a marker update"
    )

    # Hook settings
    raise_hook_errors: bool = Field(
        False, description="Raise HookFailed after commit when a hook fails"
    )
    log_hook_failures: bool = Field(True, description="Log failing hooks")

    # Bulk settings
    bulk_log_failures: bool = Field(
        True, description="Log a warning for each failed bulk item"
    )

    @field_validator("deleted_field_name", "include_deleted_option")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Ensure names are usable as Python attribute names."""
        v = v.strip()
        if not v.isidentifier():
            raise ValueError(f"'{v}' is not a valid attribute name")
        return v

    @field_validator("validation_method")
    @classmethod
    def validate_method_name(cls, v: str) -> str:
        """Allow an empty name to disable validation."""
        v = v.strip()
        if v and not v.isidentifier():
            raise ValueError(f"'{v}' is not a valid method name")
        return v

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()

    @classmethod
    def from_env(cls, prefix: str = "SOFT_DELETION_") -> "SoftDeletionConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]

            if field_info.annotation is bool:
                config_dict[field_name] = value.lower() in ("true", "1", "yes", "on")
            else:
                config_dict[field_name] = value

        return cls.model_validate(config_dict)


# Global configuration instance
_config: Optional[SoftDeletionConfig] = None


def get_config() -> SoftDeletionConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = SoftDeletionConfig.from_env()

    return _config


def set_config(config: Optional[SoftDeletionConfig]) -> None:
    """
    Set the global configuration instance.

    Passing ``None`` resets to environment/defaults on next access.
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> SoftDeletionConfig:
    """
    Configure soft deletion with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = SoftDeletionConfig(**kwargs)
    else:
        config_dict = _config.to_dict()
        config_dict.update(kwargs)
        _config = SoftDeletionConfig(**config_dict)

    return _config
