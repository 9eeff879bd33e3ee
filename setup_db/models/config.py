"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator

DEFAULT_INDEX_BASE_URL = "https://api.nuget.org/v3/registration3"
DEFAULT_FLAT_BASE_URL = "https://api.nuget.org/v3-flatcontainer"
DEFAULT_PKG_PATH = ".pkg"

# Host runtime packages, never redistributed alongside a driver
DEFAULT_EXCLUDED_ID_PREFIXES = ["System."]
DEFAULT_EXCLUDED_IDS = ["NETStandard.Library", "Microsoft.NETCore.App"]
DEFAULT_EXCLUDED_FRAMEWORK_PREFIX = ".NETStandard"
DEFAULT_LIBRARY_PREFIXES = ["lib/netstandard", "lib/netcoreapp"]


class ResolverConfig(BaseModel):
    """A validated configuration model for package resolution."""

    # Storage
    pkg_path: str = DEFAULT_PKG_PATH

    # Remote index
    index_base_url: str = DEFAULT_INDEX_BASE_URL
    flat_base_url: str = DEFAULT_FLAT_BASE_URL
    max_workers: int = 8
    request_timeout: float = 60.0
    max_attempts: int = 3
    base_delay: float = 1.5

    # Dependency filtering
    excluded_id_prefixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_ID_PREFIXES)
    )
    excluded_ids: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_IDS)
    )
    excluded_framework_prefix: str = DEFAULT_EXCLUDED_FRAMEWORK_PREFIX
    library_prefixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_LIBRARY_PREFIXES)
    )

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("pkg_path")
    @classmethod
    def validate_pkg_path(cls, v: str) -> str:
        if not v:
            raise ValueError("Package path cannot be empty.")
        return v

    @field_validator("index_base_url", "flat_base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Requires an http(s) URL and strips the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Index URL must start with http:// or https://: {v}")
        return v.rstrip("/")

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Request timeout must be positive.")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Max attempts must be between 1 and 10.")
        return v

    @field_validator("base_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry delay cannot be negative.")
        return v

    @field_validator("library_prefixes")
    @classmethod
    def validate_library_prefixes(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one library prefix is required.")
        return v

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
