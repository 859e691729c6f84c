"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_TIMEOUT_SECONDS = 120.0


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    # Defaults are validated too: an unset endpoint or key must fail loudly
    model_config = ConfigDict(
        validate_assignment=True,
        validate_default=True,
        str_strip_whitespace=True,
    )

    # Remote service
    remote_url: str = ""
    api_key: str = ""

    # Sync behaviour
    load_timeout: float = 10.0
    refresh_timeout: float = 5.0
    probe_interval: float = 30.0

    # Diagnostics
    json_logs: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    @field_validator("remote_url")
    @classmethod
    def validate_remote_url(cls, v: str) -> str:
        """Ensures the endpoint is an http(s) URL without a trailing slash."""
        if not v:
            raise ValueError("Remote URL is not configured. Run 'flipdeck init' first.")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Remote URL must start with http:// or https://: {v}")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if not v:
            raise ValueError("API key is not configured. Run 'flipdeck init' first.")
        return v

    @field_validator("load_timeout", "refresh_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0 or v > MAX_TIMEOUT_SECONDS:
            raise ValueError(
                f"Timeouts must be greater than 0 and at most {MAX_TIMEOUT_SECONDS:.0f}s."
            )
        return v

    @field_validator("probe_interval")
    @classmethod
    def validate_probe_interval(cls, v: float) -> float:
        if v < 1:
            raise ValueError("Probe interval must be at least 1 second.")
        return v

    @model_validator(mode="after")
    def validate_timeout_order(self) -> "AppConfig":
        """A refresh is never allowed to wait longer than the initial load."""
        if self.refresh_timeout > self.load_timeout:
            raise ValueError("refresh_timeout cannot exceed load_timeout.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
