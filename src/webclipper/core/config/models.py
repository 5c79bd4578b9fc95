"""
Configuration data models for webclipper.

These models define the structure of .webclipper.json and
~/.config/webclipper/config.json files, with validation and type safety via
Pydantic.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webclipper.core.page.models import MarkdownOptions, SnapshotOptions

DEFAULT_API_URL = "http://localhost:4000"


class ApiConfig(BaseModel):
    """
    Remote task service settings.

    The API URL here is only the default offered at login; the URL the user
    logged in against is stored with the session.
    """

    default_url: str = Field(
        default=DEFAULT_API_URL,
        description="API URL used when none has been saved yet"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request network timeout in seconds"
    )
    api_key_prefix: str = Field(
        default="ak_",
        min_length=1,
        description="Literal prefix every API key carries"
    )

    @field_validator("default_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Store URLs without trailing slashes so paths can be appended."""
        return v.rstrip("/")


class CaptureConfig(BaseModel):
    """
    Capture attempt limits and behaviour.
    """
    timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="How long to wait for the page to finish a snapshot"
    )
    internal_schemes: list[str] = Field(
        default_factory=lambda: ["chrome://", "chrome-extension://"],
        description="URL prefixes of browser-internal pages that cannot be captured"
    )
    default_title: str = Field(
        default="Untitled Page",
        description="Task title used when the page has none"
    )
    success_close_delay: float = Field(
        default=2.0,
        ge=0,
        description="Seconds the success view stays visible before closing"
    )
    extract_markdown: bool = Field(
        default=True,
        description="Attach a readable Markdown summary to the task description"
    )


class StorageConfig(BaseModel):
    """
    Where persisted state lives.
    """
    data_dir: Path | None = Field(
        default=None,
        description="Directory for state.json (defaults to $XDG_DATA_HOME/webclipper)"
    )


class LoggingConfig(BaseModel):
    """
    Log verbosity for the CLI.
    """
    level: str = Field(
        default="WARNING",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level when --debug is not given"
    )

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: object) -> object:
        if isinstance(v, str):
            return v.upper()
        return v


class ClipperConfig(BaseModel):
    """
    Top-level webclipper configuration.

    Example:
        >>> config = ClipperConfig()
        >>> config.capture.timeout_seconds
        120.0
        >>> config.api.api_key_prefix
        'ak_'
    """

    api: ApiConfig = Field(default_factory=ApiConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    snapshot: SnapshotOptions = Field(default_factory=SnapshotOptions)
    markdown: MarkdownOptions = Field(default_factory=MarkdownOptions)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        extra="ignore",
    )
