"""Configuration management for the Stylecat style catalog.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the STYLECAT_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (STYLECAT_* prefix)
2. .env file in the project root
3. Default values defined in StylecatConfig

Example .env file:
    STYLECAT_REPLICATE_API_TOKEN=r8_xxxxxxxxxxxxxxxx
    STYLECAT_PREVIEW_BATCH_SIZE=4
    STYLECAT_DATA_DIR=data
    STYLECAT_SERVER_PORT=3000

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from stylecat.core.config import config

    print(config.styles_file)
    print(config.api_dir)

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- data_dir: Holds the source catalog (``styles.json``)
- api_dir: Receives the generated static API tree
- images_dir: Uploaded and generated preview images
"""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StylecatConfig(BaseSettings):
    """Main configuration for the Stylecat service.

    Values are loaded from environment variables with the STYLECAT_ prefix,
    with fallback to the defaults defined here.

    Attributes
    ----------
    Paths:
        repo_dir : Path
            Git working tree that holds the catalog and the static API
        data_dir : Path
            Directory containing the source ``styles.json``
        api_dir : Path
            Output directory of the static API build
        images_dir : Path
            Directory for uploaded and generated images

    Replicate Settings:
        replicate_api_token : str | None
            API token; AI features are disabled when unset
        replicate_api_base : str
            Base URL of the Replicate HTTP API
        analyze_model : str
            Vision model used by ``POST /api/analyze``
        preview_model : str
            Image model used for preview generation
        preview_aspect_ratio : str
            Aspect ratio passed to the preview model
        preview_batch_size : int
            Number of concurrent preview predictions per batch
        poll_interval : float
            Seconds between prediction status polls
        request_timeout : float
            Upper bound in seconds for a single prediction

    Content Settings:
        analysis_language : str
            Language used for generated titles and descriptions

    Server Settings:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Port for uvicorn
        cors_origins : list[str]
            Allowed CORS origins

    Notes
    -----
    - Relative directories are resolved against the working directory
    - All directories are created automatically if they don't exist
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STYLECAT_",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Paths
    repo_dir: Path = Field(
        default=Path("."),
        description="Git working tree published by POST /api/push",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory containing the source styles.json",
    )
    api_dir: Path = Field(
        default=Path("api"),
        description="Output directory for the static JSON API",
    )
    images_dir: Path = Field(
        default=Path("images"),
        description="Directory for uploaded and generated images",
    )

    # Replicate
    replicate_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("STYLECAT_REPLICATE_API_TOKEN", "REPLICATE_API_TOKEN"),
        description="Replicate API token (AI analysis and previews are disabled without it)",
    )
    replicate_api_base: str = Field(
        default="https://api.replicate.com/v1",
        description="Base URL of the Replicate HTTP API",
    )
    analyze_model: str = Field(
        default="google/gemini-3-pro",
        description="Vision model used to analyze reference images",
    )
    preview_model: str = Field(
        default="black-forest-labs/flux-schnell",
        description="Image model used to render style previews",
    )
    preview_aspect_ratio: str = Field(
        default="1:1",
        description="Aspect ratio requested for preview images",
    )
    preview_batch_size: int = Field(
        default=4,
        description="Concurrent preview predictions per batch",
        ge=1,
        le=16,
    )
    poll_interval: float = Field(
        default=1.0,
        description="Seconds between prediction status polls",
        gt=0,
    )
    request_timeout: float = Field(
        default=120.0,
        description="Maximum seconds to wait for a single prediction",
        gt=0,
    )

    # Content
    analysis_language: str = Field(
        default="French",
        description="Language for generated titles and descriptions",
    )

    # Server
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=3000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.api_dir.mkdir(parents=True, exist_ok=True)
        self.images_dir.mkdir(parents=True, exist_ok=True)

    @property
    def styles_file(self) -> Path:
        """Path to the source catalog file."""
        return self.data_dir / "styles.json"

    @property
    def ai_enabled(self) -> bool:
        """Whether a Replicate token is configured."""
        return bool(self.replicate_api_token)


# Global configuration instance
# Loads values from environment variables (STYLECAT_* prefix) and .env file.
config = StylecatConfig()
