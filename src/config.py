"""
Application Configuration Module.

Manages the execution context of a resource invocation using Pydantic settings.
The orchestrator exposes build information through environment variables;
those values are the fallbacks for the optional ``source`` fields of a
request and are composed into the build status target URL.

Features:
- Environment variable loading and validation
- Execution context passed explicitly to the components that need it
- Logging configuration
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from logger import LogManager


class Settings(BaseSettings):
    """
    Execution context and application settings.

    Attributes:
        app_name (str): Name of the application, used as the logger name
        dev (bool): Development mode, readable instead of JSON logs
        log_dir (Optional[str]): Directory for log files, none when unset
        log_level (int): Logging level (default: info)
        max_concurrent_requests (int): Upper bound on concurrent API calls
            issued while checking candidates
        atc_external_url (str): External URL of the orchestrator
        build_team_name (str): Team owning the running build
        build_pipeline_name (str): Pipeline owning the running build
        build_job_name (str): Job owning the running build
        build_name (str): Name (number) of the running build
    """

    # Application settings
    app_name: str = Field(default="gitlab-merge-request-resource", description="Application name")
    dev: bool = Field(default=False, description="Development mode")
    log_dir: Optional[str] = Field(default=None, description="Logging directory")
    log_level: int = Field(default=20, description="Logging level, default info")

    max_concurrent_requests: int = Field(
        default=4, ge=1, description="Concurrent API calls while checking"
    )

    # Orchestrator build environment
    atc_external_url: str = Field(default="", description="Orchestrator external URL")
    build_team_name: str = Field(default="", description="Team of the running build")
    build_pipeline_name: str = Field(default="", description="Pipeline of the running build")
    build_job_name: str = Field(default="", description="Job of the running build")
    build_name: str = Field(default="", description="Name of the running build")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Create global settings instance
settings = Settings()

# Initialize logging configuration
logger = LogManager(
    app_name=settings.app_name,
    log_dir=settings.log_dir,
    development=settings.dev,
    level=settings.log_level,
).logger
