from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process-wide configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Services file (absolute or relative to CWD)
    config_file: str = "statter.yaml"

    # Used when the services file does not set them
    database_file: str = "statter.db"
    default_interval: float = 5.0  # seconds between probes

    # Probing
    probe_timeout: float = 5.0  # hard cap for a single probe
    drain_timeout: float = 10.0  # wait for in-flight probes on shutdown

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Logging
    log_level: str = "INFO"


settings = Settings()
