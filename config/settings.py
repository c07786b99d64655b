"""
Configuration management for the timetable API.
"""
from pydantic_settings import BaseSettings
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Timetable Scheduling API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = False

    # Time grid
    shift_cutoff: str = "13:00"  # blocks starting before this are morning
    include_saturday: bool = False
    default_shift: Literal["morning", "afternoon"] = "morning"

    # Persistence (empty path keeps everything in memory)
    storage_path: str = "data/timetable.json"
    assignments_key: str = "assignments"
    generator_config_key: str = "generator_config"
    generator_shifts_key: str = "generator_shifts"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
