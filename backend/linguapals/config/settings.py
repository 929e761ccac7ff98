"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "LinguaPals"
    app_version: str = "1.0.0"
    debug: bool = True

    # Security
    secret_key: str = "your-secret-key-change-this-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Storage
    storage_type: str = "local"  # memory, local, firestore
    local_storage_path: str = "./data"
    firestore_project: Optional[str] = None

    # Group chat
    max_group_members: int = 3
    public_base_url: str = "http://localhost:5173"
    app_default_path: str = "/"

    # LLM Provider settings (OpenAI-compatible chat/completions endpoint)
    llm_provider: str = "openai"  # "openai" or "gemini"
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None  # uses provider default if not set
    llm_base_url: Optional[str] = None  # uses provider default if not set

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/linguapals.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses
    log_llm_calls: bool = True  # Log all LLM calls with token usage

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
