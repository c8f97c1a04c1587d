"""Application configuration using Pydantic Settings."""
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App settings
    app_name: str = "autoflow"
    debug: bool = False
    environment: Literal["development", "production"] = "production"
    host: str = "0.0.0.0"
    port: int = 5678

    # Logging
    log_level: str = "info"
    log_format: Literal["json", "console"] = "json"

    # Public API
    # Empty key disables the X-N8N-API-KEY check
    api_key: str = ""

    # Comma separated list of origins allowed by CORS (ignored in development)
    cors_origin: str = ""

    # ==========================================================================
    # WEBHOOKS
    # ==========================================================================

    endpoint_webhook: str = "webhook"
    webhook_url: str = ""

    # ==========================================================================
    # EXECUTIONS
    # ==========================================================================

    # Seconds, -1 disables the timeout
    executions_timeout: int = -1
    executions_timeout_max: int = 3600

    # Maximum concurrently running executions, -1 for unlimited
    executions_concurrency: int = -1

    # Ended executions kept in the repository, running and waiting ones are never pruned
    executions_data_max_count: int = 10000

    save_data_success_execution: Literal["all", "none"] = "all"
    save_data_error_execution: Literal["all", "none"] = "all"
    save_manual_executions: bool = True

    # Waits shorter than this (seconds) are slept through in-process
    wait_in_process_threshold: int = 65

    # ==========================================================================
    # BINARY DATA
    # ==========================================================================

    binary_data_mode: Literal["default", "filesystem"] = "filesystem"
    binary_data_storage_path: str = str(Path(tempfile.gettempdir()) / "autoflow-binary-data")
    upload_max_file_size: int = 10 * 1024 * 1024

    # ==========================================================================
    # NODES
    # ==========================================================================

    # Seconds
    http_request_timeout: float = 300.0
    block_env_access_in_node: bool = True

    # ==========================================================================
    # LOG STREAMING / AUDIT LOG
    # ==========================================================================

    log_streaming_enabled: bool = True
    anonymize_audit_messages: bool = False
    audit_log_backend: Literal["memory", "supabase"] = "memory"

    # Supabase Configuration
    supabase_url: str = ""
    supabase_service_key: str = ""

    @property
    def in_development(self) -> bool:
        return self.environment == "development"

    def get_cors_origins(self) -> list[str]:
        """Get the list of allowed CORS origins."""
        if not self.cors_origin:
            return []
        return [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()]

    def get_execution_timeout(self, workflow_timeout: Optional[int] = None) -> Optional[float]:
        """Resolve the effective timeout for an execution in seconds.

        A workflow level timeout wins over the instance default but is capped
        by ``executions_timeout_max``. Returns None when no timeout applies.
        """
        timeout = self.executions_timeout
        if workflow_timeout is not None and workflow_timeout != -1:
            timeout = min(workflow_timeout, self.executions_timeout_max)
        if timeout is None or timeout <= 0:
            return None
        return float(timeout)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
