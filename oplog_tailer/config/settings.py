"""
Configuration for the oplog tailer.

Uses Pydantic Settings for validation and environment variable loading.
Loads from .env file if present, falls back to environment variables, then defaults.
"""
import json
from typing import Annotated, Any, Dict, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from ..mongodb.connection import ConnectionMode, DEFAULT_OP_TIMEOUT_SECONDS, default_connection_options


class TailerSettings(BaseSettings):
    """Oplog tailer configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="OPLOG_TAILER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Upstream
    upstreams: Annotated[List[str], NoDecode] = Field(
        default=["127.0.0.1:27017"],
        description="Seed addresses (comma separated or JSON list)"
    )
    mode: ConnectionMode = Field(
        default=ConnectionMode.REPLICA_SET,
        description="replica-set, secondary, direct-slave or pre-existing-handle"
    )
    oplog: str = Field(default="oplog.rs", description="Oplog collection in the local database")
    op_timeout_seconds: int = Field(
        default=DEFAULT_OP_TIMEOUT_SECONDS,
        description="Socket timeout for upstream operations"
    )
    server_selection_timeout_ms: Optional[int] = Field(
        default=None,
        description="How long to wait for a reachable member (driver default if unset)"
    )
    
    # Streaming
    dont_wait: bool = Field(default=False, description="Disable await-data on the cursor")
    batch_limit: Optional[int] = Field(
        default=None,
        description="Max records delivered per stream() call"
    )
    
    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    
    @field_validator("upstreams", mode="before")
    @classmethod
    def split_upstreams(cls, v: Any) -> Any:
        """Accept a comma separated string or a JSON list."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [part.strip() for part in v.split(",") if part.strip()]
        return v
    
    @field_validator("upstreams")
    @classmethod
    def validate_upstreams(cls, v: List[str]) -> List[str]:
        """Require at least one upstream."""
        if not v:
            raise ValueError("At least one upstream is required")
        return v
    
    @field_validator("mode", mode="before")
    @classmethod
    def validate_mode(cls, v: Any) -> ConnectionMode:
        """Accept mode names and their short aliases."""
        try:
            return ConnectionMode(v)
        except ValueError:
            allowed = [m.value for m in ConnectionMode]
            raise ValueError(f"mode must be one of: {allowed}")
    
    @field_validator("batch_limit")
    @classmethod
    def validate_batch_limit(cls, v: Optional[int]) -> Optional[int]:
        """batch_limit must be positive when set."""
        if v is not None and v <= 0:
            raise ValueError("batch_limit must be positive")
        return v
    
    def connection_options(self) -> Dict[str, Any]:
        """MongoClient keyword options derived from these settings."""
        opts = default_connection_options(self.op_timeout_seconds)
        if self.server_selection_timeout_ms is not None:
            opts["serverSelectionTimeoutMS"] = self.server_selection_timeout_ms
        return opts


# Global settings instance
_settings: Optional[TailerSettings] = None


def get_settings() -> TailerSettings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = TailerSettings()
    return _settings


def reload_settings() -> TailerSettings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = TailerSettings()
    return _settings
