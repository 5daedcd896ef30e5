"""Configuration management for the Asterisk ARI library.

This module provides configuration classes using Pydantic for type safety,
validation, and environment variable integration.
"""

import json
import os
from typing import Any, Dict, Optional, Sequence, Union
from urllib.parse import urlencode

import tomli
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ARIConfig(BaseSettings):
    """
    Configuration class for Asterisk ARI connection settings.

    Values can be passed explicitly or read from ``ASTERISK_ARI_*``
    environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="ASTERISK_ARI_",
        case_sensitive=False,
        validate_assignment=True,
        env_file=None,
        extra="ignore",
    )

    # ────────────────────────── Connection settings ──────────────────────────
    host: str = Field(default="localhost", description="Asterisk server hostname")
    port: int = Field(default=8088, ge=1, le=65535, description="Asterisk ARI port")
    username: str = Field(..., description="ARI username")
    password: str = Field(..., description="ARI password")

    # ────────────────────────── Security settings ────────────────────────────
    use_ssl: bool = Field(default=False, description="Use HTTPS/WSS connections")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    # ────────────────────────── REST timeout / retry ─────────────────────────
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    retry_attempts: int = Field(default=3, ge=0, description="Retries for 5xx/429/network errors")
    retry_backoff: float = Field(default=0.5, ge=0, description="First retry delay")
    max_retry_delay: float = Field(default=10.0, gt=0, description="Max retry delay")

    # ────────────────────────── Event stream reconnection ────────────────────
    reconnect_initial_delay: float = Field(default=1.0, ge=0, description="First reconnect delay")
    reconnect_max_delay: float = Field(default=30.0, gt=0, description="Reconnect delay cap")
    reconnect_backoff_factor: float = Field(
        default=2.0, ge=1.0, description="Delay multiplier between attempts (1.0 = fixed delay)"
    )
    max_reconnect_attempts: Optional[int] = Field(
        default=None, ge=0, description="Give up after this many failed attempts (None = never)"
    )

    # ────────────────────────── WebSocket settings ───────────────────────────
    websocket_ping_interval: Optional[float] = Field(
        default=20.0, gt=0, description="WS heartbeat interval (None disables)"
    )
    websocket_close_timeout: float = Field(default=5.0, gt=0, description="WS close timeout")
    websocket_max_size: int = Field(default=2**22, gt=0, description="Max WS message size")

    # ────────────────────────── HTTP settings ────────────────────────────────
    user_agent: str = Field(default="asterisk-ari-python/0.2.0", description="User-Agent header")

    # ────────────────────────── Logging ──────────────────────────────────────
    client_name: Optional[str] = Field(default=None, description="Name used to tag log records")
    debug: bool = Field(default=False, description="Enable debug logging")
    log_level: str = Field(default="INFO", description="Logging level")

    # ────────────────────────── Validators ───────────────────────────────────
    @field_validator("port", mode="before")
    @classmethod
    def validate_port(cls, v: Union[int, str]) -> int:
        return int(v)

    @field_validator("host", "username")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password cannot be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        u = v.upper()
        if u not in levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(levels))}")
        return u

    @model_validator(mode="after")
    def check_retry_settings(self) -> "ARIConfig":
        if self.retry_backoff > self.max_retry_delay:
            raise ValueError("Retry backoff cannot exceed max retry delay")
        return self

    @model_validator(mode="after")
    def check_reconnect_settings(self) -> "ARIConfig":
        if self.reconnect_initial_delay > self.reconnect_max_delay:
            raise ValueError("Initial reconnect delay cannot exceed max reconnect delay")
        return self

    # ────────────────────────── Helper Properties ────────────────────────────
    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def ari_url(self) -> str:
        return f"{self.base_url}/ari"

    @property
    def websocket_url(self) -> str:
        scheme = "wss" if self.use_ssl else "ws"
        return f"{scheme}://{self.host}:{self.port}/ari/events"

    @property
    def auth_tuple(self) -> tuple[str, str]:
        return self.username, self.password

    @property
    def display_name(self) -> str:
        return self.client_name or f"{self.host}:{self.port}"

    def build_websocket_url(
            self,
            applications: Sequence[str],
            subscribed_events: Optional[Sequence[str]] = None,
    ) -> str:
        """Build the event stream URL for the given Stasis applications.

        Credentials travel as the ``api_key`` query parameter. Without an
        event filter the stream subscribes to all events of the
        applications.
        """
        query: Dict[str, str] = {
            "app": ",".join(applications),
            "api_key": f"{self.username}:{self.password}",
        }
        if subscribed_events:
            query["event"] = ",".join(subscribed_events)
        else:
            query["subscribeAll"] = "true"
        return f"{self.websocket_url}?{urlencode(query)}"

    # ────────────────────────── Convenience Constructors ─────────────────────
    @classmethod
    def from_env(cls) -> "ARIConfig":
        """
        Load config from environment, using .env only if present.
        """
        if os.path.exists(".env"):
            return cls(_env_file=".env", _env_file_encoding="utf-8")
        return cls()

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "ARIConfig":
        return cls(**config)

    @classmethod
    def from_file(cls, path: str) -> "ARIConfig":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Configuration file not found: {path}")
        with open(path, "rb") as f:
            if path.endswith(".json"):
                data = json.load(f)
            elif path.endswith((".toml", ".tml")):
                data = tomli.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path}")
        return cls(**data)

    # ────────────────────────── Utility ──────────────────────────────────────
    def mask_sensitive_data(self) -> Dict[str, Any]:
        d = self.model_dump()
        if "password" in d:
            d["password"] = "*" * len(d["password"])
        return d

    def __repr__(self) -> str:
        return f"ARIConfig({self.mask_sensitive_data()})"

    def get_timeout_config(self) -> Dict[str, float]:
        return {
            "total": self.timeout,
            "connect": min(self.timeout / 3, 10.0),
            "sock_read": self.timeout,
            "sock_connect": min(self.timeout / 3, 10.0),
        }

    def get_websocket_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "heartbeat": self.websocket_ping_interval,
            "max_msg_size": self.websocket_max_size,
            "autoping": True,
        }
        if self.use_ssl and not self.verify_ssl:
            kwargs["ssl"] = False
        return kwargs
