"""Configuration system for oauth2flow using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.oauth2flow] section (project-level)
3. ./oauth2flow.toml (project-level, explicit)
4. ~/.config/oauth2flow/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use OAUTH2FLOW_ prefix with nested delimiter __.
Example: OAUTH2FLOW_BACKEND__API_BASE_URL, OAUTH2FLOW_FLOW__SUCCESS_DELAY
"""

from __future__ import annotations

import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    project_toml = Path("oauth2flow.toml")
    if project_toml.exists():
        files.append(project_toml)

    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "oauth2flow" / "config.toml"
    else:
        user_config = Path("~/.config/oauth2flow/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("OAUTH2FLOW_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("oauth2flow", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "redis_url",
}

_REDACTED = "********"


class BackendSettings(BaseSettings):
    """Backend API settings.

    Environment prefix: OAUTH2FLOW_BACKEND__
    Example: OAUTH2FLOW_BACKEND__API_BASE_URL=https://api.example.com
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH2FLOW_BACKEND__",
        extra="ignore",
    )

    api_base_url: str = Field(
        default="",
        description="Scheme and host of the backend (e.g. https://api.example.com)",
    )
    api_path: str = Field(
        default="/api/sys/user",
        description="Path prefix of the user API that exposes the oauth2 endpoints",
    )
    request_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds before a backend request is abandoned (None = no timeout)",
    )

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended."""
        return v.strip().rstrip("/")


class FlowSettings(BaseSettings):
    """Login flow behaviour.

    Environment prefix: OAUTH2FLOW_FLOW__
    Example: OAUTH2FLOW_FLOW__SUCCESS_DELAY=0
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH2FLOW_FLOW__",
        extra="ignore",
    )

    home_route: str = Field(default="/home", description="Route shown after a successful login")
    login_route: str = Field(default="/login", description="Unauthenticated entry point")
    success_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Seconds the success indicator stays up before navigating",
    )
    error_delay: float = Field(
        default=2.0,
        ge=0.0,
        description="Seconds the error indicator stays up before navigating",
    )
    verify_state: bool = Field(
        default=False,
        description="Require success callbacks to echo the stored CSRF token as 'state'",
    )


class StorageSettings(BaseSettings):
    """Credential storage settings.

    The CSRF token always lives in process memory; ``backend`` selects
    where the session credential is persisted.

    Environment prefix: OAUTH2FLOW_STORAGE__
    Example: OAUTH2FLOW_STORAGE__BACKEND=keyring
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH2FLOW_STORAGE__",
        extra="ignore",
    )

    backend: Literal["memory", "keyring", "redis"] = Field(
        default="keyring",
        description="Persistent storage backend: keyring (default), redis, or memory (tests only)",
    )
    csrf_key: str = Field(default="oauth2.csrfToken", description="Session key of the CSRF token")
    credential_key: str = Field(
        default="session.credential",
        description="Persistent key of the session credential",
    )
    keyring_service: str = Field(default="oauth2flow", description="Keyring service name")
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_prefix: str = Field(default="oauth2flow", description="Key prefix for Redis")
    redis_pool_size: int = Field(default=10, ge=1, description="Redis connection pool size")


class CallbackSettings(BaseSettings):
    """Loopback callback server settings.

    The backend owns the redirect URI; these values must match it.

    Environment prefix: OAUTH2FLOW_CALLBACK__
    Example: OAUTH2FLOW_CALLBACK__PORT=3000
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH2FLOW_CALLBACK__",
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=3000, ge=0, le=65535, description="Port (0 = auto-assign)")
    paths: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/oauth2/redirect", "/oauth2/success", "/login"],
        description="Paths treated as login callbacks",
    )
    auth_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Maximum seconds to wait for the browser to return",
    )

    @field_validator("paths", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated strings from env vars."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v or []


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: OAUTH2FLOW_LOG__
    Example: OAUTH2FLOW_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH2FLOW_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


class OAuth2FlowSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.oauth2flow] section
    3. ./oauth2flow.toml (project-level)
    4. ~/.config/oauth2flow/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH2FLOW__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    backend: BackendSettings = Field(default_factory=BackendSettings)
    flow: FlowSettings = Field(default_factory=FlowSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    callback: CallbackSettings = Field(default_factory=CallbackSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()

        # A section given as a dict bypasses its own env source, so re-apply
        # OAUTH2FLOW_<SECTION>__ variables on top of the TOML values
        sections = {
            "backend": BackendSettings,
            "flow": FlowSettings,
            "storage": StorageSettings,
            "callback": CallbackSettings,
            "log": LogSettings,
        }
        for name, section_cls in sections.items():
            if isinstance(toml_config.get(name), dict):
                from_env = section_cls().model_dump(exclude_unset=True)
                toml_config[name] = _deep_merge(toml_config[name], from_env)

        # Explicit keyword arguments take precedence over TOML files and env
        super().__init__(**_deep_merge(toml_config, data))

    def _sections(self) -> list[tuple[str, str]]:
        return [
            ("Backend", "backend"),
            ("Flow", "flow"),
            ("Storage", "storage"),
            ("Callback Server", "callback"),
            ("Logging", "log"),
        ]

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# oauth2flow Environment Variables",
            "# Generated by: oauth2flow config --env",
            "",
        ]

        sections = self._sections()
        all_data = self.model_dump(exclude={attr: _SENSITIVE_FIELDS for _, attr in sections})

        for _, attr_name in sections:
            prefix = f"OAUTH2FLOW_{attr_name.upper()}"
            for field_name, field_value in all_data.get(attr_name, {}).items():
                if field_value is None:
                    continue
                if isinstance(field_value, list):
                    value_str = ",".join(str(v) for v in field_value)
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {prefix}__{field_name.upper()}="{value_str}"')
            section_cls = type(getattr(self, attr_name))
            lines.extend(
                f'export {prefix}__{rn.upper()}="{_REDACTED}"'
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["oauth2flow Configuration", "=" * 60, ""]

        sections = self._sections()
        all_data = self.model_dump(exclude={attr: _SENSITIVE_FIELDS for _, attr in sections})

        for display_name, attr_name in sections:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in all_data.get(attr_name, {}).items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:20} = {value_str}")
            section_cls = type(getattr(self, attr_name))
            lines.extend(
                f"  {rn:20} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )

        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> OAuth2FlowSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return OAuth2FlowSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> OAuth2FlowSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
