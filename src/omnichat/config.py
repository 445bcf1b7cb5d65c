"""
Configuration loader: merges YAML config with environment variables.
Supports ${VAR:default} interpolation in YAML values.
"""
import os
import re
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from dotenv import load_dotenv

load_dotenv()

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


def _resolve_env(value: Any) -> Any:
    if isinstance(value, str):
        def replacer(m):
            var, default = m.group(1), m.group(2)
            return os.environ.get(var, default if default is not None else "")
        resolved = _ENV_PATTERN.sub(replacer, value)
        if resolved.isdigit():
            return int(resolved)
        if resolved.replace(".", "", 1).isdigit():
            return float(resolved)
        if resolved.lower() in ("true", "false"):
            return resolved.lower() == "true"
        return resolved
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    return value


@dataclass
class AppConfig:
    name: str = "OmniChat"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8080
    env: str = "production"
    log_level: str = "INFO"
    # Requests without a bearer token act as the demo user
    mock_auth: bool = True


@dataclass
class AuthConfig:
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24


@dataclass
class DatabaseConfig:
    url: str = "sqlite+aiosqlite:///./data/omnichat.db"
    echo: bool = False
    busy_timeout_ms: int = 10000


@dataclass
class GatewayConfig:
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-4o"
    max_tokens: int = 4096
    temperature: float = 0.7
    image_model: str = "gpt-image-1"
    image_size: str = "1024x1024"
    transcription_model: str = "whisper-1"
    timeout_seconds: int = 120


@dataclass
class StorageConfig:
    root_dir: str = "./data/storage"
    public_base_url: str = "http://localhost:8080/storage"
    max_upload_bytes: int = 100 * 1024 * 1024


@dataclass
class EndpointLimitsConfig:
    chat_messages: str = "30/minute"
    image_generation: str = "10/minute"
    file_upload: str = "30/minute"
    capabilities: str = "10/minute"


@dataclass
class RateLimitConfig:
    enabled: bool = True
    storage_uri: str = "memory://"
    default_limit: str = "200/minute"
    endpoints: EndpointLimitsConfig = field(default_factory=EndpointLimitsConfig)


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)


def _section(cls, data: Dict[str, Any]):
    """Build a config dataclass from a dict, ignoring unknown keys."""
    defaults = cls()
    return cls(**{k: v for k, v in (data or {}).items() if hasattr(defaults, k)})


_CONFIG: Optional[Config] = None


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and cache application configuration."""
    global _CONFIG
    if _CONFIG is not None:
        return _CONFIG

    if config_path is None:
        config_path = os.environ.get("OMNICHAT_CONFIG")
    if config_path is None:
        candidates = [
            Path("config/app.yaml"),
            Path(__file__).parent.parent.parent / "config" / "app.yaml",
            Path.home() / ".omnichat" / "app.yaml",
        ]
        for c in candidates:
            if c.exists():
                config_path = str(c)
                break

    raw = {}
    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    resolved = _resolve_env(raw)

    cfg = Config()
    if "app" in resolved:
        cfg.app = _section(AppConfig, resolved["app"])
    if "auth" in resolved:
        cfg.auth = _section(AuthConfig, resolved["auth"])
    if "database" in resolved:
        cfg.database = _section(DatabaseConfig, resolved["database"])
    if "gateway" in resolved:
        cfg.gateway = _section(GatewayConfig, resolved["gateway"])
    if "storage" in resolved:
        cfg.storage = _section(StorageConfig, resolved["storage"])
    if "rate_limits" in resolved:
        rl = dict(resolved["rate_limits"])
        endpoints = rl.pop("endpoints", {})
        cfg.rate_limits = _section(RateLimitConfig, rl)
        if endpoints:
            cfg.rate_limits.endpoints = _section(EndpointLimitsConfig, endpoints)

    _CONFIG = cfg
    return _CONFIG


def get_config() -> Config:
    """Get the cached config, loading if necessary."""
    if _CONFIG is None:
        return load_config()
    return _CONFIG


def set_config(cfg: Config) -> Config:
    """Install an explicit config (tests, embedding)."""
    global _CONFIG
    _CONFIG = cfg
    return _CONFIG


def reset_config():
    global _CONFIG
    _CONFIG = None
