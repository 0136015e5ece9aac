# Taskboard: configuration
# Override via config.yaml, TASKBOARD_* environment variables or CLI args.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError

CONFIG_PATH = Path(__file__).parent / "config.yaml"

ENV_OVERRIDES = {
    "TASKBOARD_DB": "db_path",
    "TASKBOARD_API_URL": "api_url",
    "TASKBOARD_TOKEN": "api_token",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Runtime configuration for the board server and API client."""

    # Server
    db_path: str = "~/.local/share/taskboard/taskboard.db"
    host: str = "127.0.0.1"
    port: int = 5100

    # Client
    api_url: str = "http://127.0.0.1:5100"
    api_token: Optional[str] = None
    request_timeout: float = 10.0

    # Behavior
    log_level: str = "INFO"
    default_page_size: int = 10

    def resolve_paths(self):
        """Expand ~ in filesystem paths."""
        self.db_path = str(Path(self.db_path).expanduser())

    def apply_env(self, environ=None):
        env = os.environ if environ is None else environ
        for var, attr in ENV_OVERRIDES.items():
            if env.get(var):
                setattr(self, attr, env[var])

    def validate(self):
        """Coerce numeric fields and reject values the server cannot run with."""
        try:
            self.port = int(self.port)
            self.request_timeout = float(self.request_timeout)
            self.default_page_size = int(self.default_page_size)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}")

        if not 0 < self.port < 65536:
            raise ConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if not 1 <= self.default_page_size <= 100:
            raise ConfigError("default_page_size must be between 1 and 100")
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        self.api_url = self.api_url.rstrip("/")

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
        else:
            cfg = cls()
        cfg.apply_env(environ)
        cfg.validate()
        cfg.resolve_paths()
        return cfg
