"""Configuration management.

Loads and merges configuration from multiple sources with proper precedence.
"""

import json
import os
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config_loader import deep_merge, load_json_file
from .config_schema import (
    ClientConfig,
    Config,
    DocumentFilterConfig,
    LoggingConfig,
    ServerConfig,
)
from .global_paths import GlobalPath
from ..lsp.errors import ConfigurationError
from ..util.log import Log

log = Log.create({"service": "config"})

__all__ = [
    "ClientConfig",
    "Config",
    "ConfigError",
    "ConfigManager",
    "DocumentFilterConfig",
    "LoggingConfig",
    "ServerConfig",
]

CONFIG_FILENAMES = ["htmx-lsp.json", "htmx-lsp.jsonc"]
CONFIG_CONTENT_ENV = "HTMX_LSP_CONFIG_CONTENT"


class ConfigError(ConfigurationError):
    """Invalid configuration content."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Config error in {path}: {message}")


_config_var: ContextVar['ConfigManager'] = ContextVar('_config_var')


class ConfigManager:
    """Configuration management.

    Instance-based with ContextVar for scoping. Class methods delegate
    to the current instance.

    Sources, lowest precedence first:
    1. Global config (``<user config dir>/htmx-lsp.json``)
    2. Project config (``htmx-lsp.json`` found walking up from the directory)
    3. ``HTMX_LSP_CONFIG_CONTENT`` environment variable (JSON)
    """

    def __init__(self) -> None:
        self._cache: Optional[Config] = None
        self._sources: List[str] = []

    @classmethod
    def current(cls) -> 'ConfigManager':
        try:
            return _config_var.get()
        except LookupError:
            instance = cls()
            _config_var.set(instance)
            return instance

    @classmethod
    def provide(cls, instance: 'ConfigManager') -> Token['ConfigManager']:
        return _config_var.set(instance)

    @classmethod
    def restore(cls, token: Token['ConfigManager']) -> None:
        _config_var.reset(token)

    @classmethod
    def reset(cls) -> None:
        """Reset cached configuration."""
        inst = cls.current()
        inst._cache = None
        inst._sources = []

    @classmethod
    async def load(cls, directory: str = ".") -> Config:
        return cls.current()._load(directory)

    @classmethod
    async def get(cls) -> Config:
        inst = cls.current()
        if inst._cache is None:
            return inst._load()
        return inst._cache

    @classmethod
    def sources(cls) -> List[str]:
        """Files (and env var names) that contributed to the loaded config."""
        return cls.current()._sources.copy()

    def _load(self, directory: str = ".") -> Config:
        if self._cache is not None:
            return self._cache

        result: Dict[str, Any] = {}
        sources: List[str] = []

        for filename in CONFIG_FILENAMES:
            filepath = os.path.join(GlobalPath.config(), filename)
            data = load_json_file(filepath)
            if data:
                result = deep_merge(result, data)
                sources.append(filepath)
                log.info("loaded global config", {"path": filepath})

        project_configs: List[str] = []
        current = Path(directory).resolve()
        while True:
            for filename in CONFIG_FILENAMES:
                filepath = current / filename
                if filepath.is_file():
                    project_configs.append(str(filepath))
            if current == current.parent:
                break
            current = current.parent

        # Root first, then more specific
        for filepath in reversed(project_configs):
            data = load_json_file(filepath)
            if data:
                result = deep_merge(result, data)
                sources.append(filepath)
                log.info("loaded project config", {"path": filepath})

        env_config = os.environ.get(CONFIG_CONTENT_ENV)
        if env_config:
            try:
                data = json.loads(env_config)
            except json.JSONDecodeError as e:
                raise ConfigError(CONFIG_CONTENT_ENV, f"invalid JSON: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(CONFIG_CONTENT_ENV, "expected a JSON object")
            result = deep_merge(result, data)
            sources.append(CONFIG_CONTENT_ENV)
            log.info("loaded config from environment", {"var": CONFIG_CONTENT_ENV})

        try:
            config = Config.model_validate(result)
        except ValidationError as e:
            origin = sources[-1] if sources else "<defaults>"
            raise ConfigError(origin, str(e)) from e

        self._sources = sources
        self._cache = config
        return config
