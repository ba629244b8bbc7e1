"""
StateCanvas configuration management using Pydantic Settings.

Configuration can be provided via:
1. statecanvas.yaml config file
2. STATECANVAS_* env vars (nested with double underscore)
3. .env file
4. Direct instantiation

Priority (highest wins): init kwargs > statecanvas.yaml > env vars > .env > defaults

Example statecanvas.yaml:
    log_level: INFO
    history:
      max_depth: 100
    layout:
      direction: LR
      node_separation: 80
    persistence:
      store_root: ./workflows
      save_timeout_seconds: 5
"""

import logging
import os
from pathlib import Path
from typing import Optional, Literal, Dict, Any, Tuple, Type

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    PydanticBaseSettingsSource,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "STATECANVAS_CONFIG"
CONFIG_FILE_NAMES = ("statecanvas.yaml", "statecanvas.yml")


class HistoryConfig(BaseModel):
    """Undo/redo history configuration."""

    # Undo entries kept per workflow; the oldest is evicted past this bound
    max_depth: int = Field(default=50, ge=1)


class LayoutConfig(BaseModel):
    """Auto-layout defaults. Sizes are in canvas pixels."""

    node_width: float = Field(default=160, gt=0)
    node_height: float = Field(default=60, gt=0)
    # Gap between consecutive ranks
    rank_separation: float = Field(default=150, ge=0)
    # Gap between neighbouring nodes within a rank
    node_separation: float = Field(default=120, ge=0)
    direction: Literal["TB", "BT", "LR", "RL"] = "TB"
    # Barycenter ordering passes (each pass sweeps down then up)
    ordering_passes: int = Field(default=4, ge=0)


class PersistenceConfig(BaseModel):
    """Persistence collaborator configuration."""

    # Directory used by the JSON directory store (see statecanvas.store.open_store)
    store_root: str = "./workflows"
    # Upper bound for a single save call before it is reported as failed
    save_timeout_seconds: float = Field(default=10.0, gt=0)


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that reads from a statecanvas.yaml config file.

    Discovers config at:
    1. Explicit path passed via _config_path init kwarg
    2. $STATECANVAS_CONFIG env var
    3. ./statecanvas.yaml
    4. ./statecanvas.yml
    """

    def __init__(
        self, settings_cls: Type[BaseSettings], config_path: Optional[str] = None
    ):
        super().__init__(settings_cls)
        self._config_path = config_path
        self._yaml_data: Optional[Dict[str, Any]] = None
        self._load()

    def _discover_config_file(self) -> Optional[Path]:
        """Find the config file to load."""
        if self._config_path:
            p = Path(self._config_path)
            return p if p.is_file() else None

        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            p = Path(env_path)
            return p if p.is_file() else None

        for name in CONFIG_FILE_NAMES:
            p = Path(name)
            if p.is_file():
                return p

        return None

    def _load(self) -> None:
        """Load and parse the YAML config file."""
        path = self._discover_config_file()
        if path is None:
            self._yaml_data = {}
            return

        try:
            import yaml

            with open(path) as f:
                data = yaml.safe_load(f)
            self._yaml_data = data if isinstance(data, dict) else {}
            logger.debug(f"Loaded config from {path}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            self._yaml_data = {}

    _SECTIONS = ("history", "layout", "persistence")
    _TOPLEVEL_KEYS = ("debug", "log_level")

    def _map_to_settings(self) -> Dict[str, Any]:
        """Keep only known keys; unknown sections are ignored with a warning."""
        if not self._yaml_data:
            return {}

        result: Dict[str, Any] = {}
        for key, value in self._yaml_data.items():
            if key in self._TOPLEVEL_KEYS:
                result[key] = value
            elif key in self._SECTIONS:
                if isinstance(value, dict):
                    result[key] = value
                else:
                    logger.warning(f"Ignoring config section '{key}': expected a mapping")
            else:
                logger.warning(f"Ignoring unknown config key: {key}")

        return result

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        mapped = self._map_to_settings()
        value = mapped.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> Dict[str, Any]:
        return self._map_to_settings()


class StateCanvasSettings(BaseSettings):
    """
    Main StateCanvas configuration.

    All settings can be overridden via environment variables with STATECANVAS_ prefix.
    Nested settings use double underscore: STATECANVAS_HISTORY__MAX_DEPTH

    A statecanvas.yaml config file is also supported (config takes priority).
    Pass _config_path to override the config file location.
    """

    model_config = SettingsConfigDict(
        env_prefix="STATECANVAS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Path to statecanvas.yaml (set via _config_path kwarg, not a real setting field)
    _config_path: Optional[str] = None

    # General settings; debug forces DEBUG logging regardless of log_level
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    # Component configurations
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)

    def __init__(self, _config_path: Optional[str] = None, **kwargs: Any):
        self.__class__._config_path = _config_path
        super().__init__(**kwargs)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Insert YAML config source before env vars.

        Priority (highest first): init > yaml > env > dotenv > file_secret
        """
        yaml_source = YamlConfigSource(settings_cls, config_path=cls._config_path)
        return (
            init_settings,
            yaml_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
