"""Configuration management for StateCanvas."""

from statecanvas.config.settings import (
    StateCanvasSettings,
    HistoryConfig,
    LayoutConfig,
    PersistenceConfig,
)

__all__ = [
    "StateCanvasSettings",
    "HistoryConfig",
    "LayoutConfig",
    "PersistenceConfig",
]
