"""
Editor Configuration

- EditorSettings: option dataclass
- load_settings / save_settings: JSON persistence
"""

from .settings import (
    PROJECT_ROOT,
    DEFAULT_SETTINGS_PATH,
    EditorSettings,
    load_settings,
    save_settings,
)

__all__ = [
    'PROJECT_ROOT',
    'DEFAULT_SETTINGS_PATH',
    'EditorSettings',
    'load_settings',
    'save_settings',
]
