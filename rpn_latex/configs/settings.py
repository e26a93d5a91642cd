"""
Editor settings.

Settings are stored as a flat JSON object; unknown keys in a settings
file are ignored and missing keys take their defaults.

Usage:
    settings = load_settings()            # DEFAULT_SETTINGS_PATH, if present
    settings.autoparenthesize = False
    save_settings(settings)
"""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional
import json

# Base project directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Settings file used by the CLI and server when no path is given
DEFAULT_SETTINGS_PATH = PROJECT_ROOT / "rpn_latex_settings.json"


@dataclass
class EditorSettings:
    """Editor configuration."""

    # Expression building
    autoparenthesize: bool = True

    # Undo history
    max_undo_depth: int = 100

    # Rationalization of numeric results
    max_rational_denominator: int = 500
    rational_tolerance: float = 1e-8

    # Prefix arguments are capped at this value
    max_prefix_argument: int = 9999

    # Re-raise editor errors instead of just flashing
    debug_mode: bool = False
    log_level: str = "INFO"

    def reset(self):
        """Restore every option to its default."""
        for f in fields(self):
            setattr(self, f.name, f.default)

    def update_from(self, other: 'EditorSettings'):
        """Copy every option from other, keeping this object's identity."""
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, d) -> 'EditorSettings':
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in d.items() if key in known})


def load_settings(path: Optional[Path] = None) -> EditorSettings:
    """Load settings from JSON; defaults if the file does not exist."""
    path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    if not path.exists():
        return EditorSettings()
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid settings file {path}: expected a JSON object")
    return EditorSettings.from_dict(data)


def save_settings(settings: EditorSettings, path: Optional[Path] = None):
    path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(settings.to_dict(), f, indent=2)
