"""
Application settings management.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from treecopy.core.models import OverwriteRule


@dataclass
class SyncSettings:
    """Options recognized by the synchronization pipeline."""
    overwrite_rule: OverwriteRule = OverwriteRule.IF_NEWER
    copy_hidden_files: bool = False
    recursive_scan: bool = True         # Compare/copy sub-levels (display is always recursive)
    preserve_attributes: bool = True
    compare_by_hash: bool = False
    hash_algorithm: str = "sha256"


@dataclass
class ApplicationSettings:
    """Main application settings container."""
    sync: SyncSettings = field(default_factory=SyncSettings)
    last_source_path: str = ""
    last_dest_path: str = ""


def resolve_existing_directory(path_str: Optional[str]) -> Optional[Path]:
    """
    Nearest existing directory for a stored path.

    Walks upward from ``path_str`` until an existing directory is found. An
    existing file resolves to its parent. Returns None if nothing exists.
    """
    if not path_str:
        return None

    path = Path(path_str).expanduser()
    while True:
        if path.is_dir():
            return path
        if path.exists():
            return path.parent

        parent = path.parent
        if parent == path:
            return None
        path = parent


class SettingsManager:
    """Manager for loading/saving application settings."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or self._get_default_path()
        self._settings: Optional[ApplicationSettings] = None
        self._observers: list[Callable[[ApplicationSettings], None]] = []

    @staticmethod
    def _get_default_path() -> Path:
        """Get the default settings file path."""
        if os.name == 'nt':
            # Windows
            app_data = os.environ.get('APPDATA', os.path.expanduser('~'))
            return Path(app_data) / 'TreeCopy' / 'settings.json'
        else:
            # Linux/Mac
            config_home = os.environ.get('XDG_CONFIG_HOME',
                                         os.path.expanduser('~/.config'))
            return Path(config_home) / 'treecopy' / 'settings.json'

    @property
    def settings(self) -> ApplicationSettings:
        """Get current settings, loading from disk if needed."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> ApplicationSettings:
        """Load settings from disk."""
        if not self.settings_path.exists():
            return ApplicationSettings()

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return self._from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logging.warning(f"SettingsManager - Could not read {self.settings_path}, using defaults: {e}")
            return ApplicationSettings()

    def save(self, settings: Optional[ApplicationSettings] = None) -> bool:
        """Save settings to disk and notify observers."""
        settings = settings or self._settings
        if settings is None:
            return False

        self._settings = settings
        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(self._to_dict(settings), f, indent=2)
        except OSError as e:
            logging.error(f"SettingsManager - Could not write {self.settings_path}: {e}")
            return False

        self._notify_observers()
        return True

    def update_sync(self, **changes: Any) -> bool:
        """
        Change sync options and persist them.

        Observers are only notified when something actually changed.
        """
        current = self.settings
        updated = replace(current.sync, **changes)
        if updated == current.sync:
            return True
        current.sync = updated
        return self.save(current)

    def remember_paths(self, source: Optional[Path], dest: Optional[Path]) -> None:
        """Persist the last used roots without notifying observers."""
        settings = self.settings
        settings.last_source_path = str(source) if source else ""
        settings.last_dest_path = str(dest) if dest else ""
        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(self._to_dict(settings), f, indent=2)
        except OSError as e:
            logging.warning(f"SettingsManager - Could not persist recent paths: {e}")

    def last_source(self) -> Optional[Path]:
        return resolve_existing_directory(self.settings.last_source_path)

    def last_dest(self) -> Optional[Path]:
        return resolve_existing_directory(self.settings.last_dest_path)

    def add_observer(self, callback: Callable[[ApplicationSettings], None]) -> None:
        """Add a callback to be notified of settings changes."""
        self._observers.append(callback)

    def remove_observer(self, callback: Callable[[ApplicationSettings], None]) -> None:
        """Remove a settings change observer."""
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify_observers(self) -> None:
        """Notify all observers of settings change."""
        for callback in list(self._observers):
            try:
                callback(self._settings)
            except Exception:
                logging.exception("SettingsManager - Settings observer failed")

    def _to_dict(self, settings: ApplicationSettings) -> dict:
        """Convert settings to dictionary for JSON serialization."""
        def convert(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert(item) for item in obj]
            else:
                return obj

        return convert(asdict(settings))

    def _from_dict(self, data: dict) -> ApplicationSettings:
        """Convert dictionary back to settings objects."""
        defaults = SyncSettings()
        sync_data = data.get('sync', {})

        def get_bool(key: str) -> bool:
            value = sync_data.get(key, getattr(defaults, key))
            return value if isinstance(value, bool) else getattr(defaults, key)

        sync = SyncSettings(
            overwrite_rule=OverwriteRule.from_string(
                str(sync_data.get('overwrite_rule', defaults.overwrite_rule.value))
            ),
            copy_hidden_files=get_bool('copy_hidden_files'),
            recursive_scan=get_bool('recursive_scan'),
            preserve_attributes=get_bool('preserve_attributes'),
            compare_by_hash=get_bool('compare_by_hash'),
            hash_algorithm=str(sync_data.get('hash_algorithm', defaults.hash_algorithm)),
        )

        return ApplicationSettings(
            sync=sync,
            last_source_path=str(data.get('last_source_path', '') or ''),
            last_dest_path=str(data.get('last_dest_path', '') or ''),
        )
