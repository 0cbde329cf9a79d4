"""QSettings persistence for AppSettings.

Values live under one QSettings group, either in the platform's native store
(registry, plist, ~/.config) or in an explicit INI file when a path is given.
PySide6 stays out of ``shared``; this module is the only place that knows
about QSettings.
"""
from __future__ import annotations

import logging
from dataclasses import fields
from typing import Optional

from PySide6.QtCore import QSettings

from shared.app_settings import AppSettings, AppSettingsStore, SettingsPersistence

logger = logging.getLogger(__name__)

ORGANIZATION = "RegScope"
APPLICATION = "RegScope"
_GROUP = "app"


class QSettingsPersistence(SettingsPersistence):
    """Reads and writes the AppSettings fields in one QSettings group."""

    def __init__(self, ini_path: Optional[str] = None) -> None:
        if ini_path:
            self._qsettings = QSettings(ini_path, QSettings.IniFormat)
        else:
            self._qsettings = QSettings(ORGANIZATION, APPLICATION)
        self._keys = tuple(item.name for item in fields(AppSettings))

    @property
    def location(self) -> str:
        return self._qsettings.fileName()

    def load(self) -> dict:
        # Type coercion is left to AppSettingsStore; QSettings mostly returns strings
        self._qsettings.beginGroup(_GROUP)
        try:
            return {key: self._qsettings.value(key) for key in self._keys if self._qsettings.contains(key)}
        finally:
            self._qsettings.endGroup()

    def save(self, data: dict) -> None:
        self._qsettings.beginGroup(_GROUP)
        try:
            for key in self._keys:
                if key not in data:
                    continue
                value = data[key]
                if value is None:
                    self._qsettings.remove(key)
                else:
                    # INI files have no bool type
                    self._qsettings.setValue(key, int(value) if isinstance(value, bool) else value)
        finally:
            self._qsettings.endGroup()
        self._qsettings.sync()
        if self._qsettings.status() != QSettings.NoError:
            logger.warning("Could not write settings to %s", self.location)


def create_gui_settings_store(ini_path: Optional[str] = None) -> AppSettingsStore:
    """Settings store backed by QSettings (native store unless ``ini_path`` is given)."""
    return AppSettingsStore(persistence=QSettingsPersistence(ini_path))


__all__ = ["QSettingsPersistence", "create_gui_settings_store"]
