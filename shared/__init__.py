"""
Shared data structures available to both the core and the GUI.
"""

from .app_settings import AppSettings, AppSettingsStore, InMemoryPersistence, SettingsPersistence
from .models import SampleBatch
from .sample_history import SampleHistory

__all__ = [
    "AppSettings",
    "AppSettingsStore",
    "InMemoryPersistence",
    "SampleBatch",
    "SampleHistory",
    "SettingsPersistence",
]
