from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppSettings:
    poll_time_ms: int = 1000
    write_during_log: bool = False
    write_during_log_path: str = ""
    default_x_sliding_sec: int = 30
    last_dir: str = ""


class SettingsPersistence(ABC):
    """Storage backend for AppSettingsStore."""

    @abstractmethod
    def load(self) -> dict:
        """Return stored values keyed by AppSettings field name."""

    @abstractmethod
    def save(self, data: dict) -> None:
        """Store values keyed by AppSettings field name."""


class InMemoryPersistence(SettingsPersistence):
    """Persistence that only lives as long as the process (headless and tests)."""

    def __init__(self, initial: Optional[dict] = None) -> None:
        self._data: dict = dict(initial or {})

    def load(self) -> dict:
        return dict(self._data)

    def save(self, data: dict) -> None:
        self._data.update(data)


def _coerce(value: Any, default: Any) -> Any:
    # QSettings hands back strings for most stored values
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)
    if isinstance(default, int):
        return int(float(value))
    if isinstance(default, float):
        return float(value)
    return str(value)


class AppSettingsStore:
    """Thread-safe persistent settings store for application-wide preferences."""

    def __init__(self, persistence: Optional[SettingsPersistence] = None) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[AppSettings], None]] = {}
        self._next_token = 0
        self._persistence = persistence if persistence is not None else InMemoryPersistence()
        self._settings = self._load_settings()

    def _load_settings(self) -> AppSettings:
        stored = self._persistence.load()
        defaults = AppSettings()
        values = {}
        for item in fields(AppSettings):
            if item.name not in stored:
                continue
            default = getattr(defaults, item.name)
            try:
                values[item.name] = _coerce(stored[item.name], default)
            except (TypeError, ValueError):
                logger.warning("Ignoring unreadable setting %s=%r", item.name, stored[item.name])
        return replace(defaults, **values)

    def get(self) -> AppSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> AppSettings:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            if new_settings == self._settings:
                return new_settings
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
            self._persistence.save(asdict(new_settings))
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception:
                logger.exception("App settings subscriber callback failed")
        return new_settings

    def subscribe(self, callback: Callable[[AppSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = ["AppSettings", "AppSettingsStore", "InMemoryPersistence", "SettingsPersistence"]
