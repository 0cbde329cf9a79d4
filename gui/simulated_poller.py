"""Simulated register poller for running the viewer without hardware.

Every poll interval one value per active channel is pushed into the
session's SampleSink: a slow sine per channel with a little noise, and an
occasional failed read so the error counter moves.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from PySide6 import QtCore

from core.session import AcquisitionSession

logger = logging.getLogger(__name__)


class SimulatedPoller(QtCore.QObject):
    """Timer-driven sample source wired in as the start/stop communication collaborator."""

    def __init__(
        self,
        session: AcquisitionSession,
        poll_time_ms: int = 1000,
        *,
        failure_rate: float = 0.02,
        seed: Optional[int] = None,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._session = session
        self._failure_rate = float(failure_rate)
        self._rng = np.random.default_rng(seed)
        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(max(1, int(poll_time_ms)))
        self._timer.timeout.connect(self._poll)

    @property
    def running(self) -> bool:
        return self._timer.isActive()

    def set_poll_time_ms(self, poll_time_ms: int) -> None:
        self._timer.setInterval(max(1, int(poll_time_ms)))

    def start(self) -> None:
        logger.info("Simulated polling every %d ms", self._timer.interval())
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def _poll(self) -> None:
        registry = self._session.registry
        active = registry.active_ids()
        if not active:
            return
        t = self._session.lifecycle.now() / 1000.0
        results = []
        for position, channel_id in enumerate(active):
            ok = bool(self._rng.random() >= self._failure_rate)
            value = 100.0 * np.sin(2 * np.pi * t / (10.0 + 5.0 * position)) + self._rng.normal(0.0, 2.0)
            results.append((ok, float(value) if ok else 0.0))
        if not self._session.sink.push(results):
            self.stop()


__all__ = ["SimulatedPoller"]
