"""SampleSink - Entry point for poll results coming from the transport.

The transport may run on its own thread, but it must hand results to the UI
thread (for example with a queued Qt signal) before calling ``push``.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from shared.models import SampleBatch

from .change_bus import ChangeBus, ChangeKind
from .channel_registry import ChannelRegistry
from .lifecycle import LifecycleState, Phase

logger = logging.getLogger(__name__)

PollResult = Tuple[bool, float]


class SampleSink:
    def __init__(self, registry: ChannelRegistry, lifecycle: LifecycleState, bus: ChangeBus) -> None:
        self._registry = registry
        self._lifecycle = lifecycle
        self._bus = bus

    def push(self, results: Sequence[PollResult], *, timestamp_ms: Optional[float] = None) -> bool:
        """Route one poll cycle to the views.

        Args:
            results: ``(success, value)`` per active channel, in active order
            timestamp_ms: Sample time; defaults to the lifecycle clock

        Returns:
            False when the cycle was dropped because acquisition is not running

        Raises:
            ValueError: ``results`` does not match the active channel count
        """
        if self._lifecycle.phase is not Phase.RUNNING:
            logger.debug("Dropping poll results outside Running (%s)", self._lifecycle.phase.value)
            return False

        channel_ids = self._registry.active_ids()
        if len(results) != len(channel_ids):
            raise ValueError(
                f"expected {len(channel_ids)} results for the active channels, got {len(results)}"
            )

        if timestamp_ms is None:
            timestamp_ms = self._lifecycle.now()

        success = np.fromiter((bool(ok) for ok, _ in results), dtype=bool, count=len(results))
        values = np.fromiter((float(value) for _, value in results), dtype=np.float64, count=len(results))
        batch = SampleBatch(
            timestamp_ms=float(timestamp_ms),
            channel_ids=tuple(channel_ids),
            success=success,
            values=values,
        )

        self._lifecycle.record_poll(batch.all_ok)
        self._bus.emit(ChangeKind.SAMPLES_RECEIVED, batch)
        return True


__all__ = ["PollResult", "SampleSink"]
