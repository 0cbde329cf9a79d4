"""AcquisitionSession - Owns the three stores and runs multi-store sequences.

Collaborators (transport, file handlers, dialogs) receive the session or the
individual stores at construction; nothing in the core is reachable through
globals.
"""

from __future__ import annotations

import logging
from typing import Optional

from .annotations import AnnotationStore
from .change_bus import ChangeBus, ChangeKind
from .channel_registry import ChannelRegistry
from .errors import IllegalTransitionError, NoActiveChannelsError
from .lifecycle import AxisScale, Clock, LifecycleState, Phase
from .sample_sink import SampleSink

logger = logging.getLogger(__name__)


class AcquisitionSession:
    """
    Headless orchestration of a viewing/acquisition session.

    Responsibilities:
    - Enforce the guards the state machine leaves to its caller
    - Sequence store clears before the phase change they belong to
    - Expose the sample sink for the transport collaborator
    """

    def __init__(
        self,
        bus: ChangeBus,
        registry: ChannelRegistry,
        annotations: AnnotationStore,
        lifecycle: LifecycleState,
    ) -> None:
        self.bus = bus
        self.registry = registry
        self.annotations = annotations
        self.lifecycle = lifecycle
        self.sink = SampleSink(registry, lifecycle, bus)
        lifecycle.set_before_idle_hook(self._empty_stores)

    @classmethod
    def create(cls, *, clock: Optional[Clock] = None, x_axis_sliding_sec: int = 30) -> "AcquisitionSession":
        """Build a session with fresh stores sharing one bus."""
        bus = ChangeBus()
        return cls(
            bus,
            ChannelRegistry(bus),
            AnnotationStore(bus),
            LifecycleState(bus, clock=clock, x_axis_sliding_sec=x_axis_sliding_sec),
        )

    @property
    def phase(self) -> Phase:
        return self.lifecycle.phase

    # -------------------------------------------------------------------------
    # Phase sequences
    # -------------------------------------------------------------------------

    def start(self, *, clear: bool = True) -> None:
        """Enter Running.

        Loaded data is discarded first. With ``clear`` the statistics,
        markers, notes and plotted data of the previous run are reset.

        Raises:
            NoActiveChannelsError: No channel is active
            IllegalTransitionError: Already running
        """
        if self.lifecycle.phase is Phase.RUNNING:
            raise IllegalTransitionError(Phase.RUNNING, Phase.RUNNING)
        if self.lifecycle.phase is Phase.DATA_LOADED:
            self.discard_loaded_data()
        if self.registry.active_count() == 0:
            raise NoActiveChannelsError(
                "There are no channels in the scope list. Please select at least one channel."
            )

        if clear:
            self.clear_data()
        self.lifecycle.transition(Phase.RUNNING)

        if self.lifecycle.x_axis_scale is AxisScale.MANUAL:
            self.lifecycle.set_x_axis_scale(AxisScale.AUTO)
        if self.lifecycle.y_axis_scale is AxisScale.MANUAL:
            self.lifecycle.set_y_axis_scale(AxisScale.AUTO)

    def stop(self) -> None:
        """Leave Running; the phase change is the cancellation signal for the transport."""
        self.lifecycle.transition(Phase.STOPPED)

    def enter_data_loaded(self, data_file_path: str) -> None:
        """Called by the data-file collaborator once an import has populated the stores."""
        if not self.lifecycle.can_transition(Phase.DATA_LOADED):
            raise IllegalTransitionError(self.lifecycle.phase, Phase.DATA_LOADED)
        self.lifecycle.transition(Phase.DATA_LOADED)
        self.lifecycle.set_data_file_path(data_file_path)

    def discard_loaded_data(self) -> None:
        """DataLoaded -> Idle, with both stores emptied before the phase changes."""
        if self.lifecycle.phase is not Phase.DATA_LOADED:
            raise IllegalTransitionError(self.lifecycle.phase, Phase.IDLE)
        self.lifecycle.transition(Phase.IDLE)

    def _empty_stores(self) -> None:
        # Runs inside any DataLoaded -> Idle transition, before the phase is stored
        removed = self.registry.clear()
        self.annotations.clear()
        logger.info("Discarded loaded data (%d channels)", removed)

    def clear_data(self) -> None:
        """Reset statistics, markers and notes, and tell views to drop plotted data."""
        self.lifecycle.reset_communication_stats()
        self.lifecycle.clear_markers()
        self.annotations.clear()
        self.bus.emit(ChangeKind.DATA_CLEARED)


__all__ = ["AcquisitionSession"]
