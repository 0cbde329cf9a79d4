"""LifecycleState - Application phase and the auxiliary view-model fields.

The phase is a small state machine::

    Idle -> Running | DataLoaded
    Running -> Stopped
    Stopped -> Running | DataLoaded
    DataLoaded -> Idle

The active-channel guard before Running is the caller's responsibility. Leaving
DataLoaded for Idle runs the ``before_idle`` hook (wired by ``core.session``
to empty the channel and note stores) before the new phase is stored.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from .change_bus import ChangeBus, ChangeKind
from .errors import IllegalTransitionError

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class Phase(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    DATA_LOADED = "data_loaded"


class AxisScale(Enum):
    AUTO = "auto"
    SLIDING = "sliding"
    MANUAL = "manual"
    WINDOW_AUTO = "window_auto"
    MINMAX = "minmax"


X_AXIS_SCALES: FrozenSet[AxisScale] = frozenset({AxisScale.AUTO, AxisScale.SLIDING, AxisScale.MANUAL})
Y_AXIS_SCALES: FrozenSet[AxisScale] = frozenset(AxisScale)

TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.IDLE: frozenset({Phase.RUNNING, Phase.DATA_LOADED}),
    Phase.RUNNING: frozenset({Phase.STOPPED}),
    Phase.STOPPED: frozenset({Phase.RUNNING, Phase.DATA_LOADED}),
    Phase.DATA_LOADED: frozenset({Phase.IDLE}),
}


class LifecycleState:
    """Single application-wide state holder.

    Every setter compares against the stored value and emits only on change.
    ``communication_start_time`` has no public setter: it is stamped when
    the phase enters Running and cleared when data is loaded.
    """

    def __init__(
        self,
        bus: ChangeBus,
        *,
        clock: Optional[Clock] = None,
        x_axis_sliding_sec: int = 30,
    ) -> None:
        self._bus = bus
        self._clock: Clock = clock or now_ms

        self._phase = Phase.IDLE
        self._communication_start_time: Optional[int] = None
        self._success_count = 0
        self._error_count = 0

        self._x_axis_scale = AxisScale.AUTO
        self._x_axis_sliding_sec = int(x_axis_sliding_sec)
        self._y_axis_scale = AxisScale.AUTO
        self._y_axis_min = 0.0
        self._y_axis_max = 10.0

        self._cursor_active = False
        self._front_channel = 0
        self._highlight_samples = True

        self._start_marker_pos: Optional[float] = None
        self._end_marker_pos: Optional[float] = None

        self._project_file_path = ""
        self._data_file_path = ""
        self._window_title_detail = ""
        self._last_dir = ""
        self._before_idle: Optional[Callable[[], None]] = None

    # -------------------------------------------------------------------------
    # Phase
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    def can_transition(self, target: Phase) -> bool:
        return target in TRANSITIONS[self._phase]

    def set_before_idle_hook(self, hook: Optional[Callable[[], None]]) -> None:
        """Install the callback run when DataLoaded is left for Idle, before the phase changes."""
        self._before_idle = hook

    def transition(self, target: Phase) -> bool:
        """Move to ``target``.

        Returns:
            False when already in ``target`` (nothing emitted)

        Raises:
            IllegalTransitionError: ``target`` is not reachable from the current phase
        """
        target = Phase(target)
        if target is self._phase:
            return False
        if not self.can_transition(target):
            raise IllegalTransitionError(self._phase, target)

        previous = self._phase
        if target is Phase.IDLE and self._before_idle is not None:
            self._before_idle()
        stats_reset = False
        if target is Phase.RUNNING:
            self._communication_start_time = self._clock()
        elif target is Phase.DATA_LOADED:
            self._communication_start_time = None
            stats_reset = (self._success_count, self._error_count) != (0, 0)
            self._success_count = 0
            self._error_count = 0
        self._phase = target

        logger.info("Phase %s -> %s", previous.value, target.value)
        self._bus.emit(ChangeKind.PHASE, (previous, target))
        if stats_reset:
            self._emit_stats()
        return True

    @property
    def communication_start_time(self) -> Optional[int]:
        """Epoch milliseconds of the latest Running entry."""
        return self._communication_start_time

    def now(self) -> int:
        return self._clock()

    def elapsed_ms(self) -> Optional[int]:
        if self._communication_start_time is None:
            return None
        return max(0, self._clock() - self._communication_start_time)

    # -------------------------------------------------------------------------
    # Communication statistics
    # -------------------------------------------------------------------------

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def error_count(self) -> int:
        return self._error_count

    def record_poll(self, success: bool) -> None:
        """Count one poll cycle; only valid while Running."""
        if self._phase is not Phase.RUNNING:
            raise ValueError(f"poll results are not counted while {self._phase.value}")
        if success:
            self._success_count += 1
        else:
            self._error_count += 1
        self._emit_stats()

    def set_communication_stats(self, success_count: int, error_count: int) -> bool:
        success_count = int(success_count)
        error_count = int(error_count)
        if success_count < 0 or error_count < 0:
            raise ValueError("communication counters must be non-negative")
        if self._phase is not Phase.RUNNING:
            raise ValueError("communication counters are frozen outside Running")
        if success_count < self._success_count or error_count < self._error_count:
            raise ValueError("communication counters cannot decrease while running")
        if (success_count, error_count) == (self._success_count, self._error_count):
            return False
        self._success_count = success_count
        self._error_count = error_count
        self._emit_stats()
        return True

    def reset_communication_stats(self) -> bool:
        if (self._success_count, self._error_count) == (0, 0):
            return False
        self._success_count = 0
        self._error_count = 0
        self._emit_stats()
        return True

    def _emit_stats(self) -> None:
        self._bus.emit(ChangeKind.COMMUNICATION_STATS, (self._success_count, self._error_count))

    # -------------------------------------------------------------------------
    # Axis scaling
    # -------------------------------------------------------------------------

    @property
    def x_axis_scale(self) -> AxisScale:
        return self._x_axis_scale

    def set_x_axis_scale(self, mode: AxisScale) -> bool:
        mode = AxisScale(mode)
        if mode not in X_AXIS_SCALES:
            raise ValueError(f"{mode.value} is not a valid x axis scaling mode")
        return self._set("_x_axis_scale", mode, ChangeKind.X_AXIS_SCALING)

    @property
    def x_axis_sliding_sec(self) -> int:
        return self._x_axis_sliding_sec

    def set_x_axis_sliding_sec(self, seconds: int) -> bool:
        seconds = int(seconds)
        if seconds <= 0:
            raise ValueError("sliding window must be positive")
        return self._set("_x_axis_sliding_sec", seconds, ChangeKind.X_AXIS_SLIDING_INTERVAL)

    @property
    def y_axis_scale(self) -> AxisScale:
        return self._y_axis_scale

    def set_y_axis_scale(self, mode: AxisScale) -> bool:
        mode = AxisScale(mode)
        if mode not in Y_AXIS_SCALES:
            raise ValueError(f"{mode.value} is not a valid y axis scaling mode")
        return self._set("_y_axis_scale", mode, ChangeKind.Y_AXIS_SCALING)

    @property
    def y_axis_min(self) -> float:
        return self._y_axis_min

    @property
    def y_axis_max(self) -> float:
        return self._y_axis_max

    def set_y_axis_min_max(self, minimum: float, maximum: float) -> bool:
        minimum = float(minimum)
        maximum = float(maximum)
        if minimum > maximum:
            raise ValueError("y axis minimum must not exceed the maximum")
        if (minimum, maximum) == (self._y_axis_min, self._y_axis_max):
            return False
        self._y_axis_min = minimum
        self._y_axis_max = maximum
        self._bus.emit(ChangeKind.Y_AXIS_MIN_MAX, (minimum, maximum))
        return True

    def set_y_axis_min(self, minimum: float) -> bool:
        return self.set_y_axis_min_max(minimum, self._y_axis_max)

    def set_y_axis_max(self, maximum: float) -> bool:
        return self.set_y_axis_min_max(self._y_axis_min, maximum)

    # -------------------------------------------------------------------------
    # View flags
    # -------------------------------------------------------------------------

    @property
    def cursor_active(self) -> bool:
        return self._cursor_active

    def set_cursor_active(self, active: bool) -> bool:
        # Keyboard driven; emitted immediately on every change
        return self._set("_cursor_active", bool(active), ChangeKind.CURSOR)

    @property
    def front_channel(self) -> int:
        """Active index of the channel drawn on top."""
        return self._front_channel

    def set_front_channel(self, active_index: int) -> bool:
        active_index = int(active_index)
        if active_index < 0:
            raise ValueError("front channel index must be non-negative")
        return self._set("_front_channel", active_index, ChangeKind.FRONT_CHANNEL)

    @property
    def highlight_samples(self) -> bool:
        return self._highlight_samples

    def set_highlight_samples(self, enabled: bool) -> bool:
        return self._set("_highlight_samples", bool(enabled), ChangeKind.HIGHLIGHT_SAMPLES)

    # -------------------------------------------------------------------------
    # Markers
    # -------------------------------------------------------------------------

    @property
    def start_marker_pos(self) -> Optional[float]:
        return self._start_marker_pos

    @property
    def end_marker_pos(self) -> Optional[float]:
        return self._end_marker_pos

    @property
    def marker_state(self) -> bool:
        """True once both markers are placed."""
        return self._start_marker_pos is not None and self._end_marker_pos is not None

    def set_start_marker_pos(self, pos: float) -> bool:
        return self._set_markers(float(pos), self._end_marker_pos)

    def set_end_marker_pos(self, pos: float) -> bool:
        return self._set_markers(self._start_marker_pos, float(pos))

    def clear_markers(self) -> bool:
        return self._set_markers(None, None)

    def _set_markers(self, start: Optional[float], end: Optional[float]) -> bool:
        if (start, end) == (self._start_marker_pos, self._end_marker_pos):
            return False
        self._start_marker_pos = start
        self._end_marker_pos = end
        self._bus.emit(ChangeKind.MARKERS, (start, end))
        return True

    # -------------------------------------------------------------------------
    # Files and window
    # -------------------------------------------------------------------------

    @property
    def project_file_path(self) -> str:
        return self._project_file_path

    def set_project_file_path(self, path: str) -> bool:
        return self._set("_project_file_path", str(path), ChangeKind.PROJECT_FILE)

    @property
    def data_file_path(self) -> str:
        return self._data_file_path

    def set_data_file_path(self, path: str) -> bool:
        return self._set("_data_file_path", str(path), ChangeKind.DATA_FILE)

    @property
    def window_title_detail(self) -> str:
        return self._window_title_detail

    def set_window_title_detail(self, detail: str) -> bool:
        return self._set("_window_title_detail", str(detail), ChangeKind.WINDOW_TITLE_DETAIL)

    @property
    def last_dir(self) -> str:
        return self._last_dir

    def set_last_dir(self, path: str) -> bool:
        return self._set("_last_dir", str(path), ChangeKind.LAST_DIR)

    def snapshot(self) -> Dict[str, Any]:
        """Plain-value copy of every field, for dialogs and exporters."""
        return {
            "phase": self._phase,
            "communication_start_time": self._communication_start_time,
            "success_count": self._success_count,
            "error_count": self._error_count,
            "x_axis_scale": self._x_axis_scale,
            "x_axis_sliding_sec": self._x_axis_sliding_sec,
            "y_axis_scale": self._y_axis_scale,
            "y_axis_min": self._y_axis_min,
            "y_axis_max": self._y_axis_max,
            "cursor_active": self._cursor_active,
            "front_channel": self._front_channel,
            "highlight_samples": self._highlight_samples,
            "markers": self.markers(),
            "project_file_path": self._project_file_path,
            "data_file_path": self._data_file_path,
            "window_title_detail": self._window_title_detail,
            "last_dir": self._last_dir,
        }

    def markers(self) -> Tuple[Optional[float], Optional[float]]:
        return (self._start_marker_pos, self._end_marker_pos)

    def _set(self, attr: str, value: Any, kind: ChangeKind) -> bool:
        if getattr(self, attr) == value:
            return False
        setattr(self, attr, value)
        self._bus.emit(kind, value)
        return True


__all__ = [
    "AxisScale",
    "Clock",
    "LifecycleState",
    "Phase",
    "TRANSITIONS",
    "X_AXIS_SCALES",
    "Y_AXIS_SCALES",
    "now_ms",
]
