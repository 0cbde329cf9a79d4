"""
Deterministic stand-ins for the timer, clock and outer collaborators.

Tests drive time explicitly: FakeClock.advance moves the lifecycle clock and
ManualScheduler.run_due fires one-shot callbacks whose delay has elapsed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from core.change_bus import ChangeBus, ChangeEvent, ChangeKind
from core.presentation import Collaborators


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_000_000) -> None:
        self.now_ms = int(start_ms)

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += int(ms)


class ManualScheduler:
    """Collects one-shot callbacks instead of arming real timers."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self._clock = clock
        self.pending: List[Tuple[int, Callable[[], None]]] = []
        self.scheduled_delays: List[int] = []

    def __call__(self, delay_ms: int, callback: Callable[[], None]) -> None:
        due = (self._clock.now_ms if self._clock is not None else 0) + int(delay_ms)
        self.pending.append((due, callback))
        self.scheduled_delays.append(int(delay_ms))

    def fire_next(self) -> bool:
        """Run the oldest pending callback regardless of its due time."""
        if not self.pending:
            return False
        _, callback = self.pending.pop(0)
        callback()
        return True

    def run_due(self) -> int:
        """Run every callback due at the current clock time; returns how many ran."""
        now = self._clock.now_ms if self._clock is not None else 0
        ran = 0
        while True:
            due = [entry for entry in self.pending if entry[0] <= now]
            if not due:
                return ran
            entry = due[0]
            self.pending.remove(entry)
            entry[1]()
            ran += 1


class EventRecorder:
    """Bus listener that keeps every delivered event in order."""

    def __init__(self, bus: ChangeBus, kinds=None) -> None:
        self.events: List[ChangeEvent] = []
        self._bus = bus
        self._token = bus.subscribe(self.events.append, kinds)

    def kinds(self) -> List[ChangeKind]:
        return [event.kind for event in self.events]

    def of(self, kind: ChangeKind) -> List[ChangeEvent]:
        return [event for event in self.events if event.kind is kind]

    def clear(self) -> None:
        self.events.clear()

    def close(self) -> None:
        self._bus.unsubscribe(self._token)


@dataclass
class RecordingCollaborators:
    """Collaborator callbacks that record their calls."""

    save_result: bool = True
    calls: List[Tuple[str, tuple]] = field(default_factory=list)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def update_note_lines(self, path: str) -> bool:
        self._record("update_note_lines", path)
        return self.save_result

    def build(self) -> Collaborators:
        return Collaborators(
            load_project_file=lambda path: self._record("load_project_file", path),
            reload_project_file=lambda: self._record("reload_project_file"),
            load_data_file=lambda path: self._record("load_data_file", path),
            open_register_dialog=lambda path: self._record("open_register_dialog", path),
            update_note_lines=self.update_note_lines,
            start_communication=lambda: self._record("start_communication"),
            stop_communication=lambda: self._record("stop_communication"),
            set_log_export=lambda enabled: self._record("set_log_export", enabled),
            export_data_file=lambda path: self._record("export_data_file", path),
            export_project_file=lambda path: self._record("export_project_file", path),
            open_settings_dialog=lambda action: self._record("open_settings_dialog", action),
        )


__all__ = ["EventRecorder", "FakeClock", "ManualScheduler", "RecordingCollaborators"]
