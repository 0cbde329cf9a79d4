"""AnnotationStore - User notes placed on the plot.

Notes are kept in creation order. The store tracks a single dirty flag: set
by any content change, cleared only through ``mark_clean`` once the data-file
collaborator has written the notes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List

from .change_bus import ChangeBus, ChangeKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Note:
    """A note anchored at (key, value) in plot-data coordinates."""
    key: float
    value: float
    text: str = ""


class AnnotationStore:
    def __init__(self, bus: ChangeBus) -> None:
        self._bus = bus
        self._notes: List[Note] = []
        self._dirty = False

    def __len__(self) -> int:
        return len(self._notes)

    def all(self) -> List[Note]:
        return list(self._notes)

    def note(self, index: int) -> Note:
        return self._notes[index]

    def is_dirty(self) -> bool:
        return self._dirty

    # -------------------------------------------------------------------------
    # Mutators
    # -------------------------------------------------------------------------

    def add(self, note: Note) -> int:
        """Append ``note`` and return its index."""
        self._notes.append(note)
        index = len(self._notes) - 1
        self._bus.emit(ChangeKind.NOTE_ADDED, (index, note))
        self._set_dirty(True)
        return index

    def remove(self, index: int) -> Note:
        note = self._notes.pop(index)
        self._bus.emit(ChangeKind.NOTE_REMOVED, (index, note))
        self._set_dirty(True)
        return note

    def set_text(self, index: int, text: str) -> bool:
        return self._update(index, replace(self._notes[index], text=str(text)))

    def set_position(self, index: int, key: float, value: float) -> bool:
        return self._update(index, replace(self._notes[index], key=float(key), value=float(value)))

    def clear(self) -> bool:
        """Remove every note. No-op on an empty store."""
        if not self._notes:
            return False
        count = len(self._notes)
        self._notes.clear()
        self._bus.emit(ChangeKind.NOTES_CLEARED, count)
        self._set_dirty(True)
        return True

    def mark_clean(self) -> None:
        """Called by the persistence collaborator after a confirmed write."""
        self._set_dirty(False)

    def request_data_file_update(self) -> None:
        """Ask for the notes to be written back to the loaded data file."""
        self._bus.emit(ChangeKind.NOTES_SAVE_REQUESTED)

    def _update(self, index: int, updated: Note) -> bool:
        if self._notes[index] == updated:
            return False
        self._notes[index] = updated
        self._bus.emit(ChangeKind.NOTE_CHANGED, (index, updated))
        self._set_dirty(True)
        return True

    def _set_dirty(self, dirty: bool) -> None:
        if self._dirty == dirty:
            return
        self._dirty = dirty
        logger.debug("Notes dirty flag -> %s", dirty)
        self._bus.emit(ChangeKind.NOTES_DIRTY, dirty)


__all__ = ["AnnotationStore", "Note"]
