"""ChangeBus - Synchronous publish/subscribe between the stores and the views.

Stores call ``emit`` after they have finished mutating their own state. Events
are delivered on the calling thread, in emission order. A listener that mutates
a store while an event is being delivered does not interrupt the current
delivery: the new event is queued and delivered once every listener of the
current event has run.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Deque, Dict, FrozenSet, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


class ChangeTopic(Enum):
    """Coarse groups of change kinds, used for subscriptions."""
    CHANNEL = auto()
    ANNOTATION = auto()
    STATE = auto()
    PHASE = auto()
    SAMPLES = auto()
    PRESENTATION = auto()


class ChangeKind(Enum):
    """Every notification the core can emit."""

    # ChannelRegistry
    CHANNEL_ADDED = auto()
    CHANNEL_REMOVED = auto()
    CHANNEL_ACTIVE = auto()
    CHANNEL_VISIBILITY = auto()
    CHANNEL_LABEL = auto()
    CHANNEL_COLOR = auto()
    CHANNEL_TRANSFORM = auto()

    # AnnotationStore
    NOTE_ADDED = auto()
    NOTE_REMOVED = auto()
    NOTE_CHANGED = auto()
    NOTES_CLEARED = auto()
    NOTES_DIRTY = auto()
    NOTES_SAVE_REQUESTED = auto()

    # LifecycleState
    PHASE = auto()
    X_AXIS_SCALING = auto()
    X_AXIS_SLIDING_INTERVAL = auto()
    Y_AXIS_SCALING = auto()
    Y_AXIS_MIN_MAX = auto()
    COMMUNICATION_STATS = auto()
    CURSOR = auto()
    FRONT_CHANNEL = auto()
    HIGHLIGHT_SAMPLES = auto()
    MARKERS = auto()
    PROJECT_FILE = auto()
    DATA_FILE = auto()
    WINDOW_TITLE_DETAIL = auto()
    LAST_DIR = auto()

    # Acquisition data
    SAMPLES_RECEIVED = auto()
    DATA_CLEARED = auto()

    # PresentationCoordinator
    MENUS = auto()
    ACTIONS = auto()
    STATUS = auto()
    WINDOW_TITLE = auto()
    RUNTIME_TICK = auto()

    @property
    def topic(self) -> ChangeTopic:
        return _TOPICS[self]


_TOPICS: Dict[ChangeKind, ChangeTopic] = {}
for _kind in ChangeKind:
    if _kind.name.startswith("CHANNEL_"):
        _TOPICS[_kind] = ChangeTopic.CHANNEL
    elif _kind.name.startswith("NOTE"):
        _TOPICS[_kind] = ChangeTopic.ANNOTATION
    elif _kind is ChangeKind.PHASE:
        _TOPICS[_kind] = ChangeTopic.PHASE
    elif _kind in (ChangeKind.SAMPLES_RECEIVED, ChangeKind.DATA_CLEARED):
        _TOPICS[_kind] = ChangeTopic.SAMPLES
    elif _kind in (
        ChangeKind.MENUS,
        ChangeKind.ACTIONS,
        ChangeKind.STATUS,
        ChangeKind.WINDOW_TITLE,
        ChangeKind.RUNTIME_TICK,
    ):
        _TOPICS[_kind] = ChangeTopic.PRESENTATION
    else:
        _TOPICS[_kind] = ChangeTopic.STATE
del _kind


def kinds_for_topic(*topics: ChangeTopic) -> FrozenSet[ChangeKind]:
    """Return every kind that belongs to one of ``topics``."""
    wanted = set(topics)
    return frozenset(kind for kind in ChangeKind if kind.topic in wanted)


@dataclass(frozen=True)
class ChangeEvent:
    """Notification payload delivered to listeners."""
    kind: ChangeKind
    data: Any = None
    channel_id: Optional[int] = None

    @property
    def topic(self) -> ChangeTopic:
        return self.kind.topic


# Listener callback signature: (event: ChangeEvent) -> None
ChangeListener = Callable[[ChangeEvent], None]


class ChangeBus:
    """Typed, synchronous, ordered notification facility.

    Listener errors are logged and do not stop delivery to the other
    listeners. The bus belongs to the thread that created it; emitting from
    any other thread raises ``RuntimeError``.
    """

    def __init__(self) -> None:
        self._owner_thread = threading.get_ident()
        self._listeners: Dict[int, Tuple[Optional[FrozenSet[ChangeKind]], ChangeListener]] = {}
        self._next_token: int = 0
        self._pending: Deque[ChangeEvent] = deque()
        self._delivering: bool = False

    # -------------------------------------------------------------------------
    # Listener Management
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        listener: ChangeListener,
        kinds: Optional[Iterable[ChangeKind]] = None,
    ) -> int:
        """Register ``listener`` for ``kinds`` (all kinds when None).

        Returns:
            Token for ``unsubscribe``
        """
        token = self._next_token
        self._next_token += 1
        wanted = frozenset(kinds) if kinds is not None else None
        self._listeners[token] = (wanted, listener)
        return token

    def subscribe_topic(self, listener: ChangeListener, *topics: ChangeTopic) -> int:
        """Register ``listener`` for every kind of the given topics."""
        return self.subscribe(listener, kinds_for_topic(*topics))

    def unsubscribe(self, token: int) -> None:
        self._listeners.pop(token, None)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def delivering(self) -> bool:
        """True while listeners are being called."""
        return self._delivering

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def emit(self, kind: ChangeKind, data: Any = None, *, channel_id: Optional[int] = None) -> None:
        self.publish(ChangeEvent(kind=kind, data=data, channel_id=channel_id))

    def publish(self, event: ChangeEvent) -> None:
        """Deliver ``event`` now, or after the delivery already in progress."""
        if threading.get_ident() != self._owner_thread:
            raise RuntimeError(
                f"{event.kind.name} emitted off the owning thread; marshal to the UI thread first"
            )
        self._pending.append(event)
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending:
                self._deliver(self._pending.popleft())
        finally:
            self._delivering = False
            self._pending.clear()

    def _deliver(self, event: ChangeEvent) -> None:
        # Snapshot so (un)subscribing from a listener affects the next event only
        listeners = list(self._listeners.values())
        for kinds, listener in listeners:
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed while handling %s", event.kind.name)


__all__ = [
    "ChangeBus",
    "ChangeEvent",
    "ChangeKind",
    "ChangeListener",
    "ChangeTopic",
    "kinds_for_topic",
]
