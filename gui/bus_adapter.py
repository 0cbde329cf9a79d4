"""Qt signal bridge for ChangeBus events.

The core bus calls plain Python callbacks; widgets want signals. The bridge
object re-emits every matching ChangeEvent as ``changed``. When a parent is
given the bridge dies with it and drops its bus subscription, so a deleted
widget is never called back.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable, Optional

from PySide6 import QtCore

if TYPE_CHECKING:
    from core.change_bus import ChangeBus, ChangeKind


class ChangeBusSignals(QtCore.QObject):
    changed = QtCore.Signal(object)  # ChangeEvent


def connect_change_bus(
    bus: "ChangeBus",
    kinds: Optional[Iterable["ChangeKind"]] = None,
    parent: Optional[QtCore.QObject] = None,
) -> tuple[ChangeBusSignals, Callable[[], None]]:
    """Subscribe a new signal bridge to ``bus``.

    Args:
        bus: Bus to listen to.
        kinds: Restrict the bridge to these kinds (all kinds when None).
        parent: Owner whose destruction ends the subscription.

    Returns:
        (signals object, idempotent unsubscribe function)
    """
    signals = ChangeBusSignals(parent)
    token: list = [bus.subscribe(signals.changed.emit, kinds)]

    def unsubscribe() -> None:
        if token:
            bus.unsubscribe(token.pop())

    signals.destroyed.connect(lambda *_: unsubscribe())
    return signals, unsubscribe


__all__ = ["ChangeBusSignals", "connect_change_bus"]
