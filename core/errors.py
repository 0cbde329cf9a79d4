"""Exception types raised by the core stores."""

from __future__ import annotations

from typing import Any


class IllegalTransitionError(RuntimeError):
    """A lifecycle transition that the state machine does not allow."""

    def __init__(self, current: Any, requested: Any) -> None:
        super().__init__(f"Illegal phase transition: {current} -> {requested}")
        self.current = current
        self.requested = requested


class ChannelNotFoundError(KeyError):
    """No channel with the given id exists in the registry."""

    def __init__(self, channel_id: int) -> None:
        super().__init__(channel_id)
        self.channel_id = channel_id

    def __str__(self) -> str:
        return f"Unknown channel id: {self.channel_id}"


class ChannelNotActiveError(LookupError):
    """The channel exists but is not part of the active subset."""

    def __init__(self, channel_id: int) -> None:
        super().__init__(f"Channel {channel_id} is not active")
        self.channel_id = channel_id


class NoActiveChannelsError(RuntimeError):
    """Acquisition cannot start without at least one active channel."""


__all__ = [
    "ChannelNotActiveError",
    "ChannelNotFoundError",
    "IllegalTransitionError",
    "NoActiveChannelsError",
]
