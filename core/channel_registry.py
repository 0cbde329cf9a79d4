"""ChannelRegistry - Ordered channel definitions and their derived subsets.

Tracks every channel in insertion order, derives the active and visible
subsets on demand and maps between full positions and active positions.
Each mutator updates the stored state first and then emits its events on the
ChangeBus. Writes of a value equal to the stored one emit nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .change_bus import ChangeBus, ChangeKind
from .errors import ChannelNotActiveError, ChannelNotFoundError

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

DEFAULT_COLOR_CYCLE: Tuple[RGB, ...] = (
    (0, 0, 139),
    (178, 34, 34),
    (0, 105, 148),
    (34, 139, 34),
    (128, 0, 128),
    (255, 140, 0),
)


def normalize_color(color: Sequence[int]) -> RGB:
    """Validate an RGB triple and return it as a tuple of ints."""
    values = tuple(int(c) for c in color)
    if len(values) != 3:
        raise ValueError(f"color must have 3 components, got {len(values)}")
    for component in values:
        if not 0 <= component <= 255:
            raise ValueError(f"color component out of range: {component}")
    return values  # type: ignore[return-value]


@dataclass(frozen=True)
class ChannelTransform:
    """Raw-value conversion parameters, applied by the transport side."""
    unsigned: bool = False
    multiply: float = 1.0
    divide: float = 1.0
    shift: int = 0
    bitmask: int = 0xFFFF

    def __post_init__(self) -> None:
        if self.divide == 0:
            raise ValueError("divide must be non-zero")
        if not -15 <= self.shift <= 15:
            raise ValueError("shift must be within [-15, 15]")
        if self.bitmask < 0:
            raise ValueError("bitmask must be non-negative")


@dataclass
class Channel:
    id: int
    label: str
    color: RGB
    active: bool = True
    visible: bool = True
    transform: ChannelTransform = field(default_factory=ChannelTransform)


class ChannelRegistry:
    """Ordered collection of channels with active/visible derivation.

    Responsibilities:
    - Assign stable, never-reused ids
    - Keep insertion order (full index)
    - Derive the active subset and its 0-based active index
    - Emit one notification per effective change
    """

    def __init__(self, bus: ChangeBus) -> None:
        self._bus = bus
        self._channels: List[Channel] = []
        self._by_id: Dict[int, Channel] = {}
        self._next_id: int = 0
        self._next_color_index: int = 0

    # -------------------------------------------------------------------------
    # Color Management
    # -------------------------------------------------------------------------

    def reset_color_cycle(self) -> None:
        """Reset color selection to the start of the palette."""
        self._next_color_index = 0

    def next_channel_color(self) -> RGB:
        color = DEFAULT_COLOR_CYCLE[self._next_color_index % len(DEFAULT_COLOR_CYCLE)]
        self._next_color_index += 1
        return color

    # -------------------------------------------------------------------------
    # Add/Remove
    # -------------------------------------------------------------------------

    def add(
        self,
        *,
        label: Optional[str] = None,
        color: Optional[Sequence[int]] = None,
        active: bool = True,
        transform: Optional[ChannelTransform] = None,
    ) -> int:
        """Create a channel at the end of the sequence and return its id."""
        rgb = normalize_color(color) if color is not None else self.next_channel_color()
        channel_id = self._next_id
        self._next_id += 1
        channel = Channel(
            id=channel_id,
            label=label if label is not None else f"Channel {channel_id + 1}",
            color=rgb,
            active=bool(active),
            visible=bool(active),
            transform=transform if transform is not None else ChannelTransform(),
        )
        self._channels.append(channel)
        self._by_id[channel_id] = channel
        logger.debug("Added channel %d (%s)", channel_id, channel.label)
        self._bus.emit(ChangeKind.CHANNEL_ADDED, replace(channel), channel_id=channel_id)
        return channel_id

    def remove(self, channel_id: int) -> None:
        """Remove a channel; the event carries a snapshot of the removed channel."""
        channel = self._require(channel_id)
        self._channels.remove(channel)
        del self._by_id[channel_id]
        logger.debug("Removed channel %d", channel_id)
        self._bus.emit(ChangeKind.CHANNEL_REMOVED, replace(channel), channel_id=channel_id)

    def clear(self) -> int:
        """Remove every channel.

        State is emptied before any notification goes out; one removal event
        follows per previously active channel, in their former order.

        Returns:
            Number of channels removed
        """
        removed = list(self._channels)
        if not removed:
            return 0
        self._channels.clear()
        self._by_id.clear()
        self.reset_color_cycle()
        for channel in removed:
            if channel.active:
                self._bus.emit(ChangeKind.CHANNEL_REMOVED, replace(channel), channel_id=channel.id)
        return len(removed)

    # -------------------------------------------------------------------------
    # Mutators
    # -------------------------------------------------------------------------

    def set_active(self, channel_id: int, active: bool) -> bool:
        """Change activity; visibility follows (hidden on deactivate, shown on activate).

        Returns:
            True when anything changed
        """
        channel = self._require(channel_id)
        active = bool(active)
        if channel.active == active:
            return False
        channel.active = active
        visibility_changed = channel.visible != active
        channel.visible = active
        self._bus.emit(ChangeKind.CHANNEL_ACTIVE, active, channel_id=channel_id)
        if visibility_changed:
            self._bus.emit(ChangeKind.CHANNEL_VISIBILITY, active, channel_id=channel_id)
        return True

    def set_visible(self, channel_id: int, visible: bool) -> bool:
        """Show or hide an active channel. Ignored for inactive channels."""
        channel = self._require(channel_id)
        visible = bool(visible)
        if not channel.active or channel.visible == visible:
            return False
        channel.visible = visible
        self._bus.emit(ChangeKind.CHANNEL_VISIBILITY, visible, channel_id=channel_id)
        return True

    def set_label(self, channel_id: int, label: str) -> bool:
        channel = self._require(channel_id)
        label = str(label)
        if channel.label == label:
            return False
        channel.label = label
        if not channel.active:
            return True
        self._bus.emit(ChangeKind.CHANNEL_LABEL, label, channel_id=channel_id)
        return True

    def set_color(self, channel_id: int, color: Sequence[int]) -> bool:
        channel = self._require(channel_id)
        rgb = normalize_color(color)
        if channel.color == rgb:
            return False
        channel.color = rgb
        if not channel.active:
            return True
        self._bus.emit(ChangeKind.CHANNEL_COLOR, rgb, channel_id=channel_id)
        return True

    def set_transform(self, channel_id: int, transform: ChannelTransform) -> bool:
        """Replace the conversion parameters; plotted history of the channel becomes stale."""
        channel = self._require(channel_id)
        if channel.transform == transform:
            return False
        channel.transform = transform
        self._bus.emit(ChangeKind.CHANNEL_TRANSFORM, transform, channel_id=channel_id)
        return True

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._by_id

    def get(self, channel_id: int) -> Channel:
        """Return a copy of the channel."""
        return replace(self._require(channel_id))

    def ids(self) -> List[int]:
        return [channel.id for channel in self._channels]

    def channels(self) -> List[Channel]:
        return [replace(channel) for channel in self._channels]

    def active_ids(self) -> List[int]:
        return [channel.id for channel in self._channels if channel.active]

    def visible_ids(self) -> List[int]:
        return [channel.id for channel in self._channels if channel.active and channel.visible]

    def active_count(self) -> int:
        return sum(1 for channel in self._channels if channel.active)

    def is_active(self, channel_id: int) -> bool:
        return self._require(channel_id).active

    def is_visible(self, channel_id: int) -> bool:
        return self._require(channel_id).visible

    def label(self, channel_id: int) -> str:
        return self._require(channel_id).label

    def color(self, channel_id: int) -> RGB:
        return self._require(channel_id).color

    def transform(self, channel_id: int) -> ChannelTransform:
        return self._require(channel_id).transform

    # -------------------------------------------------------------------------
    # Index remapping
    # -------------------------------------------------------------------------

    def full_index(self, channel_id: int) -> int:
        """Position of the channel in the full sequence."""
        return self._channels.index(self._require(channel_id))

    def full_to_active_index(self, channel_id: int) -> int:
        """Position of the channel among active channels.

        Raises:
            ChannelNotFoundError: Unknown id
            ChannelNotActiveError: Channel is inactive
        """
        channel = self._require(channel_id)
        if not channel.active:
            raise ChannelNotActiveError(channel_id)
        return self.active_ids().index(channel_id)

    def active_to_id(self, active_index: int) -> int:
        """Inverse of ``full_to_active_index``."""
        active = self.active_ids()
        if not 0 <= active_index < len(active):
            raise IndexError(f"active index out of range: {active_index}")
        return active[active_index]

    def _require(self, channel_id: int) -> Channel:
        channel = self._by_id.get(channel_id)
        if channel is None:
            raise ChannelNotFoundError(channel_id)
        return channel


__all__ = [
    "Channel",
    "ChannelRegistry",
    "ChannelTransform",
    "DEFAULT_COLOR_CYCLE",
    "RGB",
    "normalize_color",
]
