"""Core application state: stores, change bus and presentation coordinator."""

from .annotations import AnnotationStore, Note
from .change_bus import ChangeBus, ChangeEvent, ChangeKind, ChangeTopic
from .channel_registry import Channel, ChannelRegistry, ChannelTransform
from .errors import (
    ChannelNotActiveError,
    ChannelNotFoundError,
    IllegalTransitionError,
    NoActiveChannelsError,
)
from .lifecycle import AxisScale, LifecycleState, Phase
from .presentation import (
    Action,
    CloseChoice,
    Collaborators,
    FileKind,
    PresentationCoordinator,
    classify_file,
    format_elapsed,
)
from .sample_sink import SampleSink
from .session import AcquisitionSession

__all__ = [
    "AcquisitionSession",
    "Action",
    "AnnotationStore",
    "AxisScale",
    "ChangeBus",
    "ChangeEvent",
    "ChangeKind",
    "ChangeTopic",
    "Channel",
    "ChannelNotActiveError",
    "ChannelNotFoundError",
    "ChannelRegistry",
    "ChannelTransform",
    "CloseChoice",
    "Collaborators",
    "FileKind",
    "IllegalTransitionError",
    "LifecycleState",
    "NoActiveChannelsError",
    "Note",
    "Phase",
    "PresentationCoordinator",
    "SampleSink",
    "classify_file",
    "format_elapsed",
]
