"""PresentationCoordinator - Keeps the view projection consistent with the stores.

The coordinator never touches widgets. It listens to the ChangeBus,
recomputes a plain-data projection (channel menus, enabled actions, status
texts, window title) and announces each recomputed part on the bus. Views
render that projection and send user intent back through the coordinator's
command methods, which in turn call the store mutators.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from functools import partial
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from shared.app_settings import AppSettingsStore

from .annotations import Note
from .change_bus import ChangeEvent, ChangeKind
from .channel_registry import RGB
from .errors import ChannelNotActiveError
from .lifecycle import Phase
from .session import AcquisitionSession

logger = logging.getLogger(__name__)

APP_NAME = "RegScope"

STATE_RUNNING = "Running"
STATE_STOPPED = "Stopped"
STATE_DATA_LOADED = "Data File loaded"
STATS_TEMPLATE = "Success: {}\tErrors: {}"
RUNTIME_TEMPLATE = "Runtime: {}"

RUNTIME_TICK_MS = 250

# (delay_ms, callback); fires the callback once
Scheduler = Callable[[int, Callable[[], None]], object]


class Action(Enum):
    START = auto()
    STOP = auto()
    CONNECTION_SETTINGS = auto()
    LOG_SETTINGS = auto()
    REGISTER_SETTINGS = auto()
    IMPORT_DATA = auto()
    LOAD_PROJECT = auto()
    RELOAD_PROJECT = auto()
    EXPORT_DATA = auto()
    EXPORT_IMAGE = auto()
    EXPORT_SETTINGS = auto()


@dataclass(frozen=True)
class PhaseProfile:
    """Fixed presentation of one phase."""
    status_label: str
    enabled: FrozenSet[Action]
    runtime_visible: bool
    stats_visible: bool
    reload_allowed: bool = False


_CONFIGURE_ACTIONS = frozenset({
    Action.START,
    Action.CONNECTION_SETTINGS,
    Action.LOG_SETTINGS,
    Action.REGISTER_SETTINGS,
    Action.IMPORT_DATA,
    Action.LOAD_PROJECT,
})

PHASE_PROFILES: Dict[Phase, PhaseProfile] = {
    Phase.IDLE: PhaseProfile(
        STATE_STOPPED,
        _CONFIGURE_ACTIONS | {Action.EXPORT_SETTINGS},
        runtime_visible=True,
        stats_visible=True,
        reload_allowed=True,
    ),
    Phase.RUNNING: PhaseProfile(
        STATE_RUNNING,
        frozenset({Action.STOP}),
        runtime_visible=True,
        stats_visible=True,
    ),
    Phase.STOPPED: PhaseProfile(
        STATE_STOPPED,
        _CONFIGURE_ACTIONS | {Action.EXPORT_DATA, Action.EXPORT_IMAGE, Action.EXPORT_SETTINGS},
        runtime_visible=True,
        stats_visible=True,
        reload_allowed=True,
    ),
    # Exporting data or settings makes no sense while viewing a data file
    Phase.DATA_LOADED: PhaseProfile(
        STATE_DATA_LOADED,
        _CONFIGURE_ACTIONS | {Action.EXPORT_IMAGE},
        runtime_visible=False,
        stats_visible=False,
    ),
}


class FileKind(Enum):
    PROJECT_SETTINGS = "mbs"
    DATA = "csv"
    REGISTER_DEFINITIONS = "mbc"


def classify_file(path: str) -> Optional[FileKind]:
    """Map a path to a FileKind by its last suffix, case-insensitively."""
    suffix = os.path.splitext(str(path))[1].lstrip(".").lower()
    for kind in FileKind:
        if kind.value == suffix:
            return kind
    return None


class CloseChoice(Enum):
    CANCEL = auto()
    DISCARD = auto()
    SAVE = auto()


def format_elapsed(elapsed_ms: int) -> str:
    """Whole hours/minutes/seconds, e.g. ``1 hours, 2 minutes 5 seconds``."""
    seconds = max(0, int(elapsed_ms)) // 1000
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    return f"{hours} hours, {minutes} minutes {seconds} seconds"


@dataclass(frozen=True)
class MenuEntry:
    """One per-channel menu item, positioned by active index."""
    position: int
    channel_id: int
    label: str
    color: RGB
    checked: bool
    visible: bool = True
    enabled: bool = True
    on_toggle: Optional[Callable[[bool], None]] = field(default=None, compare=False, repr=False)

    def toggle(self, checked: bool) -> None:
        if self.on_toggle is not None:
            self.on_toggle(checked)


@dataclass(frozen=True)
class ChannelMenu:
    entries: Tuple[MenuEntry, ...] = ()
    enabled: bool = False


@dataclass(frozen=True)
class StatusView:
    state_text: str = STATE_STOPPED
    runtime_text: str = ""
    runtime_visible: bool = True
    stats_text: str = ""
    stats_visible: bool = True


@dataclass
class Collaborators:
    """Outer-surface callbacks; any of them may be left unset."""
    load_project_file: Optional[Callable[[str], object]] = None
    reload_project_file: Optional[Callable[[], object]] = None
    load_data_file: Optional[Callable[[str], object]] = None
    open_register_dialog: Optional[Callable[[Optional[str]], object]] = None
    update_note_lines: Optional[Callable[[str], bool]] = None
    start_communication: Optional[Callable[[], object]] = None
    stop_communication: Optional[Callable[[], object]] = None
    set_log_export: Optional[Callable[[bool], object]] = None
    export_data_file: Optional[Callable[[str], object]] = None
    export_project_file: Optional[Callable[[str], object]] = None
    open_settings_dialog: Optional[Callable[[Action], object]] = None


class PresentationCoordinator:
    """
    Reactive glue between the domain stores and the view layer.

    Responsibilities:
    - Rebuild the show/hide and bring-to-front menus on channel add/remove/activity
    - Patch single menu entries in place on visibility/label/color changes
    - Apply the fixed phase profile (status texts, enabled actions)
    - Drive the runtime display with a self-rescheduling one-shot tick
    - Dispatch dropped files and arbitrate application close
    """

    def __init__(
        self,
        session: AcquisitionSession,
        *,
        scheduler: Scheduler,
        collaborators: Optional[Collaborators] = None,
        settings_store: Optional[AppSettingsStore] = None,
    ) -> None:
        self._session = session
        self._bus = session.bus
        self._registry = session.registry
        self._annotations = session.annotations
        self._lifecycle = session.lifecycle
        self._scheduler = scheduler
        self._collaborators = collaborators if collaborators is not None else Collaborators()
        self._settings_store = settings_store

        self._show_hide = ChannelMenu()
        self._bring_to_front = ChannelMenu()
        self._enabled_actions: FrozenSet[Action] = frozenset()
        self._status = StatusView()
        self._window_title = APP_NAME
        self._tick_pending = False

        self._handlers: Dict[ChangeKind, Callable[[ChangeEvent], None]] = {
            ChangeKind.CHANNEL_ADDED: self._on_channel_set_changed,
            ChangeKind.CHANNEL_REMOVED: self._on_channel_set_changed,
            ChangeKind.CHANNEL_ACTIVE: self._on_channel_set_changed,
            ChangeKind.CHANNEL_VISIBILITY: self._on_channel_entry_changed,
            ChangeKind.CHANNEL_LABEL: self._on_channel_entry_changed,
            ChangeKind.CHANNEL_COLOR: self._on_channel_entry_changed,
            ChangeKind.FRONT_CHANNEL: self._on_front_channel_changed,
            ChangeKind.PHASE: self._on_phase_changed,
            ChangeKind.COMMUNICATION_STATS: self._on_stats_changed,
            ChangeKind.PROJECT_FILE: self._on_file_path_changed,
            ChangeKind.DATA_FILE: self._on_file_path_changed,
            ChangeKind.WINDOW_TITLE_DETAIL: self._on_window_title_detail_changed,
            ChangeKind.NOTES_SAVE_REQUESTED: self._on_notes_save_requested,
        }
        self._token = self._bus.subscribe(self._on_change, self._handlers.keys())
        self.refresh()

    def close(self) -> None:
        """Stop listening to the bus."""
        if self._token is not None:
            self._bus.unsubscribe(self._token)
            self._token = None

    def refresh(self) -> None:
        """Recompute the whole projection from the current store state."""
        self._rebuild_channel_menus()
        self._apply_phase(self._lifecycle.phase)
        self._update_window_title()

    # -------------------------------------------------------------------------
    # Projection accessors
    # -------------------------------------------------------------------------

    @property
    def show_hide_menu(self) -> ChannelMenu:
        return self._show_hide

    @property
    def bring_to_front_menu(self) -> ChannelMenu:
        return self._bring_to_front

    @property
    def enabled_actions(self) -> FrozenSet[Action]:
        return self._enabled_actions

    def is_action_enabled(self, action: Action) -> bool:
        return action in self._enabled_actions

    @property
    def status(self) -> StatusView:
        return self._status

    @property
    def window_title(self) -> str:
        return self._window_title

    @property
    def highlight_samples_checked(self) -> bool:
        return self._lifecycle.highlight_samples

    @property
    def marker_panel_visible(self) -> bool:
        return self._lifecycle.marker_state

    @property
    def context_menu_allowed(self) -> bool:
        """The plot context menu is suppressed while the cursor modifier is held."""
        return not self._lifecycle.cursor_active

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    def _on_change(self, event: ChangeEvent) -> None:
        handler = self._handlers.get(event.kind)
        if handler is not None:
            handler(event)

    def _on_channel_set_changed(self, event: ChangeEvent) -> None:
        # front_channel is an active index; keep it inside the shrunk active set
        front = self._lifecycle.front_channel
        last = max(self._registry.active_count() - 1, 0)
        if front > last:
            self._lifecycle.set_front_channel(last)
        self._rebuild_channel_menus()

    def _on_channel_entry_changed(self, event: ChangeEvent) -> None:
        if event.channel_id is not None:
            self._update_channel_entry(event.channel_id)

    def _on_front_channel_changed(self, event: ChangeEvent) -> None:
        front = self._lifecycle.front_channel
        entries = tuple(replace(entry, checked=entry.position == front) for entry in self._bring_to_front.entries)
        self._bring_to_front = replace(self._bring_to_front, entries=entries)
        self._bus.emit(ChangeKind.MENUS)

    def _on_phase_changed(self, event: ChangeEvent) -> None:
        _, phase = event.data
        self._apply_phase(phase)

    def _on_stats_changed(self, event: ChangeEvent) -> None:
        profile = PHASE_PROFILES[self._lifecycle.phase]
        self._set_status(stats_text=self._stats_text() if profile.stats_visible else "")

    def _on_file_path_changed(self, event: ChangeEvent) -> None:
        path = event.data or self._lifecycle.data_file_path or self._lifecycle.project_file_path
        self._lifecycle.set_window_title_detail(os.path.basename(path) if path else "")
        if event.kind is ChangeKind.PROJECT_FILE:
            self._update_actions()

    def _on_window_title_detail_changed(self, event: ChangeEvent) -> None:
        self._update_window_title()

    def _on_notes_save_requested(self, event: ChangeEvent) -> None:
        if self._lifecycle.phase is not Phase.DATA_LOADED or not self._annotations.is_dirty():
            return
        update = self._collaborators.update_note_lines
        if update is None:
            logger.warning("No data-file collaborator to write notes to")
            return
        if not update(self._lifecycle.data_file_path):
            logger.warning("Updating notes in %s failed", self._lifecycle.data_file_path)

    # -------------------------------------------------------------------------
    # Channel menus
    # -------------------------------------------------------------------------

    def _rebuild_channel_menus(self) -> None:
        front = self._lifecycle.front_channel
        show_hide: List[MenuEntry] = []
        bring_to_front: List[MenuEntry] = []
        for position, channel_id in enumerate(self._registry.active_ids()):
            channel = self._registry.get(channel_id)
            show_hide.append(MenuEntry(
                position=position,
                channel_id=channel_id,
                label=channel.label,
                color=channel.color,
                checked=channel.visible,
                on_toggle=partial(self.toggle_channel_visibility, position),
            ))
            bring_to_front.append(MenuEntry(
                position=position,
                channel_id=channel_id,
                label=channel.label,
                color=channel.color,
                checked=position == front,
                visible=channel.visible,
                on_toggle=partial(self._on_front_entry_toggled, position),
            ))
        self._show_hide = ChannelMenu(tuple(show_hide), enabled=bool(show_hide))
        self._bring_to_front = ChannelMenu(
            tuple(bring_to_front),
            enabled=any(entry.visible for entry in bring_to_front),
        )
        self._bus.emit(ChangeKind.MENUS)

    def _update_channel_entry(self, channel_id: int) -> None:
        if channel_id not in self._registry:
            return
        try:
            position = self._registry.full_to_active_index(channel_id)
        except ChannelNotActiveError:
            return
        entries = self._show_hide.entries
        # Entries are created by the rebuild on add/remove/activity
        if position >= len(entries) or entries[position].channel_id != channel_id:
            return

        channel = self._registry.get(channel_id)
        show_hide = list(entries)
        show_hide[position] = replace(
            show_hide[position], label=channel.label, color=channel.color, checked=channel.visible
        )
        bring_to_front = list(self._bring_to_front.entries)
        bring_to_front[position] = replace(
            bring_to_front[position], label=channel.label, color=channel.color, visible=channel.visible
        )
        self._show_hide = replace(self._show_hide, entries=tuple(show_hide))
        self._bring_to_front = ChannelMenu(
            tuple(bring_to_front),
            enabled=any(entry.visible for entry in bring_to_front),
        )
        self._bus.emit(ChangeKind.MENUS)

    def toggle_channel_visibility(self, position: int, checked: bool) -> None:
        """Show/hide menu callback: ``position`` is the active index."""
        self._registry.set_visible(self._registry.active_to_id(position), checked)

    def _on_front_entry_toggled(self, position: int, checked: bool) -> None:
        if checked:
            self._lifecycle.set_front_channel(position)

    # -------------------------------------------------------------------------
    # Phase presentation
    # -------------------------------------------------------------------------

    def _apply_phase(self, phase: Phase) -> None:
        profile = PHASE_PROFILES[phase]
        if phase is Phase.IDLE:
            # No file is associated with a fresh session
            self._lifecycle.set_data_file_path("")
            self._lifecycle.set_project_file_path("")
        if phase in (Phase.IDLE, Phase.STOPPED) and not (
            self._lifecycle.data_file_path or self._lifecycle.project_file_path
        ):
            self._lifecycle.set_window_title_detail("")

        if phase in (Phase.IDLE, Phase.RUNNING):
            runtime_text = RUNTIME_TEMPLATE.format(format_elapsed(0))
        elif profile.runtime_visible:
            runtime_text = self._status.runtime_text
        else:
            runtime_text = ""

        self._status = StatusView(
            state_text=profile.status_label,
            runtime_text=runtime_text,
            runtime_visible=profile.runtime_visible,
            stats_text=self._stats_text() if profile.stats_visible else "",
            stats_visible=profile.stats_visible,
        )
        self._bus.emit(ChangeKind.STATUS, self._status)
        self._update_actions()

        if phase is Phase.RUNNING:
            self._schedule_runtime_tick()

    def _update_actions(self) -> None:
        profile = PHASE_PROFILES[self._lifecycle.phase]
        enabled = profile.enabled
        if profile.reload_allowed and self._lifecycle.project_file_path:
            enabled = enabled | {Action.RELOAD_PROJECT}
        if enabled == self._enabled_actions:
            return
        self._enabled_actions = enabled
        self._bus.emit(ChangeKind.ACTIONS, enabled)

    def _stats_text(self) -> str:
        return STATS_TEMPLATE.format(self._lifecycle.success_count, self._lifecycle.error_count)

    def _set_status(self, **changes) -> None:
        status = replace(self._status, **changes)
        if status == self._status:
            return
        self._status = status
        self._bus.emit(ChangeKind.STATUS, status)

    def _update_window_title(self) -> None:
        detail = self._lifecycle.window_title_detail
        title = f"{APP_NAME} - {detail}" if detail else APP_NAME
        if title == self._window_title:
            return
        self._window_title = title
        self._bus.emit(ChangeKind.WINDOW_TITLE, title)

    # -------------------------------------------------------------------------
    # Runtime display
    # -------------------------------------------------------------------------

    def _schedule_runtime_tick(self) -> None:
        if self._tick_pending:
            return
        self._tick_pending = True
        self._scheduler(RUNTIME_TICK_MS, self._on_runtime_tick)

    def _on_runtime_tick(self) -> None:
        self._tick_pending = False
        running = self._lifecycle.phase is Phase.RUNNING

        elapsed = self._lifecycle.elapsed_ms()
        if elapsed is not None:
            text = RUNTIME_TEMPLATE.format(format_elapsed(elapsed))
            self._set_status(runtime_text=text)
            self._bus.emit(ChangeKind.RUNTIME_TICK, text)

        if running:
            self._schedule_runtime_tick()

    # -------------------------------------------------------------------------
    # Commands from the view layer
    # -------------------------------------------------------------------------

    def start_acquisition(self) -> None:
        """Raises NoActiveChannelsError when nothing is selected for acquisition."""
        self._session.start()
        if self._collaborators.start_communication is not None:
            self._collaborators.start_communication()
        self._set_log_export(True)

    def stop_acquisition(self) -> None:
        if self._collaborators.stop_communication is not None:
            self._collaborators.stop_communication()
        self._set_log_export(False)
        self._session.stop()

    def _set_log_export(self, enabled: bool) -> None:
        if self._settings_store is None or not self._settings_store.get().write_during_log:
            return
        if self._collaborators.set_log_export is not None:
            self._collaborators.set_log_export(enabled)

    def clear_data(self) -> None:
        self._session.clear_data()

    def add_note(self, key: float, value: float, text: str) -> int:
        return self._annotations.add(Note(key=key, value=value, text=text))

    def set_modifier_held(self, held: bool) -> None:
        self._lifecycle.set_cursor_active(held)

    def focus_lost(self) -> None:
        self._lifecycle.set_cursor_active(False)

    def export_data(self, path: str) -> bool:
        return self._forward(Action.EXPORT_DATA, self._collaborators.export_data_file, path)

    def export_settings(self, path: str) -> bool:
        return self._forward(Action.EXPORT_SETTINGS, self._collaborators.export_project_file, path)

    def open_settings_dialog(self, action: Action) -> bool:
        if action not in (Action.CONNECTION_SETTINGS, Action.LOG_SETTINGS):
            raise ValueError(f"{action.name} is not a settings dialog")
        return self._forward(action, self._collaborators.open_settings_dialog, action)

    def _forward(self, action: Action, callback: Optional[Callable[..., object]], *args) -> bool:
        if action not in self._enabled_actions:
            logger.debug("%s requested while disabled", action.name)
            return False
        if callback is None:
            logger.warning("No collaborator handles %s", action.name)
            return False
        callback(*args)
        return True

    def reload_project(self) -> None:
        if Action.RELOAD_PROJECT not in self._enabled_actions:
            return
        if self._collaborators.reload_project_file is not None:
            self._collaborators.reload_project_file()

    def open_register_dialog(
        self,
        path: Optional[str] = None,
        *,
        confirm_discard: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Open the register dialog, discarding loaded data first if the user agrees.

        Returns:
            False when the user declined to discard loaded data
        """
        if self._lifecycle.phase is Phase.DATA_LOADED:
            if confirm_discard is None or not confirm_discard():
                return False
            self._session.discard_loaded_data()
        if self._collaborators.open_register_dialog is not None:
            self._collaborators.open_register_dialog(path)
        return True

    def dispatch_files(
        self,
        paths: Sequence[str],
        *,
        confirm_discard: Optional[Callable[[], bool]] = None,
    ) -> Optional[FileKind]:
        """Route a dropped file by suffix; the last path wins.

        Returns:
            The FileKind dispatched, or None when refused or unrecognized
        """
        if self._lifecycle.phase is Phase.RUNNING:
            logger.debug("Ignoring file drop while acquisition is running")
            return None
        if not paths:
            return None
        path = str(paths[-1])
        kind = classify_file(path)
        if kind is None:
            logger.debug("Ignoring dropped file with unknown type: %s", path)
            return None

        self._lifecycle.set_last_dir(os.path.dirname(os.path.abspath(path)))
        if kind is FileKind.PROJECT_SETTINGS:
            if self._collaborators.load_project_file is not None:
                self._collaborators.load_project_file(path)
        elif kind is FileKind.DATA:
            if self._collaborators.load_data_file is not None:
                self._collaborators.load_data_file(path)
        else:
            self.open_register_dialog(path, confirm_discard=confirm_discard)
        return kind

    def request_close(self, prompt: Callable[[], CloseChoice]) -> bool:
        """Decide whether the application may close.

        ``prompt`` is only consulted when loaded data has unsaved notes.

        Returns:
            True to close, False to abort
        """
        if self._lifecycle.phase is not Phase.DATA_LOADED or not self._annotations.is_dirty():
            return True

        choice = prompt()
        if choice is CloseChoice.CANCEL:
            return False
        if choice is CloseChoice.DISCARD:
            return True

        update = self._collaborators.update_note_lines
        if update is None:
            logger.warning("Cannot save notes: no data-file collaborator")
            return False
        saved = bool(update(self._lifecycle.data_file_path))
        if not saved:
            logger.warning("Saving notes to %s failed; close aborted", self._lifecycle.data_file_path)
        return saved


__all__ = [
    "APP_NAME",
    "Action",
    "ChannelMenu",
    "CloseChoice",
    "Collaborators",
    "FileKind",
    "MenuEntry",
    "PHASE_PROFILES",
    "PhaseProfile",
    "PresentationCoordinator",
    "RUNTIME_TICK_MS",
    "Scheduler",
    "StatusView",
    "classify_file",
    "format_elapsed",
]
