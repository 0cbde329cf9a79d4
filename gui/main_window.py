from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from PySide6 import QtCore, QtGui, QtWidgets

from core.change_bus import ChangeEvent, ChangeKind
from core.errors import NoActiveChannelsError
from core.lifecycle import Phase
from core.presentation import (
    Action,
    ChannelMenu,
    CloseChoice,
    Collaborators,
    PresentationCoordinator,
    StatusView,
)
from core.session import AcquisitionSession
from shared.app_settings import AppSettings, AppSettingsStore

from .axis_scale_widget import AxisScaleWidget
from .bus_adapter import connect_change_bus
from .graph_view import GraphView
from .qsettings_adapter import create_gui_settings_store

_ACTION_TEXT = {
    Action.START: "&Start",
    Action.STOP: "S&top",
    Action.CONNECTION_SETTINGS: "&Connection...",
    Action.LOG_SETTINGS: "&Log...",
    Action.REGISTER_SETTINGS: "&Registers...",
    Action.IMPORT_DATA: "&Import data file...",
    Action.LOAD_PROJECT: "&Open project...",
    Action.RELOAD_PROJECT: "&Reload project",
    Action.EXPORT_DATA: "Export &data...",
    Action.EXPORT_IMAGE: "Export &image...",
    Action.EXPORT_SETTINGS: "&Save project as...",
}

_PROJECT_FILTER = "Project settings (*.mbs)"
_DATA_FILTER = "Data files (*.csv)"
_IMAGE_FILTER = "PNG images (*.png)"


def _color_icon(color) -> QtGui.QIcon:
    pixmap = QtGui.QPixmap(12, 12)
    pixmap.fill(QtGui.QColor(*color))
    return QtGui.QIcon(pixmap)


class MainWindow(QtWidgets.QMainWindow):
    """Main application window rendering the presentation projection of one acquisition session."""

    def __init__(
        self,
        session: Optional[AcquisitionSession] = None,
        *,
        settings_store: Optional[AppSettingsStore] = None,
        collaborators: Optional[Collaborators] = None,
    ) -> None:
        super().__init__()
        self._logger = logging.getLogger(__name__)
        if settings_store is None:
            settings_store = create_gui_settings_store()
        self._settings_store = settings_store
        settings = settings_store.get()
        if session is None:
            session = AcquisitionSession.create(x_axis_sliding_sec=settings.default_x_sliding_sec)
        self.session = session
        if settings.last_dir:
            session.lifecycle.set_last_dir(settings.last_dir)

        self._actions: Dict[Action, QtGui.QAction] = {}
        self._last_context_pos: Optional[QtCore.QPoint] = None
        self.resize(1100, 720)
        self.setAcceptDrops(True)

        self._init_ui()

        # Must be connected before the coordinator exists
        kinds = {
            ChangeKind.MENUS,
            ChangeKind.ACTIONS,
            ChangeKind.STATUS,
            ChangeKind.WINDOW_TITLE,
            ChangeKind.HIGHLIGHT_SAMPLES,
            ChangeKind.MARKERS,
            ChangeKind.LAST_DIR,
        }
        self._signals, self._bus_unsub = connect_change_bus(session.bus, kinds, self)
        # Queued: menu actions may trigger a rebuild of the menu that owns them
        self._signals.changed.connect(self._on_change, QtCore.Qt.QueuedConnection)

        self.coordinator = PresentationCoordinator(
            session,
            scheduler=lambda ms, callback: QtCore.QTimer.singleShot(ms, callback),
            collaborators=collaborators,
            settings_store=settings_store,
        )
        self._app_settings_unsub: Optional[Callable[[], None]] = settings_store.subscribe(
            self._on_app_settings_changed, replay=False
        )
        self._render_all()
        self._setup_quit_shortcut()

    # ---- UI construction ----

    def _init_ui(self) -> None:
        self.graph = GraphView(self.session, self)
        self.graph.customContextMenuRequested.connect(self._on_graph_context_menu)
        self.graph.scene().sigMouseClicked.connect(self._on_graph_clicked)
        self.setCentralWidget(self.graph)

        for action in Action:
            qaction = QtGui.QAction(_ACTION_TEXT[action], self)
            qaction.triggered.connect(lambda _checked=False, a=action: self._on_action_triggered(a))
            self._actions[action] = qaction
        self._actions[Action.START].setShortcut(QtGui.QKeySequence("F5"))
        self._actions[Action.STOP].setShortcut(QtGui.QKeySequence("F6"))

        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu("&File")
        for action in (Action.LOAD_PROJECT, Action.RELOAD_PROJECT, Action.EXPORT_SETTINGS):
            file_menu.addAction(self._actions[action])
        file_menu.addSeparator()
        for action in (Action.IMPORT_DATA, Action.EXPORT_DATA, Action.EXPORT_IMAGE):
            file_menu.addAction(self._actions[action])
        file_menu.addSeparator()
        file_menu.addAction("E&xit", self.close)

        acquisition_menu = menu_bar.addMenu("&Acquisition")
        acquisition_menu.addAction(self._actions[Action.START])
        acquisition_menu.addAction(self._actions[Action.STOP])
        acquisition_menu.addSeparator()
        self._clear_data_action = acquisition_menu.addAction("&Clear data", self._clear_data)

        settings_menu = menu_bar.addMenu("&Settings")
        for action in (Action.CONNECTION_SETTINGS, Action.LOG_SETTINGS, Action.REGISTER_SETTINGS):
            settings_menu.addAction(self._actions[action])

        view_menu = menu_bar.addMenu("&View")
        self.show_hide_menu = view_menu.addMenu("&Show/Hide")
        self.bring_to_front_menu = view_menu.addMenu("&Bring to front")
        self._front_group = QtGui.QActionGroup(self)
        self._front_group.setExclusive(True)
        view_menu.addSeparator()
        self.highlight_action = view_menu.addAction("&Highlight samples")
        self.highlight_action.setCheckable(True)
        self.highlight_action.toggled.connect(self.session.lifecycle.set_highlight_samples)
        self.clear_markers_action = view_menu.addAction("Clear &markers", self.session.lifecycle.clear_markers)

        toolbar = self.addToolBar("Acquisition")
        toolbar.setObjectName("acquisitionToolbar")
        toolbar.addAction(self._actions[Action.START])
        toolbar.addAction(self._actions[Action.STOP])

        self.axis_scale = AxisScaleWidget(self.session.lifecycle, self.session.bus, self)
        scale_dock = QtWidgets.QDockWidget("Scaling", self)
        scale_dock.setObjectName("scalingDock")
        scale_dock.setWidget(self.axis_scale)
        self.addDockWidget(QtCore.Qt.BottomDockWidgetArea, scale_dock)

        self.state_label = QtWidgets.QLabel()
        self.runtime_label = QtWidgets.QLabel()
        self.stats_label = QtWidgets.QLabel()
        self.marker_label = QtWidgets.QLabel()
        status_bar = self.statusBar()
        status_bar.addWidget(self.state_label)
        status_bar.addWidget(self.runtime_label)
        status_bar.addWidget(self.stats_label)
        status_bar.addPermanentWidget(self.marker_label)

    def _setup_quit_shortcut(self) -> None:
        quit_shortcut = QtGui.QShortcut(QtGui.QKeySequence(QtGui.QKeySequence.StandardKey.Quit), self)
        quit_shortcut.activated.connect(self.close)

    # ---- Projection rendering ----

    def _on_change(self, event: ChangeEvent) -> None:
        kind = event.kind
        if kind is ChangeKind.MENUS:
            self._render_menus()
        elif kind is ChangeKind.ACTIONS:
            self._render_actions()
        elif kind is ChangeKind.STATUS:
            self._render_status(event.data)
        elif kind is ChangeKind.WINDOW_TITLE:
            self.setWindowTitle(str(event.data))
        elif kind is ChangeKind.HIGHLIGHT_SAMPLES:
            self._render_highlight()
        elif kind is ChangeKind.MARKERS:
            self._render_markers()
        elif kind is ChangeKind.LAST_DIR:
            self._settings_store.update(last_dir=str(event.data or ""))

    def _render_all(self) -> None:
        self._render_menus()
        self._render_actions()
        self._render_status(self.coordinator.status)
        self.setWindowTitle(self.coordinator.window_title)
        self._render_highlight()
        self._render_markers()

    def _render_menus(self) -> None:
        self._fill_channel_menu(self.show_hide_menu, self.coordinator.show_hide_menu, group=None)
        self._fill_channel_menu(self.bring_to_front_menu, self.coordinator.bring_to_front_menu, group=self._front_group)

    def _fill_channel_menu(
        self,
        menu: QtWidgets.QMenu,
        projection: ChannelMenu,
        group: Optional[QtGui.QActionGroup],
    ) -> None:
        if group is not None:
            for qaction in group.actions():
                group.removeAction(qaction)
        menu.clear()
        for entry in projection.entries:
            qaction = menu.addAction(_color_icon(entry.color), entry.label)
            qaction.setCheckable(True)
            qaction.setChecked(entry.checked)
            qaction.setVisible(entry.visible)
            qaction.setEnabled(entry.enabled)
            if group is not None:
                group.addAction(qaction)
            qaction.toggled.connect(entry.toggle)
        menu.setEnabled(projection.enabled)

    def _render_actions(self) -> None:
        enabled = self.coordinator.enabled_actions
        for action, qaction in self._actions.items():
            qaction.setEnabled(action in enabled)

    def _render_status(self, status: Optional[StatusView]) -> None:
        if status is None:
            status = self.coordinator.status
        self.state_label.setText(status.state_text)
        self.runtime_label.setText(status.runtime_text)
        self.runtime_label.setVisible(status.runtime_visible)
        self.stats_label.setText(status.stats_text)
        self.stats_label.setVisible(status.stats_visible)

    def _render_highlight(self) -> None:
        checked = self.coordinator.highlight_samples_checked
        if self.highlight_action.isChecked() != checked:
            self.highlight_action.blockSignals(True)
            self.highlight_action.setChecked(checked)
            self.highlight_action.blockSignals(False)

    def _render_markers(self) -> None:
        start, end = self.session.lifecycle.markers()
        visible = self.coordinator.marker_panel_visible
        self.marker_label.setVisible(visible)
        if visible:
            self.marker_label.setText(f"Markers: {start:.3f} s .. {end:.3f} s  (span {end - start:.3f} s)")

    # ---- Actions ----

    def _on_action_triggered(self, action: Action) -> None:
        handlers = {
            Action.START: self._start_acquisition,
            Action.STOP: self.coordinator.stop_acquisition,
            Action.CONNECTION_SETTINGS: lambda: self.coordinator.open_settings_dialog(Action.CONNECTION_SETTINGS),
            Action.LOG_SETTINGS: lambda: self.coordinator.open_settings_dialog(Action.LOG_SETTINGS),
            Action.REGISTER_SETTINGS: lambda: self.coordinator.open_register_dialog(
                confirm_discard=self._confirm_discard
            ),
            Action.IMPORT_DATA: lambda: self._open_file("Import data file", _DATA_FILTER),
            Action.LOAD_PROJECT: lambda: self._open_file("Open project", _PROJECT_FILTER),
            Action.RELOAD_PROJECT: self.coordinator.reload_project,
            Action.EXPORT_DATA: lambda: self._save_file("Export data", _DATA_FILTER, self.coordinator.export_data),
            Action.EXPORT_IMAGE: lambda: self._save_file("Export image", _IMAGE_FILTER, self._export_image),
            Action.EXPORT_SETTINGS: lambda: self._save_file(
                "Save project", _PROJECT_FILTER, self.coordinator.export_settings
            ),
        }
        handlers[action]()

    def _start_acquisition(self) -> None:
        try:
            self.coordinator.start_acquisition()
        except NoActiveChannelsError as exc:
            QtWidgets.QMessageBox.warning(self, "Start", str(exc))

    def _clear_data(self) -> None:
        self.coordinator.clear_data()

    def _open_file(self, caption: str, file_filter: str) -> None:
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self, caption, self.session.lifecycle.last_dir, file_filter
        )
        if path:
            self.coordinator.dispatch_files([path], confirm_discard=self._confirm_discard)

    def _save_file(self, caption: str, file_filter: str, handler: Callable[[str], object]) -> None:
        path, _ = QtWidgets.QFileDialog.getSaveFileName(
            self, caption, self.session.lifecycle.last_dir, file_filter
        )
        if path:
            handler(path)

    def _export_image(self, path: str) -> bool:
        saved = self.graph.grab().save(path)
        if not saved:
            QtWidgets.QMessageBox.critical(self, "Export image", f"Could not write {path}")
        return saved

    def _confirm_discard(self) -> bool:
        answer = QtWidgets.QMessageBox.question(
            self,
            "Discard data",
            "The loaded data file will be closed. Continue?",
            QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No,
            QtWidgets.QMessageBox.No,
        )
        return answer == QtWidgets.QMessageBox.Yes

    # ---- Plot interaction ----

    def _on_graph_context_menu(self, pos: QtCore.QPoint) -> None:
        if not self.coordinator.context_menu_allowed:
            return
        self._last_context_pos = pos
        menu = QtWidgets.QMenu(self)
        menu.addMenu(self.show_hide_menu)
        menu.addMenu(self.bring_to_front_menu)
        menu.addSeparator()
        menu.addAction(self.highlight_action)
        menu.addAction(self._clear_data_action)
        menu.addAction(self.clear_markers_action)
        menu.addSeparator()
        menu.addAction("Add &note...", self._add_note_at_context_pos)
        menu.exec(self.graph.mapToGlobal(pos))

    def _add_note_at_context_pos(self) -> None:
        if self._last_context_pos is None:
            return
        text, ok = QtWidgets.QInputDialog.getText(self, "Add note", "Note:")
        if not ok:
            return
        pos = self._last_context_pos
        self.coordinator.add_note(self.graph.pixel_to_key(pos), self.graph.pixel_to_value(pos), text)

    def _on_graph_clicked(self, event) -> None:
        # Marker placement only while the cursor modifier is held
        if not self.session.lifecycle.cursor_active:
            return
        key = float(self.graph.plotItem.vb.mapSceneToView(event.scenePos()).x())
        if event.button() == QtCore.Qt.LeftButton:
            self.session.lifecycle.set_start_marker_pos(key)
        elif event.button() == QtCore.Qt.RightButton:
            self.session.lifecycle.set_end_marker_pos(key)

    # ---- Qt events ----

    def keyPressEvent(self, event: QtGui.QKeyEvent) -> None:  # type: ignore[override]
        if event.key() == QtCore.Qt.Key_Control:
            self.coordinator.set_modifier_held(True)
        super().keyPressEvent(event)

    def keyReleaseEvent(self, event: QtGui.QKeyEvent) -> None:  # type: ignore[override]
        if event.key() == QtCore.Qt.Key_Control:
            self.coordinator.set_modifier_held(False)
        super().keyReleaseEvent(event)

    def changeEvent(self, event: QtCore.QEvent) -> None:  # type: ignore[override]
        if event.type() == QtCore.QEvent.ActivationChange and not self.isActiveWindow():
            self.coordinator.focus_lost()
        super().changeEvent(event)

    def dragEnterEvent(self, event: QtGui.QDragEnterEvent) -> None:  # type: ignore[override]
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            event.ignore()

    def dropEvent(self, event: QtGui.QDropEvent) -> None:  # type: ignore[override]
        paths = [url.toLocalFile() for url in event.mimeData().urls() if url.isLocalFile()]
        if self.coordinator.dispatch_files(paths, confirm_discard=self._confirm_discard) is not None:
            event.acceptProposedAction()
        else:
            event.ignore()

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # type: ignore[override]
        if not self.coordinator.request_close(self._prompt_close):
            event.ignore()
            return
        if self.session.phase is Phase.RUNNING:
            self.coordinator.stop_acquisition()
        self.coordinator.close()
        self.graph.cleanup()
        self.axis_scale.cleanup()
        if self._bus_unsub is not None:
            self._bus_unsub()
            self._bus_unsub = None
        if self._app_settings_unsub is not None:
            self._app_settings_unsub()
            self._app_settings_unsub = None
        super().closeEvent(event)

    def _prompt_close(self) -> CloseChoice:
        box = QtWidgets.QMessageBox(self)
        box.setIcon(QtWidgets.QMessageBox.Question)
        box.setWindowTitle("Unsaved notes")
        box.setText("The notes in the loaded data file have been modified.")
        box.setInformativeText("Do you want to save your changes?")
        box.setStandardButtons(
            QtWidgets.QMessageBox.Save | QtWidgets.QMessageBox.Discard | QtWidgets.QMessageBox.Cancel
        )
        box.setDefaultButton(QtWidgets.QMessageBox.Save)
        answer = box.exec()
        if answer == QtWidgets.QMessageBox.Save:
            return CloseChoice.SAVE
        if answer == QtWidgets.QMessageBox.Discard:
            return CloseChoice.DISCARD
        return CloseChoice.CANCEL

    # ---- Settings ----

    def _on_app_settings_changed(self, settings: AppSettings) -> None:
        lifecycle = self.session.lifecycle
        if settings.last_dir and settings.last_dir != lifecycle.last_dir:
            lifecycle.set_last_dir(settings.last_dir)


__all__ = ["MainWindow"]
