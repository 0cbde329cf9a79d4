from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pyqtgraph as pg
from PySide6 import QtCore, QtGui

from core.change_bus import ChangeEvent, ChangeKind, ChangeTopic, kinds_for_topic
from core.lifecycle import AxisScale
from core.session import AcquisitionSession
from shared.models import SampleBatch
from shared.sample_history import SampleHistory

from .bus_adapter import connect_change_bus

logger = logging.getLogger(__name__)

# Above this many points per curve the sample markers are not drawn
_MAX_HIGHLIGHT_POINTS = 5000


@dataclass
class Curve:
    channel_id: int
    label: str
    color: Tuple[int, int, int]
    item: pg.PlotDataItem
    history: SampleHistory = field(default_factory=SampleHistory)


class GraphView(pg.PlotWidget):
    """
    Strip chart of the active channels:
      • One curve per active channel, in active order
      • Hidden channels keep collecting data
      • Front channel drawn on top
      • Axis ranges follow the lifecycle scaling modes
    """

    def __init__(self, session: AcquisitionSession, parent=None):
        super().__init__(parent)
        self._session = session
        self._registry = session.registry
        self._lifecycle = session.lifecycle

        self.setBackground("w")
        self.showGrid(x=True, y=True, alpha=0.25)
        self.setLabel("bottom", "Time", units="s")
        self.setLabel("left", "Value")
        self.plotItem.vb.setMouseEnabled(x=True, y=True)
        # The window supplies its own context menu
        self.plotItem.setMenuEnabled(False)
        self.setContextMenuPolicy(QtCore.Qt.CustomContextMenu)

        self._curves: Dict[int, Curve] = {}

        self._notes: List[pg.TextItem] = []
        self._marker_lines: List[pg.InfiniteLine] = []

        kinds = kinds_for_topic(ChangeTopic.CHANNEL, ChangeTopic.SAMPLES) | {
            ChangeKind.NOTE_ADDED,
            ChangeKind.NOTE_REMOVED,
            ChangeKind.NOTE_CHANGED,
            ChangeKind.NOTES_CLEARED,
            ChangeKind.MARKERS,
            ChangeKind.FRONT_CHANNEL,
            ChangeKind.HIGHLIGHT_SAMPLES,
            ChangeKind.X_AXIS_SCALING,
            ChangeKind.X_AXIS_SLIDING_INTERVAL,
            ChangeKind.Y_AXIS_SCALING,
            ChangeKind.Y_AXIS_MIN_MAX,
        }
        self._signals, self._unsubscribe = connect_change_bus(session.bus, kinds, self)
        self._signals.changed.connect(self._on_change)

        self._sync_curves()
        self._sync_notes()
        self._sync_markers()

    def cleanup(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # --- coordinate mapping ---
    def pixel_to_key(self, pos: QtCore.QPoint) -> float:
        return float(self.plotItem.vb.mapSceneToView(self.mapToScene(pos)).x())

    def pixel_to_value(self, pos: QtCore.QPoint) -> float:
        return float(self.plotItem.vb.mapSceneToView(self.mapToScene(pos)).y())

    # --- bus handling ---
    def _on_change(self, event: ChangeEvent) -> None:
        kind = event.kind
        if kind in (ChangeKind.CHANNEL_ADDED, ChangeKind.CHANNEL_REMOVED, ChangeKind.CHANNEL_ACTIVE):
            self._sync_curves()
        elif kind is ChangeKind.CHANNEL_VISIBILITY:
            curve = self._curves.get(event.channel_id)
            if curve is not None:
                curve.item.setVisible(bool(event.data))
                self.rescale()
        elif kind is ChangeKind.CHANNEL_COLOR:
            curve = self._curves.get(event.channel_id)
            if curve is not None:
                curve.color = event.data
                self._apply_style(curve)
        elif kind is ChangeKind.CHANNEL_LABEL:
            curve = self._curves.get(event.channel_id)
            if curve is not None:
                curve.label = event.data
                curve.item.setData(curve.history.x, curve.history.y, name=event.data)
        elif kind is ChangeKind.CHANNEL_TRANSFORM:
            self.clear_curve(event.channel_id)
        elif kind is ChangeKind.SAMPLES_RECEIVED:
            self.add_batch(event.data)
        elif kind is ChangeKind.DATA_CLEARED:
            self.clear_results()
        elif kind is ChangeKind.FRONT_CHANNEL:
            self.bring_to_front()
        elif kind in (
            ChangeKind.NOTE_ADDED,
            ChangeKind.NOTE_REMOVED,
            ChangeKind.NOTE_CHANGED,
            ChangeKind.NOTES_CLEARED,
        ):
            self._sync_notes()
        elif kind is ChangeKind.MARKERS:
            self._sync_markers()
        elif kind is ChangeKind.HIGHLIGHT_SAMPLES:
            for curve in self._curves.values():
                self._apply_style(curve)
        else:
            self.rescale()

    # --- curves ---
    def _sync_curves(self) -> None:
        active = self._registry.active_ids()
        for channel_id in list(self._curves):
            if channel_id not in active:
                self.removeItem(self._curves.pop(channel_id).item)

        for channel_id in active:
            channel = self._registry.get(channel_id)
            curve = self._curves.get(channel_id)
            if curve is None:
                item = self.plot(name=channel.label)
                curve = Curve(channel_id=channel_id, label=channel.label, color=channel.color, item=item)
                self._curves[channel_id] = curve
            curve.label = channel.label
            curve.color = channel.color
            curve.item.setVisible(channel.visible)
            self._apply_style(curve)
        self.bring_to_front()

    def _apply_style(self, curve: Curve) -> None:
        color = QtGui.QColor(*curve.color)
        curve.item.setPen(pg.mkPen(color=color, width=2))
        if self._lifecycle.highlight_samples and len(curve.history) <= _MAX_HIGHLIGHT_POINTS:
            curve.item.setSymbol("o")
            curve.item.setSymbolSize(4)
            curve.item.setSymbolBrush(color)
            curve.item.setSymbolPen(color)
        else:
            curve.item.setSymbol(None)

    def bring_to_front(self) -> None:
        front = self._lifecycle.front_channel
        for position, channel_id in enumerate(self._registry.active_ids()):
            curve = self._curves.get(channel_id)
            if curve is not None:
                curve.item.setZValue(1 if position == front else 0)

    def add_batch(self, batch: SampleBatch) -> None:
        start = self._lifecycle.communication_start_time or 0
        t = (batch.timestamp_ms - start) / 1000.0
        for channel_id, ok, value in zip(batch.channel_ids, batch.success, batch.values):
            curve = self._curves.get(channel_id)
            if curve is None or not ok:
                continue
            curve.history.append(t, float(value))
            highlight_limit_crossed = len(curve.history) == _MAX_HIGHLIGHT_POINTS + 1
            curve.item.setData(curve.history.x, curve.history.y)
            if highlight_limit_crossed:
                self._apply_style(curve)
        self.rescale()

    def clear_curve(self, channel_id: Optional[int]) -> None:
        curve = self._curves.get(channel_id)
        if curve is None:
            return
        curve.history.clear()
        curve.item.setData([], [])

    def clear_results(self) -> None:
        for channel_id in list(self._curves):
            self.clear_curve(channel_id)
        self.rescale()

    # --- notes and markers ---
    def _sync_notes(self) -> None:
        for item in self._notes:
            self.removeItem(item)
        self._notes = []
        for note in self._session.annotations.all():
            item = pg.TextItem(note.text, color=(40, 40, 40), anchor=(0, 1))
            item.setPos(note.key, note.value)
            self.addItem(item)
            self._notes.append(item)

    def _sync_markers(self) -> None:
        for line in self._marker_lines:
            self.removeItem(line)
        self._marker_lines = []
        for pos in self._lifecycle.markers():
            if pos is None:
                continue
            line = pg.InfiniteLine(pos=pos, angle=90, pen=pg.mkPen((200, 0, 0), style=QtCore.Qt.DashLine))
            self.addItem(line)
            self._marker_lines.append(line)

    # --- scaling ---
    def rescale(self) -> None:
        visible = [c for c in self._curves.values() if c.item.isVisible() and len(c.history)]
        vb = self.plotItem.vb

        x_mode = self._lifecycle.x_axis_scale
        if x_mode is AxisScale.MANUAL or not visible:
            vb.enableAutoRange(axis=pg.ViewBox.XAxis, enable=False)
        else:
            x_max = max(c.history.span()[1] for c in visible)
            if x_mode is AxisScale.SLIDING:
                window = float(self._lifecycle.x_axis_sliding_sec)
                self.setXRange(max(0.0, x_max - window), max(window, x_max), padding=0)
            else:
                x_min = min(c.history.span()[0] for c in visible)
                self.setXRange(x_min, x_max, padding=0.02)

        y_mode = self._lifecycle.y_axis_scale
        if y_mode is AxisScale.MINMAX:
            self.setYRange(self._lifecycle.y_axis_min, self._lifecycle.y_axis_max, padding=0)
        elif y_mode is AxisScale.MANUAL or not visible:
            vb.enableAutoRange(axis=pg.ViewBox.YAxis, enable=False)
        else:
            x_lo, x_hi = vb.viewRange()[0]
            lows, highs = [], []
            for curve in visible:
                y = curve.history.y
                if y_mode is AxisScale.WINDOW_AUTO:
                    x = curve.history.x
                    y = y[(x >= x_lo) & (x <= x_hi)]
                if y.size:
                    lows.append(float(y.min()))
                    highs.append(float(y.max()))
            if lows:
                self.setYRange(min(lows), max(highs), padding=0.05)
