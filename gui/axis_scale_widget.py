"""AxisScaleWidget - UI for the x/y axis scaling modes.

The widget edits the scaling fields of a LifecycleState:
- X axis: auto, sliding window (with interval) or manual
- Y axis: auto, window auto, fixed min/max (with limits) or manual

Changes made elsewhere (e.g. a manual mode reset when acquisition starts)
arrive over the ChangeBus and are reflected without echoing back.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

from PySide6 import QtWidgets

from core.change_bus import ChangeEvent, ChangeKind
from core.lifecycle import AxisScale, LifecycleState, X_AXIS_SCALES, Y_AXIS_SCALES

from .bus_adapter import connect_change_bus

logger = logging.getLogger(__name__)

_SCALE_LABELS = {
    AxisScale.AUTO: "Auto",
    AxisScale.SLIDING: "Sliding window",
    AxisScale.MANUAL: "Manual",
    AxisScale.WINDOW_AUTO: "Window auto",
    AxisScale.MINMAX: "Min/Max",
}

# Row order follows the enum declaration
_X_ORDER = tuple(scale for scale in AxisScale if scale in X_AXIS_SCALES)
_Y_ORDER = tuple(scale for scale in AxisScale if scale in Y_AXIS_SCALES)


class AxisScaleWidget(QtWidgets.QWidget):
    """
    Encapsulates the axis scaling group boxes.

    Responsibilities:
    - Create one radio group per axis plus the interval/limit spin boxes.
    - Forward edits to the LifecycleState setters.
    - Mirror lifecycle changes back into the controls.
    """

    def __init__(
        self,
        lifecycle: LifecycleState,
        bus,
        parent: Optional[QtWidgets.QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._lifecycle = lifecycle
        self._syncing = False
        self._x_buttons: Dict[AxisScale, QtWidgets.QRadioButton] = {}
        self._y_buttons: Dict[AxisScale, QtWidgets.QRadioButton] = {}

        self._setup_ui()
        self._sync_from_state()

        kinds = {
            ChangeKind.X_AXIS_SCALING,
            ChangeKind.X_AXIS_SLIDING_INTERVAL,
            ChangeKind.Y_AXIS_SCALING,
            ChangeKind.Y_AXIS_MIN_MAX,
        }
        self._signals, self._unsubscribe = connect_change_bus(bus, kinds, self)
        self._signals.changed.connect(self._on_change)

    def _setup_ui(self) -> None:
        layout = QtWidgets.QHBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        x_group = QtWidgets.QGroupBox("X axis")
        x_layout = QtWidgets.QGridLayout(x_group)
        self._x_group = QtWidgets.QButtonGroup(self)
        for row, scale in enumerate(_X_ORDER):
            button = QtWidgets.QRadioButton(_SCALE_LABELS[scale])
            self._x_group.addButton(button)
            self._x_buttons[scale] = button
            x_layout.addWidget(button, row, 0)
            button.toggled.connect(lambda checked, s=scale: self._on_x_scale_toggled(s, checked))

        self.sliding_spin = QtWidgets.QSpinBox()
        self.sliding_spin.setRange(1, 24 * 3600)
        self.sliding_spin.setSuffix(" s")
        self.sliding_spin.valueChanged.connect(self._on_sliding_changed)
        x_layout.addWidget(self.sliding_spin, _X_ORDER.index(AxisScale.SLIDING), 1)
        layout.addWidget(x_group)

        y_group = QtWidgets.QGroupBox("Y axis")
        y_layout = QtWidgets.QGridLayout(y_group)
        self._y_group = QtWidgets.QButtonGroup(self)
        for row, scale in enumerate(_Y_ORDER):
            button = QtWidgets.QRadioButton(_SCALE_LABELS[scale])
            self._y_group.addButton(button)
            self._y_buttons[scale] = button
            y_layout.addWidget(button, row, 0)
            button.toggled.connect(lambda checked, s=scale: self._on_y_scale_toggled(s, checked))

        limits = QtWidgets.QHBoxLayout()
        self.y_min_spin = QtWidgets.QDoubleSpinBox()
        self.y_max_spin = QtWidgets.QDoubleSpinBox()
        for spin in (self.y_min_spin, self.y_max_spin):
            spin.setRange(-1e9, 1e9)
            spin.setDecimals(3)
            spin.editingFinished.connect(self._on_limits_edited)
            limits.addWidget(spin)
        y_layout.addLayout(limits, _Y_ORDER.index(AxisScale.MINMAX), 1)
        layout.addWidget(y_group)

    def cleanup(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ---- State -> UI ----

    def _on_change(self, event: ChangeEvent) -> None:
        self._sync_from_state()

    def _sync_from_state(self) -> None:
        self._syncing = True
        try:
            self._x_buttons[self._lifecycle.x_axis_scale].setChecked(True)
            self._y_buttons[self._lifecycle.y_axis_scale].setChecked(True)
            self.sliding_spin.setValue(self._lifecycle.x_axis_sliding_sec)
            self.y_min_spin.setValue(self._lifecycle.y_axis_min)
            self.y_max_spin.setValue(self._lifecycle.y_axis_max)
        finally:
            self._syncing = False

    # ---- UI -> State ----

    def _on_x_scale_toggled(self, scale: AxisScale, checked: bool) -> None:
        if checked and not self._syncing:
            self._lifecycle.set_x_axis_scale(scale)

    def _on_y_scale_toggled(self, scale: AxisScale, checked: bool) -> None:
        if checked and not self._syncing:
            self._lifecycle.set_y_axis_scale(scale)

    def _on_sliding_changed(self, value: int) -> None:
        if not self._syncing:
            self._lifecycle.set_x_axis_sliding_sec(int(value))

    def _on_limits_edited(self) -> None:
        if self._syncing:
            return
        minimum, maximum = self.y_min_spin.value(), self.y_max_spin.value()
        if minimum > maximum:
            logger.warning("Ignoring y limits %g > %g", minimum, maximum)
            self._sync_from_state()
            return
        self._lifecycle.set_y_axis_min_max(minimum, maximum)


__all__ = ["AxisScaleWidget"]
