__all__ = ["AxisScaleWidget", "GraphView", "MainWindow"]

from .axis_scale_widget import AxisScaleWidget
from .graph_view import GraphView
from .main_window import MainWindow
