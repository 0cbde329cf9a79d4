import logging
import sys
from typing import Optional

import click
from PySide6.QtWidgets import QApplication

from core import AcquisitionSession, Collaborators
from gui import MainWindow
from gui.qsettings_adapter import create_gui_settings_store
from gui.simulated_poller import SimulatedPoller

logger = logging.getLogger(__name__)


@click.command()
@click.argument("project_file", type=click.Path(exists=True, dir_okay=False), required=False)
@click.option(
    "--channels",
    "-n",
    type=click.IntRange(0, 64),
    default=0,
    help="Number of simulated channels to create at startup (default: 0)",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="INI file to keep settings in (default: the platform settings store)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level (default: INFO)",
)
def main(project_file: Optional[str], channels: int, settings_path: Optional[str], log_level: str) -> None:
    """Register scope viewer.

    PROJECT_FILE: optional project settings (.mbs) file to open at startup.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv[:1])
    app.setApplicationName("RegScope")

    settings_store = create_gui_settings_store(settings_path)
    settings = settings_store.get()
    session = AcquisitionSession.create(x_axis_sliding_sec=settings.default_x_sliding_sec)
    for _ in range(channels):
        session.registry.add()

    poller = SimulatedPoller(session, settings.poll_time_ms)
    collaborators = Collaborators(start_communication=poller.start, stop_communication=poller.stop)
    window = MainWindow(session, settings_store=settings_store, collaborators=collaborators)
    settings_store.subscribe(lambda s: poller.set_poll_time_ms(s.poll_time_ms))

    if project_file:
        if window.coordinator.dispatch_files([project_file]) is None:
            logger.warning("Not a project file: %s", project_file)

    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
