import argparse
import logging
import sys
from pathlib import Path

from PySide6 import QtCore

from orvillecontrol.app.config import ConfigManager
from orvillecontrol.app.state import SessionSnapshot
from orvillecontrol.app.ui.qt_worker import OrvilleDeviceWorker
from orvillecontrol.domain.bitmap import Bitmap
from orvillecontrol.logging_setup import configure_logging


def _print_menu(logger: logging.Logger, snapshot: SessionSnapshot) -> None:
    if snapshot.current_dump is None:
        return

    path = " > ".join(b.tag for b in snapshot.breadcrumbs)
    logger.info("Menu %s [%s]%s", snapshot.title, snapshot.current_key, f" ({path})" if path else "")
    for obj in snapshot.visible:
        if obj.is_menu:
            logger.info("  [%s] %s", obj.key, obj.caption)
        else:
            logger.info("  %-4s %s %s", obj.kind, obj.key, obj.render(snapshot.values))

    names = ", ".join(f"{k}={v}" for k, v in sorted(snapshot.slot_names.items()))
    if names:
        logger.info("Slots: %s", names)


def main():
    parser = argparse.ArgumentParser(description="Browse and edit an Eventide Orville over MIDI SysEx.")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Can also use ORVILLE_LOG_LEVEL env var.",
    )
    parser.add_argument("--config", default="config.json", help="Path to the JSON config file.")
    parser.add_argument(
        "--device-id",
        type=int,
        default=None,
        help="SysEx device id (0-127). Default: adopt the id of the first response.",
    )
    parser.add_argument("--port-prefix", default=None, help="MIDI port name prefix. Default from config.")
    parser.add_argument("--key", default=None, help="Menu key to open after connecting.")
    parser.add_argument(
        "--set",
        nargs=2,
        metavar=("KEY", "VALUE"),
        default=None,
        help="Write VALUE to parameter KEY once the menu is shown.",
    )
    parser.add_argument("--press", default=None, help="Send a front-panel key (e.g. 'enter', 'soft1').")
    parser.add_argument(
        "--send-hex",
        default=None,
        metavar="HEX",
        help="Send a raw command: first byte is the command, the rest its payload (e.g. '2D 34 30').",
    )
    parser.add_argument("--screen", default=None, help="Save the LCD bitmap to this path (PBM).")
    parser.add_argument(
        "--listen",
        type=float,
        default=3.0,
        help="Seconds to keep listening before exiting. Default: 3.",
    )
    args = parser.parse_args()

    manager = ConfigManager(args.config)
    config = manager.config
    if args.device_id is not None:
        config.device.device_id = args.device_id
    if args.port_prefix is not None:
        config.device.port_prefix = args.port_prefix

    configure_logging(
        cli_level=args.log_level or config.logging.level,
        categories=config.logging.categories,
    )
    logger = logging.getLogger("main")

    if args.screen:
        config.bitmap.fetch_on_connect = True

    app = QtCore.QCoreApplication(sys.argv)
    worker = OrvilleDeviceWorker(config=config)

    worker.status_changed.connect(lambda text: logger.info("%s", text))
    worker.error_occurred.connect(lambda text: logger.error("Device error: %s", text))
    worker.state_changed.connect(lambda snapshot: _print_menu(logger, snapshot))

    def _on_bitmap(bitmap: Bitmap) -> None:
        if not args.screen:
            return
        Path(args.screen).write_bytes(bitmap.to_pbm())
        logger.info("Saved screen (%d lit pixels) to %s", bitmap.lit_count(), args.screen)

    worker.bitmap_changed.connect(_on_bitmap)

    def _run() -> None:
        worker.connect_device()
        if not worker.connected:
            app.exit(1)
            return

        delay_ms = 500
        if args.key:
            QtCore.QTimer.singleShot(delay_ms, lambda: worker.navigate_to(args.key))
            delay_ms += 500
        if args.set:
            key, value = args.set
            QtCore.QTimer.singleShot(delay_ms, lambda: worker.set_value(key, value))
            delay_ms += 500
        if args.press:
            QtCore.QTimer.singleShot(delay_ms, lambda: worker.press_key(args.press))
            delay_ms += 500
        if args.send_hex:
            QtCore.QTimer.singleShot(delay_ms, lambda: worker.send_hex(args.send_hex))

        QtCore.QTimer.singleShot(int(max(args.listen, 0.0) * 1000) + delay_ms, app.quit)

    QtCore.QTimer.singleShot(0, _run)
    try:
        code = app.exec()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = 0
    finally:
        worker.shutdown()

    snapshot = worker.session.current_state()
    if snapshot.device_id is not None and manager.device_id is None:
        logger.info("Device id %d in use (set it in %s to skip discovery)", snapshot.device_id, args.config)
    sys.exit(code)


if __name__ == "__main__":
    main()
