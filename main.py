# main.py
from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from PySide6.QtCore import QCoreApplication, QTimer

import tool_exec
import wp_cli
from controller import ControllerSignals, StatelessController
from media_bridge import MediaBridge
from models import Change, ParseError
from scheduler import QtScheduler
from store_config import ConfigStore, ControllerConfig
from tool_exec import ToolFailure, expect_ok
from wp_status import parse_status

logger = logging.getLogger("hushbar")


def _print_once(config: ControllerConfig) -> int:
    rc = 0
    try:
        out = expect_ok(tool_exec.run(config.wpctl, wp_cli.status_args(), config.command_timeout))
        state = parse_status(out)
        print(f"volume {state.volume:.2f}{' (muted)' if state.muted else ''}")
        for d in state.sinks:
            print(f"  {'*' if d.is_current_default else ' '} sink   {d.id:>4}  {d.display_name}")
        for d in state.sources:
            print(f"  {'*' if d.is_current_default else ' '} source {d.id:>4}  {d.display_name}")
    except (ToolFailure, ParseError) as e:
        print(f"audio: {e}", file=sys.stderr)
        rc = 1

    bridge = MediaBridge(None, tool_exec.run, playerctl=config.playerctl, timeout=config.command_timeout)
    try:
        players = bridge.fetch()
    except (ToolFailure, ParseError) as e:
        print(f"media: {e}", file=sys.stderr)
        return rc or 1
    bridge.apply_players(1, players)
    for p in bridge.snapshot.players:
        mark = "*" if p.player == bridge.active_player else " "
        print(f"  {mark} {p.player}: {p.status.value}  {p.artist} - {p.title}")
    return rc


def _log_change(change: Change) -> None:
    logger.info("%s = %r", change.field, change.value)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="hushbar", description="Headless audio/media panel controller.")
    ap.add_argument("--config-dir", default="", help="read hushbar.cfg from this directory")
    ap.add_argument("--once", action="store_true", help="print the current audio and media state and exit")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = ap.parse_args(argv)

    store = ConfigStore(base_dir=args.config_dir)
    config = store.controller_config()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.once:
        return _print_once(config)

    app = QCoreApplication(sys.argv[:1])
    scheduler = QtScheduler(max_workers=config.worker_threads)
    controller = StatelessController(scheduler, config)
    signals = ControllerSignals(controller)
    signals.changed.connect(_log_change)

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Wake the interpreter periodically so SIGINT is seen while Qt owns the loop.
    wake = QTimer()
    wake.start(250)
    wake.timeout.connect(lambda: None)

    controller.start()
    try:
        return app.exec()
    finally:
        controller.stop()
        scheduler.wait_idle(int(config.command_timeout_ms * 2))


if __name__ == "__main__":
    raise SystemExit(main())
