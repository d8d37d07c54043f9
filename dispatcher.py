# dispatcher.py
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import mpris_cli
import wp_cli
from models import (
    AudioState,
    Command,
    MediaTransport,
    PendingCommand,
    SetMute,
    SetVolume,
    SwitchDevice,
    clamp_volume,
)
from switch_guard import DeviceSwitchGuard
from tool_exec import ToolErrorKind, ToolResult, ToolRunner

logger = logging.getLogger(__name__)

Key = Tuple[str, ...]


class Outcome(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"
    DROPPED = "dropped"


@dataclass(frozen=True)
class CommandResult:
    command: PendingCommand
    outcome: Outcome
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.APPLIED


@dataclass(frozen=True)
class ToolNames:
    wpctl: str = "wpctl"
    playerctl: str = "playerctl"


class CommandDispatcher:
    """
    Debounces, coalesces and serializes outgoing commands.

    A command waits `debounce` seconds (counted from the first event of a burst)
    so later commands with the same key can replace it. Once its window closes
    it joins the ready queue, where a newer command with the same key still
    replaces it in place. At most one external command runs at a time.
    """

    def __init__(
        self,
        scheduler,
        runner: ToolRunner,
        guard: Optional[DeviceSwitchGuard] = None,
        state_of: Callable[[], Optional[AudioState]] = lambda: None,
        debounce: float = 0.08,
        timeout: float = 1.5,
        tools: ToolNames = ToolNames(),
    ) -> None:
        self._scheduler = scheduler
        self._runner = runner
        self._guard = guard
        self._state_of = state_of
        self._debounce = debounce
        self._timeout = timeout
        self._tools = tools

        self._generations: Dict[Key, int] = {}
        self._waiting: Dict[Key, PendingCommand] = {}
        self._windows: Dict[Key, Any] = {}
        self._ready: "OrderedDict[Key, PendingCommand]" = OrderedDict()
        self._in_flight: Optional[PendingCommand] = None
        self._listeners: List[Callable[[CommandResult], None]] = []

    def on_result(self, cb: Callable[[CommandResult], None]) -> None:
        self._listeners.append(cb)

    @property
    def in_flight(self) -> Optional[PendingCommand]:
        return self._in_flight

    def is_busy(self, key: Key) -> bool:
        if key in self._waiting or key in self._ready:
            return True
        return self._in_flight is not None and self._in_flight.kind == key

    def submit(self, cmd: Command, immediate: bool = False) -> PendingCommand:
        key = cmd.key
        gen = self._generations.get(key, 0) + 1
        self._generations[key] = gen
        pending = PendingCommand(kind=key, payload=cmd, issued_at=self._scheduler.now(), generation=gen)

        if key in self._ready:
            logger.debug("%s gen %d replaces a queued command", key, gen)
            self._ready[key] = pending
            self._pump()
            return pending

        if immediate:
            self._cancel_window(key)
            self._waiting.pop(key, None)
            self._ready[key] = pending
            self._pump()
            return pending

        if key in self._waiting:
            logger.debug("%s gen %d coalesces gen %d", key, gen, self._waiting[key].generation)
        self._waiting[key] = pending
        if key not in self._windows:
            self._windows[key] = self._scheduler.call_later(self._debounce, lambda: self._window_closed(key))
        return pending

    def _cancel_window(self, key: Key) -> None:
        h = self._windows.pop(key, None)
        if h is not None:
            h.cancel()

    def _window_closed(self, key: Key) -> None:
        self._windows.pop(key, None)
        pending = self._waiting.pop(key, None)
        if pending is None:
            return
        self._ready[key] = pending
        self._pump()

    def _pump(self) -> None:
        while self._in_flight is None and self._ready:
            key, pending = self._ready.popitem(last=False)
            if self._start(pending):
                return

    def _start(self, pending: PendingCommand) -> bool:
        cmd = pending.payload

        if isinstance(cmd, SwitchDevice):
            state = self._state_of()
            if state is not None and not state.has_device(cmd.kind, cmd.device_id):
                logger.info("dropping switch to %s %s: device is gone", cmd.kind.value, cmd.device_id)
                self._notify(CommandResult(pending, Outcome.DROPPED, "device vanished"))
                return False
            if self._guard is not None and not cmd.corrective:
                self._guard.begin_user_switch(cmd.kind, cmd.device_id)

        tool, args = self.command_line(cmd)
        self._in_flight = pending
        timeout = self._timeout
        runner = self._runner
        logger.debug("running %s %s (gen %d)", tool, " ".join(args), pending.generation)
        self._scheduler.submit(lambda: runner(tool, args, timeout), lambda r: self._on_done(pending, r))
        return True

    def command_line(self, cmd: Command) -> Tuple[str, Sequence[str]]:
        if isinstance(cmd, SetVolume):
            return self._tools.wpctl, wp_cli.set_volume_args(cmd.target, clamp_volume(cmd.value))
        if isinstance(cmd, SetMute):
            return self._tools.wpctl, wp_cli.set_mute_args(cmd.target, cmd.muted)
        if isinstance(cmd, SwitchDevice):
            return self._tools.wpctl, wp_cli.set_default_args(cmd.device_id)
        if isinstance(cmd, MediaTransport):
            return self._tools.playerctl, mpris_cli.transport_args(cmd.op, cmd.player)
        raise TypeError(f"not a command: {cmd!r}")

    def _on_done(self, pending: PendingCommand, result: Any) -> None:
        self._in_flight = None
        key = pending.kind
        cmd = pending.payload

        if isinstance(result, ToolResult):
            if result.ok:
                res = CommandResult(pending, Outcome.APPLIED)
            elif result.error is not None and result.error.kind is ToolErrorKind.NOT_FOUND:
                res = CommandResult(pending, Outcome.UNAVAILABLE, result.error.describe(result.command))
            else:
                res = CommandResult(pending, Outcome.FAILED, result.error.describe(result.command))
        else:
            res = CommandResult(pending, Outcome.FAILED, str(result))

        if isinstance(cmd, SwitchDevice) and not cmd.corrective and self._guard is not None:
            self._guard.end_user_switch(cmd.kind, res.ok)

        # Commands run one at a time, so every result is the newest for its key.
        if not res.ok:
            logger.warning("command %s gen %d %s: %s", key, pending.generation, res.outcome.value, res.message)
        self._notify(res)

        self._pump()

    def _notify(self, res: CommandResult) -> None:
        for cb in list(self._listeners):
            cb(res)
