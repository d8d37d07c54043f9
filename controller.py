# controller.py
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Optional, Set, Tuple

from PySide6.QtCore import QObject, Signal

import tool_exec
import wp_cli
from dispatcher import CommandDispatcher, CommandResult, Outcome, ToolNames
from media_bridge import MediaBridge
from models import (
    AudioState,
    Change,
    Command,
    DeviceKind,
    Intent,
    MediaSnapshot,
    MediaTransport,
    PendingCommand,
    PlaybackStatus,
    SetMute,
    SetVolume,
    StepVolume,
    SwitchDevice,
    ToggleMute,
    TransportOp,
    clamp_volume,
)
from poller import StatePoller
from reconcile import (
    AUDIO,
    MEDIA,
    UNCHANGED,
    ReconciliationAdapter,
    Subscription,
    audio_fields,
    media_fields,
)
from store_config import ControllerConfig
from switch_guard import DeviceSwitchGuard
from tool_exec import ToolRunner, expect_ok
from wp_status import parse_status

logger = logging.getLogger(__name__)

ERROR_HOLD = 3.0


def _finite(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


class StatelessController:
    """
    Polls wpctl/playerctl, holds the user's device choice, and turns UI intents
    into serialized, debounced tool invocations.

    Everything runs on the scheduler's loop thread except the tool invocations
    themselves. Nothing raised by a tool ever leaves this object.
    """

    def __init__(
        self,
        scheduler,
        config: ControllerConfig = ControllerConfig(),
        runner: ToolRunner = tool_exec.run,
    ) -> None:
        self.config = config
        self._scheduler = scheduler
        self._runner = runner
        self._unavailable: Set[str] = set()
        self._error_timer = None

        self.adapter = ReconciliationAdapter()
        self.guard = DeviceSwitchGuard(
            scheduler.now,
            self._correct,
            config.corrective_cooldown,
            poll_generation=lambda: self.audio.generation,
        )
        self.audio: StatePoller[AudioState] = StatePoller(
            AUDIO, scheduler, self._fetch_audio, config.poll_interval, config.failure_threshold
        )
        self.media = MediaBridge(
            scheduler,
            runner,
            playerctl=config.playerctl,
            interval=config.poll_interval,
            timeout=config.command_timeout,
            failure_threshold=config.failure_threshold,
        )
        self.dispatcher = CommandDispatcher(
            scheduler,
            runner,
            guard=self.guard,
            state_of=lambda: self.audio.snapshot,
            debounce=config.debounce,
            timeout=config.command_timeout,
            tools=ToolNames(wpctl=config.wpctl, playerctl=config.playerctl),
        )

        self.audio.on_snapshot(self._on_audio)
        self.audio.on_status(lambda key, value: self._on_poller_status(AUDIO, key, value))
        self.media.on_snapshot(self._on_media)
        self.media.poller.on_status(lambda key, value: self._on_poller_status(MEDIA, key, value))
        self.dispatcher.on_result(self._on_command_result)

        for domain in (AUDIO, MEDIA):
            self.adapter.set_status(f"{domain}.degraded", False)
        self.adapter.set_status("error", None)

    # lifecycle / UI boundary

    def start(self) -> None:
        self.audio.start()
        self.media.poller.start()

    def stop(self) -> None:
        self.audio.stop()
        self.media.poller.stop()
        if self._error_timer is not None:
            self._error_timer.cancel()
            self._error_timer = None

    def subscribe(self) -> Subscription:
        return self.adapter.subscribe()

    def connect(self, cb: Callable[[Change], None]) -> None:
        self.adapter.feed.connect(cb)

    @property
    def audio_state(self) -> Optional[AudioState]:
        return self.audio.snapshot

    @property
    def media_state(self) -> Optional[MediaSnapshot]:
        return self.media.snapshot

    def shown(self, name: str, default: Any = None) -> Any:
        return self.adapter.shown.get(name, default)

    def transport(self, op: TransportOp) -> Optional[PendingCommand]:
        return self.submit(MediaTransport(op))

    def step_volume(self, steps: int, target: DeviceKind = DeviceKind.SINK) -> Optional[PendingCommand]:
        return self.submit(StepVolume(steps * self.config.volume_step, target))

    def submit(self, intent: Intent) -> Optional[PendingCommand]:
        cmd = self._resolve(intent)
        if cmd is None:
            return None

        domain = MEDIA if isinstance(cmd, MediaTransport) else AUDIO
        if domain in self._unavailable:
            logger.info("ignoring %r: %s control is unavailable", cmd, domain)
            return None

        name, optimistic = self._field_for(cmd)
        # The shown value is the newest one asked for, pending or confirmed.
        if isinstance(cmd, SetVolume) and self.adapter.shown.get(name) == cmd.value:
            logger.debug("volume already at %.2f", cmd.value)
            return None

        pending = self.dispatcher.submit(cmd)
        if name is not None:
            self.adapter.begin(name, (pending.kind, pending.generation), domain, optimistic)
        return pending

    # intent resolution

    def _resolve(self, intent: Intent) -> Optional[Command]:
        if isinstance(intent, StepVolume):
            delta = _finite(intent.delta)
            if delta is None:
                logger.warning("ignoring volume step %r: not a number", intent.delta)
                return None
            base = self.adapter.shown.get(f"{intent.target.value}.volume")
            if base is None:
                logger.debug("no volume known yet, ignoring step")
                return None
            return SetVolume(round(clamp_volume(base + delta), 2), intent.target)
        if isinstance(intent, SetVolume):
            value = _finite(intent.value)
            if value is None:
                logger.warning("ignoring volume %r: not a number", intent.value)
                return None
            return SetVolume(round(clamp_volume(value), 2), intent.target)
        if isinstance(intent, ToggleMute):
            cur = self.adapter.shown.get(f"{intent.target.value}.muted")
            return SetMute(None if cur is None else not cur, intent.target)
        if isinstance(intent, MediaTransport) and intent.player is None:
            return self.media.resolve(intent.op)
        return intent

    def _field_for(self, cmd: Command) -> Tuple[Optional[str], Any]:
        if isinstance(cmd, SetVolume):
            return f"{cmd.target.value}.volume", cmd.value
        if isinstance(cmd, SetMute):
            return f"{cmd.target.value}.muted", UNCHANGED if cmd.muted is None else cmd.muted
        if isinstance(cmd, SwitchDevice):
            return f"{cmd.kind.value}.default", cmd.device_id
        if isinstance(cmd, MediaTransport):
            return "media.status", self._optimistic_status(cmd)
        return None, UNCHANGED

    def _optimistic_status(self, cmd: MediaTransport) -> Any:
        if cmd.op is TransportOp.PLAY:
            return PlaybackStatus.PLAYING
        if cmd.op is TransportOp.PAUSE:
            return PlaybackStatus.PAUSED
        if cmd.op is TransportOp.STOP:
            return PlaybackStatus.STOPPED
        if cmd.op is TransportOp.PLAY_PAUSE and self.adapter.shown.get("media.player") == cmd.player:
            cur = self.adapter.shown.get("media.status")
            return PlaybackStatus.PAUSED if cur is PlaybackStatus.PLAYING else PlaybackStatus.PLAYING
        return UNCHANGED

    # poll plumbing

    def _fetch_audio(self) -> AudioState:
        out = expect_ok(self._runner(self.config.wpctl, wp_cli.status_args(), self.config.command_timeout))
        return parse_status(out)

    def _on_audio(self, gen: int, state: AudioState) -> None:
        self.guard.observe(state, gen)
        self.adapter.apply_snapshot(AUDIO, gen, audio_fields(state))

    def _on_media(self, gen: int, snap: MediaSnapshot) -> None:
        self.adapter.apply_snapshot(MEDIA, gen, media_fields(snap))

    def _on_poller_status(self, domain: str, key: str, value: Any) -> None:
        if key == "unavailable":
            self._unavailable.add(domain)
        self.adapter.set_status(f"{domain}.{key}", value)

    def _correct(self, kind: DeviceKind, device_id: int) -> None:
        if self.dispatcher.is_busy(SwitchDevice(kind, device_id).key):
            logger.debug("user switch of %s pending, no correction", kind.value)
            return
        self.dispatcher.submit(SwitchDevice(kind, device_id, corrective=True), immediate=True)

    # command results

    def _on_command_result(self, res: CommandResult) -> None:
        cmd = res.command.payload
        token = (res.command.kind, res.command.generation)
        domain = MEDIA if isinstance(cmd, MediaTransport) else AUDIO
        corrective = isinstance(cmd, SwitchDevice) and cmd.corrective
        name, _ = self._field_for(cmd)

        if res.ok:
            poller = self.media.poller if domain == MEDIA else self.audio
            poll_gen = poller.request_poll()
            if name is not None and not corrective:
                self.adapter.confirm(name, token, poll_gen)
            return

        if name is not None and not corrective:
            self.adapter.revert(name, token)

        if res.outcome is Outcome.DROPPED:
            return

        if res.outcome is Outcome.UNAVAILABLE and domain not in self._unavailable:
            self._unavailable.add(domain)
            self.adapter.set_status(f"{domain}.unavailable", res.message)

        if not corrective:
            self._show_error(res.message)

    def _show_error(self, message: str) -> None:
        if self._error_timer is not None:
            self._error_timer.cancel()
        self.adapter.set_status("error", message)
        self._error_timer = self._scheduler.call_later(ERROR_HOLD, self._clear_error)

    def _clear_error(self) -> None:
        self._error_timer = None
        self.adapter.set_status("error", None)


class ControllerSignals(QObject):
    """Re-emits every UI change as a Qt signal for widgets."""

    changed = Signal(object)

    def __init__(self, controller: StatelessController, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.controller = controller
        controller.connect(self.changed.emit)
