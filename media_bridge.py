# media_bridge.py
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import mpris_cli
from models import MediaSnapshot, MediaState, MediaTransport, PlaybackStatus, TransportOp
from mpris_status import parse_metadata
from poller import StatePoller
from tool_exec import ToolErrorKind, ToolRunner, expect_ok

logger = logging.getLogger(__name__)

_RANK = {
    PlaybackStatus.PLAYING: 0,
    PlaybackStatus.PAUSED: 1,
    PlaybackStatus.STOPPED: 2,
    PlaybackStatus.NONE: 2,
}


def select_active_player(players: Iterable[MediaState], last_playing: Mapping[str, int]) -> Optional[str]:
    """
    Playing beats Paused beats Stopped/None. Ties go to the player most recently
    seen playing, then to the smallest instance name. Never depends on timing.
    """
    best = min(
        players,
        key=lambda p: (_RANK[p.status], -last_playing.get(p.player, -1), p.player),
        default=None,
    )
    return best.player if best is not None else None


class MediaBridge:
    def __init__(
        self,
        scheduler,
        runner: ToolRunner,
        playerctl: str = "playerctl",
        interval: float = 0.5,
        timeout: float = 1.5,
        failure_threshold: int = 3,
    ) -> None:
        self._runner = runner
        self._playerctl = playerctl
        self._timeout = timeout
        self._seq = 0
        self._last_playing: Dict[str, int] = {}
        self._listeners: List[Callable[[int, MediaSnapshot], None]] = []
        self.snapshot: Optional[MediaSnapshot] = None

        self.poller: StatePoller[List[MediaState]] = StatePoller(
            "media", scheduler, self.fetch, interval, failure_threshold
        )
        self.poller.on_snapshot(self.apply_players)

    def on_snapshot(self, cb: Callable[[int, MediaSnapshot], None]) -> None:
        self._listeners.append(cb)

    def fetch(self) -> List[MediaState]:
        r = self._runner(self._playerctl, mpris_cli.metadata_args(), self._timeout)
        err = r.error
        if err is not None and err.kind is ToolErrorKind.NON_ZERO_EXIT and mpris_cli.is_no_players_message(err.stderr):
            return []
        return parse_metadata(expect_ok(r))

    def apply_players(self, gen: int, players: List[MediaState]) -> None:
        self._seq += 1
        names = {p.player for p in players}
        for name in list(self._last_playing):
            if name not in names:
                del self._last_playing[name]
        for p in players:
            if p.status is PlaybackStatus.PLAYING:
                self._last_playing[p.player] = self._seq

        active = select_active_player(players, self._last_playing)
        prev = self.snapshot.active if self.snapshot is not None else None
        if active != prev:
            logger.info("active player: %s", active)

        self.snapshot = MediaSnapshot(players=tuple(sorted(players, key=lambda p: p.player)), active=active)
        for cb in list(self._listeners):
            cb(gen, self.snapshot)

    @property
    def active_player(self) -> Optional[str]:
        return self.snapshot.active if self.snapshot is not None else None

    def resolve(self, op: TransportOp) -> Optional[MediaTransport]:
        # The target is fixed here; later polls never retarget an issued command.
        player = self.active_player
        if player is None:
            logger.info("no media player to send %s to", op.value)
            return None
        return MediaTransport(op, player)
