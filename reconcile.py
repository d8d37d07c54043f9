# reconcile.py
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Hashable, Iterator, List, Mapping, Optional

from models import AudioState, Change, MediaSnapshot, PlaybackStatus

logger = logging.getLogger(__name__)

AUDIO = "audio"
MEDIA = "media"

UNCHANGED = object()


def audio_fields(state: AudioState) -> Dict[str, Any]:
    return {
        "sink.volume": state.volume,
        "sink.muted": state.muted,
        "sink.default": state.default_sink_id,
        "sink.devices": state.sinks,
        "source.volume": state.source_volume,
        "source.muted": state.source_muted,
        "source.default": state.default_source_id,
        "source.devices": state.sources,
    }


def media_fields(snap: MediaSnapshot) -> Dict[str, Any]:
    a = snap.active_state
    return {
        "media.players": tuple(p.player for p in snap.players),
        "media.player": snap.active,
        "media.status": a.status if a else PlaybackStatus.NONE,
        "media.title": a.title if a else "",
        "media.artist": a.artist if a else "",
        "media.art_url": a.art_url if a else "",
        "media.position_ms": a.position_ms if a else 0,
    }


class Subscription:
    """
    An unbounded, lazily drained sequence of changes.

    Each iteration yields whatever arrived since the previous one and then
    stops; iterate again later to pick up from there. A new subscription starts
    with the full current state.
    """

    def __init__(self, feed: "ChangeFeed") -> None:
        self._feed = feed
        self._queue: Deque[Change] = deque()
        self.closed = False

    def push(self, change: Change) -> None:
        if not self.closed:
            self._queue.append(change)

    def __iter__(self) -> Iterator[Change]:
        while self._queue:
            yield self._queue.popleft()

    def __len__(self) -> int:
        return len(self._queue)

    def close(self) -> None:
        self.closed = True
        self._queue.clear()
        self._feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self) -> None:
        self._subs: List[Subscription] = []
        self._callbacks: List[Callable[[Change], None]] = []

    def subscribe(self, initial: Optional[Mapping[str, Any]] = None) -> Subscription:
        sub = Subscription(self)
        for name, value in (initial or {}).items():
            sub.push(Change(name, value))
        self._subs.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subs:
            self._subs.remove(sub)

    def connect(self, cb: Callable[[Change], None]) -> None:
        self._callbacks.append(cb)

    def publish(self, change: Change) -> None:
        for sub in list(self._subs):
            sub.push(change)
        for cb in list(self._callbacks):
            cb(change)


@dataclass
class _Freeze:
    token: Hashable  # (command key, generation) of the command holding the field
    source: str
    confirm_poll: Optional[int] = None


class ReconciliationAdapter:
    """
    Keeps what the UI shows in step with confirmed snapshots.

    A field with an unconfirmed command is frozen: poll values for it are kept
    as `confirmed` but not shown. Success releases the field once the poll that
    was requested after the command arrives; failure releases it at once and
    shows the last confirmed value again.
    """

    def __init__(self) -> None:
        self.shown: Dict[str, Any] = {}
        self.confirmed: Dict[str, Any] = {}
        self._frozen: Dict[str, _Freeze] = {}
        self._last_poll: Dict[str, int] = {}
        self.feed = ChangeFeed()

    def subscribe(self) -> Subscription:
        return self.feed.subscribe(dict(self.shown))

    def is_frozen(self, name: str) -> bool:
        return name in self._frozen

    def _show(self, name: str, value: Any) -> None:
        if name in self.shown and self.shown[name] == value:
            return
        self.shown[name] = value
        self.feed.publish(Change(name, value))

    def apply_snapshot(self, source: str, gen: int, fields: Mapping[str, Any]) -> None:
        last = self._last_poll.get(source, 0)
        if gen <= last:
            logger.debug("ignoring late %s poll %d (already at %d)", source, gen, last)
            return
        self._last_poll[source] = gen
        self.confirmed.update(fields)

        for name, fz in list(self._frozen.items()):
            if fz.source == source and fz.confirm_poll is not None and gen >= fz.confirm_poll:
                del self._frozen[name]

        for name, value in fields.items():
            if name not in self._frozen:
                self._show(name, value)

    def set_status(self, name: str, value: Any) -> None:
        self._show(name, value)

    def begin(self, name: str, token: Hashable, source: str, value: Any = UNCHANGED) -> None:
        self._frozen[name] = _Freeze(token, source)
        if value is not UNCHANGED:
            self._show(name, value)

    def confirm(self, name: str, token: Hashable, poll_gen: int) -> None:
        fz = self._frozen.get(name)
        if fz is None or fz.token != token:
            return
        if poll_gen <= self._last_poll.get(fz.source, 0):
            # No fresh poll is coming (poller stopped); keep the applied value on screen.
            del self._frozen[name]
            return
        fz.confirm_poll = poll_gen

    def revert(self, name: str, token: Hashable) -> None:
        fz = self._frozen.get(name)
        if fz is None or fz.token != token:
            return
        del self._frozen[name]
        if name in self.confirmed:
            self._show(name, self.confirmed[name])
