# models.py
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union


class DeviceKind(str, Enum):
    SINK = "sink"
    SOURCE = "source"


class Origin(str, Enum):
    UNSET = "unset"
    USER = "user"


class PlaybackStatus(str, Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"
    NONE = "None"


class TransportOp(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    PLAY_PAUSE = "play-pause"
    NEXT = "next"
    PREVIOUS = "previous"
    STOP = "stop"


def clamp_volume(v: float) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(f):
        return 0.0
    return min(1.0, max(0.0, f))


@dataclass(frozen=True)
class Device:
    id: int
    display_name: str
    is_current_default: bool = False


@dataclass(frozen=True)
class AudioState:
    volume: float
    muted: bool
    default_sink_id: Optional[int]
    default_source_id: Optional[int]
    sinks: Tuple[Device, ...] = ()
    sources: Tuple[Device, ...] = ()
    source_volume: float = 0.0
    source_muted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "volume", clamp_volume(self.volume))
        object.__setattr__(self, "source_volume", clamp_volume(self.source_volume))
        object.__setattr__(self, "sinks", tuple(self.sinks))
        object.__setattr__(self, "sources", tuple(self.sources))

    def devices(self, kind: DeviceKind) -> Tuple[Device, ...]:
        return self.sinks if kind is DeviceKind.SINK else self.sources

    def default_id(self, kind: DeviceKind) -> Optional[int]:
        return self.default_sink_id if kind is DeviceKind.SINK else self.default_source_id

    def find(self, kind: DeviceKind, device_id: Optional[int]) -> Optional[Device]:
        if device_id is None:
            return None
        for d in self.devices(kind):
            if d.id == device_id:
                return d
        return None

    def has_device(self, kind: DeviceKind, device_id: Optional[int]) -> bool:
        return self.find(kind, device_id) is not None

    @property
    def default_sink(self) -> Optional[Device]:
        # None also covers a default id the enumeration does not know about.
        return self.find(DeviceKind.SINK, self.default_sink_id)

    @property
    def default_source(self) -> Optional[Device]:
        return self.find(DeviceKind.SOURCE, self.default_source_id)


@dataclass
class DesiredDevice:
    device_id: Optional[int] = None
    origin: Origin = Origin.UNSET


@dataclass(frozen=True)
class MediaState:
    player: str
    status: PlaybackStatus = PlaybackStatus.NONE
    title: str = ""
    artist: str = ""
    art_url: str = ""
    position_ms: int = 0


@dataclass(frozen=True)
class MediaSnapshot:
    players: Tuple[MediaState, ...] = ()
    active: Optional[str] = None

    def player(self, name: Optional[str]) -> Optional[MediaState]:
        for p in self.players:
            if p.player == name:
                return p
        return None

    @property
    def active_state(self) -> Optional[MediaState]:
        return self.player(self.active)


# Intents. `key` identifies what coalesces with what: same command kind, same target.
# Transport ops are distinct commands, so only repeats of one op coalesce.

@dataclass(frozen=True)
class SetVolume:
    value: float
    target: DeviceKind = DeviceKind.SINK

    @property
    def key(self) -> Tuple[str, str]:
        return ("volume", self.target.value)


@dataclass(frozen=True)
class StepVolume:
    delta: float
    target: DeviceKind = DeviceKind.SINK


@dataclass(frozen=True)
class ToggleMute:
    target: DeviceKind = DeviceKind.SINK


@dataclass(frozen=True)
class SetMute:
    muted: Optional[bool]  # None sends a literal toggle when nothing is known yet
    target: DeviceKind = DeviceKind.SINK

    @property
    def key(self) -> Tuple[str, str]:
        return ("mute", self.target.value)


@dataclass(frozen=True)
class SwitchDevice:
    kind: DeviceKind
    device_id: int
    corrective: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return ("default", self.kind.value)


@dataclass(frozen=True)
class MediaTransport:
    op: TransportOp
    player: Optional[str] = None

    @property
    def key(self) -> Tuple[str, ...]:
        return ("transport", self.player or "", self.op.value)


Intent = Union[SetVolume, StepVolume, ToggleMute, SetMute, SwitchDevice, MediaTransport]
Command = Union[SetVolume, SetMute, SwitchDevice, MediaTransport]


@dataclass(frozen=True)
class PendingCommand:
    kind: Tuple[str, ...]
    payload: Command
    issued_at: float
    generation: int


@dataclass(frozen=True)
class Change:
    field: str
    value: Any = None


class ParseError(ValueError):
    pass
