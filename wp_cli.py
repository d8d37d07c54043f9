# wp_cli.py
from __future__ import annotations

from typing import List, Optional, Union

from models import DeviceKind

DEFAULT_TARGETS = {
    DeviceKind.SINK: "@DEFAULT_AUDIO_SINK@",
    DeviceKind.SOURCE: "@DEFAULT_AUDIO_SOURCE@",
}


def default_target(kind: DeviceKind) -> str:
    return DEFAULT_TARGETS[kind]


def status_args() -> List[str]:
    return ["status"]


def set_volume_args(target: Union[DeviceKind, int], value: float) -> List[str]:
    t = default_target(target) if isinstance(target, DeviceKind) else str(int(target))
    return ["set-volume", t, f"{value:.2f}"]


def set_mute_args(target: Union[DeviceKind, int], muted: Optional[bool]) -> List[str]:
    t = default_target(target) if isinstance(target, DeviceKind) else str(int(target))
    if muted is None:
        return ["set-mute", t, "toggle"]
    return ["set-mute", t, "1" if muted else "0"]


def set_default_args(device_id: int) -> List[str]:
    return ["set-default", str(int(device_id))]
