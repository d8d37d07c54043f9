# wp_status.py
from __future__ import annotations

import math
import re
from typing import Dict, List, Optional, Tuple

from models import AudioState, Device, ParseError

TREE_CHARS = " \t│├└─"

_DEVICE_RE = re.compile(
    r"^(?P<default>\*)?\s*(?P<id>\d+)\.\s+(?P<name>.*?)\s*(?:\[(?P<tag>[^\[\]]*)\])?\s*$"
)
_HEADER_RE = re.compile(r"^[A-Za-z][A-Za-z /]*:$")
_VOL_RE = re.compile(r"^vol:\s*(?P<value>\S+)(?P<rest>.*)$")


def parse_volume(text: str) -> float:
    try:
        v = float(text)
    except (TypeError, ValueError):
        raise ParseError(f"unparseable volume {text!r}") from None
    if not math.isfinite(v) or v < 0:
        raise ParseError(f"volume out of range: {text!r}")
    return v


def _parse_device_line(body: str) -> Tuple[Device, Optional[float], bool]:
    m = _DEVICE_RE.match(body)
    if not m:
        raise ParseError(f"unexpected device line: {body!r}")

    name = m.group("name").strip()
    tag = (m.group("tag") or "").strip()
    vol: Optional[float] = None
    muted = False

    vm = _VOL_RE.match(tag) if tag else None
    if vm:
        vol = parse_volume(vm.group("value"))
        muted = "MUTED" in vm.group("rest").upper()
    elif tag:
        name = f"{name} [{tag}]"

    if not name:
        raise ParseError(f"device without a name: {body!r}")

    dev = Device(id=int(m.group("id")), display_name=name, is_current_default=bool(m.group("default")))
    return dev, vol, muted


class _Section:
    def __init__(self) -> None:
        self.seen = False
        self.closed = False
        self.devices: List[Device] = []
        self.levels: Dict[int, Tuple[Optional[float], bool]] = {}

    def add(self, dev: Device, vol: Optional[float], muted: bool) -> None:
        if dev.id in self.levels:
            raise ParseError(f"duplicate device id {dev.id}")
        self.devices.append(dev)
        self.levels[dev.id] = (vol, muted)

    def default(self, label: str) -> Tuple[Optional[int], float, bool]:
        defaults = [d for d in self.devices if d.is_current_default]
        if len(defaults) > 1:
            raise ParseError(f"more than one default {label}")
        if not defaults:
            return None, 0.0, False
        d = defaults[0]
        vol, muted = self.levels[d.id]
        if vol is None:
            raise ParseError(f"default {label} {d.id} has no volume")
        return d.id, vol, muted


def parse_status(text: str) -> AudioState:
    """
    I turn `wpctl status` output into an AudioState.

    Only the Audio section is read. Sinks and Sources must both be present and
    followed by some later header, otherwise the output is treated as truncated.
    Anything I cannot read raises ParseError; nothing is guessed.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("empty wpctl status output")

    sections = {"Sinks": _Section(), "Sources": _Section()}
    in_audio = False
    saw_audio = False
    current: Optional[_Section] = None

    for raw in text.splitlines():
        line = raw.rstrip()
        if not line.strip():
            continue

        if not line[0].isspace() and line[0] not in TREE_CHARS:
            # top-level section: "Audio", "Video", "Settings", the PipeWire banner ...
            if current is not None:
                current.closed = True
                current = None
            in_audio = line.strip() == "Audio"
            saw_audio = saw_audio or in_audio
            continue

        if not in_audio:
            continue

        body = line.lstrip(TREE_CHARS)
        if not body:
            continue

        if _HEADER_RE.match(body):
            if current is not None:
                current.closed = True
            name = body[:-1].strip()
            current = sections.get(name)
            if current is not None:
                if current.seen:
                    raise ParseError(f"section {name} repeated")
                current.seen = True
            continue

        if current is None:
            continue

        dev, vol, muted = _parse_device_line(body)
        current.add(dev, vol, muted)

    if not saw_audio:
        raise ParseError("no Audio section in wpctl status output")
    for name, sec in sections.items():
        if not sec.seen:
            raise ParseError(f"missing {name} section")
        if not sec.closed:
            raise ParseError(f"{name} section looks truncated")

    sink_id, volume, muted = sections["Sinks"].default("sink")
    source_id, source_volume, source_muted = sections["Sources"].default("source")

    return AudioState(
        volume=volume,
        muted=muted,
        default_sink_id=sink_id,
        default_source_id=source_id,
        sinks=tuple(sections["Sinks"].devices),
        sources=tuple(sections["Sources"].devices),
        source_volume=source_volume,
        source_muted=source_muted,
    )
