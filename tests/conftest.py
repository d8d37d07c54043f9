"""Shared fixtures: a manual-clock scheduler and a scripted wpctl/playerctl pair."""

from __future__ import annotations

import logging
import os
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set, Tuple

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

import mpris_cli
from tool_exec import ToolError, ToolErrorKind, ToolResult


class FakeTimer:
    def __init__(self, due: float, fn: Callable[[], None], interval: Optional[float] = None) -> None:
        self.due = due
        self.fn = fn
        self.interval = interval
        self.active = True

    def cancel(self) -> None:
        self.active = False


class FakeScheduler:
    """
    Same surface as QtScheduler, driven by hand.

    Time only moves in advance(); background jobs only run in run_jobs(), which
    also runs anything queued by the callbacks it delivers to.
    """

    def __init__(self) -> None:
        self.t = 0.0
        self.timers: List[FakeTimer] = []
        self.jobs: Deque[Tuple[Callable[[], Any], Callable[[Any], None]]] = deque()

    def now(self) -> float:
        return self.t

    def call_later(self, delay: float, fn: Callable[[], None]) -> FakeTimer:
        h = FakeTimer(self.t + delay, fn)
        self.timers.append(h)
        return h

    def call_repeating(self, interval: float, fn: Callable[[], None]) -> FakeTimer:
        h = FakeTimer(self.t + interval, fn, interval)
        self.timers.append(h)
        return h

    def submit(self, job: Callable[[], Any], done: Callable[[Any], None]) -> None:
        self.jobs.append((job, done))

    def run_jobs(self) -> int:
        n = 0
        while self.jobs:
            job, done = self.jobs.popleft()
            try:
                result = job()
            except Exception as e:
                result = e
            done(result)
            n += 1
        return n

    def advance(self, dt: float) -> None:
        target = self.t + dt
        while True:
            live = [h for h in self.timers if h.active and h.due <= target]
            if not live:
                break
            h = min(live, key=lambda x: x.due)
            self.t = max(self.t, h.due)
            if h.interval is None:
                h.active = False
            else:
                h.due += h.interval
            h.fn()
        self.timers = [h for h in self.timers if h.active]
        self.t = target

    def step(self, dt: float) -> None:
        self.advance(dt)
        self.run_jobs()


def _verb(args: Sequence[str]) -> str:
    for a in args:
        if not a.startswith("--"):
            return a
    return ""


class FakeTools:
    """
    A scripted stand-in for tool_exec.run that also behaves like a tiny audio
    server: set-volume, set-mute and set-default change what the next status
    reports, and transport commands change player status.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, List[str]]] = []
        self.sinks: Dict[int, List[Any]] = {48: ["Speakers", 0.40, False], 52: ["HDMI Output", 1.00, False]}
        self.sources: Dict[int, List[Any]] = {50: ["Built-in Mic", 0.60, False]}
        self.default_sink = 48
        self.default_source = 50
        self.players: List[List[str]] = []
        self.missing: Set[str] = set()
        self.failures: Dict[str, ToolError] = {}
        self.raw: Dict[str, str] = {}

    def __call__(self, command: str, args: Sequence[str], timeout: float) -> ToolResult:
        args = list(args)
        self.calls.append((command, args))
        if command in self.missing:
            return ToolResult(command, error=ToolError(ToolErrorKind.NOT_FOUND))
        verb = _verb(args)
        err = self.failures.get(verb)
        if err is not None:
            return ToolResult(command, error=err)
        if verb in self.raw:
            return ToolResult(command, stdout=self.raw[verb])
        if command == "wpctl":
            return self._wpctl(args)
        return self._playerctl(args)

    # inspection

    def commands(self, verb: Optional[str] = None) -> List[Tuple[str, List[str]]]:
        out = [c for c in self.calls if _verb(c[1]) not in ("status", "metadata")]
        if verb is not None:
            out = [c for c in out if _verb(c[1]) == verb]
        return out

    # wpctl

    def _resolve(self, target: str) -> Tuple[Dict[int, List[Any]], int]:
        if target == "@DEFAULT_AUDIO_SINK@":
            return self.sinks, self.default_sink
        if target == "@DEFAULT_AUDIO_SOURCE@":
            return self.sources, self.default_source
        i = int(target)
        return (self.sinks if i in self.sinks else self.sources), i

    def _wpctl(self, args: List[str]) -> ToolResult:
        verb = args[0]
        if verb == "status":
            return ToolResult("wpctl", stdout=self.status_text())
        if verb == "set-volume":
            devs, i = self._resolve(args[1])
            devs[i][1] = float(args[2])
        elif verb == "set-mute":
            devs, i = self._resolve(args[1])
            devs[i][2] = (not devs[i][2]) if args[2] == "toggle" else args[2] == "1"
        elif verb == "set-default":
            i = int(args[1])
            if i in self.sinks:
                self.default_sink = i
            elif i in self.sources:
                self.default_source = i
            else:
                return ToolResult("wpctl", error=ToolError(ToolErrorKind.NON_ZERO_EXIT, 1, f"Object '{i}' not found"))
        return ToolResult("wpctl")

    def status_text(self) -> str:
        return wpctl_status(self.sinks, self.sources, self.default_sink, self.default_source)

    # playerctl

    def _playerctl(self, args: List[str]) -> ToolResult:
        verb = _verb(args)
        if verb == "metadata":
            if not self.players:
                return ToolResult(
                    "playerctl", error=ToolError(ToolErrorKind.NON_ZERO_EXIT, 1, "No players found")
                )
            return ToolResult("playerctl", stdout=metadata_text(self.players))
        target = next((a.split("=", 1)[1] for a in args if a.startswith("--player=")), None)
        for p in self.players:
            if p[0] == target:
                if verb == "play-pause":
                    p[1] = "Paused" if p[1] == "Playing" else "Playing"
                elif verb in ("play", "pause", "stop"):
                    p[1] = {"play": "Playing", "pause": "Paused", "stop": "Stopped"}[verb]
        return ToolResult("playerctl")


def wpctl_status(
    sinks: Dict[int, Sequence[Any]],
    sources: Dict[int, Sequence[Any]],
    default_sink: Optional[int],
    default_source: Optional[int],
) -> str:
    def rows(devs: Dict[int, Sequence[Any]], default: Optional[int]) -> List[str]:
        out = []
        for i, (name, vol, muted) in devs.items():
            mark = "*" if i == default else " "
            tag = f"vol: {vol:.2f}" + (" MUTED" if muted else "")
            out.append(f" │  {mark}   {i}. {name:<32} [{tag}]")
        return out

    lines = [
        "PipeWire 'pipewire-0' [1.0.5, user@host, cookie:3141592653]",
        " └─ Clients:",
        "        31. WirePlumber                         [1.0.5, user@host, pid:1204]",
        "",
        "Audio",
        " ├─ Devices:",
        " │      42. Built-in Audio                      [alsa]",
        " │      43. HDA NVidia                          [alsa]",
        " │  ",
        " ├─ Sinks:",
        *rows(sinks, default_sink),
        " │  ",
        " ├─ Sink endpoints:",
        " │  ",
        " ├─ Sources:",
        *rows(sources, default_source),
        " │  ",
        " ├─ Source endpoints:",
        " │  ",
        " └─ Streams:",
        "        77. Firefox",
        "             78. output_FL       > Speakers:playback_FL	[active]",
        "",
        "Video",
        " ├─ Devices:",
        " │      60. Integrated Camera                   [v4l2]",
        " │  ",
        " └─ Streams:",
        "",
        "Settings",
        " └─ Default Configured Node Names:",
        "         0. Audio/Sink    alsa_output.pci-0000_00_1f.3.analog-stereo",
    ]
    return "\n".join(lines) + "\n"


def metadata_text(players: Sequence[Sequence[str]]) -> str:
    out = []
    for p in players:
        name, status = p[0], p[1]
        title = p[2] if len(p) > 2 else ""
        artist = p[3] if len(p) > 3 else ""
        out.append(mpris_cli.FIELD_SEP.join([name, status, title, artist, "", "1000000"]))
    return "\n".join(out) + "\n"


@pytest.fixture
def sched() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def tools() -> FakeTools:
    return FakeTools()


@pytest.fixture
def status_text(tools: FakeTools) -> str:
    return tools.status_text()


@pytest.fixture
def debug_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG)
    return caplog
