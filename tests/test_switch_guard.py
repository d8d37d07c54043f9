from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from models import AudioState, DesiredDevice, Device, DeviceKind, Origin
from switch_guard import DeviceSwitchGuard

SPEAKERS = Device(48, "Speakers")
HDMI = Device(52, "HDMI Output")
MIC = Device(50, "Built-in Mic")


def state(default_sink: Optional[int], sinks=(SPEAKERS, HDMI)) -> AudioState:
    return AudioState(
        volume=0.5,
        muted=False,
        default_sink_id=default_sink,
        default_source_id=50,
        sinks=sinks,
        sources=(MIC,),
    )


class Clock:
    def __init__(self) -> None:
        self.t = 100.0

    def __call__(self) -> float:
        return self.t


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def corrections() -> List[Tuple[DeviceKind, int]]:
    return []


@pytest.fixture
def guard(clock, corrections) -> DeviceSwitchGuard:
    return DeviceSwitchGuard(clock, lambda kind, i: corrections.append((kind, i)), cooldown=1.0)


def choose(guard: DeviceSwitchGuard, device_id: int) -> None:
    guard.begin_user_switch(DeviceKind.SINK, device_id)
    guard.end_user_switch(DeviceKind.SINK, True)


def test_unset_intent_follows_observed_default(guard, corrections) -> None:
    guard.observe(state(48))
    guard.observe(state(52))
    assert guard.desired[DeviceKind.SINK] == DesiredDevice(52, Origin.UNSET)
    assert guard.desired[DeviceKind.SOURCE] == DesiredDevice(50, Origin.UNSET)
    assert corrections == []


def test_one_correction_per_cooldown(guard, clock, corrections) -> None:
    choose(guard, 48)
    for _ in range(5):
        guard.observe(state(52))
        clock.t += 0.1
    assert corrections == [(DeviceKind.SINK, 48)]

    clock.t += 0.6
    guard.observe(state(52))
    assert corrections == [(DeviceKind.SINK, 48), (DeviceKind.SINK, 48)]
    assert guard.desired[DeviceKind.SINK] == DesiredDevice(48, Origin.USER)


def test_unplugged_choice_falls_back_without_correction(guard, corrections, debug_logs) -> None:
    choose(guard, 48)
    guard.observe(state(52, sinks=(HDMI,)))

    assert corrections == []
    assert guard.desired[DeviceKind.SINK] == DesiredDevice(52, Origin.UNSET)
    assert "is gone" in debug_logs.text

    # It is not reasserted when it comes back.
    guard.observe(state(52))
    assert corrections == []


def test_matching_default_needs_nothing(guard, corrections) -> None:
    choose(guard, 52)
    guard.observe(state(52))
    assert corrections == []


def test_no_correction_while_user_switch_in_flight(guard, corrections) -> None:
    guard.observe(state(48))
    guard.begin_user_switch(DeviceKind.SINK, 52)
    guard.observe(state(48))
    assert corrections == []
    assert guard.desired[DeviceKind.SINK] == DesiredDevice(52, Origin.USER)


def test_failed_user_switch_restores_previous_intent(guard, corrections) -> None:
    guard.observe(state(48))
    guard.begin_user_switch(DeviceKind.SINK, 52)
    guard.end_user_switch(DeviceKind.SINK, False)

    assert guard.desired[DeviceKind.SINK] == DesiredDevice(48, Origin.UNSET)
    guard.observe(state(48))
    assert corrections == []


def test_kinds_are_independent(guard, corrections) -> None:
    choose(guard, 48)
    guard.observe(state(52))
    assert corrections == [(DeviceKind.SINK, 48)]
    assert guard.desired[DeviceKind.SOURCE].origin is Origin.UNSET


def test_polls_from_before_a_switch_are_not_compared(clock, corrections) -> None:
    issued = [3]
    guard = DeviceSwitchGuard(
        clock, lambda kind, i: corrections.append((kind, i)), poll_generation=lambda: issued[0]
    )
    guard.observe(state(48), 2)
    choose(guard, 52)

    guard.observe(state(48), 3)
    assert corrections == []
    assert guard.desired[DeviceKind.SINK] == DesiredDevice(52, Origin.USER)

    guard.observe(state(48), 4)
    assert corrections == [(DeviceKind.SINK, 52)]
