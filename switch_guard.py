# switch_guard.py
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from models import AudioState, DesiredDevice, DeviceKind, Origin

logger = logging.getLogger(__name__)

Correction = Callable[[DeviceKind, int], None]


class DeviceSwitchGuard:
    """
    Owns the default device the user asked for and holds the backend to it.

    Polls never set a user intent; they are only compared against it. When the
    backend drifts away from a user-chosen device that is still plugged in, one
    corrective set-default is issued per cool-down window. When the chosen device
    is gone, the new default is accepted and the intent goes back to unset.
    Polls issued before a user switch finished are not compared at all.
    """

    def __init__(
        self,
        clock: Callable[[], float],
        correct: Correction,
        cooldown: float = 1.0,
        poll_generation: Callable[[], int] = lambda: 0,
    ) -> None:
        self._clock = clock
        self._poll_generation = poll_generation
        self._correct = correct
        self._cooldown = cooldown
        self.desired: Dict[DeviceKind, DesiredDevice] = {k: DesiredDevice() for k in DeviceKind}
        self._last_correction: Dict[DeviceKind, Optional[float]] = {k: None for k in DeviceKind}
        self._switching: Dict[DeviceKind, Optional[DesiredDevice]] = {k: None for k in DeviceKind}
        # Last poll generation issued before a user switch finished; those polls
        # may have read the device list from before the switch.
        self._settled: Dict[DeviceKind, int] = {k: 0 for k in DeviceKind}

    def observe(self, state: AudioState, gen: Optional[int] = None) -> None:
        for kind in DeviceKind:
            if gen is not None and gen <= self._settled[kind]:
                logger.debug("%s poll %d predates the last switch; not comparing", kind.value, gen)
                continue
            self._observe_kind(kind, state)

    def _observe_kind(self, kind: DeviceKind, state: AudioState) -> None:
        if self._switching[kind] is not None:
            return

        want = self.desired[kind]
        current = state.default_id(kind)

        if want.origin is Origin.UNSET:
            if want.device_id != current:
                logger.debug("adopting %s %s as observed default", kind.value, current)
            want.device_id = current
            return

        if current == want.device_id:
            return

        if not state.has_device(kind, want.device_id):
            logger.info(
                "desired %s %s is gone; accepting %s as the new default", kind.value, want.device_id, current
            )
            want.device_id = current
            want.origin = Origin.UNSET
            return

        now = self._clock()
        last = self._last_correction[kind]
        if last is not None and now - last < self._cooldown:
            logger.debug("%s drifted to %s; correction suppressed by cool-down", kind.value, current)
            return

        self._last_correction[kind] = now
        logger.info("unsolicited %s switch to %s; restoring %s", kind.value, current, want.device_id)
        self._correct(kind, want.device_id)

    def begin_user_switch(self, kind: DeviceKind, device_id: int) -> None:
        prev = self.desired[kind]
        if self._switching[kind] is None:
            self._switching[kind] = DesiredDevice(prev.device_id, prev.origin)
        self.desired[kind] = DesiredDevice(device_id, Origin.USER)

    def end_user_switch(self, kind: DeviceKind, ok: bool) -> None:
        prev = self._switching[kind]
        self._switching[kind] = None
        self._settled[kind] = self._poll_generation()
        if ok or prev is None:
            return
        # The failed target must not become something we keep fighting for.
        self.desired[kind] = prev
