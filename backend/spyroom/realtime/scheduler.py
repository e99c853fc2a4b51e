from __future__ import annotations

import logging
from collections.abc import Callable

from flask_socketio import SocketIO

from ..game import service
from ..game.models import PhaseChanged, PhaseTimer, Room
from ..game.registry import RoomRegistry


logger = logging.getLogger(__name__)

PhaseCallback = Callable[[Room, PhaseChanged], None]


class RoomScheduler:
    """Background work for the gateway: discussion deadlines and the empty-room sweeper.

    A deadline task is started once per questions phase. It never mutates a
    room whose timer has been cleared or replaced; the token check inside
    ``service.expire_timer_if_due`` makes a stale wake-up a no-op.
    """

    def __init__(
        self,
        socketio: SocketIO,
        registry: RoomRegistry,
        on_phase_changed: PhaseCallback,
        enabled: bool = True,
    ) -> None:
        self.socketio = socketio
        self.registry = registry
        self.on_phase_changed = on_phase_changed
        self.enabled = enabled
        self._sweeper_started = False

    def schedule_deadline(self, room_code: str, timer: PhaseTimer) -> None:
        if not self.enabled:
            return
        self.socketio.start_background_task(self._wait_for_deadline, room_code, timer.token, timer.ends_at_ms)

    def _timer_still_pending(self, room_code: str, token: str) -> Room | None:
        room = self.registry.lookup_room(room_code)
        if room is None or room.timer is None or room.timer.token != token:
            return None
        return room

    def _wait_for_deadline(self, room_code: str, token: str, ends_at_ms: int) -> None:
        try:
            while True:
                remaining_ms = ends_at_ms - self.registry.now_ms()
                if remaining_ms <= 0:
                    break
                self.socketio.sleep(remaining_ms / 1000)
                if self._timer_still_pending(room_code, token) is None:
                    return

            room = self._timer_still_pending(room_code, token)
            if room is None:
                return
            changed = service.expire_timer_if_due(room, self.registry.now_ms(), token=token)
            if changed is not None:
                logger.info("room %s discussion time is up", room_code)
                self.on_phase_changed(room, changed)
        except Exception:
            logger.exception("deadline task for room %s failed", room_code)

    def start_sweeper(self, interval_sec: int, grace_sec: int) -> None:
        if not self.enabled or self._sweeper_started or interval_sec <= 0:
            return
        self._sweeper_started = True
        self.socketio.start_background_task(self._sweep_forever, interval_sec, grace_sec * 1000)

    def _sweep_forever(self, interval_sec: int, grace_ms: int) -> None:
        while True:
            self.socketio.sleep(interval_sec)
            try:
                removed = self.registry.sweep_empty_rooms(grace_ms)
                if removed:
                    logger.info("sweeper removed %d empty room(s)", len(removed))
            except Exception:
                logger.exception("empty-room sweep failed")
