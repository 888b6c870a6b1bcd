"""
Purpose: Outbound real-time notifications.
What it does:
PushService is the do-nothing interface the dispatcher and the simulator talk
to. The backend plugs in a Channels implementation; tests plug in a recorder.
FanoutPushService forwards to several services and keeps going when one fails.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)


class PushService:

    def broadcast_ride_update(self, ride_payload: dict) -> None:
        pass

    def broadcast_driver_position(self, position_payload: dict) -> None:
        pass

    def broadcast_offer(self, driver_id: str, offer_payload: dict) -> None:
        pass

    def revoke_offer(self, driver_id: str, ride_id: str) -> None:
        pass


class FanoutPushService(PushService):

    def __init__(self, services: Iterable[PushService] = ()):
        self.services: List[PushService] = list(services)

    def add(self, service: PushService) -> None:
        self.services.append(service)

    def _each(self, method: str, *args) -> None:
        for service in self.services:
            try:
                getattr(service, method)(*args)
            except Exception:
                logger.exception("%s.%s failed", type(service).__name__, method)

    def broadcast_ride_update(self, ride_payload: dict) -> None:
        self._each("broadcast_ride_update", ride_payload)

    def broadcast_driver_position(self, position_payload: dict) -> None:
        self._each("broadcast_driver_position", position_payload)

    def broadcast_offer(self, driver_id: str, offer_payload: dict) -> None:
        self._each("broadcast_offer", driver_id, offer_payload)

    def revoke_offer(self, driver_id: str, ride_id: str) -> None:
        self._each("revoke_offer", driver_id, ride_id)
