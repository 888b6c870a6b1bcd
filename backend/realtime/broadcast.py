"""
Channel-layer publisher for ride updates, driver positions and offers.

Groups:
    ride_<rideId>      ride status updates and driver positions for that ride
    driver_<driverId>  offers (and their revocation) for that driver

Publishing is best effort: a failed group_send is logged and never reaches
the dispatch code that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from dispatch.push import PushService

logger = logging.getLogger(__name__)


def ride_group(ride_id: str) -> str:
    return f"ride_{ride_id}"


def driver_group(driver_id: str) -> str:
    return f"driver_{driver_id}"


class ChannelsPushService(PushService):

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    def _send(self, group: str, message: Dict[str, Any]) -> None:
        layer = self.channel_layer
        if layer is None:
            logger.debug("No channel layer configured, dropping %s", message["type"])
            return
        try:
            async_to_sync(layer.group_send)(group, message)
        except Exception:
            logger.exception("Failed to publish %s to %s", message["type"], group)

    # ---------------------- PushService ----------------------

    def broadcast_ride_update(self, ride_payload: dict) -> None:
        self._send(ride_group(ride_payload["rideId"]), {"type": "ride.update", "data": ride_payload})

    def broadcast_driver_position(self, position_payload: dict) -> None:
        self._send(ride_group(position_payload["rideId"]), {"type": "driver.position", "data": position_payload})

    def broadcast_offer(self, driver_id: str, offer_payload: dict) -> None:
        self._send(driver_group(driver_id), {"type": "ride.offer", "data": offer_payload})

    def revoke_offer(self, driver_id: str, ride_id: str) -> None:
        self._send(driver_group(driver_id), {"type": "offer.revoked", "rideId": ride_id})


def group_for(message: Dict[str, Any]) -> Optional[str]:
    """
    Group a client subscription message refers to (rideId wins over driverId).
    """
    if message.get("rideId"):
        return ride_group(str(message["rideId"]))
    if message.get("driverId"):
        return driver_group(str(message["driverId"]))
    return None
