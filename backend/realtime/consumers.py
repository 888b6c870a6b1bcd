"""WebSocket consumer relaying ride updates, driver positions and offers."""

import logging
from typing import Any, Dict, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .broadcast import group_for

logger = logging.getLogger(__name__)


class RideUpdatesConsumer(AsyncJsonWebsocketConsumer):
    """
    Client messages:
        {"type": "subscribe", "rideId": ...}      follow a ride
        {"type": "subscribe", "driverId": ...}    receive a driver's offers
        {"type": "unsubscribe", "rideId" | "driverId": ...}

    Server messages: rideUpdate, driverPosition, rideOffer, offerRevoked.
    """

    async def connect(self):
        self.joined_groups: Set[str] = set()
        await self.accept()
        await self.send_json({"type": "connectionEstablished"})

    async def disconnect(self, close_code):
        for group in list(self.joined_groups):
            await self.channel_layer.group_discard(group, self.channel_name)
        self.joined_groups.clear()

    async def receive_json(self, content: Dict[str, Any], **kwargs):
        msg_type = content.get("type") if isinstance(content, dict) else None
        if msg_type == "subscribe":
            await self._subscribe(content)
        elif msg_type == "unsubscribe":
            await self._unsubscribe(content)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _subscribe(self, content: Dict[str, Any]):
        group = group_for(content)
        if group is None:
            await self.send_error("subscribe requires rideId or driverId")
            return

        await self.channel_layer.group_add(group, self.channel_name)
        self.joined_groups.add(group)
        logger.debug("Channel %s joined %s", self.channel_name, group)
        await self.send_json({"type": "subscribed", "group": group})

    async def _unsubscribe(self, content: Dict[str, Any]):
        group = group_for(content)
        if group is None:
            await self.send_error("unsubscribe requires rideId or driverId")
            return

        await self.channel_layer.group_discard(group, self.channel_name)
        self.joined_groups.discard(group)
        await self.send_json({"type": "unsubscribed", "group": group})

    async def send_error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    # ---------------------- Group Events ----------------------

    async def ride_update(self, event):
        await self.send_json({"type": "rideUpdate", "data": event["data"]})

    async def driver_position(self, event):
        await self.send_json({"type": "driverPosition", "data": event["data"]})

    async def ride_offer(self, event):
        await self.send_json({"type": "rideOffer", "data": event["data"]})

    async def offer_revoked(self, event):
        await self.send_json({"type": "offerRevoked", "rideId": event["rideId"]})
