from asgiref.sync import async_to_sync
from channels.layers import InMemoryChannelLayer, get_channel_layer
from channels.testing import WebsocketCommunicator

from backend.realtime.broadcast import ChannelsPushService, driver_group, group_for, ride_group
from backend.realtime.consumers import RideUpdatesConsumer


def test_group_names():
    assert ride_group("r1") == "ride_r1"
    assert driver_group("driver_1") == "driver_driver_1"

    assert group_for({"rideId": "r1", "driverId": "driver_1"}) == "ride_r1"
    assert group_for({"driverId": "driver_1"}) == "driver_driver_1"
    assert group_for({}) is None


def test_push_service_publishes_to_groups():
    """
    Ride updates go to the ride's group, offers to the driver's group.
    """
    layer = InMemoryChannelLayer()
    async_to_sync(layer.group_add)(ride_group("r1"), "rider.watcher")
    async_to_sync(layer.group_add)(driver_group("driver_1"), "driver.phone")
    service = ChannelsPushService(channel_layer=layer)

    service.broadcast_ride_update({"rideId": "r1", "status": "searching"})
    service.broadcast_offer("driver_1", {"rideId": "r1"})
    service.revoke_offer("driver_1", "r1")

    # 1. Ride update
    message = async_to_sync(layer.receive)("rider.watcher")
    assert message == {"type": "ride.update", "data": {"rideId": "r1", "status": "searching"}}

    # 2. Offer, then its revocation
    assert async_to_sync(layer.receive)("driver.phone") == {"type": "ride.offer", "data": {"rideId": "r1"}}
    assert async_to_sync(layer.receive)("driver.phone") == {"type": "offer.revoked", "rideId": "r1"}


def test_push_failures_are_swallowed(caplog):
    class BrokenLayer:
        async def group_send(self, group, message):
            raise RuntimeError("layer down")

    service = ChannelsPushService(channel_layer=BrokenLayer())
    service.broadcast_driver_position({"rideId": "r1"})

    assert "Failed to publish driver.position" in caplog.text


def test_consumer_subscribes_and_relays():
    """
    A subscribed socket receives the ride's updates as rideUpdate messages.
    """

    async def scenario():
        communicator = WebsocketCommunicator(RideUpdatesConsumer.as_asgi(), "/ws/rides/")
        connected, _ = await communicator.connect()
        assert connected

        received = [await communicator.receive_json_from()]

        await communicator.send_json_to({"type": "subscribe", "rideId": "r42"})
        received.append(await communicator.receive_json_from())

        await get_channel_layer().group_send("ride_r42", {"type": "ride.update", "data": {"rideId": "r42"}})
        received.append(await communicator.receive_json_from())

        await communicator.send_json_to({"type": "dance"})
        received.append(await communicator.receive_json_from())

        await communicator.disconnect()
        return received

    established, subscribed, update, error = async_to_sync(scenario)()

    assert established == {"type": "connectionEstablished"}
    assert subscribed == {"type": "subscribed", "group": "ride_r42"}
    assert update == {"type": "rideUpdate", "data": {"rideId": "r42"}}
    assert error == {"type": "error", "message": "Unknown message type: dance"}
