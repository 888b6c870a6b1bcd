import os
import random

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "backend.dispatch_backend.settings")
django.setup()

from common.scheduling import ManualScheduler
from dispatch.policy import DispatchPolicy
from dispatch.push import PushService
from dispatch.system import DispatchSystem
from drivers.models import Driver
from drivers.registry import DriverRegistry
from drivers.sessions import DriverSessions
from routing.geo import LatLng, offset
from simulation.policy import MovementPolicy

# Union Square -> Fisherman's Wharf, roughly 2.5 km apart.
PICKUP = LatLng(37.7879, -122.4074, address="Union Square")
DESTINATION = LatLng(37.8080, -122.4177, address="Fisherman's Wharf")


class RecordingPushService(PushService):
    """
    Collects every push instead of sending it.
    """

    def __init__(self):
        self.ride_updates = []
        self.positions = []
        self.offers = []
        self.revoked = []

    def broadcast_ride_update(self, ride_payload):
        self.ride_updates.append(ride_payload)

    def broadcast_driver_position(self, position_payload):
        self.positions.append(position_payload)

    def broadcast_offer(self, driver_id, offer_payload):
        self.offers.append((driver_id, offer_payload))

    def revoke_offer(self, driver_id, ride_id):
        self.revoked.append((driver_id, ride_id))

    def statuses_for(self, ride_id):
        return [p["status"] for p in self.ride_updates if p["rideId"] == ride_id]


def make_driver(driver_id, location, name=None):
    return Driver.new(
        driver_id=driver_id,
        name=name or driver_id.replace("_", " ").title(),
        lat=location.lat,
        lng=location.lng,
        rng=random.Random(0),
    )


def driver_near(driver_id, center, distance_m, angle_rad=0.0):
    return make_driver(driver_id, offset(center, distance_m, angle_rad))


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def push():
    return RecordingPushService()


@pytest.fixture
def dispatch_policy():
    # Practice offers are covered on their own in test_practice_offers.
    return DispatchPolicy(offer_timeout_seconds=5, search_delay_range_seconds=(2, 4), practice_offers=False)


@pytest.fixture
def movement_policy():
    # Short phases so a whole ride fits in a minute of virtual time.
    return MovementPolicy(
        tick_interval_seconds=0.5,
        pickup_duration_range_seconds=(10, 10),
        destination_duration_seconds=20,
        pickup_pause_seconds=2,
        near_arrival_threshold_m=100,
        route_points=10,
    )


@pytest.fixture
def make_system(scheduler, rng, push, dispatch_policy, movement_policy):
    """
    Factory: a DispatchSystem on the virtual clock around the given drivers.
    """
    systems = []

    def build(drivers=()):
        system = DispatchSystem(
            registry=DriverRegistry(drivers, rng=rng),
            scheduler=scheduler,
            push_service=push,
            dispatch_policy=dispatch_policy,
            movement_policy=movement_policy,
            sessions=DriverSessions(),
            rng=rng,
        )
        systems.append(system)
        return system

    yield build

    for system in systems:
        system.shutdown()
