import random
from dataclasses import FrozenInstanceError

import pytest

from common.exceptions import ActiveRideError, DriverNotFoundError
from drivers.policy import FleetPolicy
from drivers.registry import DriverRegistry
from routing.geo import LatLng, distance
from routing.zones import Region

from conftest import PICKUP, driver_near


@pytest.fixture
def registry():
    return DriverRegistry(
        [driver_near("driver_1", PICKUP, 500), driver_near("driver_2", PICKUP, 1500)],
        rng=random.Random(3),
    )


def test_spawn_builds_one_driver_per_name():
    """
    Spawned drivers get sequential ids, the vehicle class cycle and a rating
    inside the configured range, and start available.
    """
    policy = FleetPolicy(driver_names=["Ana", "Ben", "Cleo", "Dev"], rating_range=(4.5, 5.0))
    registry = DriverRegistry.spawn(policy, rng=random.Random(11))

    drivers = registry.all()

    # 1. One per name, in order
    assert [d.id for d in drivers] == ["driver_1", "driver_2", "driver_3", "driver_4"]
    assert [d.name for d in drivers] == ["Ana", "Ben", "Cleo", "Dev"]

    # 2. Vehicle classes follow the cycle
    cycle = policy.vehicle_class_cycle
    for index, driver in enumerate(drivers):
        assert driver.vehicle_class.value == cycle[index % len(cycle)]

    # 3. Ratings in range, with one decimal
    for driver in drivers:
        assert 4.5 <= driver.rating <= 5.0
        assert driver.rating == round(driver.rating, 1)
        assert driver.is_assignable


def test_spawn_places_drivers_inside_a_zone():
    registry = DriverRegistry.spawn(FleetPolicy(), rng=random.Random(5))
    zones = registry.region.zones

    for driver in registry.all():
        assert any(distance(zone.center, driver.location) <= zone.radius_m + 1e-3 for zone in zones)


def test_region_without_zones_spawns_and_relocates_in_its_donut():
    """
    With no weighted zones, drivers appear between the region's minimum and
    maximum spawn radius around its center, both at spawn and on relocation.
    """
    center = LatLng(37.7749, -122.4194)
    region = Region(name="Ring", center=center, spawn_min_radius_m=1000, spawn_max_radius_m=5000, zones=[])
    region.validate()

    registry = DriverRegistry.spawn(FleetPolicy(), region=region, rng=random.Random(9))
    for driver in registry.all():
        assert 1000 - 1e-3 <= distance(center, driver.location) <= 5000 + 1e-3

    registry.assign("driver_1", "ride_a")
    driver = registry.complete_ride("driver_1", ride_id="ride_a", relocate=True)
    assert 1000 - 1e-3 <= distance(center, driver.location) <= 5000 + 1e-3


def test_region_needs_zones_or_a_donut():
    region = Region(name="Nowhere", center=LatLng(0.0, 0.0), spawn_min_radius_m=0, spawn_max_radius_m=0, zones=[])
    with pytest.raises(ValueError):
        region.validate()


def test_get_unknown_driver(registry):
    with pytest.raises(DriverNotFoundError):
        registry.get("driver_404")
    assert registry.find("driver_404") is None


def test_assign_is_check_and_set(registry):
    """
    The first assignment wins; a second ride cannot grab the same driver.
    """
    assert registry.assign("driver_1", "ride_a") is True
    assert registry.assign("driver_1", "ride_b") is False

    driver = registry.get("driver_1")
    assert driver.current_ride_id == "ride_a"
    assert not driver.available
    assert [d.id for d in registry.available()] == ["driver_2"]


def test_assign_refuses_unavailable_driver(registry):
    registry.set_availability("driver_2", False)
    assert registry.assign("driver_2", "ride_a") is False
    assert registry.get("driver_2").current_ride_id is None


def test_going_offline_with_active_ride_is_refused(registry):
    registry.assign("driver_1", "ride_a")

    with pytest.raises(ActiveRideError):
        registry.set_availability("driver_1", False)

    # Going available mid-ride changes nothing
    driver = registry.set_availability("driver_1", True)
    assert driver.current_ride_id == "ride_a"
    assert not driver.available


def test_complete_ride_frees_and_relocates(registry):
    before = registry.get("driver_1").location
    registry.assign("driver_1", "ride_a")

    driver = registry.complete_ride("driver_1", ride_id="ride_a", relocate=True)

    assert driver.is_assignable
    assert driver.location != before
    assert registry.get("driver_1") == driver


def test_complete_ride_without_relocation_keeps_position(registry):
    before = registry.get("driver_1").location
    registry.assign("driver_1", "ride_a")

    driver = registry.complete_ride("driver_1", ride_id="ride_a", relocate=False)
    assert driver.is_assignable
    assert driver.location == before


def test_stale_release_is_ignored(registry):
    """
    Releasing a driver for a ride it no longer serves must not free it from
    its current ride.
    """
    registry.assign("driver_1", "ride_new")

    driver = registry.complete_ride("driver_1", ride_id="ride_old")
    assert driver.current_ride_id == "ride_new"
    assert not driver.available


def test_snapshots_are_immutable(registry):
    snapshot = registry.get("driver_1")
    registry.update_location("driver_1", PICKUP)

    assert snapshot.location != PICKUP
    assert registry.get("driver_1").location == PICKUP

    with pytest.raises(FrozenInstanceError):
        snapshot.available = False
