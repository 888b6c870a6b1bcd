import logging
import os
import random
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

import pandas as pd

from common.exceptions import DriverNotAvailableError, OfferNotFoundError, RideNotAvailableError
from common.scheduling import ManualScheduler
from dispatch.policy import DispatchPolicy
from dispatch.push import PushService
from dispatch.system import DispatchSystem
from drivers.models import Driver
from drivers.policy import FleetPolicy
from drivers.registry import DriverRegistry
from rides.models import RideStatus
from routing.geo import distance, eta
from simulation.policy import MovementPolicy
from simulation.ride_patterns import generate_ride

logger = logging.getLogger("dispatch_simulation")


class SimulatedDriverApps(PushService):
    """
    Stands in for the phones of the logged-in drivers: each offer is accepted,
    rejected or ignored after a short think time, and accepted rides are
    driven through arrived -> pickedUp -> completed by status reports.
    """

    def __init__(self, scheduler, rng, accept_probability=0.6, ignore_probability=0.2):
        self.scheduler = scheduler
        self.rng = rng
        self.accept_probability = accept_probability
        self.ignore_probability = ignore_probability
        self.system: Optional[DispatchSystem] = None
        self.decisions = {"accepted": 0, "rejected": 0, "ignored": 0, "too_late": 0}

    def broadcast_offer(self, driver_id, offer_payload):
        roll = self.rng.random()
        if roll < self.ignore_probability:
            self.decisions["ignored"] += 1
            return

        accept = roll < self.ignore_probability + self.accept_probability
        think_time = self.rng.uniform(0.5, 4.0)
        self.scheduler.call_later(think_time, self._respond, driver_id, offer_payload["rideId"], accept, name="driver-decision")

    def _respond(self, driver_id, ride_id, accept):
        try:
            if accept:
                ride = self.system.accept_offer(driver_id, ride_id)
                self.decisions["accepted"] += 1
                self._drive(driver_id, ride.id, ride.estimated_arrival_s or 60)
            else:
                self.system.reject_offer(driver_id, ride_id)
                self.decisions["rejected"] += 1
        except (OfferNotFoundError, DriverNotAvailableError) as e:
            self.decisions["too_late"] += 1
            logger.info("Driver %s responded too late: %s", driver_id, e)

    def _drive(self, driver_id, ride_id, seconds_to_pickup):
        ride = self.system.get_ride(ride_id)
        trip_seconds = max(60, eta(distance(ride.pickup, ride.destination)))

        self.scheduler.call_later(seconds_to_pickup, self._report, driver_id, ride_id, "arrived", name="driver-status")
        self.scheduler.call_later(seconds_to_pickup + 30, self._report, driver_id, ride_id, "pickedUp", name="driver-status")
        self.scheduler.call_later(
            seconds_to_pickup + 30 + trip_seconds, self._report, driver_id, ride_id, "completed", name="driver-status",
        )

    def _report(self, driver_id, ride_id, status):
        try:
            self.system.update_ride_status(driver_id, ride_id, status)
        except RideNotAvailableError as e:
            logger.info("Status %s for ride %s ignored: %s", status, ride_id, e)


def load_drivers(filepath="mock_drivers.csv") -> List[Driver]:
    """
    Roster written by scripts/generate_mock_drivers.py.
    """
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    df = pd.read_csv(os.path.join(base_dir, filepath))

    drivers = []
    for row in df.itertuples(index=False):
        drivers.append(
            Driver.new(
                driver_id=row.driver_id,
                name=row.name,
                lat=float(row.lat),
                lng=float(row.lng),
                vehicle_class=row.vehicle_type,
                rating=float(row.rating),
            )
        )
    return drivers


def run_simulation(
    num_rides=20,
    online_drivers=3,
    accept_probability=0.6,
    seed=7,
    drivers_csv=None,
    output_file="dispatch_results.csv",
):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    print("=== STARTING END-TO-END DISPATCH SIMULATION ===")

    rng = random.Random(seed)
    scheduler = ManualScheduler()

    if drivers_csv:
        registry = DriverRegistry(load_drivers(drivers_csv), rng=rng)
    else:
        registry = DriverRegistry.spawn(FleetPolicy.from_env(), rng=rng)

    apps = SimulatedDriverApps(scheduler, rng, accept_probability=accept_probability)
    system = DispatchSystem(
        registry=registry,
        scheduler=scheduler,
        push_service=apps,
        # Only requested rides here; practice offers would keep the run from going idle.
        dispatch_policy=replace(DispatchPolicy.from_env(), practice_offers=False),
        movement_policy=MovementPolicy.from_env(),
        rng=rng,
    )
    apps.system = system
    print(f"Fleet: {len(registry)} drivers in {registry.region.name if registry.region else 'custom roster'}")

    for driver in registry.all()[:online_drivers]:
        system.login(driver.id)
    print(f"Logged in {min(online_drivers, len(registry))} drivers as real app users.\n")

    # 1. Feed ride requests, a few virtual seconds apart
    requested = []
    for _ in range(num_rides):
        generated = generate_ride(registry.region, now=datetime.now(), rng=rng)
        ride = system.request_ride(generated.pickup, generated.destination)
        requested.append((ride.id, generated.pattern))
        scheduler.advance(rng.uniform(5.0, 30.0))

    # 2. Let every offer, search and movement simulation run to the end
    elapsed = scheduler.run_until_idle(max_seconds=4 * 3600, step=1.0)
    print(f"\nSimulated {scheduler.now():.0f}s of dispatch ({elapsed:.0f}s after the last request).\n")

    # 3. Report
    rows = []
    for ride_id, pattern in requested:
        ride = system.get_ride(ride_id)
        rows.append({
            "ride_id": ride.id,
            "pattern": pattern,
            "status": ride.status.value,
            "assigned_via": ride.assigned_via.value if ride.assigned_via else None,
            "driver_id": ride.driver_id or ride.previous_driver_id,
            "fare": system.dispatcher.estimate_fare(ride),
        })
    df = pd.DataFrame(rows)

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    output_path = os.path.join(base_dir, output_file)
    df.to_csv(output_path, index=False)

    completed = df[df["status"] == RideStatus.COMPLETED.value]
    print("=== SIMULATION COMPLETE ===")
    print(f"Ride statuses: {df['status'].value_counts().to_dict()}")
    print(f"Assigned via: {df['assigned_via'].value_counts().to_dict()}")
    print(f"Offer decisions: {apps.decisions}")
    print(f"Completed fares: ${completed['fare'].sum():.2f} over {len(completed)} rides")
    print(f"Results written to '{output_path}'.")

    system.shutdown()
    return df


if __name__ == "__main__":
    run_simulation()
