import random

import numpy as np
import pandas as pd

from drivers.policy import DEFAULT_DRIVER_NAMES, FleetPolicy
from drivers.registry import DriverRegistry
from routing.geo import distance


def generate_mock_drivers(filename="mock_drivers.csv", count=50, seed=42, region_name=None):
    """
    Spawns a roster the same way the backend does (weighted zones, vehicle
    class cycle, rating range) and writes it to CSV, so a simulation run can
    replay the exact same fleet.
    """
    names = [
        DEFAULT_DRIVER_NAMES[i] if i < len(DEFAULT_DRIVER_NAMES) else f"Driver {i + 1}"
        for i in range(count)
    ]
    policy = FleetPolicy(driver_names=names, region_name=region_name)
    policy.validate()

    registry = DriverRegistry.spawn(policy, rng=random.Random(seed))
    center = registry.region.center

    df = pd.DataFrame([
        {
            "driver_id": driver.id,
            "name": driver.name,
            "vehicle_type": driver.vehicle_class.value,
            "vehicle_model": driver.vehicle_model,
            "license_plate": driver.license_plate,
            "rating": driver.rating,
            "lat": round(driver.location.lat, 6),
            "lng": round(driver.location.lng, 6),
            "distance_to_center_m": round(distance(center, driver.location)),
        }
        for driver in registry.all()
    ])
    df.to_csv(filename, index=False)

    spread = df["distance_to_center_m"].to_numpy()
    p50, p90 = np.percentile(spread, [50, 90])

    print(f"Successfully generated {len(df)} mock drivers into '{filename}'.")
    print(f"Region: {registry.region.name}")
    print(f"Vehicle classes: {df['vehicle_type'].value_counts().to_dict()}")
    print(f"Mean rating: {np.round(df['rating'].mean(), 2)}")
    print(f"Distance to center: median {p50:.0f}m, p90 {p90:.0f}m, max {spread.max():.0f}m")
    return df


if __name__ == "__main__":
    generate_mock_drivers()
