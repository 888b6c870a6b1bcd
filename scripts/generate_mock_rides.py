import random
from datetime import datetime, timedelta

import numpy as np
import pandas as pd

from routing.geo import distance
from routing.zones import get_active_region
from simulation.ride_patterns import generate_ride

# Relative ride demand per hour of day (0..23): commute peaks, quiet small hours.
HOURLY_DEMAND = np.array([
    2, 1, 1, 1, 1, 2, 6, 10, 12, 8, 5, 5,
    6, 5, 5, 6, 8, 11, 12, 9, 7, 6, 5, 3,
], dtype=float)


def generate_mock_rides(output_file="mock_rides.csv", rides_per_day=500, seed=42, region_name=None):
    """
    Generates a day of ride requests: the number of requests per hour is Poisson
    around the hourly demand curve, and each request follows the ride patterns
    active at that hour (commute, airport, tourist, nightlife).
    """
    np_rng = np.random.default_rng(seed)
    rng = random.Random(seed)
    region = get_active_region(region_name)

    expected = HOURLY_DEMAND / HOURLY_DEMAND.sum() * rides_per_day
    counts = np_rng.poisson(expected)

    day = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    data = []

    for hour, count in enumerate(counts):
        for _ in range(int(count)):
            requested_at = day + timedelta(hours=hour, seconds=int(np_rng.integers(0, 3600)))
            ride = generate_ride(region, now=requested_at, rng=rng)
            data.append({
                "requested_at": requested_at.isoformat(),
                "hour": hour,
                "pattern": ride.pattern,
                "pickup_address": ride.pickup.address,
                "pickup_lat": ride.pickup.lat,
                "pickup_lng": ride.pickup.lng,
                "destination_address": ride.destination.address,
                "destination_lat": ride.destination.lat,
                "destination_lng": ride.destination.lng,
                "trip_distance_m": round(distance(ride.pickup, ride.destination)),
            })

    df = pd.DataFrame(data).sort_values("requested_at").reset_index(drop=True)
    df.insert(0, "ride_index", np.arange(1, len(df) + 1))
    df.to_csv(output_file, index=False)

    print(f"Generated {len(df)} ride requests into '{output_file}'.")
    print(df.groupby("pattern")["trip_distance_m"].agg(["count", "mean"]).round(0).to_string())
    return df


if __name__ == "__main__":
    generate_mock_rides()
