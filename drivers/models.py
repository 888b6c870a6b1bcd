"""
Purpose: Core data models for the drivers domain.
What it does:
Defines the structure of a Driver, its vehicle class and a match result,
without relying on Django ORM constraints.
"""

from __future__ import annotations

import random
import string
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from routing.geo import LatLng

VEHICLE_MODELS = [
    "Toyota Camry",
    "Honda Accord",
    "Tesla Model 3",
    "Toyota Prius",
    "Honda Civic",
    "Ford Fusion",
    "Chevrolet Malibu",
    "Nissan Altima",
]


class VehicleClass(str, Enum):
    STANDARD = "Standard"
    PREMIUM = "Premium"
    XL = "XL"


@dataclass(frozen=True)
class Driver:
    """
    A snapshot of a driver at a specific point in time.

    Only DriverRegistry creates new snapshots (via dataclasses.replace), so a
    caller holding a Driver can never move or assign the real one.
    """
    id: str
    name: str
    location: LatLng
    vehicle_class: VehicleClass = VehicleClass.STANDARD
    rating: float = 4.8
    available: bool = True
    current_ride_id: Optional[str] = None
    vehicle_model: str = "Toyota Camry"
    license_plate: str = "ABC-1234"

    @property
    def is_assignable(self) -> bool:
        return self.available and self.current_ride_id is None

    @classmethod
    def new(
        cls,
        driver_id: str,
        name: str,
        lat: float,
        lng: float,
        vehicle_class: str | VehicleClass = VehicleClass.STANDARD,
        rating: float = 4.8,
        rng: Optional[random.Random] = None,
    ) -> Driver:
        if isinstance(vehicle_class, str):
            vehicle_class = VehicleClass(vehicle_class)
        rng = rng or random

        return cls(
            id=driver_id,
            name=name,
            location=LatLng(lat, lng),
            vehicle_class=vehicle_class,
            rating=rating,
            vehicle_model=rng.choice(VEHICLE_MODELS),
            license_plate=generate_license_plate(rng),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "vehicleType": self.vehicle_class.value,
            "vehicleModel": self.vehicle_model,
            "licensePlate": self.license_plate,
            "rating": self.rating,
            "location": self.location.to_dict(),
            "available": self.available,
            "currentRideId": self.current_ride_id,
        }


@dataclass(frozen=True)
class DriverMatch:
    """
    Result of a nearest-driver search.
    """
    driver: Driver
    distance_m: float
    eta_s: int


def generate_license_plate(rng: Optional[random.Random] = None) -> str:
    """ABC-1234 format."""
    rng = rng or random
    letters = "".join(rng.choice(string.ascii_uppercase) for _ in range(3))
    digits = "".join(rng.choice(string.digits) for _ in range(4))
    return f"{letters}-{digits}"
