#Marks routing as a package.
#Re-exports the geo math and region configuration so other modules import
#from routing without knowing internal file names.
#No dispatch logic.

from .geo import (
    InvalidCoordinateError,
    LatLng,
    bearing,
    distance,
    eta,
    interpolate,
    random_point_in_donut,
    random_point_in_radius,
    route_polyline,
)
from .zones import DriverZone, Region, get_active_region, random_location, random_spawn_point, select_driver_zone

__all__ = [
           "InvalidCoordinateError",
           "LatLng",
           "bearing",
           "distance",
           "eta",
           "interpolate",
           "random_point_in_donut",
           "random_point_in_radius",
           "route_polyline",
           "DriverZone",
           "Region",
           "get_active_region",
           "random_location",
           "random_spawn_point",
           "select_driver_zone",
           ]
