from django.urls import path

from .driver_views import (
    AcceptRideView,
    DriverAvailabilityView,
    DriverDetailView,
    DriverListView,
    DriverLocationView,
    DriverLoginView,
    DriverLogoutView,
    DriverOffersView,
    DriverStatsView,
    RejectRideView,
    RideStatusUpdateView,
)
from .ride_views import RideCancelView, RideDetailView, RideListView, RideRequestView

urlpatterns = [
    # Rides
    path("rides", RideListView.as_view(), name="ride-list"),
    path("rides/request", RideRequestView.as_view(), name="ride-request"),
    path("rides/<str:ride_id>", RideDetailView.as_view(), name="ride-detail"),
    path("rides/<str:ride_id>/cancel", RideCancelView.as_view(), name="ride-cancel"),

    # Drivers (login before <driver_id> so it is not read as an id)
    path("drivers", DriverListView.as_view(), name="driver-list"),
    path("drivers/login", DriverLoginView.as_view(), name="driver-login"),
    path("drivers/<str:driver_id>", DriverDetailView.as_view(), name="driver-detail"),
    path("drivers/<str:driver_id>/logout", DriverLogoutView.as_view(), name="driver-logout"),
    path("drivers/<str:driver_id>/availability", DriverAvailabilityView.as_view(), name="driver-availability"),
    path("drivers/<str:driver_id>/location", DriverLocationView.as_view(), name="driver-location"),
    path("drivers/<str:driver_id>/offers", DriverOffersView.as_view(), name="driver-offers"),
    path("drivers/<str:driver_id>/stats", DriverStatsView.as_view(), name="driver-stats"),
    path("drivers/<str:driver_id>/rides/<str:ride_id>/accept", AcceptRideView.as_view(), name="driver-accept"),
    path("drivers/<str:driver_id>/rides/<str:ride_id>/reject", RejectRideView.as_view(), name="driver-reject"),
    path("drivers/<str:driver_id>/rides/<str:ride_id>/status", RideStatusUpdateView.as_view(), name="driver-ride-status"),
]
