from rest_framework.response import Response
from rest_framework.views import APIView

from backend.api.serializers import (
    AvailabilitySerializer,
    DriverLoginSerializer,
    LocationSerializer,
    RideStatusSerializer,
    to_latlng,
)
from backend.api.services import get_dispatch_system


class DriverListView(APIView):
    """
    Full roster (debug).
    """

    def get(self, request):
        drivers = [driver.to_dict() for driver in get_dispatch_system().list_drivers()]
        return Response({"drivers": drivers, "count": len(drivers)})


class DriverDetailView(APIView):

    def get(self, request, driver_id):
        driver, session = get_dispatch_system().get_driver(driver_id)
        return Response({
            "driver": driver.to_dict(),
            "session": session.to_dict() if session else None,
        })


class DriverLoginView(APIView):

    def post(self, request):
        serializer = DriverLoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        location = to_latlng(data["location"]) if data.get("location") else None
        driver, session = get_dispatch_system().login(data["driverId"], location)

        return Response({
            "success": True,
            "driver": driver.to_dict(),
            "session": session.to_dict(),
        })


class DriverLogoutView(APIView):

    def post(self, request, driver_id):
        summary = get_dispatch_system().logout(driver_id)
        return Response({
            "success": True,
            "sessionSummary": summary.to_dict() if summary else None,
        })


class DriverAvailabilityView(APIView):
    """
    Off-duty toggle. 400 when going unavailable with a ride in progress.
    """

    def put(self, request, driver_id):
        serializer = AvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = get_dispatch_system().set_availability(driver_id, serializer.validated_data["available"])
        return Response({"success": True, "driver": driver.to_dict()})


class DriverLocationView(APIView):

    def put(self, request, driver_id):
        serializer = LocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = get_dispatch_system().update_location(driver_id, to_latlng(serializer.validated_data))
        return Response({"success": True, "location": driver.location.to_dict()})


class DriverOffersView(APIView):
    """
    Polled by the driver app every few seconds.
    """

    def get(self, request, driver_id):
        offer = get_dispatch_system().pending_offer(driver_id)
        return Response({
            "hasOffer": offer is not None,
            "offer": offer.to_dict() if offer else None,
        })


class AcceptRideView(APIView):
    """
    409 when the offer already expired, was rejected or the driver was taken.
    """

    def post(self, request, driver_id, ride_id):
        system = get_dispatch_system()
        ride = system.accept_offer(driver_id, ride_id)
        return Response({"success": True, "ride": system.ride_payload(ride)})


class RejectRideView(APIView):

    def post(self, request, driver_id, ride_id):
        get_dispatch_system().reject_offer(driver_id, ride_id)
        return Response({"success": True})


class RideStatusUpdateView(APIView):

    def put(self, request, driver_id, ride_id):
        serializer = RideStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        system = get_dispatch_system()
        ride = system.update_ride_status(driver_id, ride_id, serializer.validated_data["status"])
        return Response({"success": True, "ride": system.ride_payload(ride)})


class DriverStatsView(APIView):
    """
    400 when the driver is not logged in.
    """

    def get(self, request, driver_id):
        driver, stats = get_dispatch_system().driver_stats(driver_id)
        return Response({"driver": driver.to_dict(), "stats": stats.to_dict()})
