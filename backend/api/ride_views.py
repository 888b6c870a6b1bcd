from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from backend import __version__
from backend.api.serializers import RideRequestSerializer, to_latlng
from backend.api.services import get_dispatch_system


class ServiceInfoView(APIView):

    def get(self, request):
        return Response({
            "service": "Ride dispatch simulator",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "rides": "/api/rides",
                "drivers": "/api/drivers",
                "websocket": "/ws/rides/",
            },
        })


class HealthView(APIView):

    def get(self, request):
        return Response(get_dispatch_system().health())


class RideRequestView(APIView):
    """
    Create a ride and start dispatching it. 400 on missing/invalid coordinates.
    """

    def post(self, request):
        serializer = RideRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        system = get_dispatch_system()
        ride = system.request_ride(to_latlng(data["pickup"]), to_latlng(data["destination"]))
        return Response(system.ride_payload(ride), status=status.HTTP_201_CREATED)


class RideListView(APIView):
    """
    Every ride, newest last (debug).
    """

    def get(self, request):
        system = get_dispatch_system()
        rides = [system.ride_payload(ride) for ride in system.list_rides()]
        return Response({"rides": rides, "count": len(rides)})


class RideDetailView(APIView):

    def get(self, request, ride_id):
        system = get_dispatch_system()
        return Response(system.ride_payload(system.get_ride(ride_id)))


class RideCancelView(APIView):

    def post(self, request, ride_id):
        system = get_dispatch_system()
        ride = system.cancel_ride(ride_id)
        return Response(system.ride_payload(ride))
