from rest_framework import serializers

from dispatch.system import DRIVER_STATUS_MAP
from routing.geo import LatLng


class LocationSerializer(serializers.Serializer):
    """
    {lat, lng, address?} -> LatLng
    """
    lat = serializers.FloatField(min_value=-90.0, max_value=90.0)
    lng = serializers.FloatField(min_value=-180.0, max_value=180.0)
    address = serializers.CharField(required=False, allow_blank=True, allow_null=True)


def to_latlng(validated: dict) -> LatLng:
    return LatLng(lat=validated["lat"], lng=validated["lng"], address=validated.get("address") or None)


class RideRequestSerializer(serializers.Serializer):
    pickup = LocationSerializer()
    destination = LocationSerializer()


class DriverLoginSerializer(serializers.Serializer):
    driverId = serializers.CharField()
    location = LocationSerializer(required=False)


class AvailabilitySerializer(serializers.Serializer):
    available = serializers.BooleanField()


class RideStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=list(DRIVER_STATUS_MAP))
