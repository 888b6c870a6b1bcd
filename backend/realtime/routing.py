"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers import RideUpdatesConsumer

websocket_urlpatterns = [
    # URL: ws://localhost:8000/ws/rides/
    re_path(r"ws/rides/$", RideUpdatesConsumer.as_asgi(), name="rides-ws"),
]
