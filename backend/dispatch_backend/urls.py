from django.urls import include, path

from backend.api.ride_views import HealthView, ServiceInfoView

urlpatterns = [
    path("", ServiceInfoView.as_view(), name="service-info"),
    path("health", HealthView.as_view(), name="health"),
    path("api/", include("backend.api.urls")),
]
