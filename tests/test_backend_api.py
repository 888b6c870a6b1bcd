import pytest
from rest_framework.test import APIClient

from backend.api.services import set_dispatch_system

from conftest import DESTINATION, PICKUP, driver_near

RIDE_REQUEST = {"pickup": PICKUP.to_dict(), "destination": DESTINATION.to_dict()}


@pytest.fixture
def system(make_system):
    system = make_system([
        driver_near("driver_1", PICKUP, 2000),
        driver_near("driver_2", PICKUP, 3500, 2.0),
    ])
    set_dispatch_system(system)
    yield system
    set_dispatch_system(None)


@pytest.fixture
def client(system):
    return APIClient()


def login(client, driver_id="driver_1"):
    response = client.post("/api/drivers/login", {"driverId": driver_id}, format="json")
    assert response.status_code == 200
    return response.json()


def request_ride(client):
    response = client.post("/api/rides/request", RIDE_REQUEST, format="json")
    assert response.status_code == 201
    return response.json()


def test_service_info_and_health(client):
    info = client.get("/").json()
    assert info["endpoints"]["websocket"] == "/ws/rides/"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["drivers"] == {"total": 2, "available": 2, "online": 0}
    assert health["rides"] == {"total": 0, "active": 0}


def test_request_ride_validation(client):
    """
    Missing destination and out-of-range coordinates are 400s with details.
    """
    response = client.post("/api/rides/request", {"pickup": PICKUP.to_dict()}, format="json")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"
    assert "destination" in response.json()["details"]

    bad = {"pickup": {"lat": 123.0, "lng": 0.0}, "destination": DESTINATION.to_dict()}
    response = client.post("/api/rides/request", bad, format="json")
    assert response.status_code == 400


def test_request_and_fetch_ride(client):
    ride = request_ride(client)

    assert ride["status"] == "searching"
    assert ride["pickup"]["address"] == "Union Square"

    fetched = client.get(f"/api/rides/{ride['rideId']}")
    assert fetched.status_code == 200
    assert fetched.json()["rideId"] == ride["rideId"]

    listing = client.get("/api/rides").json()
    assert listing["count"] == 1


def test_unknown_ids_are_404(client):
    assert client.get("/api/rides/nope").status_code == 404
    assert client.post("/api/rides/nope/cancel").status_code == 404
    assert client.get("/api/drivers/driver_404").status_code == 404

    response = client.post("/api/drivers/login", {"driverId": "driver_404"}, format="json")
    assert response.status_code == 404
    assert "driver_404" in response.json()["error"]


def test_login_and_driver_detail(client):
    body = login(client)
    assert body["success"] is True
    assert body["driver"]["id"] == "driver_1"
    assert body["session"]["completedRides"] == 0

    detail = client.get("/api/drivers/driver_1").json()
    assert detail["session"] is not None

    drivers = client.get("/api/drivers").json()
    assert drivers["count"] == 2


def test_offer_accept_and_ride_progress(client, system):
    """
    Full driver flow over HTTP: login, poll, accept, report every status,
    then read the stats and log out.
    """
    login(client)
    ride = request_ride(client)
    ride_id = ride["rideId"]

    # 1. The offer is visible to the polling driver
    offers = client.get("/api/drivers/driver_1/offers").json()
    assert offers["hasOffer"] is True
    assert offers["offer"]["rideId"] == ride_id
    assert offers["offer"]["distance"] == 2000

    # 2. Accept binds the driver
    accepted = client.post(f"/api/drivers/driver_1/rides/{ride_id}/accept")
    assert accepted.status_code == 200
    assert accepted.json()["ride"]["status"] == "assigned"
    assert accepted.json()["ride"]["driver"]["id"] == "driver_1"

    # 3. Accepting twice is a conflict
    assert client.post(f"/api/drivers/driver_1/rides/{ride_id}/accept").status_code == 409

    # 4. Cannot go off duty mid-ride
    response = client.put("/api/drivers/driver_1/availability", {"available": False}, format="json")
    assert response.status_code == 400

    # 5. Status reports move the ride to completed
    for status, expected in (("arrived", "arriving"), ("pickedUp", "inProgress"), ("completed", "completed")):
        response = client.put(f"/api/drivers/driver_1/rides/{ride_id}/status", {"status": status}, format="json")
        assert response.status_code == 200
        assert response.json()["ride"]["status"] == expected

    # 6. Stats reflect the completed ride
    stats = client.get("/api/drivers/driver_1/stats").json()["stats"]
    assert stats["completedRides"] == 1
    assert stats["totalEarnings"] > 0

    # 7. Logout returns the session summary
    summary = client.post("/api/drivers/driver_1/logout").json()["sessionSummary"]
    assert summary["ridesCompleted"] == 1


def test_reject_offer(client, system):
    login(client)
    ride_id = request_ride(client)["rideId"]

    response = client.post(f"/api/drivers/driver_1/rides/{ride_id}/reject")
    assert response.status_code == 200
    assert client.get("/api/drivers/driver_1/offers").json() == {"hasOffer": False, "offer": None}

    assert client.post(f"/api/drivers/driver_1/rides/{ride_id}/reject").status_code == 409


def test_status_update_errors(client, system):
    login(client)
    ride_id = request_ride(client)["rideId"]

    # 1. Not an allowed status word
    response = client.put(f"/api/drivers/driver_1/rides/{ride_id}/status", {"status": "teleported"}, format="json")
    assert response.status_code == 400

    # 2. Ride not assigned to this driver
    response = client.put(f"/api/drivers/driver_2/rides/{ride_id}/status", {"status": "arrived"}, format="json")
    assert response.status_code == 400
    assert response.json()["error"] == "This ride is not assigned to this driver"


def test_stats_without_login_is_400(client):
    response = client.get("/api/drivers/driver_1/stats")
    assert response.status_code == 400
    assert response.json()["error"] == "Driver must be logged in"


def test_location_and_availability(client, system):
    response = client.put("/api/drivers/driver_2/location", {"lat": 37.79, "lng": -122.40}, format="json")
    assert response.status_code == 200
    assert response.json()["location"] == {"lat": 37.79, "lng": -122.40}
    assert system.registry.get("driver_2").location.lat == 37.79

    response = client.put("/api/drivers/driver_2/location", {"lat": 37.79}, format="json")
    assert response.status_code == 400

    response = client.put("/api/drivers/driver_2/availability", {"available": False}, format="json")
    assert response.status_code == 200
    assert response.json()["driver"]["available"] is False


def test_cancel_ride(client, system, scheduler):
    ride_id = request_ride(client)["rideId"]

    response = client.post(f"/api/rides/{ride_id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    # Cancelling again is harmless
    assert client.post(f"/api/rides/{ride_id}/cancel").status_code == 200
    assert scheduler.pending == 0


def test_cancel_finished_ride_is_400(client, system, scheduler):
    system.registry.set_availability("driver_1", False)
    system.registry.set_availability("driver_2", False)
    ride_id = request_ride(client)["rideId"]
    scheduler.advance(5)

    assert client.get(f"/api/rides/{ride_id}").json()["status"] == "noDriversAvailable"
    assert client.post(f"/api/rides/{ride_id}/cancel").status_code == 400
