from unittest import mock

import pytest
import requests

from driver_app.api_client import (
    DriverAPIClient,
    DriverAPIDecodeError,
    DriverAPIResponseError,
    TransientNetworkError,
)
from driver_app.policy import DriverAppPolicy
from routing.geo import LatLng

BASE_URL = "http://dispatch.test/api"


def make_response(status_code=200, body=None, reason="OK"):
    response = mock.Mock()
    response.status_code = status_code
    response.reason = reason
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(sleeps):
    policy = DriverAppPolicy(max_retries=3, retry_base_delay_seconds=0.5, request_timeout_seconds=5)
    return DriverAPIClient(base_url=BASE_URL + "/", policy=policy, sleep=sleeps.append)


def test_login_builds_request_and_returns_body(client):
    body = {"success": True, "driver": {"id": "driver_1"}, "session": {"completedRides": 0}}

    with mock.patch.object(requests.Session, "request", return_value=make_response(body=body)) as request:
        result = client.login("driver_1", LatLng(37.78, -122.41))

    assert result == body
    request.assert_called_once_with(
        "POST",
        BASE_URL + "/drivers/login",
        json={"driverId": "driver_1", "location": {"lat": 37.78, "lng": -122.41}},
        timeout=5,
    )


def test_endpoint_urls(client):
    ok = make_response(body={"success": True, "hasOffer": False, "driver": {}, "stats": {}, "ride": {}})

    with mock.patch.object(requests.Session, "request", return_value=ok) as request:
        client.get_offers("driver_1")
        client.accept_ride("driver_1", "ride_9")
        client.update_ride_status("driver_1", "ride_9", "pickedUp")
        client.set_availability("driver_1", False)
        client.get_stats("driver_1")

    calls = [(c.args[0], c.args[1], c.kwargs["json"]) for c in request.call_args_list]
    assert calls == [
        ("GET", BASE_URL + "/drivers/driver_1/offers", None),
        ("POST", BASE_URL + "/drivers/driver_1/rides/ride_9/accept", None),
        ("PUT", BASE_URL + "/drivers/driver_1/rides/ride_9/status", {"status": "pickedUp"}),
        ("PUT", BASE_URL + "/drivers/driver_1/availability", {"available": False}),
        ("GET", BASE_URL + "/drivers/driver_1/stats", None),
    ]


def test_server_errors_are_retried_with_backoff(client, sleeps):
    """
    5xx and timeouts are retried with delays 0.5, 1.0, 2.0; the first success
    ends the loop.
    """
    responses = [
        make_response(503, reason="Service Unavailable"),
        requests.Timeout("read timed out"),
        make_response(body={"hasOffer": False, "offer": None}),
    ]

    with mock.patch.object(requests.Session, "request", side_effect=responses) as request:
        result = client.get_offers("driver_1")

    assert result == {"hasOffer": False, "offer": None}
    assert request.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_retries_give_up_after_max_retries(client, sleeps):
    with mock.patch.object(requests.Session, "request", side_effect=requests.ConnectionError("refused")) as request:
        with pytest.raises(TransientNetworkError):
            client.get_offers("driver_1")

    # First attempt plus three retries
    assert request.call_count == 4
    assert sleeps == [0.5, 1.0, 2.0]


def test_client_errors_are_not_retried(client, sleeps):
    response = make_response(409, body={"error": "No pending offer"}, reason="Conflict")

    with mock.patch.object(requests.Session, "request", return_value=response) as request:
        with pytest.raises(DriverAPIResponseError) as excinfo:
            client.accept_ride("driver_1", "ride_9")

    assert excinfo.value.status_code == 409
    assert excinfo.value.message == "No pending offer"
    assert request.call_count == 1
    assert sleeps == []


def test_client_error_without_json_body_uses_reason(client):
    response = make_response(404, body=ValueError("no json"), reason="Not Found")

    with mock.patch.object(requests.Session, "request", return_value=response):
        with pytest.raises(DriverAPIResponseError) as excinfo:
            client.get_stats("driver_404")

    assert excinfo.value.message == "Not Found"


def test_bad_json_is_a_decode_error(client, sleeps):
    response = make_response(200, body=ValueError("Expecting value"))

    with mock.patch.object(requests.Session, "request", return_value=response) as request:
        with pytest.raises(DriverAPIDecodeError):
            client.get_offers("driver_1")

    assert request.call_count == 1
    assert sleeps == []


def test_missing_keys_are_a_decode_error(client):
    with mock.patch.object(requests.Session, "request", return_value=make_response(body={"success": True})):
        with pytest.raises(DriverAPIDecodeError):
            client.login("driver_1")


def test_location_updates_retry_once(client, sleeps):
    with mock.patch.object(requests.Session, "request", side_effect=requests.Timeout("slow")) as request:
        with pytest.raises(TransientNetworkError):
            client.update_location("driver_1", LatLng(37.0, -122.0))

    assert request.call_count == 2
    assert sleeps == [0.5]
