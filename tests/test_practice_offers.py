import pytest

from dispatch.policy import DispatchPolicy
from rides.models import AssignmentSource, RideStatus

from conftest import DESTINATION, PICKUP, driver_near


@pytest.fixture
def dispatch_policy():
    # Practice offers on, with their stock timings (2s, every 15s, 30s to respond).
    return DispatchPolicy(offer_timeout_seconds=5, search_delay_range_seconds=(2, 4))


@pytest.fixture
def system(make_system):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    system.login("driver_1")
    return system


def test_first_practice_offer_arrives_shortly_after_login(system, scheduler, push):
    """
    Nothing at login, a simulated offer two seconds later, marked as such on
    the offer and on the push payload.
    """
    assert system.practice_offers.is_running("driver_1")
    assert system.pending_offer("driver_1") is None

    scheduler.advance(1)
    assert system.pending_offer("driver_1") is None

    scheduler.advance(1)
    offer = system.pending_offer("driver_1")
    assert offer is not None
    assert offer.simulated
    assert (offer.expires_at - offer.offered_at).total_seconds() == 30
    assert push.offers == [("driver_1", offer.to_dict())]
    assert push.offers[0][1]["simulated"] is True
    assert system.get_ride(offer.ride_id).status == RideStatus.SEARCHING


def test_unanswered_practice_offer_expires_without_fallback(system, scheduler):
    """
    After 30s the practice ride is dropped (no fallback search), and the next
    interval tick brings a fresh one.
    """
    scheduler.advance(2)
    first = system.pending_offer("driver_1")

    # 1. Interval ticks at 15s and 30s skip a driver already holding an offer
    scheduler.advance(29)
    assert system.pending_offer("driver_1") is first

    # 2. Expiry at 32s cancels the practice ride
    scheduler.advance(1)
    assert system.pending_offer("driver_1") is None
    ride = system.get_ride(first.ride_id)
    assert ride.status == RideStatus.CANCELLED
    assert ride.driver_id is None
    assert system.dispatcher.searching_rides() == []
    assert system.registry.get("driver_1").is_assignable

    # 3. Next tick at 45s
    scheduler.advance(13)
    second = system.pending_offer("driver_1")
    assert second is not None
    assert second.ride_id != first.ride_id


def test_reject_brings_the_next_practice_offer_at_once(system, scheduler, push):
    scheduler.advance(2)
    first = system.pending_offer("driver_1")

    system.reject_offer("driver_1", first.ride_id)
    assert system.get_ride(first.ride_id).status == RideStatus.CANCELLED
    assert ("driver_1", first.ride_id) in push.revoked
    assert system.dispatcher.searching_rides() == []

    scheduler.advance(0)
    second = system.pending_offer("driver_1")
    assert second is not None
    assert second.simulated
    assert second.ride_id != first.ride_id


def test_accepting_a_practice_offer_pauses_the_stream_until_completion(system, scheduler, push):
    """
    Accepting binds the driver like any offer and stops the stream; completing
    the ride starts it again.
    """
    scheduler.advance(2)
    offer = system.pending_offer("driver_1")

    ride = system.accept_offer("driver_1", offer.ride_id)
    assert ride.status == RideStatus.ASSIGNED
    assert ride.driver_id == "driver_1"
    assert ride.assigned_via == AssignmentSource.OFFER
    assert not system.practice_offers.is_running("driver_1")

    scheduler.advance(60)
    assert len(push.offers) == 1

    for status in ("arrived", "pickedUp", "approaching", "completed"):
        system.update_ride_status("driver_1", ride.id, status)
    assert system.practice_offers.is_running("driver_1")

    scheduler.advance(2)
    assert system.pending_offer("driver_1").simulated
    assert len(push.offers) == 2


def test_cancelled_practice_ride_restarts_the_stream(system, scheduler):
    scheduler.advance(2)
    offer = system.pending_offer("driver_1")
    system.accept_offer("driver_1", offer.ride_id)

    system.cancel_ride(offer.ride_id)

    assert system.practice_offers.is_running("driver_1")
    scheduler.advance(2)
    assert system.pending_offer("driver_1") is not None


def test_logout_stops_the_stream_and_drops_the_practice_ride(system, scheduler, push):
    scheduler.advance(2)
    offer = system.pending_offer("driver_1")

    system.logout("driver_1")

    assert not system.practice_offers.is_running("driver_1")
    assert system.pending_offer("driver_1") is None
    assert system.get_ride(offer.ride_id).status == RideStatus.CANCELLED
    assert scheduler.pending == 0

    scheduler.advance(60)
    assert len(push.offers) == 1


def test_requested_ride_takes_the_driver_from_a_practice_offer(system, scheduler, push):
    """
    A rider's request goes to the nearest online driver even while that driver
    looks at a practice offer; the practice ride is withdrawn.
    """
    scheduler.advance(2)
    practice = system.pending_offer("driver_1")

    ride = system.request_ride(PICKUP, DESTINATION)

    offer = system.pending_offer("driver_1")
    assert offer.ride_id == ride.id
    assert not offer.simulated
    assert system.get_ride(practice.ride_id).status == RideStatus.CANCELLED
    assert ("driver_1", practice.ride_id) in push.revoked
    assert system.dispatcher.searching_rides() == []


def test_practice_tick_skips_a_driver_with_a_real_offer(system, scheduler, push):
    ride = system.request_ride(PICKUP, DESTINATION)

    scheduler.advance(2)

    assert system.pending_offer("driver_1").ride_id == ride.id
    assert len(push.offers) == 1


def test_practice_offer_settings_are_validated_and_read_from_env(monkeypatch):
    with pytest.raises(ValueError):
        DispatchPolicy(practice_offer_interval_seconds=0).validate()
    with pytest.raises(ValueError):
        DispatchPolicy(practice_offer_first_delay_seconds=-1).validate()

    monkeypatch.setenv("PRACTICE_OFFERS", "false")
    monkeypatch.setenv("PRACTICE_OFFER_TIMEOUT_SECONDS", "45")
    policy = DispatchPolicy.from_env()
    assert not policy.practice_offers
    assert policy.practice_offer_timeout_seconds == 45.0


def test_disabled_practice_offers_never_start(make_system, scheduler, push):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    system.practice_offers.policy = DispatchPolicy(practice_offers=False)

    system.login("driver_1")

    assert not system.practice_offers.is_running("driver_1")
    scheduler.advance(60)
    assert push.offers == []
