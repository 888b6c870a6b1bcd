import threading
from datetime import datetime, timedelta, timezone

import pytest

from common.exceptions import OfferNotFoundError, SessionNotFoundError
from dispatch.dispatcher import Dispatcher
from dispatch.offers import OfferBook, OfferOutcome, PendingOffer
from rides.models import AssignmentSource, RideStatus
from routing.geo import LatLng

from conftest import DESTINATION, PICKUP, driver_near


def test_no_drivers_at_all_ends_as_no_drivers_available(make_system, scheduler, push):
    """
    Empty roster: the ride searches, the fallback finds nobody, and the ride
    ends as noDriversAvailable.
    """
    system = make_system()
    assert len(system.registry) == 0

    ride = system.request_ride(LatLng(37.7749, -122.4194), LatLng(37.8049, -122.3994))
    assert ride.status == RideStatus.SEARCHING
    assert push.offers == []

    scheduler.advance(5)

    ride = system.get_ride(ride.id)
    assert ride.status == RideStatus.NO_DRIVERS_AVAILABLE
    assert ride.driver_id is None
    assert push.statuses_for(ride.id) == ["searching", "noDriversAvailable"]


def test_injected_empty_components_are_kept(make_system, scheduler):
    """
    An empty roster or offer book passed in is used as is, not replaced by a
    fresh default.
    """
    system = make_system()
    registry = system.registry
    assert len(registry) == 0
    assert system.dispatcher.registry is registry
    assert system.lifecycle.registry is registry

    book = OfferBook()
    dispatcher = Dispatcher(
        registry=system.registry,
        sessions=system.sessions,
        lifecycle=system.lifecycle,
        match_engine=system.match_engine,
        simulator=system.simulator,
        scheduler=scheduler,
        offers=book,
    )
    assert dispatcher.offers is book


def test_online_driver_accepts_offer(make_system, scheduler, push):
    """
    A logged-in driver 2 km away gets the offer, accepts it, and is bound to
    the ride through the offer path.
    """
    system = make_system([driver_near("driver_1", PICKUP, 2000)])
    system.login("driver_1")

    ride = system.request_ride(PICKUP, DESTINATION)

    # 1. Offer sent to the online driver
    offer = system.pending_offer("driver_1")
    assert offer is not None
    assert offer.ride_id == ride.id
    assert offer.distance_m == pytest.approx(2000, abs=1)
    assert offer.estimated_earnings == system.dispatcher.estimate_fare(ride)
    assert push.offers[0][0] == "driver_1"

    # 2. Accept binds both sides
    ride = system.accept_offer("driver_1", ride.id)
    assert ride.status == RideStatus.ASSIGNED
    assert ride.driver_id == "driver_1"
    assert ride.assigned_via == AssignmentSource.OFFER
    assert system.pending_offer("driver_1") is None
    assert len(system.dispatcher.offers) == 0

    driver = system.registry.get("driver_1")
    assert not driver.available
    assert driver.current_ride_id == ride.id

    # 3. The cancelled expiry never fires a fallback
    scheduler.advance(30)
    assert system.get_ride(ride.id).status == RideStatus.ASSIGNED
    assert not system.simulator.is_active(ride.id)


def test_offer_goes_to_nearest_online_driver_only(make_system):
    """
    A closer driver who is not logged in never gets an offer.
    """
    system = make_system([
        driver_near("driver_offline", PICKUP, 100),
        driver_near("driver_online", PICKUP, 2500),
    ])
    system.login("driver_online")

    ride = system.request_ride(PICKUP, DESTINATION)

    assert system.dispatcher.offers.for_ride(ride.id).driver_id == "driver_online"
    assert system.pending_offer("driver_offline") is None


def test_offer_expiry_falls_back_to_simulated_pool(make_system, scheduler, push):
    """
    No response within the offer window: the offer is revoked and the ride is
    matched from the simulated pool.
    """
    system = make_system([
        driver_near("driver_1", PICKUP, 2000),
        driver_near("driver_2", PICKUP, 800, 1.5),
        driver_near("driver_3", PICKUP, 3000, 3.0),
    ])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    # 1. Offer window elapses
    scheduler.advance(5)
    assert system.pending_offer("driver_1") is None
    assert push.revoked == [("driver_1", ride.id)]
    assert system.get_ride(ride.id).status == RideStatus.SEARCHING

    # 2. Fallback search completes within its latency range
    scheduler.advance(4)
    ride = system.get_ride(ride.id)
    assert ride.status == RideStatus.ASSIGNED
    assert ride.assigned_via == AssignmentSource.MATCH
    assert ride.driver_id == "driver_2"
    assert system.simulator.is_active(ride.id)


def test_late_accept_after_expiry_is_refused(make_system, scheduler):
    system = make_system([driver_near("driver_1", PICKUP, 2000), driver_near("driver_2", PICKUP, 900, 2.0)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    scheduler.advance(5)

    with pytest.raises(OfferNotFoundError):
        system.accept_offer("driver_1", ride.id)

    scheduler.advance(4)
    ride = system.get_ride(ride.id)
    assert ride.assigned_via == AssignmentSource.MATCH


def test_reject_falls_back_immediately_without_the_rejecting_driver(make_system, scheduler, push):
    system = make_system([driver_near("driver_1", PICKUP, 300), driver_near("driver_2", PICKUP, 2000, 2.0)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    system.reject_offer("driver_1", ride.id)
    assert push.revoked == [("driver_1", ride.id)]
    assert system.dispatcher.searching_rides() == [ride.id]

    # The fallback runs before the offer window would have closed
    scheduler.advance(4)
    ride = system.get_ride(ride.id)
    assert ride.status == RideStatus.ASSIGNED
    assert ride.driver_id == "driver_2"


def test_reject_by_only_driver_leaves_no_drivers(make_system, scheduler):
    system = make_system([driver_near("driver_1", PICKUP, 300)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    system.reject_offer("driver_1", ride.id)
    scheduler.advance(4)

    assert system.get_ride(ride.id).status == RideStatus.NO_DRIVERS_AVAILABLE


def test_exactly_one_resolution_wins(make_system, scheduler):
    """
    Accept, reject and expiry race for the same offer; only the first gets it.
    """
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    system.accept_offer("driver_1", ride.id)

    with pytest.raises(OfferNotFoundError):
        system.accept_offer("driver_1", ride.id)
    with pytest.raises(OfferNotFoundError):
        system.reject_offer("driver_1", ride.id)

    scheduler.advance(10)
    ride = system.get_ride(ride.id)
    assert ride.status == RideStatus.ASSIGNED
    assert ride.assigned_via == AssignmentSource.OFFER


def test_offer_book_resolves_once_across_threads():
    """
    Eight threads resolve the same offer at once; exactly one gets it back.
    """
    now = datetime.now(timezone.utc)
    book = OfferBook()
    book.add(PendingOffer(
        ride_id="ride_1",
        driver_id="driver_1",
        pickup=PICKUP,
        destination=DESTINATION,
        distance_m=500,
        estimated_earnings=5.0,
        offered_at=now,
        expires_at=now + timedelta(seconds=5),
    ))

    outcomes = [OfferOutcome.ACCEPTED, OfferOutcome.REJECTED, OfferOutcome.EXPIRED, OfferOutcome.WITHDRAWN] * 2
    barrier = threading.Barrier(len(outcomes))
    results = []

    def resolve(outcome):
        barrier.wait()
        results.append(book.resolve("ride_1", outcome))

    threads = [threading.Thread(target=resolve, args=(outcome,)) for outcome in outcomes]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert len(results) == len(outcomes)
    assert len([r for r in results if r is not None]) == 1
    assert len(book) == 0
    assert book.for_driver("driver_1") is None


def test_accept_and_expiry_on_separate_threads_resolve_once(make_system):
    """
    The driver accepts while the expiry fires on another thread. Either the
    driver gets the ride or the ride goes to fallback, never both.
    """
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    system.login("driver_1")

    for _ in range(20):
        ride = system.request_ride(PICKUP, DESTINATION)
        barrier = threading.Barrier(2)
        accepted = []

        def accept():
            barrier.wait()
            try:
                accepted.append(system.accept_offer("driver_1", ride.id))
            except OfferNotFoundError:
                pass

        def expire():
            barrier.wait()
            system.dispatcher._expire_offer(ride.id)

        threads = [threading.Thread(target=accept), threading.Thread(target=expire)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)

        searching = ride.id in system.dispatcher.searching_rides()
        assert bool(accepted) != searching
        if accepted:
            assert system.get_ride(ride.id).assigned_via == AssignmentSource.OFFER
        assert system.pending_offer("driver_1") is None

        # Free the driver for the next round
        system.cancel_ride(ride.id)
        assert system.registry.get("driver_1").is_assignable


def test_offer_for_another_driver_cannot_be_accepted(make_system):
    system = make_system([driver_near("driver_1", PICKUP, 500), driver_near("driver_2", PICKUP, 900, 1.0)])
    system.login("driver_1")
    system.login("driver_2")
    ride = system.request_ride(PICKUP, DESTINATION)

    with pytest.raises(OfferNotFoundError):
        system.accept_offer("driver_2", ride.id)
    assert system.pending_offer("driver_1").ride_id == ride.id


def test_driver_with_pending_offer_gets_no_second_offer(make_system):
    system = make_system([driver_near("driver_1", PICKUP, 500), driver_near("driver_2", PICKUP, 900, 1.0)])
    system.login("driver_1")
    system.login("driver_2")

    first = system.request_ride(PICKUP, DESTINATION)
    second = system.request_ride(PICKUP, DESTINATION)

    assert system.dispatcher.offers.for_ride(first.id).driver_id == "driver_1"
    assert system.dispatcher.offers.for_ride(second.id).driver_id == "driver_2"


def test_cancel_during_offer_withdraws_it(make_system, scheduler, push):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    system.cancel_ride(ride.id)

    assert system.pending_offer("driver_1") is None
    assert push.revoked == [("driver_1", ride.id)]
    assert scheduler.pending == 0

    scheduler.advance(30)
    ride = system.get_ride(ride.id)
    assert ride.status == RideStatus.CANCELLED
    assert system.registry.get("driver_1").is_assignable


def test_cancel_during_fallback_search_stops_it(make_system, scheduler):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    ride = system.request_ride(PICKUP, DESTINATION)
    assert system.dispatcher.searching_rides() == [ride.id]

    system.cancel_ride(ride.id)
    assert system.dispatcher.searching_rides() == []
    assert scheduler.pending == 0

    scheduler.advance(10)
    assert system.get_ride(ride.id).status == RideStatus.CANCELLED
    assert system.registry.get("driver_1").is_assignable


def test_cancel_after_match_stops_simulation_and_frees_driver(make_system, scheduler):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    ride = system.request_ride(PICKUP, DESTINATION)
    scheduler.advance(4)
    assert system.simulator.is_active(ride.id)

    scheduler.advance(3)
    position = system.registry.get("driver_1").location

    system.cancel_ride(ride.id)

    assert not system.simulator.is_active(ride.id)
    assert scheduler.pending == 0
    driver = system.registry.get("driver_1")
    assert driver.is_assignable
    assert driver.location == position


def test_cancel_during_assignment_leaves_nothing_running(make_system, scheduler):
    """
    The ride is cancelled from inside the assignment notification, before the
    simulation starts. The simulation must not outlive the cancel.
    """
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    ride = system.request_ride(PICKUP, DESTINATION)

    def cancel_on_assignment(updated):
        if updated.id == ride.id and updated.status == RideStatus.ASSIGNED:
            system.cancel_ride(ride.id)

    system.lifecycle.add_listener(cancel_on_assignment)
    scheduler.advance(4)

    assert system.get_ride(ride.id).status == RideStatus.CANCELLED
    assert not system.simulator.is_active(ride.id)
    assert system.simulator.active_rides() == []
    assert scheduler.pending == 0
    assert system.registry.get("driver_1").is_assignable


def test_logout_with_pending_offer_counts_as_rejection(make_system, scheduler):
    system = make_system([driver_near("driver_1", PICKUP, 500), driver_near("driver_2", PICKUP, 1500, 1.0)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)

    summary = system.logout("driver_1")
    assert summary.rides_completed == 0
    assert system.pending_offer("driver_1") is None

    scheduler.advance(4)
    assert system.get_ride(ride.id).driver_id == "driver_2"


def test_session_stats_track_offers_and_completion(make_system):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    system.login("driver_1")
    ride = system.request_ride(PICKUP, DESTINATION)
    system.accept_offer("driver_1", ride.id)

    for status in ("arrived", "pickedUp", "approaching", "completed"):
        system.update_ride_status("driver_1", ride.id, status)

    _, stats = system.driver_stats("driver_1")
    assert stats.completed_rides == 1
    assert stats.total_earnings == system.dispatcher.estimate_fare(ride)
    assert stats.acceptance_rate == 100.0

    # A real driver is freed where it stands
    assert system.registry.get("driver_1").is_assignable
    assert system.get_ride(ride.id).status == RideStatus.COMPLETED


def test_stats_require_a_session(make_system):
    system = make_system([driver_near("driver_1", PICKUP, 500)])
    with pytest.raises(SessionNotFoundError):
        system.driver_stats("driver_1")
