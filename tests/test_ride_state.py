"""Unit tests for ride and presence entities and role checks."""

import pytest

from ride_service.domain.access import Actor, requires_role
from ride_service.domain.entities import DriverPresence, Location, Ride
from ride_service.domain.enums import RIDE_TRANSITIONS, RideStatus, Role
from ride_service.domain.errors import (
    InvalidRequest,
    InvalidTransition,
    NotEligible,
    Unauthorized,
)


class TestRideStateMachine:
    def test_initial_status_is_pending(self):
        ride = Ride()
        assert ride.status == RideStatus.PENDING
        assert ride.driver_id is None

    # ── Valid transitions ─────────────────────────────────────────

    def test_assign_driver(self):
        ride = Ride()
        ride.assign_driver(7)
        assert ride.status == RideStatus.DRIVER_ASSIGNED
        assert ride.driver_id == 7
        assert ride.is_active

    def test_full_trip(self):
        ride = Ride(status=RideStatus.DRIVER_ASSIGNED, driver_id=7)
        for status in (RideStatus.IN_PROGRESS, RideStatus.ON_SITE, RideStatus.COMPLETED):
            ride.transition_to(status)
        assert ride.status == RideStatus.COMPLETED
        assert ride.is_terminal

    def test_onsite_straight_from_assigned(self):
        ride = Ride(status=RideStatus.DRIVER_ASSIGNED)
        ride.transition_to(RideStatus.ON_SITE)
        assert ride.status == RideStatus.ON_SITE

    def test_complete_straight_from_in_progress(self):
        ride = Ride(status=RideStatus.IN_PROGRESS)
        ride.transition_to(RideStatus.COMPLETED)
        assert ride.status == RideStatus.COMPLETED

    @pytest.mark.parametrize(
        "status",
        [
            RideStatus.PENDING,
            RideStatus.DRIVER_ASSIGNED,
            RideStatus.IN_PROGRESS,
            RideStatus.ON_SITE,
        ],
    )
    def test_cancel_from_any_open_status(self, status):
        ride = Ride(status=status)
        ride.cancel("  changed plans ")
        assert ride.status == RideStatus.CANCELLED
        assert ride.cancellation_reason == "changed plans"

    # ── Invalid transitions ───────────────────────────────────────

    def test_pending_to_completed_fails(self):
        ride = Ride()
        with pytest.raises(InvalidTransition):
            ride.transition_to(RideStatus.COMPLETED)

    def test_nothing_returns_to_pending(self):
        for status in RideStatus:
            assert RideStatus.PENDING not in RIDE_TRANSITIONS[status]

    @pytest.mark.parametrize("status", [RideStatus.COMPLETED, RideStatus.CANCELLED])
    def test_terminal_statuses_are_final(self, status):
        ride = Ride(status=status)
        for target in RideStatus:
            with pytest.raises(InvalidTransition):
                ride.transition_to(target)

    def test_cancel_without_reason_fails(self):
        ride = Ride()
        with pytest.raises(InvalidRequest):
            ride.cancel("   ")
        assert ride.status == RideStatus.PENDING

    def test_cancel_completed_reports_transition_before_reason(self):
        ride = Ride(status=RideStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            ride.cancel(None)


class TestDriverPresence:
    def test_parking_requires_line(self):
        presence = DriverPresence(driver_id=1)
        with pytest.raises(NotEligible):
            presence.activate_parking(Location(43.2, 76.9))

    def test_parking_refused_while_busy(self):
        presence = DriverPresence(driver_id=1, on_line=True, busy=True)
        with pytest.raises(NotEligible):
            presence.activate_parking(Location(43.2, 76.9))
        assert not presence.parking_mode

    def test_mark_busy_leaves_parking(self):
        presence = DriverPresence(driver_id=1, on_line=True, parking_mode=True)
        presence.mark_busy()
        assert presence.busy
        assert not presence.parking_mode
        assert not presence.can_take_ride

    def test_release_does_not_restore_parking(self):
        presence = DriverPresence(driver_id=1, on_line=True, busy=True)
        presence.release()
        assert not presence.busy
        assert not presence.parking_mode
        assert presence.can_take_ride

    def test_going_off_line_clears_parking(self):
        presence = DriverPresence(driver_id=1, on_line=True, parking_mode=True)
        presence.deactivate_line()
        assert not presence.on_line
        assert not presence.parking_mode


class _Guarded:
    @requires_role(Role.DRIVER)
    async def drive(self, actor, value):
        return value


class TestRequiresRole:
    @pytest.mark.asyncio
    async def test_allowed_role_passes_through(self):
        assert await _Guarded().drive(Actor(1, Role.DRIVER), 42) == 42

    @pytest.mark.asyncio
    async def test_other_role_rejected(self):
        with pytest.raises(Unauthorized):
            await _Guarded().drive(Actor(1, Role.PASSENGER), 42)

    def test_allowed_roles_exposed(self):
        assert _Guarded.drive.allowed_roles == frozenset({Role.DRIVER})

    def test_staff_roles(self):
        assert Actor(1, Role.ADMIN).is_staff
        assert Actor(1, Role.MODERATOR).is_staff
        assert not Actor(1, Role.DRIVER).is_staff
