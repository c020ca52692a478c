"""Tests for driver line / parking state and its geo index mirror."""

from unittest.mock import AsyncMock

import pytest

from ride_service.domain.entities import Location
from ride_service.domain.errors import InvalidCoordinate, NotEligible, NotFound, Unauthorized
from ride_service.domain.geo_index import InMemoryGeoIndex
from tests.conftest import DRIVER_A, DRIVER_B, PASSENGER

MOSCOW = Location(55.753215, 37.622504)


class TestLine:
    @pytest.mark.asyncio
    async def test_first_activation_creates_presence(self, presence_service, geo_index):
        presence = await presence_service.activate_line(DRIVER_A, MOSCOW)

        assert presence.on_line
        assert not presence.parking_mode
        assert presence.location == MOSCOW
        assert geo_index.get(DRIVER_A.id).on_line

    @pytest.mark.asyncio
    async def test_activate_twice_equals_once(self, presence_service):
        first = await presence_service.activate_line(DRIVER_A, MOSCOW)
        second = await presence_service.activate_line(DRIVER_A, MOSCOW)

        assert second.version == first.version
        assert await presence_service.get_presence(DRIVER_A.id) == second

    @pytest.mark.asyncio
    async def test_activate_at_new_point_moves_driver(self, presence_service):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        moved = Location(55.76, 37.63)
        presence = await presence_service.activate_line(DRIVER_A, moved)
        assert presence.location == moved
        assert presence.version == 2

    @pytest.mark.asyncio
    async def test_deactivate_clears_parking_and_index(self, presence_service, geo_index):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        await presence_service.activate_parking(DRIVER_A, MOSCOW)

        presence = await presence_service.deactivate_line(DRIVER_A)

        assert not presence.on_line
        assert not presence.parking_mode
        assert geo_index.get(DRIVER_A.id) is None
        assert await presence_service.nearby_parked(MOSCOW, 1.0) == []

    @pytest.mark.asyncio
    async def test_deactivate_unknown_driver_is_noop(self, presence_service):
        assert await presence_service.deactivate_line(DRIVER_A) is None

    @pytest.mark.asyncio
    async def test_invalid_location_rejected(self, presence_service):
        with pytest.raises(InvalidCoordinate):
            await presence_service.activate_line(DRIVER_A, Location(-95.0, 0.0))

    @pytest.mark.asyncio
    async def test_passenger_cannot_go_on_line(self, presence_service):
        with pytest.raises(Unauthorized):
            await presence_service.activate_line(PASSENGER, MOSCOW)


class TestParking:
    @pytest.mark.asyncio
    async def test_parked_driver_found_at_zero_distance(self, presence_service):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        await presence_service.activate_parking(DRIVER_A, MOSCOW)

        found = await presence_service.get_nearby_parked_drivers(PASSENGER, MOSCOW, 1.0)

        assert [d.driver_id for d in found] == [DRIVER_A.id]
        assert found[0].distance == pytest.approx(0.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_parking_requires_line(self, presence_service):
        with pytest.raises(NotEligible):
            await presence_service.activate_parking(DRIVER_A, MOSCOW)

    @pytest.mark.asyncio
    async def test_parking_after_going_off_line_refused(self, presence_service):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        await presence_service.deactivate_line(DRIVER_A)
        with pytest.raises(NotEligible):
            await presence_service.activate_parking(DRIVER_A, MOSCOW)

    @pytest.mark.asyncio
    async def test_on_line_but_not_parked_is_invisible(self, presence_service):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        assert await presence_service.nearby_parked(MOSCOW, 1.0) == []

    @pytest.mark.asyncio
    async def test_deactivate_parking(self, presence_service):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        await presence_service.activate_parking(DRIVER_A, MOSCOW)

        presence = await presence_service.deactivate_parking(DRIVER_A)

        assert presence.on_line
        assert not presence.parking_mode
        assert await presence_service.nearby_parked(MOSCOW, 1.0) == []

    @pytest.mark.asyncio
    async def test_default_radius_applies(self, presence_service):
        far = Location(55.80, 37.622504)  # ~5.2 km north
        await presence_service.activate_line(DRIVER_A, far)
        await presence_service.activate_parking(DRIVER_A, far)
        assert await presence_service.nearby_parked(MOSCOW) == []
        assert len(await presence_service.nearby_parked(MOSCOW, 6.0)) == 1

    @pytest.mark.asyncio
    async def test_only_passengers_search(self, presence_service):
        with pytest.raises(Unauthorized):
            await presence_service.get_nearby_parked_drivers(DRIVER_B, MOSCOW, 1.0)


class TestPresenceReads:
    @pytest.mark.asyncio
    async def test_unknown_presence_not_found(self, presence_service):
        with pytest.raises(NotFound):
            await presence_service.get_presence(42)


class TestIndexRepair:
    @pytest.mark.asyncio
    async def test_failed_index_push_keeps_commit(self, presence_service):
        presence_service.geo_index.upsert = AsyncMock(side_effect=RuntimeError("redis down"))

        presence = await presence_service.activate_line(DRIVER_A, MOSCOW)

        assert presence.on_line
        assert (await presence_service.get_presence(DRIVER_A.id)).on_line

    @pytest.mark.asyncio
    async def test_rebuild_restores_lost_index(self, presence_service):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        await presence_service.activate_parking(DRIVER_A, MOSCOW)
        await presence_service.activate_line(DRIVER_B, MOSCOW)
        await presence_service.deactivate_line(DRIVER_B)
        presence_service.geo_index = InMemoryGeoIndex()

        assert await presence_service.rebuild_index() == 1
        found = await presence_service.nearby_parked(MOSCOW, 1.0)
        assert [d.driver_id for d in found] == [DRIVER_A.id]

    @pytest.mark.asyncio
    async def test_rebuild_drops_driver_that_went_off_line(self, presence_service):
        await presence_service.activate_line(DRIVER_B, MOSCOW)
        await presence_service.activate_parking(DRIVER_B, MOSCOW)
        await presence_service.deactivate_line(DRIVER_B)
        # an index still holding the driver from before it went off line
        drifted = InMemoryGeoIndex()
        await drifted.upsert(DRIVER_B.id, MOSCOW, parking_mode=True, on_line=True, version=0)
        presence_service.geo_index = drifted

        assert await presence_service.rebuild_index() == 0
        assert drifted.get(DRIVER_B.id) is None
        assert await presence_service.nearby_parked(MOSCOW, 1.0) == []

    @pytest.mark.asyncio
    async def test_rebuild_keeps_writes_newer_than_the_store(
        self, presence_service, geo_index
    ):
        await presence_service.activate_line(DRIVER_A, MOSCOW)
        await geo_index.upsert(DRIVER_A.id, MOSCOW, parking_mode=True, on_line=True, version=99)

        assert await presence_service.rebuild_index() == 0
        assert geo_index.get(DRIVER_A.id).version == 99
