"""Tests for CandidateService — the pre-scoring candidate filter."""
import math

import pytest

from tandem.errors import IncompleteProfileError
from tandem.models.connection import ConnectionStatus
from tandem.services.candidate_service import CandidateService
from tandem.services.scoring_service import ScoringService
from tandem.utils.geo import EARTH_RADIUS_KM


@pytest.fixture
def candidate_service():
    return CandidateService()


def _north_of_equator(km):
    """Latitude of the point ``km`` due north of (0, 0)."""
    return math.degrees(km / EARTH_RADIUS_KM)


class TestLoadRequester:

    @pytest.mark.asyncio
    async def test_incomplete_profile_rejected(self, candidate_service, db_session, make_user):
        uid = await make_user(complete=False)
        with pytest.raises(IncompleteProfileError):
            await candidate_service.load_requester(db_session, uid)

    @pytest.mark.asyncio
    async def test_missing_profile_rejected(self, candidate_service, db_session, make_user):
        uid = await make_user(with_profile=False)
        with pytest.raises(IncompleteProfileError):
            await candidate_service.load_requester(db_session, uid)


class TestExclusions:

    @pytest.mark.asyncio
    async def test_basic_pool(self, candidate_service, db_session, make_user):
        me = await make_user()
        a = await make_user()
        b = await make_user()
        await make_user(complete=False)

        requester = await candidate_service.load_requester(db_session, me)
        candidates = await candidate_service.find_candidates(db_session, requester)

        assert [c.profile.user_id for c in candidates] == [a, b]
        assert all(c.distance_km == pytest.approx(0.0) for c in candidates)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", list(ConnectionStatus))
    @pytest.mark.parametrize("outgoing", [True, False])
    async def test_any_connection_excludes(
        self, candidate_service, db_session, make_user, add_connection, status, outgoing
    ):
        me = await make_user()
        connected = await make_user()
        free = await make_user()
        if outgoing:
            await add_connection(me, connected, status)
        else:
            await add_connection(connected, me, status)

        requester = await candidate_service.load_requester(db_session, me)
        candidates = await candidate_service.find_candidates(db_session, requester)

        assert [c.profile.user_id for c in candidates] == [free]

    @pytest.mark.asyncio
    async def test_dismissed_excluded_one_way(
        self, candidate_service, db_session, make_user, add_dismissal
    ):
        me = await make_user()
        other = await make_user()
        await add_dismissal(me, other)

        mine = await candidate_service.find_candidates(
            db_session, await candidate_service.load_requester(db_session, me)
        )
        theirs = await candidate_service.find_candidates(
            db_session, await candidate_service.load_requester(db_session, other)
        )

        assert mine == []
        # dismissal is private to the dismisser
        assert [c.profile.user_id for c in theirs] == [me]


class TestRadius:

    @pytest.mark.asyncio
    async def test_boundary_included_outside_excluded(
        self, candidate_service, db_session, make_user
    ):
        me = await make_user(location_lat=0.0, location_lon=0.0, max_radius_km=10)
        on_edge = await make_user(location_lat=_north_of_equator(10), location_lon=0.0)
        inside = await make_user(location_lat=_north_of_equator(3), location_lon=0.0)
        await make_user(location_lat=_north_of_equator(10.5), location_lon=0.0)
        await make_user(location_lat=None, location_lon=None)

        requester = await candidate_service.load_requester(db_session, me)
        candidates = await candidate_service.find_candidates(db_session, requester)

        assert [c.profile.user_id for c in candidates] == [on_edge, inside]
        edge = candidates[0]
        assert edge.distance_km == pytest.approx(10.0)
        # on the boundary the proximity term is zero
        assert ScoringService().location_score(edge.distance_km, 10, 10) == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_unlimited_radius_keeps_everyone(
        self, candidate_service, db_session, make_user
    ):
        me = await make_user(max_radius_km=0)
        far = await make_user(location_lat=-33.8688, location_lon=151.2093)
        nowhere = await make_user(location_lat=None, location_lon=None)

        requester = await candidate_service.load_requester(db_session, me)
        candidates = await candidate_service.find_candidates(db_session, requester)

        by_id = {c.profile.user_id: c for c in candidates}
        assert set(by_id) == {far, nowhere}
        assert by_id[far].distance_km > 10000
        assert by_id[nowhere].distance_km is None

    @pytest.mark.asyncio
    async def test_null_radius_means_unlimited(self, candidate_service, db_session, make_user):
        me = await make_user(max_radius_km=None)
        far = await make_user(location_lat=-33.8688, location_lon=151.2093)

        requester = await candidate_service.load_requester(db_session, me)
        candidates = await candidate_service.find_candidates(db_session, requester)

        assert [c.profile.user_id for c in candidates] == [far]

    @pytest.mark.asyncio
    async def test_radius_without_requester_location(
        self, candidate_service, db_session, make_user
    ):
        me = await make_user(location_lat=None, location_lon=None, max_radius_km=25)
        await make_user()

        requester = await candidate_service.load_requester(db_session, me)
        assert await candidate_service.find_candidates(db_session, requester) == []
