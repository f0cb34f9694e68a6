"""
Tests for the match lifecycle state machine.
"""

import asyncio
import random

import pytest

from matchday.services import event_service, history_service, match_service, team_service
from matchday.services.errors import InvalidMatchStateError, UnauthorizedError


@pytest.fixture
def rng():
    return random.Random(2024)


async def draw(admin_store, players, rng=None):
    result = await team_service.draw_teams(admin_store, [p["id"] for p in players], rng=rng)
    return result.assignment


async def start_match(admin_store, players, clock, duration=10, halves=2):
    await draw(admin_store, players)
    match = await match_service.create_match(admin_store, duration, halves, clock=clock)
    await match_service.activate_match(admin_store, match["id"], clock=clock)
    return await match_service.get_current_match(admin_store)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_snapshots_teams(self, admin_store, players, clock, rng):
        assignment = await draw(admin_store, players, rng)

        match = await match_service.create_match(admin_store, 10, 2, clock=clock)

        assert match["status"] == "countdown"
        assert match["score"] == {"team1": 0, "team2": 0}
        assert match["current_half"] == 1
        assert match["start_time"] is None
        assert match["events"] == []
        assert set(match["team1_ids"]) == {p for p, t in assignment.items() if t == 1}
        assert set(match["team2_ids"]) == {p for p, t in assignment.items() if t == 2}
        assert not set(match["team1_ids"]) & set(match["team2_ids"])
        assert await match_service.get_current_match(admin_store) == match

    @pytest.mark.asyncio
    async def test_roster_is_a_snapshot(self, store, admin_store, players, clock):
        await draw(admin_store, players)
        match = await match_service.create_match(admin_store, 10, 2, clock=clock)

        # Direct assignment edit (not a redraw) must not leak into the match
        await admin_store.write("team-assignment", {players[0]["id"]: 1})

        current = await match_service.get_current_match(store)
        assert current["team1_ids"] == match["team1_ids"]
        assert current["team2_ids"] == match["team2_ids"]

    @pytest.mark.asyncio
    async def test_create_requires_teams(self, admin_store):
        with pytest.raises(InvalidMatchStateError):
            await match_service.create_match(admin_store, 10, 2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration,halves", [(0, 2), (-5, 1), (10, 3), (10, 0)])
    async def test_invalid_configuration(self, store, admin_store, players, duration, halves):
        await draw(admin_store, players)
        with pytest.raises(ValueError):
            await match_service.create_match(admin_store, duration, halves)
        assert await store.read("current-match") is None

    @pytest.mark.asyncio
    async def test_cannot_create_over_running_match(self, admin_store, players, clock):
        await draw(admin_store, players)
        first = await match_service.create_match(admin_store, 10, 2, clock=clock)

        with pytest.raises(InvalidMatchStateError):
            await match_service.create_match(admin_store, 20, 1, clock=clock)

        assert (await match_service.get_current_match(admin_store))["id"] == first["id"]

    @pytest.mark.asyncio
    async def test_create_allowed_after_finish(self, admin_store, players, clock):
        first = await start_match(admin_store, players, clock)
        await match_service.finish_match(admin_store, clock=clock)

        second = await match_service.create_match(admin_store, 10, 1, clock=clock)

        assert second["id"] != first["id"]
        assert second["status"] == "countdown"

    @pytest.mark.asyncio
    async def test_create_archives_unarchived_finished_match(self, store, admin_store, internal_store, players, clock):
        first = await start_match(admin_store, players, clock)
        # Finished, but the archive step never happened
        await internal_store.patch({"current-match/status": "finished", "current-match/end_time": clock.now})

        second = await match_service.create_match(admin_store, 10, 1, clock=clock)

        history = await history_service.list_history(store)
        assert [h["match_id"] for h in history] == [first["id"]]
        assert history[0]["status"] == "finished"
        assert (await match_service.get_current_match(store))["id"] == second["id"]

    @pytest.mark.asyncio
    async def test_create_after_finish_keeps_single_entry(self, store, admin_store, players, clock):
        await start_match(admin_store, players, clock)
        await match_service.finish_match(admin_store, clock=clock)

        await match_service.create_match(admin_store, 10, 1, clock=clock)

        assert len(await history_service.list_history(store)) == 1

    @pytest.mark.asyncio
    async def test_standard_user_cannot_create(self, store, admin_store, player_store, players):
        await draw(admin_store, players)
        with pytest.raises(UnauthorizedError):
            await match_service.create_match(player_store, 10, 2)
        assert await store.read("current-match") is None


class TestActivate:
    @pytest.mark.asyncio
    async def test_activate_sets_anchor(self, admin_store, players, clock):
        await draw(admin_store, players)
        match = await match_service.create_match(admin_store, 10, 2, clock=clock)
        clock.advance(3000)

        assert await match_service.activate_match(admin_store, match["id"], clock=clock)

        current = await match_service.get_current_match(admin_store)
        assert current["status"] == "active"
        assert current["start_time"] == clock.now
        assert current["current_half"] == 1

    @pytest.mark.asyncio
    async def test_racing_activations_apply_once(self, admin_store, internal_store, players, clock):
        await draw(admin_store, players)
        match = await match_service.create_match(admin_store, 10, 2, clock=clock)
        clock.advance(3000)
        t_first = clock.now

        results = await asyncio.gather(
            *(match_service.activate_match(s, match["id"], clock=clock)
              for s in (admin_store, internal_store, admin_store))
        )
        assert results.count(True) == 1

        clock.advance(5000)
        assert not await match_service.activate_match(admin_store, match["id"], clock=clock)
        assert (await match_service.get_current_match(admin_store))["start_time"] == t_first

    @pytest.mark.asyncio
    async def test_activate_stale_match_id_is_noop(self, admin_store, players, clock):
        await draw(admin_store, players)
        await match_service.create_match(admin_store, 10, 2, clock=clock)

        assert not await match_service.activate_match(admin_store, "old-match", clock=clock)
        assert (await match_service.get_current_match(admin_store))["status"] == "countdown"


class TestAdvanceHalf:
    @pytest.mark.asyncio
    async def test_advance_resets_anchor(self, admin_store, players, clock):
        await start_match(admin_store, players, clock)
        clock.advance(5 * 60_000)

        match = await match_service.advance_half(admin_store, clock=clock)

        assert match["current_half"] == 2
        assert match["start_time"] == clock.now

    @pytest.mark.asyncio
    async def test_no_advance_past_last_half(self, admin_store, players, clock):
        await start_match(admin_store, players, clock, halves=2)
        await match_service.advance_half(admin_store, clock=clock)

        with pytest.raises(InvalidMatchStateError):
            await match_service.advance_half(admin_store, clock=clock)

    @pytest.mark.asyncio
    async def test_single_half_match_cannot_advance(self, admin_store, players, clock):
        await start_match(admin_store, players, clock, halves=1)
        with pytest.raises(InvalidMatchStateError):
            await match_service.advance_half(admin_store, clock=clock)

    @pytest.mark.asyncio
    async def test_advance_requires_active(self, admin_store, players, clock):
        await draw(admin_store, players)
        await match_service.create_match(admin_store, 10, 2, clock=clock)
        with pytest.raises(InvalidMatchStateError):
            await match_service.advance_half(admin_store, clock=clock)


class TestFinish:
    @pytest.mark.asyncio
    async def test_finish_archives_full_record(self, store, admin_store, players, clock):
        match = await start_match(admin_store, players, clock)
        scorer = match["team2_ids"][0]
        await event_service.record_event(admin_store, "goal", {"id": scorer, "team": 2}, clock=clock)
        clock.advance(60_000)

        entry = await match_service.finish_match(admin_store, clock=clock)

        assert entry["match_id"] == match["id"]
        assert entry["status"] == "finished"
        assert entry["end_time"] == clock.now
        assert entry["score"] == {"team1": 0, "team2": 1}
        assert len(entry["events"]) == 1
        assert entry["team1_ids"] == match["team1_ids"]
        current = await match_service.get_current_match(store)
        assert current["status"] == "finished"

    @pytest.mark.asyncio
    async def test_finish_twice_creates_one_entry(self, store, admin_store, players, clock):
        await start_match(admin_store, players, clock)

        first = await match_service.finish_match(admin_store, clock=clock)
        second = await match_service.finish_match(admin_store, clock=clock)

        assert first["id"] == second["id"]
        assert len(await history_service.list_history(store)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_finish_creates_one_entry(self, store, admin_store, internal_store, players, clock):
        await start_match(admin_store, players, clock)

        entries = await asyncio.gather(
            match_service.finish_match(admin_store, clock=clock),
            match_service.finish_match(internal_store, clock=clock),
            match_service.finish_match(admin_store, clock=clock),
        )

        assert len({e["id"] for e in entries}) == 1
        assert len(await history_service.list_history(store)) == 1

    @pytest.mark.asyncio
    async def test_finish_requires_active(self, store, admin_store, players, clock):
        with pytest.raises(InvalidMatchStateError):
            await match_service.finish_match(admin_store, clock=clock)

        await draw(admin_store, players)
        await match_service.create_match(admin_store, 10, 2, clock=clock)
        with pytest.raises(InvalidMatchStateError):
            await match_service.finish_match(admin_store, clock=clock)
        assert await history_service.list_history(store) == []

    @pytest.mark.asyncio
    async def test_standard_user_cannot_finish(self, admin_store, player_store, players, clock):
        await start_match(admin_store, players, clock)
        with pytest.raises(UnauthorizedError):
            await match_service.finish_match(player_store, clock=clock)
        assert (await match_service.get_current_match(admin_store))["status"] == "active"


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_returns_to_idle(self, store, admin_store, players, clock):
        await start_match(admin_store, players, clock)
        await match_service.finish_match(admin_store, clock=clock)

        await match_service.reset_match(admin_store)

        assert await match_service.get_current_match(store) is None
        assert len(await history_service.list_history(store)) == 1

    @pytest.mark.asyncio
    async def test_reset_only_from_finished(self, admin_store, players, clock):
        await start_match(admin_store, players, clock)
        with pytest.raises(InvalidMatchStateError):
            await match_service.reset_match(admin_store)

    @pytest.mark.asyncio
    async def test_reset_without_match(self, admin_store):
        with pytest.raises(InvalidMatchStateError):
            await match_service.reset_match(admin_store)


class TestMatchClock:
    def test_idle(self):
        assert match_service.match_clock(None, 1000) == {"elapsed_ms": 0, "half_length_ms": 0}

    def test_countdown(self):
        match = {"status": "countdown", "duration": 10, "halves": 2, "start_time": None}
        assert match_service.match_clock(match, 5000) == {"elapsed_ms": 0, "half_length_ms": 300_000}

    def test_active_counts_from_half_anchor(self):
        match = {"status": "active", "duration": 10, "halves": 1, "start_time": 1000}
        assert match_service.match_clock(match, 61_000) == {"elapsed_ms": 60_000, "half_length_ms": 600_000}

    def test_finished_stops_at_end(self):
        match = {"status": "finished", "duration": 10, "halves": 2, "start_time": 1000, "end_time": 11_000}
        assert match_service.match_clock(match, 99_000)["elapsed_ms"] == 10_000


@pytest.mark.asyncio
async def test_full_match_day_scenario(store, admin_store, players, clock):
    """Forced draw of four, two halves, one goal, finish into history."""
    result = await team_service.draw_teams(
        admin_store, [p["id"] for p in players], force=True, rng=random.Random(3)
    )
    assert sorted(list(result.assignment.values()).count(t) for t in (1, 2)) == [2, 2]

    match = await match_service.create_match(admin_store, duration=10, halves=2, clock=clock)
    assert match["status"] == "countdown"

    clock.advance(3000)
    t0 = clock.now
    await match_service.activate_match(admin_store, match["id"], clock=clock)
    current = await match_service.get_current_match(store)
    assert current["status"] == "active"
    assert current["start_time"] == t0

    scorer = current["team1_ids"][0]
    clock.now = t0 + 65_000
    event = await event_service.record_event(admin_store, "goal", {"id": scorer, "team": 1}, clock=clock)
    assert event["minute"] == 2
    assert (await match_service.get_current_match(store))["score"] == {"team1": 1, "team2": 0}

    clock.advance(4 * 60_000)
    t1 = clock.now
    current = await match_service.advance_half(admin_store, clock=clock)
    assert current["current_half"] == 2
    assert current["start_time"] == t1

    history_before = len(await history_service.list_history(store))
    entry = await match_service.finish_match(admin_store, clock=clock)
    history = await history_service.list_history(store)

    assert len(history) == history_before + 1
    assert entry["score"] == {"team1": 1, "team2": 0}
    assert entry["team1_ids"] == match["team1_ids"]
    assert entry["team2_ids"] == match["team2_ids"]
