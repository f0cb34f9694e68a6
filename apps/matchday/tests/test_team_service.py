"""
Tests for the team drawer.
"""

import random
from collections import Counter

import pytest

from matchday.services import match_service, team_service
from matchday.services.errors import InsufficientPlayersError, NotFoundError, UnauthorizedError


def ids(users):
    return [u["id"] for u in users]


class TestAssignTeams:
    @pytest.mark.parametrize("count", [2, 3, 4, 5, 10, 11])
    def test_bijection_with_balanced_sizes(self, count):
        player_ids = [f"p{n}" for n in range(count)]
        for seed in range(20):
            assignment = team_service.assign_teams(player_ids, random.Random(seed))

            assert set(assignment) == set(player_ids)
            assert set(assignment.values()) <= {1, 2}
            sizes = Counter(assignment.values())
            assert abs(sizes[1] - sizes[2]) <= 1

    def test_seeded_draw_is_reproducible(self):
        player_ids = ["a", "b", "c", "d", "e", "f"]
        first = team_service.assign_teams(player_ids, random.Random(42))
        second = team_service.assign_teams(player_ids, random.Random(42))
        assert first == second

    def test_every_split_is_reachable(self):
        player_ids = ["a", "b", "c", "d"]
        rng = random.Random(7)
        splits = set()
        for _ in range(500):
            assignment = team_service.assign_teams(player_ids, rng)
            splits.add(frozenset(p for p, team in assignment.items() if team == 1))
        # C(4,2) ways to pick team 1
        assert len(splits) == 6


class TestDrawTeams:
    @pytest.mark.asyncio
    async def test_even_draw_publishes_assignment(self, store, admin_store, players):
        result = await team_service.draw_teams(admin_store, ids(players), rng=random.Random(1))

        assert not result.needs_confirmation
        assert result.player_count == 4
        assert await store.read("team-assignment") == result.assignment
        assert Counter(result.assignment.values()) == {1: 2, 2: 2}

    @pytest.mark.asyncio
    async def test_odd_draw_needs_confirmation(self, store, admin_store, players):
        result = await team_service.draw_teams(admin_store, ids(players[:3]))

        assert result.needs_confirmation
        assert result.assignment == {}
        assert await store.read("team-assignment") is None

        forced = await team_service.draw_teams(admin_store, ids(players[:3]), force=True)
        assert not forced.needs_confirmation
        assert sorted(Counter(forced.assignment.values()).values()) == [1, 2]

    @pytest.mark.asyncio
    async def test_insufficient_players(self, store, admin_store, players):
        with pytest.raises(InsufficientPlayersError):
            await team_service.draw_teams(admin_store, ids(players[:1]))
        with pytest.raises(InsufficientPlayersError):
            await team_service.draw_teams(admin_store, [])
        # Duplicates do not count twice
        with pytest.raises(InsufficientPlayersError):
            await team_service.draw_teams(admin_store, [players[0]["id"]] * 2)
        assert await store.read("team-assignment") is None

    @pytest.mark.asyncio
    async def test_unknown_player(self, store, admin_store, players):
        with pytest.raises(NotFoundError):
            await team_service.draw_teams(admin_store, [players[0]["id"], "ghost"])
        assert await store.read("team-assignment") is None

    @pytest.mark.asyncio
    async def test_standard_user_rejected_before_confirmation(self, store, player_store, players):
        with pytest.raises(UnauthorizedError):
            await team_service.draw_teams(player_store, ids(players[:3]))
        with pytest.raises(UnauthorizedError):
            await team_service.draw_teams(player_store, ids(players))
        assert await store.read("team-assignment") is None

    @pytest.mark.asyncio
    async def test_redraw_replaces_assignment_and_clears_match(self, store, admin_store, players):
        await team_service.draw_teams(admin_store, ids(players))
        await match_service.create_match(admin_store, duration=10, halves=2)

        result = await team_service.draw_teams(admin_store, ids(players[:2]))

        assert await store.read("team-assignment") == result.assignment
        assert set(result.assignment) == set(ids(players[:2]))
        assert await store.read("current-match") is None


class TestClearAndView:
    @pytest.mark.asyncio
    async def test_clear_removes_assignment_and_match(self, store, admin_store, players):
        await team_service.draw_teams(admin_store, ids(players))
        await match_service.create_match(admin_store, duration=10, halves=1)

        await team_service.clear_teams(admin_store)

        assert await store.read("team-assignment") is None
        assert await store.read("current-match") is None

    @pytest.mark.asyncio
    async def test_clear_requires_privilege(self, player_store):
        with pytest.raises(UnauthorizedError):
            await team_service.clear_teams(player_store)

    @pytest.mark.asyncio
    async def test_get_teams_groups_players(self, store, admin_store, admin, players):
        result = await team_service.draw_teams(admin_store, ids(players))
        teams = await team_service.get_teams(store)

        assert {u["id"] for u in teams["team1"]} == {p for p, t in result.assignment.items() if t == 1}
        assert {u["id"] for u in teams["team2"]} == {p for p, t in result.assignment.items() if t == 2}
        assert [u["id"] for u in teams["unassigned"]] == [admin["id"]]

    @pytest.mark.asyncio
    async def test_get_teams_without_draw(self, store, players):
        teams = await team_service.get_teams(store)
        assert teams == {"assignment": {}, "team1": [], "team2": [], "unassigned": []}
