"""
Tests for group standings: derived fields, ordering and recompute from history.
"""
from types import SimpleNamespace

from app.standings import StandingRow, compute_standings, recompute_team_totals, standings_to_dict


def row(name, group="A", wins=0, draws=0, losses=0, goals_for=0, goals_against=0, id=None):
    return StandingRow(
        id=id if id is not None else hash(name) % 1000,
        name=name,
        group_name=group,
        wins=wins,
        draws=draws,
        losses=losses,
        goals_for=goals_for,
        goals_against=goals_against,
    )


class TestDerivedFields:

    def test_points_played_and_difference(self):
        r = row("X", wins=3, draws=1, losses=1, goals_for=10, goals_against=4)
        assert r.matches_played == 5
        assert r.points == 10
        assert r.goal_difference == 6

    def test_zero_team(self):
        r = row("Fresh")
        assert (r.matches_played, r.points, r.goal_difference) == (0, 0, 0)


class TestComputeStandings:

    def test_points_then_goal_difference(self):
        standings = compute_standings([
            row("Y", wins=2, draws=2, losses=1, goals_for=8, goals_against=5),
            row("X", wins=3, draws=1, losses=1, goals_for=10, goals_against=4),
        ])
        assert [r.name for r in standings["A"]] == ["X", "Y"]
        assert [r.points for r in standings["A"]] == [10, 8]

    def test_goal_difference_breaks_points_tie(self):
        standings = compute_standings([
            row("Low", wins=1, goals_for=1, goals_against=0),
            row("High", wins=1, goals_for=5, goals_against=0),
        ])
        assert [r.name for r in standings["A"]] == ["High", "Low"]

    def test_full_tie_keeps_fetch_order(self):
        standings = compute_standings([
            row("First", wins=1, goals_for=2, goals_against=1),
            row("Second", wins=1, goals_for=2, goals_against=1),
        ])
        assert [r.name for r in standings["A"]] == ["First", "Second"]

    def test_groups_are_ranked_separately(self):
        standings = compute_standings([
            row("A1", group="A", wins=1),
            row("B1", group="B", wins=3),
            row("A2", group="A", wins=2),
        ])
        assert set(standings) == {"A", "B"}
        assert [r.name for r in standings["A"]] == ["A2", "A1"]
        assert [r.name for r in standings["B"]] == ["B1"]

    def test_adjacent_rows_are_ordered(self):
        rows = [
            row(f"T{i}", wins=i % 3, draws=i % 2, goals_for=i, goals_against=(i * 7) % 5)
            for i in range(12)
        ]
        ranked = compute_standings(rows)["A"]
        for a, b in zip(ranked, ranked[1:]):
            assert a.points >= b.points
            if a.points == b.points:
                assert a.goal_difference >= b.goal_difference

    def test_empty_input(self):
        assert compute_standings([]) == {}

    def test_positions_in_serialized_output(self):
        data = standings_to_dict(compute_standings([row("B", wins=1), row("A", wins=2)]))
        assert [(t["position"], t["name"]) for t in data["A"]] == [(1, "A"), (2, "B")]
        assert data["A"][0]["points"] == 6


class TestRecomputeFromHistory:

    def test_rebuilds_counters(self):
        matches = [
            SimpleNamespace(home_team_id=1, away_team_id=2, home_score=3, away_score=1),
            SimpleNamespace(home_team_id=2, away_team_id=1, home_score=0, away_score=0),
            SimpleNamespace(home_team_id=1, away_team_id=2, home_score=None, away_score=None),
        ]
        totals = recompute_team_totals([1, 2, 3], matches)

        assert (totals[1].wins, totals[1].draws, totals[1].losses) == (1, 1, 0)
        assert (totals[1].goals_for, totals[1].goals_against) == (3, 1)
        assert (totals[2].wins, totals[2].draws, totals[2].losses) == (0, 1, 1)
        assert totals[3].wins == 0 and totals[3].goals_for == 0


def test_standings_endpoint_ranks_group(client, make_team):
    make_team("Y", "A", wins=2, draws=2, losses=1, goals_for=8, goals_against=5)
    make_team("X", "A", wins=3, draws=1, losses=1, goals_for=10, goals_against=4)
    make_team("Z", "B")

    data = client.get("/standings").json()
    assert data["group_labels"] == ["A", "B", "C", "D"]
    assert [t["name"] for t in data["groups"]["A"]] == ["X", "Y"]
    assert data["groups"]["A"][0]["points"] == 10

    group = client.get("/standings/A").json()
    assert [t["position"] for t in group["teams"]] == [1, 2]
    assert client.get("/standings/D").json()["teams"] == []
