"""
Unit tests for the match lifecycle: start, live score, clock, finish.
"""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.live_match import (
    ELIMINATION,
    REGULAR,
    InvalidTransitionError,
    MatchLifecycleController,
    MatchNotFoundError,
    NotAuthenticatedError,
    Side,
)
from app.live_match import clock
from app.live_match.stats import ResultCounters, apply_result
from app.models import Match, Team
from app.realtime import ChangeFeed

ADMIN = object()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def controller(db, feed):
    return MatchLifecycleController(db, feed=feed, max_minute=120, auto_minute_cap=90)


@pytest.fixture
def teams(make_team):
    return make_team("Home FC"), make_team("Away FC")


@pytest.fixture
def scheduled(teams, make_match):
    return make_match(*teams)


@pytest.fixture
def live_fixture(controller, scheduled):
    controller.start(REGULAR, scheduled.id, ADMIN)
    return scheduled


# =============================================================================
# Clock reducer
# =============================================================================

class TestClock:

    def test_set_minute_clamps(self):
        assert clock.set_minute(130) == 120
        assert clock.set_minute(-5) == 0
        assert clock.set_minute(45) == 45

    def test_apply_minute_delta(self):
        assert clock.apply_minute_delta(89, 3) == 92
        assert clock.apply_minute_delta(119, 5) == 120
        assert clock.apply_minute_delta(None, -1) == 0

    def test_next_tick_stops_at_cap(self):
        assert clock.next_tick(1) == 2
        assert clock.next_tick(89) == 90
        assert clock.next_tick(90) is None
        assert clock.next_tick(95) is None


# =============================================================================
# Start
# =============================================================================

class TestStart:

    def test_start_scheduled_match(self, controller, scheduled):
        match = controller.start(REGULAR, scheduled.id, ADMIN)
        assert match.status == "live"
        assert match.current_minute == 1
        assert (match.live_home_score, match.live_away_score) == (0, 0)

    def test_start_leaves_team_stats_alone(self, controller, scheduled, teams, db):
        controller.start(REGULAR, scheduled.id, ADMIN)
        home = db.get(Team, teams[0].id)
        assert (home.wins, home.draws, home.losses, home.goals_for) == (0, 0, 0, 0)

    def test_start_live_match_rejected(self, controller, live_fixture):
        with pytest.raises(InvalidTransitionError):
            controller.start(REGULAR, live_fixture.id, ADMIN)

    def test_start_finished_match_rejected(self, controller, teams, make_match):
        match = make_match(*teams, status="finished", home_score=1, away_score=0)
        with pytest.raises(InvalidTransitionError):
            controller.start(REGULAR, match.id, ADMIN)
        assert match.status == "finished"

    def test_start_requires_admin(self, controller, scheduled):
        with pytest.raises(NotAuthenticatedError):
            controller.start(REGULAR, scheduled.id, None)
        assert scheduled.status == "scheduled"

    def test_start_missing_match(self, controller):
        with pytest.raises(MatchNotFoundError):
            controller.start(REGULAR, 999, ADMIN)

    def test_start_publishes_change(self, controller, scheduled, feed):
        controller.start(REGULAR, scheduled.id, ADMIN)
        changes = feed.since(0, tables=["matches"])
        assert [(c.action, c.row_id) for c in changes] == [("update", scheduled.id)]


# =============================================================================
# Live score and minute
# =============================================================================

class TestLiveControls:

    def test_increment_and_decrement(self, controller, live_fixture):
        controller.adjust_live_score(REGULAR, live_fixture.id, "home", 1, ADMIN)
        controller.adjust_live_score(REGULAR, live_fixture.id, "home", 1, ADMIN)
        match = controller.adjust_live_score(REGULAR, live_fixture.id, Side.AWAY, 1, ADMIN)
        assert (match.live_home_score, match.live_away_score) == (2, 1)

        match = controller.adjust_live_score(REGULAR, live_fixture.id, "home", -1, ADMIN)
        assert match.live_home_score == 1

    def test_score_never_negative(self, controller, live_fixture):
        for _ in range(3):
            match = controller.adjust_live_score(REGULAR, live_fixture.id, "away", -1, ADMIN)
        assert match.live_away_score == 0

    def test_score_change_does_not_touch_final_score(self, controller, live_fixture):
        match = controller.adjust_live_score(REGULAR, live_fixture.id, "home", 1, ADMIN)
        assert match.home_score is None

    def test_bad_delta_rejected(self, controller, live_fixture):
        with pytest.raises(ValueError):
            controller.adjust_live_score(REGULAR, live_fixture.id, "home", 2, ADMIN)

    def test_unknown_side_rejected(self, controller, live_fixture):
        with pytest.raises(ValueError):
            controller.adjust_live_score(REGULAR, live_fixture.id, "team1", 1, ADMIN)

    def test_score_change_requires_live(self, controller, scheduled):
        with pytest.raises(InvalidTransitionError):
            controller.adjust_live_score(REGULAR, scheduled.id, "home", 1, ADMIN)

    def test_minute_clamped(self, controller, live_fixture):
        assert controller.adjust_minute(REGULAR, live_fixture.id, 130, ADMIN).current_minute == 120
        assert controller.adjust_minute(REGULAR, live_fixture.id, -5, ADMIN).current_minute == 0
        assert controller.adjust_minute(REGULAR, live_fixture.id, 67, ADMIN).current_minute == 67

    def test_minute_stepped_by_delta(self, controller, live_fixture):
        assert controller.adjust_minute(REGULAR, live_fixture.id, None, ADMIN, delta=1).current_minute == 2
        assert controller.adjust_minute(REGULAR, live_fixture.id, None, ADMIN, delta=-5).current_minute == 0
        controller.adjust_minute(REGULAR, live_fixture.id, 119, ADMIN)
        assert controller.adjust_minute(REGULAR, live_fixture.id, None, ADMIN, delta=3).current_minute == 120

    def test_minute_requires_admin(self, controller, live_fixture):
        with pytest.raises(NotAuthenticatedError):
            controller.adjust_minute(REGULAR, live_fixture.id, 10, None)

    def test_tick_advances_until_cap(self, controller, live_fixture):
        assert controller.tick(REGULAR, live_fixture.id) == 2
        controller.adjust_minute(REGULAR, live_fixture.id, 90, ADMIN)
        assert controller.tick(REGULAR, live_fixture.id) == 90
        assert live_fixture.current_minute == 90

    def test_tick_leaves_manual_stoppage_time(self, controller, live_fixture):
        controller.adjust_minute(REGULAR, live_fixture.id, 94, ADMIN)
        assert controller.tick(REGULAR, live_fixture.id) == 94

    def test_tick_on_scheduled_match_stops(self, controller, scheduled):
        assert controller.tick(REGULAR, scheduled.id) is None
        assert controller.tick(REGULAR, 12345) is None


# =============================================================================
# Finish
# =============================================================================

class TestFinish:

    def test_finish_writes_final_score_and_stats(self, controller, live_fixture, teams, db):
        for side, goals in (("home", 3), ("away", 1)):
            for _ in range(goals):
                controller.adjust_live_score(REGULAR, live_fixture.id, side, 1, ADMIN)

        match = controller.finish(REGULAR, live_fixture.id, ADMIN)
        assert match.status == "finished"
        assert match.played is True
        assert (match.home_score, match.away_score) == (3, 1)

        home, away = db.get(Team, teams[0].id), db.get(Team, teams[1].id)
        assert (home.wins, home.draws, home.losses) == (1, 0, 0)
        assert (home.goals_for, home.goals_against) == (3, 1)
        assert (away.wins, away.draws, away.losses) == (0, 0, 1)
        assert (away.goals_for, away.goals_against) == (1, 3)

    def test_draw(self, controller, live_fixture, teams, db):
        controller.finish(REGULAR, live_fixture.id, ADMIN)
        home, away = db.get(Team, teams[0].id), db.get(Team, teams[1].id)
        assert home.draws == 1 and away.draws == 1
        assert home.points == 1 and away.points == 1

    def test_second_finish_rejected(self, controller, live_fixture, teams, db):
        controller.adjust_live_score(REGULAR, live_fixture.id, "home", 1, ADMIN)
        controller.finish(REGULAR, live_fixture.id, ADMIN)

        with pytest.raises(InvalidTransitionError):
            controller.finish(REGULAR, live_fixture.id, ADMIN)
        assert db.get(Team, teams[0].id).wins == 1

    def test_finish_scheduled_rejected(self, controller, scheduled):
        with pytest.raises(InvalidTransitionError):
            controller.finish(REGULAR, scheduled.id, ADMIN)

    def test_finish_requires_admin(self, controller, live_fixture, teams, db):
        with pytest.raises(NotAuthenticatedError):
            controller.finish(REGULAR, live_fixture.id, None)
        assert live_fixture.status == "live"
        assert db.get(Team, teams[0].id).matches_played == 0

    def test_finish_publishes_team_updates(self, controller, live_fixture, teams, feed):
        controller.finish(REGULAR, live_fixture.id, ADMIN)
        team_rows = {c.row_id for c in feed.since(0, tables=["teams"])}
        assert team_rows == {teams[0].id, teams[1].id}

    def test_failed_commit_leaves_match_live_and_stats_untouched(
        self, controller, live_fixture, teams, db, feed, monkeypatch
    ):
        controller.adjust_live_score(REGULAR, live_fixture.id, "home", 1, ADMIN)
        before = feed.latest

        def refuse():
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(db, "commit", refuse)
        with pytest.raises(SQLAlchemyError):
            controller.finish(REGULAR, live_fixture.id, ADMIN)
        monkeypatch.undo()

        match = db.get(Match, live_fixture.id)
        assert match.status == "live"
        assert match.played is False
        assert (match.home_score, match.away_score) == (None, None)
        assert match.live_home_score == 1
        for team_id in (teams[0].id, teams[1].id):
            team = db.get(Team, team_id)
            assert (team.wins, team.draws, team.losses) == (0, 0, 0)
            assert (team.goals_for, team.goals_against) == (0, 0)
        assert feed.latest == before

    def test_failing_stats_update_rolls_back_finish(self, db, feed, live_fixture, teams):
        class BrokenHandler:
            def handle(self, event):
                raise SQLAlchemyError("disk I/O error")

        controller = MatchLifecycleController(db, feed=feed, stats_handler=BrokenHandler())
        with pytest.raises(SQLAlchemyError):
            controller.finish(REGULAR, live_fixture.id, ADMIN)

        assert db.get(Match, live_fixture.id).status == "live"
        assert db.get(Team, teams[0].id).matches_played == 0


# =============================================================================
# Elimination matches
# =============================================================================

class TestElimination:

    def test_tie_has_no_winner(self, controller, teams, make_elimination, db):
        match = make_elimination("semi", 1, *teams)
        controller.start(ELIMINATION, match.id, ADMIN)
        for side in ("team1", "team1", "team2", "team2"):
            controller.adjust_live_score(ELIMINATION, match.id, side, 1, ADMIN)

        match = controller.finish(ELIMINATION, match.id, ADMIN)
        assert match.status == "finished"
        assert (match.team1_score, match.team2_score) == (2, 2)
        assert match.winner_id is None

    def test_higher_score_wins(self, controller, teams, make_elimination):
        match = make_elimination("final", 1, *teams)
        controller.start(ELIMINATION, match.id, ADMIN)
        controller.adjust_live_score(ELIMINATION, match.id, "team2", 1, ADMIN)

        match = controller.finish(ELIMINATION, match.id, ADMIN)
        assert match.winner_id == teams[1].id

    def test_does_not_touch_team_stats(self, controller, teams, make_elimination, db):
        match = make_elimination("quarter", 1, *teams)
        controller.start(ELIMINATION, match.id, ADMIN)
        controller.adjust_live_score(ELIMINATION, match.id, "team1", 1, ADMIN)
        controller.finish(ELIMINATION, match.id, ADMIN)

        assert db.get(Team, teams[0].id).wins == 0
        assert db.get(Team, teams[1].id).losses == 0

    def test_empty_slot_cannot_start(self, controller, teams, make_elimination):
        match = make_elimination("final", 1, teams[0], None)
        with pytest.raises(InvalidTransitionError):
            controller.start(ELIMINATION, match.id, ADMIN)
        assert match.status == "scheduled"


# =============================================================================
# Stats arithmetic
# =============================================================================

class TestApplyResult:

    def test_home_win(self):
        home, away = apply_result(ResultCounters(), ResultCounters(), 3, 1)
        assert home == ResultCounters(wins=1, goals_for=3, goals_against=1)
        assert away == ResultCounters(losses=1, goals_for=1, goals_against=3)

    def test_away_win(self):
        home, away = apply_result(ResultCounters(wins=2), ResultCounters(), 0, 2)
        assert home.wins == 2 and home.losses == 1
        assert away.wins == 1

    def test_negative_score_rejected(self):
        with pytest.raises(ValueError):
            apply_result(ResultCounters(), ResultCounters(), -1, 0)
