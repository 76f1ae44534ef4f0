"""
CRUD operations (Create, Read, Update, Delete)
Database query and write helpers for teams, players, fixtures, events and the bracket.
Every committed write is published on the change feed.
"""
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import asc, case, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app import schemas
from app.live_match.errors import InvalidReferenceError
from app.live_match.models import MatchStatus, Stage
from app.models import EliminationMatch, Match, MatchEvent, Player, Team
from app.realtime import get_change_feed
from app.standings import recompute_team_totals

logger = logging.getLogger("crud")


def _commit(db: Session, table: str, action: str, row_id: Optional[int]) -> None:
    """Commit the session and announce the change."""
    _commit_all(db, [(table, action, row_id)])


def _commit_all(db: Session, changes: Iterable[Tuple[str, str, Optional[int]]]) -> None:
    """Commit once, then announce every (table, action, row_id) the commit covered."""
    changes = list(changes)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Store rejected {len(changes)} change(s): {changes}", exc_info=True)
        raise
    feed = get_change_feed()
    for table, action, row_id in changes:
        feed.publish(table, action, row_id)


def _require_team(db: Session, team_id: Optional[int]) -> Optional[Team]:
    if team_id is None:
        return None
    team = db.get(Team, team_id)
    if team is None:
        raise InvalidReferenceError(f"Team {team_id} does not exist")
    return team


# ===== TEAMS =====

def get_teams(db: Session, group_name: Optional[str] = None) -> List[Team]:
    """
    Get all teams ordered by group then name
    """
    query = db.query(Team).order_by(asc(Team.group_name), asc(Team.name))
    if group_name:
        query = query.filter(Team.group_name == group_name)
    return query.all()


def get_teams_for_standings(db: Session) -> List[Team]:
    """
    Get all teams in fetch (insertion) order - standings keep this order for exact ties
    """
    return db.query(Team).order_by(asc(Team.id)).all()


def get_team_by_id(db: Session, team_id: int) -> Optional[Team]:
    return db.get(Team, team_id)


def create_team(db: Session, data: schemas.TeamCreate) -> Team:
    team = Team(
        name=data.name.strip(),
        logo_url=data.logo_url or "",
        group_name=data.group_name.strip(),
        wins=0,
        draws=0,
        losses=0,
        goals_for=0,
        goals_against=0,
    )
    db.add(team)
    db.flush()
    _commit(db, "teams", "insert", team.id)
    db.refresh(team)
    logger.info(f"Team created: {team.name} (group {team.group_name})")
    return team


def update_team(db: Session, team: Team, data: schemas.TeamUpdate) -> Team:
    for field_name, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(team, field_name, value if field_name == "logo_url" else value.strip())
    _commit(db, "teams", "update", team.id)
    db.refresh(team)
    return team


def delete_team(db: Session, team: Team) -> None:
    """
    Delete a team; its players, fixtures and their events go with it
    """
    team_id = team.id
    db.delete(team)
    _commit(db, "teams", "delete", team_id)
    logger.info(f"Team {team_id} deleted")


# ===== PLAYERS =====

def get_players(
    db: Session,
    team_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 500,
) -> List[Player]:
    """
    Get players ordered by name, optionally for one team
    """
    query = (
        db.query(Player)
        .options(joinedload(Player.team))
        .order_by(asc(Player.name))
    )
    if team_id:
        query = query.filter(Player.team_id == team_id)
    return query.offset(skip).limit(limit).all()


def get_players_for_teams(db: Session, team_ids: Iterable[int]) -> List[Player]:
    """
    Players of the given teams (the squads of a fixture), ordered by name
    """
    ids = [t for t in team_ids if t is not None]
    if not ids:
        return []
    return (
        db.query(Player)
        .options(joinedload(Player.team))
        .filter(Player.team_id.in_(ids))
        .order_by(asc(Player.name))
        .all()
    )


def get_top_scorers(db: Session, limit: int = 20) -> List[Player]:
    """
    Get top scorers, most goals first
    """
    return (
        db.query(Player)
        .options(joinedload(Player.team))
        .order_by(desc(Player.goals), asc(Player.name))
        .limit(limit)
        .all()
    )


def get_player_by_id(db: Session, player_id: int) -> Optional[Player]:
    return (
        db.query(Player)
        .options(joinedload(Player.team))
        .filter(Player.id == player_id)
        .first()
    )


def create_player(db: Session, data: schemas.PlayerCreate) -> Player:
    _require_team(db, data.team_id)
    player = Player(
        name=data.name.strip(),
        team_id=data.team_id,
        goals=data.goals or 0,
        assists=data.assists or 0,
    )
    db.add(player)
    db.flush()
    _commit(db, "players", "insert", player.id)
    db.refresh(player)
    return player


def update_player(db: Session, player: Player, data: schemas.PlayerUpdate) -> Player:
    changes = data.model_dump(exclude_unset=True)
    if changes.get("team_id") is not None:
        _require_team(db, changes["team_id"])
    for field_name, value in changes.items():
        if value is not None:
            setattr(player, field_name, value.strip() if field_name == "name" else value)
    _commit(db, "players", "update", player.id)
    db.refresh(player)
    return player


def delete_player(db: Session, player: Player) -> None:
    player_id = player.id
    db.delete(player)
    _commit(db, "players", "delete", player_id)


# ===== MATCHES =====

def _match_query(db: Session):
    return db.query(Match).options(joinedload(Match.home_team), joinedload(Match.away_team))


def get_matches(
    db: Session,
    status: Optional[str] = None,
    played: Optional[bool] = None,
    on_date: Optional[date] = None,
    team_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Match]:
    """
    Get matches, newest date first (kick-off time ascending within a day)
    - status: scheduled / live / finished
    - played: finished or not
    - on_date: fixtures of one day
    - team_id: filter matches where team is home or away
    """
    query = _match_query(db).order_by(desc(Match.date), asc(Match.time))

    if status:
        query = query.filter(Match.status == status)
    if played is not None:
        query = query.filter(Match.played == played)
    if on_date:
        query = query.filter(Match.date == on_date)
    if team_id:
        query = query.filter(
            (Match.home_team_id == team_id) | (Match.away_team_id == team_id)
        )
    if limit:
        query = query.limit(limit)
    return query.all()


def get_live_matches(db: Session) -> List[Match]:
    """
    Matches in progress, earliest kick-off first
    """
    return (
        _match_query(db)
        .filter(Match.status == MatchStatus.LIVE.value)
        .order_by(asc(Match.date), asc(Match.time))
        .all()
    )


def get_matches_on(db: Session, day: date) -> List[Match]:
    """
    One day's fixtures by kick-off time
    """
    return _match_query(db).filter(Match.date == day).order_by(asc(Match.time)).all()


def get_recent_matches(db: Session, limit: int = 3) -> List[Match]:
    return get_matches(db, played=True, limit=limit)


def get_upcoming_matches(db: Session, limit: int = 3) -> List[Match]:
    return (
        _match_query(db)
        .filter(Match.played.is_(False))
        .order_by(asc(Match.date), asc(Match.time))
        .limit(limit)
        .all()
    )


def get_match_by_id(db: Session, match_id: int) -> Optional[Match]:
    return _match_query(db).filter(Match.id == match_id).first()


def create_match(db: Session, data: schemas.MatchCreate) -> Match:
    _require_team(db, data.home_team_id)
    _require_team(db, data.away_team_id)
    match = Match(
        date=data.date,
        time=data.time,
        home_team_id=data.home_team_id,
        away_team_id=data.away_team_id,
        status=data.status,
        played=data.status == MatchStatus.FINISHED.value,
        home_score=data.home_score,
        away_score=data.away_score,
        live_home_score=0,
        live_away_score=0,
        current_minute=0,
    )
    db.add(match)
    db.flush()
    _commit(db, "matches", "insert", match.id)
    db.refresh(match)
    return match


def update_match(db: Session, match: Match, data: schemas.MatchUpdate) -> Match:
    """
    Direct edit of stored fields. Team statistics are left alone;
    use recompute_team_stats() to bring them back in line.
    """
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items()}
    home_id = changes.get("home_team_id") or match.home_team_id
    away_id = changes.get("away_team_id") or match.away_team_id
    if home_id == away_id:
        raise InvalidReferenceError("home and away team must be different")
    _require_team(db, changes.get("home_team_id"))
    _require_team(db, changes.get("away_team_id"))

    for field_name, value in changes.items():
        if field_name in ("home_score", "away_score", "time") or value is not None:
            setattr(match, field_name, value)
    match.played = match.status == MatchStatus.FINISHED.value

    _commit(db, "matches", "update", match.id)
    db.refresh(match)
    return match


def delete_match(db: Session, match: Match) -> None:
    match_id = match.id
    db.delete(match)
    _commit(db, "matches", "delete", match_id)


# ===== MATCH EVENTS =====

def get_match_events(db: Session, match_id: int) -> List[MatchEvent]:
    """
    Events of a match in minute order
    """
    return (
        db.query(MatchEvent)
        .options(joinedload(MatchEvent.player), joinedload(MatchEvent.assist_player))
        .filter(MatchEvent.match_id == match_id)
        .order_by(asc(MatchEvent.minute), asc(MatchEvent.id))
        .all()
    )


def create_match_event(db: Session, match: Match, data: schemas.MatchEventCreate) -> MatchEvent:
    """
    Record a goal or card. A goal adds one to the scorer's goals and, when
    given, one to the assisting player's assists, in the same transaction.
    """
    squad = {match.home_team_id, match.away_team_id}
    player = db.get(Player, data.player_id)
    if player is None or player.team_id not in squad:
        raise InvalidReferenceError(f"Player {data.player_id} is not in either squad")

    assist = None
    assist_id = data.assist_player_id if data.event_type == "goal" else None
    if assist_id is not None:
        assist = db.get(Player, assist_id)
        if assist is None or assist.team_id not in squad:
            raise InvalidReferenceError(f"Player {assist_id} is not in either squad")

    event = MatchEvent(
        match_id=match.id,
        player_id=player.id,
        event_type=data.event_type,
        minute=data.minute,
        assist_player_id=assist_id,
    )
    db.add(event)

    if data.event_type == "goal":
        player.goals = (player.goals or 0) + 1
        if assist is not None:
            assist.assists = (assist.assists or 0) + 1

    db.flush()
    _commit(db, "match_events", "insert", event.id)
    if data.event_type == "goal":
        get_change_feed().publish("players", "update", player.id)
        if assist is not None:
            get_change_feed().publish("players", "update", assist.id)
    db.refresh(event)
    return event


def get_match_event(db: Session, match_id: int, event_id: int) -> Optional[MatchEvent]:
    return (
        db.query(MatchEvent)
        .filter(MatchEvent.id == event_id, MatchEvent.match_id == match_id)
        .first()
    )


def delete_match_event(db: Session, event: MatchEvent) -> None:
    """
    Remove an event. Goal/assist totals it added are not reversed.
    """
    event_id = event.id
    db.delete(event)
    _commit(db, "match_events", "delete", event_id)


# ===== ELIMINATION MATCHES =====

_STAGE_ORDER = case(
    {stage.value: stage.order for stage in Stage},
    value=EliminationMatch.stage,
    else_=len(Stage),
)


def get_elimination_matches(db: Session) -> List[EliminationMatch]:
    """
    Bracket matches: quarter-finals, semi-finals, final; by match number within a stage
    """
    return (
        db.query(EliminationMatch)
        .options(
            joinedload(EliminationMatch.team1),
            joinedload(EliminationMatch.team2),
            joinedload(EliminationMatch.winner),
        )
        .order_by(_STAGE_ORDER, asc(EliminationMatch.match_number))
        .all()
    )


def group_by_stage(matches: Iterable[EliminationMatch]) -> Dict[str, List[EliminationMatch]]:
    """Bucket bracket matches by stage, every stage present even when empty."""
    grouped: Dict[str, List[EliminationMatch]] = {stage.value: [] for stage in Stage}
    for match in matches:
        grouped.setdefault(match.stage, []).append(match)
    return grouped


def get_elimination_match_by_id(db: Session, match_id: int) -> Optional[EliminationMatch]:
    return (
        db.query(EliminationMatch)
        .options(
            joinedload(EliminationMatch.team1),
            joinedload(EliminationMatch.team2),
            joinedload(EliminationMatch.winner),
        )
        .filter(EliminationMatch.id == match_id)
        .first()
    )


def create_elimination_match(db: Session, data: schemas.EliminationCreate) -> EliminationMatch:
    _require_team(db, data.team1_id)
    _require_team(db, data.team2_id)
    match = EliminationMatch(
        stage=data.stage,
        match_number=data.match_number,
        date=data.date,
        time=data.time,
        team1_id=data.team1_id,
        team2_id=data.team2_id,
        status=MatchStatus.SCHEDULED.value,
        live_team1_score=0,
        live_team2_score=0,
        current_minute=0,
    )
    db.add(match)
    db.flush()
    _commit(db, "elimination_matches", "insert", match.id)
    db.refresh(match)
    return match


def update_elimination_match(
    db: Session, match: EliminationMatch, data: schemas.EliminationUpdate
) -> EliminationMatch:
    """
    Fill bracket slots or reschedule. Scores and winner only change through the lifecycle.
    """
    changes = data.model_dump(exclude_unset=True)
    team1_id = changes.get("team1_id", match.team1_id)
    team2_id = changes.get("team2_id", match.team2_id)
    if team1_id is not None and team1_id == team2_id:
        raise InvalidReferenceError("a team cannot play itself")
    _require_team(db, changes.get("team1_id"))
    _require_team(db, changes.get("team2_id"))

    for field_name, value in changes.items():
        if value is not None or field_name in ("team1_id", "team2_id", "date", "time"):
            setattr(match, field_name, value)

    _commit(db, "elimination_matches", "update", match.id)
    db.refresh(match)
    return match


def delete_elimination_match(db: Session, match: EliminationMatch) -> None:
    match_id = match.id
    db.delete(match)
    _commit(db, "elimination_matches", "delete", match_id)


# ===== ADMIN =====

def clear_league(db: Session) -> Dict[str, int]:
    """
    Stage the removal of events, fixtures, bracket, players and teams.
    Nothing is committed; the caller owns the transaction.
    """
    return {
        "match_events": db.query(MatchEvent).delete(synchronize_session="fetch"),
        "matches": db.query(Match).delete(synchronize_session="fetch"),
        "elimination_matches": db.query(EliminationMatch).delete(synchronize_session="fetch"),
        "players": db.query(Player).delete(synchronize_session="fetch"),
        "teams": db.query(Team).delete(synchronize_session="fetch"),
    }


def delete_everything(db: Session) -> Dict[str, int]:
    """
    Wipe the league: events, fixtures, bracket, players, teams.
    Returns the number of rows removed per table.
    """
    removed = clear_league(db)
    _commit_all(db, [(table, "delete", None) for table in removed])
    logger.warning(f"League wiped: {removed}")
    return removed


def recompute_team_stats(db: Session) -> List[Team]:
    """
    Rebuild every team's counters from finished fixtures.
    Repairs drift left by direct match edits or deletions.
    """
    teams = get_teams_for_standings(db)
    finished = db.query(Match).filter(Match.status == MatchStatus.FINISHED.value).all()
    totals = recompute_team_totals([t.id for t in teams], finished)

    for team in teams:
        t = totals[team.id]
        team.wins, team.draws, team.losses = t.wins, t.draws, t.losses
        team.goals_for, team.goals_against = t.goals_for, t.goals_against

    _commit_all(db, [("teams", "update", team.id) for team in teams])
    logger.info(f"Recomputed statistics for {len(teams)} teams from {len(finished)} finished matches")
    return teams
