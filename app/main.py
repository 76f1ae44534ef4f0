"""
League Manager - Main FastAPI Application
Standings, fixtures, live match control and the elimination bracket for a grouped football league
"""
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import auth, crud, schemas
from app.db import get_db, get_session, init_db
from app.live_match import (
    ELIMINATION,
    REGULAR,
    InvalidTransitionError,
    LeagueError,
    MatchKind,
    MatchLifecycleController,
    MatchNotFoundError,
    MatchStatus,
    MinuteTicker,
    NotAuthenticatedError,
)
from app.models import AdminSession
from app.realtime import get_change_feed
from app.standings import compute_standings, standings_to_dict
from config.settings import settings

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v1.0.0"
APP_NAME = "League Manager"

feed = get_change_feed()
ticker = MinuteTicker(
    session_factory=get_session,
    interval_seconds=settings.minute_tick_seconds,
    feed=feed,
    enabled=settings.ticker_enabled,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = get_session()
    try:
        resumed = ticker.resume(db)
        if resumed:
            logger.info(f"Resumed clocks for {resumed} live matches")
    finally:
        db.close()
    yield
    ticker.stop_all()


app = FastAPI(
    title=APP_NAME,
    description="Group standings, fixtures, live scores and knockout bracket",
    version=APP_VERSION,
    lifespan=lifespan,
)


# =============================================================================
# ERROR HANDLING
# =============================================================================

@app.exception_handler(NotAuthenticatedError)
def not_authenticated_handler(request: Request, exc: NotAuthenticatedError):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "status": exc.status, "action": exc.action},
    )


@app.exception_handler(MatchNotFoundError)
def not_found_handler(request: Request, exc: MatchNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(LeagueError)
def league_error_handler(request: Request, exc: LeagueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Store error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "The data store rejected the operation"})


def _require_confirmation(confirm: bool, what: str) -> None:
    """Destructive operations need an explicit confirm=true."""
    if not confirm:
        raise HTTPException(status_code=400, detail=f"Deleting {what} requires confirm=true")


# =============================================================================
# META
# =============================================================================

@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "active_clocks": len(ticker.active())}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


@app.get("/changes", response_model=schemas.ChangeList)
def list_changes(
    since: int = Query(default=0, ge=0, description="Last sequence number seen"),
    table: Optional[List[str]] = Query(default=None, description="Tables to watch"),
):
    """
    Change notifications newer than `since`.

    Clients poll this and refetch their views whenever a watched table changed.
    """
    changes = feed.since(since, tables=table)
    return {"latest": feed.latest, "changes": [c.to_dict() for c in changes]}


# =============================================================================
# AUTH
# =============================================================================

@app.post("/auth/sign-up", status_code=201)
def sign_up(credentials: schemas.Credentials, db: Session = Depends(get_db)):
    """Create an admin account."""
    try:
        user = auth.sign_up(db, credentials.email, credentials.password)
    except auth.DuplicateAccountError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"id": user.id, "email": user.email}


@app.post("/auth/sign-in", response_model=schemas.SessionOut)
def sign_in(credentials: schemas.Credentials, db: Session = Depends(get_db)):
    """Open an admin session; use the token as `Authorization: Bearer <token>`."""
    try:
        session = auth.sign_in(db, credentials.email, credentials.password)
    except auth.InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return {"token": session.token, "email": session.user.email, "expires_at": session.expires_at}


@app.post("/auth/sign-out")
def sign_out(session: AdminSession = Depends(auth.require_session), db: Session = Depends(get_db)):
    auth.sign_out(db, session.token)
    return {"ok": True}


@app.get("/auth/session", response_model=schemas.SessionOut)
def current_session(session: AdminSession = Depends(auth.require_session)):
    return {"token": session.token, "email": session.user.email, "expires_at": session.expires_at}


# =============================================================================
# STANDINGS / HOME
# =============================================================================

@app.get("/standings")
def get_standings(db: Session = Depends(get_db)):
    """
    Group tables. Every group label present in the data is included;
    `group_labels` lists the tabs the front end shows.
    """
    standings = compute_standings(crud.get_teams_for_standings(db))
    return {
        "group_labels": settings.group_labels,
        "groups": standings_to_dict(standings),
    }


@app.get("/standings/{group_name}")
def get_group_standings(group_name: str, db: Session = Depends(get_db)):
    standings = standings_to_dict(compute_standings(crud.get_teams_for_standings(db)))
    return {"group_name": group_name, "teams": standings.get(group_name, [])}


@app.get("/home")
def home(db: Session = Depends(get_db)):
    """Standings plus the last three results and the next three fixtures."""
    standings = compute_standings(crud.get_teams_for_standings(db))
    return {
        "group_labels": settings.group_labels,
        "groups": standings_to_dict(standings),
        "recent_matches": [schemas.Match.model_validate(m) for m in crud.get_recent_matches(db)],
        "upcoming_matches": [schemas.Match.model_validate(m) for m in crud.get_upcoming_matches(db)],
    }


# =============================================================================
# TEAMS
# =============================================================================

@app.get("/teams", response_model=List[schemas.Team])
def list_teams(
    group: Optional[str] = Query(None, description="Filter by group label"),
    db: Session = Depends(get_db),
):
    """All teams ordered by group then name."""
    return crud.get_teams(db, group_name=group)


@app.get("/teams/{team_id}", response_model=schemas.Team)
def get_team(team_id: int, db: Session = Depends(get_db)):
    team = crud.get_team_by_id(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@app.post("/teams", response_model=schemas.Team, status_code=201)
def create_team(
    data: schemas.TeamCreate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    return crud.create_team(db, data)


@app.put("/teams/{team_id}", response_model=schemas.Team)
def update_team(
    team_id: int,
    data: schemas.TeamUpdate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    team = crud.get_team_by_id(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return crud.update_team(db, team, data)


@app.delete("/teams/{team_id}")
def delete_team(
    team_id: int,
    confirm: bool = Query(False),
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    _require_confirmation(confirm, "a team")
    team = crud.get_team_by_id(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    for match in team.home_matches + team.away_matches:
        ticker.cancel(REGULAR, match.id)
    crud.delete_team(db, team)
    return {"ok": True}


# =============================================================================
# PLAYERS
# =============================================================================

@app.get("/players", response_model=List[schemas.Player])
def list_players(
    team_id: Optional[int] = Query(None, description="Filter by team ID"),
    db: Session = Depends(get_db),
):
    return crud.get_players(db, team_id=team_id)


@app.get("/players/top-scorers", response_model=List[schemas.Player])
def get_top_scorers(
    limit: int = Query(default=20, ge=1, le=100, description="Number of top scorers"),
    db: Session = Depends(get_db),
):
    """Most goals first."""
    return crud.get_top_scorers(db, limit=limit)


@app.get("/players/{player_id}", response_model=schemas.Player)
def get_player(player_id: int, db: Session = Depends(get_db)):
    player = crud.get_player_by_id(db, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    return player


@app.post("/players", response_model=schemas.Player, status_code=201)
def create_player(
    data: schemas.PlayerCreate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    return crud.create_player(db, data)


@app.put("/players/{player_id}", response_model=schemas.Player)
def update_player(
    player_id: int,
    data: schemas.PlayerUpdate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    player = crud.get_player_by_id(db, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    return crud.update_player(db, player, data)


@app.delete("/players/{player_id}")
def delete_player(
    player_id: int,
    confirm: bool = Query(False),
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    _require_confirmation(confirm, "a player")
    player = crud.get_player_by_id(db, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    crud.delete_player(db, player)
    return {"ok": True}


# =============================================================================
# MATCHES
# =============================================================================

@app.get("/matches", response_model=List[schemas.Match])
def list_matches(
    status: Optional[str] = Query(None, description="scheduled, live or finished"),
    team_id: Optional[int] = Query(None, description="Filter by team ID"),
    db: Session = Depends(get_db),
):
    """All fixtures, newest date first."""
    return crud.get_matches(db, status=status, team_id=team_id)


@app.get("/matches/live")
def live_matches(
    day: Optional[date] = Query(None, description="Day for the fixture list, defaults to today"),
    db: Session = Depends(get_db),
):
    """Matches in progress plus the day's fixtures."""
    return {
        "live": [schemas.Match.model_validate(m) for m in crud.get_live_matches(db)],
        "today": [schemas.Match.model_validate(m) for m in crud.get_matches_on(db, day or date.today())],
    }


@app.get("/matches/recent", response_model=List[schemas.Match])
def recent_matches(limit: int = Query(default=3, ge=1, le=50), db: Session = Depends(get_db)):
    return crud.get_recent_matches(db, limit=limit)


@app.get("/matches/upcoming", response_model=List[schemas.Match])
def upcoming_matches(limit: int = Query(default=3, ge=1, le=50), db: Session = Depends(get_db)):
    return crud.get_upcoming_matches(db, limit=limit)


@app.get("/matches/{match_id}", response_model=schemas.MatchDetail)
def get_match(match_id: int, db: Session = Depends(get_db)):
    """Match with its events (minute order) and both squads."""
    match = crud.get_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    detail = schemas.MatchDetail.model_validate(match)
    detail.events = [schemas.MatchEvent.model_validate(e) for e in crud.get_match_events(db, match_id)]
    detail.players = [
        schemas.Player.model_validate(p)
        for p in crud.get_players_for_teams(db, [match.home_team_id, match.away_team_id])
    ]
    return detail


@app.post("/matches", response_model=schemas.Match, status_code=201)
def create_match(
    data: schemas.MatchCreate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    match = crud.create_match(db, data)
    if match.status == MatchStatus.LIVE.value:
        ticker.ensure(REGULAR, match.id)
    return crud.get_match_by_id(db, match.id)


@app.put("/matches/{match_id}", response_model=schemas.Match)
def update_match(
    match_id: int,
    data: schemas.MatchUpdate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    """Direct edit. Does not update team statistics (see /admin/recompute-stats)."""
    match = crud.get_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    match = crud.update_match(db, match, data)
    if match.status == MatchStatus.LIVE.value:
        ticker.ensure(REGULAR, match.id)
    else:
        ticker.cancel(REGULAR, match.id)
    return crud.get_match_by_id(db, match_id)


@app.delete("/matches/{match_id}")
def delete_match(
    match_id: int,
    confirm: bool = Query(False),
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    _require_confirmation(confirm, "a match")
    match = crud.get_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    ticker.cancel(REGULAR, match_id)
    crud.delete_match(db, match)
    return {"ok": True}


@app.post("/matches/{match_id}/events", response_model=schemas.MatchEvent, status_code=201)
def add_match_event(
    match_id: int,
    data: schemas.MatchEventCreate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    match = crud.get_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return crud.create_match_event(db, match, data)


@app.delete("/matches/{match_id}/events/{event_id}")
def delete_match_event(
    match_id: int,
    event_id: int,
    confirm: bool = Query(False),
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    """Remove an event. Goal and assist totals are not reversed."""
    _require_confirmation(confirm, "an event")
    event = crud.get_match_event(db, match_id, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    crud.delete_match_event(db, event)
    return {"ok": True}


# =============================================================================
# LIVE MATCH CONTROL (regular fixtures and bracket matches)
# =============================================================================

def _controller(db: Session) -> MatchLifecycleController:
    return MatchLifecycleController(db, feed=feed)


def _start(kind: MatchKind, match_id: int, actor, db: Session):
    row = _controller(db).start(kind, match_id, actor)
    ticker.ensure(kind, row.id)
    return row


def _finish(kind: MatchKind, match_id: int, actor, db: Session):
    row = _controller(db).finish(kind, match_id, actor)
    ticker.cancel(kind, row.id)
    return row


@app.post("/matches/{match_id}/start", response_model=schemas.Match)
def start_match(
    match_id: int,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    _start(REGULAR, match_id, actor, db)
    return crud.get_match_by_id(db, match_id)


@app.post("/matches/{match_id}/score", response_model=schemas.Match)
def change_match_score(
    match_id: int,
    change: schemas.ScoreChange,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    try:
        _controller(db).adjust_live_score(REGULAR, match_id, change.side, change.delta, actor)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return crud.get_match_by_id(db, match_id)


@app.post("/matches/{match_id}/minute", response_model=schemas.Match)
def set_match_minute(
    match_id: int,
    change: schemas.MinuteChange,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    _controller(db).adjust_minute(REGULAR, match_id, change.minute, actor, delta=change.delta)
    return crud.get_match_by_id(db, match_id)


@app.post("/matches/{match_id}/finish", response_model=schemas.Match)
def finish_match(
    match_id: int,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    """Final whistle: live score becomes final and both teams' statistics are updated once."""
    _finish(REGULAR, match_id, actor, db)
    return crud.get_match_by_id(db, match_id)


# =============================================================================
# ELIMINATION BRACKET
# =============================================================================

@app.get("/eliminations", response_model=schemas.Bracket)
def list_eliminations(db: Session = Depends(get_db)):
    """Bracket grouped by stage: quarter, semi, final."""
    matches = crud.get_elimination_matches(db)
    return {"stages": crud.group_by_stage(matches), "count": len(matches)}


@app.get("/eliminations/{match_id}", response_model=schemas.EliminationMatch)
def get_elimination(match_id: int, db: Session = Depends(get_db)):
    match = crud.get_elimination_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Elimination match not found")
    return match


@app.post("/eliminations", response_model=schemas.EliminationMatch, status_code=201)
def create_elimination(
    data: schemas.EliminationCreate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    match = crud.create_elimination_match(db, data)
    return crud.get_elimination_match_by_id(db, match.id)


@app.put("/eliminations/{match_id}", response_model=schemas.EliminationMatch)
def update_elimination(
    match_id: int,
    data: schemas.EliminationUpdate,
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    match = crud.get_elimination_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Elimination match not found")
    crud.update_elimination_match(db, match, data)
    return crud.get_elimination_match_by_id(db, match_id)


@app.delete("/eliminations/{match_id}")
def delete_elimination(
    match_id: int,
    confirm: bool = Query(False),
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    _require_confirmation(confirm, "an elimination match")
    match = crud.get_elimination_match_by_id(db, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Elimination match not found")
    ticker.cancel(ELIMINATION, match_id)
    crud.delete_elimination_match(db, match)
    return {"ok": True}


@app.post("/eliminations/{match_id}/start", response_model=schemas.EliminationMatch)
def start_elimination(
    match_id: int,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    _start(ELIMINATION, match_id, actor, db)
    return crud.get_elimination_match_by_id(db, match_id)


@app.post("/eliminations/{match_id}/score", response_model=schemas.EliminationMatch)
def change_elimination_score(
    match_id: int,
    change: schemas.ScoreChange,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    try:
        _controller(db).adjust_live_score(ELIMINATION, match_id, change.side, change.delta, actor)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return crud.get_elimination_match_by_id(db, match_id)


@app.post("/eliminations/{match_id}/minute", response_model=schemas.EliminationMatch)
def set_elimination_minute(
    match_id: int,
    change: schemas.MinuteChange,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    _controller(db).adjust_minute(ELIMINATION, match_id, change.minute, actor, delta=change.delta)
    return crud.get_elimination_match_by_id(db, match_id)


@app.post("/eliminations/{match_id}/finish", response_model=schemas.EliminationMatch)
def finish_elimination(
    match_id: int,
    actor: Optional[AdminSession] = Depends(auth.current_session),
    db: Session = Depends(get_db),
):
    """Final whistle: winner is the side with more goals, none on a tie. Team statistics untouched."""
    _finish(ELIMINATION, match_id, actor, db)
    return crud.get_elimination_match_by_id(db, match_id)


# =============================================================================
# ADMIN
# =============================================================================

@app.delete("/admin/league")
def delete_league(
    confirm: bool = Query(False),
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    """Delete every team, player, fixture, event and bracket match."""
    _require_confirmation(confirm, "the whole league")
    ticker.stop_all()
    return {"ok": True, "removed": crud.delete_everything(db)}


@app.post("/admin/recompute-stats", response_model=List[schemas.Team])
def recompute_stats(
    session: AdminSession = Depends(auth.require_session),
    db: Session = Depends(get_db),
):
    """Rebuild team counters from finished fixtures."""
    return crud.recompute_team_stats(db)
