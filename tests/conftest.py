"""
Shared fixtures: an in-memory database per test and an API client wired to it.
"""
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import get_db, init_db
from app.main import app, ticker
from app.models import EliminationMatch, Match, Player, Team


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    ticker.enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    ticker.stop_all()


@pytest.fixture
def admin_headers(client):
    """Sign up and sign in an admin; returns the auth header."""
    credentials = {"email": "admin@league.test", "password": "secret123"}
    client.post("/auth/sign-up", json=credentials)
    response = client.post("/auth/sign-in", json=credentials)
    return {"Authorization": f"Bearer {response.json()['token']}"}


# =============================================================================
# Row factories
# =============================================================================

@pytest.fixture
def make_team(db):
    def _make(name, group_name="A", **counters):
        team = Team(name=name, group_name=group_name, logo_url="", **counters)
        db.add(team)
        db.commit()
        return team
    return _make


@pytest.fixture
def make_player(db):
    def _make(name, team, goals=0, assists=0):
        player = Player(name=name, team_id=team.id, goals=goals, assists=assists)
        db.add(player)
        db.commit()
        return player
    return _make


@pytest.fixture
def make_match(db):
    def _make(home, away, status="scheduled", day=None, **fields):
        match = Match(
            date=day or date(2024, 5, 1),
            home_team_id=home.id,
            away_team_id=away.id,
            status=status,
            played=status == "finished",
            **fields,
        )
        db.add(match)
        db.commit()
        return match
    return _make


@pytest.fixture
def make_elimination(db):
    def _make(stage="quarter", match_number=1, team1=None, team2=None, status="scheduled", **fields):
        match = EliminationMatch(
            stage=stage,
            match_number=match_number,
            team1_id=team1.id if team1 else None,
            team2_id=team2.id if team2 else None,
            status=status,
            **fields,
        )
        db.add(match)
        db.commit()
        return match
    return _make
