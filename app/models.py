"""
Database models for the league manager
SQLAlchemy ORM models for teams, players, fixtures, the elimination bracket and admin sessions
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Date, Time, DateTime, Boolean, ForeignKey,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Team(Base):
    """
    Team entity - one row per club, with cumulative result counters.
    Points, goal difference and matches played are derived, never stored.
    """
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, index=True)
    logo_url = Column(String, nullable=False, default="")
    group_name = Column(String, nullable=False, index=True)

    wins = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    goals_for = Column(Integer, nullable=False, default=0)
    goals_against = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    players = relationship("Player", back_populates="team", cascade="all, delete")
    home_matches = relationship(
        "Match", foreign_keys="Match.home_team_id", back_populates="home_team",
        cascade="all, delete",
    )
    away_matches = relationship(
        "Match", foreign_keys="Match.away_team_id", back_populates="away_team",
        cascade="all, delete",
    )

    __table_args__ = (
        CheckConstraint(
            "wins >= 0 AND draws >= 0 AND losses >= 0 AND goals_for >= 0 AND goals_against >= 0",
            name="ck_team_counters_non_negative",
        ),
    )

    @property
    def matches_played(self) -> int:
        return self.wins + self.draws + self.losses

    @property
    def points(self) -> int:
        return self.wins * 3 + self.draws

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', group='{self.group_name}')>"


class Player(Base):
    """
    Player entity - belongs to exactly one team, carries goal/assist totals
    """
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    team = relationship("Team", back_populates="players")
    events = relationship(
        "MatchEvent", foreign_keys="MatchEvent.player_id", back_populates="player",
        cascade="all, delete",
    )

    __table_args__ = (
        CheckConstraint("goals >= 0 AND assists >= 0", name="ck_player_counters_non_negative"),
    )

    def __repr__(self):
        return f"<Player(name='{self.name}', team_id={self.team_id}, goals={self.goals})>"


class Match(Base):
    """
    Regular league fixture with its live and final score
    """
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(Time, nullable=True)
    home_team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    away_team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(16), nullable=False, default="scheduled", index=True)
    played = Column(Boolean, nullable=False, default=False, index=True)

    # Final score, written once at finish
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)

    # Provisional score while live
    live_home_score = Column(Integer, nullable=False, default=0)
    live_away_score = Column(Integer, nullable=False, default=0)
    current_minute = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    home_team = relationship("Team", foreign_keys=[home_team_id], back_populates="home_matches")
    away_team = relationship("Team", foreign_keys=[away_team_id], back_populates="away_matches")
    events = relationship(
        "MatchEvent", back_populates="match", cascade="all, delete",
        order_by="MatchEvent.minute",
    )

    __table_args__ = (
        CheckConstraint("status IN ('scheduled','live','finished')", name="ck_match_status"),
        CheckConstraint("home_team_id <> away_team_id", name="ck_match_distinct_teams"),
    )

    def __repr__(self):
        return f"<Match(id={self.id}, date={self.date}, status='{self.status}', home={self.home_team_id}, away={self.away_team_id})>"


class EliminationMatch(Base):
    """
    Bracket fixture. Team slots stay empty until the previous round is decided.
    """
    __tablename__ = "elimination_matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stage = Column(String(16), nullable=False, index=True)
    match_number = Column(Integer, nullable=False, default=1)
    date = Column(Date, nullable=True)
    time = Column(Time, nullable=True)

    team1_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team2_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    winner_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    status = Column(String(16), nullable=False, default="scheduled")
    team1_score = Column(Integer, nullable=True)
    team2_score = Column(Integer, nullable=True)
    live_team1_score = Column(Integer, nullable=False, default=0)
    live_team2_score = Column(Integer, nullable=False, default=0)
    current_minute = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    team1 = relationship("Team", foreign_keys=[team1_id])
    team2 = relationship("Team", foreign_keys=[team2_id])
    winner = relationship("Team", foreign_keys=[winner_id])

    __table_args__ = (
        CheckConstraint("stage IN ('quarter','semi','final')", name="ck_elimination_stage"),
        CheckConstraint("status IN ('scheduled','live','finished')", name="ck_elimination_status"),
        UniqueConstraint("stage", "match_number", name="uix_elimination_stage_number"),
    )

    def __repr__(self):
        return f"<EliminationMatch(id={self.id}, stage='{self.stage}', number={self.match_number}, status='{self.status}')>"


class MatchEvent(Base):
    """
    Goal or card recorded against a fixture by an admin
    """
    __tablename__ = "match_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(16), nullable=False)
    minute = Column(Integer, nullable=False, default=0)
    assist_player_id = Column(Integer, ForeignKey("players.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    match = relationship("Match", back_populates="events")
    player = relationship("Player", foreign_keys=[player_id], back_populates="events")
    assist_player = relationship("Player", foreign_keys=[assist_player_id])

    __table_args__ = (
        CheckConstraint("event_type IN ('goal','red_card','yellow_card')", name="ck_event_type"),
    )

    def __repr__(self):
        return f"<MatchEvent(match_id={self.match_id}, type='{self.event_type}', minute={self.minute})>"


class AdminUser(Base):
    """Email + password identity allowed to edit the league."""
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    sessions = relationship("AdminSession", back_populates="user", cascade="all, delete")

    def __repr__(self):
        return f"<AdminUser(id={self.id}, email='{self.email}')>"


class AdminSession(Base):
    """Opaque bearer token issued at sign-in."""
    __tablename__ = "admin_sessions"

    token = Column(String, primary_key=True)
    user_id = Column(Integer, ForeignKey("admin_users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("AdminUser", back_populates="sessions")

    def __repr__(self):
        return f"<AdminSession(user_id={self.user_id}, expires_at={self.expires_at})>"
