"""
Pydantic schemas for API request/response models
"""
from datetime import date as date_type, datetime, time as time_type
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

EventType = Literal["goal", "red_card", "yellow_card"]
StageName = Literal["quarter", "semi", "final"]
StatusName = Literal["scheduled", "live", "finished"]


# ===== TEAM SCHEMAS =====

class TeamRef(BaseModel):
    """Team reference embedded in other resources"""
    id: int
    name: str
    logo_url: str = ""

    class Config:
        from_attributes = True


class TeamCreate(BaseModel):
    """Admin form for a new team - counters start at zero"""
    name: str = Field(min_length=1)
    logo_url: str = ""
    group_name: str = Field(min_length=1)


class TeamUpdate(BaseModel):
    """Editable team fields (counters only change through match results)"""
    name: Optional[str] = Field(default=None, min_length=1)
    logo_url: Optional[str] = None
    group_name: Optional[str] = Field(default=None, min_length=1)


class Team(TeamRef):
    """Team response with counters and derived table fields"""
    group_name: str
    wins: int
    draws: int
    losses: int
    goals_for: int
    goals_against: int
    matches_played: int
    points: int
    goal_difference: int


# ===== PLAYER SCHEMAS =====

class PlayerRef(BaseModel):
    """Player reference embedded in match events"""
    id: int
    name: str
    team_id: int

    class Config:
        from_attributes = True


class PlayerCreate(BaseModel):
    name: str = Field(min_length=1)
    team_id: int
    goals: int = Field(default=0, ge=0)
    assists: int = Field(default=0, ge=0)


class PlayerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    team_id: Optional[int] = None
    goals: Optional[int] = Field(default=None, ge=0)
    assists: Optional[int] = Field(default=None, ge=0)


class Player(PlayerRef):
    """Player response with team info"""
    goals: int
    assists: int
    team: Optional[TeamRef] = None


# ===== MATCH SCHEMAS =====

class MatchCreate(BaseModel):
    """New fixture. Scores are optional and only meaningful for finished matches."""
    date: date_type
    time: Optional[time_type] = None
    home_team_id: int
    away_team_id: int
    status: StatusName = "scheduled"
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def teams_must_differ(self):
        if self.home_team_id == self.away_team_id:
            raise ValueError("home and away team must be different")
        return self


class MatchUpdate(BaseModel):
    """Direct edit of stored fields. Never touches team statistics."""
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    status: Optional[StatusName] = None
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)


class Match(BaseModel):
    """Match response with team info"""
    id: int
    date: date_type
    time: Optional[time_type] = None
    home_team_id: int
    away_team_id: int
    status: str
    played: bool
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    live_home_score: int
    live_away_score: int
    current_minute: int
    home_team: Optional[TeamRef] = None
    away_team: Optional[TeamRef] = None

    class Config:
        from_attributes = True


class MatchEventCreate(BaseModel):
    player_id: int
    event_type: EventType
    minute: int = Field(default=0, ge=0, le=120)
    assist_player_id: Optional[int] = None


class MatchEvent(BaseModel):
    id: int
    match_id: int
    player_id: int
    event_type: str
    minute: int
    assist_player_id: Optional[int] = None
    created_at: Optional[datetime] = None
    player: Optional[PlayerRef] = None
    assist_player: Optional[PlayerRef] = None

    class Config:
        from_attributes = True


class MatchDetail(Match):
    """Match with its events and the players eligible for new events"""
    events: List[MatchEvent] = []
    players: List[Player] = []


# ===== ELIMINATION SCHEMAS =====

class EliminationCreate(BaseModel):
    stage: StageName
    match_number: int = Field(default=1, ge=1)
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None

    @model_validator(mode="after")
    def teams_must_differ(self):
        if self.team1_id is not None and self.team1_id == self.team2_id:
            raise ValueError("a team cannot play itself")
        return self


class EliminationUpdate(BaseModel):
    stage: Optional[StageName] = None
    match_number: Optional[int] = Field(default=None, ge=1)
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None


class EliminationMatch(BaseModel):
    id: int
    stage: str
    match_number: int
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    winner_id: Optional[int] = None
    status: str
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    live_team1_score: int
    live_team2_score: int
    current_minute: int
    team1: Optional[TeamRef] = None
    team2: Optional[TeamRef] = None
    winner: Optional[TeamRef] = None

    class Config:
        from_attributes = True


class Bracket(BaseModel):
    """Elimination matches grouped by stage, in bracket order"""
    stages: Dict[str, List[EliminationMatch]]
    count: int


# ===== LIVE CONTROL SCHEMAS =====

class ScoreChange(BaseModel):
    side: str
    delta: Literal[1, -1]


class MinuteChange(BaseModel):
    """Either an absolute minute or a relative step such as +1 / -1."""
    minute: Optional[int] = None
    delta: Optional[int] = None

    @model_validator(mode="after")
    def exactly_one_of_minute_or_delta(self):
        if (self.minute is None) == (self.delta is None):
            raise ValueError("give either minute or delta")
        return self


# ===== AUTH SCHEMAS =====

class Credentials(BaseModel):
    email: str
    password: str = Field(min_length=6)

    @field_validator("email")
    @classmethod
    def email_shape(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("invalid email address")
        return value


class SessionOut(BaseModel):
    token: str
    email: str
    expires_at: datetime


# ===== CHANGE FEED SCHEMAS =====

class ChangeOut(BaseModel):
    seq: int
    table: str
    action: str
    row_id: Optional[int] = None
    at: str


class ChangeList(BaseModel):
    latest: int
    changes: List[ChangeOut]
