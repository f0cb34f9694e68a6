"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from matchday.utils.datetime_utils import ms_to_datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


class StatusResponse(BaseModel):
    """Generic status response."""

    status: str
    message: str


# Authentication schemas


class RegisterRequest(BaseModel):
    """Request to register a new user."""

    name: str
    email: str
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def validate_passwords_match(self):
        """Ensure the confirmation matches the password."""
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """Request to login with email and password."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Public user profile."""

    id: str
    name: str
    email: str
    role: str
    position: Optional[str] = None
    photo_ref: Optional[str] = None
    created_at: Optional[int] = None


class AuthResponse(BaseModel):
    """Authentication response with JWT token."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserUpdate(BaseModel):
    """Request to update the caller's profile. A null position clears it."""

    name: Optional[str] = None
    position: Optional[str] = None


class RoleUpdateRequest(BaseModel):
    role: str


class PhotoResponse(BaseModel):
    photo_ref: str


class PlayerStatsResponse(BaseModel):
    """Career totals over archived matches."""

    user_id: str
    matches: int
    goals: int
    yellow_cards: int
    red_cards: int


# Teams


class DrawTeamsRequest(BaseModel):
    """Request to draw teams from the selected players."""

    player_ids: List[str]
    force: bool = False


class DrawTeamsResponse(BaseModel):
    """``status`` is ``drawn`` or ``needs_confirmation`` (odd count, nothing written)."""

    status: str
    player_count: int
    assignment: Dict[str, int] = Field(default_factory=dict)


class TeamsResponse(BaseModel):
    assignment: Dict[str, int]
    team1: List[UserResponse]
    team2: List[UserResponse]
    unassigned: List[UserResponse]


# Match


class CreateMatchRequest(BaseModel):
    """Request to create a match from the current teams."""

    duration: int = Field(gt=0, description="Total playing time in minutes")
    halves: int = 2


class RecordEventRequest(BaseModel):
    """Request to record a goal or card."""

    type: str
    player_id: str
    team: int
    player_name: Optional[str] = None


class ScoreResponse(BaseModel):
    team1: int = 0
    team2: int = 0


class MatchEventResponse(BaseModel):
    id: str
    type: str
    player_id: str
    player_name: str
    team: int
    timestamp: int
    minute: int


class MatchResponse(BaseModel):
    """Match record; times are epoch milliseconds."""

    id: str
    status: str
    duration: int
    halves: int
    current_half: int
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    score: ScoreResponse
    events: List[MatchEventResponse] = Field(default_factory=list)
    team1_ids: List[str] = Field(default_factory=list)
    team2_ids: List[str] = Field(default_factory=list)
    created_at: Optional[int] = None


class CurrentMatchResponse(BaseModel):
    """Current match (None when idle) with its display clock."""

    match: Optional[MatchResponse] = None
    elapsed_ms: int = 0
    half_length_ms: int = 0
    server_time: int


class HistoryEntryResponse(MatchResponse):
    """Archived match; ``id`` is the entry id, ``match_id`` the original match id."""

    match_id: str
    ended_at: Optional[datetime] = None

    @model_validator(mode="after")
    def fill_ended_at(self):
        if self.ended_at is None:
            self.ended_at = ms_to_datetime(self.end_time)
        return self
