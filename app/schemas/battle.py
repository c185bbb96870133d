from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import BattleFormat, BattleMode, BattleStatus, ItemType
from app.schemas.box import PackItem


class BattleCreate(BaseModel):
    """Request to open a new battle."""

    box_id: int
    entry_fee: int = 0
    max_participants: int = Field(default=4, description="Seats, 2 to 4")
    rounds: int = Field(default=1, description="Packs each participant opens, 1 to 10")
    mode: BattleMode = BattleMode.NORMAL
    format: BattleFormat = BattleFormat.SOLO
    team_size: int = Field(default=1, description="Members per team, team battles only")
    team_count: int = Field(default=1, description="Number of teams, team battles only")


class BattleSimulateRequest(BaseModel):
    bot_count: int | None = Field(default=None, ge=1, le=3)


class BattleRules(BaseModel):
    """The parts of a battle's configuration that decide seating and winners."""

    model_config = ConfigDict(frozen=True)

    format: BattleFormat
    mode: BattleMode
    team_size: int
    team_count: int


class ParticipantStanding(BaseModel):
    """A participant's final position, in join order."""

    model_config = ConfigDict(frozen=True)

    participant_id: int
    player_id: int
    total_value: int
    team_number: int | None = None


class RoundDraw(BaseModel):
    """One recorded round, in chronological order."""

    model_config = ConfigDict(frozen=True)

    participant_id: int
    coin_value: int
    pull_id: int | None = None


class WinnerResolution(BaseModel):
    winners: list[ParticipantStanding]
    """Everyone who shares the prize, in the order remainder coins are handed out."""
    primary: ParticipantStanding
    """Headline winner stored as ``Battle.winner_id``."""
    winning_team_number: int | None = None


class BattleParticipantResponse(BaseModel):
    id: int
    player_id: int
    player_name: str | None
    team_number: int | None
    total_value: int
    rounds_pulled: int
    joined_at: datetime


class BattlePullResponse(BaseModel):
    id: int
    participant_id: int
    pull_id: int | None
    round_number: int
    coin_value: int
    item_type: ItemType
    item_name: str
    item_image: str | None
    item_set_name: str | None
    item_rarity: str | None
    pulled_at: datetime


class BattleResponse(BaseModel):
    id: int
    creator_id: int
    box_id: int
    status: BattleStatus
    format: BattleFormat
    mode: BattleMode
    team_size: int
    team_count: int
    max_participants: int
    rounds: int
    entry_fee: int
    total_prize: int
    winner_id: int | None
    winning_team_number: int | None
    participant_count: int
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None


class BattleDetailResponse(BattleResponse):
    participants: list[BattleParticipantResponse]
    pulls: list[BattlePullResponse]


class BattleWinnerSummary(BaseModel):
    player_id: int
    total_value: int
    payout: int


class BattlePullResult(BaseModel):
    """Result of one participant's round."""

    pull_id: int
    round_number: int
    item: PackItem
    total_value: int
    rounds_pulled: int
    battle_complete: bool
    winners: list[BattleWinnerSummary] = Field(default_factory=list)
    winning_team_number: int | None = None


class BattleSimulationResult(BaseModel):
    battle_id: int
    added_bots: int
    total_prize: int
    winner_id: int
    winning_team_number: int | None
    winners: list[BattleWinnerSummary]
