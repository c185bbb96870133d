from datetime import datetime

import sqlmodel

from app.core.enums import BattleFormat, BattleMode, BattleStatus

from ._base import BaseModel


class Battle(BaseModel, table=True):
    __tablename__: str = "battles"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    creator_id: int = sqlmodel.Field(foreign_key="players.id", index=True)
    box_id: int = sqlmodel.Field(foreign_key="boxes.id", index=True)
    status: BattleStatus = sqlmodel.Field(default=BattleStatus.WAITING, index=True)
    format: BattleFormat = BattleFormat.SOLO
    mode: BattleMode = BattleMode.NORMAL
    team_size: int = sqlmodel.Field(default=1, ge=1)
    team_count: int = sqlmodel.Field(default=1, ge=1)
    max_participants: int = sqlmodel.Field(ge=2)
    """Fixed at creation; equals team_size * team_count for team battles"""
    rounds: int = sqlmodel.Field(default=1, ge=1)
    entry_fee: int = sqlmodel.Field(default=0, ge=0)
    total_prize: int = sqlmodel.Field(default=0, ge=0)
    """Sum of the coin values drawn so far; paid out to the winners when the battle finishes"""
    winner_id: int | None = sqlmodel.Field(
        foreign_key="players.id", index=True, nullable=True, default=None
    )
    winning_team_number: int | None = None
    started_at: datetime | None = sqlmodel.Field(
        default=None, nullable=True, sa_type=sqlmodel.DateTime(timezone=True)
    )
    finished_at: datetime | None = sqlmodel.Field(
        default=None, nullable=True, sa_type=sqlmodel.DateTime(timezone=True)
    )


class BattleParticipant(BaseModel, table=True):
    """One seat in a battle. ``created_at`` is the join time."""

    __tablename__: str = "battle_participants"
    __table_args__ = (
        sqlmodel.UniqueConstraint("battle_id", "player_id", name="uq_battle_participant"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    battle_id: int = sqlmodel.Field(foreign_key="battles.id", index=True, ondelete="CASCADE")
    player_id: int = sqlmodel.Field(foreign_key="players.id", index=True)
    team_number: int | None = sqlmodel.Field(default=None, ge=1)
    total_value: int = sqlmodel.Field(default=0, ge=0)
    rounds_pulled: int = sqlmodel.Field(default=0, ge=0)
