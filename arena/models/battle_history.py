import sqlmodel

from arena.core.enums import BattleMode, BattleOutcome

from ._base import BaseModel


class BattleHistory(BaseModel, table=True):
    __tablename__: str = "battle_histories"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    player_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    session_id: str = sqlmodel.Field(index=True, unique=True, max_length=32)
    mode: BattleMode
    result: BattleOutcome
    coins_earned: int = 0
    duration_seconds: int = 0
    player_surrendered: bool = False
