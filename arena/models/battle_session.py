from datetime import datetime

import sqlmodel

from arena.utils.misc import get_utc_now

from ._base import BaseModel


class BattleSessionRecord(BaseModel, table=True):
    __tablename__: str = "battle_sessions"

    id: str = sqlmodel.Field(primary_key=True, max_length=32)
    player_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    state: str = sqlmodel.Field(sa_type=sqlmodel.Text)
    """Serialized battle session"""
    updated_at: datetime = sqlmodel.Field(
        default_factory=get_utc_now, index=True, sa_type=sqlmodel.DateTime(timezone=True)
    )
