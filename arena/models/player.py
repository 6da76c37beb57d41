import sqlmodel
from pydantic import field_serializer

from ._base import BaseModel


class Player(BaseModel, table=True):
    __tablename__: str = "players"

    id: int = sqlmodel.Field(
        primary_key=True,
        index=True,
        sa_type=sqlmodel.BigInteger,
        sa_column_kwargs={"autoincrement": False},
    )
    name: str | None = sqlmodel.Field(default=None, nullable=True)
    is_admin: bool = False
    coins: int = sqlmodel.Field(default=0, ge=0)

    # Battle statistics
    total_coins_earned: int = 0
    duel_wins: int = 0
    duel_losses: int = 0
    team_wins: int = 0
    team_losses: int = 0
    highest_level: int = 1

    @field_serializer("id")
    def serialize_id(self, value: int) -> str:
        """Serialize ID as string for JavaScript compatibility with large IDs."""
        return str(value)
