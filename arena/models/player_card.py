import sqlmodel

from ._base import BaseModel


class PlayerCard(BaseModel, table=True):
    """A creature owned by a player, with its progression."""

    __tablename__: str = "player_cards"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    player_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    catalog_id: int = sqlmodel.Field(index=True)
    name: str
    level: int = sqlmodel.Field(default=1, ge=1, le=50)
    xp: int = sqlmodel.Field(default=0, ge=0)

    base_hp: int
    base_attack: int
    base_defense: int
    base_speed: int

    # Stats at the current level
    hp: int
    attack: int
    defense: int
    speed: int

    types: list = sqlmodel.Field(sa_column=sqlmodel.Column(sqlmodel.JSON))
    moves: list = sqlmodel.Field(sa_column=sqlmodel.Column(sqlmodel.JSON))
    sprite: str = ""

    deck_position: int | None = sqlmodel.Field(default=None, ge=1, le=5, nullable=True)
    """Position in the battle deck, None when not in the deck"""
