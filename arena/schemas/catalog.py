from pydantic import BaseModel, ConfigDict, Field


class Move(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    power: int = Field(ge=0)
    stamina_cost: int = Field(ge=0)
    attack_type: str = Field(alias="type")


class CardStats(BaseModel):
    hp: int
    attack: int
    defense: int
    speed: int

    @property
    def stamina_max(self) -> int:
        return self.speed * 2


class CatalogEntry(BaseModel):
    """Static creature data from the bundled catalog."""

    id: int
    name: str
    hp: int = Field(gt=0)
    attack: int = Field(ge=0)
    defense: int = Field(ge=0)
    speed: int = Field(ge=0)
    types: list[str] = Field(min_length=1, max_length=2)
    moves: list[Move] = Field(min_length=4, max_length=4)
    sprite: str = ""
    is_legendary: bool = False
    is_mythical: bool = False

    @property
    def base_stats(self) -> CardStats:
        return CardStats(hp=self.hp, attack=self.attack, defense=self.defense, speed=self.speed)


def stats_for_level(base: CardStats, level: int) -> CardStats:
    """Scale base stats to a level.

    HP grows 3% per level, attack and defense 2%, speed 1%, always rounded down.
    """
    steps = level - 1
    return CardStats(
        hp=base.hp * (100 + steps * 3) // 100,
        attack=base.attack * (100 + steps * 2) // 100,
        defense=base.defense * (100 + steps * 2) // 100,
        speed=base.speed * (100 + steps) // 100,
    )
