from pydantic import BaseModel

from arena.core.enums import BattleMode, BattleOutcome
from arena.schemas.catalog import CardStats


class CardProgress(BaseModel):
    """Persisted progression of one owned card."""

    card_id: int
    name: str
    level: int = 1
    xp: int = 0
    base: CardStats


class XPGain(BaseModel):
    card_id: int
    name: str
    xp_gained: int
    old_level: int
    new_level: int
    new_xp: int
    leveled_up: bool
    old_stats: CardStats
    new_stats: CardStats


class RewardRecord(BaseModel):
    session_id: str
    mode: BattleMode
    result: BattleOutcome
    coins_earned: int
    duration_seconds: int
    player_surrendered: bool = False
    xp_gains: list[XPGain] = []
