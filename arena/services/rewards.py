from collections.abc import Mapping
from datetime import datetime

from arena.core.enums import BattleMode, BattleOutcome, Winner
from arena.core.errors import BattleNotOverError, CatalogLookupFailedError
from arena.schemas.battle import BattleSession, CombatCard
from arena.schemas.catalog import stats_for_level
from arena.schemas.rewards import CardProgress, RewardRecord, XPGain

MAX_LEVEL = 50

COIN_REWARDS: dict[tuple[BattleMode, BattleOutcome], int] = {
    (BattleMode.DUEL, BattleOutcome.WIN): 50,
    (BattleMode.DUEL, BattleOutcome.DRAW): 25,
    (BattleMode.DUEL, BattleOutcome.LOSS): 10,
    (BattleMode.TEAM, BattleOutcome.WIN): 150,
    (BattleMode.TEAM, BattleOutcome.DRAW): 75,
    (BattleMode.TEAM, BattleOutcome.LOSS): 25,
}

XP_REWARDS: dict[tuple[BattleMode, BattleOutcome], int] = {
    (BattleMode.DUEL, BattleOutcome.WIN): 20,
    (BattleMode.DUEL, BattleOutcome.DRAW): 10,
    (BattleMode.DUEL, BattleOutcome.LOSS): 0,
    (BattleMode.TEAM, BattleOutcome.WIN): 15,
    (BattleMode.TEAM, BattleOutcome.DRAW): 8,
    (BattleMode.TEAM, BattleOutcome.LOSS): 0,
}


def xp_to_next_level(level: int) -> int:
    return 100 * level


def apply_xp(level: int, xp: int, gained: int) -> tuple[int, int]:
    """Add XP and level up, returning the new ``(level, xp)``.

    XP beyond the level cap is discarded.
    """
    xp += gained
    while level < MAX_LEVEL and xp >= xp_to_next_level(level):
        xp -= xp_to_next_level(level)
        level += 1
    if level >= MAX_LEVEL:
        xp = 0
    return level, xp


def battle_outcome(winner: Winner) -> BattleOutcome:
    match winner:
        case Winner.PLAYER:
            return BattleOutcome.WIN
        case Winner.AI:
            return BattleOutcome.LOSS
        case Winner.DRAW:
            return BattleOutcome.DRAW
        case _:
            raise BattleNotOverError


def participated(card: CombatCard) -> bool:
    return card.is_knocked_out or card.hp < card.hp_max


class RewardCalculator:
    """Coins and XP earned by the player for a finished battle."""

    def calculate(
        self, session: BattleSession, progress: Mapping[int, CardProgress], finished_at: datetime
    ) -> RewardRecord:
        """Build the reward record for a finished session.

        Args:
            session: A session whose battle is over.
            progress: Persisted level, XP and base stats of the player's cards, by card id.
            finished_at: When the battle ended, for the history duration.

        Raises:
            BattleNotOverError: The battle is still in play.
            CatalogLookupFailedError: A card earning XP has no persisted progress.
        """
        if not session.battle_over:
            raise BattleNotOverError

        outcome = battle_outcome(session.winner)
        xp_amount = XP_REWARDS[session.mode, outcome]

        xp_gains: list[XPGain] = []
        if xp_amount > 0:
            for card in self._xp_recipients(session, outcome):
                card_progress = progress.get(card.card_id)
                if card_progress is None:
                    raise CatalogLookupFailedError(f"No saved progress for card {card.card_id}")
                xp_gains.append(self._gain(card_progress, xp_amount))

        duration = max(0, int((finished_at - session.created_at).total_seconds()))
        return RewardRecord(
            session_id=session.id,
            mode=session.mode,
            result=outcome,
            coins_earned=COIN_REWARDS[session.mode, outcome],
            duration_seconds=duration,
            player_surrendered=session.player_surrendered,
            xp_gains=xp_gains,
        )

    def _xp_recipients(self, session: BattleSession, outcome: BattleOutcome) -> list[CombatCard]:
        if session.mode is BattleMode.DUEL:
            return [session.player_card]
        if outcome is BattleOutcome.WIN:
            return [card for card in session.player_deck if participated(card)]
        return list(session.player_deck)

    def _gain(self, progress: CardProgress, amount: int) -> XPGain:
        new_level, new_xp = apply_xp(progress.level, progress.xp, amount)
        return XPGain(
            card_id=progress.card_id,
            name=progress.name,
            xp_gained=amount,
            old_level=progress.level,
            new_level=new_level,
            new_xp=new_xp,
            leveled_up=new_level > progress.level,
            old_stats=stats_for_level(progress.base, progress.level),
            new_stats=stats_for_level(progress.base, new_level),
        )
