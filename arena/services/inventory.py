from typing import Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.enums import BattleMode, BattleOutcome, EventType
from arena.core.errors import InventoryCreditFailedError
from arena.models.battle_history import BattleHistory
from arena.models.event_log import EventLog
from arena.models.player import Player
from arena.models.player_card import PlayerCard
from arena.schemas.rewards import RewardRecord


class InventoryPort(Protocol):
    async def credit_rewards(self, user_id: int, reward: RewardRecord) -> None:
        """Credit coins, XP and battle history in a single transaction.

        Crediting a battle that already has a history row changes nothing.
        """
        ...


class SqlInventory:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def credit_rewards(self, user_id: int, reward: RewardRecord) -> None:
        try:
            if await self._already_credited(reward.session_id):
                logger.info(f"Rewards of battle {reward.session_id} were already credited")
                return
            await self._credit(user_id, reward)
            await self.db.commit()
        except InventoryCreditFailedError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to credit rewards of battle {reward.session_id}: {e}")
            raise InventoryCreditFailedError from e

        logger.info(
            f"Credited {reward.coins_earned} coins and {len(reward.xp_gains)} XP gains "
            f"to player {user_id} for battle {reward.session_id}"
        )

    async def _already_credited(self, session_id: str) -> bool:
        stmt = select(BattleHistory.id).where(BattleHistory.session_id == session_id)
        return (await self.db.exec(stmt)).first() is not None

    async def _credit(self, user_id: int, reward: RewardRecord) -> None:
        player = await self.db.get(Player, user_id)
        if not player:
            raise InventoryCreditFailedError(f"Player {user_id} not found")

        player.coins += reward.coins_earned
        player.total_coins_earned += reward.coins_earned
        self._count_result(player, reward)

        for gain in reward.xp_gains:
            card = await self.db.get(PlayerCard, gain.card_id)
            if not card or card.player_id != user_id:
                raise InventoryCreditFailedError(f"Card {gain.card_id} not owned by {user_id}")

            card.level = gain.new_level
            card.xp = gain.new_xp
            card.hp = gain.new_stats.hp
            card.attack = gain.new_stats.attack
            card.defense = gain.new_stats.defense
            card.speed = gain.new_stats.speed
            self.db.add(card)
            player.highest_level = max(player.highest_level, gain.new_level)

            if gain.leveled_up:
                self.db.add(
                    EventLog(
                        player_id=user_id,
                        event_type=EventType.LEVEL_UP,
                        context={
                            "card_id": gain.card_id,
                            "name": gain.name,
                            "old_level": gain.old_level,
                            "new_level": gain.new_level,
                        },
                    )
                )

        self.db.add(player)
        self.db.add(
            BattleHistory(
                player_id=user_id,
                session_id=reward.session_id,
                mode=reward.mode,
                result=reward.result,
                coins_earned=reward.coins_earned,
                duration_seconds=reward.duration_seconds,
                player_surrendered=reward.player_surrendered,
            )
        )
        self.db.add(
            EventLog(
                player_id=user_id,
                event_type=EventType.BATTLE_REWARD,
                context={
                    "session_id": reward.session_id,
                    "mode": reward.mode.value,
                    "result": reward.result.value,
                    "coins_earned": reward.coins_earned,
                },
            )
        )

    def _count_result(self, player: Player, reward: RewardRecord) -> None:
        if reward.result is BattleOutcome.DRAW:
            return
        won = reward.result is BattleOutcome.WIN
        if reward.mode is BattleMode.DUEL:
            if won:
                player.duel_wins += 1
            else:
                player.duel_losses += 1
        elif won:
            player.team_wins += 1
        else:
            player.team_losses += 1
