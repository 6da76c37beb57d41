import asyncio
from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import Annotated
from weakref import WeakValueDictionary

from fastapi import Depends
from loguru import logger
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.clock import Clock, SystemClock
from arena.core.config import settings
from arena.core.db import get_db
from arena.core.enums import ActionType, BattleMode, Turn
from arena.core.errors import (
    AlreadyClaimedError,
    BattleNotOverError,
    CatalogLookupFailedError,
    InventoryCreditFailedError,
    NotSessionOwnerError,
    PersistFailedError,
)
from arena.core.rng import ResumableRng, SeededRng, new_seed
from arena.schemas.battle import (
    BattleActionResult,
    BattleSession,
    CombatCard,
    LogEntry,
    SessionSummary,
    SessionView,
)
from arena.schemas.rewards import RewardRecord
from arena.services.battle_engine import BattleEngine, parse_mode
from arena.services.catalog import CatalogPort, SqlCardCatalog
from arena.services.inventory import InventoryPort, SqlInventory
from arena.services.rewards import RewardCalculator
from arena.services.session_store import SessionStore, SqlSessionStore

RngFactory = Callable[[int, int], ResumableRng]

# One lock per live session id; entries vanish once no request holds them
_session_locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()


def session_lock(session_id: str) -> asyncio.Lock:
    lock = _session_locks.get(session_id)
    if lock is None:
        lock = asyncio.Lock()
        _session_locks[session_id] = lock
    return lock


class BattleService:
    """Runs battle operations against stored sessions.

    Each mutating call loads the session, applies the engine to a copy and saves it while
    holding the session's lock. The stored session only changes when the save succeeds.
    """

    def __init__(
        self,
        store: SessionStore,
        catalog: CatalogPort,
        inventory: InventoryPort,
        *,
        clock: Clock | None = None,
        rng_factory: RngFactory = SeededRng.resume,
        rewards: RewardCalculator | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.inventory = inventory
        self.clock = clock or SystemClock()
        self.rng_factory = rng_factory
        self.rewards = rewards or RewardCalculator()

    def _engine(self, rng: ResumableRng) -> BattleEngine:
        return BattleEngine(rng, clock=self.clock)

    async def _load(self, session_id: str, user_id: int | None) -> BattleSession:
        session = await self.store.get(session_id)
        if user_id is not None and session.owner_user_id != user_id:
            raise NotSessionOwnerError
        return session

    async def start_battle(
        self,
        user_id: int,
        mode: str | BattleMode,
        *,
        player_deck: Sequence[CombatCard] | None = None,
        ai_deck: Sequence[CombatCard] | None = None,
        seed: int | None = None,
    ) -> BattleActionResult:
        """Start a battle; decks not given are loaded from the catalog."""
        battle_mode = parse_mode(mode)
        if seed is None:
            seed = settings.rng_seed if settings.rng_seed is not None else new_seed()
        rng = self.rng_factory(seed, 0)

        if player_deck is None:
            player_deck = await self.catalog.get_player_deck(user_id, battle_mode.deck_size, rng)
        if ai_deck is None:
            ai_deck = await self.catalog.draw_ai_deck(battle_mode.deck_size, rng)

        session, log = self._engine(rng).start_battle(
            user_id, battle_mode, player_deck, ai_deck, rng_seed=seed
        )
        return await self._commit(session, rng, log)

    async def get_session(self, session_id: str, *, user_id: int | None = None) -> SessionView:
        return SessionView.from_session(await self._load(session_id, user_id))

    async def list_sessions(self, user_id: int) -> list[SessionSummary]:
        sessions = await self.store.list_for_user(user_id)
        return [
            SessionSummary(
                id=s.id,
                mode=s.mode,
                turn_number=s.turn_number,
                battle_over=s.battle_over,
                winner=s.winner,
                created_at=s.created_at,
                updated_at=s.updated_at,
            )
            for s in sessions
        ]

    async def apply_action(
        self,
        session_id: str,
        action: str | ActionType,
        move_idx: int | None = None,
        *,
        user_id: int | None = None,
    ) -> BattleActionResult:
        async with session_lock(session_id):
            session = (await self._load(session_id, user_id)).model_copy(deep=True)
            rng = self.rng_factory(session.rng_seed, session.rng_draws)
            engine = self._engine(rng)

            log: list[LogEntry] = []
            # A session saved while the AI still had to open the turn
            if session.whose_turn is Turn.AI and not session.battle_over:
                log.extend(engine.advance_ai(session).log)
                if session.battle_over:
                    return await self._commit(session, rng, log, entered_terminal=True)

            outcome = engine.apply_action(session, action, move_idx)
            log.extend(outcome.log)
            return await self._commit(
                session,
                rng,
                log,
                turn_advanced=outcome.turn_advanced,
                entered_terminal=outcome.entered_terminal,
            )

    async def switch_combatant(
        self, session_id: str, new_idx: int, *, user_id: int | None = None
    ) -> BattleActionResult:
        async with session_lock(session_id):
            session = (await self._load(session_id, user_id)).model_copy(deep=True)
            rng = self.rng_factory(session.rng_seed, session.rng_draws)
            outcome = self._engine(rng).switch_combatant(session, new_idx)
            return await self._commit(session, rng, outcome.log)

    async def claim_rewards(self, session_id: str, *, user_id: int | None = None) -> RewardRecord:
        """Credit the rewards of a finished battle that have not been credited yet."""
        async with session_lock(session_id):
            session = await self._load(session_id, user_id)
            if not session.battle_over:
                raise BattleNotOverError
            if session.reward_claimed:
                raise AlreadyClaimedError
            _, reward = await self._credit(session)
            return reward

    async def expire_sessions(self, ttl: timedelta | None = None) -> int:
        ttl = ttl if ttl is not None else timedelta(seconds=settings.session_ttl_seconds)
        count = await self.store.expire_older_than(ttl)
        logger.info(f"Expired {count} battle sessions older than {ttl}")
        return count

    async def _commit(
        self,
        session: BattleSession,
        rng: ResumableRng,
        log: list[LogEntry],
        *,
        turn_advanced: bool = False,
        entered_terminal: bool = False,
    ) -> BattleActionResult:
        session.rng_draws = rng.draws
        session.updated_at = self.clock.now()
        await self.store.save(session)

        result = BattleActionResult(
            session=SessionView.from_session(session, log), turn_advanced=turn_advanced
        )
        if not entered_terminal:
            return result

        try:
            session, result.reward = await self._credit(session)
        except (CatalogLookupFailedError, InventoryCreditFailedError, PersistFailedError) as e:
            # The finished battle is saved; claim_rewards can retry the credit
            logger.error(f"Rewards for battle {session.id} were not credited: {e.message}")
            result.reward_error = e.message
        result.session = SessionView.from_session(session, log)
        return result

    async def _credit(self, session: BattleSession) -> tuple[BattleSession, RewardRecord]:
        progress = await self.catalog.get_card_progress(
            session.owner_user_id, [card.card_id for card in session.player_deck]
        )
        reward = self.rewards.calculate(session, progress, self.clock.now())
        await self.inventory.credit_rewards(session.owner_user_id, reward)

        claimed = session.model_copy(deep=True)
        claimed.reward_claimed = True
        claimed.reward = reward
        await self.store.save(claimed)
        return claimed, reward


async def get_battle_service(db: Annotated[AsyncSession, Depends(get_db)]) -> BattleService:
    return BattleService(SqlSessionStore(db), SqlCardCatalog(db), SqlInventory(db))
