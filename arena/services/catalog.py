from collections.abc import Sequence
from functools import cache
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.errors import CatalogLookupFailedError, DeckSizeMismatchError
from arena.core.rng import RngPort
from arena.models.player_card import PlayerCard
from arena.schemas.battle import CombatCard
from arena.schemas.catalog import CardStats, CatalogEntry, Move
from arena.schemas.rewards import CardProgress

CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "creatures.json"


class CatalogPort(Protocol):
    """Read access to creature data and owned cards."""

    async def get_player_deck(self, user_id: int, size: int, rng: RngPort) -> list[CombatCard]: ...

    async def draw_ai_deck(self, size: int, rng: RngPort) -> list[CombatCard]: ...

    async def get_card_progress(
        self, user_id: int, card_ids: Sequence[int]
    ) -> dict[int, CardProgress]: ...


@cache
def load_catalog(path: Path = CATALOG_PATH) -> tuple[CatalogEntry, ...]:
    try:
        return tuple(TypeAdapter(list[CatalogEntry]).validate_json(path.read_bytes()))
    except (OSError, ValidationError) as e:
        raise CatalogLookupFailedError(f"Failed to load creature catalog from {path}") from e


def draw_entries(
    entries: Sequence[CatalogEntry], size: int, rng: RngPort
) -> list[CatalogEntry]:
    """Draw ``size`` distinct entries using the battle's RNG."""
    if len(entries) < size:
        raise CatalogLookupFailedError(
            f"Catalog has {len(entries)} creatures, {size} are needed"
        )
    pool = list(entries)
    return [pool.pop(rng.intn(len(pool))) for _ in range(size)]


def player_card_to_combat(card: PlayerCard, *, is_legendary: bool = False) -> CombatCard:
    stamina_max = max(card.speed * 2, 1)
    return CombatCard(
        card_id=card.id,
        name=card.name,
        level=card.level,
        hp=card.hp,
        hp_max=card.hp,
        stamina=stamina_max,
        stamina_max=stamina_max,
        attack=card.attack,
        defense=card.defense,
        speed=card.speed,
        types=list(card.types),
        moves=[Move.model_validate(move) for move in card.moves],
        sprite=card.sprite,
        is_legendary=is_legendary,
    )


class SqlCardCatalog:
    def __init__(self, db: AsyncSession, entries: Sequence[CatalogEntry] | None = None) -> None:
        self.db = db
        self.entries = tuple(entries) if entries is not None else load_catalog()
        self.legendary_ids = {
            entry.id for entry in self.entries if entry.is_legendary or entry.is_mythical
        }

    async def _deck_cards(self, user_id: int) -> Sequence[PlayerCard]:
        try:
            result = await self.db.exec(
                select(PlayerCard)
                .where(PlayerCard.player_id == user_id)
                .where(col(PlayerCard.deck_position).is_not(None))
                .order_by(col(PlayerCard.deck_position))
            )
            return result.all()
        except SQLAlchemyError as e:
            raise CatalogLookupFailedError(f"Failed to load the deck of user {user_id}") from e

    async def get_player_deck(self, user_id: int, size: int, rng: RngPort) -> list[CombatCard]:
        """Team battles use the whole deck; duels pick one deck card at random."""
        cards = list(await self._deck_cards(user_id))
        if not cards:
            raise DeckSizeMismatchError("Your deck is empty")
        if len(cards) < size:
            raise DeckSizeMismatchError(
                f"Your deck has {len(cards)} Pokemon, {size} are needed for this battle"
            )

        if size < len(cards):
            cards = [cards[rng.intn(len(cards))]] if size == 1 else cards[:size]
        return [
            player_card_to_combat(card, is_legendary=card.catalog_id in self.legendary_ids)
            for card in cards
        ]

    async def draw_ai_deck(self, size: int, rng: RngPort) -> list[CombatCard]:
        return [CombatCard.from_catalog(entry) for entry in draw_entries(self.entries, size, rng)]

    async def get_card_progress(
        self, user_id: int, card_ids: Sequence[int]
    ) -> dict[int, CardProgress]:
        try:
            result = await self.db.exec(
                select(PlayerCard)
                .where(PlayerCard.player_id == user_id)
                .where(col(PlayerCard.id).in_(card_ids))
            )
            cards = result.all()
        except SQLAlchemyError as e:
            raise CatalogLookupFailedError(f"Failed to load cards of user {user_id}") from e

        return {
            card.id: CardProgress(
                card_id=card.id,
                name=card.name,
                level=card.level,
                xp=card.xp,
                base=CardStats(
                    hp=card.base_hp,
                    attack=card.base_attack,
                    defense=card.base_defense,
                    speed=card.base_speed,
                ),
            )
            for card in cards
        }
