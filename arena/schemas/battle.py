import uuid
from datetime import datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

from arena.core.enums import ActionType, BattleMode, LogKind, Side, Turn, Winner
from arena.schemas.catalog import CatalogEntry, Move, stats_for_level
from arena.schemas.rewards import RewardRecord


class CombatCard(BaseModel):
    """One combatant as it exists inside a battle session."""

    card_id: int
    name: str
    level: int = Field(default=1, ge=1)
    hp: int = Field(ge=0)
    hp_max: int = Field(gt=0)
    stamina: int = Field(ge=0)
    stamina_max: int = Field(gt=0)
    attack: int = Field(ge=0)
    defense: int = Field(ge=0)
    speed: int = Field(ge=0)
    types: list[str] = Field(min_length=1, max_length=2)
    moves: list[Move] = Field(min_length=4, max_length=4)
    sprite: str = ""
    is_legendary: bool = False
    """Legendary or mythical, from the catalog entry"""
    is_knocked_out: bool = False

    @model_validator(mode="after")
    def check_bounds(self) -> Self:
        if self.hp > self.hp_max:
            msg = f"hp {self.hp} exceeds hp_max {self.hp_max}"
            raise ValueError(msg)
        if self.stamina > self.stamina_max:
            msg = f"stamina {self.stamina} exceeds stamina_max {self.stamina_max}"
            raise ValueError(msg)
        self.is_knocked_out = self.hp == 0
        return self

    @classmethod
    def from_catalog(
        cls, entry: CatalogEntry, *, level: int = 1, card_id: int | None = None
    ) -> Self:
        """Build a fresh combatant at full HP and stamina for the given level."""
        stats = stats_for_level(entry.base_stats, level)
        stamina_max = max(stats.stamina_max, 1)
        return cls(
            card_id=card_id if card_id is not None else entry.id,
            name=entry.name,
            level=level,
            hp=stats.hp,
            hp_max=stats.hp,
            stamina=stamina_max,
            stamina_max=stamina_max,
            attack=stats.attack,
            defense=stats.defense,
            speed=stats.speed,
            types=list(entry.types),
            moves=[move.model_copy() for move in entry.moves],
            sprite=entry.sprite,
            is_legendary=entry.is_legendary or entry.is_mythical,
        )

    @property
    def defend_cost(self) -> int:
        # ceil(hp_max / 2)
        return (self.hp_max + 1) // 2

    @property
    def hp_fraction(self) -> float:
        return self.hp / self.hp_max

    @property
    def stamina_fraction(self) -> float:
        return self.stamina / self.stamina_max

    def has_move(self, move_idx: int) -> bool:
        return 0 <= move_idx < len(self.moves)

    def can_attack(self, move_idx: int) -> bool:
        return self.has_move(move_idx) and self.stamina >= self.moves[move_idx].stamina_cost

    def can_attack_any(self) -> bool:
        return any(self.can_attack(idx) for idx in range(len(self.moves)))

    def can_defend(self) -> bool:
        return self.stamina >= self.defend_cost

    def set_hp(self, value: int) -> None:
        self.hp = max(0, min(self.hp_max, value))
        self.is_knocked_out = self.hp == 0

    def set_stamina(self, value: int) -> None:
        self.stamina = max(0, min(self.stamina_max, value))

    def knock_out(self) -> None:
        self.set_hp(0)


class LogEntry(BaseModel):
    kind: LogKind
    text: str


class BattleSession(BaseModel):
    """Complete, serializable state of one battle."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_user_id: int
    mode: BattleMode
    player_deck: list[CombatCard]
    ai_deck: list[CombatCard]
    player_active_idx: int = 0
    ai_active_idx: int = 0
    turn_number: int = Field(default=1, ge=1)
    round_number: int = Field(default=1, ge=1)
    whose_turn: Turn = Turn.PLAYER
    battle_over: bool = False
    winner: Winner = Winner.UNRESOLVED
    reward_claimed: bool = False
    player_surrendered: bool = False
    consecutive_passes: int = Field(default=0, ge=0, le=3)

    pending_player_move: ActionType | None = None
    pending_player_move_idx: int | None = None
    pending_ai_move: ActionType | None = None
    pending_ai_move_idx: int | None = None
    turn_started: bool = False
    """Whether the current turn's header has been logged"""

    sacrifice_count: dict[int, int] = {}
    """Player sacrifices keyed by deck index"""
    ai_sacrifice_count: dict[int, int] = {}
    """AI sacrifices keyed by deck index"""

    # Switch bookkeeping for team mode
    round_turns: int = 0
    """Turns resolved since the current round began"""
    player_active_turns: int = 0
    """Turns the player's active card has fought since it entered the field"""
    player_switched_this_round: bool = False

    rng_seed: int = 0
    rng_draws: int = 0

    reward: RewardRecord | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def player_card(self) -> CombatCard:
        return self.player_deck[self.player_active_idx]

    @property
    def ai_card(self) -> CombatCard:
        return self.ai_deck[self.ai_active_idx]

    @property
    def is_team(self) -> bool:
        return self.mode is BattleMode.TEAM

    def deck(self, side: Side) -> list[CombatCard]:
        return self.player_deck if side is Side.PLAYER else self.ai_deck

    def active_idx(self, side: Side) -> int:
        return self.player_active_idx if side is Side.PLAYER else self.ai_active_idx

    def active(self, side: Side) -> CombatCard:
        return self.deck(side)[self.active_idx(side)]

    def set_active(self, side: Side, idx: int) -> None:
        if side is Side.PLAYER:
            self.player_active_idx = idx
        else:
            self.ai_active_idx = idx

    def sacrifices(self, side: Side) -> dict[int, int]:
        return self.sacrifice_count if side is Side.PLAYER else self.ai_sacrifice_count

    def alive_indices(self, side: Side) -> list[int]:
        return [idx for idx, card in enumerate(self.deck(side)) if not card.is_knocked_out]

    def pending_move(self, side: Side) -> tuple[ActionType | None, int | None]:
        if side is Side.PLAYER:
            return self.pending_player_move, self.pending_player_move_idx
        return self.pending_ai_move, self.pending_ai_move_idx

    def set_pending_move(self, side: Side, move: ActionType | None, move_idx: int | None) -> None:
        if side is Side.PLAYER:
            self.pending_player_move, self.pending_player_move_idx = move, move_idx
        else:
            self.pending_ai_move, self.pending_ai_move_idx = move, move_idx

    def clear_pending_moves(self) -> None:
        self.set_pending_move(Side.PLAYER, None, None)
        self.set_pending_move(Side.AI, None, None)


class HiddenCardView(BaseModel):
    """Face-down AI card in a team battle."""

    card_id: int
    is_knocked_out: bool
    is_active: bool = False
    is_face_down: bool


class SessionView(BaseModel):
    id: str
    mode: BattleMode
    turn_number: int
    round_number: int | None
    whose_turn: Turn
    battle_over: bool
    winner: Winner
    reward_claimed: bool
    player_surrendered: bool
    consecutive_passes: int
    player_active_idx: int
    ai_active_idx: int
    sacrifice_count: dict[int, int]
    player_deck: list[CombatCard]
    ai_deck: list[CombatCard | HiddenCardView]
    log: list[LogEntry] = []
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: BattleSession, log: list[LogEntry] | None = None) -> Self:
        ai_deck: list[CombatCard | HiddenCardView] = []
        for idx, card in enumerate(session.ai_deck):
            if session.is_team and idx != session.ai_active_idx:
                ai_deck.append(
                    HiddenCardView(
                        card_id=card.card_id,
                        is_knocked_out=card.is_knocked_out,
                        is_face_down=not card.is_knocked_out,
                    )
                )
            else:
                ai_deck.append(card.model_copy(deep=True))

        return cls(
            id=session.id,
            mode=session.mode,
            turn_number=session.turn_number,
            round_number=session.round_number if session.is_team else None,
            whose_turn=session.whose_turn,
            battle_over=session.battle_over,
            winner=session.winner,
            reward_claimed=session.reward_claimed,
            player_surrendered=session.player_surrendered,
            consecutive_passes=session.consecutive_passes,
            player_active_idx=session.player_active_idx,
            ai_active_idx=session.ai_active_idx,
            sacrifice_count=dict(session.sacrifice_count),
            player_deck=[card.model_copy(deep=True) for card in session.player_deck],
            ai_deck=ai_deck,
            log=list(log or []),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class BattleActionResult(BaseModel):
    session: SessionView
    turn_advanced: bool = False
    reward: RewardRecord | None = None
    reward_error: str | None = None


class SessionSummary(BaseModel):
    id: str
    mode: BattleMode
    turn_number: int
    battle_over: bool
    winner: Winner
    created_at: datetime
    updated_at: datetime


class StartBattleRequest(BaseModel):
    mode: str


class ActionRequest(BaseModel):
    action: str
    move_idx: int | None = None


class SwitchRequest(BaseModel):
    new_idx: int
