"""Turn state machine for duel and team battles.

The engine is synchronous and performs no I/O. Every operation mutates the given
``BattleSession`` in place and returns the log entries produced by that call, so drivers
should hand it a copy when they need to roll back on a failed save.

Turn order: on odd turns the player commits first and the AI answers knowing the player's
move; on even turns the AI commits first. Once both moves are recorded the turn resolves,
knockouts and switches are handled, and if the next turn is even the AI commits right away
so the session always rests waiting for the player (or finished).
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from arena.core.clock import Clock, SystemClock
from arena.core.enums import ActionType, BattleMode, LogKind, Side, Turn, Winner
from arena.core.errors import (
    BattleOverError,
    DeckSizeMismatchError,
    InsufficientStaminaError,
    InvalidActionError,
    InvalidIndexError,
    InvalidModeError,
    InvalidMoveIndexError,
    ModeUnsupportedError,
    NotYourTurnError,
    SwitchNotAllowedError,
    TargetKnockedOutError,
)
from arena.core.rng import RngPort
from arena.schemas.battle import BattleSession, CombatCard, LogEntry
from arena.services.ai_policy import AIPolicy
from arena.services.move_resolver import STALEMATE_PASSES, Commit, MoveResolver
from arena.services.sacrifice import MAX_SACRIFICES, apply_sacrifice, check_sacrifice

MODE_ALIASES = {
    "1v1": BattleMode.DUEL,
    "duel": BattleMode.DUEL,
    "5v5": BattleMode.TEAM,
    "team": BattleMode.TEAM,
}


@dataclass(slots=True)
class ActionOutcome:
    log: list[LogEntry] = field(default_factory=list)
    turn_advanced: bool = False
    entered_terminal: bool = False


def parse_mode(value: str | BattleMode) -> BattleMode:
    mode = MODE_ALIASES.get(str(value).lower())
    if mode is None:
        raise InvalidModeError(f"Invalid battle mode {value!r}, expected '1v1' or '5v5'")
    return mode


def parse_action(value: str | ActionType) -> ActionType:
    try:
        return ActionType(str(value).lower())
    except ValueError:
        raise InvalidActionError(
            f"Invalid action {value!r}, expected one of: "
            + ", ".join(action.value for action in ActionType)
        ) from None


def _fresh(card: CombatCard) -> CombatCard:
    fresh = card.model_copy(deep=True)
    fresh.set_hp(fresh.hp_max)
    fresh.set_stamina(fresh.stamina_max)
    return fresh


class BattleEngine:
    def __init__(
        self, rng: RngPort, *, clock: Clock | None = None, policy: AIPolicy | None = None
    ) -> None:
        self.rng = rng
        self.clock = clock or SystemClock()
        self.policy = policy or AIPolicy(rng)
        self.resolver = MoveResolver(rng)

    # Session lifecycle

    def start_battle(
        self,
        user_id: int,
        mode: str | BattleMode,
        player_deck: Sequence[CombatCard],
        ai_deck: Sequence[CombatCard],
        *,
        rng_seed: int = 0,
    ) -> tuple[BattleSession, list[LogEntry]]:
        """Create a session with both decks at full HP and stamina."""
        battle_mode = parse_mode(mode)
        size = battle_mode.deck_size
        if len(player_deck) != size or len(ai_deck) != size:
            raise DeckSizeMismatchError(
                f"{battle_mode} battles need {size} Pokemon per side, "
                f"got {len(player_deck)} and {len(ai_deck)}"
            )

        now = self.clock.now()
        session = BattleSession(
            owner_user_id=user_id,
            mode=battle_mode,
            player_deck=[_fresh(card) for card in player_deck],
            ai_deck=[_fresh(card) for card in ai_deck],
            rng_seed=rng_seed,
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Battle {session.id} started for user {user_id} ({battle_mode})")
        return session, [LogEntry(kind=LogKind.INFO, text=f"Battle started! Mode: {battle_mode}")]

    def apply_action(
        self, session: BattleSession, action: str | ActionType, move_idx: int | None = None
    ) -> ActionOutcome:
        """Apply one player action.

        Raises:
            BattleOverError: The battle has already ended.
            NotYourTurnError: The AI still has to commit its move for this turn.
            InvalidActionError: Unknown action.
            InvalidMoveIndexError: Attack without a valid move index.
            InsufficientStaminaError: The chosen attack or defend cannot be paid for.
            SacrificeForbiddenError: Sacrifice preconditions are not met.
        """
        action = parse_action(action)
        self._ensure_in_play(session)
        if session.whose_turn is not Turn.PLAYER:
            raise NotYourTurnError
        self._validate_player_action(session, action, move_idx)

        outcome = ActionOutcome()
        log = outcome.log

        if action is ActionType.SURRENDER:
            self._surrender(session, Side.PLAYER, log)
        elif action is ActionType.SACRIFICE:
            self._announce_turn(session, log)
            self._sacrifice(session, Side.PLAYER, log)
        else:
            self._announce_turn(session, log)
            committed_idx = move_idx if action is ActionType.ATTACK else None
            session.set_pending_move(Side.PLAYER, action, committed_idx)
            log.append(self._commit_entry(session.player_card, Side.PLAYER, action, committed_idx))

            if session.pending_ai_move is None:
                self._ai_commit(session, log, player_move=action)
            if not session.battle_over:
                self._resolve_turn(session, log)
                outcome.turn_advanced = True

        self._check_invariants(session, log)
        outcome.entered_terminal = session.battle_over
        return outcome

    def advance_ai(self, session: BattleSession) -> ActionOutcome:
        """Let the AI commit first on an even turn."""
        self._ensure_in_play(session)
        if session.whose_turn is not Turn.AI:
            raise NotYourTurnError("The AI has already moved this turn")

        outcome = ActionOutcome()
        self._ai_opens_turn(session, outcome.log)
        self._check_invariants(session, outcome.log)
        outcome.entered_terminal = session.battle_over
        return outcome

    def switch_combatant(self, session: BattleSession, new_idx: int) -> ActionOutcome:
        """Player-initiated switch at the start of a team round."""
        self._ensure_in_play(session)
        if session.mode is not BattleMode.TEAM:
            raise ModeUnsupportedError("Switching is only available in 5v5 battles")
        if not 0 <= new_idx < len(session.player_deck):
            raise InvalidIndexError(f"Invalid Pokemon index {new_idx}")
        if new_idx == session.player_active_idx:
            raise SwitchNotAllowedError("That Pokemon is already active")
        if session.player_deck[new_idx].is_knocked_out:
            raise TargetKnockedOutError
        if session.whose_turn is not Turn.PLAYER or session.pending_player_move is not None:
            raise SwitchNotAllowedError("You have already committed a move this turn")
        if session.round_turns != 0:
            raise SwitchNotAllowedError("You can only switch at the start of a round")
        if session.player_switched_this_round:
            raise SwitchNotAllowedError("You already switched this round")
        if session.player_active_turns < 1:
            raise SwitchNotAllowedError(
                "Your active Pokemon must fight at least one turn before switching"
            )

        outcome = ActionOutcome()
        self._new_round(session, {Side.PLAYER: new_idx}, outcome.log)
        session.player_switched_this_round = True
        self._check_invariants(session, outcome.log)
        return outcome

    # Validation

    def _ensure_in_play(self, session: BattleSession) -> None:
        if session.battle_over:
            raise BattleOverError

    def _validate_player_action(
        self, session: BattleSession, action: ActionType, move_idx: int | None
    ) -> None:
        card = session.player_card
        if action is ActionType.ATTACK:
            if move_idx is None or not card.has_move(move_idx):
                raise InvalidMoveIndexError(
                    f"Attack needs a move index between 0 and {len(card.moves) - 1}"
                )
            if not card.can_attack(move_idx):
                move = card.moves[move_idx]
                raise InsufficientStaminaError(
                    f"Not enough stamina for {move.name} "
                    f"(needs {move.stamina_cost}, has {card.stamina})"
                )
        elif action is ActionType.DEFEND and not card.can_defend():
            raise InsufficientStaminaError(
                f"Not enough stamina to defend (needs {card.defend_cost}, has {card.stamina})"
            )
        elif action is ActionType.SACRIFICE:
            check_sacrifice(card, session.sacrifice_count.get(session.player_active_idx, 0))

    # Turn flow

    def _announce_turn(self, session: BattleSession, log: list[LogEntry]) -> None:
        if session.turn_started:
            return
        first = "Player's" if session.turn_number % 2 == 1 else "AI's"
        log.append(
            LogEntry(
                kind=LogKind.TURN, text=f"Turn {session.turn_number} begins! {first} move first."
            )
        )
        session.turn_started = True

    def _commit_entry(
        self, card: CombatCard, side: Side, action: ActionType, move_idx: int | None
    ) -> LogEntry:
        if action is ActionType.ATTACK and move_idx is not None:
            text = f"{side.label} chose to attack with {card.moves[move_idx].name}."
        else:
            text = f"{side.label} chose {action}."
        return LogEntry(kind=LogKind.COMMIT, text=text)

    def _sacrifice(self, session: BattleSession, side: Side, log: list[LogEntry]) -> None:
        idx = session.active_idx(side)
        counts = session.sacrifices(side)
        result = apply_sacrifice(session.active(side), counts.get(idx, 0))
        counts[idx] = result.count
        log.append(
            LogEntry(
                kind=LogKind.SACRIFICE,
                text=(
                    f"{side.label} sacrificed {result.hp_lost} HP and gained "
                    f"{result.stamina_gained} stamina."
                ),
            )
        )

    def _ai_commit(
        self, session: BattleSession, log: list[LogEntry], *, player_move: ActionType | None
    ) -> None:
        # Sacrifices and team surrenders do not commit, so the AI keeps deciding
        for _ in range((MAX_SACRIFICES + 1) * len(session.ai_deck) + 1):
            decision = self.policy.choose_action(session, player_move)

            if decision.action is ActionType.SACRIFICE:
                self._sacrifice(session, Side.AI, log)
                continue

            if decision.action is ActionType.SURRENDER:
                self._surrender(session, Side.AI, log)
                if session.battle_over:
                    return
                continue

            session.set_pending_move(Side.AI, decision.action, decision.move_idx)
            log.append(
                self._commit_entry(session.ai_card, Side.AI, decision.action, decision.move_idx)
            )
            return

        logger.error(f"Battle {session.id}: AI did not commit a move")
        self._finish(
            session,
            Winner.DRAW,
            log,
            kind=LogKind.INVARIANT,
            text=(
                "Invariant violation detected (AI did not commit a move). "
                "The battle ends in a draw."
            ),
        )

    def _ai_opens_turn(self, session: BattleSession, log: list[LogEntry]) -> None:
        self._announce_turn(session, log)
        self._ai_commit(session, log, player_move=None)
        if not session.battle_over:
            session.whose_turn = Turn.PLAYER

    def _resolve_turn(self, session: BattleSession, log: list[LogEntry]) -> None:
        player_move, player_idx = session.pending_move(Side.PLAYER)
        ai_move, ai_idx = session.pending_move(Side.AI)
        if player_move is None or ai_move is None:
            msg = "Both sides must commit a move before the turn resolves"
            raise ValueError(msg)

        resolution = self.resolver.resolve(
            Commit(Side.PLAYER, session.player_card, player_move, player_idx),
            Commit(Side.AI, session.ai_card, ai_move, ai_idx),
            session.consecutive_passes,
        )
        log.extend(resolution.log)

        session.consecutive_passes = resolution.consecutive_passes
        session.turn_number += 1
        session.round_turns += 1
        session.player_active_turns += 1
        session.clear_pending_moves()
        session.turn_started = False

        if resolution.stalemate:
            self._finish(
                session,
                Winner.DRAW,
                log,
                kind=LogKind.STALEMATE,
                text=(
                    f"Stalemate! Both players passed {STALEMATE_PASSES} times in a row. "
                    "Battle ends in a draw!"
                ),
            )
            return

        if session.mode is BattleMode.DUEL:
            self._check_duel_end(session, log)
        else:
            self._handle_team_knockouts(session, log)

        if session.battle_over:
            return

        if session.turn_number % 2 == 1:
            session.whose_turn = Turn.PLAYER
        else:
            session.whose_turn = Turn.AI
            self._ai_opens_turn(session, log)

    # Knockouts, switching and surrender

    def _check_duel_end(self, session: BattleSession, log: list[LogEntry]) -> None:
        player_down = session.player_card.is_knocked_out
        ai_down = session.ai_card.is_knocked_out
        if player_down and ai_down:
            winner, text = Winner.DRAW, "It's a draw! Both Pokemon were knocked out."
        elif ai_down:
            winner, text = Winner.PLAYER, "AI's Pokemon was knocked out! Player wins."
        elif player_down:
            winner, text = Winner.AI, "Player's Pokemon was knocked out! AI wins."
        else:
            return
        self._finish(session, winner, log, text=text)

    def _handle_team_knockouts(self, session: BattleSession, log: list[LogEntry]) -> None:
        for side in Side:
            card = session.active(side)
            if card.is_knocked_out:
                log.append(
                    LogEntry(
                        kind=LogKind.KNOCKOUT, text=f"{side.label}'s {card.name} was knocked out!"
                    )
                )

        if self._finish_if_exhausted(session, log):
            return

        switches: dict[Side, int] = {}
        if session.player_card.is_knocked_out:
            switches[Side.PLAYER] = session.alive_indices(Side.PLAYER)[0]
        ai_target = self.policy.choose_switch(session)
        if ai_target is not None and ai_target != session.ai_active_idx:
            switches[Side.AI] = ai_target
        if switches:
            self._new_round(session, switches, log)

    def _finish_if_exhausted(self, session: BattleSession, log: list[LogEntry]) -> bool:
        player_left = bool(session.alive_indices(Side.PLAYER))
        ai_left = bool(session.alive_indices(Side.AI))
        if player_left and ai_left:
            return False

        if not player_left and not ai_left:
            self._finish(
                session,
                Winner.DRAW,
                log,
                text="Both sides have no Pokemon left! The battle ends in a draw!",
            )
        elif not ai_left:
            self._finish(
                session, Winner.PLAYER, log, text="AI has no Pokemon left! Player wins the battle!"
            )
        else:
            self._finish(
                session, Winner.AI, log, text="Player has no Pokemon left! AI wins the battle!"
            )
        return True

    def _new_round(
        self, session: BattleSession, switches: dict[Side, int], log: list[LogEntry]
    ) -> None:
        session.round_number += 1
        session.round_turns = 0
        session.player_switched_this_round = False

        for side, idx in switches.items():
            session.set_active(side, idx)
            if side is Side.PLAYER:
                session.player_active_turns = 0

        # Sacrifice counters restart for whoever is on the field this round
        for side in Side:
            session.sacrifices(side)[session.active_idx(side)] = 0

        for side in switches:
            log.append(
                LogEntry(
                    kind=LogKind.SWITCH,
                    text=(
                        f"{side.label} switched to {session.active(side).name}. "
                        f"Round {session.round_number} begins."
                    ),
                )
            )

    def _surrender(self, session: BattleSession, side: Side, log: list[LogEntry]) -> None:
        if session.mode is BattleMode.DUEL:
            session.player_surrendered = side is Side.PLAYER
            winner = Winner.AI if side is Side.PLAYER else Winner.PLAYER
            self._finish(
                session,
                winner,
                log,
                kind=LogKind.SURRENDER,
                text=f"{side.label} surrendered! {side.opponent.label} wins the battle!",
            )
            return

        card = session.active(side)
        card.knock_out()
        log.append(
            LogEntry(
                kind=LogKind.SURRENDER,
                text=f"{side.label} surrendered! {card.name} was knocked out!",
            )
        )

        alive = session.alive_indices(side)
        if not alive:
            session.player_surrendered = side is Side.PLAYER
            self._finish_if_exhausted(session, log)
            return
        self._new_round(session, {side: alive[0]}, log)

    def _finish(
        self,
        session: BattleSession,
        winner: Winner,
        log: list[LogEntry],
        *,
        text: str,
        kind: LogKind = LogKind.BATTLE_END,
    ) -> None:
        session.battle_over = True
        session.winner = winner
        session.whose_turn = Turn.NONE
        session.clear_pending_moves()
        session.turn_started = False
        log.append(LogEntry(kind=kind, text=text))
        logger.info(
            f"Battle {session.id} finished after {session.turn_number - 1} turns: winner={winner}"
        )

    # Invariants

    def _check_invariants(self, session: BattleSession, log: list[LogEntry]) -> None:
        problems = list(self._invariant_problems(session))
        if not problems:
            return

        logger.error(f"Battle {session.id} violated invariants: {'; '.join(problems)}")
        for deck in (session.player_deck, session.ai_deck):
            for card in deck:
                card.set_hp(card.hp)
                card.set_stamina(card.stamina)
        session.battle_over = True
        session.winner = Winner.DRAW
        session.whose_turn = Turn.NONE
        session.clear_pending_moves()
        log.append(
            LogEntry(
                kind=LogKind.INVARIANT,
                text=f"Invariant violation detected ({problems[0]}). The battle ends in a draw.",
            )
        )

    def _invariant_problems(self, session: BattleSession) -> list[str]:
        problems: list[str] = []
        for side in Side:
            for idx, card in enumerate(session.deck(side)):
                if not 0 <= card.hp <= card.hp_max:
                    problems.append(f"{side} card {idx} hp {card.hp} out of range")
                if not 0 <= card.stamina <= card.stamina_max:
                    problems.append(f"{side} card {idx} stamina {card.stamina} out of range")
                if card.is_knocked_out != (card.hp == 0):
                    problems.append(f"{side} card {idx} knockout flag out of sync")
            if any(not 0 <= count <= MAX_SACRIFICES for count in session.sacrifices(side).values()):
                problems.append(f"{side} sacrifice count out of range")

        if session.consecutive_passes > STALEMATE_PASSES:
            problems.append(f"consecutive passes {session.consecutive_passes}")
        if session.battle_over != (session.winner is not Winner.UNRESOLVED):
            problems.append("battle_over and winner disagree")
        if session.battle_over and session.whose_turn is not Turn.NONE:
            problems.append("finished battle still has a turn owner")

        if not session.battle_over and session.mode is BattleMode.TEAM:
            for side in Side:
                if not session.alive_indices(side):
                    problems.append(f"{side} has no Pokemon left but the battle continues")
                elif session.active(side).is_knocked_out:
                    problems.append(f"{side} active Pokemon is knocked out")
        return problems
