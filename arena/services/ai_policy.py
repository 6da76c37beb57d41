from typing import NamedTuple

from loguru import logger

from arena.core.enums import ActionType, BattleMode, Side
from arena.core.rng import RngPort
from arena.schemas.battle import BattleSession, CombatCard
from arena.schemas.catalog import Move
from arena.services.sacrifice import can_sacrifice
from arena.services.type_chart import type_effectiveness

PASS_SCORE = 0.1
LOW_HP = 0.3
HIGH_HP = 0.7
DUEL_SURRENDER_HP = 0.1
DUEL_SURRENDER_CHANCE = 0.3
TEAM_SURRENDER_HP = 0.25
TEAM_SURRENDER_MARGIN = 0.3
TEAM_SURRENDER_CHANCE = 0.4
SWITCH_THRESHOLD = 0.3


class AIDecision(NamedTuple):
    action: ActionType
    move_idx: int | None = None
    score: float = 0.0


class AIPolicy:
    """Decision procedure for the computer opponent."""

    def __init__(self, rng: RngPort) -> None:
        self.rng = rng

    def choose_action(
        self, session: BattleSession, player_move: ActionType | None = None
    ) -> AIDecision:
        """Pick the AI's next action.

        Args:
            session: The battle being played.
            player_move: What the player just committed, or None when the AI moves first.

        Returns:
            The chosen decision. Sacrifice is returned only when it can be applied.
        """
        ai = session.ai_card
        player = session.player_card
        sacrifices = session.ai_sacrifice_count.get(session.ai_active_idx, 0)

        can_attack = ai.can_attack_any()
        can_defend = ai.can_defend()
        if not can_attack and not can_defend:
            if can_sacrifice(ai, sacrifices):
                return AIDecision(ActionType.SACRIFICE)
            if self._should_surrender(session):
                return AIDecision(ActionType.SURRENDER)
            return AIDecision(ActionType.PASS, score=PASS_SCORE)

        options: list[AIDecision] = [
            AIDecision(ActionType.ATTACK, idx, self._attack_score(ai, player, move, player_move))
            for idx, move in enumerate(ai.moves)
            if ai.can_attack(idx)
        ]
        if can_defend:
            options.append(
                AIDecision(ActionType.DEFEND, score=self._defend_score(ai, player, player_move))
            )
        options.append(AIDecision(ActionType.PASS, score=PASS_SCORE))

        # Earlier options win ties
        best = options[0]
        for option in options[1:]:
            if option.score > best.score:
                best = option

        logger.debug(
            f"AI options for {ai.name}: "
            + ", ".join(f"{o.action}[{o.move_idx}]={o.score:.2f}" for o in options)
        )
        return best

    def _attack_score(
        self, ai: CombatCard, player: CombatCard, move: Move, player_move: ActionType | None
    ) -> float:
        score = move.power / 100

        effectiveness = type_effectiveness(move.attack_type, player.types)
        if effectiveness > 1:
            score += 0.6 * (effectiveness - 1)
        elif effectiveness < 1:
            score -= 0.3 * (1 - effectiveness)

        if player_move is ActionType.DEFEND and move.power >= 80:
            score += 0.4
        elif player_move is ActionType.ATTACK:
            score -= 0.2
        elif player_move is ActionType.PASS:
            score += 0.5

        # Free moves count as costing one stamina
        score += 0.1 * (move.power / max(move.stamina_cost, 1))

        if ai.hp_fraction < LOW_HP:
            score += 0.3
        return score

    def _defend_score(
        self, ai: CombatCard, player: CombatCard, player_move: ActionType | None
    ) -> float:
        score = 0.0
        if player_move is ActionType.ATTACK:
            score += 0.7
            if any(type_effectiveness(m.attack_type, ai.types) > 1 for m in player.moves):
                score += 0.3
        elif player_move in (ActionType.DEFEND, ActionType.PASS):
            score -= 0.5

        if ai.hp_fraction < LOW_HP:
            score += 0.4
        elif ai.hp_fraction > HIGH_HP:
            score -= 0.2
        return score

    def _should_surrender(self, session: BattleSession) -> bool:
        ai = session.ai_card
        if session.mode is BattleMode.DUEL:
            if ai.hp_fraction < DUEL_SURRENDER_HP and ai.stamina == 0:
                return self.rng.float64() < DUEL_SURRENDER_CHANCE
            return False

        if ai.hp_fraction >= TEAM_SURRENDER_HP or ai.stamina >= ai.stamina_max // 4:
            return False
        stronger_teammate = any(
            session.ai_deck[idx].hp_fraction > ai.hp_fraction + TEAM_SURRENDER_MARGIN
            for idx in session.alive_indices(Side.AI)
            if idx != session.ai_active_idx
        )
        if stronger_teammate:
            return self.rng.float64() < TEAM_SURRENDER_CHANCE
        return False

    def choose_switch(self, session: BattleSession) -> int | None:
        """Index the AI should switch to in team mode, or None to stay."""
        if session.mode is not BattleMode.TEAM:
            return None

        alive = session.alive_indices(Side.AI)
        active = session.ai_card
        if active.is_knocked_out:
            return alive[0] if alive else None
        if active.hp_fraction >= SWITCH_THRESHOLD and active.stamina_fraction >= SWITCH_THRESHOLD:
            return None

        best_idx: int | None = None
        best_score = active.hp_fraction + active.stamina_fraction
        for idx in alive:
            if idx == session.ai_active_idx:
                continue
            candidate = session.ai_deck[idx]
            score = candidate.hp_fraction + candidate.stamina_fraction
            if score > best_score:
                best_idx, best_score = idx, score
        return best_idx
