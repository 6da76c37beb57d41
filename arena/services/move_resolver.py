from dataclasses import dataclass, field

from arena.core.enums import ActionType, LogKind, Side
from arena.core.rng import RngPort
from arena.schemas.battle import CombatCard, LogEntry
from arena.schemas.catalog import Move
from arena.services.damage import DamageRoller

STALEMATE_PASSES = 3

TURN_ACTIONS = frozenset({ActionType.ATTACK, ActionType.DEFEND, ActionType.PASS})


@dataclass(slots=True)
class Commit:
    """A turn-consuming move recorded for one side."""

    side: Side
    card: CombatCard
    action: ActionType
    move_idx: int | None = None


@dataclass(slots=True)
class TurnResolution:
    consecutive_passes: int
    damage_taken: dict[Side, int] = field(default_factory=dict)
    stamina_spent: dict[Side, int] = field(default_factory=dict)
    log: list[LogEntry] = field(default_factory=list)

    @property
    def stalemate(self) -> bool:
        return self.consecutive_passes >= STALEMATE_PASSES


def attack_move(commit: Commit) -> Move:
    if commit.move_idx is None or not commit.card.has_move(commit.move_idx):
        msg = f"{commit.side.label} attack has no valid move index: {commit.move_idx}"
        raise ValueError(msg)
    return commit.card.moves[commit.move_idx]


class MoveResolver:
    """Applies both recorded moves of a turn to the two active cards."""

    def __init__(self, rng: RngPort) -> None:
        self.roller = DamageRoller(rng)

    def resolve(self, player: Commit, ai: Commit, consecutive_passes: int) -> TurnResolution:
        for commit in (player, ai):
            if commit.action not in TURN_ACTIONS:
                msg = f"{commit.action} cannot be resolved as a turn move"
                raise ValueError(msg)

        resolution = TurnResolution(
            consecutive_passes=consecutive_passes,
            damage_taken={Side.PLAYER: 0, Side.AI: 0},
            stamina_spent={Side.PLAYER: self._cost(player), Side.AI: self._cost(ai)},
        )

        if player.action is ActionType.PASS and ai.action is ActionType.PASS:
            resolution.consecutive_passes += 1
            resolution.log.append(
                LogEntry(
                    kind=LogKind.PASS,
                    text=(
                        "Both passed. Nothing happened! "
                        f"(Pass count: {resolution.consecutive_passes}/{STALEMATE_PASSES})"
                    ),
                )
            )
            return resolution

        resolution.consecutive_passes = 0
        if player.action is ActionType.DEFEND and ai.action is ActionType.DEFEND:
            resolution.log.append(
                LogEntry(kind=LogKind.BLOCK, text="Both defended. No damage dealt.")
            )

        # Player's strike is always rolled before the AI's
        for attacker, defender in ((player, ai), (ai, player)):
            if attacker.action is ActionType.ATTACK:
                damage = self._strike(attacker, defender, resolution.log)
                resolution.damage_taken[defender.side] = damage

        # Both sides' changes land together
        for commit in (player, ai):
            card = commit.card
            card.set_hp(card.hp - resolution.damage_taken[commit.side])
            card.set_stamina(card.stamina - resolution.stamina_spent[commit.side])

        return resolution

    def _cost(self, commit: Commit) -> int:
        if commit.action is ActionType.ATTACK:
            return attack_move(commit).stamina_cost
        if commit.action is ActionType.DEFEND:
            return commit.card.defend_cost
        return 0

    def _strike(self, attacker: Commit, defender: Commit, log: list[LogEntry]) -> int:
        move = attack_move(attacker)
        attacker_label, defender_label = attacker.side.label, defender.side.label

        if defender.action is not ActionType.DEFEND:
            damage = self.roller.roll(attacker.card, defender.card, move, defending=False)
            log.append(
                LogEntry(
                    kind=LogKind.DAMAGE,
                    text=f"{attacker_label} dealt {damage} damage to {defender_label}.",
                )
            )
            return damage

        raw = self.roller.roll(attacker.card, defender.card, move, defending=True)
        damage = raw - defender.card.defense
        if damage <= 0:
            log.append(LogEntry(kind=LogKind.BLOCK, text=f"{defender_label} blocked all damage!"))
            return 0

        log.append(
            LogEntry(
                kind=LogKind.DAMAGE,
                text=f"{attacker_label} dealt {damage} damage to {defender_label} (after defense).",
            )
        )
        return damage
