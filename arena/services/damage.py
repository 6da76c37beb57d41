import math

from arena.core.rng import RngPort
from arena.schemas.battle import CombatCard
from arena.schemas.catalog import Move
from arena.services.type_chart import damage_multiplier

DAMAGE_PERCENTS = (0.10, 0.20, 0.30, 0.40, 0.60, 0.80, 1.00)

LOW_DISTRIBUTION = (0.07, 0.13, 0.35, 0.25, 0.10, 0.07, 0.03)
HIGH_DISTRIBUTION = (0.01, 0.04, 0.10, 0.15, 0.25, 0.25, 0.20)
SUPER_DISTRIBUTION = (0.00, 0.01, 0.04, 0.10, 0.15, 0.30, 0.40)

LOW_ATTACK = 30
HIGH_ATTACK = 70
SUPER_ATTACK = 120

DEFEND_MULTIPLIER = 0.25

# Absorbs float noise such as 0.3 * 40 == 12.000000000000002 or 6.999999999999999
_FLOOR_EPSILON = 1e-9


def _interpolate(
    start: tuple[float, ...], end: tuple[float, ...], fraction: float
) -> tuple[float, ...]:
    return tuple(a + (b - a) * fraction for a, b in zip(start, end, strict=True))


def distribution_for(attack: int) -> tuple[float, ...]:
    """Probability of each entry of ``DAMAGE_PERCENTS`` for an attacker stat."""
    if attack <= LOW_ATTACK:
        return LOW_DISTRIBUTION
    if attack < HIGH_ATTACK:
        fraction = (attack - LOW_ATTACK) / (HIGH_ATTACK - LOW_ATTACK)
        return _interpolate(LOW_DISTRIBUTION, HIGH_DISTRIBUTION, fraction)
    if attack == HIGH_ATTACK:
        return HIGH_DISTRIBUTION
    if attack < SUPER_ATTACK:
        fraction = (attack - HIGH_ATTACK) / (SUPER_ATTACK - HIGH_ATTACK)
        return _interpolate(HIGH_DISTRIBUTION, SUPER_DISTRIBUTION, fraction)
    return SUPER_DISTRIBUTION


def floor_damage(value: float) -> int:
    return max(0, math.floor(value + _FLOOR_EPSILON))


class DamageRoller:
    """Samples damage percents and turns them into damage numbers."""

    def __init__(self, rng: RngPort) -> None:
        self.rng = rng

    def roll_percent(self, attack: int) -> float:
        roll = self.rng.float64()
        cumulative = 0.0
        for percent, probability in zip(DAMAGE_PERCENTS, distribution_for(attack), strict=True):
            cumulative += probability
            if roll < cumulative:
                return percent
        # Accumulated probabilities can land a hair below 1.0
        return DAMAGE_PERCENTS[-1]

    def roll(
        self, attacker: CombatCard, defender: CombatCard, move: Move, *, defending: bool
    ) -> int:
        """Damage before the defender's defense stat is considered."""
        percent = self.roll_percent(attacker.attack)
        multiplier = damage_multiplier(
            move.attack_type, defender.types, attacker.name, attacker_flagged=attacker.is_legendary
        )
        damage = floor_damage(move.power * percent * multiplier)
        if defending:
            damage = floor_damage(damage * DEFEND_MULTIPLIER)
        return damage
