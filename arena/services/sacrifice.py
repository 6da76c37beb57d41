from typing import NamedTuple

from arena.core.errors import SacrificeForbiddenError
from arena.schemas.battle import CombatCard

# Step -> (HP cost, stamina gain as a fraction of stamina_max)
SACRIFICE_SCHEDULE: tuple[tuple[int, float], ...] = ((10, 0.50), (15, 0.25), (20, 0.15))
MAX_SACRIFICES = len(SACRIFICE_SCHEDULE)


class SacrificeResult(NamedTuple):
    hp_lost: int
    stamina_gained: int
    count: int


def check_sacrifice(card: CombatCard, count: int) -> None:
    """Raise ``SacrificeForbiddenError`` unless the card may sacrifice now."""
    if count >= MAX_SACRIFICES:
        raise SacrificeForbiddenError("Maximum sacrifices reached")
    hp_cost, _ = SACRIFICE_SCHEDULE[count]
    if card.hp <= hp_cost:
        raise SacrificeForbiddenError("Insufficient HP to sacrifice")
    # Strictly below half stamina
    if card.stamina * 2 >= card.stamina_max:
        raise SacrificeForbiddenError("Stamina is already at or above 50%")


def can_sacrifice(card: CombatCard, count: int) -> bool:
    try:
        check_sacrifice(card, count)
    except SacrificeForbiddenError:
        return False
    return True


def apply_sacrifice(card: CombatCard, count: int) -> SacrificeResult:
    """Trade HP for stamina. The caller stores the returned count."""
    check_sacrifice(card, count)
    hp_cost, fraction = SACRIFICE_SCHEDULE[count]
    gain = int(card.stamina_max * fraction)

    stamina_before = card.stamina
    card.set_hp(card.hp - hp_cost)
    card.set_stamina(card.stamina + gain)
    return SacrificeResult(
        hp_lost=hp_cost, stamina_gained=card.stamina - stamina_before, count=count + 1
    )
