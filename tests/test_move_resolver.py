import pytest
from factories import ScriptedRng, log_texts, make_card, make_move

from arena.core.enums import ActionType, Side
from arena.services.move_resolver import Commit, MoveResolver


def _commits(
    player_action: ActionType,
    ai_action: ActionType,
    *,
    player_card=None,
    ai_card=None,
    player_idx: int | None = None,
    ai_idx: int | None = None,
) -> tuple[Commit, Commit]:
    player_card = player_card or make_card("eevee")
    ai_card = ai_card or make_card("snorlax", card_id=2)
    if player_action is ActionType.ATTACK and player_idx is None:
        player_idx = 0
    if ai_action is ActionType.ATTACK and ai_idx is None:
        ai_idx = 0
    return (
        Commit(Side.PLAYER, player_card, player_action, player_idx),
        Commit(Side.AI, ai_card, ai_action, ai_idx),
    )


def test_double_pass_increments_counter() -> None:
    player, ai = _commits(ActionType.PASS, ActionType.PASS)

    resolution = MoveResolver(ScriptedRng()).resolve(player, ai, consecutive_passes=0)

    assert resolution.consecutive_passes == 1
    assert not resolution.stalemate
    assert log_texts(resolution.log) == ["Both passed. Nothing happened! (Pass count: 1/3)"]


def test_third_double_pass_is_stalemate() -> None:
    player, ai = _commits(ActionType.PASS, ActionType.PASS)
    resolution = MoveResolver(ScriptedRng()).resolve(player, ai, consecutive_passes=2)
    assert resolution.consecutive_passes == 3
    assert resolution.stalemate


@pytest.mark.parametrize(
    ("player_action", "ai_action"),
    [
        (ActionType.ATTACK, ActionType.PASS),
        (ActionType.PASS, ActionType.DEFEND),
        (ActionType.DEFEND, ActionType.DEFEND),
    ],
)
def test_any_other_pair_resets_pass_counter(
    player_action: ActionType, ai_action: ActionType
) -> None:
    player, ai = _commits(player_action, ai_action)
    resolution = MoveResolver(ScriptedRng([0.5])).resolve(player, ai, consecutive_passes=2)
    assert resolution.consecutive_passes == 0


def test_both_defend_costs_stamina_but_deals_nothing() -> None:
    player, ai = _commits(ActionType.DEFEND, ActionType.DEFEND)

    resolution = MoveResolver(ScriptedRng()).resolve(player, ai, consecutive_passes=0)

    assert log_texts(resolution.log) == ["Both defended. No damage dealt."]
    assert player.card.hp == 100
    assert ai.card.hp == 100
    assert player.card.stamina == 50
    assert ai.card.stamina == 50


def test_player_strike_is_rolled_first() -> None:
    player, ai = _commits(ActionType.ATTACK, ActionType.ATTACK)

    resolution = MoveResolver(ScriptedRng([0.99, 0.0])).resolve(player, ai, consecutive_passes=0)

    assert log_texts(resolution.log) == [
        "Player dealt 40 damage to AI.",
        "AI dealt 4 damage to Player.",
    ]
    assert ai.card.hp == 60
    assert player.card.hp == 96
    assert player.card.stamina == 87
    assert ai.card.stamina == 87


def test_defend_absorbs_weak_attack() -> None:
    jab = make_move("jab", power=20, stamina_cost=6)
    attacker = make_card("machamp", attack=120, moves=[jab] * 4)
    defender = make_card("onix", card_id=2, defense=8)
    player, ai = _commits(
        ActionType.ATTACK, ActionType.DEFEND, player_card=attacker, ai_card=defender
    )

    resolution = MoveResolver(ScriptedRng([0.99])).resolve(player, ai, consecutive_passes=0)

    assert log_texts(resolution.log) == ["AI blocked all damage!"]
    assert resolution.damage_taken[Side.AI] == 0
    assert defender.hp == 100
    assert defender.stamina == 50
    assert attacker.stamina == 94


def test_defend_subtracts_defense_from_quartered_damage() -> None:
    attacker = make_card("machamp", attack=120, moves=[make_move("strength", power=80)] * 4)
    defender = make_card("onix", card_id=2, defense=8)
    player, ai = _commits(
        ActionType.ATTACK, ActionType.DEFEND, player_card=attacker, ai_card=defender
    )

    resolution = MoveResolver(ScriptedRng([0.99])).resolve(player, ai, consecutive_passes=0)

    assert log_texts(resolution.log) == ["Player dealt 12 damage to AI (after defense)."]
    assert defender.hp == 88


def test_defense_stat_ignored_without_defend() -> None:
    attacker = make_card("machamp", attack=120, moves=[make_move("strength", power=80)] * 4)
    defender = make_card("onix", card_id=2, defense=500)
    player, ai = _commits(
        ActionType.ATTACK, ActionType.PASS, player_card=attacker, ai_card=defender
    )

    MoveResolver(ScriptedRng([0.99])).resolve(player, ai, consecutive_passes=0)

    assert defender.hp == 20


def test_both_cards_can_fall_in_the_same_turn() -> None:
    player, ai = _commits(
        ActionType.ATTACK,
        ActionType.ATTACK,
        player_card=make_card("eevee", hp=4, hp_max=100),
        ai_card=make_card("snorlax", card_id=2, hp=4, hp_max=100),
    )

    MoveResolver(ScriptedRng([0.99, 0.99])).resolve(player, ai, consecutive_passes=0)

    assert player.card.is_knocked_out
    assert ai.card.is_knocked_out
    assert player.card.hp == 0
    assert ai.card.hp == 0


def test_free_actions_cannot_be_resolved() -> None:
    player, ai = _commits(ActionType.SACRIFICE, ActionType.PASS)
    with pytest.raises(ValueError, match="cannot be resolved"):
        MoveResolver(ScriptedRng()).resolve(player, ai, consecutive_passes=0)


@pytest.mark.parametrize("move_idx", [None, 4, -1])
def test_attack_needs_a_valid_move_index(move_idx: int | None) -> None:
    player = Commit(Side.PLAYER, make_card("eevee"), ActionType.ATTACK, move_idx)
    ai = Commit(Side.AI, make_card("snorlax", card_id=2), ActionType.PASS)

    with pytest.raises(ValueError, match="no valid move index"):
        MoveResolver(ScriptedRng()).resolve(player, ai, consecutive_passes=0)
    assert player.card.stamina == player.card.stamina_max
