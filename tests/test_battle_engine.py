import pytest
from factories import (
    FixedClock,
    ScriptedRng,
    log_texts,
    make_card,
    make_move,
    make_session,
    make_team,
)

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
    SacrificeForbiddenError,
    SwitchNotAllowedError,
    TargetKnockedOutError,
)
from arena.core.rng import SeededRng
from arena.schemas.battle import BattleSession, CombatCard
from arena.services.battle_engine import BattleEngine
from arena.services.catalog import draw_entries, load_catalog
from arena.services.sacrifice import MAX_SACRIFICES, can_sacrifice


def _engine(*values: float, default: float = 0.5) -> BattleEngine:
    return BattleEngine(ScriptedRng(values, default=default), clock=FixedClock())


def _passive_ai() -> CombatCard:
    """AI card that can neither attack, defend nor sacrifice."""
    splash = make_move("splash", power=0, stamina_cost=30)
    return make_card("magikarp", card_id=2, stamina_max=20, moves=[splash] * 4)


# Starting battles


def test_start_duel_resets_cards() -> None:
    tired = make_card("eevee", hp=10, hp_max=100, stamina=0)

    session, log = _engine().start_battle(7, "1v1", [tired], [make_card("snorlax", card_id=2)])

    assert session.mode is BattleMode.DUEL
    assert session.turn_number == 1
    assert session.whose_turn is Turn.PLAYER
    assert session.winner is Winner.UNRESOLVED
    assert session.player_card.hp == 100
    assert session.player_card.stamina == 100
    assert tired.hp == 10
    assert log_texts(log) == ["Battle started! Mode: 1v1"]


def test_start_team_accepts_mode_alias() -> None:
    session, log = _engine().start_battle(
        7, "team", make_team("player"), make_team("ai", first_id=10)
    )
    assert session.mode is BattleMode.TEAM
    assert session.round_number == 1
    assert log_texts(log) == ["Battle started! Mode: 5v5"]


def test_start_rejects_unknown_mode() -> None:
    with pytest.raises(InvalidModeError):
        _engine().start_battle(7, "3v3", [make_card()], [make_card()])


def test_start_rejects_wrong_deck_size() -> None:
    with pytest.raises(DeckSizeMismatchError):
        _engine().start_battle(7, "5v5", make_team("player")[:4], make_team("ai"))
    with pytest.raises(DeckSizeMismatchError):
        _engine().start_battle(7, "1v1", [make_card()], make_team("ai")[:2])


# Turn resolution


def test_duel_knockout_ends_battle() -> None:
    thunderbolt = make_move("thunderbolt", power=80, stamina_cost=26, attack_type="electric")
    player = make_card(
        "raichu",
        hp=120,
        stamina_max=200,
        attack=60,
        types=["electric"],
        moves=[thunderbolt, make_move(), make_move(), make_move()],
    )
    hydro_pump = make_move("hydro-pump", power=110, stamina_cost=50, attack_type="water")
    ai = make_card(
        "squirtle",
        card_id=2,
        hp=70,
        stamina=30,
        attack=40,
        types=["water"],
        moves=[make_move("tackle"), hydro_pump, hydro_pump, hydro_pump],
    )
    session = make_session([player], [ai])

    outcome = _engine(0.99, 0.3).apply_action(session, "attack", 0)

    assert log_texts(outcome.log) == [
        "Turn 1 begins! Player's move first.",
        "Player chose to attack with thunderbolt.",
        "AI chose to attack with tackle.",
        "Player dealt 160 damage to AI.",
        "AI dealt 12 damage to Player.",
        "AI's Pokemon was knocked out! Player wins.",
    ]
    assert outcome.turn_advanced
    assert outcome.entered_terminal
    assert session.battle_over
    assert session.winner is Winner.PLAYER
    assert session.whose_turn is Turn.NONE
    assert session.player_card.hp == 108
    assert session.player_card.stamina == 174
    assert session.ai_card.is_knocked_out
    assert session.ai_card.stamina == 17


def test_three_double_passes_end_in_stalemate() -> None:
    session = make_session([make_card("eevee")], [_passive_ai()])
    engine = _engine()

    first = engine.apply_action(session, "pass")
    second = engine.apply_action(session, "pass")
    assert not session.battle_over
    third = engine.apply_action(session, "pass")

    assert log_texts(first.log) == [
        "Turn 1 begins! Player's move first.",
        "Player chose pass.",
        "AI chose pass.",
        "Both passed. Nothing happened! (Pass count: 1/3)",
        "Turn 2 begins! AI's move first.",
        "AI chose pass.",
    ]
    assert log_texts(second.log) == [
        "Player chose pass.",
        "Both passed. Nothing happened! (Pass count: 2/3)",
    ]
    assert third.log[-1].kind is LogKind.STALEMATE
    assert third.log[-1].text == (
        "Stalemate! Both players passed 3 times in a row. Battle ends in a draw!"
    )
    assert session.battle_over
    assert session.winner is Winner.DRAW
    assert session.turn_number == 4
    assert session.consecutive_passes == 3


def test_any_other_move_breaks_the_pass_streak() -> None:
    session = make_session([make_card("eevee")], [_passive_ai()])
    engine = _engine()

    engine.apply_action(session, "pass")
    engine.apply_action(session, "pass")
    engine.apply_action(session, "defend")

    assert not session.battle_over
    assert session.consecutive_passes == 0
    assert session.turn_number == 4


def test_defend_blocks_weak_attack() -> None:
    jab = make_move("jab", power=20, stamina_cost=6)
    rock_slide = make_move("rock-slide", power=75, stamina_cost=70, attack_type="rock")
    player = make_card("machamp", attack=120, moves=[jab] * 4)
    ai = make_card("onix", card_id=2, stamina=60, defense=8, moves=[rock_slide] * 4)
    session = make_session([player], [ai], ai_sacrifice_count={0: MAX_SACRIFICES})

    outcome = _engine(0.99).apply_action(session, "attack", 0)

    texts = log_texts(outcome.log)
    assert texts[:4] == [
        "Turn 1 begins! Player's move first.",
        "Player chose to attack with jab.",
        "AI chose defend.",
        "AI blocked all damage!",
    ]
    assert session.ai_card.hp == 100
    assert session.ai_card.stamina == 10
    assert session.player_card.stamina == 94
    assert session.turn_number == 2
    assert session.whose_turn is Turn.PLAYER
    assert session.pending_ai_move is ActionType.PASS


def test_sacrifice_is_a_free_action() -> None:
    player = make_card("snorlax", hp=150, stamina=20, stamina_max=200)
    session = make_session([player], [make_card("eevee", card_id=2)])
    engine = _engine()

    outcome = engine.apply_action(session, "sacrifice")

    assert log_texts(outcome.log) == [
        "Turn 1 begins! Player's move first.",
        "Player sacrificed 10 HP and gained 100 stamina.",
    ]
    assert not outcome.turn_advanced
    assert session.player_card.hp == 140
    assert session.player_card.stamina == 120
    assert session.sacrifice_count == {0: 1}
    assert session.turn_number == 1
    assert session.whose_turn is Turn.PLAYER

    snapshot = session.model_dump()
    with pytest.raises(SacrificeForbiddenError):
        engine.apply_action(session, "sacrifice")
    assert session.model_dump() == snapshot

    follow_up = engine.apply_action(session, "defend")
    assert "Turn 1 begins! Player's move first." not in log_texts(follow_up.log)
    assert follow_up.turn_advanced


def test_team_knockout_brings_in_next_card() -> None:
    player_deck = make_team("player")
    player_deck[0] = make_card("player-0", hp=1, hp_max=100)
    session = make_session(player_deck, make_team("ai", first_id=10), sacrifice_count={1: 2})

    outcome = _engine(0.0).apply_action(session, "pass")

    assert log_texts(outcome.log) == [
        "Turn 1 begins! Player's move first.",
        "Player chose pass.",
        "AI chose to attack with body-slam.",
        "AI dealt 8 damage to Player.",
        "Player's player-0 was knocked out!",
        "Player switched to player-1. Round 2 begins.",
        "Turn 2 begins! AI's move first.",
        "AI chose to attack with body-slam.",
    ]
    assert session.player_deck[0].is_knocked_out
    assert session.player_active_idx == 1
    assert session.round_number == 2
    assert session.sacrifice_count[1] == 0
    assert not session.battle_over
    assert session.turn_number == 2
    assert session.whose_turn is Turn.PLAYER
    assert session.pending_move(Side.AI) == (ActionType.ATTACK, 2)


def test_team_battle_ends_when_ai_runs_out() -> None:
    ai_deck = make_team("ai", first_id=10)
    for card in ai_deck[:4]:
        card.knock_out()
    ai_deck[4].set_hp(1)
    session = make_session(make_team("player"), ai_deck, ai_active_idx=4)

    outcome = _engine(0.99, 0.0).apply_action(session, "attack", 0)

    assert log_texts(outcome.log)[-2:] == [
        "AI's ai-4 was knocked out!",
        "AI has no Pokemon left! Player wins the battle!",
    ]
    assert session.winner is Winner.PLAYER
    assert session.player_card.hp == 92


def test_team_battle_draw_when_both_sides_fall() -> None:
    player_deck = make_team("player")
    ai_deck = make_team("ai", first_id=10)
    for deck in (player_deck, ai_deck):
        for card in deck[1:]:
            card.knock_out()
        deck[0].set_hp(1)
    session = make_session(player_deck, ai_deck)

    outcome = _engine(0.99, 0.99).apply_action(session, "attack", 0)

    assert log_texts(outcome.log)[-3:] == [
        "Player's player-0 was knocked out!",
        "AI's ai-0 was knocked out!",
        "Both sides have no Pokemon left! The battle ends in a draw!",
    ]
    assert session.winner is Winner.DRAW


def test_ai_moves_first_on_even_turns() -> None:
    session = make_session(
        make_team("player"), make_team("ai", first_id=10), turn_number=2, whose_turn=Turn.AI
    )
    engine = _engine()

    with pytest.raises(NotYourTurnError):
        engine.apply_action(session, "pass")

    outcome = engine.advance_ai(session)

    assert log_texts(outcome.log) == [
        "Turn 2 begins! AI's move first.",
        "AI chose to attack with body-slam.",
    ]
    assert session.whose_turn is Turn.PLAYER
    with pytest.raises(NotYourTurnError):
        engine.advance_ai(session)


# Surrender


def test_duel_surrender() -> None:
    session = make_session([make_card("eevee")], [make_card("snorlax", card_id=2)])

    outcome = _engine().apply_action(session, "surrender")

    assert log_texts(outcome.log) == ["Player surrendered! AI wins the battle!"]
    assert outcome.entered_terminal
    assert session.winner is Winner.AI
    assert session.player_surrendered
    assert session.turn_number == 1


def test_team_surrender_gives_up_active_card() -> None:
    session = make_session(make_team("player"), make_team("ai", first_id=10))

    outcome = _engine().apply_action(session, "surrender")

    assert log_texts(outcome.log) == [
        "Player surrendered! player-0 was knocked out!",
        "Player switched to player-1. Round 2 begins.",
    ]
    assert not outcome.turn_advanced
    assert not session.battle_over
    assert not session.player_surrendered
    assert session.player_deck[0].is_knocked_out
    assert session.player_active_idx == 1
    assert session.round_number == 2
    assert session.turn_number == 1


def test_team_surrender_keeps_ai_commit() -> None:
    session = make_session(
        make_team("player"),
        make_team("ai", first_id=10),
        turn_number=2,
        turn_started=True,
        pending_ai_move=ActionType.ATTACK,
        pending_ai_move_idx=0,
    )
    engine = _engine(0.5)

    engine.apply_action(session, "surrender")
    assert session.pending_move(Side.AI) == (ActionType.ATTACK, 0)

    outcome = engine.apply_action(session, "pass")
    texts = log_texts(outcome.log)
    assert texts[0] == "Player chose pass."
    assert "AI dealt" in texts[1]
    assert session.player_deck[1].hp < 100


def test_team_surrender_with_last_card_loses() -> None:
    player_deck = make_team("player")
    for card in player_deck[:4]:
        card.knock_out()
    session = make_session(player_deck, make_team("ai", first_id=10), player_active_idx=4)

    outcome = _engine().apply_action(session, "surrender")

    assert log_texts(outcome.log) == [
        "Player surrendered! player-4 was knocked out!",
        "Player has no Pokemon left! AI wins the battle!",
    ]
    assert session.winner is Winner.AI
    assert session.player_surrendered


# Switching


def _switch_ready(**fields) -> BattleSession:
    return make_session(
        make_team("player"),
        make_team("ai", first_id=10),
        turn_number=5,
        round_number=3,
        player_active_turns=2,
        **fields,
    )


def test_switch_at_round_start() -> None:
    session = _switch_ready(sacrifice_count={0: 2, 2: 1}, ai_sacrifice_count={0: 1})

    outcome = _engine().switch_combatant(session, 2)

    assert log_texts(outcome.log) == ["Player switched to player-2. Round 4 begins."]
    assert session.player_active_idx == 2
    assert session.round_number == 4
    assert session.turn_number == 5
    assert session.player_switched_this_round
    assert session.player_active_turns == 0
    assert session.sacrifice_count[2] == 0
    assert session.ai_sacrifice_count[0] == 0

    with pytest.raises(SwitchNotAllowedError):
        _engine().switch_combatant(session, 3)


def test_switch_needs_a_fought_turn() -> None:
    session, _ = _engine().start_battle(
        7, "5v5", make_team("player"), make_team("ai", first_id=10)
    )
    with pytest.raises(SwitchNotAllowedError, match="at least one turn"):
        _engine().switch_combatant(session, 1)


def test_switch_only_between_rounds() -> None:
    session = _switch_ready(round_turns=1)
    with pytest.raises(SwitchNotAllowedError, match="start of a round"):
        _engine().switch_combatant(session, 1)


def test_switch_rejects_bad_targets() -> None:
    session = _switch_ready()
    session.player_deck[3].knock_out()
    engine = _engine()

    with pytest.raises(TargetKnockedOutError):
        engine.switch_combatant(session, 3)
    with pytest.raises(InvalidIndexError):
        engine.switch_combatant(session, 5)
    with pytest.raises(SwitchNotAllowedError):
        engine.switch_combatant(session, 0)


def test_no_switching_in_duels() -> None:
    session = make_session([make_card("eevee")], [make_card("snorlax", card_id=2)])
    with pytest.raises(ModeUnsupportedError):
        _engine().switch_combatant(session, 0)


# Validation


def test_rejects_invalid_actions() -> None:
    session = make_session([make_card("eevee")], [make_card("snorlax", card_id=2)])
    engine = _engine()

    with pytest.raises(InvalidActionError):
        engine.apply_action(session, "dance")
    with pytest.raises(InvalidMoveIndexError):
        engine.apply_action(session, "attack")
    with pytest.raises(InvalidMoveIndexError):
        engine.apply_action(session, "attack", 4)
    assert session.turn_number == 1
    assert not session.turn_started


def test_attack_needs_enough_stamina() -> None:
    engine = _engine()
    short = make_session([make_card("eevee", stamina=12)], [make_card("snorlax", card_id=2)])
    with pytest.raises(InsufficientStaminaError):
        engine.apply_action(short, "attack", 0)

    exact = make_session([make_card("eevee", stamina=13)], [make_card("snorlax", card_id=2)])
    engine.apply_action(exact, "attack", 0)
    assert exact.player_deck[0].stamina == 0


def test_defend_needs_enough_stamina() -> None:
    session = make_session([make_card("eevee", stamina=49)], [make_card("snorlax", card_id=2)])
    with pytest.raises(InsufficientStaminaError):
        _engine().apply_action(session, "defend")


def test_finished_battle_rejects_everything() -> None:
    session = make_session(make_team("player"), make_team("ai", first_id=10))
    engine = _engine()
    session.battle_over, session.winner, session.whose_turn = True, Winner.AI, Turn.NONE

    with pytest.raises(BattleOverError):
        engine.apply_action(session, "pass")
    with pytest.raises(BattleOverError):
        engine.switch_combatant(session, 2)
    with pytest.raises(BattleOverError):
        engine.advance_ai(session)


def test_broken_state_ends_battle_as_draw() -> None:
    session = make_session(make_team("player"), make_team("ai", first_id=10))
    session.player_deck[3].hp = 500

    outcome = _engine().apply_action(session, "pass")

    assert outcome.log[-1].kind is LogKind.INVARIANT
    assert outcome.log[-1].text.startswith("Invariant violation detected")
    assert outcome.entered_terminal
    assert session.winner is Winner.DRAW
    assert session.whose_turn is Turn.NONE
    assert session.player_deck[3].hp == 100


# Whole battles


def _player_choice(session: BattleSession) -> tuple[ActionType, int | None]:
    card = session.player_card
    for idx in range(len(card.moves)):
        if card.can_attack(idx):
            return ActionType.ATTACK, idx
    if card.can_defend():
        return ActionType.DEFEND, None
    if can_sacrifice(card, session.sacrifice_count.get(session.player_active_idx, 0)):
        return ActionType.SACRIFICE, None
    return ActionType.PASS, None


def _assert_consistent(session: BattleSession) -> None:
    for deck in (session.player_deck, session.ai_deck):
        for card in deck:
            assert 0 <= card.hp <= card.hp_max
            assert 0 <= card.stamina <= card.stamina_max
            assert card.is_knocked_out == (card.hp == 0)
    for counts in (session.sacrifice_count, session.ai_sacrifice_count):
        assert all(0 <= count <= MAX_SACRIFICES for count in counts.values())
    assert session.consecutive_passes <= 3
    assert session.battle_over == (session.winner is not Winner.UNRESOLVED)
    if not session.battle_over:
        assert session.whose_turn is Turn.PLAYER
        assert not session.player_card.is_knocked_out
        assert not session.ai_card.is_knocked_out


def _play_team_battle(seed: int) -> tuple[BattleSession, list[str]]:
    rng = SeededRng(seed)
    entries = load_catalog()
    player_deck = [
        CombatCard.from_catalog(entry, card_id=100 + n)
        for n, entry in enumerate(draw_entries(entries, 5, rng))
    ]
    ai_deck = [CombatCard.from_catalog(entry) for entry in draw_entries(entries, 5, rng)]
    engine = BattleEngine(rng, clock=FixedClock())
    session, log = engine.start_battle(7, "5v5", player_deck, ai_deck, rng_seed=seed)

    for _ in range(1000):
        if session.battle_over:
            break
        action, move_idx = _player_choice(session)
        log.extend(engine.apply_action(session, action, move_idx).log)
        _assert_consistent(session)
    return session, log_texts(log)


@pytest.mark.parametrize("seed", [1, 7, 42, 2026])
def test_team_battles_play_to_completion(seed: int) -> None:
    session, _ = _play_team_battle(seed)
    assert session.battle_over
    assert session.winner is not Winner.UNRESOLVED


def test_same_seed_replays_identically() -> None:
    first, first_log = _play_team_battle(99)
    second, second_log = _play_team_battle(99)

    assert first_log == second_log
    assert first.model_dump(exclude={"id"}) == second.model_dump(exclude={"id"})


def test_turn_does_not_resolve_without_both_commits() -> None:
    session = make_session([make_card("eevee")], [make_card("snorlax", card_id=2)])
    session.set_pending_move(Side.PLAYER, ActionType.PASS, None)

    with pytest.raises(ValueError, match="Both sides must commit"):
        _engine()._resolve_turn(session, [])
