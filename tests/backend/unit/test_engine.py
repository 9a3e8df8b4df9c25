import pytest

from clash.backend import engine
from clash.backend.engine import STOPPED_BY, calculate_damage, is_stopped, resolve_battle
from clash.backend.models import Attack, Defense, Move, Side
from fakes import plan


def test_three_identical_attacks_add_growing_combo_bonus() -> None:
    outcome = resolve_battle(
        plan(("slash", "dodge"), ("slash", "dodge"), ("slash", "dodge")),
        plan(("slash", "block"), ("slash", "block"), ("slash", "block")),
    )

    assert [turn.damage_dealt_a for turn in outcome.turns] == [30, 40, 55]
    assert [turn.damage_dealt_b for turn in outcome.turns] == [0, 0, 0]
    assert [turn.health_b for turn in outcome.turns] == [70, 30, -25]
    assert [turn.health_a for turn in outcome.turns] == [100, 100, 100]
    assert all(turn.defense_succeeded_a for turn in outcome.turns)
    assert not any(turn.defense_succeeded_b for turn in outcome.turns)
    assert outcome.winner is Side.A


def test_two_in_a_row_then_switch_resets_bonus() -> None:
    outcome = resolve_battle(
        plan(("slash", "dodge"), ("slash", "dodge"), ("fireball", "dodge")),
        plan(("slash", "block"), ("slash", "block"), ("slash", "block")),
    )

    assert [turn.damage_dealt_a for turn in outcome.turns] == [30, 40, 40]
    assert outcome.health_b == -10


def test_non_repeating_attacks_deal_base_damage_only() -> None:
    outcome = resolve_battle(
        plan(("slash", "dodge"), ("fireball", "dodge"), ("lightning", "dodge")),
        plan(("slash", "counter"), ("slash", "block"), ("slash", "dodge")),
    )

    assert [turn.damage_dealt_a for turn in outcome.turns] == [30, 40, 35]
    assert outcome.health_b == -5
    assert outcome.health_a == 100


def test_combo_lookback_uses_attackers_own_plan() -> None:
    # B repeats fireball but A alternates; A must not receive a bonus.
    outcome = resolve_battle(
        plan(("slash", "dodge"), ("lightning", "dodge"), ("slash", "dodge")),
        plan(("fireball", "counter"), ("fireball", "counter"), ("fireball", "counter")),
    )

    assert [turn.damage_dealt_a for turn in outcome.turns] == [30, 35, 30]
    assert [turn.damage_dealt_b for turn in outcome.turns] == [40, 50, 65]


@pytest.mark.parametrize("attack", list(Attack))
@pytest.mark.parametrize("defense", list(Defense))
def test_stop_table_blocks_each_attack_with_exactly_one_defense(attack: Attack, defense: Defense) -> None:
    damage = calculate_damage([Move(attack=attack, defense=Defense.BLOCK)], 0, defense)

    if STOPPED_BY[attack] is defense:
        assert damage == 0
        assert is_stopped(attack, defense) is True
    else:
        assert damage == engine.BASE_DAMAGE[attack]
        assert is_stopped(attack, defense) is False


def test_stop_table_is_one_to_one() -> None:
    assert set(STOPPED_BY) == set(Attack)
    assert set(STOPPED_BY.values()) == set(Defense)


def test_stopped_attack_records_defense_success_for_defender() -> None:
    outcome = resolve_battle(
        plan(("lightning", "dodge"), ("slash", "dodge"), ("slash", "dodge")),
        plan(("fireball", "block"), ("fireball", "counter"), ("fireball", "counter")),
    )

    first = outcome.turns[0]
    assert first.damage_dealt_a == 0
    assert first.defense_succeeded_b is True
    assert first.damage_dealt_b == 40
    assert first.defense_succeeded_a is False


def test_knockout_after_turn_one_truncates_turns(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(engine, "STARTING_HEALTH", 50)

    outcome = resolve_battle(
        plan(("fireball", "dodge"), ("fireball", "dodge"), ("fireball", "dodge")),
        plan(("slash", "block"), ("slash", "block"), ("slash", "block")),
    )

    assert len(outcome.turns) == 2
    assert outcome.health_b == -40
    assert outcome.winner is Side.A


def test_knockout_after_turn_zero_truncates_turns(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(engine, "STARTING_HEALTH", 30)

    outcome = resolve_battle(
        plan(("slash", "counter"), ("slash", "counter"), ("slash", "counter")),
        plan(("fireball", "block"), ("fireball", "block"), ("fireball", "block")),
    )

    assert len(outcome.turns) == 1
    assert outcome.health_a == 30
    assert outcome.health_b == 0
    assert outcome.winner is Side.A


def test_mutual_knockout_is_a_draw_with_negative_health_visible() -> None:
    outcome = resolve_battle(
        plan(("fireball", "block"), ("fireball", "block"), ("fireball", "block")),
        plan(("fireball", "block"), ("fireball", "block"), ("fireball", "block")),
    )

    assert outcome.health_a == -55
    assert outcome.health_b == -55
    assert outcome.winner is None
    assert outcome.is_draw is True


def test_equal_positive_health_goes_to_first_player() -> None:
    outcome = resolve_battle(
        plan(("slash", "dodge"), ("slash", "dodge"), ("slash", "dodge")),
        plan(("slash", "dodge"), ("slash", "dodge"), ("slash", "dodge")),
    )

    assert outcome.health_a == outcome.health_b == 100
    assert outcome.winner is Side.A
    assert outcome.is_draw is False


def test_higher_health_wins_for_second_player() -> None:
    outcome = resolve_battle(
        plan(("slash", "block"), ("slash", "block"), ("slash", "block")),
        plan(("slash", "dodge"), ("slash", "dodge"), ("slash", "dodge")),
    )

    assert outcome.winner is Side.B
    assert outcome.health_a == -25


def test_resolution_is_deterministic() -> None:
    plan_a = plan(("lightning", "counter"), ("lightning", "dodge"), ("fireball", "block"))
    plan_b = plan(("slash", "block"), ("fireball", "counter"), ("fireball", "dodge"))

    assert resolve_battle(plan_a, plan_b) == resolve_battle(plan_a, plan_b)


def test_resolve_battle_rejects_short_plans() -> None:
    with pytest.raises(ValueError):
        resolve_battle(plan(("slash", "block")), plan(("slash", "block")))
