"""Deterministic battle resolution for two revealed move plans."""

from __future__ import annotations

from typing import Sequence

from .models import Attack, Defense, Move, Outcome, Side, TurnResult

STARTING_HEALTH = 100
TURNS_PER_BATTLE = 3
COMBO_2_BONUS = 10
COMBO_3_BONUS = 25

BASE_DAMAGE: dict[Attack, int] = {
    Attack.SLASH: 30,
    Attack.FIREBALL: 40,
    Attack.LIGHTNING: 35,
}

# Each attack is stopped by exactly one defense.
STOPPED_BY: dict[Attack, Defense] = {
    Attack.SLASH: Defense.DODGE,
    Attack.FIREBALL: Defense.COUNTER,
    Attack.LIGHTNING: Defense.BLOCK,
}


def is_stopped(attack: Attack, defense: Defense) -> bool:
    return STOPPED_BY[attack] is defense


def combo_bonus(plan: Sequence[Move], turn: int) -> int:
    """Bonus for repeating the attacker's own attack on the preceding turns."""
    attack = plan[turn].attack
    if turn >= 2 and plan[turn - 1].attack is attack and plan[turn - 2].attack is attack:
        return COMBO_3_BONUS
    if turn >= 1 and plan[turn - 1].attack is attack:
        return COMBO_2_BONUS
    return 0


def calculate_damage(plan: Sequence[Move], turn: int, opposing_defense: Defense) -> int:
    attack = plan[turn].attack
    if is_stopped(attack, opposing_defense):
        return 0
    return BASE_DAMAGE[attack] + combo_bonus(plan, turn)


def resolve_battle(plan_a: Sequence[Move], plan_b: Sequence[Move]) -> Outcome:
    """Replay both plans turn by turn.

    Damage for a turn is computed for both sides before either is applied, so
    the two sides strike simultaneously. Simulation stops after the first turn
    that leaves either side at or below zero health. Health is never clamped.

    Winner: mutual knockout is a draw; otherwise higher health wins and equal
    positive health goes to side A.
    """
    if len(plan_a) != TURNS_PER_BATTLE or len(plan_b) != TURNS_PER_BATTLE:
        raise ValueError(f"plans must contain exactly {TURNS_PER_BATTLE} moves")

    health_a = STARTING_HEALTH
    health_b = STARTING_HEALTH
    turns: list[TurnResult] = []

    for turn in range(TURNS_PER_BATTLE):
        move_a = plan_a[turn]
        move_b = plan_b[turn]

        damage_a = calculate_damage(plan_a, turn, move_b.defense)
        damage_b = calculate_damage(plan_b, turn, move_a.defense)

        health_a -= damage_b
        health_b -= damage_a

        turns.append(
            TurnResult(
                turn=turn,
                damage_dealt_a=damage_a,
                damage_dealt_b=damage_b,
                health_a=health_a,
                health_b=health_b,
                defense_succeeded_a=is_stopped(move_b.attack, move_a.defense),
                defense_succeeded_b=is_stopped(move_a.attack, move_b.defense),
            )
        )

        if health_a <= 0 or health_b <= 0:
            break

    return Outcome(
        health_a=health_a,
        health_b=health_b,
        winner=_determine_winner(health_a, health_b),
        turns=tuple(turns),
    )


def _determine_winner(health_a: int, health_b: int) -> Side | None:
    if health_a <= 0 and health_b <= 0:
        return None
    if health_b > health_a:
        return Side.B
    return Side.A
