from __future__ import annotations

from typing import Iterable

from loguru import logger

from core.models import BonusOutcome, Choice, TrialResult
from core.rng import RandomSource, pick_index

MILLIONS_THRESHOLD = 500_000
MILLIONS_DIVISOR = 500_000
HUNDREDS_DIVISOR = 50


def points_to_currency(points: float) -> float:
    """Two-tier table: millions-scale points pay per 500,000, hundreds-scale per 50."""
    divisor = MILLIONS_DIVISOR if points >= MILLIONS_THRESHOLD else HUNDREDS_DIVISOR
    return points / divisor


def eligible_trials(results: Iterable[TrialResult], eligible_max: int) -> list:
    return [
        r for r in results
        if 1 <= r.trial_number <= eligible_max and r.choice in (Choice.risk, Choice.safe)
    ]


def resolve_bonus(results: Iterable[TrialResult], eligible_max: int, rng: RandomSource) -> BonusOutcome:
    candidates = eligible_trials(results, eligible_max)
    if not candidates:
        logger.warning("[Bonus] No valid trials found for bonus calculation")
        return BonusOutcome(selected_trial=None, win=False, reward_points=0, bonus_amount=0.0, reason="No valid trials found")

    selected = candidates[pick_index(len(candidates), rng)]
    logger.info(
        f"[Bonus] Selected trial {selected.trial_number} of {len(candidates)} eligible "
        f"(choice={selected.choice.value})"
    )

    if selected.choice == Choice.safe:
        points = selected.safe_reward
        return BonusOutcome(selected, win=True, reward_points=points, bonus_amount=points_to_currency(points))

    roll = float(rng.random()) * 100
    if roll <= selected.risk_probability:
        points = selected.risk_reward
        logger.info(f"[Bonus] WIN ({roll:.2f} <= {selected.risk_probability})")
        return BonusOutcome(selected, win=True, reward_points=points, bonus_amount=points_to_currency(points))
    logger.info(f"[Bonus] LOSE ({roll:.2f} > {selected.risk_probability})")
    return BonusOutcome(selected, win=False, reward_points=0, bonus_amount=0.0)
