"""
Indifference-point estimation from Phase 1 choices.

Each combination is one lottery shown at several safe amounts. Sorted by safe
amount, the point is the midpoint between the last risky choice and the first
safe choice. One-sided response patterns are pinned to the tested range:
always-risky gives the lowest safe amount, always-safe the highest.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from loguru import logger

from core.models import Choice, IndifferencePoint, Quality, TrialResult

COMBINATION_IDS = range(1, 19)


def _midpoint(a: float, b: float) -> float:
    return round((a + b) / 2, 2)


def estimate_combination(combination_id: int, trials: Sequence[TrialResult]) -> IndifferencePoint:
    if not trials:
        return IndifferencePoint(combination_id, None, None, None, Quality.missing)

    ordered = sorted(trials, key=lambda t: t.safe_reward)
    amounts = [float(t.safe_reward) for t in ordered]
    last_risk_idx: Optional[int] = None
    first_safe_idx: Optional[int] = None
    for idx, trial in enumerate(ordered):
        if trial.choice == Choice.risk:
            last_risk_idx = idx
        elif trial.choice == Choice.safe and first_safe_idx is None:
            first_safe_idx = idx

    risk_reward = ordered[0].risk_reward
    risk_probability = ordered[0].risk_probability

    if last_risk_idx is None and first_safe_idx is None:
        quality = Quality.no_switch
        point = _midpoint(amounts[0], amounts[-1])
    elif first_safe_idx is None:
        quality = Quality.always_risky
        point = round(amounts[0], 2)
    elif last_risk_idx is None:
        quality = Quality.always_safe
        point = round(amounts[-1], 2)
    else:
        quality = Quality.ok
        point = _midpoint(amounts[last_risk_idx], amounts[first_safe_idx])
    return IndifferencePoint(combination_id, risk_reward, risk_probability, point, quality)


def estimate_indifference_points(
    results: Iterable[TrialResult],
    combination_ids: Iterable[int] = COMBINATION_IDS,
) -> List[IndifferencePoint]:
    """Return exactly one point per combination id, in id order."""
    grouped: Dict[int, List[TrialResult]] = defaultdict(list)
    for result in results:
        if result.combination_id is not None:
            grouped[result.combination_id].append(result)

    points = [estimate_combination(cid, grouped.get(cid, [])) for cid in combination_ids]
    flagged = [p.combination_id for p in points if p.quality != Quality.ok]
    if flagged:
        logger.warning(f"[Indifference] Combinations without a clean switch point: {flagged}")
    logger.info(f"[Indifference] Computed {len(points)} indifference points")
    return points
