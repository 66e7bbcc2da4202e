from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger

from core.config import StudyConfig
from core.models import IndifferencePoint
from core.rng import RandomSource, coin_flip, fisher_yates
from trials.models import AttentionCheckQuestion, TimelineItem, Trial, TrialDefinition


@dataclass
class TrialSequences:
    practice: List[Trial] = field(default_factory=list)
    main: List[Trial] = field(default_factory=list)
    timeline: List[TimelineItem] = field(default_factory=list)
    attention_checks: List[AttentionCheckQuestion] = field(default_factory=list)


def interleave_attention_checks(
    main: Sequence[TimelineItem],
    checks: Sequence[AttentionCheckQuestion],
) -> List[TimelineItem]:
    """Insert checks at evenly spaced positions; checks past the end are appended."""
    timeline: List[TimelineItem] = list(main)
    if not checks or not main:
        return timeline
    interval = math.floor(len(main) / (len(checks) + 1))
    inserted = 0
    for i, check in enumerate(checks):
        position = (i + 1) * interval + inserted
        if position < len(timeline):
            timeline.insert(position, check)
            inserted += 1
        else:
            timeline.append(check)
    return timeline


class TrialSequenceBuilder:
    def __init__(self, config: StudyConfig, rng: RandomSource):
        self.config = config
        self.rng = rng

    def filter_for_study(self, definitions: Sequence[TrialDefinition]) -> List[TrialDefinition]:
        excluded = set(self.config.excluded_probabilities)
        filtered = [d for d in definitions if d.risk_probability not in excluded]
        logger.info(
            f"[Sequence] Loaded {len(definitions)} total trials, "
            f"filtered down to {len(filtered)} (excluded probabilities: {sorted(excluded)})"
        )
        return filtered

    def select_main(self, filtered: Sequence[TrialDefinition]) -> List[TrialDefinition]:
        requested = self.config.experiment.main_trials
        if requested > len(filtered):
            logger.warning(
                f"[Sequence] Requested {requested} main trials but only {len(filtered)} unique trials exist; capping"
            )
        shuffled = fisher_yates(filtered, self.rng)
        return shuffled[: min(requested, len(shuffled))]

    def select_practice(self, filtered: Sequence[TrialDefinition]) -> List[TrialDefinition]:
        if not filtered:
            return []
        by_id: Dict[int, TrialDefinition] = {d.trial_id: d for d in filtered}
        selected = []
        for trial_id in self.config.experiment.practice_trial_ids:
            defn = by_id.get(trial_id)
            if defn is None:
                logger.warning(f"[Sequence] Practice trial {trial_id} not in table; using first available row")
                defn = filtered[0]
            selected.append(defn)
        return selected

    def _present(self, defn: TrialDefinition, trial_number, is_practice: bool = False, is_dummy: bool = False) -> Trial:
        return Trial(
            definition=defn,
            trial_number=trial_number,
            risk_on_left=coin_flip(self.rng),
            is_practice=is_practice,
            is_dummy=is_dummy,
        )

    def build(self, definitions: Sequence[TrialDefinition]) -> TrialSequences:
        filtered = self.filter_for_study(definitions)
        main = [self._present(d, i + 1) for i, d in enumerate(self.select_main(filtered))]

        if self.config.is_ip:
            logger.info(f"[Sequence] Generated {len(main)} phase 1 trials")
            return TrialSequences(practice=[], main=main, timeline=list(main))

        practice = [
            self._present(d, f"practice_{i + 1}", is_practice=True)
            for i, d in enumerate(self.select_practice(filtered))
        ]
        checks: List[AttentionCheckQuestion] = []
        pool = self.config.attention_check_questions
        wanted = self.config.experiment.attention_checks
        if pool and wanted > 0:
            checks = fisher_yates(pool, self.rng)[:wanted]
        timeline = interleave_attention_checks(main, checks)
        logger.info(
            f"[Sequence] Generated {len(practice)} practice trials, {len(main)} main trials "
            f"and {len(checks)} attention checks"
        )
        return TrialSequences(practice=practice, main=main, timeline=timeline, attention_checks=checks)

    def build_phase2(
        self,
        template: Sequence[TrialDefinition],
        dummies: Sequence[TrialDefinition],
        points: Sequence[IndifferencePoint],
    ) -> List[Trial]:
        by_combination: Dict[int, Optional[float]] = {p.combination_id: p.indifference_point for p in points}
        variants: List[Trial] = []
        skipped = set()
        for defn in template:
            point = by_combination.get(defn.combination_id)
            if point is None:
                skipped.add(defn.combination_id)
                continue
            variants.append(self._present(defn.with_safe_reward(point), 0))
        if skipped:
            logger.warning(f"[Sequence] No indifference point for combinations {sorted(skipped)}; variants skipped")
        fillers = [self._present(d, 0, is_dummy=True) for d in dummies]

        merged = fisher_yates(variants + fillers, self.rng)
        renumbered = [
            Trial(
                definition=t.definition,
                trial_number=i + 1,
                risk_on_left=t.risk_on_left,
                is_dummy=t.is_dummy,
            )
            for i, t in enumerate(merged)
        ]
        logger.info(f"[Sequence] Generated {len(variants)} phase 2 trials and {len(fillers)} dummy trials")
        return renumbered
