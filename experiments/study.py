"""
One participant run, from participant id to the final save.

Risk-survey: comprehension check, practice, main timeline with attention
checks, bonus, save. Indifference-point study: Phase 1, partial save,
indifference points, Phase 2, save of the Phase 2 rows only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from loguru import logger

from core.config import StudyConfig
from core.errors import CONTACT_RESEARCHER, ConfigurationError, SubmissionError, ValidationError
from core.models import BonusOutcome, IndifferencePoint, Session
from core.rng import RandomSource, default_random_source
from experiments.bonus import resolve_bonus
from experiments.comprehension import ComprehensionCheck, validate_participant_id
from experiments.indifference import estimate_indifference_points
from experiments.recorder import ResponseRecorder
from experiments.trial_runner import TimerFactory, TrialRunner, thread_timer
from services.submission.backup import LocalBackupStore
from services.submission.pipeline import SubmissionPipeline
from trials.loader import load_dummy_trials, load_phase2_template, load_trial_table
from trials.models import Trial, TrialDefinition
from trials.sequence import TrialSequenceBuilder, TrialSequences


@dataclass
class StudyTables:
    trials: List[TrialDefinition]
    phase2_template: List[TrialDefinition] = field(default_factory=list)
    dummies: List[TrialDefinition] = field(default_factory=list)


def load_study_tables(config: StudyConfig) -> StudyTables:
    trials = load_trial_table(config.tables.trials, allow_decimal=config.is_ip)
    if not config.is_ip:
        return StudyTables(trials=trials)
    if config.tables.phase2_template is None:
        raise ConfigurationError("The indifference-point study needs a phase2Template table")
    template = load_phase2_template(config.tables.phase2_template)
    dummies = load_dummy_trials(config.tables.dummy_trials) if config.tables.dummy_trials else []
    return StudyTables(trials=trials, phase2_template=template, dummies=dummies)


@dataclass
class FinishReport:
    status: str
    message: str
    participant_id: Optional[str]
    row_count: int
    attention_count: int
    timestamp: str
    backup_status: str
    bonus: Optional[BonusOutcome] = None

    @property
    def saved(self) -> bool:
        return self.status == "saved"


class StudyFlow:
    def __init__(
        self,
        config: StudyConfig,
        tables: StudyTables,
        pipeline: SubmissionPipeline,
        backup: Optional[LocalBackupStore] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.config = config
        self.tables = tables
        self.pipeline = pipeline
        self.backup = backup
        self.rng = rng if rng is not None else default_random_source()
        self.clock = clock
        self.timer_factory = timer_factory
        self.session: Optional[Session] = None
        self.recorder: Optional[ResponseRecorder] = None
        self.sequences: Optional[TrialSequences] = None
        self.phase2: List[Trial] = []

    def start(self, participant_id: Optional[str]) -> Session:
        pid = validate_participant_id(participant_id)
        self.session = Session(participant_id=pid, study_type=self.config.study_type.value)
        self.recorder = ResponseRecorder(self.session, self.backup)
        self.sequences = TrialSequenceBuilder(self.config, self.rng).build(self.tables.trials)
        logger.info(f"[Study] Started {self.config.study_type.value} session {self.session.session_id} for {pid}")
        return self.session

    def _require_started(self) -> Session:
        if self.session is None or self.sequences is None:
            raise ValidationError("The session has not been started.")
        return self.session

    def _runner(self, timeline, is_practice: bool = False) -> TrialRunner:
        return TrialRunner(
            timeline,
            recorder=self.recorder,
            is_practice=is_practice,
            trial_duration_s=self.config.trial_duration_s,
            clock=self.clock,
            timer_factory=self.timer_factory,
        )

    def comprehension_check(self) -> ComprehensionCheck:
        self._require_started()
        return ComprehensionCheck(clock=self.clock)

    def practice_runner(self) -> TrialRunner:
        self._require_started()
        return self._runner(self.sequences.practice, is_practice=True)

    def main_runner(self) -> TrialRunner:
        self._require_started()
        return self._runner(self.sequences.timeline)

    def complete_phase1(self) -> List[IndifferencePoint]:
        """Save Phase 1 rows, estimate indifference points and build Phase 2."""
        session = self._require_started()
        if not self.config.is_ip:
            raise ValidationError("Only the indifference-point study has a second phase.")
        try:
            self.pipeline.wake()
            self.pipeline.submit_trials(session)
        except SubmissionError as exc:
            # Unsaved Phase 1 rows stay past the watermark and go out with the final save.
            logger.warning(f"[Study] Phase 1 save failed, continuing: {exc}")

        points = estimate_indifference_points(session.results, self.config.combination_ids)
        session.indifference_points = points
        session.phase = 2
        self.phase2 = TrialSequenceBuilder(self.config, self.rng).build_phase2(
            self.tables.phase2_template, self.tables.dummies, points
        )
        if self.backup is not None:
            self.backup.save(session)
        return points

    def phase2_runner(self) -> TrialRunner:
        self._require_started()
        if not self.phase2:
            raise ValidationError("Phase 2 has not been built; complete Phase 1 first.")
        return self._runner(self.phase2)

    def resolve_bonus(self) -> Optional[BonusOutcome]:
        """Roll the bonus once per session and stamp its row."""
        session = self._require_started()
        if self.config.is_ip:
            return None
        if session.bonus is not None:
            return session.bonus
        outcome = resolve_bonus(session.results, self.config.bonus_eligible_max, self.rng)
        session.bonus = outcome
        if outcome.selected_trial is not None:
            trial = outcome.selected_trial
            trial.is_bonus_trial = True
            trial.bonus_amount = round(outcome.bonus_amount, 2)
            if not session.rows.patch_bonus(trial.trial_number, trial.bonus_amount):
                logger.warning(f"[Study] Bonus trial {trial.trial_number} not found in row log")
        logger.info(f"[Study] Bonus for {session.participant_id}: ${outcome.bonus_amount:.2f}")
        return outcome

    def _report(self, status: str, message: str) -> FinishReport:
        session = self.session
        pid = session.participant_id if session else None
        return FinishReport(
            status=status,
            message=message,
            participant_id=pid,
            row_count=len(session.rows) if session else 0,
            attention_count=len(session.attention_results) if session else 0,
            timestamp=datetime.now(timezone.utc).isoformat(),
            backup_status=self.backup.status(pid) if self.backup and pid else "No backup available",
            bonus=session.bonus if session else None,
        )

    def finish(self) -> FinishReport:
        """Final save. Never raises; call again to retry after a failed report."""
        session = self.session
        if session is None or not session.participant_id:
            return self._report("failed", "Subject ID is missing. " + CONTACT_RESEARCHER)
        if len(session.rows) == 0:
            return self._report("failed", "No trial data was collected. " + CONTACT_RESEARCHER)

        self.resolve_bonus()
        try:
            self.pipeline.finish(session)
        except SubmissionError as exc:
            logger.error(f"[Study] Final save failed for {session.participant_id}: {exc}")
            return self._report("failed", exc.user_message)
        logger.info(f"[Study] Session {session.session_id} saved ({len(session.rows)} rows)")
        return self._report("saved", "Your responses have been saved. Thank you for participating.")
