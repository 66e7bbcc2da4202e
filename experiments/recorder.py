from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from core.models import (
    NAN,
    AttentionCheckResult,
    Choice,
    Session,
    TrialResult,
    classify_ev,
)
from schemas.rows import TrialRow
from services.submission.backup import LocalBackupStore
from trials.models import AttentionCheckQuestion, Trial


class ResponseRecorder:
    """Turns finished trials into result rows on the session and mirrors the backup."""

    def __init__(self, session: Session, backup: Optional[LocalBackupStore] = None):
        self.session = session
        self.backup = backup

    def _mirror(self) -> None:
        if self.backup is not None:
            self.backup.save(self.session)

    def record_trial(
        self,
        trial: Trial,
        choice: Any,
        bar_choice_time: Optional[float] = None,
        confidence: Optional[float] = None,
        confidence_choice_time: Optional[float] = None,
    ) -> TrialResult:
        choice_value = Choice.normalize(choice)
        result = TrialResult(
            participant_id=self.session.participant_id or "unknown",
            trial_number=self.session.next_trial_number(),
            choice=choice_value,
            risk_probability=trial.risk_probability,
            risk_reward=trial.risk_reward,
            safe_reward=trial.safe_reward,
            size_condition=trial.size_condition,
            risk_position="left" if trial.risk_on_left else "right",
            safe_position="right" if trial.risk_on_left else "left",
            ev=classify_ev(trial.risk_probability, trial.risk_reward, trial.safe_reward),
            trial_id=trial.trial_id,
            combination_id=trial.combination_id,
            confidence=NAN if confidence is None else float(confidence),
            bar_choice_time=NAN if bar_choice_time is None else float(bar_choice_time),
            confidence_choice_time=NAN if confidence_choice_time is None else float(confidence_choice_time),
        )
        self.session.results.append(result)
        self.session.rows.append(TrialRow.from_result(result))
        self._mirror()
        logger.debug(
            f"[Recorder] Trial {result.trial_number}: choice={result.choice.value} "
            f"ev={result.ev.value} bar_choice_time={result.bar_choice_time}"
        )
        return result

    def record_attention(
        self,
        question: AttentionCheckQuestion,
        answer: str,
        is_correct: bool,
        response_time: float,
    ) -> AttentionCheckResult:
        result = AttentionCheckResult(
            participant_id=self.session.participant_id or "unknown",
            attention_check_number=len(self.session.attention_results) + 1,
            question_type=question.type.value,
            question_prompt=question.prompt,
            correct_answer=question.correct_answer,
            user_answer=answer,
            is_correct=is_correct,
            response_time=response_time,
            session_id=self.session.session_id,
        )
        self.session.attention_results.append(result)
        self._mirror()
        logger.debug(
            f"[Recorder] Attention check {result.attention_check_number}: "
            f"{'CORRECT' if is_correct else 'INCORRECT'}"
        )
        return result
