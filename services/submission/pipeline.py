"""
Retrying, watermark-based submission of a session to the results server.

Rows go out as soon as a phase ends. The session keeps a watermark of how
many rows the server already acknowledged, so a retry or a later phase
sends only the rows past it.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

from loguru import logger

from core.config import RetryPolicy
from core.errors import SubmissionError
from core.models import Session
from services.submission.backup import LocalBackupStore
from services.submission.client import SubmissionClient


class SubmissionPipeline:
    def __init__(
        self,
        client: SubmissionClient,
        backup: Optional[LocalBackupStore] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.backup = backup
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def wake(self) -> bool:
        """Probe /health so a sleeping host spins up. Never raises."""
        try:
            self.client.health()
            logger.info("[Submission] Server is awake")
            return True
        except SubmissionError as exc:
            logger.warning(f"[Submission] Wake-up probe failed: {exc}")
            self.sleep(self.policy.probe_settle_s)
            return False

    def call_with_retry(self, label: str, fn: Callable[[], Any]) -> Any:
        last_error = SubmissionError(f"{label}: no attempts allowed (max_attempts={self.policy.max_attempts})")
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                logger.debug(f"[Submission] {label}: attempt {attempt}/{self.policy.max_attempts}")
                return fn()
            except SubmissionError as exc:
                last_error = exc
                logger.warning(f"[Submission] {label}: attempt {attempt}/{self.policy.max_attempts} failed: {exc}")
                if attempt < self.policy.max_attempts:
                    wait = self.policy.backoff(attempt)
                    logger.info(f"[Submission] Waiting {wait:g}s before retry")
                    self.sleep(wait)
                    self.wake()
        logger.error(f"[Submission] {label}: giving up after {self.policy.max_attempts} attempts")
        raise last_error

    def submit_trials(self, session: Session) -> int:
        """Send rows past the watermark; return how many were acknowledged."""
        start = session.saved_row_count
        pending = session.pending_row_count()
        if pending <= 0:
            logger.debug("[Submission] No new trial rows to save")
            return 0
        payload = session.rows.to_text(start)
        self.call_with_retry("trial data", lambda: self.client.save(payload))
        session.saved_row_count = start + pending
        logger.info(f"[Submission] Saved {pending} trial rows for {session.participant_id} (total {session.saved_row_count})")
        return pending

    def submit_attention_checks(self, session: Session) -> int:
        rows = session.pending_attention_rows()
        if not rows:
            return 0
        self.call_with_retry(
            "attention check data",
            lambda: self.client.save_attention_checks(session.participant_id, rows),
        )
        session.saved_attention_count += len(rows)
        logger.info(f"[Submission] Saved {len(rows)} attention check rows for {session.participant_id}")
        return len(rows)

    def bonus_payload(self, session: Session, payment_status: str = "pending") -> Optional[Dict[str, Any]]:
        bonus = session.bonus
        if bonus is None or bonus.selected_trial is None:
            return None
        trial = bonus.selected_trial
        return {
            "participant_id": session.participant_id,
            "bonus_trial_id": trial.trial_id,
            "bonus_trial_number": trial.trial_number,
            "choice_on_bonus": trial.choice.value,
            "outcome_amount": round(bonus.bonus_amount, 2),
            "payment": payment_status,
        }

    def submit_bonus(self, session: Session, payment_status: str = "pending") -> bool:
        payload = self.bonus_payload(session, payment_status)
        if payload is None:
            return False
        self.call_with_retry("bonus payment", lambda: self.client.save_bonus(payload))
        logger.info(f"[Submission] Saved bonus record for {session.participant_id}")
        return True

    def finish(self, session: Session) -> None:
        """Backup first, then everything still unsaved. Raises the last SubmissionError on failure."""
        if self.backup is not None:
            self.backup.save(session)
        self.wake()
        self.submit_trials(session)
        self.submit_attention_checks(session)
        self.submit_bonus(session)
        if self.backup is not None:
            self.backup.clear(session.participant_id)
