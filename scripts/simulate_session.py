"""
Drives one simulated participant through a study and submits the results.

    python -m scripts.simulate_session --config data/config.yaml --api_url http://localhost:8000
"""

from __future__ import annotations

import argparse
import json
from typing import Optional

import numpy as np

from core.config import load_study_config
from core.errors import SurveyError
from core.rng import default_random_source
from experiments.study import StudyFlow, load_study_tables
from experiments.trial_runner import TrialRunner
from services.submission import LocalBackupStore, SubmissionClient, SubmissionPipeline
from trials.models import AttentionCheckQuestion, QuestionType, Trial


class SimClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class IdleTimer:
    """Deadline that only fires when the simulation says so."""

    def __init__(self, seconds, callback):
        self.seconds = seconds
        self.callback = callback

    def start(self) -> None:
        pass

    def cancel(self) -> None:
        pass


class SimulatedParticipant:
    def __init__(self, rng: np.random.Generator, noise: float = 0.2, timeout_rate: float = 0.02):
        self.rng = rng
        self.noise = noise
        self.timeout_rate = timeout_rate

    def choose(self, trial: Trial) -> Optional[str]:
        if self.rng.random() < self.timeout_rate:
            return None
        risk_ev = trial.risk_probability / 100 * trial.risk_reward
        perceived = risk_ev * (1 + self.rng.normal(0, self.noise))
        return "risk" if perceived > trial.safe_reward else "safe"

    def answer(self, question: AttentionCheckQuestion) -> str:
        if question.type == QuestionType.multi_choice and self.rng.random() < 0.1:
            return question.options[0] if question.options else "?"
        return question.correct_answer


def run_timeline(runner: TrialRunner, participant: SimulatedParticipant, clock: SimClock, duration_s: float) -> None:
    while not runner.done:
        item = runner.start()
        if isinstance(item, AttentionCheckQuestion):
            clock.advance(float(participant.rng.uniform(2, 8)))
            runner.answer_attention(participant.answer(item))
            continue
        choice = participant.choose(item)
        if choice is None:
            clock.advance(duration_s)
            runner.on_timeout()
        else:
            clock.advance(float(participant.rng.uniform(0.4, duration_s * 0.8)))
            runner.select_choice(choice)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--config", default="data/config.yaml")
    parser.add_argument("--api_url", default=None, help="Results server; defaults to serverUrl from the config")
    parser.add_argument("--participant", default="sim-participant")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--noise", type=float, default=0.2)
    args = parser.parse_args()

    try:
        config = load_study_config(args.config)
        tables = load_study_tables(config)
    except SurveyError as exc:
        print(f"Configuration error: {exc}\n{exc.user_message}")
        raise SystemExit(1)

    clock = SimClock()
    backup = LocalBackupStore(config.backup_dir)
    client = SubmissionClient(args.api_url or config.server_url, timeout=config.retry.attempt_timeout_s)
    pipeline = SubmissionPipeline(client, backup, config.retry)
    flow = StudyFlow(
        config,
        tables,
        pipeline,
        backup=backup,
        rng=default_random_source(args.seed),
        clock=clock,
        timer_factory=IdleTimer,
    )
    participant = SimulatedParticipant(np.random.default_rng(args.seed), noise=args.noise)

    session = flow.start(args.participant)
    print(f"Session {session.session_id} for {session.participant_id} ({config.study_type.value})")

    if not config.is_ip:
        check = flow.comprehension_check()
        for question in check.questions:
            check.submit(str(question.correct_answer))
        print(f"Comprehension check passed: {check.passed}")
        run_timeline(flow.practice_runner(), participant, clock, config.trial_duration_s)

    run_timeline(flow.main_runner(), participant, clock, config.trial_duration_s)

    if config.is_ip:
        points = flow.complete_phase1()
        for point in points:
            print(f"  combination {point.combination_id:>2}: {point.indifference_point} ({point.quality.value})")
        run_timeline(flow.phase2_runner(), participant, clock, config.trial_duration_s)

    report = flow.finish()
    summary = {
        "status": report.status,
        "message": report.message,
        "participant_id": report.participant_id,
        "rows": report.row_count,
        "attention_checks": report.attention_count,
        "backup": report.backup_status,
        "bonus": round(report.bonus.bonus_amount, 2) if report.bonus else None,
    }
    print(json.dumps(summary, indent=2))
    if not report.saved:
        raise SystemExit(2)


if __name__ == "__main__":
    main()
