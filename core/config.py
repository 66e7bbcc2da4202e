from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.errors import ConfigurationError
from trials.models import AttentionCheckQuestion

SURVEY_SERVER_URL = os.getenv("SURVEY_SERVER_URL", "http://localhost:8000")
SURVEY_BACKUP_DIR = os.getenv("SURVEY_BACKUP_DIR", "results/backups")

DEFAULT_PRACTICE_TRIAL_IDS = [1, 15, 30, 45, 60, 75, 90, 105]
DEFAULT_COMBINATION_COUNT = 18


class StudyType(str, Enum):
    risk_survey = "risk-survey"
    ip = "ip"


@dataclass
class RetryPolicy:
    max_attempts: int = 4
    base_delay_s: float = 2.0
    attempt_timeout_s: float = 30.0
    probe_settle_s: float = 2.0

    def backoff(self, attempt: int) -> float:
        return self.base_delay_s ** attempt


@dataclass
class ExperimentSettings:
    main_trials: int = 120
    attention_checks: int = 0
    trial_duration_ms: int = 6000
    practice_trial_ids: List[int] = field(default_factory=lambda: list(DEFAULT_PRACTICE_TRIAL_IDS))
    excluded_probabilities: Optional[List[int]] = None
    bonus_eligible_max: Optional[int] = None
    combination_count: int = DEFAULT_COMBINATION_COUNT


@dataclass
class TablePaths:
    trials: Path
    phase2_template: Optional[Path] = None
    dummy_trials: Optional[Path] = None


@dataclass
class StudyConfig:
    study_type: StudyType
    experiment: ExperimentSettings
    tables: TablePaths
    attention_check_questions: List[AttentionCheckQuestion] = field(default_factory=list)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    server_url: str = SURVEY_SERVER_URL
    backup_dir: Path = Path(SURVEY_BACKUP_DIR)

    @property
    def is_ip(self) -> bool:
        return self.study_type == StudyType.ip

    @property
    def trial_duration_s(self) -> float:
        return self.experiment.trial_duration_ms / 1000.0

    @property
    def bonus_eligible_max(self) -> int:
        if self.experiment.bonus_eligible_max is not None:
            return self.experiment.bonus_eligible_max
        return self.experiment.main_trials

    @property
    def excluded_probabilities(self) -> List[int]:
        if self.experiment.excluded_probabilities is not None:
            return list(self.experiment.excluded_probabilities)
        # 50% lotteries are ambiguous in the risk survey; the ip table keeps them.
        return [] if self.is_ip else [50]

    @property
    def combination_ids(self) -> List[int]:
        return list(range(1, self.experiment.combination_count + 1))


def _resolve(base: Path, value: Optional[str]) -> Optional[Path]:
    if not value:
        return None
    path = Path(value)
    return path if path.is_absolute() else base / path


def _experiment_settings(raw: Dict[str, Any]) -> ExperimentSettings:
    return ExperimentSettings(
        main_trials=int(raw.get("mainTrials", 120)),
        attention_checks=int(raw.get("attentionChecks", 0)),
        trial_duration_ms=int(raw.get("trialDuration", 6000)),
        practice_trial_ids=[int(i) for i in raw.get("practiceTrialIds", DEFAULT_PRACTICE_TRIAL_IDS)],
        excluded_probabilities=raw.get("excludedProbabilities"),
        bonus_eligible_max=raw.get("bonusEligibleMax"),
        combination_count=int(raw.get("combinationCount", DEFAULT_COMBINATION_COUNT)),
    )


def _retry_policy(raw: Dict[str, Any]) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=int(raw.get("maxAttempts", 4)),
        base_delay_s=float(raw.get("baseDelay", 2.0)),
        attempt_timeout_s=float(raw.get("attemptTimeout", 30.0)),
        probe_settle_s=float(raw.get("probeSettle", 2.0)),
    )


def load_study_config(path: str | Path) -> StudyConfig:
    path = Path(path)
    try:
        with path.open("r") as f:
            cfg = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not read study config {path}: {exc}") from exc
    if not isinstance(cfg, dict) or "experimentConfig" not in cfg:
        raise ConfigurationError(f"Study config {path} has no experimentConfig section")

    base = path.parent
    tables = cfg.get("trialTables", {})
    trials_path = _resolve(base, tables.get("trials"))
    if trials_path is None:
        raise ConfigurationError(f"Study config {path} does not name a trial table")

    try:
        study_type = StudyType(cfg.get("studyType", StudyType.risk_survey.value))
        questions = [AttentionCheckQuestion.from_config(q) for q in cfg.get("attentionCheckQuestions") or []]
        experiment = _experiment_settings(cfg["experimentConfig"] or {})
        retry = _retry_policy(cfg.get("submission") or {})
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed study config {path}: {exc}") from exc

    return StudyConfig(
        study_type=study_type,
        experiment=experiment,
        tables=TablePaths(
            trials=trials_path,
            phase2_template=_resolve(base, tables.get("phase2Template")),
            dummy_trials=_resolve(base, tables.get("dummyTrials")),
        ),
        attention_check_questions=questions,
        retry=retry,
        server_url=cfg.get("serverUrl") or SURVEY_SERVER_URL,
        backup_dir=Path(cfg.get("backupDir") or SURVEY_BACKUP_DIR),
    )
