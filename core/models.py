from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from schemas.rows import RowLog

NAN = float("nan")
EV_EPSILON = 0.01


class Choice(str, Enum):
    risk = "risk"
    safe = "safe"
    timeout = "timeout"

    @classmethod
    def normalize(cls, value: Any) -> "Choice":
        if isinstance(value, cls):
            return value
        if value in (cls.risk.value, cls.safe.value):
            return cls(value)
        return cls.timeout


class EvClass(str, Enum):
    same = "same"
    safe = "safe"
    risky = "risky"


class Quality(str, Enum):
    ok = "ok"
    no_switch = "no_switch"
    always_safe = "always_safe"
    always_risky = "always_risky"
    missing = "missing"


def classify_ev(risk_probability: float, risk_reward: float, safe_reward: float) -> EvClass:
    risk_ev = (risk_probability / 100) * risk_reward
    if abs(risk_ev - safe_reward) < EV_EPSILON:
        return EvClass.same
    if safe_reward > risk_ev:
        return EvClass.safe
    return EvClass.risky


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id(now: Optional[datetime] = None) -> str:
    stamp = (now or _now()).strftime("%Y%m%dT%H%M%S")
    return f"ses_{stamp}"


@dataclass
class TrialResult:
    participant_id: str
    trial_number: int
    choice: Choice
    risk_probability: int
    risk_reward: float
    safe_reward: float
    size_condition: str
    risk_position: str
    safe_position: str
    ev: EvClass
    trial_id: int
    combination_id: Optional[int] = None
    confidence: float = NAN
    bar_choice_time: float = NAN
    confidence_choice_time: float = NAN
    is_bonus_trial: bool = False
    bonus_amount: Optional[float] = None


@dataclass
class AttentionCheckResult:
    participant_id: str
    attention_check_number: int
    question_type: str
    question_prompt: str
    correct_answer: str
    user_answer: str
    is_correct: bool
    response_time: float
    session_id: str
    timestamp: str = field(default_factory=lambda: _now().isoformat())

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IndifferencePoint:
    combination_id: int
    risk_reward: Optional[float]
    risk_probability: Optional[int]
    indifference_point: Optional[float]
    quality: Quality


@dataclass
class BonusOutcome:
    selected_trial: Optional[TrialResult]
    win: bool
    reward_points: float
    bonus_amount: float
    reason: Optional[str] = None


@dataclass
class Session:
    """State of one participant run. Created at start, discarded after the final save."""

    participant_id: str
    study_type: str
    session_id: str = field(default_factory=new_session_id)
    started_at: str = field(default_factory=lambda: _now().isoformat())
    results: List[TrialResult] = field(default_factory=list)
    attention_results: List[AttentionCheckResult] = field(default_factory=list)
    rows: RowLog = field(default_factory=RowLog)
    indifference_points: List[IndifferencePoint] = field(default_factory=list)
    bonus: Optional[BonusOutcome] = None
    trial_counter: int = 1
    saved_row_count: int = 0
    saved_attention_count: int = 0
    phase: int = 1

    def next_trial_number(self) -> int:
        number = self.trial_counter
        self.trial_counter += 1
        return number

    def pending_row_count(self) -> int:
        return len(self.rows) - self.saved_row_count

    def pending_attention_rows(self) -> List[Dict[str, Any]]:
        return [r.to_row() for r in self.attention_results[self.saved_attention_count:]]

    def to_backup(self) -> Dict[str, Any]:
        return {
            "subjectId": self.participant_id,
            "sessionId": self.session_id,
            "studyType": self.study_type,
            "csvData": self.rows.lines(),
            "attentionCheckData": [r.to_row() for r in self.attention_results],
            "savedRowCount": self.saved_row_count,
            "savedAttentionCount": self.saved_attention_count,
            "indifferencePoints": [
                {**asdict(p), "quality": p.quality.value} for p in self.indifference_points
            ],
            "timestamp": _now().isoformat(),
        }

