from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Union


class SizeCondition(str, Enum):
    both_large = "both-large"
    both_small = "both-small"
    risk_large = "risk-large"
    safe_large = "safe-large"


class QuestionType(str, Enum):
    multi_choice = "multi-choice"
    text = "text"
    likert = "likert"


@dataclass(frozen=True)
class TrialDefinition:
    """One row of a trial table. Point values are static input, never computed here."""

    trial_id: int
    combination_id: Optional[int]
    risk_probability: int
    risk_reward: float
    safe_reward: float
    size_condition: str
    expected_value: float = 0.0
    phase2_trial: Optional[int] = None

    def with_safe_reward(self, safe_reward: float) -> "TrialDefinition":
        return replace(
            self,
            safe_reward=safe_reward,
            expected_value=round(self.risk_probability / 100 * self.risk_reward, 2),
        )


@dataclass(frozen=True)
class Trial:
    definition: TrialDefinition
    trial_number: Union[int, str]
    risk_on_left: bool
    is_practice: bool = False
    is_dummy: bool = False
    is_attention: bool = field(default=False, init=False)

    @property
    def trial_id(self) -> int:
        return self.definition.trial_id

    @property
    def combination_id(self) -> Optional[int]:
        return self.definition.combination_id

    @property
    def risk_probability(self) -> int:
        return self.definition.risk_probability

    @property
    def risk_reward(self) -> float:
        return self.definition.risk_reward

    @property
    def safe_reward(self) -> float:
        return self.definition.safe_reward

    @property
    def size_condition(self) -> str:
        return self.definition.size_condition

    @property
    def expected_value(self) -> float:
        return self.definition.expected_value


@dataclass(frozen=True)
class AttentionCheckQuestion:
    type: QuestionType
    prompt: str
    correct_answer: str
    options: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    is_attention: bool = field(default=True, init=False)

    @classmethod
    def from_config(cls, raw: dict) -> "AttentionCheckQuestion":
        return cls(
            type=QuestionType(raw["type"]),
            prompt=str(raw["prompt"]),
            correct_answer=str(raw.get("correct_answer", "")),
            options=[str(o) for o in raw.get("options", [])],
            labels=[str(label) for label in raw.get("labels", [])],
        )

    def score(self, answer: str) -> bool:
        if self.type == QuestionType.text:
            return answer.strip().lower() == self.correct_answer.strip().lower()
        return answer == self.correct_answer


TimelineItem = Union[Trial, AttentionCheckQuestion]
