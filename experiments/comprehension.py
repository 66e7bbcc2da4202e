from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from loguru import logger

from core.errors import ValidationError

MAX_FAILURES = 3


@dataclass(frozen=True)
class ComprehensionQuestion:
    prompt: str
    correct_answer: int
    explanation: str


COMPREHENSION_QUESTIONS = (
    ComprehensionQuestion(
        prompt="For the option on the right, what is the maximum amount of points you can potentially earn?",
        correct_answer=150,
        explanation="The correct response is 150 because the black bar indicates a 100% chance of winning 150 points.",
    ),
    ComprehensionQuestion(
        prompt="For the option on the left, what is the maximum amount of points you can potentially earn?",
        correct_answer=200,
        explanation="The correct response is 200. The left option shows 200 points at the top, which represents the maximum possible outcome.",
    ),
    ComprehensionQuestion(
        prompt="For the option on the left, what is the minimum amount of points you can potentially earn?",
        correct_answer=0,
        explanation="The correct response is 0. The left option shows 0 points at the bottom, representing the minimum possible outcome when you don't win.",
    ),
)


@dataclass
class ComprehensionResponse:
    question_number: int
    user_answer: int
    correct_answer: int
    is_correct: bool
    response_time_ms: float


def validate_participant_id(raw: Optional[str]) -> str:
    participant_id = (raw or "").strip()
    if not participant_id:
        raise ValidationError("Please enter your Participant ID.")
    return participant_id


@dataclass
class ComprehensionCheck:
    """Three questions about the reference chart, asked before practice. Every question is asked once."""

    questions: tuple = COMPREHENSION_QUESTIONS
    clock: Callable[[], float] = time.monotonic
    current: int = 0
    failure_count: int = 0
    responses: List[ComprehensionResponse] = field(default_factory=list)
    _started_at: Optional[float] = None

    def __post_init__(self) -> None:
        self._started_at = self.clock()

    @property
    def done(self) -> bool:
        return self.current >= len(self.questions)

    @property
    def passed(self) -> bool:
        return self.done and self.failure_count < MAX_FAILURES

    def question(self) -> Optional[ComprehensionQuestion]:
        if self.done:
            return None
        return self.questions[self.current]

    def submit(self, raw: Optional[str]) -> ComprehensionResponse:
        question = self.question()
        if question is None:
            raise ValidationError("The comprehension check is already complete.")
        text = (raw or "").strip()
        try:
            answer = int(text)
        except ValueError:
            raise ValidationError("Please enter a valid number.") from None

        response = ComprehensionResponse(
            question_number=self.current + 1,
            user_answer=answer,
            correct_answer=question.correct_answer,
            is_correct=answer == question.correct_answer,
            response_time_ms=(self.clock() - (self._started_at or 0.0)) * 1000.0,
        )
        self.responses.append(response)
        if not response.is_correct:
            self.failure_count += 1
        self.current += 1
        self._started_at = self.clock()

        if self.done:
            logger.info(
                f"[Comprehension] Completed with {self.failure_count} failure(s); "
                f"passed={self.failure_count < MAX_FAILURES}"
            )
        return response
