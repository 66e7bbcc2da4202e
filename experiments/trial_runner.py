"""
Sequential trial execution.

The runner exposes pure state (current item, countdown, finished flag); a
presentation layer renders it and forwards clicks. Scored trials arm a
single-shot response deadline. A click and the deadline may race from
different threads; the lock plus the per-trial generation make exactly one
of them record the trial.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Protocol, Sequence

from loguru import logger

from core.errors import ValidationError
from core.models import AttentionCheckResult, Choice
from experiments.recorder import ResponseRecorder
from trials.models import AttentionCheckQuestion, TimelineItem, Trial


class TimerHandle(Protocol):
    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(seconds: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(seconds, callback)
    timer.daemon = True
    return timer


class TrialRunner:
    def __init__(
        self,
        timeline: Sequence[TimelineItem],
        recorder: Optional[ResponseRecorder] = None,
        is_practice: bool = False,
        trial_duration_s: float = 6.0,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.timeline = list(timeline)
        self.recorder = recorder
        self.is_practice = is_practice
        self.trial_duration_s = trial_duration_s
        self.clock = clock
        self.timer_factory = timer_factory
        self.index = 0
        self._lock = threading.RLock()
        self._timer: Optional[TimerHandle] = None
        self._deadline: Optional[float] = None
        self._started_at: Optional[float] = None
        self._choice: Optional[str] = None
        self._bar_choice_time: Optional[float] = None
        self._finished = True
        self._generation = 0

    @property
    def done(self) -> bool:
        return self.index >= len(self.timeline)

    def current(self) -> Optional[TimelineItem]:
        if self.done:
            return None
        return self.timeline[self.index]

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._deadline = None

    def start(self) -> Optional[TimelineItem]:
        """Present the current item. Any stale timer is cancelled first."""
        with self._lock:
            self._clear_timer()
            item = self.current()
            if item is None:
                return None
            self._generation += 1
            self._finished = False
            self._choice = None
            self._bar_choice_time = None
            self._started_at = self.clock()
            if isinstance(item, Trial) and not self.is_practice:
                generation = self._generation
                self._deadline = self._started_at + self.trial_duration_s
                self._timer = self.timer_factory(self.trial_duration_s, lambda: self.on_timeout(generation))
                self._timer.start()
            return item

    def time_left(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self.clock())

    def select_choice(self, choice: str) -> bool:
        if choice not in (Choice.risk.value, Choice.safe.value):
            raise ValidationError(f"Unknown choice '{choice}'")
        with self._lock:
            if self._finished or not isinstance(self.current(), Trial):
                return False
            self._choice = choice
            self._bar_choice_time = self.clock() - (self._started_at or 0.0)
            return self._finish_locked()

    def on_timeout(self, generation: Optional[int] = None) -> bool:
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            if self._finished:
                return False
            logger.debug(f"[TrialRunner] Response deadline reached on item {self.index + 1}")
            return self._finish_locked()

    def finish_trial(self) -> bool:
        with self._lock:
            if self._finished or not isinstance(self.current(), Trial):
                return False
            return self._finish_locked()

    def _finish_locked(self) -> bool:
        self._finished = True
        self._clear_timer()
        item = self.current()
        if isinstance(item, Trial) and not self.is_practice and self.recorder is not None:
            self.recorder.record_trial(item, self._choice, self._bar_choice_time)
        self.index += 1
        return True

    def answer_attention(self, answer: str) -> AttentionCheckResult:
        with self._lock:
            item = self.current()
            if not isinstance(item, AttentionCheckQuestion) or self._finished:
                raise ValidationError("No attention check is waiting for an answer.")
            answer = (answer or "").strip()
            if not answer:
                raise ValidationError("Please answer the question to continue.")
            if self.recorder is None:
                raise ValidationError("Attention checks need a recorder.")
            response_time = self.clock() - (self._started_at or 0.0)
            result = self.recorder.record_attention(item, answer, item.score(answer), response_time)
            self._finished = True
            self.index += 1
            return result
