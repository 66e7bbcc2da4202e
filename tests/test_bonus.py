import pytest

from core.models import Choice, EvClass, TrialResult
from experiments.bonus import eligible_trials, points_to_currency, resolve_bonus


class SequenceRandom:
    def __init__(self, values):
        self.values = list(values)
        self.idx = 0

    def random(self):
        value = self.values[self.idx % len(self.values)]
        self.idx += 1
        return value


def _result(n, choice, probability=75, risk_reward=200, safe_reward=150):
    return TrialResult(
        participant_id="P01",
        trial_number=n,
        choice=choice,
        risk_probability=probability,
        risk_reward=risk_reward,
        safe_reward=safe_reward,
        size_condition="both-small",
        risk_position="left",
        safe_position="right",
        ev=EvClass.same,
        trial_id=100 + n,
    )


@pytest.mark.parametrize(
    "points,expected",
    [(150, 3.0), (750_000, 1.5), (500_000, 1.0), (499_999, 9999.98), (0, 0.0)],
)
def test_points_to_currency(points, expected):
    assert points_to_currency(points) == pytest.approx(expected)


def test_safe_choice_always_wins():
    outcome = resolve_bonus([_result(1, Choice.safe)], 120, SequenceRandom([0.0]))
    assert outcome.win
    assert outcome.reward_points == 150
    assert outcome.bonus_amount == pytest.approx(3.0)
    assert outcome.selected_trial.trial_number == 1


def test_roll_equal_to_probability_wins():
    # first draw picks the trial, second is the roll: 0.75 * 100 == 75
    outcome = resolve_bonus([_result(1, Choice.risk)], 120, SequenceRandom([0.0, 0.75]))
    assert outcome.win
    assert outcome.reward_points == 200
    assert outcome.bonus_amount == pytest.approx(4.0)


def test_roll_above_probability_loses():
    outcome = resolve_bonus([_result(1, Choice.risk)], 120, SequenceRandom([0.0, 0.7501]))
    assert not outcome.win
    assert outcome.bonus_amount == 0.0
    assert outcome.selected_trial is not None


def test_no_eligible_trials_gives_zero_bonus():
    results = [_result(1, Choice.timeout), _result(130, Choice.safe)]
    outcome = resolve_bonus(results, 120, SequenceRandom([0.5]))
    assert outcome.selected_trial is None
    assert outcome.bonus_amount == 0
    assert outcome.reason == "No valid trials found"


def test_eligibility_respects_configured_bound():
    results = [_result(n, Choice.safe) for n in range(1, 11)]
    assert [r.trial_number for r in eligible_trials(results, 5)] == [1, 2, 3, 4, 5]
