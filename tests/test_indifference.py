from core.models import Choice, EvClass, Quality, TrialResult
from experiments.indifference import estimate_combination, estimate_indifference_points


def _result(safe, choice, combination_id=1, n=0):
    return TrialResult(
        participant_id="P01",
        trial_number=n,
        choice=choice,
        risk_probability=50,
        risk_reward=60,
        safe_reward=safe,
        size_condition="both-small",
        risk_position="left",
        safe_position="right",
        ev=EvClass.risky,
        trial_id=n,
        combination_id=combination_id,
    )


def test_switch_point_is_midpoint():
    # presented out of order; the estimator sorts by safe amount
    trials = [
        _result(30, Choice.safe),
        _result(10, Choice.risk),
        _result(40, Choice.safe),
        _result(20, Choice.risk),
    ]
    point = estimate_combination(1, trials)
    assert point.indifference_point == 25
    assert point.quality == Quality.ok
    assert point.risk_reward == 60
    assert point.risk_probability == 50


def test_always_risky_uses_lowest_amount():
    point = estimate_combination(1, [_result(s, Choice.risk) for s in (10, 20, 30, 40)])
    assert point.quality == Quality.always_risky
    assert point.indifference_point == 10


def test_always_safe_uses_highest_amount():
    point = estimate_combination(1, [_result(s, Choice.safe) for s in (10, 20, 30, 40)])
    assert point.quality == Quality.always_safe
    assert point.indifference_point == 40


def test_all_timeouts_is_no_switch_midpoint_of_range():
    point = estimate_combination(1, [_result(s, Choice.timeout) for s in (10, 20, 30, 40)])
    assert point.quality == Quality.no_switch
    assert point.indifference_point == 25


def test_midpoint_is_rounded_to_two_places():
    trials = [_result(10.0, Choice.risk), _result(10.333, Choice.safe)]
    assert estimate_combination(1, trials).indifference_point == 10.17


def test_every_combination_is_reported():
    results = [_result(s, Choice.risk if s < 25 else Choice.safe, combination_id=3) for s in (10, 20, 30)]
    points = estimate_indifference_points(results)
    assert [p.combination_id for p in points] == list(range(1, 19))
    assert points[2].quality == Quality.ok
    assert points[2].indifference_point == 25
    missing = [p for p in points if p.combination_id != 3]
    assert all(p.quality == Quality.missing and p.indifference_point is None for p in missing)
