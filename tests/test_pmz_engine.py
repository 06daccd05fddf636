# tests/test_pmz_engine.py

import numpy as np
import sys, os
from datetime import date, datetime, time
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from modules.errors import InsufficientData, InvalidConfiguration
from modules.pmz_engine import (
    Candle, EvaluatorState, step, evaluate, compute_pmz_levels, build_state_trace
)
from modules.session_windows import session_windows
from session_fixtures import (
    PREV_DAY, TARGET_DAY, make_session_candles, scenario_overrides
)


def close_to(a, b, tol=1e-9):
    return abs(a - b) < tol


# ─────────────────────────────────────────────
# SCENARIOS
# ─────────────────────────────────────────────

def test_gap_up_scenario():
    result = evaluate(make_session_candles(), premarket_mode="PRE")
    assert result.date == TARGET_DAY
    assert close_to(result.lis, 4500.0)
    assert close_to(result.pmh, 4520.0)
    assert close_to(result.pml, 4490.0)
    assert result.gap is True
    assert close_to(result.pmz_high, 4514.0)
    assert close_to(result.pmz_low, 4508.0)
    assert close_to(result.risk, 6.0)
    print("PASS: test_gap_up_scenario")


def test_gap_down_scenario():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(9, 25))] = dict(open=4495.0, low=4494.0)
    result = evaluate(make_session_candles(overrides), premarket_mode="PRE")
    assert result.gap is False
    assert close_to(result.pmh, 4520.0)
    assert close_to(result.pml, 4490.0)
    assert close_to(result.pmz_high, 4502.0)
    assert close_to(result.pmz_low, 4496.0)
    assert close_to(result.risk, 6.0)
    print("PASS: test_gap_down_scenario")


def test_all_mode_includes_prior_night():
    overrides = scenario_overrides()
    overrides[(PREV_DAY, time(23, 55))] = dict(high=4530.0)
    candles = make_session_candles(overrides)

    all_result = evaluate(candles, premarket_mode="ALL")
    pre_result = evaluate(candles, premarket_mode="PRE")

    assert close_to(all_result.pmh, 4530.0), "23:55 bar belongs to the ALL window"
    assert close_to(pre_result.pmh, 4520.0), "23:55 bar is outside the PRE window"
    print("PASS: test_all_mode_includes_prior_night")


def test_pre_window_start_is_exclusive():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(7, 25))] = dict(high=4600.0)
    result = evaluate(make_session_candles(overrides), premarket_mode="PRE")
    assert close_to(result.pmh, 4520.0)
    print("PASS: test_pre_window_start_is_exclusive")


def test_open_price_from_0930_candle():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(9, 30))] = dict(open=4510.0, high=4511.0)
    result = evaluate(make_session_candles(overrides))
    assert close_to(result.open_price, 4510.0)
    print("PASS: test_open_price_from_0930_candle")


def test_candles_after_open_are_ignored():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(9, 45))] = dict(high=9999.0, low=1.0)
    baseline = evaluate(make_session_candles())
    result   = evaluate(make_session_candles(overrides), premarket_mode="ALL")
    assert close_to(result.pmh, baseline.pmh)
    assert close_to(result.pml, 4490.0)
    print("PASS: test_candles_after_open_are_ignored")


# ─────────────────────────────────────────────
# PROPERTIES
# ─────────────────────────────────────────────

def test_zone_is_ordered_for_random_sessions():
    for seed in range(10):
        rng = np.random.default_rng(seed)
        overrides = {}
        for c in make_session_candles(overrides={}):
            o = 4500 + rng.normal() * 10
            cl = o + rng.normal() * 3
            overrides[(c.timestamp.date(), c.timestamp.time())] = dict(
                open=o, close=cl,
                high=max(o, cl) + abs(rng.normal()),
                low=min(o, cl) - abs(rng.normal()),
            )
        for mode in ("PRE", "ALL"):
            result = evaluate(make_session_candles(overrides), premarket_mode=mode)
            assert result.pmz_high >= result.pmz_low
            assert result.risk >= 0
    print("PASS: test_zone_is_ordered_for_random_sessions")


def test_evaluate_is_idempotent():
    candles = make_session_candles()
    assert evaluate(candles) == evaluate(candles)
    print("PASS: test_evaluate_is_idempotent")


def test_reset_at_cnull():
    for mode in ("PRE", "ALL"):
        trace = build_state_trace(make_session_candles(), premarket_mode=mode, futures_enabled=True)
        mask = np.array([ts.time() == time(15, 55) for ts in trace.index])
        at_reset = trace[mask]
        assert len(at_reset) == 1
        assert (at_reset['pmh'] == 0).all()
        assert np.isinf(at_reset['pml']).all()
        assert (at_reset['ahh'] == 0).all()
        assert np.isinf(at_reset['ahl']).all()
    print("PASS: test_reset_at_cnull")


def test_reset_beats_accumulation():
    windows = session_windows(5)
    state = EvaluatorState(lis=4500.0, pmh=4550.0, pml=4400.0, gap=True)
    bar = Candle(datetime(2024, 3, 4, 15, 55), 4505.0, 4600.0, 4300.0, 4505.0)
    after = step(state, bar, windows, premarket_mode="ALL")
    assert after.pmh == 0.0
    assert np.isinf(after.pml)
    print("PASS: test_reset_beats_accumulation")


def test_gap_follows_last_window_candle():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(7, 30))] = dict(open=4495.0, low=4494.0)
    result = evaluate(make_session_candles(overrides))
    assert result.gap is True, "first bar said gap down, last bar (09:25) says gap up"

    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(9, 25))] = dict(open=4495.0, low=4494.0)
    result = evaluate(make_session_candles(overrides))
    assert result.gap is False
    print("PASS: test_gap_follows_last_window_candle")


def test_lis_carried_forward():
    trace = build_state_trace(make_session_candles())
    before = trace[trace.index < datetime.combine(PREV_DAY, time(16, 0))]
    after  = trace[trace.index >= datetime.combine(PREV_DAY, time(16, 0))]
    assert before['lis'].isna().all()
    assert (after['lis'] == 4500.0).all()
    print("PASS: test_lis_carried_forward")


def test_compute_pmz_levels_flat_open_counts_as_gap_up():
    high, low, risk = compute_pmz_levels(110.0, 100.0, True)
    assert close_to(high, 108.0) and close_to(low, 106.0) and close_to(risk, 2.0)
    print("PASS: test_compute_pmz_levels_flat_open_counts_as_gap_up")


# ─────────────────────────────────────────────
# AFTER-HOURS MIRROR
# ─────────────────────────────────────────────

def test_after_hours_levels():
    overrides = scenario_overrides()
    overrides[(PREV_DAY, time(17, 0))] = dict(high=4540.0)
    result = evaluate(make_session_candles(overrides), futures_enabled=True)
    ah = result.after_hours
    assert ah is not None
    assert close_to(ah.ahh, 4540.0)
    assert close_to(ah.ahl, 4499.0)
    assert ah.ah_set is True
    assert close_to(ah.zone_high, 4540.0 - 41.0 * 0.2)
    assert close_to(ah.zone_low, 4540.0 - 41.0 * 0.4)
    print("PASS: test_after_hours_levels")


def test_after_hours_off_by_default():
    result = evaluate(make_session_candles())
    assert result.after_hours is None
    print("PASS: test_after_hours_off_by_default")


def test_after_hours_missing_is_skipped_not_fatal():
    # LIS from an earlier session; the prior day's 16:00-18:00 bars are gone
    earlier = date(2024, 3, 3)
    overrides = scenario_overrides()
    overrides[(earlier, time(16, 0))] = dict(close=4500.0, low=4499.0)
    drop = {(PREV_DAY, time(h, m)) for h in range(16, 19) for m in range(0, 60, 5)
            if time(16, 0) <= time(h, m) <= time(18, 0)}
    candles = make_session_candles(overrides, start=datetime.combine(earlier, time(15, 0)), drop=drop)

    result = evaluate(candles, futures_enabled=True)
    assert result.after_hours is None
    assert close_to(result.lis, 4500.0)
    assert close_to(result.pmz_high, 4514.0)
    print("PASS: test_after_hours_missing_is_skipped_not_fatal")


def test_to_dict_carries_risk_lines():
    out = evaluate(make_session_candles()).to_dict()
    assert out['date'] == TARGET_DAY
    assert close_to(out['pmz_high'], 4514.0)
    assert close_to(out['risk_range'], 30.0)
    assert close_to(out['upper_risk'], 4544.0)
    assert close_to(out['lower_risk'], 4478.0)
    assert out['after_hours'] is None
    print("PASS: test_to_dict_carries_risk_lines")


# ─────────────────────────────────────────────
# BAR PERIODS
# ─────────────────────────────────────────────

def test_sparse_five_minute_input_keeps_five_minute_cutoffs():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(7, 10))] = dict(high=4600.0)
    keep = {
        (PREV_DAY, time(15, 55)), (PREV_DAY, time(16, 0)),
        (TARGET_DAY, time(7, 10)), (TARGET_DAY, time(7, 30)), (TARGET_DAY, time(8, 0)),
        (TARGET_DAY, time(8, 30)), (TARGET_DAY, time(9, 25)), (TARGET_DAY, time(9, 30)),
    }
    candles = [c for c in make_session_candles(overrides)
               if (c.timestamp.date(), c.timestamp.time()) in keep]

    result = evaluate(candles)
    assert result == evaluate(candles, period_minutes=5)
    assert close_to(result.pmh, 4520.0), "07:10 is before the 07:25 start for 5-minute bars"
    assert close_to(result.pmz_high, 4514.0)
    print("PASS: test_sparse_five_minute_input_keeps_five_minute_cutoffs")


def test_fifteen_minute_session():
    overrides = scenario_overrides()
    overrides[(PREV_DAY, time(15, 30))] = dict(high=4700.0)
    overrides[(TARGET_DAY, time(7, 15))] = dict(high=4600.0)
    candles = make_session_candles(overrides, minutes=15)

    pre = evaluate(candles, premarket_mode="PRE")
    assert close_to(pre.pmh, 4520.0), "07:15 is the exclusive start for 15-minute bars"
    assert close_to(pre.pml, 4490.0)
    assert close_to(pre.pmz_high, 4514.0)

    all_mode = evaluate(candles, premarket_mode="ALL")
    assert close_to(all_mode.pmh, 4600.0), "15:30 cleared by the 15:45 reset, 07:15 kept"

    # forcing 5-minute cutoffs looks for a 15:55 reset that 15-minute bars never print
    e = expect_error(InsufficientData, evaluate, candles, period_minutes=5)
    assert "15:55" in str(e)
    print("PASS: test_fifteen_minute_session")


# ─────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────

def expect_error(exc_type, fn, *args, **kwargs):
    try:
        fn(*args, **kwargs)
    except exc_type as e:
        return e
    raise AssertionError(f"expected {exc_type.__name__}")


def test_missing_tclose_candle():
    candles = make_session_candles(drop={(PREV_DAY, time(16, 0))})
    e = expect_error(InsufficientData, evaluate, candles)
    assert "16:00" in str(e)
    print(f"PASS: test_missing_tclose_candle — caught: {e}")


def test_missing_topen_candle():
    candles = make_session_candles(end=datetime.combine(TARGET_DAY, time(9, 25)))
    e = expect_error(InsufficientData, evaluate, candles)
    assert "09:30" in str(e)
    print(f"PASS: test_missing_topen_candle — caught: {e}")


def test_no_premarket_candles():
    drop = {(TARGET_DAY, time(h, m)) for h in range(7, 10) for m in range(0, 60, 5)
            if time(7, 25) < time(h, m) < time(9, 30)}
    e = expect_error(InsufficientData, evaluate, make_session_candles(drop=drop))
    print(f"PASS: test_no_premarket_candles — caught: {e}")


def test_unordered_candles():
    candles = make_session_candles()
    candles[10], candles[11] = candles[11], candles[10]
    expect_error(InsufficientData, evaluate, candles)

    candles = make_session_candles()
    candles.insert(5, candles[5])
    expect_error(InsufficientData, evaluate, candles)
    print("PASS: test_unordered_candles")


def test_empty_input():
    expect_error(InsufficientData, evaluate, [])
    print("PASS: test_empty_input")


def test_invalid_mode():
    e = expect_error(InvalidConfiguration, evaluate, make_session_candles(), premarket_mode="POST")
    assert isinstance(e, ValueError)
    print("PASS: test_invalid_mode")


def test_missing_cnull_reset():
    overrides = scenario_overrides()
    overrides[(PREV_DAY, time(15, 30))] = dict(high=4600.0)
    candles = make_session_candles(overrides, drop={(PREV_DAY, time(15, 55))})
    for mode in ("PRE", "ALL"):
        e = expect_error(InsufficientData, evaluate, candles, premarket_mode=mode)
        assert "15:55" in str(e)
    print(f"PASS: test_missing_cnull_reset — caught: {e}")


def test_nothing_accumulates_before_first_reset():
    overrides = scenario_overrides()
    overrides[(PREV_DAY, time(15, 30))] = dict(high=4600.0)
    trace = build_state_trace(make_session_candles(overrides), premarket_mode="ALL")
    before = trace[trace.index < datetime.combine(PREV_DAY, time(15, 55))]
    assert (before['pmh'] == 0).all()
    assert not before['reset_seen'].any()
    print("PASS: test_nothing_accumulates_before_first_reset")


def test_non_finite_price():
    overrides = scenario_overrides()
    overrides[(TARGET_DAY, time(8, 5))] = dict(high=float('nan'))
    expect_error(InsufficientData, evaluate, make_session_candles(overrides))
    print("PASS: test_non_finite_price")


# ─────────────────────────────────────────────
# RUN ALL TESTS
# ─────────────────────────────────────────────

if __name__ == "__main__":
    print("\n" + "="*50)
    print("  PMZ — Evaluator Test Suite")
    print("="*50 + "\n")

    test_gap_up_scenario()
    test_gap_down_scenario()
    test_all_mode_includes_prior_night()
    test_pre_window_start_is_exclusive()
    test_open_price_from_0930_candle()
    test_candles_after_open_are_ignored()
    test_zone_is_ordered_for_random_sessions()
    test_evaluate_is_idempotent()
    test_reset_at_cnull()
    test_reset_beats_accumulation()
    test_gap_follows_last_window_candle()
    test_lis_carried_forward()
    test_compute_pmz_levels_flat_open_counts_as_gap_up()
    test_after_hours_levels()
    test_after_hours_off_by_default()
    test_after_hours_missing_is_skipped_not_fatal()
    test_to_dict_carries_risk_lines()
    test_sparse_five_minute_input_keeps_five_minute_cutoffs()
    test_fifteen_minute_session()
    test_missing_tclose_candle()
    test_missing_topen_candle()
    test_no_premarket_candles()
    test_unordered_candles()
    test_empty_input()
    test_invalid_mode()
    test_missing_cnull_reset()
    test_nothing_accumulates_before_first_reset()
    test_non_finite_price()

    print("\n" + "="*50)
    print("  All tests completed.")
    print("="*50)
