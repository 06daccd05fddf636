# modules/pmz_engine.py

from dataclasses import dataclass, replace, asdict
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import (
    PMZ_NEAR_WEIGHT, PMZ_FAR_WEIGHT,
    PREMARKET_MODE, FUTURES_ENABLED
)
from modules.errors import InsufficientData
from modules.session_windows import (
    SessionWindows, session_windows, validate_premarket_mode,
    in_premarket_window, in_after_hours_window, infer_period_minutes
)


# ─────────────────────────────────────────────
# SECTION 1: DATA MODEL
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class Candle:
    timestamp: datetime     # exchange-local wall-clock time
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class EvaluatorState:
    """
    Carry-forward state of the bar-by-bar fold.
    A fresh state holds the reset values (pmh=0, pml=+inf) but is not armed:
    nothing accumulates until a cnull reset bar has actually been seen.
    """
    lis: Optional[float] = None
    otime: Optional[float] = None
    pmh: float = 0.0
    pml: float = np.inf
    gap: Optional[bool] = None
    ahh: float = 0.0
    ahl: float = np.inf
    ah_set: Optional[bool] = None
    reset_seen: bool = False


@dataclass(frozen=True)
class AfterHoursLevels:
    ahh: float
    ahl: float
    ah_set: bool
    zone_high: float
    zone_low: float
    risk: float


@dataclass(frozen=True)
class PmzResult:
    date: date
    pmz_high: float
    pmz_low: float
    risk: float
    pmh: float
    pml: float
    gap: bool
    lis: float
    open_price: Optional[float] = None
    after_hours: Optional[AfterHoursLevels] = None

    @property
    def risk_range(self) -> float:
        return self.pmh - self.pml

    @property
    def upper_risk(self) -> float:
        return self.pmz_high + self.risk_range

    @property
    def lower_risk(self) -> float:
        return self.pmz_low - self.risk_range

    def to_dict(self) -> dict:
        out = asdict(self)
        out['risk_range'] = self.risk_range
        out['upper_risk'] = self.upper_risk
        out['lower_risk'] = self.lower_risk
        return out


# ─────────────────────────────────────────────
# SECTION 2: STATE TRANSITION
# ─────────────────────────────────────────────

def _accumulate(high_acc: float, low_acc: float, gap_acc: Optional[bool],
                candle: Candle, lis: Optional[float], at_reset: bool,
                armed: bool, in_window: bool) -> Tuple[float, float, Optional[bool]]:
    """
    Shared by the pre-market fold and its after-hours mirror.
    Reset beats accumulation: the cnull candle never lands in the fresh range.
    Before the first reset (armed=False) the window is ignored, otherwise the
    prior regular session would leak into the ALL-mode range.
    """
    in_window = in_window and armed

    if at_reset:
        high_acc, low_acc = 0.0, np.inf
    elif in_window:
        high_acc = max(high_acc, candle.high)
        low_acc  = min(low_acc, candle.low)

    # gap needs a reference close; until one exists it stays unset
    if in_window and lis is not None:
        gap_acc = not (candle.open < lis)

    return high_acc, low_acc, gap_acc


def step(state: EvaluatorState, candle: Candle, windows: SessionWindows,
         premarket_mode: str = PREMARKET_MODE,
         futures_enabled: bool = FUTURES_ENABLED) -> EvaluatorState:
    """
    One bar of the fold: previous state + candle -> next state.
    Order matters: LIS is captured before the gap comparison on the same bar.
    """
    tod = candle.timestamp.time()
    at_reset = tod == windows.cnull
    armed    = state.reset_seen or at_reset

    lis   = candle.close if tod == windows.tclose else state.lis
    otime = candle.open if tod == windows.topen else state.otime

    pmh, pml, gap = _accumulate(
        state.pmh, state.pml, state.gap, candle, lis, at_reset, armed,
        in_premarket_window(tod, windows, premarket_mode),
    )

    ahh, ahl, ah_set = state.ahh, state.ahl, state.ah_set
    if futures_enabled:
        ahh, ahl, ah_set = _accumulate(
            ahh, ahl, ah_set, candle, lis, at_reset, armed,
            in_after_hours_window(tod, windows),
        )

    return replace(
        state, lis=lis, otime=otime,
        pmh=pmh, pml=pml, gap=gap,
        ahh=ahh, ahl=ahl, ah_set=ah_set,
        reset_seen=armed,
    )


# ─────────────────────────────────────────────
# SECTION 3: ZONE DERIVATION
# ─────────────────────────────────────────────

def compute_pmz_levels(pmh: float, pml: float, gap: bool) -> Tuple[float, float, float]:
    """
    Gap up/flat: zone hangs below the pre-market high.
    Gap down:    zone sits above the pre-market low.
    Returns (pmz_high, pmz_low, risk).

    These are the banner formulas. The plotted cloud in the charting script
    swaps 0.2/0.4 on the gap-down side; the banner values are the output here.
    """
    rng = pmh - pml
    if gap:
        pmz_high = pmh - rng * PMZ_NEAR_WEIGHT
        pmz_low  = pmh - rng * PMZ_FAR_WEIGHT
    else:
        pmz_high = pml + rng * PMZ_FAR_WEIGHT
        pmz_low  = pml + rng * PMZ_NEAR_WEIGHT
    return pmz_high, pmz_low, pmz_high - pmz_low


# ─────────────────────────────────────────────
# SECTION 4: INPUT CHECKS
# ─────────────────────────────────────────────

def check_candles(candles: Sequence[Candle]) -> None:
    """
    Timestamps strictly increasing, prices finite.
    """
    if len(candles) == 0:
        raise InsufficientData("[PMZ] No candles supplied")

    prev = None
    for c in candles:
        if not np.isfinite([c.open, c.high, c.low, c.close]).all():
            raise InsufficientData(f"[PMZ] Non-finite price in candle at {c.timestamp}")
        if prev is not None and c.timestamp <= prev.timestamp:
            raise InsufficientData(
                f"[PMZ] Candles not strictly ordered: {c.timestamp} follows {prev.timestamp}"
            )
        prev = c


# ─────────────────────────────────────────────
# SECTION 5: EVALUATION
# ─────────────────────────────────────────────

def _is_window_closed(candle: Candle, target_date: date, windows: SessionWindows) -> bool:
    return candle.timestamp.date() > target_date or (
        candle.timestamp.date() == target_date and candle.timestamp.time() >= windows.topen
    )


def evaluate(candles: Sequence[Candle],
             premarket_mode: str = PREMARKET_MODE,
             futures_enabled: bool = FUTURES_ENABLED,
             target_date: Optional[date] = None,
             period_minutes: Optional[int] = None) -> PmzResult:
    """
    Fold the candles in timestamp order and derive the PMZ for target_date.

    The pre-market window closes at 09:30 on target_date: pmh/pml/gap/lis are
    taken from the state after the last candle before 09:30, open_price from
    the 09:30 candle itself. Later candles are not consumed.
    target_date defaults to the date of the last candle.
    """
    validate_premarket_mode(premarket_mode)
    candles = list(candles)
    check_candles(candles)

    if period_minutes is None:
        period_minutes = infer_period_minutes([c.timestamp for c in candles])
    windows = session_windows(period_minutes)

    if target_date is None:
        target_date = candles[-1].timestamp.date()

    state    = EvaluatorState()
    snapshot = None
    opened   = False

    for candle in candles:
        if _is_window_closed(candle, target_date, windows):
            if candle.timestamp.date() == target_date and candle.timestamp.time() == windows.topen:
                state  = step(state, candle, windows, premarket_mode, futures_enabled)
                opened = True
            break
        state    = step(state, candle, windows, premarket_mode, futures_enabled)
        snapshot = state

    if snapshot is None:
        raise InsufficientData(f"[PMZ] No candles before the {windows.topen} open on {target_date}")
    if snapshot.lis is None:
        raise InsufficientData(
            f"[PMZ] Missing prior session close: no {windows.tclose} candle before {target_date}"
        )
    if not snapshot.reset_seen:
        raise InsufficientData(
            f"[PMZ] Missing {windows.cnull} reset candle before {target_date}; "
            f"the pre-market range has no starting point"
        )
    if not np.isfinite(snapshot.pml) or snapshot.gap is None:
        raise InsufficientData(
            f"[PMZ] No {premarket_mode} pre-market candles since the last {windows.cnull} reset "
            f"before {target_date}"
        )
    if not opened:
        raise InsufficientData(f"[PMZ] Missing {windows.topen} open candle on {target_date}")

    pmz_high, pmz_low, risk = compute_pmz_levels(snapshot.pmh, snapshot.pml, snapshot.gap)

    after_hours = None
    if futures_enabled:
        if not np.isfinite(snapshot.ahl) or snapshot.ah_set is None:
            print(
                f"[PMZ] WARNING: No after-hours candles between {windows.cnull} and {windows.fut_close} "
                f"before {target_date} — after-hours levels skipped."
            )
        else:
            zone_high, zone_low, ah_risk = compute_pmz_levels(snapshot.ahh, snapshot.ahl, snapshot.ah_set)
            after_hours = AfterHoursLevels(
                ahh=snapshot.ahh, ahl=snapshot.ahl, ah_set=snapshot.ah_set,
                zone_high=zone_high, zone_low=zone_low, risk=ah_risk,
            )

    return PmzResult(
        date=target_date,
        pmz_high=pmz_high,
        pmz_low=pmz_low,
        risk=risk,
        pmh=snapshot.pmh,
        pml=snapshot.pml,
        gap=snapshot.gap,
        lis=snapshot.lis,
        open_price=state.otime,
        after_hours=after_hours,
    )


# ─────────────────────────────────────────────
# SECTION 6: STATE TRACE
# ─────────────────────────────────────────────

def build_state_trace(candles: Iterable[Candle],
                      premarket_mode: str = PREMARKET_MODE,
                      futures_enabled: bool = FUTURES_ENABLED,
                      period_minutes: Optional[int] = None) -> pd.DataFrame:
    """
    Run the full fold (no target-date cut-off) and return one row per candle:
    the window flags and the state right after that candle.
    Useful for checking a day bar by bar against the chart.
    """
    validate_premarket_mode(premarket_mode)
    candles = list(candles)
    check_candles(candles)

    if period_minutes is None:
        period_minutes = infer_period_minutes([c.timestamp for c in candles])
    windows = session_windows(period_minutes)

    rows: List[dict] = []
    state = EvaluatorState()
    for candle in candles:
        tod = candle.timestamp.time()
        state = step(state, candle, windows, premarket_mode, futures_enabled)
        row = asdict(state)
        row['datetime'] = candle.timestamp
        row['nperiod']  = in_premarket_window(tod, windows, premarket_mode)
        row['fut_time'] = in_after_hours_window(tod, windows)
        rows.append(row)

    trace = pd.DataFrame(rows).set_index('datetime')
    print(f"[PMZ] State trace built: {len(trace)} bars, mode={premarket_mode}, period={period_minutes}m")
    return trace
