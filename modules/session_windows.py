# modules/session_windows.py

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

import numpy as np
import pandas as pd

from config import (
    TOPEN, TCLOSE, NT2, NT3, NT4, FUT_CLOSE,
    CNULL_BY_PERIOD, PNULL_BY_PERIOD, PREMARKET_MODES
)
from modules.errors import InsufficientData, InvalidConfiguration


# ─────────────────────────────────────────────
# SECTION 1: SESSION CLOCK
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class SessionWindows:
    """
    The named wall-clock instants of one trading day.
    Only cnull and pnull depend on the bar period; the rest are fixed.
    """
    topen: time
    tclose: time
    cnull: time
    pnull: time
    nt2: time
    nt3: time
    nt4: time
    fut_close: time


@dataclass(frozen=True)
class WindowFlags:
    nperiod1: bool
    nperiod2: bool
    fut_time: bool
    nperiod: bool


def _cutoff_for_period(table, period_minutes: int) -> time:
    for max_period, cutoff in table:
        if max_period is None or period_minutes <= max_period:
            return cutoff
    raise InvalidConfiguration(f"[PMZ] No cutoff configured for {period_minutes}-minute bars")


def validate_premarket_mode(mode: str) -> str:
    if mode not in PREMARKET_MODES:
        raise InvalidConfiguration(
            f"[PMZ] Unknown premarket mode {mode!r}. Expected one of: {list(PREMARKET_MODES)}"
        )
    return mode


def session_windows(period_minutes: int) -> SessionWindows:
    """
    Build the session clock for a bar period (in minutes).
    """
    if period_minutes is None or period_minutes <= 0:
        raise InvalidConfiguration(f"[PMZ] Bar period must be positive, got {period_minutes}")

    return SessionWindows(
        topen=TOPEN,
        tclose=TCLOSE,
        cnull=_cutoff_for_period(CNULL_BY_PERIOD, period_minutes),
        pnull=_cutoff_for_period(PNULL_BY_PERIOD, period_minutes),
        nt2=NT2,
        nt3=NT3,
        nt4=NT4,
        fut_close=FUT_CLOSE,
    )


# ─────────────────────────────────────────────
# SECTION 2: WINDOW PREDICATES
# ─────────────────────────────────────────────

def in_late_night_window(tod: time, windows: SessionWindows) -> bool:
    """
    nperiod1: from nt2 (23:55) of the previous night up to cnull of today.
    Wall-clock only, so the slice wraps midnight.
    """
    return tod >= windows.nt2 or tod <= windows.cnull


def in_overnight_window(tod: time, windows: SessionWindows) -> bool:
    """nperiod2: midnight up to (not including) the 09:30 open."""
    return windows.nt3 <= tod < windows.nt4


def in_after_hours_window(tod: time, windows: SessionWindows) -> bool:
    """futTime: cnull through the 18:00 futures reopen."""
    return windows.cnull <= tod <= windows.fut_close


def in_premarket_window(tod: time, windows: SessionWindows, mode: str) -> bool:
    if mode == "ALL":
        return in_late_night_window(tod, windows) or in_overnight_window(tod, windows)
    if mode == "PRE":
        return windows.pnull < tod < windows.nt4
    raise InvalidConfiguration(f"[PMZ] Unknown premarket mode {mode!r}")


def classify_candle(timestamp: datetime, period_minutes: int, mode: str) -> WindowFlags:
    """
    Decide which named windows a candle falls in.
    Pure function of the timestamp's wall-clock time, the bar period and the mode.
    """
    validate_premarket_mode(mode)
    windows = session_windows(period_minutes)
    tod = timestamp.time()

    return WindowFlags(
        nperiod1=in_late_night_window(tod, windows),
        nperiod2=in_overnight_window(tod, windows),
        fut_time=in_after_hours_window(tod, windows),
        nperiod=in_premarket_window(tod, windows, mode),
    )


# ─────────────────────────────────────────────
# SECTION 3: VECTORISED CLASSIFICATION
# ─────────────────────────────────────────────

def _seconds(t: time) -> int:
    return t.hour * 3600 + t.minute * 60 + t.second


def classify_frame(df: pd.DataFrame, period_minutes: int, mode: str) -> pd.DataFrame:
    """
    Same predicates as classify_candle, applied to a whole candle DataFrame.
    Adds boolean columns: nperiod1, nperiod2, fut_time, nperiod.
    Expects a DatetimeIndex in exchange-local time.
    """
    validate_premarket_mode(mode)
    windows = session_windows(period_minutes)

    idx  = pd.DatetimeIndex(df.index)
    secs = np.asarray(idx.hour * 3600 + idx.minute * 60 + idx.second)

    cnull = _seconds(windows.cnull)

    df['nperiod1'] = (secs >= _seconds(windows.nt2)) | (secs <= cnull)
    df['nperiod2'] = (secs >= _seconds(windows.nt3)) & (secs < _seconds(windows.nt4))
    df['fut_time'] = (secs >= cnull) & (secs <= _seconds(windows.fut_close))

    if mode == "ALL":
        df['nperiod'] = df['nperiod1'] | df['nperiod2']
    else:
        df['nperiod'] = (secs > _seconds(windows.pnull)) & (secs < _seconds(windows.nt4))

    return df


# ─────────────────────────────────────────────
# SECTION 4: BAR PERIOD & CALENDAR
# ─────────────────────────────────────────────

def infer_period_minutes(timestamps) -> int:
    """
    Infer the bar period from the smallest spacing between timestamps.
    Missing bars and session breaks only ever widen a gap, so the minimum
    survives sparse input where a median would drift to an hourly period.
    """
    idx = pd.DatetimeIndex(timestamps)
    if len(idx) < 2:
        raise InsufficientData("[PMZ] Need at least 2 candles to infer the bar period")

    diffs = idx.to_series().diff().dropna()
    diffs = diffs[diffs > pd.Timedelta(0)]
    if diffs.empty:
        raise InsufficientData("[PMZ] All timestamps identical; cannot infer the bar period")

    min_gap = diffs.min()
    minutes = int(round(min_gap / pd.Timedelta(minutes=1)))
    if minutes <= 0:
        raise InvalidConfiguration(f"[PMZ] Inferred a sub-minute bar period from spacing {min_gap}")
    return minutes


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def previous_trading_day(day: date) -> date:
    """
    Step back to the previous weekday. Exchange holidays are not modelled.
    """
    prev_day = day - timedelta(days=1)
    while is_weekend(prev_day):
        prev_day -= timedelta(days=1)
    return prev_day
