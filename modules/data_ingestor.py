# modules/data_ingestor.py

import os
from datetime import date, datetime, time
from typing import List

import pandas as pd

from config import (
    REQUIRED_COLUMNS, OPTIONAL_COLUMNS, TIMESTAMP_CANDIDATES,
    MAX_SINGLE_BAR_MOVE_PCT, MIN_PRICE, EXCHANGE_TZ, BAR_MINUTES
)
from modules.pmz_engine import Candle
from modules.session_windows import infer_period_minutes, previous_trading_day

PRICE_COLUMNS = ['open', 'high', 'low', 'close']


# ─────────────────────────────────────────────
# SECTION 1: LOADING
# ─────────────────────────────────────────────

def load_csv(filepath: str) -> pd.DataFrame:
    """
    Load a CSV file and return a raw DataFrame.
    Raises clear errors if file doesn't exist or can't be parsed.
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"[PMZ] File not found: {filepath}")

    try:
        df = pd.read_csv(filepath)
    except Exception as e:
        raise ValueError(f"[PMZ] Failed to parse CSV: {e}")

    print(f"[PMZ] Loaded {len(df)} rows from '{filepath}'")
    print(f"[PMZ] Columns found: {list(df.columns)}")
    return df


# ─────────────────────────────────────────────
# SECTION 2: COLUMN STANDARDIZATION
# ─────────────────────────────────────────────

def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize column names to lowercase.
    Detect and rename the timestamp column to 'datetime'.
    Raise error if required columns are missing; add volume=0 if absent.
    """
    df.columns = [col.strip().lower() for col in df.columns]

    ts_col = None
    for candidate in [c.lower() for c in TIMESTAMP_CANDIDATES]:
        if candidate in df.columns:
            ts_col = candidate
            break

    if ts_col is None:
        raise ValueError(
            f"[PMZ] No timestamp column found. "
            f"Expected one of: {TIMESTAMP_CANDIDATES}\n"
            f"Found: {list(df.columns)}"
        )

    if ts_col != 'datetime':
        df = df.rename(columns={ts_col: 'datetime'})

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"[PMZ] Missing required columns: {missing}")

    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = 0.0
            print(f"[PMZ] Optional column '{col}' absent — filled with 0.")

    print(f"[PMZ] Columns standardized. Timestamp column: '{ts_col}' → 'datetime'")
    return df


# ─────────────────────────────────────────────
# SECTION 3: TIMESTAMP PARSING & SORTING
# ─────────────────────────────────────────────

def parse_and_sort_timestamps(df: pd.DataFrame) -> pd.DataFrame:
    """
    Parse datetime column, set as index, sort chronologically.
    Timezone-aware input (e.g. UTC feed timestamps) is converted to
    exchange-local wall-clock time; naive input is assumed to be local already.
    """
    try:
        parsed = pd.to_datetime(df['datetime'])
    except (ValueError, TypeError):
        parsed = None

    # Mixed UTC offsets (DST changeover) either fail or come back as objects
    if parsed is None or parsed.dtype == object:
        try:
            parsed = pd.to_datetime(df['datetime'], utc=True)
        except Exception as e:
            raise ValueError(f"[PMZ] Failed to parse datetime column: {e}")

    if isinstance(parsed.dtype, pd.DatetimeTZDtype):
        parsed = parsed.dt.tz_convert(EXCHANGE_TZ).dt.tz_localize(None)
        print(f"[PMZ] Timestamps converted to {EXCHANGE_TZ} wall-clock time.")

    df['datetime'] = parsed

    null_ts = df['datetime'].isna().sum()
    if null_ts > 0:
        print(f"[PMZ] WARNING: {null_ts} rows with unparseable timestamps — dropping them.")
        df = df.dropna(subset=['datetime'])

    df = df.set_index('datetime').sort_index()

    dupes = df.index.duplicated().sum()
    if dupes > 0:
        print(f"[PMZ] WARNING: {dupes} duplicate timestamps found — keeping first occurrence.")
        df = df[~df.index.duplicated(keep='first')]

    print(f"[PMZ] Timestamps parsed. Range: {df.index[0]} → {df.index[-1]}")
    return df


# ─────────────────────────────────────────────
# SECTION 4: TYPE ENFORCEMENT
# ─────────────────────────────────────────────

def enforce_numeric_types(df: pd.DataFrame) -> pd.DataFrame:
    """
    Ensure OHLCV columns are numeric. Coerce errors to NaN.
    """
    for col in REQUIRED_COLUMNS + OPTIONAL_COLUMNS:
        before = df[col].isna().sum()
        df[col] = pd.to_numeric(df[col], errors='coerce')
        after = df[col].isna().sum()
        new_nulls = after - before
        if new_nulls > 0:
            print(f"[PMZ] WARNING: {new_nulls} non-numeric values in '{col}' → set to NaN")

    return df


# ─────────────────────────────────────────────
# SECTION 5: MISSING VALUE HANDLING
# ─────────────────────────────────────────────

def handle_missing_values(df: pd.DataFrame) -> pd.DataFrame:
    """
    Report and handle NaN values.
    Strategy: forward-fill price columns, zero-fill volume.
    Leading NaN prices (nothing to fill from) are dropped.
    """
    for col in REQUIRED_COLUMNS + OPTIONAL_COLUMNS:
        null_count = df[col].isna().sum()
        if null_count == 0:
            continue

        pct = (null_count / len(df)) * 100
        print(f"[PMZ] '{col}' has {null_count} missing values ({pct:.2f}%)")

        if pct > 10:
            print(f"[PMZ] WARNING: More than 10% missing in '{col}'. Data quality concern.")

        if col == 'volume':
            df[col] = df[col].fillna(0)
            print(f"[PMZ] Volume NaNs filled with 0.")
        else:
            df[col] = df[col].ffill()
            print(f"[PMZ] '{col}' NaNs forward-filled.")

    leading = df[PRICE_COLUMNS].isna().any(axis=1)
    if leading.sum() > 0:
        print(f"[PMZ] Dropping {leading.sum()} leading bars with no price to fill from.")
        df = df[~leading]

    return df


# ─────────────────────────────────────────────
# SECTION 6: PRICE LOGIC VALIDATION
# ─────────────────────────────────────────────

def validate_price_logic(df: pd.DataFrame) -> pd.DataFrame:
    """
    Check that OHLC values make logical sense:
    - High >= Low
    - High >= Open, High >= Close
    - Low <= Open, Low <= Close
    - All prices > MIN_PRICE
    - No single bar moves more than MAX_SINGLE_BAR_MOVE_PCT (flagged only)
    """
    issues = []

    bad_hl = df['high'] < df['low']
    if bad_hl.sum() > 0:
        issues.append(f"  - {bad_hl.sum()} bars where High < Low")
        df = df[~bad_hl]

    bad_high = (df['high'] < df['open']) | (df['high'] < df['close'])
    if bad_high.sum() > 0:
        issues.append(f"  - {bad_high.sum()} bars where High < Open or Close")
        df = df[~bad_high]

    bad_low = (df['low'] > df['open']) | (df['low'] > df['close'])
    if bad_low.sum() > 0:
        issues.append(f"  - {bad_low.sum()} bars where Low > Open or Close")
        df = df[~bad_low]

    bad_price = (df[PRICE_COLUMNS] <= MIN_PRICE).any(axis=1)
    if bad_price.sum() > 0:
        issues.append(f"  - {bad_price.sum()} bars with price ≤ {MIN_PRICE}")
        df = df[~bad_price]

    df = df.copy()
    bar_move_pct = ((df['close'] - df['open']).abs() / df['open']) * 100
    extreme_moves = bar_move_pct > MAX_SINGLE_BAR_MOVE_PCT
    if extreme_moves.sum() > 0:
        issues.append(
            f"  - {extreme_moves.sum()} bars with move > {MAX_SINGLE_BAR_MOVE_PCT}% "
            f"(flagged, not removed — could be real events)"
        )
        df['extreme_move_flag'] = extreme_moves

    if issues:
        print("[PMZ] Price logic issues found:")
        for issue in issues:
            print(issue)
    else:
        print("[PMZ] Price logic validation passed. No issues found.")

    return df


# ─────────────────────────────────────────────
# SECTION 7: AGGREGATION
# ─────────────────────────────────────────────

def aggregate_candles(df: pd.DataFrame, minutes: int = BAR_MINUTES) -> pd.DataFrame:
    """
    Roll finer bars (typically 1-minute) up into `minutes`-minute bars.
    Buckets are labelled by their start time, so 15:55-16:00 becomes the 15:55 bar.
    Empty buckets (overnight halts, weekends) are dropped, not filled.
    """
    if df.empty:
        return df

    agg = df[PRICE_COLUMNS + OPTIONAL_COLUMNS].resample(
        f"{minutes}min", label='left', closed='left'
    ).agg({
        'open': 'first',
        'high': 'max',
        'low': 'min',
        'close': 'last',
        'volume': 'sum',
    })
    agg = agg.dropna(subset=PRICE_COLUMNS)

    print(f"[PMZ] Aggregated {len(df)} bars into {len(agg)} {minutes}-minute bars.")
    return agg


# ─────────────────────────────────────────────
# SECTION 8: TIME GAP DETECTION
# ─────────────────────────────────────────────

def detect_time_gaps(df: pd.DataFrame, expected_freq: str = None) -> pd.DataFrame:
    """
    Detect gaps in the time series.
    If expected_freq is None, we infer it from the data (median gap).
    Reports gaps but does NOT fill them; the daily futures halt shows up here too.
    """
    time_diffs = df.index.to_series().diff().dropna()
    median_gap = time_diffs.median()

    if expected_freq:
        expected_td = pd.Timedelta(pd.tseries.frequencies.to_offset(expected_freq).nanos)
    else:
        expected_td = median_gap

    gaps = time_diffs[time_diffs > (expected_td * 2)]

    df['time_gap_after'] = False
    if len(gaps) > 0:
        print(f"[PMZ] Detected {len(gaps)} time gaps (expected interval: {expected_td}):")
        for ts, gap in gaps.items():
            print(f"  - Gap of {gap} at {ts}")
        df.loc[gaps.index, 'time_gap_after'] = True
    else:
        print(f"[PMZ] No time gaps detected. Interval: {expected_td}")

    return df


# ─────────────────────────────────────────────
# SECTION 9: TARGET-DATE SLICE & CONVERSION
# ─────────────────────────────────────────────

def slice_for_target_date(df: pd.DataFrame, target_date: date) -> pd.DataFrame:
    """
    Keep only what one PMZ evaluation needs:
    previous trading day 15:00 → target date 16:05.
    The start covers the 16:00 LIS bar and every period's cnull reset (15:00-15:55).
    """
    start = datetime.combine(previous_trading_day(target_date), time(15, 0))
    end   = datetime.combine(target_date, time(16, 5))

    sliced = df[(df.index >= start) & (df.index <= end)]
    print(f"[PMZ] Sliced {len(sliced)} bars for {target_date} ({start} → {end})")
    return sliced


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    return [
        Candle(
            timestamp=ts.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(getattr(row, 'volume', 0.0)),
        )
        for ts, row in zip(df.index, df.itertuples(index=False))
    ]


# ─────────────────────────────────────────────
# SECTION 10: SUMMARY REPORT
# ─────────────────────────────────────────────

def generate_data_summary(df: pd.DataFrame) -> dict:
    """
    Generate a clean summary of the loaded dataset.
    """
    summary = {
        "total_bars": len(df),
        "start": str(df.index[0]),
        "end": str(df.index[-1]),
        "bar_minutes": infer_period_minutes(df.index) if len(df) > 1 else None,
        "trading_days": int(pd.Series(df.index.date).nunique()),
        "close_min": round(df['close'].min(), 4),
        "close_max": round(df['close'].max(), 4),
        "missing_values": df[REQUIRED_COLUMNS].isna().sum().to_dict(),
        "flag_columns": [c for c in df.columns if c.endswith('_flag') or c == 'time_gap_after'],
    }

    print("\n" + "=" * 50)
    print("  PMZ — DATA INGESTION SUMMARY")
    print("=" * 50)
    for k, v in summary.items():
        print(f"  {k:<20}: {v}")
    print("=" * 50 + "\n")

    return summary


# ─────────────────────────────────────────────
# MASTER FUNCTION
# ─────────────────────────────────────────────

def ingest(filepath: str, bar_minutes: int = BAR_MINUTES, expected_freq: str = None) -> pd.DataFrame:
    """
    Full ingestion pipeline.
    Call this from main.py.
    Returns a clean, validated DataFrame of bar_minutes-minute candles
    indexed by exchange-local time.
    """
    print("\n[PMZ] ── Starting Data Ingestion & Cleaning ──\n")

    df = load_csv(filepath)
    df = standardize_columns(df)
    df = parse_and_sort_timestamps(df)
    df = enforce_numeric_types(df)
    df = handle_missing_values(df)
    df = validate_price_logic(df)

    if infer_period_minutes(df.index) < bar_minutes:
        df = aggregate_candles(df, bar_minutes)

    df = detect_time_gaps(df, expected_freq=expected_freq)
    generate_data_summary(df)

    print("[PMZ] ── Ingestion Complete. Candle DataFrame ready. ──\n")
    return df
